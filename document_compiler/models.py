"""
Data model for the Document Compiler.

Plain classes for conversation messages, parsed document fields, user edits,
merge results and spreadsheet grids. Every class converts to and from the
dictionary shape used by the persistence layer; `from_dict` accepts both the
snake_case keys written here and the camelCase keys used by the web client.
"""
import json
from datetime import datetime, date, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .exceptions import EntityAttributeError

#: Closed scalar union allowed in cells and entity attributes.
Scalar = Union[str, int, float, bool, None]


class Role(Enum):
    """Author of a conversation message."""
    USER = "user"
    ASSISTANT = "assistant"


class Message:
    """
    One entry of a conversation history.

    Attributes:
        role (str): Either 'user' or 'assistant'.
        content (str): Message text.
    """

    def __init__(self, role: str, content: str):
        self.role = Role(role).value
        self.content = content or ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Message':
        return cls(data['role'], data.get('content', ''))

    def to_dict(self) -> Dict[str, str]:
        return {'role': self.role, 'content': self.content}

    def __eq__(self, other):
        if not isinstance(other, Message):
            return NotImplemented
        return self.role == other.role and self.content == other.content

    def __repr__(self):
        preview = self.content[:30].replace('\n', ' ')
        return f"Message(role={self.role!r}, content={preview!r})"


class DocumentField:
    """
    One parsed unit of a compiled document.

    Section fields are non-editable headers; all other fields are editable
    values whose `compiled_content` is a literal substring of the text they
    were parsed from.
    """

    def __init__(
        self,
        id: str,
        label: str,
        compiled_content: str,
        is_section: bool = False,
        original_content: str = ""
    ):
        self.id = id
        self.label = label
        self.compiled_content = compiled_content
        self.is_section = is_section
        self.original_content = original_content

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DocumentField':
        return cls(
            id=data['id'],
            label=data.get('label', ''),
            compiled_content=_pick(data, 'compiled_content', 'compiledContent', default=''),
            is_section=bool(_pick(data, 'is_section', 'isSection', default=False)),
            original_content=_pick(data, 'original_content', 'originalContent', default=''),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'label': self.label,
            'original_content': self.original_content,
            'compiled_content': self.compiled_content,
            'is_section': self.is_section,
        }

    def __eq__(self, other):
        if not isinstance(other, DocumentField):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        kind = "section" if self.is_section else "field"
        return f"DocumentField({self.id!r}, {kind}, label={self.label!r})"


class DocumentStructure:
    """Ordered list of fields parsed from one compiled text."""

    def __init__(self, fields: Optional[List[DocumentField]] = None, parsed_at: Optional[str] = None):
        self.fields = fields or []
        self.parsed_at = parsed_at or datetime.now().astimezone().isoformat()

    @property
    def total_fields(self) -> int:
        return len(self.fields)

    @property
    def editable_fields(self) -> List[DocumentField]:
        return [f for f in self.fields if not f.is_section]

    def get_field(self, field_id: str) -> Optional[DocumentField]:
        for field in self.fields:
            if field.id == field_id:
                return field
        return None

    @classmethod
    def from_dict(cls, data: Union[Dict[str, Any], List[Dict[str, Any]]]) -> 'DocumentStructure':
        """Builds a structure from a stored dict (`{'fields': [...]}`) or a bare list of fields."""
        if isinstance(data, list):
            return cls([DocumentField.from_dict(f) for f in data])
        fields = [DocumentField.from_dict(f) for f in data.get('fields') or []]
        return cls(fields, _pick(data, 'parsed_at', 'parsedAt', default=None))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'fields': [f.to_dict() for f in self.fields],
            'total_fields': self.total_fields,
            'parsed_at': self.parsed_at,
        }


class UserEdit:
    """
    A user's replacement for one field or spreadsheet cell.

    Edits are created or overwritten whole on each save and never partially
    mutated.
    """

    def __init__(
        self,
        field_id: str,
        content: str,
        timestamp: Union[str, datetime, None] = None,
        user_id: Optional[str] = None
    ):
        self.field_id = field_id
        self.content = content
        self.timestamp = timestamp
        self.user_id = user_id

    @classmethod
    def create(cls, field_id: str, content: str, user_id: Optional[str] = None) -> 'UserEdit':
        """Builds an edit stamped with the current time."""
        return cls(field_id, content, datetime.now().astimezone(), user_id)

    @property
    def timestamp_value(self) -> Optional[datetime]:
        """The timestamp as a datetime, or None when it cannot be parsed."""
        return parse_timestamp(self.timestamp)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], field_id: Optional[str] = None) -> 'UserEdit':
        return cls(
            field_id=_pick(data, 'field_id', 'fieldId', default=field_id),
            content=data.get('content', ''),
            timestamp=data.get('timestamp'),
            user_id=_pick(data, 'user_id', 'userId', default=None),
        )

    def to_dict(self) -> Dict[str, Any]:
        timestamp = self.timestamp.isoformat() if isinstance(self.timestamp, datetime) else self.timestamp
        return {
            'field_id': self.field_id,
            'content': self.content,
            'timestamp': timestamp,
            'user_id': self.user_id,
        }

    def __eq__(self, other):
        if not isinstance(other, UserEdit):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"UserEdit(field_id={self.field_id!r}, content={self.content[:30]!r})"


class MergeResult:
    """Outcome of reconciling user edits with a compiled document."""

    def __init__(self, merged_content: str, applied_edits: int = 0, total_fields: int = 0):
        self.merged_content = merged_content
        self.applied_edits = applied_edits
        self.total_fields = total_fields

    @property
    def has_user_edits(self) -> bool:
        return self.applied_edits > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'merged_content': self.merged_content,
            'applied_edits': self.applied_edits,
            'total_fields': self.total_fields,
            'has_user_edits': self.has_user_edits,
        }

    def __eq__(self, other):
        if not isinstance(other, MergeResult):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return (f"MergeResult(applied_edits={self.applied_edits}, "
                f"total_fields={self.total_fields}, length={len(self.merged_content or '')})")


class Cell:
    """A spreadsheet cell holding one optional scalar value."""

    def __init__(self, value: Scalar = None):
        self.value = value

    @property
    def is_empty(self) -> bool:
        return self.value is None or self.value == ""

    def to_dict(self) -> Dict[str, Scalar]:
        return {'value': self.value}

    def __eq__(self, other):
        if not isinstance(other, Cell):
            return NotImplemented
        return self.value == other.value

    def __repr__(self):
        return f"Cell({self.value!r})"


class Sheet:
    """
    A named, densely indexed grid of cells.

    Reads outside the grid return None; writes outside it grow the grid by
    padding with empty cells. `column_count` is never smaller than the longest
    row.
    """

    def __init__(self, name: str, rows: Optional[List[List[Cell]]] = None):
        self.name = name
        self.rows: List[List[Cell]] = rows or []
        self.column_count = max((len(r) for r in self.rows), default=0)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def append_row(self, values: List[Any]) -> None:
        row = [Cell(normalize_cell_value(v)) for v in values]
        self.rows.append(row)
        self.column_count = max(self.column_count, len(row))

    def get_value(self, row_index: int, col_index: int) -> Scalar:
        if row_index < 0 or col_index < 0 or row_index >= len(self.rows):
            return None
        row = self.rows[row_index]
        if col_index >= len(row):
            return None
        return row[col_index].value

    def set_value(self, row_index: int, col_index: int, value: Any) -> None:
        if row_index < 0 or col_index < 0:
            raise IndexError(f"Negative cell index ({row_index}, {col_index})")
        while len(self.rows) <= row_index:
            self.rows.append([])
        row = self.rows[row_index]
        while len(row) <= col_index:
            row.append(Cell())
        row[col_index].value = normalize_cell_value(value)
        self.column_count = max(self.column_count, col_index + 1)

    def copy(self) -> 'Sheet':
        return Sheet(self.name, [[Cell(c.value) for c in row] for row in self.rows])

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'rows': [[c.value for c in row] for row in self.rows],
            'column_count': self.column_count,
            'row_count': self.row_count,
        }

    def __repr__(self):
        return f"Sheet({self.name!r}, rows={self.row_count}, columns={self.column_count})"


class SpreadsheetStructure:
    """All sheets of a workbook plus the index of the sheet shown first."""

    def __init__(self, sheets: Optional[List[Sheet]] = None, active_sheet_index: int = 0):
        self.sheets = sheets or []
        self.active_sheet_index = active_sheet_index

    def get_sheet(self, name: str) -> Optional[Sheet]:
        for sheet in self.sheets:
            if sheet.name == name:
                return sheet
        return None

    def copy(self) -> 'SpreadsheetStructure':
        return SpreadsheetStructure([s.copy() for s in self.sheets], self.active_sheet_index)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sheets': [s.to_dict() for s in self.sheets],
            'active_sheet_index': self.active_sheet_index,
        }


def normalize_scalar(value: Any, key: str = "value") -> Scalar:
    """
    Validates that `value` belongs to the scalar union.

    Dates are converted to ISO strings. Anything nested is rejected.

    Raises:
        EntityAttributeError: If the value is a list, dict or other object.
    """
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise EntityAttributeError(
        f"Attribute '{key}' must be a string, number or boolean, got {type(value).__name__}"
    )


def normalize_cell_value(value: Any) -> Scalar:
    """
    Flattens a raw cell value into the scalar union.

    Rich-text, formula and error objects as produced by spreadsheet readers
    are unwrapped; unknown objects are serialized to JSON text.
    """
    if isinstance(value, dict):
        for key in ('text', 'result', 'error'):
            if key in value:
                return normalize_cell_value(value[key])
        return json.dumps(value, default=str)
    if isinstance(value, (list, tuple)):
        return json.dumps(list(value), default=str)
    try:
        return normalize_scalar(value)
    except EntityAttributeError:
        return str(value)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parses an ISO timestamp; naive values are taken as UTC so all results compare."""
    if isinstance(value, datetime):
        parsed = value
    elif not value:
        return None
    else:
        try:
            parsed = datetime.fromisoformat(str(value))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _pick(data: Dict[str, Any], key: str, alt_key: str, default: Any = None) -> Any:
    if key in data:
        return data[key]
    return data.get(alt_key, default)
