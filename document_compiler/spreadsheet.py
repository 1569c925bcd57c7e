"""
Spreadsheet content in its plain-text form, and cell-level edit application.

Compiled spreadsheets travel as text::

    === SHEET: Sheet1 ===
    Row 1: Header1<TAB>Header2
    Row 2: Value1<TAB>Value2

User edits to spreadsheets are keyed ``"SheetName:CellRef"`` and are applied
by address rather than by text search, so they cannot miss.
"""
import logging
import re
from typing import Any, Dict, Mapping, Optional

from .cell_address import from_address, split_cell_id
from .exceptions import InvalidAddressError
from .models import Sheet, SpreadsheetStructure, UserEdit

logger = logging.getLogger(__name__)

DEFAULT_SHEET_NAME = "Sheet1"

SHEET_MARKER_RE = re.compile(r"^===\s*SHEET:\s*(.+?)\s*===$")
ROW_RE = re.compile(r"^Row\s+(\d+): ?(.*)$")


def parse_spreadsheet_text(content: Optional[str]) -> Optional[SpreadsheetStructure]:
    """
    Parses the sheet/row text format into a `SpreadsheetStructure`.

    Rows are appended in the order they appear. Empty cell text becomes an
    empty cell. Text without any sheet marker becomes a single ``Sheet1``
    holding the whole text in A1.

    Returns:
        The structure, or None when `content` is empty.
    """
    if not content:
        return None

    sheets = []
    current: Optional[Sheet] = None

    for raw_line in content.split('\n'):
        line = raw_line.rstrip('\r')
        sheet_match = SHEET_MARKER_RE.match(line.strip())
        if sheet_match:
            if current is not None:
                sheets.append(current)
            current = Sheet(sheet_match.group(1).strip())
            continue

        row_match = ROW_RE.match(line)
        if row_match and current is not None:
            values = [v if v != "" else None for v in row_match.group(2).split('\t')]
            current.append_row(values)

    if current is not None:
        sheets.append(current)

    if not sheets:
        fallback = Sheet(DEFAULT_SHEET_NAME)
        fallback.append_row([content])
        sheets.append(fallback)

    return SpreadsheetStructure(sheets)


def format_spreadsheet_as_text(structure: SpreadsheetStructure) -> str:
    """Renders a structure back into the sheet/row text format."""
    lines = []
    for sheet in structure.sheets:
        lines.append(f"=== SHEET: {sheet.name} ===")
        for i, row in enumerate(sheet.rows):
            values = "\t".join(_cell_text(cell.value) for cell in row)
            lines.append(f"Row {i + 1}: {values}")
        lines.append("")
    return "\n".join(lines)


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def edit_value(edit: Any) -> Any:
    """Extracts the new cell value from a `UserEdit`, an edit dict or a bare scalar."""
    if isinstance(edit, UserEdit):
        return edit.content
    if isinstance(edit, dict) and 'content' in edit:
        return edit['content']
    return edit


def merge_cell_edits(
    structure: SpreadsheetStructure,
    cell_edits: Mapping[str, Any]
) -> SpreadsheetStructure:
    """
    Applies ``"Sheet:Ref" -> value`` edits onto a copy of `structure`.

    Cells outside the current grid are created by padding with empty cells.
    Keys with a malformed reference or an unknown sheet are skipped with a
    warning. The input structure is never modified.

    Args:
        structure: The parsed spreadsheet.
        cell_edits: Edits keyed by ``"SheetName:CellRef"``.

    Returns:
        A new structure with the edits applied.
    """
    if not cell_edits:
        return structure

    merged = structure.copy()
    applied = 0

    for cell_id, edit in cell_edits.items():
        try:
            sheet_name, cell_ref = split_cell_id(cell_id)
            position = from_address(cell_ref)
        except InvalidAddressError:
            logger.warning(f"Skipping cell edit with invalid id '{cell_id}'")
            continue

        sheet = merged.get_sheet(sheet_name)
        if sheet is None:
            logger.warning(f"Skipping cell edit '{cell_id}': sheet '{sheet_name}' not found")
            continue

        sheet.set_value(position.row_index, position.col_index, edit_value(edit))
        applied += 1
        logger.debug(f"Updated cell {sheet_name}!{cell_ref}")

    logger.info(f"Applied {applied}/{len(cell_edits)} cell edits")
    return merged


def merge_cell_edits_into_text(content: str, cell_edits: Mapping[str, Any]) -> str:
    """Parses `content`, applies the cell edits and renders the result as text."""
    if not content or not cell_edits:
        return content
    structure = parse_spreadsheet_text(content)
    return format_spreadsheet_as_text(merge_cell_edits(structure, cell_edits))


def is_cell_edit_key(key: str) -> bool:
    """True when `key` has the ``"Sheet:Ref"`` shape used for spreadsheet edits."""
    try:
        _, cell_ref = split_cell_id(key)
        from_address(cell_ref)
    except InvalidAddressError:
        return False
    return True


def split_edits(edits: Mapping[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Partitions a mixed edit map into ``{'fields': ..., 'cells': ...}``."""
    result: Dict[str, Dict[str, Any]] = {'fields': {}, 'cells': {}}
    for key, edit in edits.items():
        bucket = 'cells' if is_cell_edit_key(key) else 'fields'
        result[bucket][key] = edit
    return result
