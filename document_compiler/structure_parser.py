"""
Parses compiled document text into an ordered list of fields and sections.

Lines are classified against a `PatternCatalogue`, an ordered list of
(pattern, kind) pairs. Within each kind the first pattern that matches a line
wins, so catalogue order matters and is part of the parser's contract.
"""
import logging
import re
from enum import Enum
from typing import Iterable, List, Optional, Pattern, Tuple, Union

from .models import DocumentField, DocumentStructure

logger = logging.getLogger(__name__)

FALLBACK_FIELD_ID = "text-content"
FALLBACK_FIELD_LABEL = "Document Content"


class PatternKind(Enum):
    """What a catalogue pattern detects."""
    SECTION = "section"
    FIELD = "field"


#: Bilingual (Italian/English) section headers, in priority order.
DEFAULT_SECTION_PATTERNS = [
    r"^(Dati Personali|Personal Information)",
    r"^(Informazioni di Contatto|Contact Information)",
    r"^(Informazioni Professionali|Professional Information)",
    r"^(Educazione|Education)",
    r"^(Esperienza|Experience)",
    r"^(Competenze|Skills)",
]

#: Bilingual labelled fields, in priority order. Group 1 is the label, group 2 the value.
DEFAULT_FIELD_PATTERNS = [
    r"^(Nome|Name):\s*(.+)$",
    r"^(Cognome|Surname):\s*(.+)$",
    r"^(Data di nascita|Birth Date):\s*(.+)$",
    r"^(Luogo di nascita|Birth Place):\s*(.+)$",
    r"^(Indirizzo|Address):\s*(.+)$",
    r"^(Città|City):\s*(.+)$",
    r"^(CAP|Postal Code):\s*(.+)$",
    r"^(Telefono|Phone):\s*(.+)$",
    r"^(Email):\s*(.+)$",
    r"^(Codice Fiscale|Tax Code):\s*(.+)$",
    r"^(Partita IVA|VAT Number):\s*(.+)$",
    r"^(Professione|Profession):\s*(.+)$",
    r"^(Azienda|Company):\s*(.+)$",
    r"^(Ruolo|Role):\s*(.+)$",
    r"^(Stipendio|Salary):\s*(.+)$",
    r"^(Contratto|Contract):\s*(.+)$",
]


class PatternCatalogue:
    """
    Ordered (pattern, kind) pairs used to classify document lines.

    Patterns are compiled case-insensitively. Field patterns must expose two
    groups: the label and the value.
    """

    def __init__(self, entries: Iterable[Tuple[Union[str, Pattern], PatternKind]]):
        self.entries: List[Tuple[Pattern, PatternKind]] = []
        for pattern, kind in entries:
            self.add(pattern, kind)

    @classmethod
    def default(cls) -> 'PatternCatalogue':
        entries = [(p, PatternKind.SECTION) for p in DEFAULT_SECTION_PATTERNS]
        entries += [(p, PatternKind.FIELD) for p in DEFAULT_FIELD_PATTERNS]
        return cls(entries)

    def add(self, pattern: Union[str, Pattern], kind: PatternKind) -> None:
        """Appends a pattern at the lowest priority for its kind."""
        compiled = re.compile(pattern, re.IGNORECASE) if isinstance(pattern, str) else pattern
        if kind is PatternKind.FIELD and compiled.groups < 2:
            raise ValueError(f"Field pattern {compiled.pattern!r} needs a label group and a value group")
        self.entries.append((compiled, PatternKind(kind)))

    def patterns(self, kind: PatternKind) -> List[Pattern]:
        return [p for p, k in self.entries if k is kind]

    def match_section(self, line: str) -> Optional[re.Match]:
        return _first_match(self.patterns(PatternKind.SECTION), line)

    def match_field(self, line: str) -> Optional[re.Match]:
        return _first_match(self.patterns(PatternKind.FIELD), line)

    def __len__(self):
        return len(self.entries)


DEFAULT_CATALOGUE = PatternCatalogue.default()


def _first_match(patterns: List[Pattern], line: str) -> Optional[re.Match]:
    for pattern in patterns:
        match = pattern.search(line)
        if match:
            return match
    return None


def parse_document_structure(
    content: str,
    catalogue: Optional[PatternCatalogue] = None
) -> DocumentStructure:
    """
    Converts flat compiled text into an ordered list of fields.

    - A section header closes the open field and is emitted as a section.
    - A labelled line closes the open field and opens a new one whose content
      starts at the captured value.
    - Any other non-empty line extends the open field, or is dropped when
      no field is open.
    - Empty lines are skipped.

    A field's content is sliced from `content` itself, from the start of its
    value to the end of its last continuation line, so line endings and
    indentation inside it are kept and it is always a substring of the input.

    When nothing matches, the whole text becomes a single "Document Content"
    field. Ids come from one counter shared by both kinds
    (``field-1``, ``section-2``, ...) and are only stable within one call.

    Args:
        content: The compiled document text.
        catalogue: Patterns to classify lines with. Defaults to `DEFAULT_CATALOGUE`.

    Returns:
        The parsed structure. Empty when `content` is blank.
    """
    if not content or not content.strip():
        return DocumentStructure([])

    catalogue = catalogue or DEFAULT_CATALOGUE
    fields: List[DocumentField] = []
    # (field, value start offset, value end offset) of the field being extended
    current: Optional[Tuple[DocumentField, int, int]] = None
    counter = 1

    def close_current():
        field, start, end = current
        field.compiled_content = content[start:end].strip()
        fields.append(field)

    offset = 0
    for raw_line in content.split('\n'):
        line_start = offset
        offset += len(raw_line) + 1
        line = raw_line.strip()
        if not line:
            continue
        start = line_start + len(raw_line) - len(raw_line.lstrip())
        end = start + len(line)

        if catalogue.match_section(line):
            if current is not None:
                close_current()
                current = None
            fields.append(DocumentField(
                id=f"section-{counter}",
                label=line,
                compiled_content=line,
                is_section=True,
            ))
            counter += 1
            continue

        match = catalogue.match_field(line)
        if match:
            if current is not None:
                close_current()
            value_start = start + match.start(2) if match.start(2) >= 0 else end
            current = (
                DocumentField(id=f"field-{counter}", label=match.group(1), compiled_content=""),
                value_start,
                end,
            )
            counter += 1
        elif current is not None:
            current = (current[0], current[1], end)

    if current is not None:
        close_current()

    if not fields:
        fields.append(DocumentField(
            id=FALLBACK_FIELD_ID,
            label=FALLBACK_FIELD_LABEL,
            compiled_content=content,
        ))

    logger.debug(f"Parsed document structure with {len(fields)} fields")
    return DocumentStructure(fields)
