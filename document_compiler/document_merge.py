"""
Reconciles user edits with a freshly compiled document.

Edits are recorded against the fields of one compiled snapshot and replayed
onto a later, independently regenerated snapshot. A field whose original text
can no longer be found is skipped rather than guessed at, and any failure
inside the merge returns the compiled text untouched.
"""
import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .models import DocumentStructure, MergeResult, UserEdit
from .structure_parser import PatternCatalogue, parse_document_structure

logger = logging.getLogger(__name__)

StructureLike = Union[DocumentStructure, Dict[str, Any], List[Dict[str, Any]], None]


def coerce_edit(field_id: str, value: Any) -> Optional[UserEdit]:
    """Normalizes a stored edit (UserEdit, dict or bare string) into a `UserEdit`."""
    if value is None:
        return None
    if isinstance(value, UserEdit):
        return value
    if isinstance(value, dict):
        return UserEdit.from_dict(value, field_id=field_id)
    return UserEdit(field_id, str(value))


def coerce_structure(structure: StructureLike) -> Optional[DocumentStructure]:
    if structure is None or isinstance(structure, DocumentStructure):
        return structure
    return DocumentStructure.from_dict(structure)


def merge_user_edits(
    compiled_content: str,
    user_edits: Optional[Mapping[str, Any]],
    document_structure: StructureLike = None,
    require_unique_match: bool = False,
    catalogue: Optional[PatternCatalogue] = None
) -> MergeResult:
    """
    Applies user edits onto compiled content.

    Structured mode replaces, for every editable field with a differing edit,
    the first occurrence of the field's parsed text with the edit's content.
    Fields are processed in parse order and each replacement is visible to the
    lookups that follow. A field whose text is no longer present is skipped.
    With no fields at all, the most recent edit replaces the whole document.

    This function never raises: on any internal failure it returns the
    compiled content unchanged with zero edits applied.

    Args:
        compiled_content: The latest compiled document text.
        user_edits: Edits keyed by field id.
        document_structure: Structure the edits were recorded against. Parsed
            from `compiled_content` when omitted.
        require_unique_match: Skip edits whose target text occurs more than once.
        catalogue: Patterns used when the structure has to be parsed.

    Returns:
        The merge result.
    """
    if not compiled_content or not compiled_content.strip():
        logger.warning("Compiled content is empty, returning original")
        return MergeResult(compiled_content, 0, 0)

    if not user_edits:
        return MergeResult(compiled_content, 0, 0)

    try:
        structure = coerce_structure(document_structure)
        if structure is None:
            structure = parse_document_structure(compiled_content, catalogue)

        if not structure.fields:
            logger.info("No document structure found, treating as single field")
            return _merge_as_single_field(compiled_content, user_edits)

        logger.info(f"Merging user edits with structured document ({structure.total_fields} fields)")
        return _merge_using_structure(compiled_content, user_edits, structure, require_unique_match)
    except Exception as e:
        logger.error(f"Error merging user edits, returning compiled content unchanged: {e}", exc_info=True)
        return MergeResult(compiled_content, 0, 0)


def _merge_using_structure(
    compiled_content: str,
    user_edits: Mapping[str, Any],
    structure: DocumentStructure,
    require_unique_match: bool
) -> MergeResult:
    merged = compiled_content
    applied = 0
    editable_fields = structure.editable_fields

    for field in editable_fields:
        edit = coerce_edit(field.id, user_edits.get(field.id))
        if edit is None or edit.content is None or not field.compiled_content:
            continue

        new_content = str(edit.content)
        if new_content == field.compiled_content:
            continue

        pattern = re.compile(re.escape(field.compiled_content))
        occurrences = len(pattern.findall(merged))
        if occurrences == 0:
            logger.warning(f"Field '{field.label}' not found in compiled content, edit skipped")
            continue
        if require_unique_match and occurrences > 1:
            logger.warning(f"Field '{field.label}' matches {occurrences} places in compiled content, edit skipped")
            continue

        # A function replacement keeps backslashes in the edit literal
        merged = pattern.sub(lambda _m: new_content, merged, count=1)
        applied += 1
        logger.debug(f"Applied edit to field '{field.label}'")

    logger.info(f"Merged {applied}/{len(editable_fields)} fields")
    return MergeResult(merged, applied, len(editable_fields))


def _merge_as_single_field(compiled_content: str, user_edits: Mapping[str, Any]) -> MergeResult:
    latest: Optional[UserEdit] = None
    for field_id, value in user_edits.items():
        edit = coerce_edit(field_id, value)
        if edit is None:
            continue
        if latest is None or _is_newer(edit, latest):
            latest = edit

    if latest is not None and latest.content:
        logger.info("Applied single-field edit")
        return MergeResult(str(latest.content), 1, 1)

    return MergeResult(compiled_content, 0, 1)


def _is_newer(candidate: UserEdit, current: UserEdit) -> bool:
    # Strictly newer only, so earlier entries win ties
    candidate_ts, current_ts = candidate.timestamp_value, current.timestamp_value
    if candidate_ts is None:
        return False
    if current_ts is None:
        return True
    return candidate_ts > current_ts


def validate_user_edits(
    compiled_content: str,
    user_edits: Optional[Mapping[str, Any]],
    document_structure: StructureLike = None
) -> Tuple[bool, List[str]]:
    """
    Checks whether each edited field can still be located in `compiled_content`.

    Returns:
        ``(is_valid, errors)`` where errors name the fields that cannot be found.
    """
    errors: List[str] = []

    if not compiled_content:
        errors.append("Compiled content is empty")

    if not user_edits:
        return not errors, errors

    structure = coerce_structure(document_structure)
    if structure is None:
        structure = parse_document_structure(compiled_content or "")

    for field in structure.fields:
        if field.id in user_edits and field.compiled_content:
            if field.compiled_content not in (compiled_content or ""):
                errors.append(f"Field '{field.label}' content not found in compiled document")

    return not errors, errors


def get_merge_stats(result: MergeResult) -> Dict[str, Any]:
    """Summary of a merge for logs and status lines."""
    percentage = round(result.applied_edits / result.total_fields * 100) if result.total_fields > 0 else 0
    return {
        'total_applied': result.applied_edits,
        'total_fields': result.total_fields,
        'percentage': percentage,
        'content_changed': result.has_user_edits,
    }
