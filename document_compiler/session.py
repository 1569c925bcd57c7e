"""
Per-document session state: the latest compiled snapshot, the structure user
edits were recorded against, the edits themselves and a merged-content cache.
"""
import logging
from typing import Any, Dict, Optional

from .document_merge import coerce_structure, merge_user_edits
from .models import DocumentStructure, MergeResult, SpreadsheetStructure, UserEdit
from .snapshot_store import SnapshotStore
from .spreadsheet import merge_cell_edits, parse_spreadsheet_text
from .structure_parser import parse_document_structure

logger = logging.getLogger(__name__)


class MergedContentCache:
    """
    Holds the last merge result for one session.

    Every mutation of the compiled content or the edits must call
    `invalidate()`; `version` increases on each invalidation so readers can
    tell whether a result they hold is stale.
    """

    def __init__(self):
        self._result: Optional[MergeResult] = None
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    def get(self) -> Optional[MergeResult]:
        return self._result

    def store(self, result: MergeResult) -> None:
        self._result = result

    def invalidate(self) -> None:
        self._result = None
        self._version += 1
        logger.debug(f"Merged content cache invalidated (version {self._version})")


class DocumentSession:
    """
    State of one document being compiled and edited.

    Attributes:
        session_id (str): Identifier, also used as the snapshot file name.
        compiled_content (str): Latest compiled snapshot.
        document_structure (Optional[DocumentStructure]): Structure the edits
            were recorded against. Captured from the compiled content on the
            first edit and kept across recompilations.
        user_edits (Dict[str, UserEdit]): Document edits by field id.
        cell_edits (Dict[str, Any]): Spreadsheet edits by ``"Sheet:Ref"``.
    """

    def __init__(
        self,
        session_id: str,
        compiled_content: str = "",
        document_structure: Optional[DocumentStructure] = None,
        store: Optional[SnapshotStore] = None,
        require_unique_match: bool = False
    ):
        self.session_id = session_id
        self.compiled_content = compiled_content or ""
        self.document_structure = document_structure
        self.store = store
        self.require_unique_match = require_unique_match
        self.user_edits: Dict[str, UserEdit] = {}
        self.cell_edits: Dict[str, Any] = {}
        self.cache = MergedContentCache()

    @classmethod
    def from_config(cls, session_id: str, config: Dict[str, Any]) -> 'DocumentSession':
        """Creates a session backed by the configured snapshot directory, restoring saved state."""
        store = SnapshotStore(session_id, config.get('storage', {}).get('snapshot_dir', 'snapshots'))
        require_unique = config.get('merge', {}).get('require_unique_match', False)
        return cls.load_from(store, require_unique_match=require_unique)

    @classmethod
    def load_from(cls, store: SnapshotStore, require_unique_match: bool = False) -> 'DocumentSession':
        session = cls(
            store.session_id,
            compiled_content=store.load_compiled_content() or "",
            document_structure=store.load_document_structure(),
            store=store,
            require_unique_match=require_unique_match,
        )
        for key, edit in store.load_user_edits().items():
            if isinstance(edit, UserEdit):
                session.user_edits[key] = edit
            else:
                session.cell_edits[key] = edit
        logger.info(f"Loaded session {store.session_id}: {len(session.user_edits)} edits, "
                    f"{len(session.cell_edits)} cell edits")
        return session

    def save(self) -> None:
        """Writes structure and edits to the snapshot store, if one is attached."""
        if self.store is None:
            return
        if self.document_structure is not None:
            self.store.save_document_structure(self.document_structure)
        edits: Dict[str, Any] = dict(self.user_edits)
        edits.update(self.cell_edits)
        self.store.save_user_edits(edits)

    def capture_structure(self) -> DocumentStructure:
        """Parses the current compiled content and records it as the edit baseline."""
        self.document_structure = parse_document_structure(self.compiled_content)
        self.cache.invalidate()
        return self.document_structure

    def update_compiled_content(self, content: str) -> None:
        """Replaces the compiled snapshot. Existing edits are replayed on it by the next merge."""
        self.compiled_content = content or ""
        self.cache.invalidate()

    def update_user_edit(self, field_id: str, content: str, user_id: Optional[str] = None) -> UserEdit:
        if self.document_structure is None and self.compiled_content:
            self.capture_structure()
        edit = UserEdit.create(field_id, content, user_id=user_id)
        self.user_edits[field_id] = edit
        self.cache.invalidate()
        return edit

    def remove_user_edit(self, field_id: str) -> bool:
        if self.user_edits.pop(field_id, None) is None:
            return False
        self.cache.invalidate()
        return True

    def clear_user_edits(self) -> None:
        self.user_edits.clear()
        self.cell_edits.clear()
        self.cache.invalidate()

    def update_cell_edit(self, cell_id: str, value: Any) -> None:
        self.cell_edits[cell_id] = value
        self.cache.invalidate()

    def get_merged_content(self) -> MergeResult:
        """The compiled content with user edits applied. Cached until the next mutation."""
        cached = self.cache.get()
        if cached is not None:
            return cached
        result = merge_user_edits(
            self.compiled_content,
            self.user_edits,
            coerce_structure(self.document_structure),
            require_unique_match=self.require_unique_match,
        )
        self.cache.store(result)
        return result

    def get_merged_spreadsheet(self) -> Optional[SpreadsheetStructure]:
        """Merged text parsed as a spreadsheet, with cell edits applied on top."""
        structure = parse_spreadsheet_text(self.get_merged_content().merged_content)
        if structure is None:
            return None
        return merge_cell_edits(structure, self.cell_edits)

    def get_field_content(self, field_id: str) -> Optional[str]:
        """Current text of a field: the user's edit if any, otherwise the parsed text."""
        edit = self.user_edits.get(field_id)
        if edit is not None:
            return edit.content
        if self.document_structure is None:
            return None
        field = self.document_structure.get_field(field_id)
        return field.compiled_content if field else None
