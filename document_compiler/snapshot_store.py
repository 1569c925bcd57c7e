"""
File-backed persistence for compilation sessions.

Stores, per document session, the latest intermediate snapshot written while
the model is streaming, the final compiled snapshot, the parsed document
structure and the user's edits, so a session can be resumed after an
interruption.
"""

import os
import json
import logging
import time
from typing import Dict, Any, Mapping, Optional

from .exceptions import StorageError
from .models import DocumentStructure, UserEdit

logger = logging.getLogger(__name__)


class SnapshotStore:
    """
    Persists the state of one document session as a JSON file.

    The controller only needs `save_intermediate_snapshot` and
    `save_final_snapshot`; the remaining methods serve the preview and
    download paths.
    """

    def __init__(self, session_id: str, snapshot_dir: str = "snapshots"):
        """
        Initialize the store.

        Args:
            session_id: Identifier of the document session.
            snapshot_dir: Directory holding the session files. Created on first use.
        """
        self.session_id = session_id
        self.snapshot_dir = os.path.abspath(snapshot_dir)
        safe_id = "".join([c if c.isalnum() or c in "-_" else "_" for c in session_id])
        self.path = os.path.join(self.snapshot_dir, f"{safe_id}.session.json")

    def _read(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read session file {self.path}: {e}") from e

    def _update(self, **changes: Any) -> None:
        data = self._read()
        data.update(changes)
        data['session_id'] = self.session_id
        data['updated_at'] = time.time()

        try:
            os.makedirs(self.snapshot_dir, exist_ok=True)
            tmp_path = self.path + ".tmp"
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Failed to write session file {self.path}: {e}") from e

    def save_intermediate_snapshot(self, body: str) -> None:
        """Records the document body as streamed so far."""
        self._update(current_compiled_content=body)
        logger.debug(f"Saved intermediate snapshot for session {self.session_id} ({len(body)} chars)")

    def save_final_snapshot(self, body: str) -> None:
        """Records the authoritative compiled snapshot."""
        self._update(compiled_content=body, current_compiled_content=body)
        logger.info(f"Saved final snapshot for session {self.session_id}")

    def save_document_structure(self, structure: DocumentStructure) -> None:
        self._update(document_structure=structure.to_dict())

    def save_user_edits(self, user_edits: Mapping[str, Any]) -> None:
        """Replaces all stored edits. Values may be `UserEdit` objects or plain cell values."""
        serialized = {
            key: edit.to_dict() if isinstance(edit, UserEdit) else edit
            for key, edit in user_edits.items()
        }
        self._update(user_edits=serialized)

    def load_snapshot(self) -> Optional[Dict[str, Any]]:
        """The stored session data, or None when nothing has been saved yet."""
        data = self._read()
        return data or None

    def load_compiled_content(self) -> Optional[str]:
        """Final snapshot if present, otherwise the latest intermediate one."""
        data = self._read()
        return data.get('compiled_content') or data.get('current_compiled_content')

    def load_document_structure(self) -> Optional[DocumentStructure]:
        stored = self._read().get('document_structure')
        return DocumentStructure.from_dict(stored) if stored else None

    def load_user_edits(self) -> Dict[str, Any]:
        """Stored edits; dict entries that carry `content` come back as `UserEdit`."""
        edits = {}
        for key, value in (self._read().get('user_edits') or {}).items():
            if isinstance(value, dict) and 'content' in value:
                edits[key] = UserEdit.from_dict(value, field_id=key)
            else:
                edits[key] = value
        return edits

    def delete(self) -> bool:
        """Removes the session file. Returns True when a file was deleted."""
        try:
            if os.path.exists(self.path):
                os.remove(self.path)
                logger.info(f"Deleted session file: {self.path}")
                return True
            return False
        except OSError as e:
            logger.warning(f"Failed to delete session file {self.path}: {e}")
            return False
