import json
import os

import pytest

from document_compiler.exceptions import StorageError
from document_compiler.models import DocumentField, DocumentStructure, UserEdit
from document_compiler.snapshot_store import SnapshotStore

# --- Test Fixtures ---

@pytest.fixture
def store(tmp_path):
    return SnapshotStore("cv/2024 draft", snapshot_dir=str(tmp_path / "snapshots"))

# --- Test Cases ---

def test_session_id_is_sanitized_for_file_name(store, tmp_path):
    assert store.path == os.path.join(str(tmp_path / "snapshots"), "cv_2024_draft.session.json")

def test_nothing_saved_yet(store):
    assert store.load_snapshot() is None
    assert store.load_compiled_content() is None
    assert store.load_document_structure() is None
    assert store.load_user_edits() == {}

def test_intermediate_then_final(store):
    store.save_intermediate_snapshot("Nome: {{name}}")
    assert store.load_compiled_content() == "Nome: {{name}}"

    store.save_final_snapshot("Nome: Mario")
    data = store.load_snapshot()
    assert data['compiled_content'] == "Nome: Mario"
    assert data['current_compiled_content'] == "Nome: Mario"
    assert data['session_id'] == "cv/2024 draft"

def test_final_snapshot_preferred_over_later_intermediate(store):
    store.save_final_snapshot("Nome: Mario")
    store.save_intermediate_snapshot("Nome: Ma")
    assert store.load_compiled_content() == "Nome: Mario"

def test_structure_round_trip(store):
    structure = DocumentStructure([DocumentField("field-1", "Nome", "Mario")])
    store.save_document_structure(structure)
    loaded = store.load_document_structure()
    assert loaded.fields == structure.fields

def test_user_edits_round_trip_keeps_cell_values(store):
    store.save_user_edits({
        "field-1": UserEdit("field-1", "Luigi", "2024-05-01T10:00:00+00:00"),
        "Sheet1:B2": 42,
    })
    edits = store.load_user_edits()
    assert edits["field-1"] == UserEdit("field-1", "Luigi", "2024-05-01T10:00:00+00:00")
    assert edits["Sheet1:B2"] == 42

def test_saves_keep_other_keys(store):
    store.save_user_edits({"field-1": UserEdit("field-1", "Luigi")})
    store.save_intermediate_snapshot("body")
    assert "field-1" in store.load_user_edits()

def test_corrupt_file_raises_storage_error(store):
    os.makedirs(store.snapshot_dir, exist_ok=True)
    with open(store.path, 'w', encoding='utf-8') as f:
        f.write("{not json")
    with pytest.raises(StorageError):
        store.load_snapshot()
    with pytest.raises(StorageError):
        store.save_intermediate_snapshot("body")

def test_unserializable_edit_raises_storage_error(store):
    with pytest.raises(StorageError):
        store.save_user_edits({"Sheet1:A1": object()})
    assert not os.path.exists(store.path)

def test_delete(store):
    assert store.delete() is False
    store.save_intermediate_snapshot("body")
    assert store.delete() is True
    assert store.load_snapshot() is None

def test_file_is_plain_json(store):
    store.save_final_snapshot("Città: Roma")
    with open(store.path, encoding='utf-8') as f:
        assert json.load(f)['compiled_content'] == "Città: Roma"
