from datetime import date

import pytest

from document_compiler.entities import (
    Entity, EntityType, format_entities_for_prompt, group_entities_by_type,
    normalize_attributes, parse_entities, search_entity
)
from document_compiler.exceptions import EntityAttributeError

# --- Test Fixtures ---

@pytest.fixture
def registry():
    return [
        Entity("person", "Mario Rossi", {"email": "mario@x.com", "age": 40}),
        Entity("company", "ACME S.p.A.", {"vat": "IT123", "listed": False}),
        Entity("address", "Sede", {"city": "Roma"}),
    ]

# --- Test Cases ---

def test_entity_normalizes_name_and_type():
    entity = Entity("person", "  Mario  ")
    assert entity.entity_type is EntityType.PERSON
    assert entity.entity_name == "Mario"
    assert entity.attributes == {}

def test_entity_rejects_empty_name_and_unknown_type():
    with pytest.raises(ValueError):
        Entity("person", "  ")
    with pytest.raises(ValueError):
        Entity("planet", "Mars")

def test_attributes_limited_to_scalars():
    assert normalize_attributes({"born": date(1980, 1, 2), "n": 1.5, "ok": True}) == {
        "born": "1980-01-02", "n": 1.5, "ok": True,
    }
    with pytest.raises(EntityAttributeError):
        normalize_attributes({"tags": ["a", "b"]})
    with pytest.raises(EntityAttributeError):
        Entity("other", "X", {"nested": {"a": 1}})

def test_round_trip_dict(registry):
    data = registry[0].to_dict()
    assert data == {
        'entity_type': 'person',
        'entity_name': 'Mario Rossi',
        'attributes': {"email": "mario@x.com", "age": 40},
    }
    assert Entity.from_dict(data).to_dict() == data

def test_parse_entities_skips_invalid_records():
    records = [
        {"entity_type": "person", "entity_name": "Anna"},
        {"entity_type": "person", "entity_name": ""},
        {"entity_type": "company", "entity_name": "Bad", "attributes": {"x": [1]}},
    ]
    entities = parse_entities(records)
    assert [e.entity_name for e in entities] == ["Anna"]

def test_group_entities_by_type(registry):
    groups = group_entities_by_type(registry)
    assert set(groups) == {"person", "company", "date", "address", "other"}
    assert [e.entity_name for e in groups["company"]] == ["ACME S.p.A."]
    assert groups["date"] == []

def test_search_entity(registry):
    assert search_entity(registry, "rossi").entity_name == "Mario Rossi"
    assert search_entity(registry, "roma").entity_name == "Sede"
    assert search_entity(registry, "nobody") is None
    assert search_entity(registry, "  ") is None

def test_format_entities_for_prompt(registry):
    text = format_entities_for_prompt(registry[:2])
    assert text == (
        "- [person] Mario Rossi\n"
        "    email: mario@x.com\n"
        "    age: 40\n"
        "- [company] ACME S.p.A.\n"
        "    vat: IT123\n"
        "    listed: False"
    )
    assert format_entities_for_prompt([]) == ""
