"""
Entity registry records injected into the compilation prompt.

Entities (people, companies, dates, addresses) are opaque context for the
model. The only validation done here is at the boundary: attribute values
must be strings, numbers or booleans.
"""
import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .exceptions import EntityAttributeError
from .models import Scalar, normalize_scalar

logger = logging.getLogger(__name__)


class EntityType(Enum):
    PERSON = "person"
    COMPANY = "company"
    DATE = "date"
    ADDRESS = "address"
    OTHER = "other"


def normalize_attributes(attributes: Optional[Mapping[str, Any]]) -> Dict[str, Scalar]:
    """
    Validates an attribute bag against the scalar union.

    Raises:
        EntityAttributeError: If any value is nested (list, dict, object).
    """
    if not attributes:
        return {}
    return {str(key): normalize_scalar(value, key=str(key)) for key, value in attributes.items()}


class Entity:
    """
    One entity registry record.

    Attributes:
        entity_type (EntityType): Kind of entity.
        entity_name (str): Display name, never empty.
        attributes (Dict[str, Scalar]): Flat attribute bag.
    """

    def __init__(self, entity_type: str, entity_name: str, attributes: Optional[Mapping[str, Any]] = None):
        if not entity_name or not str(entity_name).strip():
            raise ValueError("Entity name must not be empty")
        self.entity_type = EntityType(entity_type)
        self.entity_name = str(entity_name).strip()
        self.attributes = normalize_attributes(attributes)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Entity':
        return cls(data.get('entity_type'), data.get('entity_name'), data.get('attributes'))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'entity_type': self.entity_type.value,
            'entity_name': self.entity_name,
            'attributes': dict(self.attributes),
        }

    def __repr__(self):
        return f"Entity({self.entity_type.value!r}, {self.entity_name!r})"


def parse_entities(records: Iterable[Mapping[str, Any]]) -> List[Entity]:
    """Builds entities from raw records, dropping (and logging) invalid ones."""
    entities = []
    for record in records or []:
        try:
            entities.append(Entity.from_dict(record))
        except (ValueError, EntityAttributeError) as e:
            logger.warning(f"Skipping invalid entity record {record.get('entity_name')!r}: {e}")
    return entities


def group_entities_by_type(entities: Iterable[Entity]) -> Dict[str, List[Entity]]:
    groups: Dict[str, List[Entity]] = {t.value: [] for t in EntityType}
    for entity in entities:
        groups[entity.entity_type.value].append(entity)
    return groups


def search_entity(entities: Iterable[Entity], search_term: str) -> Optional[Entity]:
    """First entity whose name or any string attribute contains `search_term` (case-insensitive)."""
    term = (search_term or "").strip().lower()
    if not term:
        return None
    for entity in entities:
        if term in entity.entity_name.lower():
            return entity
        for value in entity.attributes.values():
            if isinstance(value, str) and term in value.lower():
                return entity
    return None


def format_entities_for_prompt(entities: Iterable[Entity]) -> str:
    """Renders the registry as plain text for the model, one entity per block."""
    blocks = []
    for entity in entities:
        lines = [f"- [{entity.entity_type.value}] {entity.entity_name}"]
        for key, value in entity.attributes.items():
            if value is None or value == "":
                continue
            lines.append(f"    {key}: {value}")
        blocks.append("\n".join(lines))
    return "\n".join(blocks)
