"""Ontology configuration and persisted-state formats.

`OntologyConfig` is the immutable snapshot a session's ontology store is
built from. The JSON schemas below describe the on-disk/wire formats and
are used to validate configs and saved sessions before they are loaded.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from jsonschema import ValidationError as SchemaValidationError
from jsonschema import validate as json_validate

from mcr.utils.exceptions import ConfigError

_NAME_LIST = {"type": "array", "items": {"type": "string"}}

ONTOLOGY_CONFIG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "types": _NAME_LIST,
        "relationships": _NAME_LIST,
        "constraints": _NAME_LIST,
        "synonyms": {
            "type": "object",
            "additionalProperties": {"type": "string"}
        }
    },
    "additionalProperties": True
}

SESSION_STATE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "sessionId": {"type": "string", "minLength": 1},
        "program": {"type": "array", "items": {"type": "string"}},
        "ontology": ONTOLOGY_CONFIG_SCHEMA
    },
    "required": ["sessionId", "program", "ontology"]
}


def _unique(names: Iterable[str]) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(names))


@dataclass(frozen=True)
class OntologyConfig:
    """Types, relationships, constraints and synonyms of one ontology."""
    types: Tuple[str, ...] = ()
    relationships: Tuple[str, ...] = ()
    constraints: Tuple[str, ...] = ()
    synonyms: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self):
        object.__setattr__(self, "types", _unique(self.types))
        object.__setattr__(self, "relationships", _unique(self.relationships))
        object.__setattr__(self, "constraints", _unique(self.constraints))
        object.__setattr__(self, "synonyms", MappingProxyType(dict(self.synonyms)))

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'OntologyConfig':
        """Build a config from the JSON format.

        Args:
            data: {types, relationships, constraints, synonyms}; missing
                sections are empty

        Raises:
            ConfigError: If the data does not match the ontology format
        """
        if data is None:
            return cls()
        if isinstance(data, OntologyConfig):
            return data
        try:
            json_validate(instance=data, schema=ONTOLOGY_CONFIG_SCHEMA)
        except SchemaValidationError as e:
            raise ConfigError(f"Invalid ontology configuration: {e.message}")
        return cls(
            types=tuple(data.get("types", [])),
            relationships=tuple(data.get("relationships", [])),
            constraints=tuple(data.get("constraints", [])),
            synonyms=dict(data.get("synonyms", {}))
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "types": list(self.types),
            "relationships": list(self.relationships),
            "constraints": list(self.constraints),
            "synonyms": dict(self.synonyms)
        }


def validate_session_state(data: Dict[str, Any]) -> None:
    """Check a saved session against the persisted-state format.

    Raises:
        ConfigError: If required fields are missing or mistyped
    """
    try:
        json_validate(instance=data, schema=SESSION_STATE_SCHEMA)
    except SchemaValidationError as e:
        raise ConfigError(f"Invalid session state: {e.message}")
