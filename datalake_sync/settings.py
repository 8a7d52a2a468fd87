"""
Entity settings provider.

Loads the `dataLake.entities` section of the settings document once per
process and answers lookups by entity name.
"""

import json
from typing import Any, Dict, Iterable, Iterator, List, Optional

from pydantic import ValidationError as PydanticValidationError

from datalake_sync.errors import ConfigurationError
from datalake_sync.models import EntitySettings
from datalake_sync.utils.naming import kebab_case


class EntitySettingsProvider:
    """Read-only, name-keyed view of the configured entities."""

    def __init__(self, entities: Iterable[EntitySettings]):
        self._entities: Dict[str, EntitySettings] = {}
        for entity in entities:
            if entity.name in self._entities:
                raise ConfigurationError(f"Entity '{entity.name}' is configured more than once")
            self._entities[entity.name] = entity

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "EntitySettingsProvider":
        """
        Build the provider from an already parsed settings document.

        Args:
            document: Settings document containing `dataLake.entities`

        Raises:
            ConfigurationError: If the section is missing or an entity is invalid.
        """
        entities = (document.get("dataLake") or {}).get("entities")
        if not entities:
            raise ConfigurationError("dataLake.entities is required in settings file")

        try:
            return cls(EntitySettings.model_validate(entity) for entity in entities)
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid dataLake entity settings: {e}") from e

    @classmethod
    def from_file(cls, path: str) -> "EntitySettingsProvider":
        """Load the provider from a JSON settings file."""
        try:
            with open(path, "r") as f:
                document = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Unable to read settings file {path}: {e}") from e
        return cls.from_document(document)

    def get(self, entity: str) -> Optional[EntitySettings]:
        return self._entities.get(kebab_case(entity))

    @property
    def names(self) -> List[str]:
        return list(self._entities)

    def __iter__(self) -> Iterator[EntitySettings]:
        return iter(self._entities.values())
