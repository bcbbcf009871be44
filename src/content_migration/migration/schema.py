"""Component schema catalog.

The catalog tells the remapper which fields of a component carry
references. It is built from the component files written by a components
pull: either one JSON file per component or a single file holding an array
of components.
"""

import json
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from content_migration.client.exceptions import ConfigurationError, FileSystemError
from content_migration.utils.logging import get_logger

logger = get_logger(__name__)

LOCALE_SUFFIX = re.compile(r"__i18n__.*")


class FieldKind(str, Enum):
    """Field types that may hold references to other entities."""

    ASSET = "asset"
    MULTIASSET = "multiasset"
    MULTILINK = "multilink"
    BLOKS = "bloks"
    RICHTEXT = "richtext"
    OPTIONS = "options"

    @classmethod
    def from_type(cls, field_type: str | None) -> "FieldKind | None":
        try:
            return cls(field_type)
        except ValueError:
            return None


@dataclass(frozen=True)
class FieldSchema:
    """Schema entry of one component field.

    Attributes:
        type: Declared field type (``bloks``, ``asset``, ``custom``, ...)
        source: Options source, e.g. ``internal_stories``
        field_type: Plugin name for ``custom`` fields
    """

    type: str
    source: str | None = None
    field_type: str | None = None

    @property
    def kind(self) -> FieldKind | None:
        return FieldKind.from_type(self.type)

    @property
    def is_opaque(self) -> bool:
        """Custom plugin fields whose references cannot be inspected."""
        return self.type == "custom"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FieldSchema":
        return cls(
            type=str(data.get("type", "")),
            source=data.get("source"),
            field_type=data.get("field_type"),
        )


class SchemaCatalog:
    """Lookup of component name to field name to :class:`FieldSchema`."""

    def __init__(self, components: dict[str, dict[str, FieldSchema]] | None = None):
        self._components = components or {}

    @classmethod
    def from_components(cls, components: list[dict[str, Any]]) -> "SchemaCatalog":
        """Build a catalog from component definitions (``name`` + ``schema``)."""
        catalog: dict[str, dict[str, FieldSchema]] = {}
        for component in components:
            schema = component.get("schema") or {}
            catalog[component["name"]] = {
                field_name: FieldSchema.from_dict(definition)
                for field_name, definition in schema.items()
                if isinstance(definition, dict)
            }
        return cls(catalog)

    def __contains__(self, component: str) -> bool:
        return component in self._components

    def __len__(self) -> int:
        return len(self._components)

    def fields(self, component: str) -> dict[str, FieldSchema] | None:
        """Return the field schemas of ``component``, or None if unknown."""
        return self._components.get(component)

    def field(self, component: str, field_name: str) -> FieldSchema | None:
        """Resolve a field, mapping locale variants to their base field."""
        fields = self._components.get(component)
        if fields is None:
            return None
        return fields.get(LOCALE_SUFFIX.sub("", field_name))


def _is_component(candidate: Any) -> bool:
    return (
        isinstance(candidate, dict)
        and isinstance(candidate.get("name"), str)
        and isinstance(candidate.get("schema"), dict)
    )


def find_component_schemas(directory: str | Path) -> SchemaCatalog:
    """Load every component definition found in ``directory``.

    A missing directory yields an empty catalog.

    Raises:
        FileSystemError: If the directory or a file cannot be read
        ConfigurationError: If a component file is not valid JSON
    """
    directory = Path(directory)
    if not directory.exists():
        logger.info("components_directory_missing", directory=str(directory))
        return SchemaCatalog()

    components: list[dict[str, Any]] = []
    try:
        files = sorted(p for p in directory.iterdir() if p.suffix == ".json")
        for path in files:
            try:
                content = json.loads(path.read_text(encoding="utf-8"))
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Invalid component file {path}: {e}") from e

            # One file may hold every component of the space
            candidates = content if isinstance(content, list) else [content]
            components.extend(c for c in candidates if _is_component(c))
    except OSError as e:
        raise FileSystemError.from_os_error("read component schemas", e) from e

    catalog = SchemaCatalog.from_components(components)
    logger.info("component_schemas_loaded", directory=str(directory), components=len(catalog))
    return catalog
