"""Schema-driven reference remapping.

Content trees are plain JSON documents. Only fields that the component's
schema declares as reference-bearing are interpreted; every other value is
carried over as-is. The input tree is never mutated: changed nodes are
copied and unchanged sub-trees are shared with the input.

Each :class:`FieldKind` is bound to exactly one remapping function in
``FIELD_REMAPPERS``. Fields with any other declared type pass through
unchanged but are still reported as touched, so callers can warn about
types they cannot inspect (custom plugins).
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from content_migration.client.exceptions import StructuralContentError
from content_migration.migration.identifier_map import Channel, IdentifierMap
from content_migration.migration.schema import FieldKind, FieldSchema, SchemaCatalog


@dataclass
class RemapResult:
    """Outcome of remapping one tree.

    Attributes:
        tree: The remapped copy
        touched_fields: Distinct schema entries encountered, in visit order
        missing_schemas: Component names without a schema
    """

    tree: Any
    touched_fields: list[FieldSchema] = field(default_factory=list)
    missing_schemas: set[str] = field(default_factory=set)

    @property
    def opaque_field_types(self) -> list[str]:
        """Distinct plugin names of custom fields that were encountered."""
        seen: dict[str, None] = {}
        for schema in self.touched_fields:
            if schema.is_opaque and schema.field_type:
                seen.setdefault(schema.field_type, None)
        return list(seen)


class _Traversal:
    """State shared by the field remappers during one remap call."""

    def __init__(self, catalog: SchemaCatalog, maps: IdentifierMap):
        self.catalog = catalog
        self.maps = maps
        self.touched: dict[FieldSchema, None] = {}
        self.missing: set[str] = set()

    def component(self, node: Any) -> Any:
        if not isinstance(node, dict) or not node.get("component"):
            return node

        name = node["component"]
        if self.catalog.fields(name) is None:
            self.missing.add(name)
            return node

        remapped = dict(node)
        for field_name, value in node.items():
            schema = self.catalog.field(name, field_name)
            if schema is None:
                continue
            self.touched.setdefault(schema, None)
            kind = schema.kind
            if kind is not None:
                remapped[field_name] = FIELD_REMAPPERS[kind](value, schema, self)
        return remapped

    def result(self, tree: Any) -> RemapResult:
        return RemapResult(tree=tree, touched_fields=list(self.touched), missing_schemas=self.missing)


FieldRemapper = Callable[[Any, FieldSchema, _Traversal], Any]


def _remap_asset(value: Any, schema: FieldSchema, traversal: _Traversal) -> Any:
    if not isinstance(value, dict):
        return value
    asset_id = value.get("id")
    if not isinstance(asset_id, int) or isinstance(asset_id, bool):
        return value

    new_id = traversal.maps.get(Channel.ASSETS, asset_id)
    if new_id is None:
        return value

    remapped = {**value, "id": new_id}
    filename = value.get("filename")
    if isinstance(filename, str) and filename:
        new_filename = traversal.maps.get(Channel.ASSETS, filename)
        if new_filename is not None:
            remapped["filename"] = new_filename
    return remapped


def _resolve_present(
    value: dict[str, Any], keys: tuple[str, ...], maps: IdentifierMap
) -> dict[str, Any]:
    """Resolve the stories-channel ``keys`` that ``value`` actually has."""
    return {
        key: maps.resolve(Channel.STORIES, item) if key in keys else item
        for key, item in value.items()
    }


def _remap_multiasset(value: Any, schema: FieldSchema, traversal: _Traversal) -> Any:
    if not isinstance(value, list):
        raise StructuralContentError("multiasset", value)
    return [_remap_asset(item, schema, traversal) for item in value]


def _remap_multilink(value: Any, schema: FieldSchema, traversal: _Traversal) -> Any:
    if not isinstance(value, dict) or value.get("linktype") != "story":
        return value
    return _resolve_present(value, ("id",), traversal.maps)


def _remap_bloks(value: Any, schema: FieldSchema | None, traversal: _Traversal) -> Any:
    if not isinstance(value, list):
        raise StructuralContentError("bloks", value)
    return [traversal.component(item) for item in value]


def _remap_richtext_node(node: Any, traversal: _Traversal) -> Any:
    if isinstance(node, list):
        return [_remap_richtext_node(item, traversal) for item in node]
    if not isinstance(node, dict):
        return node

    node_type = node.get("type")
    attrs = node.get("attrs") if isinstance(node.get("attrs"), dict) else None

    if node_type == "link" and attrs is not None and attrs.get("linktype") == "story":
        return {**node, "attrs": _resolve_present(attrs, ("uuid",), traversal.maps)}

    if node_type == "blok":
        attrs = attrs or {}
        body = attrs.get("body")
        return {
            **node,
            "attrs": {**attrs, "body": _remap_bloks([] if body is None else body, None, traversal)},
        }

    return {key: _remap_richtext_node(value, traversal) for key, value in node.items()}


def _remap_richtext(value: Any, schema: FieldSchema, traversal: _Traversal) -> Any:
    return _remap_richtext_node(value, traversal)


def _remap_options(value: Any, schema: FieldSchema, traversal: _Traversal) -> Any:
    channel = Channel.from_options_source(schema.source)
    if channel is None or not isinstance(value, list):
        return value
    return [traversal.maps.resolve(channel, item) for item in value]


FIELD_REMAPPERS: dict[FieldKind, FieldRemapper] = {
    FieldKind.ASSET: _remap_asset,
    FieldKind.MULTIASSET: _remap_multiasset,
    FieldKind.MULTILINK: _remap_multilink,
    FieldKind.BLOKS: _remap_bloks,
    FieldKind.RICHTEXT: _remap_richtext,
    FieldKind.OPTIONS: _remap_options,
}


def remap(tree: Any, catalog: SchemaCatalog, maps: IdentifierMap) -> RemapResult:
    """Rewrite the references in a component tree.

    Args:
        tree: Component node (a dict with a ``component`` key)
        catalog: Component schemas
        maps: Identifier maps to remap through

    Returns:
        RemapResult with the new tree, touched fields and missing schemas

    Raises:
        StructuralContentError: If a field does not have the shape its
            schema declares
    """
    traversal = _Traversal(catalog, maps)
    return traversal.result(traversal.component(tree))


def remap_story(story: dict[str, Any], catalog: SchemaCatalog, maps: IdentifierMap) -> RemapResult:
    """Remap a whole story: its content tree and its own identifiers.

    ``id``, ``uuid``, ``parent_id`` and the ``id``/``parent_id`` of every
    alternate are resolved through the stories channel.
    """
    traversal = _Traversal(catalog, maps)
    stories = Channel.STORIES

    mapped = dict(story)
    if "content" in story:
        mapped["content"] = traversal.component(story["content"])
    for key in ("id", "uuid", "parent_id"):
        if key in story:
            mapped[key] = maps.resolve(stories, story[key])

    alternates = story.get("alternates")
    if isinstance(alternates, list):
        mapped["alternates"] = [
            _resolve_present(alternate, ("id", "parent_id"), maps)
            if isinstance(alternate, dict)
            else alternate
            for alternate in alternates
        ]

    return traversal.result(mapped)
