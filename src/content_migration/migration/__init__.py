"""
Migration module for Content Bridge.

This module provides reference remapping, identifier maps and manifests,
dependency-ordered reading and the story and asset migrators used to push
locally pulled content into a destination space.
"""

# Asset migration
from content_migration.migration.assets import (
    AssetFolderMigrator,
    AssetMigrator,
    AssetReferenceUpdater,
    has_changed_asset_references,
    single_asset_data,
)

# Identifier maps and manifests
from content_migration.migration.identifier_map import Channel, IdentifierMap
from content_migration.migration.manifest import (
    DryRunManifestStore,
    ManifestEntry,
    ManifestStore,
    load_manifest,
)

# Execution
from content_migration.migration.pipeline import ConcurrencyBoundedPipeline
from content_migration.migration.reader import (
    DependencyOrderedReader,
    LocalEntity,
    ParentGate,
    read_local_entities,
    read_local_entity,
)

# Reference remapping
from content_migration.migration.remapper import RemapResult, remap, remap_story
from content_migration.migration.schema import (
    FieldKind,
    FieldSchema,
    SchemaCatalog,
    find_component_schemas,
)

# Story migration
from content_migration.migration.stories import TwoPhaseMigrator
from content_migration.migration.summary import RunStatus, RunSummary, derive_run_status

__all__ = [
    # Identifier maps and manifests
    "Channel",
    "IdentifierMap",
    "ManifestEntry",
    "ManifestStore",
    "DryRunManifestStore",
    "load_manifest",
    # Execution
    "ConcurrencyBoundedPipeline",
    "DependencyOrderedReader",
    "ParentGate",
    "LocalEntity",
    "read_local_entity",
    "read_local_entities",
    # Reference remapping
    "FieldKind",
    "FieldSchema",
    "SchemaCatalog",
    "find_component_schemas",
    "RemapResult",
    "remap",
    "remap_story",
    # Migrators
    "TwoPhaseMigrator",
    "AssetFolderMigrator",
    "AssetMigrator",
    "AssetReferenceUpdater",
    "has_changed_asset_references",
    "single_asset_data",
    # Summaries
    "RunStatus",
    "RunSummary",
    "derive_run_status",
]
