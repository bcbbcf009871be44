"""Two-phase story migration.

Stories reference each other (links, parents, alternates), possibly in
cycles, so they cannot be pushed in a single pass:

Phase 1 creates a minimal placeholder for every story that does not exist
in the destination yet and records the old-to-new identifiers.

Phase 2 starts only after Phase 1 has finished for every story. It remaps
all references with the now complete identifier map and writes the full
story.
"""

import asyncio
from enum import Enum
from pathlib import Path
from typing import Any

from content_migration.client.exceptions import FileSystemError, MigrationError
from content_migration.client.transports import EntityTransport
from content_migration.migration.identifier_map import Channel, IdentifierMap
from content_migration.migration.manifest import ManifestEntry, ManifestStore, utc_now
from content_migration.migration.pipeline import (
    DEFAULT_CONCURRENCY,
    DEFAULT_QUEUE_SIZE,
    ConcurrencyBoundedPipeline,
)
from content_migration.migration.reader import (
    DependencyOrderedReader,
    LocalEntity,
    ParentGate,
    read_local_entities,
    read_local_entity,
)
from content_migration.migration.remapper import RemapResult, remap_story
from content_migration.migration.schema import SchemaCatalog
from content_migration.migration.summary import RunSummary
from content_migration.reporting.progress import StageProgress
from content_migration.utils.logging import get_logger, log_error, log_stage_summary

logger = get_logger(__name__)

CREATION = "creationResults"
PROCESS = "processResults"
UPDATE = "updateResults"

# Fields that are either assigned by the destination or hold references
PLACEHOLDER_EXCLUDED_FIELDS = ("id", "uuid", "content", "parent_id", "alternates")


class PlaceholderOutcome(str, Enum):
    CREATED = "created"
    SKIPPED = "skipped"


def placeholder_payload(story: dict[str, Any], maps: IdentifierMap) -> dict[str, Any]:
    """Build the shape-only payload used to create a placeholder story.

    The content is reduced to its root component and the parent is resolved
    through the identifier map, falling back to the original parent id.
    """
    payload = {k: v for k, v in story.items() if k not in PLACEHOLDER_EXCLUDED_FIELDS}
    content = story.get("content")
    payload["content"] = {"component": content.get("component")} if isinstance(content, dict) else {}

    parent_id = story.get("parent_id")
    if parent_id:
        payload["parent_id"] = maps.resolve(Channel.STORIES, parent_id)
    return payload


def warn_about_unmapped_references(result: RemapResult, story_uuid: Any) -> None:
    """Warn once per custom plugin type and once per missing component."""
    for field_type in result.opaque_field_types:
        logger.warning(
            "custom_plugin_references",
            story_uuid=story_uuid,
            field_type=field_type,
            message=f'The custom plugin "{field_type}" may contain references that require manual updates.',
        )
    for component in sorted(result.missing_schemas):
        logger.warning(
            "component_schema_missing",
            story_uuid=story_uuid,
            component=component,
            message=(
                f'The component "{component}" was not found. '
                "Pull the component schemas of the source space to remap its references."
            ),
        )


class TwoPhaseMigrator:
    """Push local stories into the destination space.

    Args:
        transport: Remote story operations
        maps: Identifier maps, pre-seeded from earlier manifests
        manifest: Story manifest of the destination space
        catalog: Component schemas of the source space
        publish: Force publishing (True) or mirror each story's state (None)
        cleanup: Delete each local file after its final update succeeded
        concurrency: Units of work in flight per phase
        queue_size: Items buffered between reader and workers
        progress: Progress display
    """

    def __init__(
        self,
        transport: EntityTransport,
        maps: IdentifierMap,
        manifest: ManifestStore,
        catalog: SchemaCatalog,
        publish: bool | None = None,
        cleanup: bool = False,
        concurrency: int = DEFAULT_CONCURRENCY,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        progress: StageProgress | None = None,
    ):
        self.transport = transport
        self.maps = maps
        self.manifest = manifest
        self.catalog = catalog
        self.publish = publish
        self.cleanup = cleanup
        self.concurrency = concurrency
        self.queue_size = queue_size
        self.progress = progress or StageProgress(enabled=False)

        self.summaries: dict[str, RunSummary] = {
            CREATION: RunSummary(),
            PROCESS: RunSummary(),
            UPDATE: RunSummary(),
        }

    def _drop_from_later_stages(self, *stages: str) -> None:
        for stage in stages:
            self.summaries[stage].decrement_total()
            self.progress.set_total(stage, self.summaries[stage].total)

    async def run(self, directory: str | Path) -> dict[str, RunSummary]:
        """Run both phases over every story in ``directory``.

        Returns:
            Summaries keyed by stage name

        Raises:
            MigrationError: If no component schemas are available
            FileSystemError: If the story directory cannot be read
        """
        if len(self.catalog) == 0:
            raise MigrationError(
                "No components found. Pull the component schemas of the source space first."
            )

        creation = self.summaries[CREATION]
        self.progress.add_stage(CREATION, "Creating stories")
        self.progress.add_stage(PROCESS, "Processing stories")
        self.progress.add_stage(UPDATE, "Updating stories")

        def on_read_error(error: Exception, path: Path) -> None:
            creation.record_failure()
            self.progress.advance(CREATION, failed=creation.failed)
            log_error(logger, error, "read_story", path=str(path))

        entities = await read_local_entities(directory, on_error=on_read_error)
        for stage in (CREATION, PROCESS, UPDATE):
            self.summaries[stage].set_total(len(entities))
            self.progress.set_total(stage, len(entities))
        creation.set_total(len(entities) + creation.failed)
        self.progress.set_total(CREATION, creation.total)

        mapped = await self.create_placeholders(entities)
        # Phase 2 must not start before every placeholder has settled
        await self.update_stories(mapped)

        for stage, summary in self.summaries.items():
            log_stage_summary(logger, stage, summary)
        return self.summaries

    async def create_placeholders(self, entities: list[LocalEntity]) -> list[LocalEntity]:
        """Phase 1: create or find every story and record its new identifiers.

        Returns:
            Entities that were created or skipped-and-mapped
        """
        creation = self.summaries[CREATION]
        reader = DependencyOrderedReader(entities)
        gate = ParentGate(entity.id for entity in entities)
        mapped: list[LocalEntity] = []

        async def work(entity: LocalEntity) -> PlaceholderOutcome:
            try:
                if not reader.is_orphan(entity):
                    await gate.wait_for(entity.parent_id)
                return await self.create_placeholder(entity)
            finally:
                gate.settle(entity.id)

        def on_success(entity: LocalEntity, outcome: PlaceholderOutcome) -> None:
            mapped.append(entity)
            if outcome is PlaceholderOutcome.CREATED:
                creation.record_success()
                logger.info("story_placeholder_created", story_uuid=entity.uuid)
            else:
                creation.record_skip()
                logger.info("story_placeholder_skipped", story_uuid=entity.uuid)

        def on_error(error: Exception, entity: LocalEntity) -> None:
            creation.record_failure()
            log_error(logger, error, "create_story", story_uuid=entity.uuid, story_id=entity.id)

        pipeline = ConcurrencyBoundedPipeline(
            "create_stories",
            work,
            on_success=on_success,
            on_error=on_error,
            on_increment=lambda: self.progress.advance(CREATION, failed=creation.failed),
            concurrency=self.concurrency,
            queue_size=self.queue_size,
        )
        await pipeline.run(reader)
        return mapped

    async def create_placeholder(self, entity: LocalEntity) -> PlaceholderOutcome:
        """Create the placeholder for one story unless it already exists."""
        story = entity.data

        # Resumed run: the manifest already knows this story
        mapped_id = self.maps.get(Channel.STORIES, story.get("id"))
        if mapped_id is not None:
            remote = await self.transport.get(mapped_id)
            if remote is not None:
                return PlaceholderOutcome.SKIPPED

        # Same-space re-run: the story exists under its original id
        existing = await self.transport.get(story["id"])
        if existing is not None and existing.get("uuid") == story.get("uuid"):
            await self._record_mapping(story, existing)
            return PlaceholderOutcome.SKIPPED

        remote = await self.transport.create(placeholder_payload(story, self.maps))
        await self._record_mapping(story, remote)
        return PlaceholderOutcome.CREATED

    async def _record_mapping(self, story: dict[str, Any], remote: dict[str, Any]) -> None:
        if not story.get("uuid") or not remote.get("uuid"):
            raise MigrationError(f"Story {story.get('id')} has no UUID to map")

        self.maps.set(Channel.STORIES, story["id"], remote["id"])
        self.maps.set(Channel.STORIES, story["uuid"], remote["uuid"])

        created_at = utc_now()
        await self.manifest.append(
            ManifestEntry(old_id=story["uuid"], new_id=remote["uuid"], created_at=created_at),
            ManifestEntry(old_id=story["id"], new_id=remote["id"], created_at=created_at),
        )

    async def update_stories(self, entities: list[LocalEntity]) -> None:
        """Phase 2: remap references and write the final version of each story."""
        process = self.summaries[PROCESS]
        update = self.summaries[UPDATE]
        for summary in (process, update):
            summary.set_total(len(entities))
        self.progress.set_total(PROCESS, len(entities))
        self.progress.set_total(UPDATE, len(entities))

        async def work(entity: LocalEntity) -> dict[str, Any] | None:
            mapped_story = await self._process(entity)
            if mapped_story is None:
                return None

            publish = self.publish if self.publish is not None else bool(entity.data.get("published"))
            remote = await self.transport.update(mapped_story["id"], mapped_story, publish=publish)
            if self.cleanup:
                await self._cleanup(entity)
            return remote

        def on_success(entity: LocalEntity, remote: dict[str, Any] | None) -> None:
            if remote is None:
                return
            update.record_success()
            logger.info("story_updated", story_uuid=entity.uuid)

        def on_error(error: Exception, entity: LocalEntity) -> None:
            update.record_failure()
            log_error(logger, error, "update_story", story_uuid=entity.uuid, story_id=entity.id)

        def on_increment() -> None:
            self.progress.advance(UPDATE, failed=update.failed)

        pipeline = ConcurrencyBoundedPipeline(
            "update_stories",
            work,
            on_success=on_success,
            on_error=on_error,
            on_increment=on_increment,
            concurrency=self.concurrency,
            queue_size=self.queue_size,
        )
        await pipeline.run(entities)

    async def _process(self, entity: LocalEntity) -> dict[str, Any] | None:
        """Re-read and remap one story; failures are counted here."""
        process = self.summaries[PROCESS]
        try:
            fresh = await read_local_entity(entity.path)
            result = remap_story(fresh.data, self.catalog, self.maps)
        except Exception as e:
            process.record_failure()
            self._drop_from_later_stages(UPDATE)
            log_error(logger, e, "process_story", story_uuid=entity.uuid, story_id=entity.id)
            return None
        finally:
            self.progress.advance(PROCESS, failed=process.failed)

        warn_about_unmapped_references(result, entity.uuid)
        process.record_success()
        logger.debug("story_processed", story_uuid=entity.uuid)
        return result.tree

    async def _cleanup(self, entity: LocalEntity) -> None:
        try:
            await asyncio.to_thread(entity.path.unlink)
        except OSError as e:
            raise FileSystemError.from_os_error("remove local story", e) from e
        logger.debug("local_story_removed", path=str(entity.path))
