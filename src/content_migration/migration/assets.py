"""Asset folder and asset migration.

Folders are upserted in dependency order so that a child folder is always
created under its parent's new id. Assets are upserted next, uploading the
binary when the asset does not exist in the destination yet. Optionally,
remote stories are then rewritten to point at the new asset ids and
filenames.

A single asset can also be pushed from a local path or an http(s) URL,
with metadata from its sidecar or given inline.

Local layout of an asset space directory::

    <name>_<id>.<ext>          binary
    <name>_<id>.json           metadata sidecar
    folders/<name>_<uuid>.json asset folders
    manifest.jsonl             asset manifest
    folders/manifest.jsonl     folder manifest
"""

import asyncio
import json
import tempfile
from collections.abc import AsyncIterator, Iterable
from pathlib import Path, PurePosixPath
from typing import Any
from urllib.parse import urlparse

from content_migration.client.exceptions import (
    FileSystemError,
    FileSystemErrorKind,
    MigrationError,
)
from content_migration.client.transports import (
    ASSET_METADATA_FIELDS,
    AssetSourceTransport,
    EntityTransport,
    PagedTransport,
)
from content_migration.migration.identifier_map import Channel, IdentifierMap
from content_migration.migration.manifest import ManifestEntry, ManifestStore
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
)
from content_migration.migration.remapper import remap_story
from content_migration.migration.schema import SchemaCatalog
from content_migration.migration.summary import RunSummary
from content_migration.reporting.progress import StageProgress
from content_migration.utils.logging import get_logger, log_error, log_stage_summary

logger = get_logger(__name__)

FOLDER_RESULTS = "assetFolderResults"
ASSET_RESULTS = "assetResults"
FETCH_STORY_PAGES = "fetchStoryPages"
FETCH_STORIES = "fetchStories"
STORY_PROCESS_RESULTS = "storyProcessResults"
STORY_UPDATE_RESULTS = "storyUpdateResults"


def has_changed_asset_references(
    maps: IdentifierMap, pushed: Iterable[dict[str, Any]] = ()
) -> bool:
    """Whether stories may reference assets that changed.

    True if any mapped asset filename differs from the original one, or if
    any pushed asset carries ``meta_data``.
    """
    if any(
        isinstance(old, str) and old != new for old, new in maps.snapshot(Channel.ASSETS).items()
    ):
        return True
    return any(asset.get("meta_data") for asset in pushed)


def is_remote_source(source: str) -> bool:
    """Whether ``source`` is an http(s) URL rather than a local path."""
    return urlparse(source).scheme in ("http", "https")


def parse_asset_data(raw: str, origin: str = "asset data") -> dict[str, Any]:
    """Parse asset metadata that must be a JSON object.

    Raises:
        ValueError: If ``raw`` is not valid JSON or not an object
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid {origin} JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"Invalid {origin} JSON: expected an object")
    return data


def load_sidecar_asset_data(binary: Path) -> dict[str, Any]:
    """Read the metadata sidecar next to a local binary; none means no metadata.

    Raises:
        ValueError: If the sidecar is not a JSON object
        FileSystemError: If the sidecar exists but cannot be read
    """
    sidecar = binary.with_suffix(".json")
    try:
        raw = sidecar.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except UnicodeDecodeError as e:
        raise ValueError(f"Invalid sidecar JSON: {e}") from e
    except OSError as e:
        raise FileSystemError.from_os_error("read asset sidecar", e) from e
    return parse_asset_data(raw, origin="sidecar")


def single_asset_data(
    source: str,
    data: str | None = None,
    short_filename: str | None = None,
    folder_id: int | None = None,
) -> dict[str, Any]:
    """Build the metadata for pushing one asset given by path or URL.

    Inline ``data`` replaces the sidecar of a local binary; a URL has no
    sidecar. The short filename falls back to the basename of the source.
    ``folder_id`` is a destination folder id and is used as is.

    Raises:
        ValueError: If the inline data or the sidecar is not a JSON object
        FileSystemError: If the sidecar exists but cannot be read
    """
    remote = is_remote_source(source)
    if data is not None:
        asset = parse_asset_data(data)
    elif not remote:
        asset = load_sidecar_asset_data(Path(source))
    else:
        asset = {}

    basename = PurePosixPath(urlparse(source).path).name if remote else Path(source).name
    asset["short_filename"] = short_filename or asset.get("short_filename") or basename
    asset["asset_folder_id"] = folder_id
    return asset


def find_asset_binary(sidecar: Path) -> Path:
    """Return the binary stored next to a metadata sidecar.

    Raises:
        FileSystemError: If no binary with the same stem exists
    """
    for candidate in sorted(sidecar.parent.glob(f"{sidecar.stem}.*")):
        if candidate.suffix != ".json" and candidate.is_file():
            return candidate
    raise FileSystemError(
        "Asset binary not found", FileSystemErrorKind.NOT_FOUND, str(sidecar.with_suffix(""))
    )


class AssetFolderMigrator:
    """Upsert local asset folders in parent-before-child order."""

    def __init__(
        self,
        transport: EntityTransport,
        maps: IdentifierMap,
        manifest: ManifestStore,
        concurrency: int = DEFAULT_CONCURRENCY,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        progress: StageProgress | None = None,
    ):
        self.transport = transport
        self.maps = maps
        self.manifest = manifest
        self.concurrency = concurrency
        self.queue_size = queue_size
        self.progress = progress or StageProgress(enabled=False)
        self.summary = RunSummary()

    async def run(self, directory: str | Path) -> dict[str, RunSummary]:
        """Upsert every folder document in ``directory``.

        A missing directory means there are no folders to push.
        """
        directory = Path(directory)
        self.progress.add_stage(FOLDER_RESULTS, "Folders")
        if not directory.exists():
            logger.info("asset_folders_directory_missing", directory=str(directory))
            return {FOLDER_RESULTS: self.summary}

        def on_read_error(error: Exception, path: Path) -> None:
            self.summary.record_failure()
            log_error(logger, error, "read_asset_folder", path=str(path))

        folders = await read_local_entities(directory, on_error=on_read_error)
        self.summary.set_total(len(folders) + self.summary.failed)
        self.progress.set_total(FOLDER_RESULTS, self.summary.total)

        reader = DependencyOrderedReader(folders)
        gate = ParentGate(folder.id for folder in folders)

        async def work(folder: LocalEntity) -> dict[str, Any]:
            try:
                if not reader.is_orphan(folder):
                    await gate.wait_for(folder.parent_id)
                return await self.upsert_folder(folder)
            finally:
                gate.settle(folder.id)

        def on_success(folder: LocalEntity, remote: dict[str, Any]) -> None:
            self.summary.record_success()
            logger.info("asset_folder_pushed", folder_id=folder.id, new_folder_id=remote.get("id"))

        def on_error(error: Exception, folder: LocalEntity) -> None:
            self.summary.record_failure()
            log_error(logger, error, "upsert_asset_folder", folder_id=folder.id)

        pipeline = ConcurrencyBoundedPipeline(
            "upsert_asset_folders",
            work,
            on_success=on_success,
            on_error=on_error,
            on_increment=lambda: self.progress.advance(FOLDER_RESULTS, failed=self.summary.failed),
            concurrency=self.concurrency,
            queue_size=self.queue_size,
        )
        await pipeline.run(reader)

        log_stage_summary(logger, FOLDER_RESULTS, self.summary)
        return {FOLDER_RESULTS: self.summary}

    async def upsert_folder(self, folder: LocalEntity) -> dict[str, Any]:
        """Update the mapped remote folder if it exists, otherwise create it."""
        payload: dict[str, Any] = {"name": folder.data.get("name")}
        if folder.parent_id is not None:
            payload["parent_id"] = self.maps.resolve(Channel.ASSET_FOLDERS, folder.parent_id)

        mapped_id = self.maps.get(Channel.ASSET_FOLDERS, folder.id)
        if mapped_id is not None and await self.transport.get(mapped_id) is not None:
            return await self.transport.update(mapped_id, payload)

        remote = await self.transport.create(payload)
        self.maps.set(Channel.ASSET_FOLDERS, folder.id, remote["id"])
        await self.manifest.append(ManifestEntry(old_id=folder.id, new_id=remote["id"]))
        return remote


class AssetMigrator:
    """Upsert local assets (binary plus metadata sidecar), or a single asset."""

    def __init__(
        self,
        transport: AssetSourceTransport,
        maps: IdentifierMap,
        manifest: ManifestStore,
        cleanup: bool = False,
        concurrency: int = DEFAULT_CONCURRENCY,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        progress: StageProgress | None = None,
    ):
        self.transport = transport
        self.maps = maps
        self.manifest = manifest
        self.cleanup = cleanup
        self.concurrency = concurrency
        self.queue_size = queue_size
        self.progress = progress or StageProgress(enabled=False)
        self.summary = RunSummary()
        self.pushed: list[dict[str, Any]] = []

    async def run(self, directory: str | Path) -> dict[str, RunSummary]:
        """Upsert every asset sidecar found directly in ``directory``."""
        self.progress.add_stage(ASSET_RESULTS, "Assets")

        def on_read_error(error: Exception, path: Path) -> None:
            self.summary.record_failure()
            log_error(logger, error, "read_asset", path=str(path))

        assets = await read_local_entities(directory, on_error=on_read_error)
        self.summary.set_total(len(assets) + self.summary.failed)
        self.progress.set_total(ASSET_RESULTS, self.summary.total)

        def on_success(asset: LocalEntity, remote: dict[str, Any]) -> None:
            self.summary.record_success()
            logger.info("asset_pushed", asset_id=asset.id, new_asset_id=remote.get("id"))

        def on_error(error: Exception, asset: LocalEntity) -> None:
            self.summary.record_failure()
            log_error(logger, error, "upsert_asset", asset_id=asset.id)

        pipeline = ConcurrencyBoundedPipeline(
            "upsert_assets",
            self._upsert_local,
            on_success=on_success,
            on_error=on_error,
            on_increment=lambda: self.progress.advance(ASSET_RESULTS, failed=self.summary.failed),
            concurrency=self.concurrency,
            queue_size=self.queue_size,
        )
        await pipeline.run(assets)

        log_stage_summary(logger, ASSET_RESULTS, self.summary)
        return {ASSET_RESULTS: self.summary}

    async def push_single(self, source: str, asset: dict[str, Any]) -> dict[str, RunSummary]:
        """Upsert one asset given by local path or http(s) URL.

        A URL is downloaded into a temporary directory first. Local files are
        removed afterwards only with cleanup enabled.
        """
        self.progress.add_stage(ASSET_RESULTS, "Assets", total=1)
        self.summary.set_total(1)

        try:
            if is_remote_source(source):
                with tempfile.TemporaryDirectory() as tmp:
                    binary = await self.transport.download(
                        source, Path(tmp) / Path(asset["short_filename"]).name
                    )
                    remote = await self.upsert_asset(asset, binary, remap_folder=False)
            else:
                binary = Path(source)
                if not binary.is_file():
                    raise FileSystemError(
                        "Asset binary not found", FileSystemErrorKind.NOT_FOUND, str(binary)
                    )
                remote = await self.upsert_asset(
                    asset, binary, sidecar=binary.with_suffix(".json"), remap_folder=False
                )
        except Exception as e:
            self.summary.record_failure()
            log_error(logger, e, "upsert_asset", source=source)
        else:
            self.summary.record_success()
            logger.info("asset_pushed", asset_id=asset.get("id"), new_asset_id=remote.get("id"))
        finally:
            self.progress.advance(ASSET_RESULTS, failed=self.summary.failed)

        log_stage_summary(logger, ASSET_RESULTS, self.summary)
        return {ASSET_RESULTS: self.summary}

    def _payload(
        self, asset: dict[str, Any], binary: Path, remap_folder: bool = True
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            key: asset[key] for key in ASSET_METADATA_FIELDS if asset.get(key) is not None
        }
        payload["short_filename"] = asset.get("short_filename") or binary.name
        folder_id = asset.get("asset_folder_id")
        if folder_id:
            payload["asset_folder_id"] = (
                self.maps.resolve(Channel.ASSET_FOLDERS, folder_id) if remap_folder else folder_id
            )
        return payload

    async def _upsert_local(self, entity: LocalEntity) -> dict[str, Any]:
        binary = await asyncio.to_thread(find_asset_binary, entity.path)
        return await self.upsert_asset(entity.data, binary, sidecar=entity.path)

    async def upsert_asset(
        self,
        asset: dict[str, Any],
        binary: Path,
        sidecar: Path | None = None,
        remap_folder: bool = True,
    ) -> dict[str, Any]:
        """Update the mapped remote asset if it exists, otherwise upload it.

        Args:
            asset: Asset metadata; without an ``id`` it is always uploaded
            binary: Local binary to upload
            sidecar: Local metadata file, removed with the binary on cleanup.
                None for downloaded binaries, which are never cleaned up.
            remap_folder: Resolve ``asset_folder_id`` through the folder map,
                or use it as a destination folder id

        Returns:
            The remote asset
        """
        payload = self._payload(asset, binary, remap_folder=remap_folder)

        mapped_id = self.maps.get(Channel.ASSETS, asset.get("id"))
        remote = await self.transport.get(mapped_id) if mapped_id is not None else None
        if remote is not None:
            update = {k: v for k, v in payload.items() if k != "short_filename"}
            remote = {**remote, **await self.transport.update(mapped_id, update)}
            self._map(asset, remote)
        else:
            remote = await self.transport.create(payload, file_path=binary)
            self._map(asset, remote)
            if asset.get("id") is not None:
                await self.manifest.append(
                    ManifestEntry(
                        old_id=asset["id"],
                        new_id=remote["id"],
                        old_filename=asset.get("filename"),
                        new_filename=remote.get("filename"),
                    )
                )
        self.pushed.append(remote)

        if self.cleanup and sidecar is not None:
            await self._cleanup(sidecar, binary)
        return remote

    def _map(self, asset: dict[str, Any], remote: dict[str, Any]) -> None:
        if asset.get("id") is not None:
            self.maps.set(Channel.ASSETS, asset["id"], remote["id"])
        if asset.get("filename") and remote.get("filename"):
            self.maps.set(Channel.ASSETS, asset["filename"], remote["filename"])

    async def _cleanup(self, sidecar: Path, binary: Path) -> None:
        try:
            await asyncio.to_thread(binary.unlink)
            await asyncio.to_thread(sidecar.unlink, missing_ok=True)
        except OSError as e:
            raise FileSystemError.from_os_error("remove local asset", e) from e
        logger.debug("local_asset_removed", path=str(binary))


class AssetReferenceUpdater:
    """Rewrite asset references in every remote story of the destination.

    Stories are listed page by page, fetched individually (list responses
    omit the content), remapped through the assets channel and written back.
    """

    def __init__(
        self,
        transport: PagedTransport,
        maps: IdentifierMap,
        catalog: SchemaCatalog,
        per_page: int = 100,
        concurrency: int = DEFAULT_CONCURRENCY,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        progress: StageProgress | None = None,
    ):
        self.transport = transport
        self.maps = maps
        self.catalog = catalog
        self.per_page = per_page
        self.concurrency = concurrency
        self.queue_size = queue_size
        self.progress = progress or StageProgress(enabled=False)
        self.summaries: dict[str, RunSummary] = {
            FETCH_STORY_PAGES: RunSummary(),
            FETCH_STORIES: RunSummary(),
            STORY_PROCESS_RESULTS: RunSummary(),
            STORY_UPDATE_RESULTS: RunSummary(),
        }

    def _drop(self, *stages: str) -> None:
        for stage in stages:
            self.summaries[stage].decrement_total()
            self.progress.set_total(stage, self.summaries[stage].total)

    async def _list_stories(self) -> AsyncIterator[dict[str, Any]]:
        pages = self.summaries[FETCH_STORY_PAGES]
        page_number = 1
        total_pages = 1
        pages.set_total(total_pages)

        while page_number <= total_pages:
            try:
                page = await self.transport.list(page_number, self.per_page)
                total_pages = page.total_pages
                pages.set_total(total_pages)
                self.progress.set_total(FETCH_STORY_PAGES, total_pages)
                for stage in (FETCH_STORIES, STORY_PROCESS_RESULTS, STORY_UPDATE_RESULTS):
                    self.summaries[stage].set_total(page.total)
                    self.progress.set_total(stage, page.total)
                pages.record_success()
                logger.info("story_page_fetched", page=page_number, total_pages=total_pages)
            except Exception as e:
                pages.record_failure()
                log_error(logger, e, "pull_stories", page=page_number, total_pages=total_pages)
                return
            finally:
                self.progress.advance(FETCH_STORY_PAGES, failed=pages.failed)

            for story in page.items:
                yield story
            page_number += 1

    async def run(self) -> dict[str, RunSummary]:
        """Update every remote story; returns no summaries without schemas."""
        if len(self.catalog) == 0:
            logger.error(
                "component_schemas_missing",
                message="No components found. Pull the component schemas of the source space first.",
            )
            return {}

        for stage, title in (
            (FETCH_STORY_PAGES, "Fetching story pages"),
            (FETCH_STORIES, "Fetching stories"),
            (STORY_PROCESS_RESULTS, "Processing stories"),
            (STORY_UPDATE_RESULTS, "Updating stories"),
        ):
            self.progress.add_stage(stage, title)

        update = self.summaries[STORY_UPDATE_RESULTS]

        def on_success(listed: dict[str, Any], remote: dict[str, Any] | None) -> None:
            if remote is None:
                return
            update.record_success()
            logger.info("story_asset_references_updated", story_id=listed.get("id"))

        def on_error(error: Exception, listed: dict[str, Any]) -> None:
            update.record_failure()
            log_error(logger, error, "update_story", story_id=listed.get("id"))

        pipeline = ConcurrencyBoundedPipeline(
            "update_asset_references",
            self.update_story,
            on_success=on_success,
            on_error=on_error,
            on_increment=lambda: self.progress.advance(STORY_UPDATE_RESULTS, failed=update.failed),
            concurrency=self.concurrency,
            queue_size=self.queue_size,
        )
        await pipeline.run(self._list_stories())

        for stage, summary in self.summaries.items():
            log_stage_summary(logger, stage, summary)
        return self.summaries

    async def update_story(self, listed: dict[str, Any]) -> dict[str, Any] | None:
        """Fetch, remap and write back one story.

        Fetch and processing failures are counted here and return None;
        update failures propagate to the pipeline.
        """
        fetched = self.summaries[FETCH_STORIES]
        process = self.summaries[STORY_PROCESS_RESULTS]

        try:
            story = await self.transport.get(listed["id"])
            if story is None:
                raise MigrationError(f"Story {listed['id']} no longer exists")
            fetched.record_success()
        except Exception as e:
            fetched.record_failure()
            self._drop(STORY_PROCESS_RESULTS, STORY_UPDATE_RESULTS)
            log_error(logger, e, "pull_story", story_id=listed.get("id"))
            return None
        finally:
            self.progress.advance(FETCH_STORIES, failed=fetched.failed)

        try:
            mapped = remap_story(story, self.catalog, self.maps).tree
            process.record_success()
        except Exception as e:
            process.record_failure()
            self._drop(STORY_UPDATE_RESULTS)
            log_error(logger, e, "process_story", story_id=story.get("id"))
            return None
        finally:
            self.progress.advance(STORY_PROCESS_RESULTS, failed=process.failed)

        return await self.transport.update(
            mapped["id"], mapped, publish=bool(story.get("published"))
        )
