"""Remote entity transports used by the migrators.

A transport is the narrow view of the management API a migrator works
against. The API transports delegate to :class:`ManagementClient`; the
dry-run transport reads through to the real space but never writes.
"""

import itertools
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from content_migration.client.management_client import ManagementClient
from content_migration.utils.logging import get_logger

logger = get_logger(__name__)

ASSET_METADATA_FIELDS = ("alt", "title", "copyright", "source", "is_private", "meta_data")


@dataclass
class Page:
    """One page of a numbered list endpoint."""

    items: list[dict[str, Any]] = field(default_factory=list)
    total: int = 0
    per_page: int = 100

    @property
    def total_pages(self) -> int:
        if self.per_page <= 0:
            return 1
        return max(1, math.ceil(self.total / self.per_page))


class EntityTransport(Protocol):
    """Remote operations a migrator performs on one entity class."""

    async def get(self, entity_id: int | str) -> dict[str, Any] | None: ...

    async def create(self, payload: dict[str, Any], **options: Any) -> dict[str, Any]: ...

    async def update(
        self, entity_id: int | str, payload: dict[str, Any], **options: Any
    ) -> dict[str, Any]: ...


class PagedTransport(EntityTransport, Protocol):
    """Entity transport that can also enumerate remote entities."""

    async def list(self, page: int, per_page: int) -> Page: ...


class AssetSourceTransport(EntityTransport, Protocol):
    """Entity transport that can also fetch an asset binary by URL."""

    async def download(self, url: str, destination: Path) -> Path: ...


def page_from_headers(items: list[dict[str, Any]], headers: Any, per_page: int) -> Page:
    """Build a Page from the ``Total`` and ``Per-Page`` response headers."""
    try:
        total = int(headers.get("Total", len(items)))
    except (TypeError, ValueError):
        total = len(items)
    try:
        per_page = int(headers.get("Per-Page", per_page)) or per_page
    except (TypeError, ValueError):
        pass
    return Page(items=items, total=total, per_page=per_page)


class StoryTransport:
    """Stories of the destination space."""

    def __init__(self, client: ManagementClient):
        self.client = client

    async def get(self, entity_id: int | str) -> dict[str, Any] | None:
        return await self.client.get_story(entity_id)

    async def create(self, payload: dict[str, Any], **options: Any) -> dict[str, Any]:
        return await self.client.create_story(payload, publish=False)

    async def update(
        self, entity_id: int | str, payload: dict[str, Any], **options: Any
    ) -> dict[str, Any]:
        return await self.client.update_story(
            entity_id, payload, publish=bool(options.get("publish", False))
        )

    async def list(self, page: int, per_page: int) -> Page:
        stories, headers = await self.client.list_stories(page=page, per_page=per_page)
        return page_from_headers(stories, headers, per_page)


class AssetFolderTransport:
    """Asset folders of the destination space."""

    def __init__(self, client: ManagementClient):
        self.client = client

    async def get(self, entity_id: int | str) -> dict[str, Any] | None:
        return await self.client.get_asset_folder(int(entity_id))

    async def create(self, payload: dict[str, Any], **options: Any) -> dict[str, Any]:
        return await self.client.create_asset_folder(payload)

    async def update(
        self, entity_id: int | str, payload: dict[str, Any], **options: Any
    ) -> dict[str, Any]:
        return await self.client.update_asset_folder(int(entity_id), payload)


class AssetTransport:
    """Assets of the destination space.

    ``create`` expects a ``file_path`` option pointing at the local binary.
    Metadata the signed upload cannot carry is applied with a follow-up
    update.
    """

    def __init__(self, client: ManagementClient):
        self.client = client

    async def get(self, entity_id: int | str) -> dict[str, Any] | None:
        return await self.client.get_asset(int(entity_id))

    async def create(self, payload: dict[str, Any], **options: Any) -> dict[str, Any]:
        file_path: Path = options["file_path"]
        remote = await self.client.upload_asset(file_path, payload)

        metadata = {key: payload[key] for key in ASSET_METADATA_FIELDS if key in payload}
        if metadata:
            await self.client.update_asset(
                remote["id"], {**metadata, "asset_folder_id": payload.get("asset_folder_id")}
            )
            remote = {**remote, **metadata}
        return remote

    async def update(
        self, entity_id: int | str, payload: dict[str, Any], **options: Any
    ) -> dict[str, Any]:
        return await self.client.update_asset(int(entity_id), payload)

    async def download(self, url: str, destination: Path) -> Path:
        return await self.client.download_file(url, destination)


class DryRunTransport:
    """Wraps a transport so that reads go through and writes are only logged.

    Created entities get negative placeholder ids so identifier maps stay
    consistent for the rest of the run.
    """

    def __init__(self, delegate: Any, entity: str):
        self.delegate = delegate
        self.entity = entity
        self._counter = itertools.count(1)

    async def get(self, entity_id: int | str) -> dict[str, Any] | None:
        return await self.delegate.get(entity_id)

    async def create(self, payload: dict[str, Any], **options: Any) -> dict[str, Any]:
        n = next(self._counter)
        created = {**payload, "id": -n, "uuid": f"dry-run-{self.entity}-{n}"}
        if self.entity == "asset":
            created.setdefault("filename", payload.get("filename") or payload.get("short_filename"))
        logger.info("dry_run_create", entity=self.entity, placeholder_id=-n)
        return created

    async def update(
        self, entity_id: int | str, payload: dict[str, Any], **options: Any
    ) -> dict[str, Any]:
        logger.info("dry_run_update", entity=self.entity, entity_id=entity_id)
        return {**payload, "id": entity_id}

    async def list(self, page: int, per_page: int) -> Page:
        return await self.delegate.list(page, per_page)

    async def download(self, url: str, destination: Path) -> Path:
        return await self.delegate.download(url, destination)
