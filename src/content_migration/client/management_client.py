"""Management API client for the destination space.

This client provides the space-scoped endpoints the push commands need:
stories, asset folders and assets (including the signed upload flow).
"""

import asyncio
import mimetypes
from pathlib import Path
from typing import Any

import httpx

from content_migration.client.base_client import BaseAPIClient
from content_migration.client.exceptions import FileSystemError, NetworkError, NotFoundError
from content_migration.config import ManagementAPIConfig, PerformanceConfig
from content_migration.utils.logging import get_logger
from content_migration.utils.retry import call_with_retry

logger = get_logger(__name__)


class ManagementClient(BaseAPIClient):
    """Client for one space of the management API.

    Every request goes through the retry policy from ``PerformanceConfig``
    so transient 5xx, 429 and network failures are retried with backoff.
    """

    def __init__(
        self,
        config: ManagementAPIConfig,
        space_id: str,
        performance: PerformanceConfig | None = None,
        log_payloads: bool = False,
        max_payload_size: int = 10000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize management API client.

        Args:
            config: Management API connection settings
            space_id: Space all requests are scoped to
            performance: Rate limit, pool and retry settings
            log_payloads: Enable request/response payload logging
            max_payload_size: Maximum payload size to log before truncation
            transport: Optional httpx transport (used by tests)
        """
        performance = performance or PerformanceConfig()
        super().__init__(
            base_url=config.url,
            token=config.token,
            verify_ssl=config.verify_ssl,
            timeout=config.timeout,
            rate_limit=performance.rate_limit,
            max_connections=performance.http_max_connections,
            max_keepalive_connections=performance.http_max_keepalive_connections,
            log_payloads=log_payloads,
            max_payload_size=max_payload_size,
            transport=transport,
        )
        self.space_id = str(space_id)
        self.performance = performance

        # Signed uploads go straight to object storage and must not carry the API token
        self.upload_client = httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout * 4, connect=10.0),
            verify=config.verify_ssl,
            transport=transport,
        )

        logger.info("management_client_initialized", url=config.url, space_id=self.space_id)

    def _space_endpoint(self, path: str) -> str:
        return f"spaces/{self.space_id}/{path.lstrip('/')}"

    async def _call(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        return await call_with_retry(
            self.request,
            method,
            self._space_endpoint(path),
            max_attempts=self.performance.retry_attempts,
            min_wait=self.performance.retry_backoff_min,
            max_wait=self.performance.retry_backoff_max,
            **kwargs,
        )

    async def _call_with_headers(
        self, path: str, params: dict[str, Any], action: str
    ) -> tuple[dict[str, Any], httpx.Headers]:
        return await call_with_retry(
            self.request_with_headers,
            "GET",
            self._space_endpoint(path),
            params=params,
            action=action,
            max_attempts=self.performance.retry_attempts,
            min_wait=self.performance.retry_backoff_min,
            max_wait=self.performance.retry_backoff_max,
        )

    # Stories
    async def get_story(self, story_id: int | str) -> dict[str, Any] | None:
        """Fetch a story by id.

        Returns:
            The story, or None when it does not exist or was deleted
        """
        try:
            data = await self._call("GET", f"stories/{story_id}", action="pull_story")
        except NotFoundError:
            return None

        story = data.get("story")
        if not story or story.get("deleted_at"):
            return None
        return story

    async def list_stories(
        self, page: int = 1, per_page: int = 100, **params: Any
    ) -> tuple[list[dict[str, Any]], httpx.Headers]:
        """Fetch one page of stories with the pagination headers."""
        data, headers = await self._call_with_headers(
            "stories", {**params, "page": page, "per_page": per_page}, action="pull_stories"
        )
        return data.get("stories", []), headers

    async def create_story(self, story: dict[str, Any], publish: bool = False) -> dict[str, Any]:
        """Create a story.

        Args:
            story: Story payload
            publish: Publish immediately after creation

        Returns:
            The created story
        """
        data = await self._call(
            "POST",
            "stories",
            json_data={"story": story, "publish": 1 if publish else 0},
            action="create_story",
        )
        created = data.get("story", {})
        logger.info("story_created", story_id=created.get("id"), story_uuid=created.get("uuid"))
        return created

    async def update_story(
        self,
        story_id: int | str,
        story: dict[str, Any],
        publish: bool = False,
        force_update: bool = False,
    ) -> dict[str, Any]:
        """Update a story.

        Args:
            story_id: Remote story id
            story: Full story payload
            publish: Publish after the update
            force_update: Override a lock held by another editor

        Returns:
            The updated story
        """
        data = await self._call(
            "PUT",
            f"stories/{story_id}",
            json_data={
                "story": story,
                "force_update": "1" if force_update else "0",
                "publish": 1 if publish else 0,
            },
            action="update_story",
        )
        updated = data.get("story", story)
        logger.info("story_updated", story_id=story_id, published=publish)
        return updated

    # Asset folders
    async def get_asset_folder(self, folder_id: int) -> dict[str, Any] | None:
        """Fetch an asset folder by id, or None when it does not exist."""
        try:
            data = await self._call("GET", f"asset_folders/{folder_id}", action="pull_asset_folder")
        except NotFoundError:
            return None
        return data.get("asset_folder") or None

    async def create_asset_folder(self, folder: dict[str, Any]) -> dict[str, Any]:
        """Create an asset folder."""
        data = await self._call(
            "POST",
            "asset_folders",
            json_data={"asset_folder": folder},
            action="create_asset_folder",
        )
        created = data.get("asset_folder", {})
        logger.info("asset_folder_created", folder_id=created.get("id"), name=created.get("name"))
        return created

    async def update_asset_folder(self, folder_id: int, folder: dict[str, Any]) -> dict[str, Any]:
        """Update an asset folder.

        The endpoint answers with an empty body, so the submitted folder is
        returned with its remote id.
        """
        data = await self._call(
            "PUT",
            f"asset_folders/{folder_id}",
            json_data={"asset_folder": folder},
            action="update_asset_folder",
        )
        logger.info("asset_folder_updated", folder_id=folder_id)
        return data.get("asset_folder") or {**folder, "id": folder_id}

    # Assets
    async def get_asset(self, asset_id: int) -> dict[str, Any] | None:
        """Fetch an asset by id, or None when it does not exist or was deleted."""
        try:
            data = await self._call("GET", f"assets/{asset_id}", action="pull_asset")
        except NotFoundError:
            return None
        if not data or data.get("deleted_at"):
            return None
        return data

    async def update_asset(self, asset_id: int, asset: dict[str, Any]) -> dict[str, Any]:
        """Update asset metadata."""
        data = await self._call(
            "PUT", f"assets/{asset_id}", json_data={"asset": asset}, action="update_asset"
        )
        logger.info("asset_updated", asset_id=asset_id)
        return data.get("asset") or {**asset, "id": asset_id}

    async def upload_asset(
        self,
        file_path: str | Path,
        asset: dict[str, Any],
    ) -> dict[str, Any]:
        """Upload a binary file as a new asset.

        The upload is a three step flow: request a signed upload, post the
        file to the returned storage URL, then confirm with ``finish_upload``.

        Args:
            file_path: Local path of the binary
            asset: Asset metadata (``short_filename``, ``asset_folder_id``, ...)

        Returns:
            The finished remote asset
        """
        file_path = Path(file_path)
        content = await asyncio.to_thread(file_path.read_bytes)
        short_filename = asset.get("short_filename") or file_path.name
        content_type = mimetypes.guess_type(short_filename)[0] or "application/octet-stream"

        sign_payload: dict[str, Any] = {
            "filename": short_filename,
            "size": asset.get("size") or "0x0",
            "validate_upload": 1,
        }
        if asset.get("asset_folder_id") is not None:
            sign_payload["asset_folder_id"] = asset["asset_folder_id"]

        signed = await self._call("POST", "assets", json_data=sign_payload, action="sign_asset")

        try:
            response = await self.upload_client.post(
                signed["post_url"],
                data=signed.get("fields", {}),
                files={"file": (short_filename, content, content_type)},
            )
        except httpx.TransportError as e:
            raise NetworkError(f"Asset upload failed: {e}", action="upload_asset") from e
        if response.status_code >= 400:
            self._handle_error_response(response, action="upload_asset")

        finished = await self._call(
            "GET", f"assets/{signed['id']}/finish_upload", action="finish_upload"
        )
        logger.info(
            "asset_uploaded",
            asset_id=signed["id"],
            short_filename=short_filename,
            size_bytes=len(content),
        )
        return {**asset, **finished, "id": finished.get("id", signed["id"])}

    async def download_file(self, url: str, destination: str | Path) -> Path:
        """Download a remote file, such as an asset given by URL.

        Like signed uploads, the request goes out without the API token.
        """
        destination = Path(destination)
        try:
            response = await self.upload_client.get(url, follow_redirects=True)
        except httpx.TransportError as e:
            raise NetworkError(f"Asset download failed: {e}", action="download_asset") from e
        if response.status_code >= 400:
            self._handle_error_response(response, action="download_asset")

        try:
            await asyncio.to_thread(destination.write_bytes, response.content)
        except OSError as e:
            raise FileSystemError.from_os_error("write downloaded asset", e) from e
        logger.info("asset_downloaded", url=url, size_bytes=len(response.content))
        return destination

    async def close(self) -> None:
        """Close the API and upload clients."""
        await self.upload_client.aclose()
        await super().close()
