"""Durable old-to-new identifier manifest.

The manifest is a newline-delimited JSON file with one mapping per line::

    {"old_id": 101, "new_id": 9001, "created_at": "2024-05-01T10:00:00+00:00"}

Lines are only ever appended. The file may contain several lines for the
same ``old_id`` (for example after a resumed run); the last one wins.
"""

import asyncio
import json
import os
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from content_migration.client.exceptions import FileSystemError, ManifestError
from content_migration.migration.identifier_map import Channel, Identifier, IdentifierMap
from content_migration.utils.logging import get_logger

logger = get_logger(__name__)


def utc_now() -> str:
    return datetime.now(UTC).isoformat()


@dataclass
class ManifestEntry:
    """One old-to-new identifier mapping."""

    old_id: Identifier
    new_id: Identifier
    old_filename: str | None = None
    new_filename: str | None = None
    created_at: str = field(default_factory=utc_now)

    @classmethod
    def from_dict(cls, data: Any) -> "ManifestEntry":
        if not isinstance(data, dict) or "old_id" not in data or "new_id" not in data:
            raise ValueError("expected an object with old_id and new_id")
        return cls(
            old_id=data["old_id"],
            new_id=data["new_id"],
            old_filename=data.get("old_filename"),
            new_filename=data.get("new_filename"),
            created_at=data.get("created_at") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"old_id": self.old_id, "new_id": self.new_id}
        if self.old_filename is not None:
            data["old_filename"] = self.old_filename
        if self.new_filename is not None:
            data["new_filename"] = self.new_filename
        data["created_at"] = self.created_at
        return data

    def to_line(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":")) + "\n"


def load_manifest(path: str | Path) -> list[ManifestEntry]:
    """Read and deduplicate a manifest file.

    Args:
        path: Manifest file path

    Returns:
        One entry per ``old_id`` (the last one in the file); an empty list
        if the file does not exist

    Raises:
        ManifestError: If a line is not a valid manifest record
        FileSystemError: If the file exists but cannot be read
    """
    path = Path(path)
    entries: dict[Identifier, ManifestEntry] = {}

    try:
        with open(path, "rb") as f:
            for line_number, raw in enumerate(f, start=1):
                if not raw.strip():
                    continue
                try:
                    # UnicodeDecodeError is a ValueError
                    entry = ManifestEntry.from_dict(json.loads(raw.decode("utf-8")))
                    # Keep the latest mapping at the position it was written
                    entries.pop(entry.old_id, None)
                    entries[entry.old_id] = entry
                except (ValueError, TypeError) as e:
                    raise ManifestError(
                        f"Malformed manifest record: {e}", path=str(path), line_number=line_number
                    ) from e
    except FileNotFoundError:
        return []
    except OSError as e:
        raise FileSystemError.from_os_error("read manifest", e) from e

    return list(entries.values())


class ManifestStore:
    """Append-only manifest file shared by concurrent workers.

    Appends are serialized by an asyncio lock and each batch of lines is
    written with a single ``write`` followed by flush and fsync, so a failed
    append never damages lines that were already durable.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def load(self) -> list[ManifestEntry]:
        """Load the deduplicated entries of this manifest."""
        entries = await asyncio.to_thread(load_manifest, self.path)
        logger.info("manifest_loaded", path=str(self.path), entries=len(entries))
        return entries

    async def merge_into(self, maps: IdentifierMap, channel: Channel) -> list[ManifestEntry]:
        """Load this manifest and seed ``channel`` of ``maps`` with it."""
        entries = await self.load()
        maps.merge(channel, entries)
        return entries

    async def append(self, *entries: ManifestEntry) -> None:
        """Durably append one or more entries as a single write.

        Raises:
            FileSystemError: If the write fails
        """
        if not entries:
            return
        payload = "".join(entry.to_line() for entry in entries)
        async with self._lock:
            try:
                await asyncio.to_thread(self._write, payload)
            except OSError as e:
                raise FileSystemError.from_os_error("append to manifest", e) from e

        logger.debug("manifest_appended", path=str(self.path), entries=len(entries))

    def _write(self, payload: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())


class DryRunManifestStore(ManifestStore):
    """Manifest that reads the real file but never writes to it."""

    async def append(self, *entries: ManifestEntry) -> None:
        logger.debug("dry_run_manifest_append", path=str(self.path), entries=len(entries))
