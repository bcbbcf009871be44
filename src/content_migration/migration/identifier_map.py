"""In-memory old-to-new identifier maps for one run.

Each reference channel has its own map. The stories channel holds both
numeric ids and UUIDs; the assets channel holds numeric ids and filenames.
"""

import threading
from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any, Protocol

from content_migration.utils.logging import get_logger

logger = get_logger(__name__)

Identifier = int | str


class Channel(str, Enum):
    """Reference channels an identifier can be mapped on."""

    STORIES = "stories"
    ASSETS = "assets"
    ASSET_FOLDERS = "asset_folders"
    USERS = "users"
    TAGS = "tags"
    DATASOURCES = "datasources"

    @classmethod
    def from_options_source(cls, source: str | None) -> "Channel | None":
        """Channel selected by an options field ``source``, if any."""
        return OPTIONS_SOURCES.get(source or "")


OPTIONS_SOURCES: dict[str, Channel] = {
    "internal_stories": Channel.STORIES,
    "internal_users": Channel.USERS,
    "internal_tags": Channel.TAGS,
    "internal_datasources": Channel.DATASOURCES,
}


class MappingRecord(Protocol):
    old_id: Identifier
    new_id: Identifier
    old_filename: str | None
    new_filename: str | None


class IdentifierMap:
    """Thread-safe per-channel identifier mappings.

    Example:
        >>> maps = IdentifierMap({Channel.ASSETS: {10: 20}})
        >>> maps.resolve(Channel.ASSETS, 10)
        20
    """

    def __init__(self, initial: Mapping[Channel, Mapping[Identifier, Identifier]] | None = None):
        self._lock = threading.RLock()
        self._maps: dict[Channel, dict[Identifier, Identifier]] = {
            channel: {} for channel in Channel
        }
        for channel, mapping in (initial or {}).items():
            self._maps[Channel(channel)].update(mapping)

    def get(self, channel: Channel, key: Any, default: Any = None) -> Any:
        """Return the new identifier for ``key`` or ``default``."""
        if key is None:
            return default
        with self._lock:
            try:
                return self._maps[channel].get(key, default)
            except TypeError:
                # Unhashable values (malformed content) are never mapped
                return default

    def resolve(self, channel: Channel, key: Any) -> Any:
        """Return the mapped identifier, or ``key`` itself when unmapped."""
        return self.get(channel, key, key)

    def contains(self, channel: Channel, key: Any) -> bool:
        return self.get(channel, key, _MISSING) is not _MISSING

    def set(self, channel: Channel, old: Identifier, new: Identifier) -> None:
        with self._lock:
            self._maps[channel][old] = new

    def merge(self, channel: Channel, entries: Iterable[MappingRecord]) -> int:
        """Seed a channel from manifest entries.

        Filenames are merged alongside ids when an entry carries both.

        Returns:
            Number of entries merged
        """
        count = 0
        with self._lock:
            mapping = self._maps[channel]
            for entry in entries:
                mapping[entry.old_id] = entry.new_id
                if entry.old_filename and entry.new_filename:
                    mapping[entry.old_filename] = entry.new_filename
                count += 1

        logger.debug("identifier_map_merged", channel=channel.value, entries=count)
        return count

    def snapshot(self, channel: Channel) -> dict[Identifier, Identifier]:
        """Return a copy of one channel."""
        with self._lock:
            return dict(self._maps[channel])

    def size(self, channel: Channel) -> int:
        with self._lock:
            return len(self._maps[channel])


_MISSING = object()
