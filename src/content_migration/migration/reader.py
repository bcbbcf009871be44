"""Local entity store and dependency-ordered reading.

Entities pulled from a space are stored one JSON document per file, named
``<slug or name>_<uuid or id>.json``. Before pushing, the documents are
ordered so that every parent is handed out before its children.
"""

import asyncio
import json
from collections.abc import Callable, Hashable, Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from content_migration.client.exceptions import FileSystemError
from content_migration.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class LocalEntity:
    """A locally stored entity and the file it was read from."""

    path: Path
    data: dict[str, Any]

    @property
    def id(self) -> Any:
        return self.data.get("id")

    @property
    def uuid(self) -> Any:
        return self.data.get("uuid")

    @property
    def parent_id(self) -> Any:
        # Root entities carry either null or 0
        return self.data.get("parent_id") or None

    @property
    def label(self) -> str:
        return str(self.data.get("slug") or self.data.get("name") or self.path.stem)


def uuid_from_filename(filename: str | Path) -> str:
    """Return the trailing ``_<uuid>`` part of a local entity file name."""
    stem = Path(filename).stem
    return stem.rsplit("_", 1)[-1]


def _read_document(path: Path) -> dict[str, Any]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object in {path.name}")
    return data


async def read_local_entity(path: str | Path) -> LocalEntity:
    """Read a single local entity.

    Raises:
        FileSystemError: If the file cannot be read
        ValueError: If the file is not a JSON object
    """
    path = Path(path)
    try:
        data = await asyncio.to_thread(_read_document, path)
    except OSError as e:
        raise FileSystemError.from_os_error("read local entity", e) from e
    return LocalEntity(path=path, data=data)


async def read_local_entities(
    directory: str | Path,
    file_filter: Callable[[str], bool] | None = None,
    on_error: Callable[[Exception, Path], None] | None = None,
) -> list[LocalEntity]:
    """Read every ``*.json`` entity directly inside ``directory``.

    Args:
        directory: Directory holding the entity files
        file_filter: Optional predicate on the UUID part of each file name
        on_error: Called for each file that cannot be read or parsed

    Returns:
        Entities in file-name order

    Raises:
        FileSystemError: If the directory itself cannot be listed
    """
    directory = Path(directory)
    try:
        files = await asyncio.to_thread(
            lambda: sorted(p for p in directory.iterdir() if p.suffix == ".json" and p.is_file())
        )
    except OSError as e:
        raise FileSystemError.from_os_error("read directory", e) from e

    if file_filter is not None:
        files = [p for p in files if file_filter(uuid_from_filename(p))]

    entities: list[LocalEntity] = []
    for path in files:
        try:
            entities.append(await read_local_entity(path))
        except (FileSystemError, ValueError) as e:
            logger.warning("local_entity_unreadable", path=str(path), error=str(e))
            if on_error:
                on_error(e, path)

    logger.info("local_entities_read", directory=str(directory), count=len(entities))
    return entities


class DependencyOrderedReader:
    """Yields entities so that parents come before their children.

    The working set is swept repeatedly. An entity is yielded once it has no
    parent or its parent has already been yielded. When a full sweep makes
    no progress (cycles, parents outside the set) every remaining entity is
    flushed as an orphan, so iteration always terminates.

    Example:
        >>> reader = DependencyOrderedReader(entities)
        >>> for entity in reader:
        ...     reader.is_orphan(entity)
    """

    def __init__(
        self,
        entities: Iterable[Any],
        key: Callable[[Any], Hashable] = lambda e: e.id,
        parent_key: Callable[[Any], Hashable | None] = lambda e: e.parent_id,
    ):
        self._entities = list(entities)
        self._key = key
        self._parent_key = parent_key
        self.orphans: set[Hashable] = set()

    def __len__(self) -> int:
        return len(self._entities)

    def is_orphan(self, entity: Any) -> bool:
        return self._key(entity) in self.orphans

    def __iter__(self) -> Iterator[Any]:
        working = list(self._entities)
        processed: set[Hashable] = set()

        while working:
            remaining = []
            for entity in working:
                parent = self._parent_key(entity)
                if parent is None or parent in processed:
                    processed.add(self._key(entity))
                    yield entity
                else:
                    remaining.append(entity)

            if len(remaining) == len(working):
                for entity in remaining:
                    self.orphans.add(self._key(entity))
                    processed.add(self._key(entity))
                logger.warning("orphaned_entities_flushed", count=len(remaining))
                yield from remaining
                return

            working = remaining


class ParentGate:
    """Lets concurrent workers wait until an entity's parent has settled.

    Dependency order only guarantees that a parent is *dispatched* before
    its child. A worker that needs the parent's new identifier waits on the
    gate; the parent's worker settles it on success or failure. Orphans must
    not wait, since their parent may never settle.
    """

    def __init__(self, keys: Iterable[Hashable]):
        self._events: dict[Hashable, asyncio.Event] = {key: asyncio.Event() for key in keys}

    def settle(self, key: Hashable) -> None:
        event = self._events.get(key)
        if event is not None:
            event.set()

    async def wait_for(self, key: Hashable | None) -> None:
        """Wait for ``key`` to settle; returns at once for unknown keys."""
        event = self._events.get(key) if key is not None else None
        if event is not None:
            await event.wait()
