# tests/conftest.py

import asyncio
import copy
import itertools
import json
from pathlib import Path
from typing import Any

import pytest

from content_migration.client.exceptions import UnprocessableEntityError
from content_migration.client.transports import Page
from content_migration.migration.schema import SchemaCatalog


class FakeRemote:
    """In-memory stand-in for one remote entity collection.

    Implements the transport protocol used by the migrators and records every
    write so tests can assert on payloads and ordering.
    """

    def __init__(self, entity: str = "story", start_id: int = 1000):
        self.entity = entity
        self.entities: dict[Any, dict[str, Any]] = {}
        self.created: list[dict[str, Any]] = []
        self.create_options: list[dict[str, Any]] = []
        self.updated: list[tuple[Any, dict[str, Any], dict[str, Any]]] = []
        self.fail_update_ids: set[Any] = set()
        self.downloads: list[str] = []
        self._ids = itertools.count(start_id)

    def seed(self, entity: dict[str, Any]) -> None:
        self.entities[entity["id"]] = copy.deepcopy(entity)

    async def get(self, entity_id: Any) -> dict[str, Any] | None:
        await asyncio.sleep(0)
        entity = self.entities.get(entity_id)
        return copy.deepcopy(entity) if entity is not None else None

    async def create(self, payload: dict[str, Any], **options: Any) -> dict[str, Any]:
        await asyncio.sleep(0)
        new_id = next(self._ids)
        created = {**copy.deepcopy(payload), "id": new_id, "uuid": f"{self.entity}-{new_id}"}
        if "file_path" in options:
            created["filename"] = f"https://a.example.com/f/{new_id}/{payload['short_filename']}"
        self.entities[new_id] = created
        self.created.append(copy.deepcopy(created))
        self.create_options.append(options)
        return copy.deepcopy(created)

    async def update(self, entity_id: Any, payload: dict[str, Any], **options: Any) -> dict[str, Any]:
        await asyncio.sleep(0)
        if entity_id in self.fail_update_ids:
            raise UnprocessableEntityError("Slug already taken", status_code=422)
        stored = {**self.entities.get(entity_id, {}), **copy.deepcopy(payload), "id": entity_id}
        self.entities[entity_id] = stored
        self.updated.append((entity_id, copy.deepcopy(payload), options))
        return copy.deepcopy(stored)

    async def download(self, url: str, destination: Path) -> Path:
        await asyncio.sleep(0)
        self.downloads.append(url)
        destination.write_bytes(b"\x89PNG")
        return destination

    async def list(self, page: int, per_page: int) -> Page:
        await asyncio.sleep(0)
        ordered = [self.entities[key] for key in sorted(self.entities)]
        start = (page - 1) * per_page
        items = [
            {k: v for k, v in entity.items() if k != "content"}
            for entity in ordered[start : start + per_page]
        ]
        return Page(items=items, total=len(ordered), per_page=per_page)

    def created_by_name(self, name: str) -> dict[str, Any]:
        return next(entity for entity in self.created if entity.get("name") == name)

    def last_update(self, entity_id: Any) -> dict[str, Any]:
        return [payload for updated_id, payload, _ in self.updated if updated_id == entity_id][-1]


def write_json(directory: Path, filename: str, data: Any) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def make_story(
    story_id: int,
    uuid: str,
    parent_id: int | None = 0,
    content: dict[str, Any] | None = None,
    **extra: Any,
) -> dict[str, Any]:
    return {
        "id": story_id,
        "uuid": uuid,
        "name": f"Story {story_id}",
        "slug": f"story-{story_id}",
        "parent_id": parent_id,
        "is_folder": False,
        "published": False,
        "content": content if content is not None else {"component": "page", "body": []},
        **extra,
    }


def write_story(directory: Path, story: dict[str, Any], prefix: str | None = None) -> Path:
    return write_json(directory, f"{prefix or story['slug']}_{story['uuid']}.json", story)


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def catalog() -> SchemaCatalog:
    return SchemaCatalog.from_components(
        [
            {
                "name": "page",
                "schema": {
                    "body": {"type": "bloks"},
                    "link": {"type": "multilink"},
                    "image": {"type": "asset"},
                    "gallery": {"type": "multiasset"},
                    "text": {"type": "richtext"},
                    "related": {"type": "options", "source": "internal_stories"},
                    "authors": {"type": "options", "source": "internal_users"},
                    "tags": {"type": "options", "source": "internal_tags"},
                    "entries": {"type": "options", "source": "internal_datasources"},
                    "colors": {"type": "options"},
                    "map": {"type": "custom", "field_type": "map-picker"},
                    "title": {"type": "text"},
                },
            },
            {
                "name": "teaser",
                "schema": {
                    "image": {"type": "asset"},
                    "link": {"type": "multilink"},
                    "body": {"type": "bloks"},
                },
            },
        ]
    )
