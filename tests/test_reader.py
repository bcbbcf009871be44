"""Tests for local entity reading and dependency ordering."""

import asyncio
from types import SimpleNamespace

import pytest

from conftest import make_story, write_json, write_story
from content_migration.client.exceptions import FileSystemError, FileSystemErrorKind
from content_migration.migration.reader import (
    DependencyOrderedReader,
    ParentGate,
    read_local_entities,
    uuid_from_filename,
)


def node(key, parent=None):
    return SimpleNamespace(id=key, parent_id=parent)


def order_of(reader):
    return [entity.id for entity in reader]


class TestDependencyOrderedReader:
    def test_parents_come_before_children(self):
        entities = [node(3, 2), node(2, 1), node(1), node(4, 1)]

        order = order_of(DependencyOrderedReader(entities))

        assert sorted(order) == [1, 2, 3, 4]
        assert order.index(1) < order.index(2) < order.index(3)
        assert order.index(1) < order.index(4)

    def test_each_entity_is_yielded_once(self):
        entities = [node(i, i - 1 if i > 1 else None) for i in range(1, 50)]

        order = order_of(DependencyOrderedReader(reversed(entities)))

        assert order == list(range(1, 50))

    def test_cycle_terminates_and_flushes_orphans(self):
        entities = [node(1), node(2, 3), node(3, 2), node(4, 2)]
        reader = DependencyOrderedReader(entities)

        order = order_of(reader)

        assert sorted(order) == [1, 2, 3, 4]
        assert order[0] == 1
        assert reader.orphans == {2, 3, 4}
        assert reader.is_orphan(node(2)) is True
        assert reader.is_orphan(node(1)) is False

    def test_parent_outside_the_set_is_an_orphan(self):
        reader = DependencyOrderedReader([node(1, 99), node(2, 1)])

        order = order_of(reader)

        assert sorted(order) == [1, 2]
        assert reader.orphans == {1, 2}

    def test_empty_input(self):
        assert order_of(DependencyOrderedReader([])) == []


class TestReadLocalEntities:
    @pytest.mark.asyncio
    async def test_reads_sorted_json_documents(self, tmp_path):
        write_story(tmp_path, make_story(2, "b"), prefix="b")
        write_story(tmp_path, make_story(1, "a"), prefix="a")
        (tmp_path / "manifest.jsonl").write_text("")
        (tmp_path / "nested").mkdir()

        entities = await read_local_entities(tmp_path)

        assert [entity.id for entity in entities] == [1, 2]
        assert entities[0].uuid == "a"
        assert entities[0].parent_id is None

    @pytest.mark.asyncio
    async def test_unreadable_files_are_reported_and_skipped(self, tmp_path):
        write_story(tmp_path, make_story(1, "a"))
        (tmp_path / "broken_x.json").write_text("{not json")
        write_json(tmp_path, "list_y.json", [1, 2])
        errors = []

        entities = await read_local_entities(tmp_path, on_error=lambda e, p: errors.append(p.name))

        assert [entity.id for entity in entities] == [1]
        assert sorted(errors) == ["broken_x.json", "list_y.json"]

    @pytest.mark.asyncio
    async def test_file_filter_receives_the_uuid(self, tmp_path):
        write_story(tmp_path, make_story(1, "keep"))
        write_story(tmp_path, make_story(2, "drop"))

        entities = await read_local_entities(tmp_path, file_filter=lambda uuid: uuid == "keep")

        assert [entity.uuid for entity in entities] == ["keep"]

    @pytest.mark.asyncio
    async def test_missing_directory_raises(self, tmp_path):
        with pytest.raises(FileSystemError) as excinfo:
            await read_local_entities(tmp_path / "missing")

        assert excinfo.value.kind is FileSystemErrorKind.NOT_FOUND


def test_uuid_from_filename():
    assert uuid_from_filename("about-us_5f1e-42.json") == "5f1e-42"
    assert uuid_from_filename("home.json") == "home"


@pytest.mark.asyncio
async def test_parent_gate_releases_waiters_on_settle():
    gate = ParentGate([1, 2])
    released = []

    async def child():
        await gate.wait_for(1)
        released.append("child")

    task = asyncio.create_task(child())
    await asyncio.sleep(0)
    assert released == []

    gate.settle(1)
    await asyncio.wait_for(task, timeout=1)
    assert released == ["child"]


@pytest.mark.asyncio
async def test_parent_gate_does_not_wait_for_unknown_keys():
    gate = ParentGate([1])

    await asyncio.wait_for(gate.wait_for(42), timeout=1)
    await asyncio.wait_for(gate.wait_for(None), timeout=1)
