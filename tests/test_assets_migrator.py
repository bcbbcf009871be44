"""Tests for asset folder, asset and asset reference pushes."""

import json

import pytest

from conftest import FakeRemote, make_story, write_json
from content_migration.client.exceptions import FileSystemError
from content_migration.migration.assets import (
    ASSET_RESULTS,
    FETCH_STORIES,
    FETCH_STORY_PAGES,
    FOLDER_RESULTS,
    STORY_PROCESS_RESULTS,
    STORY_UPDATE_RESULTS,
    AssetFolderMigrator,
    AssetMigrator,
    AssetReferenceUpdater,
    find_asset_binary,
    has_changed_asset_references,
    single_asset_data,
)
from content_migration.migration.identifier_map import Channel, IdentifierMap
from content_migration.migration.manifest import ManifestStore
from content_migration.migration.schema import SchemaCatalog

OLD_FILENAME = "https://a.example.com/f/1000/100x100/abc/cat.png"


def counts(summary):
    return summary.total, summary.succeeded, summary.skipped, summary.failed


@pytest.fixture
def assets_dir(tmp_path):
    return tmp_path / "assets" / "1000"


def write_asset(directory, asset_id=10, name="cat", folder_id=None, binary=True, **extra):
    sidecar = {
        "id": asset_id,
        "filename": f"https://a.example.com/f/1000/100x100/abc/{name}.png",
        "short_filename": f"{name}.png",
        "asset_folder_id": folder_id,
        "alt": f"A {name}",
        **extra,
    }
    path = write_json(directory, f"{name}_{asset_id}.json", sidecar)
    if binary:
        directory.joinpath(f"{name}_{asset_id}.png").write_bytes(b"\x89PNG")
    return path


class TestAssetFolderMigrator:
    @pytest.mark.asyncio
    async def test_child_folder_files_before_parent_are_created_under_the_new_parent(
        self, assets_dir, tmp_path
    ):
        folders_dir = assets_dir / "folders"
        write_json(folders_dir, "a-child_2.json", {"id": 2, "name": "Child", "parent_id": 1})
        write_json(folders_dir, "b-grandchild_3.json", {"id": 3, "name": "Grandchild", "parent_id": 2})
        write_json(folders_dir, "z-root_1.json", {"id": 1, "name": "Root", "parent_id": 0})
        remote = FakeRemote("asset_folder", start_id=500)
        maps = IdentifierMap()
        manifest_path = tmp_path / "folders.jsonl"

        summaries = await AssetFolderMigrator(
            remote, maps, ManifestStore(manifest_path), concurrency=4
        ).run(folders_dir)

        root = remote.created_by_name("Root")
        child = remote.created_by_name("Child")
        grandchild = remote.created_by_name("Grandchild")
        assert "parent_id" not in root
        assert child["parent_id"] == root["id"]
        assert grandchild["parent_id"] == child["id"]
        assert maps.get(Channel.ASSET_FOLDERS, 2) == child["id"]
        assert counts(summaries[FOLDER_RESULTS]) == (3, 3, 0, 0)
        assert len(manifest_path.read_text().splitlines()) == 3

    @pytest.mark.asyncio
    async def test_mapped_existing_folder_is_updated(self, assets_dir, tmp_path):
        folders_dir = assets_dir / "folders"
        write_json(folders_dir, "root_1.json", {"id": 1, "name": "Renamed", "parent_id": None})
        remote = FakeRemote("asset_folder", start_id=500)
        remote.seed({"id": 77, "name": "Root"})
        maps = IdentifierMap({Channel.ASSET_FOLDERS: {1: 77}})
        manifest_path = tmp_path / "folders.jsonl"

        summaries = await AssetFolderMigrator(remote, maps, ManifestStore(manifest_path)).run(
            folders_dir
        )

        assert remote.created == []
        assert remote.last_update(77) == {"name": "Renamed"}
        assert not manifest_path.exists()
        assert counts(summaries[FOLDER_RESULTS]) == (1, 1, 0, 0)

    @pytest.mark.asyncio
    async def test_missing_folder_directory_is_an_empty_stage(self, assets_dir, tmp_path):
        summaries = await AssetFolderMigrator(
            FakeRemote(), IdentifierMap(), ManifestStore(tmp_path / "m.jsonl")
        ).run(assets_dir / "folders")

        assert counts(summaries[FOLDER_RESULTS]) == (0, 0, 0, 0)


class TestAssetMigrator:
    @pytest.mark.asyncio
    async def test_new_asset_is_uploaded_into_the_remapped_folder(self, assets_dir, tmp_path):
        write_asset(assets_dir, folder_id=1)
        remote = FakeRemote("asset", start_id=2000)
        maps = IdentifierMap({Channel.ASSET_FOLDERS: {1: 501}})
        manifest_path = tmp_path / "assets.jsonl"

        summaries = await AssetMigrator(remote, maps, ManifestStore(manifest_path)).run(assets_dir)

        created = remote.created[0]
        assert created["asset_folder_id"] == 501
        assert created["short_filename"] == "cat.png"
        assert created["alt"] == "A cat"
        assert remote.create_options[0]["file_path"] == assets_dir / "cat_10.png"
        assert maps.get(Channel.ASSETS, 10) == 2000
        assert maps.get(Channel.ASSETS, OLD_FILENAME) == created["filename"]
        record = json.loads(manifest_path.read_text())
        assert record["old_id"] == 10
        assert record["new_id"] == 2000
        assert record["new_filename"] == created["filename"]
        assert counts(summaries[ASSET_RESULTS]) == (1, 1, 0, 0)
        assert has_changed_asset_references(maps)

    @pytest.mark.asyncio
    async def test_mapped_existing_asset_only_gets_its_metadata_updated(self, assets_dir, tmp_path):
        write_asset(assets_dir, title="Cat")
        remote = FakeRemote("asset")
        remote.seed({"id": 2000, "filename": "https://a.example.com/f/2000/cat.png"})
        maps = IdentifierMap({Channel.ASSETS: {10: 2000}})
        manifest_path = tmp_path / "assets.jsonl"

        summaries = await AssetMigrator(remote, maps, ManifestStore(manifest_path)).run(assets_dir)

        assert remote.created == []
        update = remote.last_update(2000)
        assert update["title"] == "Cat"
        assert "short_filename" not in update
        assert not manifest_path.exists()
        assert counts(summaries[ASSET_RESULTS]) == (1, 1, 0, 0)

    @pytest.mark.asyncio
    async def test_missing_binary_fails_only_that_asset(self, assets_dir, tmp_path):
        write_asset(assets_dir, asset_id=10, name="cat")
        write_asset(assets_dir, asset_id=11, name="dog", binary=False)
        remote = FakeRemote("asset")

        summaries = await AssetMigrator(
            remote, IdentifierMap(), ManifestStore(tmp_path / "assets.jsonl")
        ).run(assets_dir)

        assert len(remote.created) == 1
        assert counts(summaries[ASSET_RESULTS]) == (2, 1, 0, 1)

    @pytest.mark.asyncio
    async def test_cleanup_removes_binary_and_sidecar(self, assets_dir, tmp_path):
        sidecar = write_asset(assets_dir)

        await AssetMigrator(
            FakeRemote("asset"), IdentifierMap(), ManifestStore(tmp_path / "a.jsonl"), cleanup=True
        ).run(assets_dir)

        assert not sidecar.exists()
        assert not assets_dir.joinpath("cat_10.png").exists()


class TestSingleAssetPush:
    @pytest.mark.asyncio
    async def test_local_file_uses_its_sidecar_and_the_given_destination_folder(
        self, assets_dir, tmp_path
    ):
        write_asset(assets_dir, folder_id=1)
        source = str(assets_dir / "cat_10.png")
        remote = FakeRemote("asset", start_id=2000)
        maps = IdentifierMap({Channel.ASSET_FOLDERS: {42: 501}})
        manifest_path = tmp_path / "assets.jsonl"

        summaries = await AssetMigrator(remote, maps, ManifestStore(manifest_path)).push_single(
            source, single_asset_data(source, folder_id=42)
        )

        created = remote.created[0]
        assert created["asset_folder_id"] == 42
        assert created["alt"] == "A cat"
        assert created["short_filename"] == "cat.png"
        assert remote.create_options[0]["file_path"] == assets_dir / "cat_10.png"
        assert maps.get(Channel.ASSETS, 10) == 2000
        assert json.loads(manifest_path.read_text())["old_id"] == 10
        assert counts(summaries[ASSET_RESULTS]) == (1, 1, 0, 0)

    @pytest.mark.asyncio
    async def test_inline_data_without_an_id_is_uploaded_without_a_manifest_row(
        self, assets_dir, tmp_path
    ):
        write_asset(assets_dir)
        source = str(assets_dir / "cat_10.png")
        remote = FakeRemote("asset", start_id=2000)
        manifest_path = tmp_path / "assets.jsonl"

        summaries = await AssetMigrator(
            remote, IdentifierMap(), ManifestStore(manifest_path)
        ).push_single(source, single_asset_data(source, data='{"title": "Inline"}'))

        created = remote.created[0]
        assert created["title"] == "Inline"
        assert "alt" not in created
        assert created["short_filename"] == "cat_10.png"
        assert "asset_folder_id" not in created
        assert not manifest_path.exists()
        assert counts(summaries[ASSET_RESULTS]) == (1, 1, 0, 0)

    @pytest.mark.asyncio
    async def test_url_is_downloaded_then_uploaded(self, tmp_path):
        url = "https://cdn.example.com/images/dog.png?width=100"
        remote = FakeRemote("asset", start_id=2000)
        migrator = AssetMigrator(
            remote, IdentifierMap(), ManifestStore(tmp_path / "assets.jsonl"), cleanup=True
        )

        summaries = await migrator.push_single(
            url, single_asset_data(url, short_filename="good-dog.png")
        )

        assert remote.downloads == [url]
        binary = remote.create_options[0]["file_path"]
        assert binary.name == "good-dog.png"
        assert not binary.exists()
        assert remote.created[0]["short_filename"] == "good-dog.png"
        assert migrator.pushed[0]["id"] == 2000
        assert counts(summaries[ASSET_RESULTS]) == (1, 1, 0, 0)

    @pytest.mark.asyncio
    async def test_missing_local_file_is_a_failed_push(self, tmp_path):
        source = str(tmp_path / "missing.png")
        remote = FakeRemote("asset")

        summaries = await AssetMigrator(
            remote, IdentifierMap(), ManifestStore(tmp_path / "assets.jsonl")
        ).push_single(source, single_asset_data(source))

        assert remote.created == []
        assert counts(summaries[ASSET_RESULTS]) == (1, 0, 0, 1)

    @pytest.mark.asyncio
    async def test_cleanup_removes_a_local_file_without_a_sidecar(self, tmp_path):
        binary = tmp_path / "cat.png"
        binary.write_bytes(b"\x89PNG")

        await AssetMigrator(
            FakeRemote("asset"), IdentifierMap(), ManifestStore(tmp_path / "a.jsonl"), cleanup=True
        ).push_single(str(binary), single_asset_data(str(binary)))

        assert not binary.exists()


class TestSingleAssetData:
    def test_inline_data_replaces_the_sidecar(self, tmp_path):
        write_asset(tmp_path)

        asset = single_asset_data(str(tmp_path / "cat_10.png"), data='{"alt": "Inline"}')

        assert asset == {"alt": "Inline", "short_filename": "cat_10.png", "asset_folder_id": None}

    def test_short_filename_option_wins_over_the_sidecar(self, tmp_path):
        write_asset(tmp_path)

        asset = single_asset_data(str(tmp_path / "cat_10.png"), short_filename="kitty.png")

        assert asset["short_filename"] == "kitty.png"
        assert asset["id"] == 10

    def test_sidecar_folder_is_replaced_by_the_folder_option(self, tmp_path):
        write_asset(tmp_path, folder_id=1)

        assert single_asset_data(str(tmp_path / "cat_10.png"))["asset_folder_id"] is None

    def test_missing_sidecar_means_no_metadata(self, tmp_path):
        asset = single_asset_data(str(tmp_path / "photo.jpg"), folder_id=3)

        assert asset == {"short_filename": "photo.jpg", "asset_folder_id": 3}

    def test_url_basename_ignores_the_query(self):
        asset = single_asset_data("https://cdn.example.com/a/b/dog.png?w=1")

        assert asset["short_filename"] == "dog.png"

    @pytest.mark.parametrize("raw", ["not json", "[1, 2]", '"text"'])
    def test_inline_data_must_be_a_json_object(self, tmp_path, raw):
        with pytest.raises(ValueError, match="Invalid asset data JSON"):
            single_asset_data(str(tmp_path / "cat.png"), data=raw)

    def test_invalid_sidecar_is_rejected(self, tmp_path):
        tmp_path.joinpath("cat.json").write_text("{broken")

        with pytest.raises(ValueError, match="Invalid sidecar JSON"):
            single_asset_data(str(tmp_path / "cat.png"))


def test_find_asset_binary_requires_a_sibling_file(tmp_path):
    sidecar = write_asset(tmp_path, binary=False)

    with pytest.raises(FileSystemError):
        find_asset_binary(sidecar)


class TestAssetReferenceUpdater:
    @pytest.mark.asyncio
    async def test_every_remote_story_is_rewritten_page_by_page(self, catalog):
        stories = FakeRemote("story")
        for story_id in (1, 2, 3):
            stories.seed(
                make_story(
                    story_id,
                    f"uuid-{story_id}",
                    content={
                        "component": "page",
                        "image": {"id": 10, "filename": OLD_FILENAME},
                        "body": [],
                    },
                    published=story_id == 1,
                )
            )
        maps = IdentifierMap(
            {Channel.ASSETS: {10: 2000, OLD_FILENAME: "https://a.example.com/f/2000/cat.png"}}
        )

        summaries = await AssetReferenceUpdater(stories, maps, catalog, per_page=2).run()

        for story_id in (1, 2, 3):
            image = stories.last_update(story_id)["content"]["image"]
            assert image == {"id": 2000, "filename": "https://a.example.com/f/2000/cat.png"}
        published = {story_id: options["publish"] for story_id, _, options in stories.updated}
        assert published == {1: True, 2: False, 3: False}
        assert counts(summaries[FETCH_STORY_PAGES]) == (2, 2, 0, 0)
        assert counts(summaries[FETCH_STORIES]) == (3, 3, 0, 0)
        assert counts(summaries[STORY_PROCESS_RESULTS]) == (3, 3, 0, 0)
        assert counts(summaries[STORY_UPDATE_RESULTS]) == (3, 3, 0, 0)

    @pytest.mark.asyncio
    async def test_story_that_fails_to_process_is_not_updated(self, catalog):
        stories = FakeRemote("story")
        stories.seed(make_story(1, "uuid-1", content={"component": "page", "gallery": {"id": 10}}))
        stories.seed(make_story(2, "uuid-2"))
        maps = IdentifierMap({Channel.ASSETS: {10: 2000, "a": "b"}})

        summaries = await AssetReferenceUpdater(stories, maps, catalog).run()

        assert [entity_id for entity_id, _, _ in stories.updated] == [2]
        assert counts(summaries[STORY_PROCESS_RESULTS]) == (2, 1, 0, 1)
        assert counts(summaries[STORY_UPDATE_RESULTS]) == (1, 1, 0, 0)

    @pytest.mark.asyncio
    async def test_without_component_schemas_nothing_is_updated(self):
        stories = FakeRemote("story")
        stories.seed(make_story(1, "uuid-1"))

        summaries = await AssetReferenceUpdater(stories, IdentifierMap(), SchemaCatalog()).run()

        assert summaries == {}
        assert stories.updated == []


def test_unchanged_filenames_are_not_a_reason_to_update_stories():
    assert not has_changed_asset_references(IdentifierMap({Channel.ASSETS: {10: 20}}))
    assert not has_changed_asset_references(IdentifierMap({Channel.ASSETS: {"a.png": "a.png"}}))
    assert has_changed_asset_references(IdentifierMap({Channel.ASSETS: {"a.png": "b.png"}}))


def test_pushed_asset_metadata_is_a_reason_to_update_stories():
    maps = IdentifierMap({Channel.ASSETS: {10: 20}})

    assert not has_changed_asset_references(maps, [{"id": 20, "meta_data": {}}])
    assert has_changed_asset_references(maps, [{"id": 20, "meta_data": {"alt": "Cat"}}])
