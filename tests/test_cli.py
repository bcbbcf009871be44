"""Tests for the command-line interface."""

import json

import httpx
import pytest
from click.testing import CliRunner

from conftest import make_story, write_json, write_story
from content_migration.cli.context import MigrationContext
from content_migration.cli.main import cli
from content_migration.client.management_client import ManagementClient

CONFIG_YAML = """\
target:
  url: https://mapi.example.com/v1
  token: super-secret-token
paths:
  base_dir: {base_dir}
performance:
  rate_limit: 50
  retry_attempts: 1
"""


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config_path = tmp_path / "config.yaml"
    config_path.write_text(CONFIG_YAML.format(base_dir=tmp_path / "content"))
    return tmp_path, config_path


def invoke(config_path, *args):
    return CliRunner().invoke(
        cli, ["--config", str(config_path), "--no-progress", *args], catch_exceptions=False
    )


def install_api(monkeypatch, handler):
    """Route every management client created by the CLI through ``handler``."""

    def management_client(self, space_id):
        if space_id not in self._clients:
            self._clients[space_id] = ManagementClient(
                config=self.config.target,
                space_id=space_id,
                performance=self.config.performance,
                transport=httpx.MockTransport(handler),
            )
        return self._clients[space_id]

    monkeypatch.setattr(MigrationContext, "management_client", management_client)


def test_config_show_masks_the_token(workspace):
    _, config_path = workspace

    result = invoke(config_path, "config", "show")

    assert result.exit_code == 0
    assert "super-secret-token" not in result.output
    assert "(masked)" in result.output


def test_missing_configuration_file_is_a_usage_error(workspace):
    tmp_path, _ = workspace

    result = invoke(tmp_path / "missing.yaml", "config", "show")

    assert result.exit_code == 2


def test_push_without_a_destination_space_is_rejected(workspace):
    _, config_path = workspace

    result = invoke(config_path, "stories", "push", "--from", "1000")

    assert result.exit_code == 2
    assert "Missing destination space" in result.output


def test_stories_push_without_component_schemas_fails(workspace, monkeypatch):
    tmp_path, config_path = workspace
    write_story(tmp_path / "content" / "stories" / "1000", make_story(1, "uuid-1"))
    install_api(monkeypatch, lambda request: httpx.Response(404, json={}))

    result = invoke(config_path, "stories", "push", "--from", "1000", "--space", "2000")

    assert result.exit_code == 1


def test_dry_run_stories_push_reads_but_never_writes(workspace, monkeypatch):
    tmp_path, config_path = workspace
    content = tmp_path / "content"
    write_json(
        content / "components" / "1000",
        "components.json",
        [{"name": "page", "schema": {"body": {"type": "bloks"}}}],
    )
    write_story(content / "stories" / "1000", make_story(1, "uuid-1"))
    write_story(content / "stories" / "1000", make_story(2, "uuid-2", parent_id=1))
    methods = []

    def handler(request: httpx.Request) -> httpx.Response:
        methods.append(request.method)
        return httpx.Response(404, json={"error": "not found"})

    install_api(monkeypatch, handler)

    result = invoke(
        config_path, "stories", "push", "--from", "1000", "--space", "2000", "--dry-run"
    )

    assert result.exit_code == 0
    assert set(methods) <= {"GET"}
    assert not (content / "stories" / "2000" / "manifest.jsonl").exists()
    reports = list((content / "reports").glob("push_report_stories_push_*.json"))
    assert len(reports) == 1
    report = json.loads(reports[0].read_text())
    assert report["status"] == "success"
    assert report["dry_run"] is True
    assert report["stages"]["creationResults"]["succeeded"] == 2


def test_assets_push_uploads_a_single_local_file_into_the_given_folder(workspace, monkeypatch):
    tmp_path, config_path = workspace
    uploads = tmp_path / "uploads"
    write_json(uploads, "cat_10.json", {"id": 10, "alt": "A cat", "asset_folder_id": 1})
    binary = uploads / "cat_10.png"
    binary.write_bytes(b"\x89PNG")
    signed = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "s3.example.com":
            return httpx.Response(204)
        if request.method == "POST" and request.url.path == "/v1/spaces/2000/assets":
            signed.append(json.loads(request.content))
            return httpx.Response(
                200, json={"id": 77, "post_url": "https://s3.example.com/upload", "fields": {}}
            )
        if request.url.path == "/v1/spaces/2000/assets/77/finish_upload":
            return httpx.Response(200, json={"id": 77, "filename": "https://a.example.com/cat.png"})
        if request.method == "PUT" and request.url.path == "/v1/spaces/2000/assets/77":
            return httpx.Response(200, text="")
        return httpx.Response(404, json={"error": "not found"})

    install_api(monkeypatch, handler)

    result = invoke(config_path, "assets", "push", str(binary), "--space", "2000", "--folder", "42")

    assert result.exit_code == 0
    assert signed[0]["filename"] == "cat_10.png"
    assert signed[0]["asset_folder_id"] == 42
    manifest = tmp_path / "content" / "assets" / "2000" / "manifest.jsonl"
    record = json.loads(manifest.read_text())
    assert (record["old_id"], record["new_id"]) == (10, 77)


def test_assets_push_rejects_inline_data_that_is_not_an_object(workspace, monkeypatch):
    tmp_path, config_path = workspace
    install_api(monkeypatch, lambda request: httpx.Response(404, json={}))

    result = invoke(
        config_path, "assets", "push", str(tmp_path / "cat.png"), "--space", "2000", "--data", "[]"
    )

    assert result.exit_code == 2
    assert "Invalid asset data JSON" in result.output


def test_assets_push_single_asset_options_require_an_asset(workspace):
    _, config_path = workspace

    result = invoke(config_path, "assets", "push", "--space", "2000", "--folder", "42")

    assert result.exit_code == 2
    assert "require ASSET" in result.output
