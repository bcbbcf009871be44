"""
Asset commands.

This module provides the command that pushes locally pulled asset folders
and assets into a destination space and optionally rewrites asset
references in its stories.
"""

import asyncio
from datetime import UTC, datetime
from typing import Any

import click

from content_migration.cli.context import MigrationContext
from content_migration.cli.decorators import handle_errors, pass_context, requires_config
from content_migration.cli.utils import (
    echo_info,
    echo_status,
    echo_warning,
    exit_code_for,
    print_summaries,
    resolve_spaces,
    write_report,
)
from content_migration.client.transports import (
    AssetFolderTransport,
    AssetTransport,
    DryRunTransport,
    StoryTransport,
)
from content_migration.migration.assets import (
    AssetFolderMigrator,
    AssetMigrator,
    AssetReferenceUpdater,
    has_changed_asset_references,
    single_asset_data,
)
from content_migration.migration.identifier_map import Channel, IdentifierMap
from content_migration.migration.manifest import DryRunManifestStore, ManifestStore
from content_migration.migration.schema import find_component_schemas
from content_migration.migration.summary import RunStatus, RunSummary, derive_run_status
from content_migration.reporting.progress import StageProgress
from content_migration.reporting.report import MigrationReport
from content_migration.utils.logging import get_logger

logger = get_logger(__name__)


@click.group(name="assets")
def assets() -> None:
    """Asset commands.

    Push asset folders and assets pulled from a source space into a
    destination space.
    """
    pass


@assets.command(name="push")
@click.argument("asset", required=False)
@click.option("--from", "from_space", help="Source space of the local assets")
@click.option("--space", "space", help="Destination space")
@click.option("--dry-run", is_flag=True, default=None, help="Preview without writing anything")
@click.option("--cleanup", is_flag=True, default=None, help="Delete local files once pushed")
@click.option(
    "--update-stories",
    is_flag=True,
    default=None,
    help="Rewrite asset references in the stories of the destination space",
)
@click.option("--data", help="Inline JSON metadata for ASSET, replacing its sidecar")
@click.option("--short-filename", help="Short filename for ASSET")
@click.option("--folder", "folder_id", type=int, help="Destination folder id for ASSET")
@pass_context
@requires_config
@handle_errors
def push(
    ctx: MigrationContext,
    asset: str | None,
    from_space: str | None,
    space: str | None,
    dry_run: bool | None,
    cleanup: bool | None,
    update_stories: bool | None,
    data: str | None,
    short_filename: str | None,
    folder_id: int | None,
) -> None:
    """Push local asset folders and assets into a space.

    Folders are created parent first, then assets are uploaded into their
    remapped folders. With --update-stories, every story of the destination
    space is rewritten to reference the new asset ids and filenames.

    Given ASSET (a local file or an http(s) URL), only that asset is pushed.
    Its metadata comes from --data, else from the sidecar next to a local
    file.

    Examples:

        content-bridge assets push --from 1000 --space 2000 --update-stories

        content-bridge assets push ./cat.png --space 2000 --folder 42
    """
    config = ctx.config
    options = config.options
    source, target = resolve_spaces(config, from_space, space)
    dry_run = options.dry_run if dry_run is None else dry_run
    cleanup = options.cleanup if cleanup is None else cleanup
    update_stories = options.update_stories if update_stories is None else update_stories

    single = None
    if asset is not None:
        try:
            single = single_asset_data(
                asset, data, short_filename=short_filename, folder_id=folder_id
            )
        except ValueError as e:
            hint = "'--data'" if data is not None else "'ASSET'"
            raise click.BadParameter(str(e), param_hint=hint) from e
    elif data is not None or short_filename is not None or folder_id is not None:
        raise click.UsageError("--data, --short-filename and --folder require ASSET.")

    if dry_run:
        echo_warning("Dry run: nothing will be written to the space or to manifests")
    echo_info(f"Pushing assets from space {source} to space {target}")

    context: dict[str, Any] = {"source_space": source, "target_space": target, "dry_run": dry_run}
    if asset is not None:
        context["asset"] = asset

    started_at = datetime.now(UTC)
    summaries = asyncio.run(
        _push_assets(
            ctx,
            source,
            target,
            dry_run=dry_run,
            cleanup=cleanup,
            update_stories=update_stories,
            single=(asset, single) if single is not None else None,
        )
    )
    status = derive_run_status(summaries.values())

    click.echo()
    print_summaries(summaries)
    write_report(
        config,
        MigrationReport(
            "assets push",
            summaries,
            status,
            context=context,
            started_at=started_at,
        ),
    )
    echo_status(status)

    if status is not RunStatus.SUCCESS:
        raise click.exceptions.Exit(exit_code_for(status))


async def _push_assets(
    ctx: MigrationContext,
    source: str,
    target: str,
    dry_run: bool,
    cleanup: bool,
    update_stories: bool,
    single: tuple[str, dict[str, Any]] | None = None,
) -> dict[str, RunSummary]:
    config = ctx.config
    paths = config.paths
    performance = config.performance
    store_cls = DryRunManifestStore if dry_run else ManifestStore
    summaries: dict[str, RunSummary] = {}

    try:
        maps = IdentifierMap()
        folder_manifest = store_cls(paths.folder_manifest(target))
        asset_manifest = store_cls(paths.manifest("assets", target))
        await folder_manifest.merge_into(maps, Channel.ASSET_FOLDERS)
        await asset_manifest.merge_into(maps, Channel.ASSETS)

        client = ctx.management_client(target)
        folder_transport = AssetFolderTransport(client)
        asset_transport = AssetTransport(client)
        story_transport = StoryTransport(client)
        if dry_run:
            folder_transport = DryRunTransport(folder_transport, "asset_folder")
            asset_transport = DryRunTransport(asset_transport, "asset")
            story_transport = DryRunTransport(story_transport, "story")

        local_assets = paths.resolve("assets", source)
        with StageProgress(enabled=ctx.show_progress) as progress:
            folders = AssetFolderMigrator(
                folder_transport,
                maps,
                folder_manifest,
                concurrency=performance.max_concurrent,
                queue_size=performance.queue_size,
                progress=progress,
            )
            summaries.update(await folders.run(local_assets / "folders"))

            migrator = AssetMigrator(
                asset_transport,
                maps,
                asset_manifest,
                cleanup=cleanup and not dry_run,
                concurrency=performance.max_concurrent,
                queue_size=performance.queue_size,
                progress=progress,
            )
            if single is not None:
                summaries.update(await migrator.push_single(*single))
            else:
                summaries.update(await migrator.run(local_assets))

            if update_stories and has_changed_asset_references(maps, migrator.pushed):
                catalog = await asyncio.to_thread(
                    find_component_schemas, paths.resolve("components", source)
                )
                updater = AssetReferenceUpdater(
                    story_transport,
                    maps,
                    catalog,
                    per_page=performance.per_page,
                    concurrency=performance.max_concurrent,
                    queue_size=performance.queue_size,
                    progress=progress,
                )
                summaries.update(await updater.run())
            elif update_stories:
                logger.info("story_update_skipped", reason="no asset references changed")

        return summaries
    finally:
        await ctx.aclose()
