"""
Story commands.

This module provides the command that pushes locally pulled stories into a
destination space.
"""

import asyncio
from datetime import UTC, datetime

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
from content_migration.client.transports import DryRunTransport, StoryTransport
from content_migration.migration.identifier_map import Channel, IdentifierMap
from content_migration.migration.manifest import DryRunManifestStore, ManifestStore
from content_migration.migration.schema import find_component_schemas
from content_migration.migration.stories import TwoPhaseMigrator
from content_migration.migration.summary import RunStatus, RunSummary, derive_run_status
from content_migration.reporting.progress import StageProgress
from content_migration.reporting.report import MigrationReport
from content_migration.utils.logging import get_logger

logger = get_logger(__name__)

# Manifests of other entity kinds that seed options-field channels
SEED_CHANNELS = (
    ("assets", Channel.ASSETS),
    ("users", Channel.USERS),
    ("tags", Channel.TAGS),
    ("datasources", Channel.DATASOURCES),
)


@click.group(name="stories")
def stories() -> None:
    """Story commands.

    Push stories pulled from a source space into a destination space.
    """
    pass


@stories.command(name="push")
@click.option("--from", "from_space", help="Source space of the local stories")
@click.option("--space", "space", help="Destination space")
@click.option("--dry-run", is_flag=True, default=None, help="Preview without writing anything")
@click.option(
    "--publish/--no-publish",
    default=None,
    help="Publish every story (default: mirror each story's published state)",
)
@click.option("--cleanup", is_flag=True, default=None, help="Delete local files once pushed")
@pass_context
@requires_config
@handle_errors
def push(
    ctx: MigrationContext,
    from_space: str | None,
    space: str | None,
    dry_run: bool | None,
    publish: bool | None,
    cleanup: bool | None,
) -> None:
    """Push local stories into a space.

    Stories are pushed in two phases: placeholders are created for every
    story first, then every reference is remapped to the new identifiers
    and the full stories are written. Stories already recorded in the
    manifest are skipped, so an interrupted push can simply be re-run.

    Examples:

        # Push stories pulled from space 1000 into space 2000
        content-bridge stories push --from 1000 --space 2000

        # Preview without writing
        content-bridge stories push --from 1000 --space 2000 --dry-run
    """
    config = ctx.config
    options = config.options
    source, target = resolve_spaces(config, from_space, space)
    dry_run = options.dry_run if dry_run is None else dry_run
    publish = options.publish if publish is None else publish
    cleanup = options.cleanup if cleanup is None else cleanup

    if dry_run:
        echo_warning("Dry run: nothing will be written to the space or to manifests")
    echo_info(f"Pushing stories from space {source} to space {target}")

    started_at = datetime.now(UTC)
    summaries = asyncio.run(
        _push_stories(ctx, source, target, dry_run=dry_run, publish=publish, cleanup=cleanup)
    )
    status = derive_run_status(summaries.values())

    click.echo()
    print_summaries(summaries)
    write_report(
        config,
        MigrationReport(
            "stories push",
            summaries,
            status,
            context={"source_space": source, "target_space": target, "dry_run": dry_run},
            started_at=started_at,
        ),
    )
    echo_status(status)

    if status is not RunStatus.SUCCESS:
        raise click.exceptions.Exit(exit_code_for(status))


async def _push_stories(
    ctx: MigrationContext,
    source: str,
    target: str,
    dry_run: bool,
    publish: bool | None,
    cleanup: bool,
) -> dict[str, RunSummary]:
    config = ctx.config
    paths = config.paths
    store_cls = DryRunManifestStore if dry_run else ManifestStore

    try:
        maps = IdentifierMap()
        manifest = store_cls(paths.manifest("stories", target))
        await manifest.merge_into(maps, Channel.STORIES)
        for kind, channel in SEED_CHANNELS:
            await ManifestStore(paths.manifest(kind, target)).merge_into(maps, channel)

        catalog = await asyncio.to_thread(
            find_component_schemas, paths.resolve("components", source)
        )
        logger.info(
            "push_prepared",
            stories_mapped=maps.size(Channel.STORIES),
            assets_mapped=maps.size(Channel.ASSETS),
            components=len(catalog),
        )

        transport = StoryTransport(ctx.management_client(target))
        if dry_run:
            transport = DryRunTransport(transport, "story")

        with StageProgress(enabled=ctx.show_progress) as progress:
            migrator = TwoPhaseMigrator(
                transport,
                maps,
                manifest,
                catalog,
                publish=publish,
                cleanup=cleanup and not dry_run,
                concurrency=config.performance.max_concurrent,
                queue_size=config.performance.queue_size,
                progress=progress,
            )
            return await migrator.run(paths.resolve("stories", source))
    finally:
        await ctx.aclose()

