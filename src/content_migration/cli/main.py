"""
Main CLI entry point for Content Bridge.

This module provides the command-line interface for pushing locally pulled
stories and assets into a destination space.
"""

import sys
from pathlib import Path

import click
from dotenv import load_dotenv

from content_migration import __version__
from content_migration.cli.commands import assets as assets_commands
from content_migration.cli.commands import config as config_commands
from content_migration.cli.commands import stories as stories_commands
from content_migration.cli.context import MigrationContext
from content_migration.utils.logging import configure_logging, get_logger

# Load environment variables from .env file
load_dotenv()

logger = get_logger(__name__)


@click.group()
@click.version_option(version=__version__, prog_name="content-bridge")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
    envvar="CONTENT_BRIDGE_CONFIG",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    help="Set console logging level (file logging stays at DEBUG)",
    envvar="CONTENT_BRIDGE_LOG_LEVEL",
)
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    help="Log file path (default: logs/migration.log)",
    envvar="CONTENT_BRIDGE_LOG_FILE",
)
@click.option("--no-progress", is_flag=True, help="Disable progress bars")
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path | None,
    log_level: str,
    log_file: Path | None,
    no_progress: bool,
) -> None:
    """Content Bridge - Push pulled content into a destination space.

    Stories, asset folders and assets that were pulled from a source space
    are recreated in a destination space, and every reference between them
    is rewritten to the new identifiers.

    Examples:

        # Validate configuration
        content-bridge config validate --config config.yaml

        # Push assets first, then stories
        content-bridge assets push --from 1000 --space 2000
        content-bridge stories push --from 1000 --space 2000
    """
    effective_log_file = str(log_file) if log_file else "logs/migration.log"
    configure_logging(level=log_level, log_file=effective_log_file)

    ctx.obj = MigrationContext(
        config_path=config,
        log_level=log_level,
        log_file=log_file,
        no_progress=no_progress,
    )

    logger.debug(
        "cli_initialized",
        config=str(config) if config else None,
        log_level=log_level,
    )


cli.add_command(assets_commands.assets)
cli.add_command(config_commands.config)
cli.add_command(stories_commands.stories)


def main() -> int:
    """Main entry point for CLI."""
    try:
        # Without standalone mode click returns the exit code instead of exiting
        result = cli(standalone_mode=False)
        return result if isinstance(result, int) else 0
    except click.exceptions.Exit as e:
        return e.exit_code
    except click.ClickException as e:
        e.show()
        return e.exit_code
    except click.exceptions.Abort:
        click.echo("Aborted!", err=True)
        return 1
    except Exception as e:
        logger.error("unexpected_error", error=str(e), exc_info=True)
        click.echo(f"Error: {e}", err=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
