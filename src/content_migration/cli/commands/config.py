"""
Configuration management commands.

This module provides commands for validating and displaying the Content
Bridge configuration.
"""

from pathlib import Path

import click

from content_migration.cli.context import MigrationContext
from content_migration.cli.decorators import handle_errors, pass_context, requires_config
from content_migration.cli.utils import echo_error, echo_info, echo_success, echo_warning, print_table
from content_migration.config import MigrationConfig
from content_migration.utils.logging import get_logger

logger = get_logger(__name__)


@click.group(name="config")
def config() -> None:
    """Configuration management commands.

    Validate and display the Content Bridge configuration.
    """
    pass


@config.command(name="validate")
@pass_context
@requires_config
@handle_errors
def validate(ctx: MigrationContext) -> None:
    """Validate the configuration and the local content layout.

    Examples:

        content-bridge config validate --config config.yaml
    """
    source = ctx.config_path or "environment"
    echo_info(f"Validating configuration: {source}")

    config = ctx.config

    click.echo()
    _display_config_summary(config)

    click.echo()
    echo_info("Validating paths...")
    _validate_paths(config)

    echo_info("Validating settings...")
    _validate_settings(config)

    click.echo()
    echo_success("Configuration is valid!")


def _display_config_summary(config: MigrationConfig) -> None:
    rows = [
        ["Management API", config.target.url],
        ["Source Space", config.source_space or "(from --from)"],
        ["Target Space", config.target_space or "(from --space)"],
        ["Content Directory", config.paths.base_dir],
        ["Max Concurrent", config.performance.max_concurrent],
        ["Queue Size", config.performance.queue_size],
        ["Rate Limit (req/s)", config.performance.rate_limit],
        ["Dry Run", config.options.dry_run],
    ]

    print_table("Configuration Summary", ["Setting", "Value"], rows)


def _validate_paths(config: MigrationConfig) -> None:
    base_dir = Path(config.paths.base_dir)
    if not base_dir.exists():
        echo_warning(f"Content directory does not exist yet: {base_dir}")
        return
    if not base_dir.is_dir():
        echo_error(f"Content path is not a directory: {base_dir}")
        raise click.ClickException(f"Invalid content directory: {base_dir}")

    if config.source_space:
        for kind in ("stories", "assets", "components"):
            directory = config.paths.resolve(kind, config.source_space)
            if directory.is_dir():
                echo_success(f"Found {kind}: {directory}")
            else:
                echo_warning(f"No local {kind} for space {config.source_space}: {directory}")

    echo_success("All paths are valid")


def _validate_settings(config: MigrationConfig) -> None:
    performance = config.performance
    if performance.queue_size < performance.max_concurrent:
        echo_warning(
            f"Queue size ({performance.queue_size}) is smaller than max concurrent "
            f"({performance.max_concurrent}); workers may idle"
        )
    if performance.max_concurrent > 50:
        echo_warning(
            f"High concurrency ({performance.max_concurrent}) will mostly wait on the rate limit"
        )
    if performance.retry_backoff_min > performance.retry_backoff_max:
        echo_error("retry_backoff_min is greater than retry_backoff_max")
        raise click.ClickException("Invalid retry backoff settings")

    echo_success("All settings are valid")


@config.command(name="show")
@pass_context
@requires_config
@handle_errors
def show(ctx: MigrationContext) -> None:
    """Display current configuration.

    Shows the loaded configuration with the token masked.

    Examples:

        content-bridge config show --config config.yaml
    """
    config = ctx.config

    _display_config_summary(config)

    click.echo("\nManagement API:")
    click.echo(f"  URL: {config.target.url}")
    click.echo(f"  Token: {'*' * 40} (masked)")
    click.echo(f"  Verify SSL: {config.target.verify_ssl}")
    click.echo(f"  Timeout: {config.target.timeout}s")

    click.echo("\nPaths:")
    for name, value in config.paths.model_dump().items():
        click.echo(f"  {name}: {value}")

    click.echo("\nPerformance:")
    for name, value in config.performance.model_dump().items():
        click.echo(f"  {name}: {value}")

    click.echo("\nOptions:")
    for name, value in config.options.model_dump().items():
        click.echo(f"  {name}: {value}")
