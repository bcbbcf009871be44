"""
Decorators for CLI commands.

This module provides decorators for error handling, context passing,
and other common CLI patterns.
"""

import functools
from collections.abc import Callable

import click

from content_migration.cli.context import MigrationContext
from content_migration.client.exceptions import (
    APIError,
    AuthenticationError,
    ConfigurationError,
    FileSystemError,
    ManifestError,
    MigrationError,
)
from content_migration.utils.logging import get_logger

logger = get_logger(__name__)

# Push commands additionally exit with 6 when a run only partially succeeded
EXIT_FAILURE = 1
EXIT_CONFIGURATION = 2
EXIT_AUTHENTICATION = 3
EXIT_API = 4
EXIT_LOCAL_DATA = 5
EXIT_PARTIAL_SUCCESS = 6


def pass_context(f: Callable) -> Callable:
    """
    Decorator to pass MigrationContext to command function.

    Usage:
        @click.command()
        @pass_context
        def my_command(ctx: MigrationContext):
            print(ctx.config)
    """

    @click.pass_context
    @functools.wraps(f)
    def wrapper(click_ctx: click.Context, *args, **kwargs):
        migration_ctx: MigrationContext = click_ctx.obj
        return f(migration_ctx, *args, **kwargs)

    return wrapper


def handle_errors(f: Callable) -> Callable:
    """
    Decorator to handle common errors in CLI commands.

    This decorator catches common exceptions and converts them to
    user-friendly error messages with appropriate exit codes.

    Exit codes:
        0: Success
        1: General error
        2: Configuration error
        3: Authentication error
        4: API error
        5: Local data error (manifest or file system)
    """

    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)

        except (click.exceptions.Exit, click.ClickException):
            raise

        except ConfigurationError as e:
            logger.error("configuration_error", error=str(e))
            click.echo(f"Configuration Error: {e}", err=True)
            click.echo(
                "\nPlease check your configuration file and ensure all required fields are set.",
                err=True,
            )
            raise click.exceptions.Exit(EXIT_CONFIGURATION) from e

        except AuthenticationError as e:
            logger.error("authentication_error", error=str(e))
            click.echo(f"Authentication Error: {e}", err=True)
            click.echo("\nPlease verify the management API token.", err=True)
            raise click.exceptions.Exit(EXIT_AUTHENTICATION) from e

        except APIError as e:
            logger.error("api_error", error=str(e), status_code=e.status_code)
            click.echo(f"API Error: {e}", err=True)
            if e.status_code:
                click.echo(f"\nResponse status: {e.status_code}", err=True)
            raise click.exceptions.Exit(EXIT_API) from e

        except (ManifestError, FileSystemError) as e:
            logger.error("local_data_error", error=str(e))
            click.echo(f"Local Data Error: {e}", err=True)
            click.echo(
                "\nThe local content directory or a manifest could not be read.",
                err=True,
            )
            raise click.exceptions.Exit(EXIT_LOCAL_DATA) from e

        except MigrationError as e:
            logger.error("migration_error", error=str(e))
            click.echo(f"Error: {e}", err=True)
            raise click.exceptions.Exit(EXIT_FAILURE) from e

        except Exception as e:
            logger.error("unexpected_error", error=str(e), exc_info=True)
            click.echo(f"Unexpected Error: {e}", err=True)
            click.echo(
                "\nAn unexpected error occurred. Please check the logs for details.",
                err=True,
            )
            raise click.exceptions.Exit(EXIT_FAILURE) from e

    return wrapper


def requires_config(f: Callable) -> Callable:
    """
    Decorator to ensure configuration is loaded.

    This decorator loads and validates the configuration before executing
    the command.
    """

    @functools.wraps(f)
    def wrapper(ctx: MigrationContext, *args, **kwargs):
        try:
            _ = ctx.config
        except ConfigurationError as e:
            click.echo(f"Error loading configuration: {e}", err=True)
            if ctx.config_path is None:
                click.echo(
                    "Use --config option or set CONTENT_BRIDGE_CONFIG.",
                    err=True,
                )
            raise click.exceptions.Exit(EXIT_CONFIGURATION) from e

        return f(ctx, *args, **kwargs)

    return wrapper
