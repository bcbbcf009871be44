"""
CLI context manager for Content Bridge.

This module provides the context object that is passed to all CLI commands,
containing configuration and the management API clients.
"""

from dataclasses import dataclass, field
from pathlib import Path

from pydantic import ValidationError

from content_migration.client.exceptions import ConfigurationError
from content_migration.client.management_client import ManagementClient
from content_migration.config import MigrationConfig, load_config_from_yaml
from content_migration.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class MigrationContext:
    """
    Context object for CLI commands.

    This object holds configuration and clients that are shared across CLI
    commands. It is passed via Click's context mechanism.

    Attributes:
        config_path: Path to configuration file (environment only when unset)
        log_level: Logging level
        log_file: Optional log file path
        no_progress: Disable progress bars regardless of configuration
    """

    config_path: Path | None = None
    log_level: str = "WARNING"
    log_file: Path | None = None
    no_progress: bool = False

    # Lazy-loaded attributes
    _config: MigrationConfig | None = field(default=None, init=False, repr=False)
    _clients: dict[str, ManagementClient] = field(default_factory=dict, init=False, repr=False)

    @property
    def config(self) -> MigrationConfig:
        """Get or load migration configuration.

        Without a configuration file, settings are read from
        ``CONTENT_BRIDGE_*`` environment variables.

        Raises:
            ConfigurationError: If the configuration is missing or invalid
        """
        if self._config is None:
            try:
                if self.config_path is None:
                    logger.debug("loading_configuration_from_environment")
                    self._config = MigrationConfig()
                else:
                    logger.debug("loading_configuration", config_path=str(self.config_path))
                    self._config = load_config_from_yaml(self.config_path)
            except (ValidationError, ValueError, FileNotFoundError) as e:
                raise ConfigurationError(str(e)) from e
            logger.debug("configuration_loaded")

        return self._config

    @property
    def show_progress(self) -> bool:
        return not (self.no_progress or self.config.logging.disable_progress)

    def management_client(self, space_id: str) -> ManagementClient:
        """Get or create the management client scoped to ``space_id``."""
        if space_id not in self._clients:
            logger.debug("creating_management_client", url=self.config.target.url, space=space_id)
            self._clients[space_id] = ManagementClient(
                config=self.config.target,
                space_id=space_id,
                performance=self.config.performance,
                log_payloads=self.config.logging.log_payloads,
                max_payload_size=self.config.logging.max_payload_size,
            )

        return self._clients[space_id]

    async def aclose(self) -> None:
        """Close every client created by this context."""
        for space_id, client in self._clients.items():
            logger.debug("closing_management_client", space=space_id)
            await client.close()
        self._clients.clear()
