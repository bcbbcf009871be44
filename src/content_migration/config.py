"""Configuration management for Content Bridge using Pydantic.

This module provides type-safe configuration models for the management API
connection, local paths, performance tuning, logging and migration options.
"""

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ManagementAPIConfig(BaseModel):
    """Connection settings for the destination management API."""

    url: str = Field(
        default="https://mapi.storyblok.com/v1", description="Management API base URL"
    )
    token: str = Field(..., description="Personal access token")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    timeout: int = Field(default=30, ge=1, le=600, description="API request timeout in seconds")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate and normalize URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("token")
    @classmethod
    def validate_token(cls, v: str) -> str:
        """Validate token is not empty."""
        if not v or v.strip() == "":
            raise ValueError("Token cannot be empty")
        return v


class PathConfig(BaseModel):
    """Layout of the local migration data."""

    base_dir: str = Field(default=".content", description="Root directory for migration data")
    stories_dir: str = Field(default="stories", description="Directory name for stories")
    assets_dir: str = Field(default="assets", description="Directory name for assets")
    components_dir: str = Field(default="components", description="Directory name for components")
    users_dir: str = Field(default="users", description="Directory name for user id manifests")
    tags_dir: str = Field(default="tags", description="Directory name for tag id manifests")
    datasources_dir: str = Field(
        default="datasources", description="Directory name for datasource id manifests"
    )
    report_dir: str = Field(default="reports", description="Directory for migration reports")
    manifest_name: str = Field(default="manifest.jsonl", description="Manifest file name")

    def resolve(self, kind: str, space: str | int) -> Path:
        """Return ``<base_dir>/<kind dir>/<space>``.

        Args:
            kind: One of 'stories', 'assets', 'components', 'users', 'tags', 'datasources'
            space: Space identifier
        """
        directory = getattr(self, f"{kind}_dir", None)
        if directory is None:
            raise ValueError(f"Unknown data directory kind: {kind}")
        return Path(self.base_dir) / directory / str(space)

    def manifest(self, kind: str, space: str | int) -> Path:
        """Return the manifest path for ``kind`` in ``space``."""
        return self.resolve(kind, space) / self.manifest_name

    def folder_manifest(self, space: str | int) -> Path:
        """Return the asset-folder manifest path for ``space``."""
        return self.resolve("assets", space) / "folders" / self.manifest_name


class PerformanceConfig(BaseModel):
    """Performance tuning configuration."""

    max_concurrent: int = Field(
        default=12, ge=1, le=50, description="Maximum units of work in flight per stage"
    )
    queue_size: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Maximum items buffered between a stage's reader and its workers",
    )
    rate_limit: int = Field(default=6, ge=1, le=50, description="Requests per second limit")
    per_page: int = Field(default=100, ge=1, le=100, description="Page size for list requests")
    http_max_connections: int = Field(
        default=50, ge=10, le=200, description="Maximum number of connections in the pool"
    )
    http_max_keepalive_connections: int = Field(
        default=20, ge=5, le=100, description="Maximum number of keepalive connections"
    )
    retry_attempts: int = Field(
        default=3, ge=1, le=10, description="Number of attempts for retryable requests"
    )
    retry_backoff_min: int = Field(
        default=1, ge=1, le=60, description="Minimum backoff time in seconds for retries"
    )
    retry_backoff_max: int = Field(
        default=30, ge=1, le=300, description="Maximum backoff time in seconds for retries"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="WARNING", description="Console log level")
    file_level: str = Field(default="DEBUG", description="File log level")
    format: str = Field(default="json", description="Log file format (json or console)")
    file: str | None = Field(default="logs/migration.log", description="Log file path")
    disable_progress: bool = Field(
        default=False, description="Disable progress bars (useful for CI/logging)"
    )
    log_payloads: bool = Field(
        default=False,
        description=(
            "Enable request/response payload logging at DEBUG level. "
            "WARNING: May log sensitive data (tokens will be redacted)."
        ),
    )
    max_payload_size: int = Field(
        default=10000,
        ge=100,
        le=1000000,
        description="Maximum payload size (characters) to log before truncation",
    )

    @field_validator("level", "file_level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(valid_levels)}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = ["json", "console"]
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Log format must be one of: {', '.join(valid_formats)}")
        return v_lower


class MigrationOptions(BaseModel):
    """Behavioural switches shared by the push commands."""

    dry_run: bool = Field(default=False, description="Preview changes without writing")
    publish: bool | None = Field(
        default=None,
        description="Force publishing after the final update (None mirrors the source state)",
    )
    cleanup: bool = Field(
        default=False, description="Delete local files after their successful push"
    )
    update_stories: bool = Field(
        default=False, description="Rewrite asset references in remote stories after asset push"
    )


class MigrationConfig(BaseSettings):
    """Main migration configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CONTENT_BRIDGE_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    target: ManagementAPIConfig = Field(..., description="Destination management API")
    source_space: str | None = Field(default=None, description="Space the local data was pulled from")
    target_space: str | None = Field(default=None, description="Space to push into")

    paths: PathConfig = Field(default_factory=PathConfig, description="Path configuration")
    performance: PerformanceConfig = Field(
        default_factory=PerformanceConfig, description="Performance configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    options: MigrationOptions = Field(
        default_factory=MigrationOptions, description="Migration options"
    )

    @field_validator("source_space", "target_space", mode="before")
    @classmethod
    def coerce_space(cls, v: str | int | None) -> str | None:
        """Space ids are numeric in the API but used as path segments here."""
        return None if v is None else str(v)


def load_config_from_yaml(config_path: str | Path) -> MigrationConfig:
    """Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config file is empty or references a missing env var
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        config_data = yaml.safe_load(f)

    if not config_data:
        raise ValueError(f"Empty configuration file: {config_path}")

    config_data = _expand_env_vars(config_data)

    return MigrationConfig(**config_data)


def _expand_env_vars(data):
    """Recursively expand ``${VAR_NAME}`` values from the environment."""
    if isinstance(data, dict):
        return {k: _expand_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        if data.startswith("${") and data.endswith("}"):
            var_name = data[2:-1]
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(
                    f"Environment variable '{var_name}' not found. "
                    f"Please set it in your environment or .env file."
                )
            return env_value
        return data
    else:
        return data
