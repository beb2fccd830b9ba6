# src/pgcontainer/config.py
"""
Configuration models for pgcontainer.

Two kinds of configuration exist:

    ProvisioningRequest: what to start (image, credentials, readiness marker).
        Passed per call and immutable once built.
    ProvisionerSettings: how to start it (Docker host, probe attempts,
        cleanup policy). Loaded once per process.

Settings Hierarchy:
    1. Default values (defined in this module)
    2. TOML config file (~/.config/pgcontainer/config.toml, [pgcontainer] table)
    3. Environment variables (PGCONTAINER_*)
    4. Runtime overrides (passed to load_settings)

Example TOML configuration:
    [pgcontainer]
    docker_host = "unix:///var/run/docker.sock"
    host = "127.0.0.1"
    max_attempts = 15
    cleanup_on_failure = true
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_IMAGE = "postgres:latest"

# Printed by the official postgres image once init scripts have run, right
# before the server restarts for real.
READY_MARKER = "PostgreSQL init process complete; ready for start up."

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "pgcontainer" / "config.toml"

ENV_PREFIX = "PGCONTAINER_"


# =============================================================================
# PROVISIONING REQUEST
# =============================================================================


class ProvisioningRequest(BaseModel):
    """
    Parameters for one ephemeral PostgreSQL container.

    Examples:
        >>> request = ProvisioningRequest(user="u", password="p", database="d")
        >>> request.image is None  # resolved from settings.default_image
        True
        >>> request.ready_marker == READY_MARKER
        True
    """

    model_config = ConfigDict(frozen=True)

    image: str | None = Field(
        default=None,
        min_length=1,
        description="Image name including tag; None uses the settings' default_image",
    )
    user: str = Field(min_length=1, description="Database superuser created at first boot")
    password: str = Field(min_length=1, description="Password for the database user")
    database: str = Field(min_length=1, description="Database created at first boot")
    ready_marker: str = Field(
        default=READY_MARKER,
        min_length=1,
        description=(
            "Sub-string marking that the server read all init scripts. "
            "Not to be confused with ready to serve queries."
        ),
    )
    ensure_shutdown: bool = Field(
        default=False,
        description=(
            "Stop the container on SIGINT, SIGQUIT, SIGTERM and uncaught exceptions"
        ),
    )

    def container_environment(self) -> dict[str, str]:
        """Environment variables understood by the official postgres image."""
        return {
            "POSTGRES_USER": self.user,
            "POSTGRES_PASSWORD": self.password,
            "POSTGRES_DB": self.database,
        }


# =============================================================================
# PROVISIONER SETTINGS
# =============================================================================


class ProvisionerSettings(BaseModel):
    """Process-wide provisioner settings."""

    docker_host: str | None = Field(
        default=None, description="Docker daemon URL; None uses the environment defaults"
    )
    host: str = Field(default="localhost", description="Host the published port is reached on")
    max_attempts: int = Field(
        default=10, ge=1, le=100, description="Connectivity attempts before giving up"
    )
    connect_timeout: int = Field(
        default=5, ge=1, description="Client connect timeout per attempt, in seconds"
    )
    cleanup_on_failure: bool = Field(
        default=True,
        description="Remove a container that was created but never became ready",
    )
    default_image: str = Field(
        default=DEFAULT_IMAGE, min_length=1, description="Image for requests that name none"
    )


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Values in override take precedence. Nested dictionaries are merged recursively.
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def _parse_env_value(value: str) -> Any:
    """
    Parse environment variable value to appropriate type.

    Args:
        value: String value from environment

    Returns:
        Parsed value (bool, int, float, or string)
    """
    if value.lower() in ("true", "yes", "on"):
        return True
    if value.lower() in ("false", "no", "off"):
        return False

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    return value


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """
    Apply PGCONTAINER_<KEY> environment variables to a settings dictionary.

    Examples:
        PGCONTAINER_HOST=127.0.0.1
        PGCONTAINER_MAX_ATTEMPTS=20
        PGCONTAINER_CLEANUP_ON_FAILURE=false
    """
    result = dict(config)

    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue

        setting = key[len(ENV_PREFIX) :].lower()
        if setting in ProvisionerSettings.model_fields:
            result[setting] = _parse_env_value(value)
        else:
            logger.debug(f"Ignoring unknown setting from environment: {key}")

    return result


def load_toml_config(config_path: Path | None = None) -> dict[str, Any]:
    """
    Load the [pgcontainer] table from a TOML file.

    Args:
        config_path: Path to TOML file (default: ~/.config/pgcontainer/config.toml)

    Returns:
        Configuration dictionary, empty if the file does not exist
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    config_path = Path(config_path).expanduser()
    if not config_path.exists():
        logger.debug(f"Config file not found: {config_path}")
        return {}

    try:
        with open(config_path, "rb") as f:
            full_config = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning(f"Failed to load config from {config_path}: {e}")
        return {}

    logger.debug(f"Loaded provisioner config from {config_path}")
    return full_config.get("pgcontainer", {})


def load_settings(
    config_path: Path | None = None, overrides: dict[str, Any] | None = None
) -> ProvisionerSettings:
    """
    Load provisioner settings.

    Configuration is loaded and merged in order:
        1. Default values
        2. TOML config file
        3. Environment variables
        4. Runtime overrides

    Args:
        config_path: Optional path to TOML config file
        overrides: Optional runtime overrides

    Returns:
        ProvisionerSettings instance

    Raises:
        ValueError: If the merged values do not validate
    """
    config = ProvisionerSettings().model_dump()

    toml_config = load_toml_config(config_path)
    if toml_config:
        config = _deep_merge(config, toml_config)

    config = _apply_env_overrides(config)

    if overrides:
        config = _deep_merge(config, overrides)

    try:
        return ProvisionerSettings(**config)
    except ValidationError as e:
        raise ValueError(f"Invalid pgcontainer settings: {e}") from e
