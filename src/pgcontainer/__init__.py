# src/pgcontainer/__init__.py
"""
Ephemeral PostgreSQL containers for automated tests.

Starts a postgres container on a random host port, waits until the server
finished its first-boot initialization and executes queries, and hands back
a handle that stops and removes the container.

Usage:
    >>> from pgcontainer import ProvisioningRequest, start_postgres_container
    >>>
    >>> request = ProvisioningRequest(user="u", password="p", database="d")
    >>> started = await start_postgres_container(request)
    >>> print(started.port, started.dsn)
    >>> await started.stop()
"""

# =============================================================================
# CONFIGURATION
# =============================================================================

from .config import (
    DEFAULT_IMAGE,
    READY_MARKER,
    ProvisionerSettings,
    ProvisioningRequest,
    load_settings,
)

# =============================================================================
# EXCEPTIONS
# =============================================================================

from .exceptions import (
    ContainerStartError,
    DatabaseConnectionError,
    ImagePullError,
    ProvisioningError,
    RuntimeConnectionError,
    StreamError,
    TeardownError,
)

# =============================================================================
# LIFECYCLE
# =============================================================================

from .lifecycle import (
    ProvisioningStage,
    StartedContainer,
    postgres_container,
    start_postgres_container,
    stop_container,
)
from .logging_config import configure_logging
from .runtime import connect_docker

__all__ = [
    # Configuration
    "DEFAULT_IMAGE",
    "READY_MARKER",
    "ProvisionerSettings",
    "ProvisioningRequest",
    "load_settings",
    # Exceptions
    "ContainerStartError",
    "DatabaseConnectionError",
    "ImagePullError",
    "ProvisioningError",
    "RuntimeConnectionError",
    "StreamError",
    "TeardownError",
    # Lifecycle
    "ProvisioningStage",
    "StartedContainer",
    "postgres_container",
    "start_postgres_container",
    "stop_container",
    # Runtime and logging
    "connect_docker",
    "configure_logging",
]
