# src/pgcontainer/lifecycle.py
"""
Lifecycle of an ephemeral PostgreSQL container.

start_postgres_container walks a strictly linear sequence of stages:

    ALLOCATING_PORT -> RESOLVING_IMAGE -> CREATING -> STARTING
        -> AWAITING_INIT -> AWAITING_READY -> READY

Any failure aborts the sequence and propagates; no partial handle is ever
returned. A container that was created but never became ready is removed
before the error propagates unless ``cleanup_on_failure`` is turned off.

Usage:
    >>> request = ProvisioningRequest(user="u", password="p", database="d")
    >>> started = await start_postgres_container(request)
    >>> started.dsn
    'postgresql://u:p@localhost:54321/d'
    >>> await started.stop()

    >>> async with postgres_container(request) as started:
    ...     ...
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from urllib.parse import quote

import docker
from docker.errors import APIError, NotFound
from docker.models.containers import Container

from .config import ProvisionerSettings, ProvisioningRequest, load_settings
from .exceptions import ContainerStartError, ProvisioningError, TeardownError
from .images import ensure_image
from .logging_config import log_display
from .ports import allocate_port
from .readiness import await_initialization, await_ready
from .runtime import CONTAINER_LABEL, connect_docker
from .shutdown import register_shutdown_hooks

logger = logging.getLogger(__name__)

POSTGRES_PORT = "5432/tcp"

# Removal answers meaning the container is already gone (404) or already
# being removed / not running (409).
TOLERATED_STATUS_CODES = (404, 409)


class ProvisioningStage(Enum):
    """Stage of a provisioning call, in execution order."""

    ALLOCATING_PORT = "allocating_port"
    RESOLVING_IMAGE = "resolving_image"
    CREATING = "creating"
    STARTING = "starting"
    AWAITING_INIT = "awaiting_init"
    AWAITING_READY = "awaiting_ready"
    READY = "ready"


def _is_already_gone(error: Exception) -> bool:
    if isinstance(error, NotFound):
        return True
    return isinstance(error, APIError) and error.status_code in TOLERATED_STATUS_CODES


# =============================================================================
# TEARDOWN
# =============================================================================


async def stop_container(container: Container) -> None:
    """
    Kill and remove a docker container.

    The forced removal always runs, whatever the kill outcome. "Not found"
    and "conflict" answers from either call mean the container is already
    gone (it was started with auto-remove) and are not errors.

    Args:
        container: The container to kill

    Raises:
        TeardownError: If kill or removal failed for any other reason. A kill
            failure is raised after the removal was attempted.
    """
    loop = asyncio.get_event_loop()
    kill_error: Exception | None = None

    try:
        await loop.run_in_executor(None, container.kill)
    except Exception as e:
        if _is_already_gone(e):
            logger.debug(f"Container {container.short_id} already stopped: {e}")
        else:
            kill_error = e

    try:
        await loop.run_in_executor(None, lambda: container.remove(force=True))
    except Exception as e:
        if _is_already_gone(e):
            logger.debug(f"Container {container.short_id} already removed: {e}")
        elif kill_error is None:
            raise TeardownError(
                f"Failed to remove container: {e}", phase="remove", container_id=container.id
            ) from e
        else:
            logger.warning(f"Failed to remove container {container.short_id}: {e}")

    if kill_error is not None:
        raise TeardownError(
            f"Failed to kill container: {kill_error}", phase="kill", container_id=container.id
        ) from kill_error

    logger.debug(f"Container {container.short_id} stopped")


def _stop_for_exit(container: Container) -> None:
    """Synchronous stop run by the process-exit hooks, which log its errors."""
    container.stop(timeout=5)


# =============================================================================
# RESULT HANDLE
# =============================================================================


@dataclass
class StartedContainer:
    """
    A running PostgreSQL container that accepts queries.

    Attributes:
        port: Host port postgres is published on
        host: Host the port is reached on
        request: The request the container was started for
        container: Underlying docker container
    """

    port: int
    host: str
    request: ProvisioningRequest
    container: Container = field(repr=False)
    _dispose_hooks: Callable[[], None] | None = field(default=None, repr=False)

    @property
    def container_id(self) -> str:
        return self.container.id

    @property
    def dsn(self) -> str:
        """libpq connection URI for the database, credentials percent-encoded."""
        user = quote(self.request.user, safe="")
        password = quote(self.request.password, safe="")
        database = quote(self.request.database, safe="")
        return f"postgresql://{user}:{password}@{self.host}:{self.port}/{database}"

    def connection_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``psycopg.connect``."""
        return {
            "host": self.host,
            "port": self.port,
            "user": self.request.user,
            "password": self.request.password,
            "dbname": self.request.database,
        }

    async def stop(self) -> None:
        """
        Stop the postgres container.

        Calling it again after the container is gone succeeds. Not safe for
        concurrent callers.

        Raises:
            TeardownError: See :func:`stop_container`
        """
        if self._dispose_hooks is not None:
            self._dispose_hooks()
            self._dispose_hooks = None
        await stop_container(self.container)


# =============================================================================
# STARTUP
# =============================================================================


async def _create_container(
    client: docker.DockerClient, request: ProvisioningRequest, port: int
) -> Container:
    try:
        return await asyncio.get_event_loop().run_in_executor(
            None,
            lambda: client.containers.create(
                request.image,
                detach=True,
                auto_remove=True,
                ports={POSTGRES_PORT: port},
                environment=request.container_environment(),
                labels={CONTAINER_LABEL: "true"},
            ),
        )
    except Exception as e:
        raise ContainerStartError(
            f"Failed to create container from '{request.image}': {e}",
            details={"image": request.image, "port": port},
        ) from e


async def _start_container(container: Container) -> None:
    try:
        await asyncio.get_event_loop().run_in_executor(None, container.start)
    except Exception as e:
        raise ContainerStartError(
            f"Failed to start container: {e}", container_id=container.id
        ) from e


async def _cleanup_partial(container: Container) -> None:
    """Remove a container whose startup failed; errors are only logged."""
    try:
        await stop_container(container)
    except TeardownError as e:
        logger.warning(f"Failed to cleanup partial container: {e}")


async def start_postgres_container(
    request: ProvisioningRequest,
    client: docker.DockerClient | None = None,
    settings: ProvisionerSettings | None = None,
) -> StartedContainer:
    """
    Start a postgres container and wait until it is ready to process queries.

    Args:
        request: Image, credentials and readiness options. Without an image
            the settings' ``default_image`` is used.
        client: Docker client; connected from settings when omitted
        settings: Provisioner settings; loaded from file/environment when omitted

    Returns:
        StartedContainer with the published ``port`` and a ``stop`` method

    Raises:
        RuntimeConnectionError: Docker daemon unreachable
        ImagePullError: Image missing and not pullable
        ContainerStartError: Container create/start failed
        StreamError: Log stream subscription failed
        DatabaseConnectionError: Server never executed the probe query
    """
    settings = settings or load_settings()
    if request.image is None:
        request = request.model_copy(update={"image": settings.default_image})
    if client is None:
        client = connect_docker(settings.docker_host)

    stage = ProvisioningStage.ALLOCATING_PORT
    container: Container | None = None
    dispose_hooks: Callable[[], None] | None = None

    try:
        try:
            port = allocate_port()
        except OSError as e:
            raise ProvisioningError(f"Failed to allocate a host port: {e}") from e
        logger.debug(f"Allocated host port {port}")

        stage = ProvisioningStage.RESOLVING_IMAGE
        await ensure_image(client, request.image, docker_host=settings.docker_host)

        stage = ProvisioningStage.CREATING
        container = await _create_container(client, request, port)
        logger.debug(f"Created container {container.short_id} from '{request.image}'")

        if request.ensure_shutdown:
            hooked = container
            dispose_hooks = register_shutdown_hooks(lambda: _stop_for_exit(hooked))

        stage = ProvisioningStage.STARTING
        await _start_container(container)

        stage = ProvisioningStage.AWAITING_INIT
        await await_initialization(container, request.ready_marker)

        stage = ProvisioningStage.AWAITING_READY
        started = StartedContainer(
            port=port,
            host=settings.host,
            request=request,
            container=container,
            _dispose_hooks=dispose_hooks,
        )
        await await_ready(
            started.connection_kwargs(),
            max_attempts=settings.max_attempts,
            connect_timeout=settings.connect_timeout,
        )

    except (Exception, asyncio.CancelledError) as e:
        logger.error(f"Provisioning failed while {stage.value}: {e!r}")
        if container is not None and settings.cleanup_on_failure:
            await _cleanup_partial(container)
            if dispose_hooks is not None:
                dispose_hooks()
        raise

    stage = ProvisioningStage.READY
    logger.debug(f"Provisioning of {container.short_id} reached stage {stage.value}")
    log_display(
        logger,
        logging.INFO,
        f"Postgres container {container.short_id} ready on {settings.host}:{port}",
    )
    return started


@asynccontextmanager
async def postgres_container(
    request: ProvisioningRequest,
    client: docker.DockerClient | None = None,
    settings: ProvisionerSettings | None = None,
) -> AsyncIterator[StartedContainer]:
    """
    Start a postgres container for the duration of an ``async with`` block.

    The container is stopped on exit, also when the block raises.
    """
    started = await start_postgres_container(request, client=client, settings=settings)
    try:
        yield started
    finally:
        await started.stop()
