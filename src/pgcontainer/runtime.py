# src/pgcontainer/runtime.py
"""
Docker runtime binding.

The Docker client is created explicitly and passed to every component
(image resolver, readiness detector, lifecycle controller) instead of living
in a module-level singleton, so tests can hand in a mock client.

Usage:
    >>> client = connect_docker()
    >>> started = await start_postgres_container(request, client=client)
"""

import logging

import docker
from docker.errors import DockerException

from .exceptions import RuntimeConnectionError

logger = logging.getLogger(__name__)

# Label attached to every container this package creates.
CONTAINER_LABEL = "pgcontainer.managed"


def connect_docker(docker_host: str | None = None) -> docker.DockerClient:
    """
    Connect to the Docker daemon and verify it answers.

    Args:
        docker_host: Optional daemon URL (e.g. "tcp://10.0.0.5:2375").
            None uses DOCKER_HOST and the other environment defaults.

    Returns:
        Connected DockerClient

    Raises:
        RuntimeConnectionError: If the daemon cannot be reached
    """
    try:
        if docker_host:
            client = docker.DockerClient(base_url=docker_host)
            logger.info(f"Connected to remote Docker: {docker_host}")
        else:
            client = docker.from_env()
            logger.debug("Connected to local Docker daemon")

        version = client.version()
        logger.debug(f"Docker version: {version.get('Version', 'unknown')}")
        return client

    except DockerException as e:
        raise RuntimeConnectionError(
            f"Failed to connect to Docker daemon: {e}",
            docker_host=docker_host or "local",
        ) from e


def is_docker_available(docker_host: str | None = None) -> bool:
    """Return True when a Docker daemon answers a ping."""
    try:
        connect_docker(docker_host).ping()
        return True
    except (RuntimeConnectionError, DockerException):
        return False
