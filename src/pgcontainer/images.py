# src/pgcontainer/images.py
"""
Image resolution.

Inspect the image through the Docker SDK and fall back to the ``docker pull``
CLI when it is missing. The CLI prints registry errors in a readable form and
honors the user's credential helpers, which is why pulling does not go
through the SDK.
"""

import asyncio
import logging
import os

import docker

from .exceptions import ImagePullError

logger = logging.getLogger(__name__)


async def _pull_image(name: str, docker_host: str | None = None) -> None:
    """
    Run ``docker pull <name>`` once.

    Raises:
        ImagePullError: If the CLI cannot be started or exits non-zero
    """
    env = dict(os.environ)
    if docker_host:
        env["DOCKER_HOST"] = docker_host

    try:
        process = await asyncio.create_subprocess_exec(
            "docker",
            "pull",
            name,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
        )
        _, stderr = await process.communicate()
    except OSError as e:
        raise ImagePullError(
            f'Image "{name}" can not be pulled.\n\n{e}', image=name, reason=str(e)
        ) from e

    if process.returncode != 0:
        reason = stderr.decode("utf-8", errors="replace").strip() or (
            f"docker pull exited with code {process.returncode}"
        )
        raise ImagePullError(f'Image "{name}" can not be pulled.\n\n{reason}', image=name, reason=reason)


async def ensure_image(
    client: docker.DockerClient, name: str, docker_host: str | None = None
) -> None:
    """
    Ensure that the image is available on the machine.

    Pulls the image if it doesn't exist yet. Any inspection failure (missing
    image, daemon error) leads to a single pull attempt.

    Args:
        client: Docker client
        name: Image name including tag
        docker_host: Daemon URL handed to the CLI when pulling

    Raises:
        ImagePullError: If the image is missing and cannot be pulled
    """
    try:
        await asyncio.get_event_loop().run_in_executor(None, lambda: client.images.get(name))
        logger.debug(f"Image '{name}' found locally")
        return
    except Exception as e:
        logger.info(f"Image '{name}' not available locally ({e}), pulling...")

    await _pull_image(name, docker_host=docker_host)
    logger.info(f"Successfully pulled image '{name}'")
