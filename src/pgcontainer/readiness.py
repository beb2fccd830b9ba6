# src/pgcontainer/readiness.py
"""
Readiness protocol for a freshly started PostgreSQL container.

The official postgres image boots twice: a temporary server runs the init
scripts, logs READY_MARKER, shuts down, and the real server starts. Readiness
is therefore checked in two strictly ordered steps:

    1. await_initialization: scan the container's combined stdout/stderr for
       the marker (or accept the stream ending).
    2. await_ready: open fresh client connections until one executes a real
       query. A listening port alone is not enough, the server may still be
       recovering after the internal restart.
"""

import asyncio
import logging
import random
from typing import Any

import psycopg
from docker.models.containers import Container

from .exceptions import DatabaseConnectionError, StreamError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_BASE_DELAY = 0.5
DEFAULT_MAX_DELAY = 8.0

PROBE_QUERY = "SELECT NOW()"

_END = object()


# =============================================================================
# LOG STREAM SUBSCRIPTION
# =============================================================================


class LogSubscription:
    """
    Cancellable async iterator over a container's log chunks.

    Wraps the blocking generator returned by ``Container.logs(stream=True)``;
    every chunk is fetched in the default executor and decoded as UTF-8.
    Chunk boundaries are whatever the transport delivers, not lines.
    """

    def __init__(self, stream: Any):
        self._stream = stream
        self._iterator = iter(stream)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> "LogSubscription":
        return self

    async def __anext__(self) -> str:
        if self._closed:
            raise StopAsyncIteration

        chunk = await asyncio.get_event_loop().run_in_executor(None, next, self._iterator, _END)
        if chunk is _END:
            self.close()
            raise StopAsyncIteration

        if isinstance(chunk, bytes):
            return chunk.decode("utf-8", errors="replace")
        return str(chunk)

    def close(self) -> None:
        """Stop following the log stream. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        close = getattr(self._stream, "close", None)
        if close is not None:
            close()


async def subscribe_logs(container: Container) -> LogSubscription:
    """
    Follow a container's combined stdout/stderr.

    Raises:
        StreamError: If the subscription fails or no stream is returned
    """
    try:
        stream = await asyncio.get_event_loop().run_in_executor(
            None,
            lambda: container.logs(stream=True, follow=True, stdout=True, stderr=True),
        )
    except Exception as e:
        raise StreamError(
            f"Failed to subscribe to container logs: {e}", container_id=container.id
        ) from e

    if stream is None:
        raise StreamError("No stream to read available!", container_id=container.id)

    return LogSubscription(stream)


# =============================================================================
# INITIALIZATION DETECTION
# =============================================================================


async def await_initialization(container: Container, marker: str) -> bool:
    """
    Wait until postgres finished running its init scripts.

    Returns as soon as any line of any chunk contains ``marker``. A stream that
    ends without the marker also counts as success: the container may have
    initialized before the subscription started, or its log stream closed for
    a benign reason. A marker split across two chunks is not detected.

    Args:
        container: Started container
        marker: Sub-string to look for

    Returns:
        True if the marker was seen, False if the stream ended first

    Raises:
        StreamError: If the log stream cannot be subscribed to or read
    """
    subscription = await subscribe_logs(container)

    try:
        async for chunk in subscription:
            for line in chunk.splitlines():
                if marker in line:
                    logger.debug(f"Init marker seen in logs of {container.short_id}")
                    return True
    except Exception as e:
        raise StreamError(f"Failed to read container logs: {e}", container_id=container.id) from e
    finally:
        subscription.close()

    logger.warning(
        f"Log stream of {container.short_id} ended before the init marker appeared; "
        "continuing with connectivity checks"
    )
    return False


# =============================================================================
# CONNECTIVITY PROBING
# =============================================================================


async def _probe(connection_kwargs: dict[str, Any], connect_timeout: int) -> None:
    """Open one connection, run PROBE_QUERY, close it."""
    conn = await psycopg.AsyncConnection.connect(connect_timeout=connect_timeout, **connection_kwargs)
    try:
        cursor = await conn.execute(PROBE_QUERY)
        await cursor.fetchone()
    finally:
        await conn.close()


async def await_ready(
    connection_kwargs: dict[str, Any],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    connect_timeout: int = 5,
) -> int:
    """
    Ping a postgres server until it executes a query.

    Args:
        connection_kwargs: psycopg connect arguments (host, port, user, password, dbname)
        max_attempts: Attempts before giving up
        base_delay: Initial delay between attempts, doubled each time
        max_delay: Cap on the delay between attempts
        connect_timeout: Client connect timeout per attempt, in seconds

    Returns:
        Number of attempts it took

    Raises:
        DatabaseConnectionError: If every attempt failed; chained from the last error
    """
    last_exception: Exception | None = None

    for attempt in range(max_attempts):
        try:
            await _probe(connection_kwargs, connect_timeout)
            logger.debug(f"Connectivity probe succeeded on attempt {attempt + 1}/{max_attempts}")
            return attempt + 1
        except (psycopg.Error, OSError) as e:
            last_exception = e
            if attempt < max_attempts - 1:
                # Exponential backoff with jitter
                delay = min(base_delay * (2**attempt), max_delay)
                delay *= 0.5 + random.random()
                logger.debug(
                    f"Connectivity probe failed (attempt {attempt + 1}/{max_attempts}): {e}. "
                    f"Retrying in {delay:.2f}s..."
                )
                await asyncio.sleep(delay)

    raise DatabaseConnectionError(
        f"Database did not accept queries after {max_attempts} attempts: {last_exception}",
        host=connection_kwargs.get("host"),
        port=connection_kwargs.get("port"),
        attempts=max_attempts,
    ) from last_exception
