# tests/conftest.py
"""
Pytest fixtures shared by the pgcontainer tests.

This module provides fixtures for:
    - Mock Docker clients and containers
    - Fake log streams
    - Provisioning requests and settings
    - Docker availability detection
"""

from unittest.mock import MagicMock

import pytest
from docker.errors import APIError

from pgcontainer.config import ProvisionerSettings, ProvisioningRequest
from pgcontainer.runtime import is_docker_available

# ==============================================================================
# Docker Availability
# ==============================================================================

requires_docker = pytest.mark.skipif(not is_docker_available(), reason="Docker not available")


# ==============================================================================
# Helpers
# ==============================================================================


def api_error(status_code: int, message: str = "docker said no") -> APIError:
    """Build a docker APIError carrying an HTTP status code."""
    response = MagicMock()
    response.status_code = status_code
    return APIError(message, response=response)


class FakeLogStream:
    """Stand-in for docker's CancellableStream: iterable chunks plus close()."""

    def __init__(self, chunks, error: Exception | None = None):
        self._chunks = list(chunks)
        self._error = error
        self.closed = False
        self.consumed = 0

    def __iter__(self):
        for chunk in self._chunks:
            if self.closed:
                return
            self.consumed += 1
            yield chunk
        if self._error is not None:
            raise self._error

    def close(self):
        self.closed = True


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def provisioning_request() -> ProvisioningRequest:
    """Request with the default image and marker."""
    return ProvisioningRequest(user="u", password="p", database="d")


@pytest.fixture
def settings() -> ProvisionerSettings:
    """Default settings, independent of the machine's config file."""
    return ProvisionerSettings()


@pytest.fixture
def mock_container() -> MagicMock:
    """Mock docker container."""
    container = MagicMock()
    container.id = "f00dfeedcafe0123456789abcdef"
    container.short_id = "f00dfeedcafe"
    return container


@pytest.fixture
def mock_docker_client(mock_container) -> MagicMock:
    """Mock docker client creating ``mock_container``."""
    client = MagicMock()
    client.version.return_value = {"Version": "24.0.0"}
    client.containers.create.return_value = mock_container
    return client
