# src/pgcontainer/exceptions.py
"""
Provisioning exceptions for pgcontainer.

This module defines the hierarchy of errors that can occur while bringing
an ephemeral PostgreSQL container up or tearing it down. Every startup stage
fails fast with its own error type so callers can tell where the sequence
broke.

Exception Hierarchy:
    ProvisioningError (base)
    ├── RuntimeConnectionError - Docker daemon unreachable
    ├── ImagePullError - Image missing locally and pull failed
    ├── ContainerStartError - Container create/start failed
    ├── StreamError - Log stream subscription failed
    ├── DatabaseConnectionError - All connectivity attempts exhausted
    └── TeardownError - Kill or non-tolerated removal failed
"""

from typing import Any


class ProvisioningError(Exception):
    """
    Base exception for all provisioning errors.

    Attributes:
        message: Human-readable error description
        details: Optional dictionary with additional context
        container_id: ID of the affected container (if known)
    """

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        container_id: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.container_id = container_id

    def __str__(self) -> str:
        """Return formatted error message."""
        base_msg = self.message
        if self.container_id:
            base_msg = f"[Container {self.container_id[:12]}] {base_msg}"
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            base_msg = f"{base_msg} ({detail_str})"
        return base_msg

    def to_dict(self) -> dict[str, Any]:
        """Serialize exception to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
            "container_id": self.container_id,
        }


class RuntimeConnectionError(ProvisioningError):
    """
    Raised when the Docker daemon cannot be reached.

    Attributes:
        docker_host: The daemon URL that was tried ("local" for the default socket)
    """

    def __init__(self, message: str, docker_host: str | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.docker_host = docker_host

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["docker_host"] = self.docker_host
        return result


class ImagePullError(ProvisioningError):
    """
    Raised when an image is not available locally and cannot be pulled.

    The message always embeds the image name and the underlying reason.

    Example:
        >>> raise ImagePullError(
        ...     'Image "postgres:99" can not be pulled.',
        ...     image="postgres:99",
        ...     reason="manifest unknown",
        ... )
    """

    def __init__(
        self, message: str, image: str | None = None, reason: str | None = None, **kwargs
    ):
        super().__init__(message, **kwargs)
        self.image = image
        self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result.update({"image": self.image, "reason": self.reason})
        return result


class ContainerStartError(ProvisioningError):
    """Raised when the container cannot be created or started."""

    pass


class StreamError(ProvisioningError):
    """
    Raised when the container log stream cannot be subscribed to or read.

    A stream that simply ends is not an error; see
    :func:`pgcontainer.readiness.await_initialization`.
    """

    pass


class DatabaseConnectionError(ProvisioningError):
    """
    Raised when every connectivity attempt against the database failed.

    The last observed client error is chained as ``__cause__``.

    Attributes:
        host: The host that was probed
        port: The port that was probed
        attempts: Number of attempts made
    """

    def __init__(
        self,
        message: str,
        host: str | None = None,
        port: int | None = None,
        attempts: int | None = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.host = host
        self.port = port
        self.attempts = attempts

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result.update({"host": self.host, "port": self.port, "attempts": self.attempts})
        return result


class TeardownError(ProvisioningError):
    """
    Raised when stopping a container fails.

    "Not found" and "conflict" responses from the runtime never raise this:
    they mean the container is already gone.

    Attributes:
        phase: Which teardown step failed ("kill" or "remove")
    """

    def __init__(self, message: str, phase: str | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.phase = phase

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["phase"] = self.phase
        return result
