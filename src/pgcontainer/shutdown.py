# src/pgcontainer/shutdown.py
"""
Process-exit hooks that stop a container.

Hooks are never installed implicitly: the caller registers them and gets a
disposer back. While installed, SIGINT, SIGQUIT and SIGTERM as well as an
uncaught exception run the stop callback once (best-effort) and then hand
over to whatever handler was there before.

Usage:
    >>> dispose = register_shutdown_hooks(lambda: container.stop(timeout=5))
    >>> ...
    >>> dispose()
"""

import logging
import os
import signal
import sys
from collections.abc import Callable
from types import FrameType, TracebackType

logger = logging.getLogger(__name__)

HOOKED_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGINT", "SIGQUIT", "SIGTERM") if hasattr(signal, name)
)


class ShutdownHooks:
    """
    Signal handlers and an excepthook that run ``on_shutdown`` once.

    Attributes:
        fired: True once the callback has run
    """

    def __init__(self, on_shutdown: Callable[[], None]):
        self._on_shutdown = on_shutdown
        self._previous_handlers: dict[int, object] = {}
        self._previous_excepthook = sys.excepthook
        self._installed = False
        self.fired = False

    def install(self) -> "ShutdownHooks":
        """Install the handlers. Signals are skipped outside the main thread."""
        if self._installed:
            return self

        for signum in HOOKED_SIGNALS:
            try:
                self._previous_handlers[signum] = signal.signal(signum, self._handle_signal)
            except ValueError as e:
                # signal.signal only works in the main thread
                logger.warning(f"Cannot hook signal {signum}: {e}")

        self._previous_excepthook = sys.excepthook
        sys.excepthook = self._handle_exception
        self._installed = True
        return self

    def dispose(self) -> None:
        """Restore the handlers that were active before install()."""
        if not self._installed:
            return

        for signum, previous in self._previous_handlers.items():
            if signal.getsignal(signum) == self._handle_signal:
                signal.signal(signum, previous if previous is not None else signal.SIG_DFL)
        self._previous_handlers.clear()

        if sys.excepthook == self._handle_exception:
            sys.excepthook = self._previous_excepthook

        self._installed = False

    def _run_once(self) -> None:
        if self.fired:
            return
        self.fired = True
        try:
            self._on_shutdown()
        except Exception as e:
            logger.warning(f"Shutdown hook failed to stop container: {e}")

    def _handle_signal(self, signum: int, frame: FrameType | None) -> None:
        logger.info(f"Received signal {signum}, stopping container")
        self._run_once()

        previous = self._previous_handlers.get(signum)
        if callable(previous):
            previous(signum, frame)
        elif previous in (None, signal.SIG_DFL):
            # Re-deliver so the process terminates the way it would have
            signal.signal(signum, signal.SIG_DFL)
            os.kill(os.getpid(), signum)

    def _handle_exception(
        self,
        exc_type: type[BaseException],
        exc: BaseException,
        tb: TracebackType | None,
    ) -> None:
        self._run_once()
        self._previous_excepthook(exc_type, exc, tb)


def register_shutdown_hooks(on_shutdown: Callable[[], None]) -> Callable[[], None]:
    """
    Install shutdown hooks for ``on_shutdown`` and return their disposer.

    Args:
        on_shutdown: Synchronous best-effort cleanup; its errors are logged only

    Returns:
        Zero-argument callable restoring the previous handlers
    """
    return ShutdownHooks(on_shutdown).install().dispose
