# src/pgcontainer/logging_config.py
"""
Logging setup for pgcontainer.

Library modules only ever call ``logging.getLogger(__name__)``; handlers are
installed by the embedding application or by the CLI through
:func:`configure_logging`.

Key concepts:

    **Display filter**: When ``console_enabled=False`` (the default), the
    console handler still exists but only passes records that carry
    ``extra={"display": True}``. Provisioning milestones ("Postgres ready on
    port 54321") reach the user while the step-by-step chatter stays in the
    optional log file.

    **Component levels**: chatty third-party loggers (docker, urllib3,
    psycopg) are held at WARNING unless overridden.

Usage:
    from pgcontainer.logging_config import configure_logging, log_display

    configure_logging(config={"console_enabled": True, "console_level": "DEBUG"})
"""

import logging
import sys
from pathlib import Path
from typing import Any

DEFAULT_LOGGING_CONFIG: dict[str, Any] = {
    "console_enabled": False,
    "console_level": "WARNING",
    "console_format": "%(levelname)s - %(message)s",
    "file_path": None,
    "file_level": "DEBUG",
    "file_format": "%(asctime)s [%(levelname)-8s] %(name)-28s - %(message)s",
    "display_min_level": "INFO",
    "components": {
        "pgcontainer": "DEBUG",
        "docker": "WARNING",
        "urllib3": "WARNING",
        "psycopg": "WARNING",
        "asyncio": "WARNING",
    },
}

_configured = False
_console_handler: logging.Handler | None = None
_file_handler: logging.Handler | None = None


def _level(value: str | int, default: int) -> int:
    """Resolve a level name or number, falling back to ``default``."""
    if isinstance(value, int):
        return value
    level = logging.getLevelName(str(value).upper())
    return level if isinstance(level, int) else default


class DisplayFilter(logging.Filter):
    """Controls which log records pass through to the console handler.

    Behavior matrix::

        +------------------------+--------------+-----------------+
        | console_global         | display=True | display=False/  |
        |                        |              | absent          |
        +------------------------+--------------+-----------------+
        | True  (-v mode)        | PASS         | PASS            |
        | False (default/quiet)  | PASS*        | BLOCK           |
        +------------------------+--------------+-----------------+

        * subject to display_min_level
    """

    def __init__(
        self,
        console_globally_enabled: bool = False,
        display_min_level: int = logging.INFO,
    ) -> None:
        super().__init__()
        self.console_globally_enabled = console_globally_enabled
        self.display_min_level = display_min_level

    def filter(self, record: logging.LogRecord) -> bool:
        if self.console_globally_enabled:
            return True

        if getattr(record, "display", False):
            return record.levelno >= self.display_min_level

        return False


def configure_logging(
    config: dict[str, Any] | None = None,
    force_reconfigure: bool = False,
) -> Path | None:
    """
    Install pgcontainer's console (and optional file) handlers on the root logger.

    Args:
        config: Overrides for DEFAULT_LOGGING_CONFIG
        force_reconfigure: If True, replace handlers installed by an earlier call

    Returns:
        Path to the log file, or None when file logging is off
    """
    global _configured, _console_handler, _file_handler

    log_config = {**DEFAULT_LOGGING_CONFIG, **(config or {})}
    file_path = Path(log_config["file_path"]).expanduser() if log_config["file_path"] else None

    if _configured and not force_reconfigure:
        return file_path

    root_logger = logging.getLogger()
    for handler in (_console_handler, _file_handler):
        if handler is not None:
            root_logger.removeHandler(handler)
            handler.close()
    _console_handler = _file_handler = None

    root_logger.setLevel(logging.DEBUG)

    console_globally_enabled = bool(log_config["console_enabled"])
    console_handler = logging.StreamHandler(sys.stderr)
    if console_globally_enabled:
        console_handler.setLevel(_level(log_config["console_level"], logging.WARNING))
    else:
        # The filter is the only gate in quiet mode.
        console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(logging.Formatter(log_config["console_format"]))
    console_handler.addFilter(
        DisplayFilter(
            console_globally_enabled=console_globally_enabled,
            display_min_level=_level(log_config["display_min_level"], logging.INFO),
        )
    )
    root_logger.addHandler(console_handler)
    _console_handler = console_handler

    if file_path is not None:
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(file_path, encoding="utf-8")
        except OSError as e:
            sys.stderr.write(f"Warning: Cannot create log file {file_path}: {e}\n")
            file_path = None
        else:
            file_handler.setLevel(_level(log_config["file_level"], logging.DEBUG))
            file_handler.setFormatter(logging.Formatter(log_config["file_format"]))
            root_logger.addHandler(file_handler)
            _file_handler = file_handler

    components = {**DEFAULT_LOGGING_CONFIG["components"], **log_config.get("components", {})}
    for component_name, level_str in components.items():
        logging.getLogger(component_name).setLevel(_level(level_str, logging.INFO))

    _configured = True
    return file_path


def log_display(
    logger: logging.Logger,
    level: int,
    msg: str,
    *args: Any,
    **kwargs: Any,
) -> None:
    """Log a message that also appears on console even in quiet mode.

    Wraps ``logger.log()`` and merges ``{"display": True}`` into ``extra``.
    """
    extra = kwargs.pop("extra", None) or {}
    extra["display"] = True
    kwargs["extra"] = extra
    logger.log(level, msg, *args, **kwargs)


def is_configured() -> bool:
    """Check if logging has been configured."""
    return _configured
