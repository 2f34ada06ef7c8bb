from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .config import StoryboardSettings, get_settings

LOGGER_NAME = "storyboard"

_CONFIGURED_LOG_PATH: str | None = None
_FILE_HANDLER: logging.Handler | None = None


def _level_from_name(name: str) -> int:
    level = logging.getLevelName(str(name).upper())
    return level if isinstance(level, int) else logging.INFO


def configure_stdlib_logging(*, log_path: Path, level: str = "INFO") -> None:
    """Send the ``storyboard`` logger hierarchy to ``log_path``.

    Idempotent per-process: if already configured for the same file, only the
    level is updated.
    """
    global _CONFIGURED_LOG_PATH, _FILE_HANDLER

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(_level_from_name(level))

    resolved = str(Path(log_path).expanduser().resolve())
    if _CONFIGURED_LOG_PATH == resolved and _FILE_HANDLER is not None:
        _FILE_HANDLER.setLevel(_level_from_name(level))
        return

    Path(resolved).parent.mkdir(parents=True, exist_ok=True)

    # Replace the handler we installed earlier when switching paths.
    if _FILE_HANDLER is not None:
        logger.removeHandler(_FILE_HANDLER)
        _FILE_HANDLER.close()
        _FILE_HANDLER = None

    fh = logging.FileHandler(resolved, encoding="utf-8")
    fh.setLevel(_level_from_name(level))
    fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(fh)

    _FILE_HANDLER = fh
    _CONFIGURED_LOG_PATH = resolved


def configure_from_settings(settings: Optional[StoryboardSettings] = None) -> None:
    """Apply ``logging.level``/``logging.path`` from configuration."""
    settings = settings or get_settings()
    if settings.log_path is not None:
        configure_stdlib_logging(log_path=settings.log_path, level=settings.log_level)
    else:
        logging.getLogger(LOGGER_NAME).setLevel(_level_from_name(settings.log_level))


def reset_stdlib_logging_for_tests() -> None:
    """Test-only: remove the installed file handler and reset the level."""
    global _CONFIGURED_LOG_PATH, _FILE_HANDLER
    logger = logging.getLogger(LOGGER_NAME)
    if _FILE_HANDLER is not None:
        logger.removeHandler(_FILE_HANDLER)
        _FILE_HANDLER.close()
    logger.setLevel(logging.NOTSET)
    _CONFIGURED_LOG_PATH = None
    _FILE_HANDLER = None


__all__ = ["configure_stdlib_logging", "configure_from_settings", "reset_stdlib_logging_for_tests"]
