"""Configuration helpers for embedding the engine in a host application."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Tuple

from .state_store import DEFAULT_HISTORY_LIMIT

PACKAGE_LOGGER = "sceneweave"
DEFAULT_LOG_LEVEL = "WARNING"

_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET")


def _normalise_path(value: str | None) -> Path | None:
    if value is None:
        return None

    trimmed = value.strip()
    if not trimmed:
        return None

    return Path(trimmed).expanduser()


def _normalise_level(value: str | None) -> str:
    if value is None or not value.strip():
        return DEFAULT_LOG_LEVEL

    level = value.strip().upper()
    if level not in _LOG_LEVELS:
        raise ValueError(
            f"SCENEWEAVE_LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}, got {value!r}."
        )
    return level


def _parse_history_limit(value: str | None) -> int:
    if value is None or not value.strip():
        return DEFAULT_HISTORY_LIMIT

    try:
        parsed = int(value.strip())
    except ValueError as exc:
        raise ValueError("SCENEWEAVE_HISTORY_LIMIT must be a non-negative integer.") from exc
    if parsed < 0:
        raise ValueError("SCENEWEAVE_HISTORY_LIMIT must be a non-negative integer.")
    return parsed


def _parse_keys(value: str | None) -> Tuple[str, ...]:
    if value is None:
        return ()
    return tuple(dict.fromkeys(part.strip() for part in value.split(",") if part.strip()))


@dataclass(frozen=True)
class EngineSettings:
    """Runtime settings for a :class:`~sceneweave.engine.GameEngine`.

    Settings are read from environment variables so a host can tune the
    engine without code changes. Empty strings are treated as if the variable
    was unset.
    """

    log_level: str = DEFAULT_LOG_LEVEL
    history_limit: int = DEFAULT_HISTORY_LIMIT
    persistent_keys: Tuple[str, ...] = ()
    scene_path: Path | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "EngineSettings":
        """Return settings populated from ``environ``.

        Args:
            environ: Optional mapping of environment variables. When omitted,
                :data:`os.environ` is used.

        Raises:
            ValueError: If a variable holds a value that cannot be used.
        """

        source = environ if environ is not None else os.environ

        return cls(
            log_level=_normalise_level(source.get("SCENEWEAVE_LOG_LEVEL")),
            history_limit=_parse_history_limit(source.get("SCENEWEAVE_HISTORY_LIMIT")),
            persistent_keys=_parse_keys(source.get("SCENEWEAVE_PERSISTENT_KEYS")),
            scene_path=_normalise_path(source.get("SCENEWEAVE_SCENE_PATH")),
        )


def configure_logging(settings: EngineSettings | None = None) -> logging.Logger:
    """Apply the configured level to the ``sceneweave`` logger and return it.

    Handlers and the root logger are left to the host application.
    """

    settings = settings or EngineSettings.from_env()
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(settings.log_level)
    return logger


__all__ = ["EngineSettings", "configure_logging", "PACKAGE_LOGGER", "DEFAULT_LOG_LEVEL"]
