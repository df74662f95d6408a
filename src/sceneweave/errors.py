"""Exception hierarchy shared by the runtime components."""

from __future__ import annotations

from typing import Any, Mapping


class SceneweaveError(Exception):
    """Base class for every error raised by the runtime core."""


class ContentNotFoundError(SceneweaveError, KeyError):
    """Raised when a content key is absent from a resolver registry."""

    def __init__(self, key: str) -> None:
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"Content with key '{self.key}' not found in registry"


class InvalidEffectError(SceneweaveError, ValueError):
    """Raised by effect handlers when an effect violates its preconditions.

    The engine catches this error per effect, rolls the draft back to the state
    it had before the failing effect ran and carries on with its siblings.
    """

    def __init__(self, message: str, effect: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.effect = effect


class InvalidStateError(SceneweaveError, ValueError):
    """Raised when a value cannot serve as the game state."""


class ConcurrentUpdateError(SceneweaveError, RuntimeError):
    """Raised when a second draft is opened while another one is still live."""


class ChoiceError(SceneweaveError, IndexError):
    """Raised when a choice selection does not match an available choice."""


class SceneFileError(SceneweaveError, ValueError):
    """Raised when a JSON scene pack fails validation."""


__all__ = [
    "SceneweaveError",
    "ContentNotFoundError",
    "InvalidEffectError",
    "InvalidStateError",
    "ConcurrentUpdateError",
    "ChoiceError",
    "SceneFileError",
]
