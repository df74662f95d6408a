"""Dotted-path addressing into the freeform regions of a :class:`GameState`.

The freeform part of the state is a tree of scalars, lists and dicts. A path
such as ``"variables.stats.hp"`` or ``"inventory.items.0"`` walks that tree one
segment at a time: dict segments are keys, list segments are integer indices.
The first segment picks the region – ``variables`` addresses
:attr:`GameState.variables`, anything else addresses an entry of
:attr:`GameState.extensions`.
"""

from __future__ import annotations

from typing import Any, Dict, Sequence, Tuple

from .errors import InvalidEffectError
from .game_state import VARIABLES, VISITED_KEYS, GameState

_MISSING = object()


def split_path(path: str) -> Tuple[str, ...]:
    """Split ``path`` on dots, rejecting empty paths and empty segments."""

    if not isinstance(path, str):
        raise InvalidEffectError(f"path must be a string, got {type(path)!r}")
    segments = tuple(segment.strip() for segment in path.split("."))
    if not segments or any(not segment for segment in segments):
        raise InvalidEffectError(f"path '{path}' contains an empty segment")
    if segments[0] == VISITED_KEYS:
        raise InvalidEffectError("visited_keys cannot be addressed by a path")
    return segments


def _is_index(segment: str) -> bool:
    return segment.isdigit()


def _root_for(state: GameState, segments: Sequence[str]) -> Tuple[Dict[str, Any], Sequence[str]]:
    if segments[0] == VARIABLES:
        return state.variables, segments[1:]
    return state.extensions, segments


def _step(container: Any, segment: str) -> Any:
    if isinstance(container, dict):
        return container.get(segment, _MISSING)
    if isinstance(container, list):
        if not _is_index(segment):
            return _MISSING
        index = int(segment)
        if index >= len(container):
            return _MISSING
        return container[index]
    return _MISSING


def get_path(state: GameState, path: str, default: Any = None) -> Any:
    """Return the value stored at ``path`` or ``default`` when it is absent."""

    segments = split_path(path)
    node, remaining = _root_for(state, segments)
    if not remaining:
        return node
    for segment in remaining:
        node = _step(node, segment)
        if node is _MISSING:
            return default
    return node


def has_path(state: GameState, path: str) -> bool:
    return get_path(state, path, _MISSING) is not _MISSING


def _new_container(next_segment: str) -> Any:
    return [] if _is_index(next_segment) else {}


def _assign(container: Any, segment: str, value: Any, path: str) -> None:
    if isinstance(container, dict):
        container[segment] = value
        return
    if isinstance(container, list):
        if not _is_index(segment):
            raise InvalidEffectError(
                f"path '{path}' uses non-numeric segment '{segment}' on a list"
            )
        index = int(segment)
        if index >= len(container):
            container.extend([None] * (index + 1 - len(container)))
        container[index] = value
        return
    raise InvalidEffectError(
        f"path '{path}' crosses a {type(container).__name__} at segment '{segment}'"
    )


def set_path(state: GameState, path: str, value: Any) -> None:
    """Store ``value`` at ``path``, creating intermediate containers.

    A missing intermediate container becomes a list when the segment that
    follows it is numeric and a dict otherwise.
    """

    segments = split_path(path)
    node, remaining = _root_for(state, segments)
    if not remaining:
        if segments[0] == VARIABLES and isinstance(value, dict):
            if value is not state.variables:
                state.variables.clear()
                state.variables.update(value)
            return
        raise InvalidEffectError(f"path '{path}' must name a location inside a region")

    for position, segment in enumerate(remaining[:-1]):
        child = _step(node, segment)
        next_segment = remaining[position + 1]
        if child is _MISSING or child is None:
            child = _new_container(next_segment)
            _assign(node, segment, child, path)
        elif not isinstance(child, (dict, list)):
            raise InvalidEffectError(
                f"path '{path}' crosses a {type(child).__name__} at segment '{segment}'"
            )
        node = child

    _assign(node, remaining[-1], value, path)


class Target:
    """A single writable location inside the state tree.

    Built-in effects address either ``variables[name]`` directly (names may
    contain dots) or an explicit dotted ``path``.
    """

    __slots__ = ("_state", "_name", "_path")

    def __init__(self, state: GameState, *, name: str | None = None, path: str | None = None) -> None:
        self._state = state
        self._name = name
        self._path = path

    def __repr__(self) -> str:
        if self._path is not None:
            return f"Target(path={self._path!r})"
        return f"Target(variable={self._name!r})"

    def get(self, default: Any = None) -> Any:
        if self._path is not None:
            return get_path(self._state, self._path, default)
        return self._state.variables.get(self._name, default)

    def exists(self) -> bool:
        return self.get(_MISSING) is not _MISSING

    def set(self, value: Any) -> None:
        if self._path is not None:
            set_path(self._state, self._path, value)
        else:
            self._state.variables[self._name] = value


def resolve_target(effect: Any, state: GameState, *, name_field: str) -> Target:
    """Return the :class:`Target` addressed by a built-in effect.

    The explicit ``path`` wins when both ``path`` and ``name_field`` are given.
    """

    path = effect.get("path")
    if path:
        split_path(path)
        return Target(state, path=path)
    name = effect.get(name_field)
    if not isinstance(name, str) or not name:
        raise InvalidEffectError(
            f"{effect.get('type')!r} effect requires '{name_field}' or 'path'",
            effect,
        )
    return Target(state, name=name)


__all__ = ["split_path", "get_path", "has_path", "set_path", "Target", "resolve_target"]
