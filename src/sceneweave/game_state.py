"""The single game-state value shared by every runtime component."""

from __future__ import annotations

import logging
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Set

logger = logging.getLogger(__name__)

VISITED_KEYS = "visited_keys"
VARIABLES = "variables"
CORE_FIELDS = (VISITED_KEYS, VARIABLES)


@dataclass
class GameState:
    """Snapshot of everything the game knows about the player's progress.

    The state holds three regions:

    * ``visited_keys`` – keys of every scene the player has entered.
    * ``variables`` – the mapping targeted by the built-in effect handlers.
    * ``extensions`` – open-ended fields owned by collaborators (plugins,
      inventories, quest logs). The core never interprets them.

    Instances are only mutated inside a draft opened by the
    :class:`~sceneweave.state_store.StateStore` or the
    :class:`~sceneweave.effect_engine.EffectEngine`; committed snapshots are
    treated as read-only.
    """

    visited_keys: Set[str] = field(default_factory=set)
    variables: Dict[str, Any] = field(default_factory=dict)
    extensions: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.visited_keys = _coerce_visited(self.visited_keys)
        self.variables = _coerce_mapping(self.variables, field_name=VARIABLES)
        self.extensions = _coerce_mapping(self.extensions, field_name="extensions")

    @classmethod
    def create(cls, partial: Mapping[str, Any] | None = None) -> "GameState":
        """Build a state by merging ``partial`` over the defaults.

        Unknown top-level keys are stored in :attr:`extensions`. An explicit
        ``extensions`` entry is merged first so that loose keys win.
        """

        if partial is None:
            return cls()
        if isinstance(partial, GameState):
            return partial.clone()
        if not isinstance(partial, Mapping):
            raise TypeError(f"partial state must be a mapping, got {type(partial)!r}")

        extensions: Dict[str, Any] = {}
        raw_extensions = partial.get("extensions")
        if isinstance(raw_extensions, Mapping):
            extensions.update(deepcopy(dict(raw_extensions)))
        for key, value in partial.items():
            if key in CORE_FIELDS or key == "extensions":
                continue
            extensions[key] = deepcopy(value)

        return cls(
            visited_keys=deepcopy(partial.get(VISITED_KEYS, set())),
            variables=deepcopy(partial.get(VARIABLES, {})),
            extensions=extensions,
        )

    def clone(self) -> "GameState":
        """Return a deep copy that shares no containers with this state."""

        return GameState(
            visited_keys=set(self.visited_keys),
            variables=deepcopy(self.variables),
            extensions=deepcopy(self.extensions),
        )

    def restore_from(self, other: "GameState") -> None:
        """Overwrite every region in place with the contents of ``other``.

        The region containers keep their identity, so references a handler
        took before a rollback still point into this state.
        """

        if other is self:
            return
        self.visited_keys.clear()
        self.visited_keys.update(other.visited_keys)
        self.variables.clear()
        self.variables.update(other.variables)
        self.extensions.clear()
        self.extensions.update(other.extensions)

    def has_visited(self, key: str) -> bool:
        return key in self.visited_keys

    def get(self, name: str, default: Any = None) -> Any:
        """Return a top-level field by name, looking into extensions last."""

        if name == VISITED_KEYS:
            return self.visited_keys
        if name == VARIABLES:
            return self.variables
        return self.extensions.get(name, default)

    def to_dict(self) -> Dict[str, Any]:
        """Return a structural copy with ``visited_keys`` as a sorted list."""

        payload: Dict[str, Any] = deepcopy(self.extensions)
        payload[VISITED_KEYS] = sorted(self.visited_keys)
        payload[VARIABLES] = deepcopy(self.variables)
        return payload


def is_valid_state(value: Any) -> bool:
    """Return ``True`` when ``value`` is a state with correctly typed regions."""

    return (
        isinstance(value, GameState)
        and isinstance(value.visited_keys, set)
        and isinstance(value.variables, dict)
        and isinstance(value.extensions, dict)
    )


def _coerce_visited(value: Any) -> Set[str]:
    if isinstance(value, set):
        return value
    if isinstance(value, (list, tuple, frozenset)):
        return {str(entry) for entry in value}
    if value is None:
        return set()
    logger.warning(
        "visited_keys was %s rather than a set; starting with an empty set",
        type(value).__name__,
    )
    return set()


def _coerce_mapping(value: Any, *, field_name: str) -> Dict[str, Any]:
    if isinstance(value, dict):
        return value
    if isinstance(value, Mapping):
        return dict(value)
    if value is not None:
        logger.warning(
            "%s was %s rather than a mapping; starting with an empty mapping",
            field_name,
            type(value).__name__,
        )
    return {}


def visited_from_iterable(keys: Iterable[Any]) -> Set[str]:
    """Rebuild the visited-key set from a serialized sequence."""

    return {str(key) for key in keys}


__all__ = [
    "GameState",
    "CORE_FIELDS",
    "VISITED_KEYS",
    "VARIABLES",
    "is_valid_state",
    "visited_from_iterable",
]
