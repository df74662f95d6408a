"""Single-writer owner of the current :class:`GameState`."""

from __future__ import annotations

import json
import logging
from collections import deque
from copy import deepcopy
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, ClassVar, Deque, Dict, Iterable, List, Mapping

from .errors import ConcurrentUpdateError, InvalidStateError
from .game_state import (
    CORE_FIELDS,
    VARIABLES,
    VISITED_KEYS,
    GameState,
    is_valid_state,
    visited_from_iterable,
)

logger = logging.getLogger(__name__)

STATE_VERSION = 1
METADATA_KEY = "_metadata"
DEFAULT_PERSISTENT_KEYS = CORE_FIELDS
DEFAULT_HISTORY_LIMIT = 50

Mutator = Callable[[GameState], Any]
Migration = Callable[[Dict[str, Any]], Dict[str, Any]]


@dataclass(frozen=True)
class StateChange:
    """Notification delivered to store subscribers after every commit."""

    previous: GameState
    current: GameState
    source: str


Listener = Callable[[StateChange], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StateStore:
    """Own the game state and serialise every write through a draft.

    :meth:`update_state` clones the current snapshot, hands the clone to a
    mutator and commits it only when the mutator returns. Any write attempted
    while a draft is live (a mutator that calls back into the store) raises
    :class:`ConcurrentUpdateError`, so writes can never interleave.
    """

    # Shared by every store; see register_migration.
    _migrations: ClassVar[Dict[int, Migration]] = {}

    def __init__(
        self,
        initial_state: GameState | Mapping[str, Any] | None = None,
        *,
        persistent_keys: Iterable[str] | None = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if isinstance(history_limit, bool) or not isinstance(history_limit, int) or history_limit < 0:
            raise ValueError("history_limit must be a non-negative integer")

        self._state = GameState.create(initial_state)
        self._persistent_keys: List[str] = []
        self.set_persistent_keys(persistent_keys or ())
        self._history_limit = history_limit
        self._undo: Deque[GameState] = deque()
        self._redo: Deque[GameState] = deque()
        self._listeners: List[Listener] = []
        self._revision = 0
        self._drafting = False
        self._clock = clock or _utcnow

    def get_state(self) -> GameState:
        """Return the current snapshot. Callers must not mutate it."""

        return self._state

    @property
    def state(self) -> GameState:
        return self._state

    @property
    def revision(self) -> int:
        """Number of commits made since the store was created."""

        return self._revision

    @property
    def history_limit(self) -> int:
        return self._history_limit

    def update_state(self, mutator: Mutator, source: str | None = None) -> GameState:
        """Apply ``mutator`` to a draft and commit the result.

        Args:
            mutator: Callable receiving the draft state. Its return value is
                ignored.
            source: Label passed on to subscribers.

        Returns:
            The committed snapshot.

        Raises:
            ConcurrentUpdateError: If another draft is currently open.
            Exception: Anything raised by ``mutator``; nothing is committed.
        """

        self._ensure_no_draft("update_state")

        self._drafting = True
        try:
            draft = self._state.clone()
            mutator(draft)
        finally:
            self._drafting = False

        if draft == self._state:
            return self._state

        self._commit(draft, source or "update")
        return self._state

    def set_state(self, new_state: GameState, source: str | None = None) -> None:
        """Replace the whole state after validating its shape."""

        self._ensure_no_draft("set_state")
        if not is_valid_state(new_state):
            raise InvalidStateError(
                f"cannot set state to {type(new_state).__name__}; expected a GameState "
                "with a set of visited keys and mapping regions"
            )
        self._commit(new_state, source or "set_state")

    def reset_state(self, partial: Mapping[str, Any] | None = None) -> None:
        """Start over from ``partial`` merged onto the defaults.

        Undo and redo history is discarded.
        """

        self._ensure_no_draft("reset_state")
        new_state = GameState.create(partial)
        self.clear_history()
        self._commit(new_state, "reset", record_history=False)

    def merge_state(self, partial: Mapping[str, Any]) -> GameState:
        """Merge ``partial`` into the current state.

        Visited keys are added, variables are shallow-merged and any other
        top-level key replaces the matching extension field.
        """

        if not isinstance(partial, Mapping):
            raise TypeError("partial state must be a mapping")

        def merge(draft: GameState) -> None:
            visited = partial.get(VISITED_KEYS)
            if isinstance(visited, (set, frozenset, list, tuple)):
                draft.visited_keys.update(visited_from_iterable(visited))
            variables = partial.get(VARIABLES)
            if isinstance(variables, Mapping):
                draft.variables.update(deepcopy(dict(variables)))
            for key, value in partial.items():
                if key not in CORE_FIELDS:
                    draft.extensions[key] = deepcopy(value)

        return self.update_state(merge, "merge_state")

    def _ensure_no_draft(self, operation: str) -> None:
        if self._drafting:
            raise ConcurrentUpdateError(
                f"{operation} was called while a draft was still open"
            )

    def _commit(self, new_state: GameState, source: str, *, record_history: bool = True) -> None:
        previous = self._state
        if record_history and self._history_limit:
            self._undo.append(previous)
            while len(self._undo) > self._history_limit:
                self._undo.popleft()
            self._redo.clear()
        self._state = new_state
        self._revision += 1
        self._notify(StateChange(previous=previous, current=new_state, source=source))

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` after every commit; returns an unsubscribe callable."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, change: StateChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception("State listener %r failed for %s", listener, change.source)

    def can_undo(self) -> bool:
        return bool(self._undo)

    def can_redo(self) -> bool:
        return bool(self._redo)

    def undo(self) -> bool:
        """Restore the snapshot preceding the last commit.

        Raises:
            ConcurrentUpdateError: If called from inside a mutator.
        """

        self._ensure_no_draft("undo")
        if not self._undo:
            return False
        previous = self._state
        self._redo.append(previous)
        self._state = self._undo.pop()
        self._revision += 1
        self._notify(StateChange(previous=previous, current=self._state, source="undo"))
        return True

    def redo(self) -> bool:
        self._ensure_no_draft("redo")
        if not self._redo:
            return False
        previous = self._state
        self._undo.append(previous)
        self._state = self._redo.pop()
        self._revision += 1
        self._notify(StateChange(previous=previous, current=self._state, source="redo"))
        return True

    def clear_history(self) -> None:
        self._undo.clear()
        self._redo.clear()

    def get_variable(self, name: str, default: Any = None) -> Any:
        return self._state.variables.get(name, default)

    def set_variable(self, name: str, value: Any) -> GameState:
        def assign(draft: GameState) -> None:
            draft.variables[name] = value

        return self.update_state(assign, "set_variable")

    def has_variable(self, name: str) -> bool:
        return name in self._state.variables

    def remove_variable(self, name: str) -> GameState:
        return self.update_state(lambda draft: draft.variables.pop(name, None), "remove_variable")

    def mark_visited(self, key: str) -> GameState:
        return self.update_state(lambda draft: draft.visited_keys.add(key), "mark_visited")

    def unmark_visited(self, key: str) -> GameState:
        return self.update_state(lambda draft: draft.visited_keys.discard(key), "unmark_visited")

    def clear_visited(self) -> GameState:
        return self.update_state(lambda draft: draft.visited_keys.clear(), "clear_visited")

    def has_visited(self, key: str) -> bool:
        return key in self._state.visited_keys

    def visited_count(self) -> int:
        return len(self._state.visited_keys)

    @property
    def persistent_keys(self) -> List[str]:
        return list(self._persistent_keys)

    def set_persistent_keys(self, keys: Iterable[str]) -> None:
        """Replace the persistent keys; the core regions are always kept."""

        ordered: List[str] = list(DEFAULT_PERSISTENT_KEYS)
        for key in keys:
            if not isinstance(key, str) or not key.strip():
                raise ValueError("persistent keys must be non-empty strings")
            key = key.strip()
            if key == METADATA_KEY:
                raise ValueError(f"'{METADATA_KEY}' is reserved for serialisation metadata")
            if key not in ordered:
                ordered.append(key)
        self._persistent_keys = ordered

    def add_persistent_key(self, key: str) -> None:
        if key not in self._persistent_keys:
            self.set_persistent_keys([*self._persistent_keys, key])

    def remove_persistent_key(self, key: str) -> bool:
        if key in DEFAULT_PERSISTENT_KEYS:
            logger.warning("Cannot remove default persistent key '%s'", key)
            return False
        if key not in self._persistent_keys:
            return False
        self._persistent_keys.remove(key)
        return True

    def serialize(self, *, include_metadata: bool = True) -> str:
        """Return the persistent part of the state as a JSON document.

        Raises:
            InvalidStateError: If a persistent value is not JSON serialisable.
        """

        state = self._state
        payload: Dict[str, Any] = {}
        for key in self._persistent_keys:
            if key == VISITED_KEYS:
                payload[key] = sorted(state.visited_keys)
            elif key == VARIABLES:
                payload[key] = state.variables
            elif key in state.extensions:
                payload[key] = state.extensions[key]
            else:
                logger.warning("Persistent key '%s' is not present in the state", key)

        if include_metadata:
            payload[METADATA_KEY] = {
                "version": STATE_VERSION,
                "timestamp": self._clock().isoformat(),
            }

        try:
            return json.dumps(payload, sort_keys=True)
        except (TypeError, ValueError) as exc:
            raise InvalidStateError(f"state cannot be serialised to JSON: {exc}") from exc

    def deserialize(self, serialized: str, source: str | None = None) -> GameState:
        """Replace the persistent part of the state with ``serialized``.

        Registered migrations bring older payloads up to
        :data:`STATE_VERSION` first. Extension fields that are not persistent
        keep their current values.

        Raises:
            InvalidStateError: If ``serialized`` is not a JSON object.
        """

        self._ensure_no_draft("deserialize")
        try:
            payload = json.loads(serialized)
        except (TypeError, ValueError) as exc:
            raise InvalidStateError("serialized state is not valid JSON") from exc
        if not isinstance(payload, dict):
            raise InvalidStateError("serialized state must be a JSON object")

        payload = self.migrate(payload)
        payload.pop(METADATA_KEY, None)

        visited = payload.get(VISITED_KEYS, [])
        if not isinstance(visited, list):
            logger.warning("Serialized visited_keys was not a list; starting with none visited")
            visited = []
        variables = payload.get(VARIABLES, {})
        if not isinstance(variables, dict):
            logger.warning("Serialized variables were not an object; starting with none")
            variables = {}

        extensions = deepcopy(self._state.extensions)
        for key in self._persistent_keys:
            if key not in CORE_FIELDS and key in payload:
                extensions[key] = payload[key]

        new_state = GameState(
            visited_keys=visited_from_iterable(visited),
            variables=variables,
            extensions=extensions,
        )
        self._commit(new_state, source or "deserialize")
        return new_state

    @classmethod
    def register_migration(cls, from_version: int, migration: Migration) -> Callable[[], bool]:
        """Register ``migration`` upgrading payloads from ``from_version``.

        Migrations are stored on the class, so they apply to every store in the
        process until unregistered.

        Returns:
            A callable that unregisters the migration again.
        """

        if from_version in cls._migrations:
            logger.warning("Overwriting the migration registered for version %d", from_version)
        cls._migrations[from_version] = migration
        return lambda: cls.unregister_migration(from_version)

    @classmethod
    def unregister_migration(cls, from_version: int) -> bool:
        return cls._migrations.pop(from_version, None) is not None

    @classmethod
    def migrate(cls, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Upgrade a parsed payload to :data:`STATE_VERSION`.

        Payloads without metadata are treated as version 0. Missing steps are
        logged and skipped.
        """

        metadata = payload.get(METADATA_KEY)
        version = metadata.get("version") if isinstance(metadata, dict) else None
        if isinstance(version, bool) or not isinstance(version, int):
            logger.warning("Serialized state has no usable version; assuming version 0")
            version = 0

        if version > STATE_VERSION:
            logger.warning(
                "Serialized state version %d is newer than %d; no migration applied",
                version,
                STATE_VERSION,
            )
            return payload

        for step in range(version, STATE_VERSION):
            migration = cls._migrations.get(step)
            if migration is None:
                logger.warning("No migration registered from version %d to %d", step, step + 1)
                continue
            logger.info("Migrating serialized state from version %d to %d", step, step + 1)
            payload = migration(payload)
            if not isinstance(payload, dict):
                raise InvalidStateError(
                    f"migration from version {step} must return a mapping"
                )
        return payload


__all__ = [
    "StateStore",
    "StateChange",
    "Listener",
    "Migration",
    "Mutator",
    "STATE_VERSION",
    "METADATA_KEY",
    "DEFAULT_PERSISTENT_KEYS",
    "DEFAULT_HISTORY_LIMIT",
]
