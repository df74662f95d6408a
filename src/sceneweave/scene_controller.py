"""State machine moving the player from one scene to the next."""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, List

from .content import ContentResolver
from .errors import ContentNotFoundError
from .game_state import GameState
from .scene import Choice, Hook, Scene, coerce_scene
from .state_store import StateStore

logger = logging.getLogger(__name__)


class ControllerState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"


@dataclass(frozen=True)
class SceneTransition:
    """Pointer move reported to the controller's transition listener."""

    key: str
    scene: Scene
    previous_key: str | None
    previous_scene: Scene | None


TransitionListener = Callable[[SceneTransition], None]


class SceneController:
    """Resolve scenes, run their lifecycle hooks and track the current one.

    A transition resolves the target first and only then touches anything:
    the outgoing scene's ``on_exit`` runs, the target key is recorded as
    visited, the current-scene pointer moves and finally the incoming scene's
    ``on_enter`` runs, already seeing its own key in ``visited_keys``.

    Transitions are serialised up to the pointer move. A :meth:`go_to` issued
    while another one is still resolving waits for it to finish. ``on_enter``
    runs once the lock is released, so a hook may itself start the next
    transition.

    ``on_transition`` is called right after the pointer moves and before
    ``on_enter`` runs.
    """

    def __init__(
        self,
        resolver: ContentResolver[Any],
        store: StateStore,
        *,
        on_transition: TransitionListener | None = None,
    ) -> None:
        self._resolver = resolver
        self._store = store
        self._on_transition = on_transition
        self._current_scene: Scene | None = None
        self._current_key: str | None = None
        self._lock = asyncio.Lock()
        self._owner: asyncio.Task[Any] | None = None

    @property
    def resolver(self) -> ContentResolver[Any]:
        return self._resolver

    @property
    def store(self) -> StateStore:
        return self._store

    @property
    def current_scene(self) -> Scene | None:
        return self._current_scene

    @property
    def current_key(self) -> str | None:
        return self._current_key

    @property
    def status(self) -> ControllerState:
        if self._current_scene is None:
            return ControllerState.IDLE
        return ControllerState.ACTIVE

    @property
    def is_active(self) -> bool:
        return self._current_scene is not None

    async def go_to(self, key: str, engine: Any = None) -> bool:
        """Transition to the scene registered under ``key``.

        Args:
            key: Registry key of the target scene.
            engine: Handle passed to the scene hooks as their second argument.

        Returns:
            ``True`` once the transition completed, ``False`` when the scene
            could not be resolved or when called from an ``on_exit`` hook of a
            transition that is still running. A failed call changes nothing.

        Raises:
            Exception: Anything raised by an ``on_exit`` or ``on_enter`` hook.
        """

        if self._owner is not None and self._owner is asyncio.current_task():
            logger.error(
                "Cannot transition to scene '%s' from inside another transition's on_exit hook",
                key,
            )
            return False

        async with self._lock:
            self._owner = asyncio.current_task()
            try:
                scene = await self._move_to(key, engine)
            finally:
                self._owner = None

        if scene is None:
            return False
        await _run_hook(scene.on_enter, self._store.get_state(), engine)
        return True

    async def _move_to(self, key: str, engine: Any) -> Scene | None:
        try:
            scene = coerce_scene(await self._resolver.resolve(key))
        except ContentNotFoundError:
            logger.error("Cannot transition to scene '%s': it is not registered", key)
            return None
        except Exception:
            logger.exception("Cannot transition to scene '%s': it failed to load", key)
            return None

        if scene.key is None:
            scene = scene.with_key(key)

        outgoing = self._current_scene
        if outgoing is not None:
            await _run_hook(outgoing.on_exit, self._store.get_state(), engine)

        self._store.update_state(
            lambda draft: draft.visited_keys.add(key), source="scene_transition"
        )
        previous_key = self._current_key
        self._current_scene = scene
        self._current_key = key
        logger.debug("Entered scene '%s'", key)
        if self._on_transition is not None:
            self._on_transition(SceneTransition(key, scene, previous_key, outgoing))
        return scene

    def available_choices(self, state: GameState | None = None) -> List[Choice]:
        """Return the current scene's choices whose guard passes.

        ``state`` defaults to the store's current snapshot. An idle controller
        has no choices.
        """

        if self._current_scene is None:
            return []
        snapshot = state if state is not None else self._store.get_state()
        return list(self._current_scene.available_choices(snapshot))

    async def preload(self, keys: Iterable[str] | None = None) -> None:
        await self._resolver.preload(keys)

    def reset(self) -> None:
        """Return to idle without running any hooks."""

        self._current_scene = None
        self._current_key = None


async def _run_hook(hook: Hook | None, state: GameState, engine: Any) -> None:
    if hook is None:
        return
    result = hook(state, engine)
    if inspect.isawaitable(result):
        await result


__all__ = ["ControllerState", "SceneController", "SceneTransition", "TransitionListener"]
