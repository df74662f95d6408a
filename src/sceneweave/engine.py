"""High level facade wiring state, effects, content and scene transitions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Protocol, Sequence, Tuple

from .content import ContentDefinition, ContentResolver, ResolverRegistry
from .effect_engine import EffectEngine
from .effects import Effect, batch_effect
from .errors import ChoiceError
from .game_state import GameState
from .scene import SCENES, Choice, Scene
from .scene_controller import SceneController, SceneTransition
from .scene_files import load_scenes_from_file
from .settings import EngineSettings
from .state_store import StateChange, StateStore

logger = logging.getLogger(__name__)

GAME_STARTED = "gameStarted"
GAME_ENDED = "gameEnded"
SCENE_CHANGED = "sceneChanged"
CHOICE_SELECTED = "choiceSelected"
EFFECT_APPLIED = "effectApplied"
STATE_CHANGED = "stateChanged"
ERROR = "error"


class EventSink(Protocol):
    """Receiver for one-way engine notifications."""

    def emit(self, name: str, payload: Mapping[str, Any]) -> None:
        """Handle the event ``name``."""


@dataclass
class RecordingEventSink:
    """Event sink that keeps every notification in memory."""

    events: List[Tuple[str, Mapping[str, Any]]] = field(default_factory=list)

    def emit(self, name: str, payload: Mapping[str, Any]) -> None:
        self.events.append((name, dict(payload)))

    def names(self) -> List[str]:
        return [name for name, _ in self.events]

    def payloads(self, name: str) -> List[Mapping[str, Any]]:
        return [payload for event, payload in self.events if event == name]

    def clear(self) -> None:
        self.events.clear()


@dataclass(frozen=True)
class ChoiceOutcome:
    """Result of :meth:`GameEngine.select_choice`."""

    choice: Choice
    response: str | None
    target: str | None
    transitioned: bool


class GameEngine:
    """Run a choice-driven story.

    The engine owns a :class:`StateStore`, an :class:`EffectEngine`, a scene
    :class:`ContentResolver` (registered as ``"scenes"`` in a
    :class:`ResolverRegistry`) and a :class:`SceneController`. Scene hooks
    receive the engine itself as their second argument.
    """

    def __init__(
        self,
        scenes: ContentResolver[Any] | Mapping[str, Any] | None = None,
        *,
        initial_state: GameState | Mapping[str, Any] | None = None,
        settings: EngineSettings | None = None,
        events: EventSink | None = None,
        register_default_effects: bool = True,
    ) -> None:
        self._settings = settings or EngineSettings()
        self._events = events
        self._initial_state = initial_state
        self._store = StateStore(
            initial_state,
            persistent_keys=self._settings.persistent_keys,
            history_limit=self._settings.history_limit,
        )
        self._effects = EffectEngine(register_default_effects=register_default_effects)

        if isinstance(scenes, ContentResolver):
            self._scenes = scenes
        else:
            self._scenes = ContentResolver(scenes, name="scene")

        self._loaders = ResolverRegistry().register_resolver(SCENES, self._scenes)
        self._controller = SceneController(
            self._scenes, self._store, on_transition=self._scene_entered
        )
        self._running = False
        self._starting = False
        self._start_key: str | None = None
        self._store.subscribe(self._forward_state_change)

    @classmethod
    def from_settings(
        cls,
        settings: EngineSettings | None = None,
        *,
        initial_state: GameState | Mapping[str, Any] | None = None,
        events: EventSink | None = None,
    ) -> "GameEngine":
        """Build an engine from ``settings``, loading the configured scene pack."""

        settings = settings or EngineSettings.from_env()
        scenes: Dict[str, Scene] = {}
        if settings.scene_path is not None:
            scenes = load_scenes_from_file(settings.scene_path)
        return cls(scenes, initial_state=initial_state, settings=settings, events=events)

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def store(self) -> StateStore:
        return self._store

    @property
    def effects(self) -> EffectEngine:
        return self._effects

    @property
    def scenes(self) -> ContentResolver[Any]:
        return self._scenes

    @property
    def loaders(self) -> ResolverRegistry:
        return self._loaders

    @property
    def controller(self) -> SceneController:
        return self._controller

    @property
    def state(self) -> GameState:
        return self._store.get_state()

    @property
    def current_scene(self) -> Scene | None:
        return self._controller.current_scene

    @property
    def current_key(self) -> str | None:
        return self._controller.current_key

    @property
    def is_running(self) -> bool:
        return self._running

    def _emit(self, name: str, payload: Mapping[str, Any]) -> None:
        if self._events is None:
            return
        try:
            self._events.emit(name, payload)
        except Exception:
            logger.exception("Event sink failed while handling '%s'", name)

    def _forward_state_change(self, change: StateChange) -> None:
        self._emit(
            STATE_CHANGED,
            {"previous": change.previous, "current": change.current, "source": change.source},
        )

    def _scene_entered(self, transition: SceneTransition) -> None:
        if self._starting:
            self._starting = False
            self._running = True
            self._emit(GAME_STARTED, {"scene_key": transition.key})
            self._emit(SCENE_CHANGED, {"scene": transition.scene, "scene_key": transition.key})
            return

        self._emit(
            SCENE_CHANGED,
            {
                "scene": transition.scene,
                "scene_key": transition.key,
                "previous_scene": transition.previous_scene,
                "previous_scene_key": transition.previous_key,
            },
        )

    async def start(self, key: str, effects: Sequence[Effect] | None = None) -> bool:
        """Apply ``effects`` and enter the first scene.

        Returns:
            ``True`` once ``key`` was entered and the game is running.
        """

        if effects:
            self.apply_effects(effects)

        self._start_key = key
        self._starting = True
        try:
            started = await self._controller.go_to(key, self)
        finally:
            self._starting = False

        if not started:
            logger.error("Failed to start the game at scene '%s'", key)
            self._emit(ERROR, {"message": f"Failed to start the game at scene '{key}'", "context": "start"})
        return started

    def end(self, reason: str | None = None, **data: Any) -> None:
        if not self._running:
            return
        self._running = False
        self._emit(GAME_ENDED, {"reason": reason, **data})

    async def restart(
        self,
        initial_state: GameState | Mapping[str, Any] | None = None,
        key: str | None = None,
    ) -> bool:
        """Reset state and controller, then start again.

        Args:
            initial_state: State to restart from; defaults to the state the
                engine was created with.
            key: Scene to start at; defaults to the key of the last
                :meth:`start`.
        """

        key = key or self._start_key
        if key is None:
            raise ValueError("restart needs a scene key when the game was never started")

        self.end("restart")
        self._store.reset_state(initial_state if initial_state is not None else self._initial_state)
        self._controller.reset()
        return await self.start(key)

    async def transition_to(self, key: str, effects: Sequence[Effect] | None = None) -> bool:
        """Apply ``effects`` and move to the scene ``key``."""

        if not self._running:
            logger.warning("Cannot transition to '%s': the game is not running", key)
            return False

        if effects:
            self.apply_effects(effects)

        if not await self._controller.go_to(key, self):
            self._emit(
                ERROR,
                {"message": f"Failed to transition to scene '{key}'", "context": "transition"},
            )
            return False
        return True

    def apply_effects(self, effects: Iterable[Effect]) -> GameState:
        """Apply ``effects`` to the current state in a single commit."""

        effects = list(effects)
        if not effects:
            return self.state

        previous = self.state
        current = self._store.update_state(
            lambda draft: self._effects.run(effects, draft), source="apply_effects"
        )
        self._emit(
            EFFECT_APPLIED,
            {
                "effect": effects[0] if len(effects) == 1 else batch_effect(effects),
                "previous": previous,
                "current": current,
            },
        )
        return current

    def apply_effect(self, effect: Effect) -> GameState:
        return self.apply_effects([effect])

    def available_choices(self) -> List[Choice]:
        return self._controller.available_choices(self.state)

    async def select_choice(self, index: int) -> ChoiceOutcome:
        """Select the available choice at ``index``.

        The choice's effects are applied first; its target is then evaluated
        against the updated state and, when present, transitioned to.

        Raises:
            ChoiceError: If ``index`` does not address an available choice.
        """

        choices = self.available_choices()
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(choices):
            raise ChoiceError(
                f"choice index {index!r} is out of range for {len(choices)} available choices"
            )

        choice = choices[index]
        self._emit(
            CHOICE_SELECTED,
            {"index": index, "choice": choice, "scene_key": self.current_key},
        )

        if choice.effects:
            self.apply_effects(choice.effects)

        target = choice.target_for(self.state)
        transitioned = False
        if target:
            transitioned = await self.transition_to(target)

        return ChoiceOutcome(
            choice=choice, response=choice.response, target=target, transitioned=transitioned
        )

    def render_current(self) -> str | None:
        scene = self.current_scene
        if scene is None:
            return None
        return scene.render(self.state)

    def register_content(self, definition: ContentDefinition) -> bool:
        """Register ``definition`` with the resolver for its content type."""

        resolver = self._loaders.get(definition.type)
        if resolver is None:
            logger.warning("No resolver registered for content type '%s'", definition.type)
            return False
        resolver.register(definition.entries)
        return True

    def resolver_for(self, content_type: str) -> ContentResolver[Any] | None:
        return self._loaders.get(content_type)


__all__ = [
    "GameEngine",
    "ChoiceOutcome",
    "EventSink",
    "RecordingEventSink",
    "GAME_STARTED",
    "GAME_ENDED",
    "SCENE_CHANGED",
    "CHOICE_SELECTED",
    "EFFECT_APPLIED",
    "STATE_CHANGED",
    "ERROR",
]
