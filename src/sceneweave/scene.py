"""Scene and choice definitions."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Callable, Mapping, Sequence, Tuple, Union

from .content import KEY_FIELD, ContentDefinition, define_content
from .effects import Effect
from .game_state import GameState

SCENES = "scenes"

StateText = Union[str, Callable[[GameState], str]]
StateTarget = Union[str, Callable[[GameState], Union[str, None]], None]
Guard = Callable[[GameState], bool]
Hook = Callable[[GameState, Any], None]


def _validate_text(value: Any, *, field_name: str) -> str:
    """Return ``value`` stripped, rejecting anything that is not a string."""

    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string, got {type(value)!r}")
    return value.strip()


def _text_or_callable(value: Any, *, field_name: str) -> StateText:
    if callable(value):
        return value
    return _validate_text(value, field_name=field_name)


def _optional_callable(value: Any, *, field_name: str) -> Any:
    if value is not None and not callable(value):
        raise TypeError(f"{field_name} must be callable or None")
    return value


def _frozen_metadata(value: Mapping[str, Any] | None) -> Mapping[str, Any]:
    if value is None:
        return MappingProxyType({})
    if not isinstance(value, Mapping):
        raise TypeError("metadata must be a mapping")
    return MappingProxyType(dict(value))


@dataclass(frozen=True)
class Choice:
    """An option offered to the player inside a scene.

    ``label`` and ``target`` may be plain strings or callables of the state so
    that a choice can read differently, or lead elsewhere, as the story
    progresses. A ``condition`` hides the choice while it returns false.
    """

    label: StateText = ""
    target: StateTarget = None
    condition: Guard | None = None
    effects: Tuple[Effect, ...] = ()
    response: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "label", _text_or_callable(self.label, field_name="choice label"))

        target = self.target
        if target is not None and not callable(target):
            target = _validate_text(target, field_name="choice target") or None
        object.__setattr__(self, "target", target)

        object.__setattr__(
            self, "condition", _optional_callable(self.condition, field_name="choice condition")
        )

        effects = tuple(self.effects or ())
        for index, effect in enumerate(effects):
            if not isinstance(effect, Mapping):
                raise TypeError(f"choice effect #{index} must be a mapping")
        object.__setattr__(self, "effects", effects)

        if self.response is not None:
            object.__setattr__(
                self, "response", _validate_text(self.response, field_name="choice response")
            )
        object.__setattr__(self, "metadata", _frozen_metadata(self.metadata))

    @classmethod
    def from_definition(cls, definition: Mapping[str, Any]) -> "Choice":
        """Build a choice from a plain mapping.

        ``label`` may also be spelled ``content`` and ``target`` may be spelled
        ``scene``.
        """

        if not isinstance(definition, Mapping):
            raise TypeError("choice definition must be a mapping")
        label = definition.get("label", definition.get("content", ""))
        target = definition.get("target", definition.get("scene"))
        return cls(
            label=label,
            target=target,
            condition=definition.get("condition"),
            effects=tuple(definition.get("effects") or ()),
            response=definition.get("response"),
            metadata=definition.get("metadata"),
        )

    def label_for(self, state: GameState) -> str:
        if callable(self.label):
            return str(self.label(state))
        return self.label

    def target_for(self, state: GameState) -> str | None:
        """Return the scene key this choice leads to, if any."""

        if callable(self.target):
            return self.target(state) or None
        return self.target

    def is_available(self, state: GameState) -> bool:
        if self.condition is None:
            return True
        return bool(self.condition(state))


def _coerce_choice(value: Choice | Mapping[str, Any]) -> Choice:
    if isinstance(value, Choice):
        return value
    if isinstance(value, Mapping):
        return Choice.from_definition(value)
    raise TypeError(f"choices must be Choice objects or mappings, got {type(value)!r}")


@dataclass(frozen=True)
class Scene:
    """A unit of story content together with the choices it offers.

    ``key`` records the registry key the scene was resolved from. It is filled
    in by the content resolver through :meth:`with_key`.
    """

    title: str = ""
    content: StateText = ""
    choices: Tuple[Choice, ...] = ()
    on_enter: Hook | None = None
    on_exit: Hook | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    key: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "title", _validate_text(self.title, field_name="scene title"))
        object.__setattr__(
            self, "content", _text_or_callable(self.content, field_name="scene content")
        )

        if isinstance(self.choices, (str, bytes)) or not isinstance(self.choices, Sequence):
            raise TypeError("scene choices must be a sequence")
        object.__setattr__(self, "choices", tuple(_coerce_choice(c) for c in self.choices))

        object.__setattr__(self, "on_enter", _optional_callable(self.on_enter, field_name="on_enter"))
        object.__setattr__(self, "on_exit", _optional_callable(self.on_exit, field_name="on_exit"))
        object.__setattr__(self, "metadata", _frozen_metadata(self.metadata))

    @classmethod
    def from_definition(cls, definition: Mapping[str, Any]) -> "Scene":
        if not isinstance(definition, Mapping):
            raise TypeError("scene definition must be a mapping")
        return cls(
            title=definition.get("title", ""),
            content=definition.get("content", ""),
            choices=definition.get("choices") or (),
            on_enter=definition.get("on_enter"),
            on_exit=definition.get("on_exit"),
            metadata=definition.get("metadata"),
            key=definition.get(KEY_FIELD, definition.get("key")),
        )

    def with_key(self, key: str) -> "Scene":
        if key == self.key:
            return self
        return replace(self, key=key)

    def render(self, state: GameState) -> str:
        """Return the scene text for ``state``."""

        if callable(self.content):
            return str(self.content(state))
        return self.content

    def available_choices(self, state: GameState) -> Tuple[Choice, ...]:
        return tuple(choice for choice in self.choices if choice.is_available(state))


def coerce_scene(value: Any) -> Scene:
    """Return ``value`` as a :class:`Scene`, building one from a mapping."""

    if isinstance(value, Scene):
        return value
    if isinstance(value, Mapping):
        return Scene.from_definition(value)
    raise TypeError(f"cannot use {type(value).__name__} as a scene")


def define_scene(**fields: Any) -> Scene:
    return Scene.from_definition(fields)


def define_scenes(entries: Mapping[str, Any]) -> ContentDefinition:
    """Wrap scene entries for :meth:`GameEngine.register_content`.

    Mapping entries are converted to :class:`Scene` objects; deferred loaders
    are kept as they are.
    """

    converted = {
        key: Scene.from_definition(value) if isinstance(value, Mapping) else value
        for key, value in entries.items()
    }
    return define_content(SCENES, converted)


__all__ = [
    "Choice",
    "Scene",
    "SCENES",
    "StateText",
    "StateTarget",
    "Guard",
    "Hook",
    "coerce_scene",
    "define_scene",
    "define_scenes",
]
