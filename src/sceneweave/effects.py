"""Effect values and helpers for building them.

An effect is a plain mapping with a ``"type"`` discriminator and an open set
of fields. Keeping effects as data means scene packs loaded from JSON can carry
them unchanged; the helpers below only save typing when effects are written in
Python.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Dict, Iterable, Mapping, Union

from .game_state import GameState

Effect = Mapping[str, Any]
Condition = Callable[[GameState], bool]
Count = Union[int, Callable[[GameState], int]]
Equality = Callable[[Any, Any], bool]

NAMESPACE_SEPARATOR = ":"


class BuiltInEffect(str, Enum):
    """Discriminator tags handled by the engine out of the box."""

    SET = "set"
    INCREMENT = "increment"
    DECREMENT = "decrement"
    MULTIPLY = "multiply"
    DIVIDE = "divide"
    TOGGLE = "toggle"
    PUSH = "push"
    REMOVE = "remove"
    BATCH = "batch"
    SEQUENCE = "sequence"
    CONDITIONAL = "conditional"
    REPEAT = "repeat"


def _variable_effect(
    tag: BuiltInEffect, variable: str | None, path: str | None, **fields: Any
) -> Dict[str, Any]:
    effect: Dict[str, Any] = {"type": tag.value}
    if variable is not None:
        effect["variable"] = variable
    if path is not None:
        effect["path"] = path
    effect.update(fields)
    return effect


def set_effect(variable: str | None, value: Any, *, path: str | None = None) -> Dict[str, Any]:
    return _variable_effect(BuiltInEffect.SET, variable, path, value=value)


def increment_effect(
    variable: str | None, value: float = 1, *, path: str | None = None
) -> Dict[str, Any]:
    return _variable_effect(BuiltInEffect.INCREMENT, variable, path, value=value)


def decrement_effect(
    variable: str | None, value: float = 1, *, path: str | None = None
) -> Dict[str, Any]:
    return _variable_effect(BuiltInEffect.DECREMENT, variable, path, value=value)


def multiply_effect(
    variable: str | None, value: float, *, path: str | None = None
) -> Dict[str, Any]:
    return _variable_effect(BuiltInEffect.MULTIPLY, variable, path, value=value)


def divide_effect(
    variable: str | None, value: float, *, path: str | None = None
) -> Dict[str, Any]:
    return _variable_effect(BuiltInEffect.DIVIDE, variable, path, value=value)


def toggle_effect(variable: str | None, *, path: str | None = None) -> Dict[str, Any]:
    return _variable_effect(BuiltInEffect.TOGGLE, variable, path)


def push_effect(array: str | None, value: Any, *, path: str | None = None) -> Dict[str, Any]:
    effect: Dict[str, Any] = {"type": BuiltInEffect.PUSH.value, "value": value}
    if array is not None:
        effect["array"] = array
    if path is not None:
        effect["path"] = path
    return effect


def remove_effect(
    array: str | None,
    value: Any,
    *,
    by_index: bool = False,
    path: str | None = None,
    equality: Equality | None = None,
) -> Dict[str, Any]:
    """Build a ``remove`` effect.

    Args:
        array: Name of the list inside ``variables``.
        value: Index to delete when ``by_index`` is true, otherwise the value
            to look for.
        by_index: Interpret ``value`` as a list index.
        path: Dotted path used instead of ``array``.
        equality: Custom comparison ``equality(item, value)``; defaults to
            ``==``.
    """

    effect: Dict[str, Any] = {"type": BuiltInEffect.REMOVE.value, "value": value}
    if array is not None:
        effect["array"] = array
    if by_index:
        effect["by_index"] = True
    if path is not None:
        effect["path"] = path
    if equality is not None:
        effect["equality"] = equality
    return effect


def batch_effect(effects: Iterable[Effect]) -> Dict[str, Any]:
    return {"type": BuiltInEffect.BATCH.value, "effects": list(effects)}


def sequence_effect(effects: Iterable[Effect]) -> Dict[str, Any]:
    return {"type": BuiltInEffect.SEQUENCE.value, "effects": list(effects)}


def conditional_effect(
    condition: Condition,
    then_effects: Iterable[Effect],
    else_effects: Iterable[Effect] | None = None,
) -> Dict[str, Any]:
    effect: Dict[str, Any] = {
        "type": BuiltInEffect.CONDITIONAL.value,
        "condition": condition,
        "then_effects": list(then_effects),
    }
    if else_effects is not None:
        effect["else_effects"] = list(else_effects)
    return effect


def repeat_effect(effect: Effect, count: Count) -> Dict[str, Any]:
    return {"type": BuiltInEffect.REPEAT.value, "effect": effect, "count": count}


def qualify(tag: str, namespace: str | None = None) -> str:
    """Return the registry key for ``tag`` inside ``namespace``."""

    tag = str(tag.value if isinstance(tag, BuiltInEffect) else tag)
    if not namespace:
        return tag
    return f"{namespace}{NAMESPACE_SEPARATOR}{tag}"


def effect_tag(effect: Effect) -> str | None:
    """Return the fully qualified tag of ``effect`` or ``None`` if it has none."""

    raw = effect.get("type")
    if raw is None:
        return None
    tag = raw.value if isinstance(raw, BuiltInEffect) else str(raw)
    namespace = effect.get("namespace")
    if namespace and NAMESPACE_SEPARATOR not in tag:
        return qualify(tag, str(namespace))
    return tag


def is_effect_of_type(effect: Effect, tag: BuiltInEffect | str) -> bool:
    expected = tag.value if isinstance(tag, BuiltInEffect) else tag
    return effect_tag(effect) == expected


def is_effect_from_namespace(effect: Effect, namespace: str) -> bool:
    tag = effect_tag(effect)
    return tag is not None and tag.startswith(f"{namespace}{NAMESPACE_SEPARATOR}")


__all__ = [
    "Effect",
    "Condition",
    "Count",
    "Equality",
    "BuiltInEffect",
    "NAMESPACE_SEPARATOR",
    "set_effect",
    "increment_effect",
    "decrement_effect",
    "multiply_effect",
    "divide_effect",
    "toggle_effect",
    "push_effect",
    "remove_effect",
    "batch_effect",
    "sequence_effect",
    "conditional_effect",
    "repeat_effect",
    "qualify",
    "effect_tag",
    "is_effect_of_type",
    "is_effect_from_namespace",
]
