"""Built-in effect handlers.

Every handler receives ``(effect, draft, dispatch)``: the effect mapping, the
draft state it may mutate freely and a callable that feeds a sub-effect back
through the engine that invoked the handler. Handlers signal a violated
precondition by raising :class:`~sceneweave.errors.InvalidEffectError`; the
engine then rolls the draft back to the state it had before the effect ran.

The built-in handlers check every operand before their single write and
only reach the draft through ``dispatch`` otherwise, so they never leave a
partial change behind and the engine runs them without a checkpoint.
"""

from __future__ import annotations

import logging
from numbers import Number
from typing import Any, Callable, Dict, Mapping, Protocol, Sequence

from .effects import BuiltInEffect, Effect
from .errors import InvalidEffectError
from .game_state import GameState
from .value_tree import resolve_target

logger = logging.getLogger(__name__)

Dispatch = Callable[[Effect], None]


class EffectHandler(Protocol):
    """Callable applying one effect to a draft state."""

    def __call__(self, effect: Effect, draft: GameState, dispatch: Dispatch) -> None:
        """Mutate ``draft`` according to ``effect``."""


def _is_number(value: Any) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


def _operand(effect: Effect, *, default: Any = None) -> Any:
    value = effect.get("value", default)
    if not _is_number(value):
        raise InvalidEffectError(
            f"{effect.get('type')!r} effect requires a numeric 'value', got {value!r}",
            effect,
        )
    return value


def _set(effect: Effect, draft: GameState, dispatch: Dispatch) -> None:
    resolve_target(effect, draft, name_field="variable").set(effect.get("value"))


def _increment(effect: Effect, draft: GameState, dispatch: Dispatch) -> None:
    amount = _operand(effect, default=1)
    target = resolve_target(effect, draft, name_field="variable")
    current = target.get()
    if not _is_number(current):
        if current is not None:
            logger.warning("%r is not a number; increment resets it to %r", target, amount)
        target.set(amount)
        return
    target.set(current + amount)


def _decrement(effect: Effect, draft: GameState, dispatch: Dispatch) -> None:
    amount = _operand(effect, default=1)
    target = resolve_target(effect, draft, name_field="variable")
    current = target.get()
    if not _is_number(current):
        if current is not None:
            logger.warning("%r is not a number; decrement resets it to %r", target, -amount)
        target.set(-amount)
        return
    target.set(current - amount)


def _multiply(effect: Effect, draft: GameState, dispatch: Dispatch) -> None:
    factor = _operand(effect)
    target = resolve_target(effect, draft, name_field="variable")
    current = target.get()
    if not _is_number(current):
        logger.warning("%r is not a number; multiply resets it to 0", target)
        target.set(0)
        return
    target.set(current * factor)


def _divide(effect: Effect, draft: GameState, dispatch: Dispatch) -> None:
    divisor = _operand(effect)
    if divisor == 0:
        raise InvalidEffectError("divide effect cannot divide by zero", effect)
    target = resolve_target(effect, draft, name_field="variable")
    current = target.get()
    if not _is_number(current):
        logger.warning("%r is not a number; divide resets it to 0", target)
        target.set(0)
        return
    target.set(current / divisor)


def _toggle(effect: Effect, draft: GameState, dispatch: Dispatch) -> None:
    target = resolve_target(effect, draft, name_field="variable")
    target.set(not target.get(False))


def _push(effect: Effect, draft: GameState, dispatch: Dispatch) -> None:
    target = resolve_target(effect, draft, name_field="array")
    current = target.get()
    value = effect.get("value")
    if isinstance(current, list):
        current.append(value)
        return
    if current is not None:
        logger.warning("%r is not a list; push replaces it with a new list", target)
    target.set([value])


def _equals(left: Any, right: Any) -> bool:
    return left == right


def _remove(effect: Effect, draft: GameState, dispatch: Dispatch) -> None:
    target = resolve_target(effect, draft, name_field="array")
    current = target.get()
    if not isinstance(current, list):
        logger.warning("%r is not a list; nothing to remove", target)
        return

    value = effect.get("value")
    if effect.get("by_index", False):
        try:
            index = int(value)
        except (TypeError, ValueError):
            logger.warning("remove effect received invalid index %r", value)
            return
        if 0 <= index < len(current):
            del current[index]
        else:
            logger.warning(
                "remove effect index %d is out of range for a list of length %d",
                index,
                len(current),
            )
        return

    equality = effect.get("equality") or _equals
    if not callable(equality):
        raise InvalidEffectError("remove effect 'equality' must be callable", effect)
    for index, item in enumerate(current):
        if equality(item, value):
            del current[index]
            return


def _effect_list(effect: Effect, field_name: str) -> Sequence[Effect]:
    effects = effect.get(field_name)
    if not isinstance(effects, (list, tuple)):
        raise InvalidEffectError(
            f"{effect.get('type')!r} effect requires a list of effects in '{field_name}'",
            effect,
        )
    return effects


def _batch(effect: Effect, draft: GameState, dispatch: Dispatch) -> None:
    for sub_effect in _effect_list(effect, "effects"):
        dispatch(sub_effect)


def _conditional(effect: Effect, draft: GameState, dispatch: Dispatch) -> None:
    condition = effect.get("condition")
    if not callable(condition):
        raise InvalidEffectError("conditional effect requires a callable 'condition'", effect)

    if condition(draft):
        branch = _effect_list(effect, "then_effects")
    else:
        if effect.get("else_effects") is None:
            return
        branch = _effect_list(effect, "else_effects")

    for sub_effect in branch:
        dispatch(sub_effect)


def _repeat(effect: Effect, draft: GameState, dispatch: Dispatch) -> None:
    sub_effect = effect.get("effect")
    if not isinstance(sub_effect, Mapping):
        raise InvalidEffectError("repeat effect requires an 'effect' to repeat", effect)

    count = effect.get("count")
    if callable(count):
        count = count(draft)
    if isinstance(count, bool) or not isinstance(count, int) or count < 0:
        raise InvalidEffectError(
            f"repeat count must be a non-negative integer, got {count!r}", effect
        )

    for _ in range(count):
        dispatch(sub_effect)


def default_handlers() -> Dict[str, EffectHandler]:
    """Return a fresh mapping of every built-in tag to its handler."""

    return {
        BuiltInEffect.SET.value: _set,
        BuiltInEffect.INCREMENT.value: _increment,
        BuiltInEffect.DECREMENT.value: _decrement,
        BuiltInEffect.MULTIPLY.value: _multiply,
        BuiltInEffect.DIVIDE.value: _divide,
        BuiltInEffect.TOGGLE.value: _toggle,
        BuiltInEffect.PUSH.value: _push,
        BuiltInEffect.REMOVE.value: _remove,
        BuiltInEffect.BATCH.value: _batch,
        # ``sequence`` shares the batch semantics: in order, same draft.
        BuiltInEffect.SEQUENCE.value: _batch,
        BuiltInEffect.CONDITIONAL.value: _conditional,
        BuiltInEffect.REPEAT.value: _repeat,
    }


_SELF_CONTAINED = tuple(default_handlers().values())


def is_self_contained(handler: EffectHandler) -> bool:
    """Return ``True`` for handlers that cannot fail after writing to a draft."""

    return any(handler is builtin for builtin in _SELF_CONTAINED)


__all__ = ["Dispatch", "EffectHandler", "default_handlers", "is_self_contained"]
