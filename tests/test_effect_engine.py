"""Unit tests for the :mod:`sceneweave.effect_engine` module."""

from __future__ import annotations

import logging
from typing import Any, List

import pytest

from sceneweave import (
    BuiltInEffect,
    EffectEngine,
    GameState,
    batch_effect,
    conditional_effect,
    decrement_effect,
    divide_effect,
    increment_effect,
    multiply_effect,
    push_effect,
    remove_effect,
    repeat_effect,
    sequence_effect,
    set_effect,
    toggle_effect,
)
from sceneweave.errors import InvalidEffectError
from sceneweave.effects import is_effect_from_namespace, is_effect_of_type


def test_apply_never_mutates_the_input(effect_engine: EffectEngine, state: GameState) -> None:
    before = state.clone()

    result = effect_engine.apply(push_effect("bag", "apple"), state)

    assert state == before
    assert result.variables["bag"] == ["apple"]
    assert result is not state


def test_apply_all_matches_chained_apply(effect_engine: EffectEngine, state: GameState) -> None:
    first = increment_effect("gold", 5)
    second = multiply_effect("gold", 2)

    combined = effect_engine.apply_all([first, second], state)
    chained = effect_engine.apply(second, effect_engine.apply(first, state))

    assert combined == chained
    assert combined.variables["gold"] == 30


def test_apply_all_with_no_effects_returns_input(effect_engine: EffectEngine, state: GameState) -> None:
    assert effect_engine.apply_all([], state) is state


def test_increment_defaults(effect_engine: EffectEngine) -> None:
    empty = GameState()

    assert effect_engine.apply(increment_effect("x"), empty).variables["x"] == 1
    assert effect_engine.apply(increment_effect("x", 5), empty).variables["x"] == 5
    assert effect_engine.apply({"type": "increment", "variable": "x"}, empty).variables["x"] == 1


def test_decrement_of_non_number_becomes_negative_amount(effect_engine: EffectEngine) -> None:
    state = GameState.create({"variables": {"x": "text"}})

    assert effect_engine.apply(decrement_effect("x", 2), state).variables["x"] == -2


def test_multiply_of_non_number_becomes_zero(effect_engine: EffectEngine) -> None:
    state = GameState.create({"variables": {"x": None}})

    assert effect_engine.apply(multiply_effect("x", 3), state).variables["x"] == 0


def test_divide_by_zero_leaves_target_unchanged(
    effect_engine: EffectEngine, caplog: pytest.LogCaptureFixture
) -> None:
    state = GameState.create({"variables": {"x": 8}})

    with caplog.at_level(logging.ERROR, logger="sceneweave"):
        result = effect_engine.apply({"type": "divide", "variable": "x", "value": 0}, state)

    assert result.variables["x"] == 8
    assert state.variables["x"] == 8
    assert "divide by zero" in caplog.text


def test_divide(effect_engine: EffectEngine) -> None:
    state = GameState.create({"variables": {"x": 9}})

    assert effect_engine.apply(divide_effect("x", 3), state).variables["x"] == 3


def test_booleans_are_not_numbers(effect_engine: EffectEngine) -> None:
    state = GameState.create({"variables": {"flag": True}})

    assert effect_engine.apply(increment_effect("flag", 2), state).variables["flag"] == 2


def test_toggle_negates_truthiness(effect_engine: EffectEngine) -> None:
    state = GameState.create({"variables": {"lit": "yes"}})

    assert effect_engine.apply(toggle_effect("lit"), state).variables["lit"] is False
    assert effect_engine.apply(toggle_effect("missing"), state).variables["missing"] is True


def test_push_twice_onto_missing_array(effect_engine: EffectEngine) -> None:
    push = {"type": "push", "array": "inv", "value": "sword"}

    result = effect_engine.apply(push, effect_engine.apply(push, GameState()))

    assert result.variables["inv"] == ["sword", "sword"]


def test_remove_by_value_and_index(effect_engine: EffectEngine) -> None:
    state = GameState.create({"variables": {"inv": ["a", "b", "a", "c"]}})

    by_value = effect_engine.apply(remove_effect("inv", "a"), state)
    by_index = effect_engine.apply(remove_effect("inv", 3, by_index=True), state)

    assert by_value.variables["inv"] == ["b", "a", "c"]
    assert by_index.variables["inv"] == ["a", "b", "a"]


def test_remove_with_custom_equality(effect_engine: EffectEngine) -> None:
    state = GameState.create({"variables": {"inv": [{"id": 1}, {"id": 2}]}})

    result = effect_engine.apply(
        remove_effect("inv", 2, equality=lambda item, value: item["id"] == value), state
    )

    assert result.variables["inv"] == [{"id": 1}]


def test_remove_out_of_range_index_warns(
    effect_engine: EffectEngine, caplog: pytest.LogCaptureFixture
) -> None:
    state = GameState.create({"variables": {"inv": ["a"]}})

    with caplog.at_level(logging.WARNING, logger="sceneweave"):
        result = effect_engine.apply(remove_effect("inv", 4, by_index=True), state)

    assert result.variables["inv"] == ["a"]
    assert "out of range" in caplog.text


def test_dotted_path_targets(effect_engine: EffectEngine) -> None:
    result = effect_engine.apply_all(
        [
            set_effect(None, 10, path="variables.stats.hp"),
            push_effect(None, "rope", path="inventory.items"),
        ],
        GameState(),
    )

    assert result.variables == {"stats": {"hp": 10}}
    assert result.extensions == {"inventory": {"items": ["rope"]}}


def test_batch_and_sequence_apply_in_order(effect_engine: EffectEngine) -> None:
    steps = [set_effect("x", 2), multiply_effect("x", 5), decrement_effect("x")]

    for composite in (batch_effect(steps), sequence_effect(steps)):
        assert effect_engine.apply(composite, GameState()).variables["x"] == 9


def test_conditional_reads_the_live_draft(effect_engine: EffectEngine) -> None:
    effect = batch_effect(
        [
            set_effect("door", "open"),
            conditional_effect(
                lambda draft: draft.variables.get("door") == "open",
                [set_effect("entered", True)],
                [set_effect("entered", False)],
            ),
        ]
    )

    assert effect_engine.apply(effect, GameState()).variables["entered"] is True


def test_conditional_without_else_branch_is_a_no_op(effect_engine: EffectEngine) -> None:
    effect = conditional_effect(lambda draft: False, [set_effect("x", 1)])

    assert effect_engine.apply(effect, GameState()).variables == {}


def test_repeat_with_literal_and_derived_count(effect_engine: EffectEngine) -> None:
    state = GameState.create({"variables": {"times": 3}})

    literal = effect_engine.apply(repeat_effect(push_effect("log", "tick"), 2), state)
    derived = effect_engine.apply(
        repeat_effect(increment_effect("n"), lambda draft: draft.variables["times"]), state
    )

    assert literal.variables["log"] == ["tick", "tick"]
    assert derived.variables["n"] == 3


@pytest.mark.parametrize("count", [-1, 1.5, "2", True])
def test_repeat_rejects_invalid_counts(effect_engine: EffectEngine, count: Any) -> None:
    state = GameState.create({"variables": {"n": 0}})

    result = effect_engine.apply(repeat_effect(increment_effect("n"), count), state)

    assert result.variables["n"] == 0


def test_invalid_nested_effect_only_aborts_itself(effect_engine: EffectEngine) -> None:
    effects = [
        set_effect("a", 1),
        batch_effect([set_effect("b", 2), divide_effect("a", 0), set_effect("d", 4)]),
        set_effect("c", 3),
    ]

    result = effect_engine.apply_all(effects, GameState())

    assert result.variables == {"a": 1, "b": 2, "c": 3, "d": 4}


def test_failing_subtree_is_rolled_back_but_siblings_apply(effect_engine: EffectEngine) -> None:
    def ritual(effect: Any, draft: GameState, dispatch: Any) -> None:
        dispatch(set_effect("candles", 3))
        dispatch(push_effect("log", "chant"))
        raise InvalidEffectError("the ritual needs a circle", effect)

    effect_engine.register_handler("ritual", ritual)
    effects = [set_effect("a", 1), {"type": "ritual"}, set_effect("c", 3)]

    result = effect_engine.apply_all(effects, GameState())

    assert result.variables == {"a": 1, "c": 3}


def test_missing_required_fields_abort_only_that_effect(effect_engine: EffectEngine) -> None:
    result = effect_engine.apply_all(
        [{"type": "batch"}, {"type": "conditional", "then_effects": []}, set_effect("ok", True)],
        GameState(),
    )

    assert result.variables == {"ok": True}


def test_unexpected_handler_error_is_contained(
    effect_engine: EffectEngine, caplog: pytest.LogCaptureFixture
) -> None:
    def explode(effect: Any, draft: GameState, dispatch: Any) -> None:
        draft.variables["partial"] = True
        raise RuntimeError("boom")

    effect_engine.register_handler("explode", explode)

    with caplog.at_level(logging.ERROR, logger="sceneweave"):
        result = effect_engine.apply_all([{"type": "explode"}, set_effect("after", 1)], GameState())

    assert result.variables == {"after": 1}
    assert "boom" in caplog.text


def test_unknown_tag_warns_and_continues(
    effect_engine: EffectEngine, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.WARNING, logger="sceneweave"):
        result = effect_engine.apply_all([{"type": "teleport"}, set_effect("x", 1)], GameState())

    assert result.variables == {"x": 1}
    assert "teleport" in caplog.text


def test_fallback_handler_receives_unknown_effects(effect_engine: EffectEngine) -> None:
    seen: list[str] = []

    def fallback(effect: Any, draft: GameState, dispatch: Any) -> None:
        seen.append(effect["type"])

    effect_engine.set_fallback_handler(fallback)
    effect_engine.apply({"type": "teleport"}, GameState())
    effect_engine.set_fallback_handler(None)
    effect_engine.apply({"type": "teleport"}, GameState())

    assert seen == ["teleport"]


def test_namespaced_handlers(effect_engine: EffectEngine) -> None:
    def add_item(effect: Any, draft: GameState, dispatch: Any) -> None:
        draft.extensions.setdefault("inventory", []).append(effect["item"])

    effect_engine.register_handler("add", add_item, namespace="inv")

    result = effect_engine.apply_all(
        [{"type": "inv:add", "item": "rope"}, {"type": "add", "namespace": "inv", "item": "lamp"}],
        GameState(),
    )

    assert result.extensions["inventory"] == ["rope", "lamp"]
    assert effect_engine.has_handler("add", "inv")
    assert not effect_engine.has_handler("add")


def test_unregister_namespace_returns_count(effect_engine: EffectEngine) -> None:
    noop = lambda effect, draft, dispatch: None  # noqa: E731
    effect_engine.register_handlers({"add": noop, "drop": noop}, namespace="inv")
    effect_engine.register_handler("cast", noop, namespace="magic")

    assert effect_engine.unregister_namespace("inv") == 2
    assert not effect_engine.has_handler("add", "inv")
    assert effect_engine.has_handler("cast", "magic")
    assert effect_engine.unregister_handler("cast", "magic") is True
    assert effect_engine.unregister_handler("cast", "magic") is False


def test_handlers_can_dispatch_sub_effects(effect_engine: EffectEngine) -> None:
    def level_up(effect: Any, draft: GameState, dispatch: Any) -> None:
        dispatch(increment_effect("level"))
        dispatch(set_effect("hp", 100))

    effect_engine.register_handler("level_up", level_up)

    result = effect_engine.apply(repeat_effect({"type": "level_up"}, 2), GameState())

    assert result.variables == {"level": 2, "hp": 100}


def test_builtin_handlers_can_be_removed() -> None:
    engine = EffectEngine(register_default_effects=False)
    assert engine.registered_tags() == []

    engine = EffectEngine()
    engine.unregister_builtin_handlers()

    assert not engine.has_handler(BuiltInEffect.SET.value)
    assert engine.apply(set_effect("x", 1), GameState()).variables == {}


def test_effect_type_helpers() -> None:
    assert is_effect_of_type(set_effect("x", 1), BuiltInEffect.SET)
    assert is_effect_of_type({"type": "add", "namespace": "inv"}, "inv:add")
    assert is_effect_from_namespace({"type": "inv:add"}, "inv")
    assert not is_effect_from_namespace(set_effect("x", 1), "inv")


def test_invalid_effect_error_carries_the_effect() -> None:
    from sceneweave.handlers import default_handlers

    effect = divide_effect("x", 0)
    with pytest.raises(InvalidEffectError) as excinfo:
        default_handlers()["divide"](effect, GameState(), lambda sub: None)

    assert excinfo.value.effect is effect


def test_handler_references_survive_a_failed_sub_effect(effect_engine: EffectEngine) -> None:
    def explode(effect: Any, draft: GameState, dispatch: Any) -> None:
        draft.variables["partial"] = True
        raise RuntimeError("boom")

    def grant(effect: Any, draft: GameState, dispatch: Any) -> None:
        bag = draft.variables
        dispatch({"type": "explode"})
        dispatch(divide_effect("hp", 0))
        bag["granted"] = True

    effect_engine.register_handler("explode", explode)
    effect_engine.register_handler("grant", grant)

    result = effect_engine.apply({"type": "grant"}, GameState.create({"variables": {"hp": 10}}))

    assert result.variables == {"hp": 10, "granted": True}


def test_builtin_effects_run_without_checkpoints(
    effect_engine: EffectEngine, monkeypatch: pytest.MonkeyPatch
) -> None:
    clones: List[GameState] = []
    original_clone = GameState.clone

    def counting_clone(self: GameState) -> GameState:
        clones.append(self)
        return original_clone(self)

    monkeypatch.setattr(GameState, "clone", counting_clone)
    state = GameState.create({"variables": {"log": list(range(1000))}})

    result = effect_engine.apply(
        batch_effect([repeat_effect(increment_effect("n"), 200), divide_effect("n", 0)]), state
    )

    assert result.variables["n"] == 200
    assert len(clones) == 1


def test_custom_handlers_get_one_checkpoint_each(
    effect_engine: EffectEngine, monkeypatch: pytest.MonkeyPatch
) -> None:
    clones: List[GameState] = []
    original_clone = GameState.clone

    def counting_clone(self: GameState) -> GameState:
        clones.append(self)
        return original_clone(self)

    effect_engine.register_handler(
        "stamp", lambda effect, draft, dispatch: draft.visited_keys.add("stamped")
    )
    monkeypatch.setattr(GameState, "clone", counting_clone)

    result = effect_engine.apply(repeat_effect({"type": "stamp"}, 3), GameState())

    assert result.visited_keys == {"stamped"}
    assert len(clones) == 4
