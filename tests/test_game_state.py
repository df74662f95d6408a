"""Unit tests for the :mod:`sceneweave.game_state` module."""

import logging

import pytest

from sceneweave import GameState
from sceneweave.game_state import is_valid_state


def test_create_merges_partial_over_defaults() -> None:
    state = GameState.create({"variables": {"hp": 3}})

    assert state.visited_keys == set()
    assert state.variables == {"hp": 3}
    assert state.extensions == {}


def test_create_places_unknown_keys_in_extensions() -> None:
    state = GameState.create({"inventory": {"items": ["rope"]}, "extensions": {"quest": 1}})

    assert state.extensions == {"inventory": {"items": ["rope"]}, "quest": 1}
    assert state.get("inventory") == {"items": ["rope"]}


def test_create_does_not_alias_caller_data() -> None:
    variables = {"bag": ["apple"]}
    state = GameState.create({"variables": variables})

    state.variables["bag"].append("pear")

    assert variables == {"bag": ["apple"]}


def test_visited_keys_list_is_rebuilt_as_set() -> None:
    state = GameState.create({"visited_keys": ["a", "b", "a"]})

    assert state.visited_keys == {"a", "b"}
    assert is_valid_state(state)


def test_malformed_regions_are_coerced_with_warning(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="sceneweave"):
        state = GameState(visited_keys="start", variables=["oops"])  # type: ignore[arg-type]

    assert state.visited_keys == set()
    assert state.variables == {}
    assert "visited_keys" in caplog.text
    assert "variables" in caplog.text


def test_clone_shares_no_containers(state: GameState) -> None:
    state.variables["bag"] = ["apple"]
    clone = state.clone()

    clone.variables["bag"].append("pear")
    clone.visited_keys.add("forest")

    assert state.variables["bag"] == ["apple"]
    assert state.visited_keys == set()
    assert clone == GameState(
        visited_keys={"forest"},
        variables={"gold": 10, "name": "Ada", "bag": ["apple", "pear"]},
    )


def test_restore_from_replaces_regions(state: GameState) -> None:
    checkpoint = state.clone()
    state.variables["gold"] = 0
    state.visited_keys.add("x")

    state.restore_from(checkpoint)

    assert state.variables["gold"] == 10
    assert state.visited_keys == set()


def test_restore_from_keeps_region_containers(state: GameState) -> None:
    variables = state.variables
    visited = state.visited_keys
    extensions = state.extensions
    checkpoint = state.clone()
    state.variables["gold"] = 0
    state.extensions["quest"] = "started"

    state.restore_from(checkpoint)
    variables["found"] = True

    assert state.variables is variables
    assert state.visited_keys is visited
    assert state.extensions is extensions
    assert state.variables == {"gold": 10, "name": "Ada", "found": True}
    assert state.extensions == {}


def test_restore_from_itself_is_a_no_op(state: GameState) -> None:
    state.restore_from(state)

    assert state.variables == {"gold": 10, "name": "Ada"}


def test_to_dict_sorts_visited_keys() -> None:
    state = GameState.create({"visited_keys": {"b", "a"}, "flags": {"x": True}})

    assert state.to_dict() == {
        "visited_keys": ["a", "b"],
        "variables": {},
        "flags": {"x": True},
    }


def test_create_rejects_non_mapping() -> None:
    with pytest.raises(TypeError):
        GameState.create(["not", "a", "mapping"])  # type: ignore[arg-type]
