"""Test configuration for the sceneweave project."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from typing import Any, Callable, Dict

import pytest

from sceneweave import (
    EffectEngine,
    GameEngine,
    GameState,
    RecordingEventSink,
    StateStore,
)


@pytest.fixture()
def effect_engine() -> EffectEngine:
    return EffectEngine()


@pytest.fixture()
def state() -> GameState:
    return GameState.create({"variables": {"gold": 10, "name": "Ada"}})


@pytest.fixture()
def store() -> StateStore:
    return StateStore(history_limit=5)


@pytest.fixture()
def recording_sink() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture()
def story_scenes() -> Dict[str, Any]:
    """A small three-scene story expressed as plain definitions."""

    return {
        "start": {
            "title": "Crossroads",
            "content": "Paths lead north and east.",
            "choices": [
                {"label": "Go north", "scene": "forest"},
                {
                    "label": "Pick up the coin",
                    "effects": [{"type": "increment", "variable": "gold"}],
                    "response": "You pocket the coin.",
                },
            ],
        },
        "forest": {
            "title": "Forest",
            "content": lambda state: f"You carry {state.variables.get('gold', 0)} gold.",
            "choices": [
                {"label": "Back", "scene": "start"},
                {
                    "label": "Enter the cave",
                    "scene": "cave",
                    "condition": lambda state: state.variables.get("torch", False),
                },
            ],
        },
        "cave": {"title": "Cave", "content": "It is dark."},
    }


@pytest.fixture()
def make_engine(
    story_scenes: Dict[str, Any], recording_sink: RecordingEventSink
) -> Callable[..., GameEngine]:
    """Factory fixture building engines around :func:`story_scenes`."""

    def _factory(**kwargs: Any) -> GameEngine:
        kwargs.setdefault("events", recording_sink)
        return GameEngine(dict(story_scenes), **kwargs)

    return _factory


__all__ = ["effect_engine", "state", "store", "recording_sink", "story_scenes", "make_engine"]
