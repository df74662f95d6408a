"""Runtime core for choice-driven narrative games."""

from .content import (
    ContentDefinition,
    ContentResolver,
    ResolverRegistry,
    define_content,
    generate_content_key,
    merge_content_registries,
)
from .effect_engine import EffectEngine
from .effects import (
    BuiltInEffect,
    batch_effect,
    conditional_effect,
    decrement_effect,
    divide_effect,
    increment_effect,
    is_effect_from_namespace,
    is_effect_of_type,
    multiply_effect,
    push_effect,
    remove_effect,
    repeat_effect,
    sequence_effect,
    set_effect,
    toggle_effect,
)
from .engine import ChoiceOutcome, EventSink, GameEngine, RecordingEventSink
from .errors import (
    ChoiceError,
    ConcurrentUpdateError,
    ContentNotFoundError,
    InvalidEffectError,
    InvalidStateError,
    SceneFileError,
    SceneweaveError,
)
from .game_state import GameState
from .scene import Choice, Scene, coerce_scene, define_scene, define_scenes
from .scene_controller import ControllerState, SceneController, SceneTransition
from .scene_files import load_demo_scenes, load_scenes_from_file, load_scenes_from_mapping
from .settings import EngineSettings, configure_logging
from .state_store import STATE_VERSION, StateChange, StateStore
from .value_tree import get_path, set_path

__version__ = "0.1.0"

__all__ = [
    "GameState",
    "get_path",
    "set_path",
    "ContentResolver",
    "ResolverRegistry",
    "ContentDefinition",
    "define_content",
    "merge_content_registries",
    "generate_content_key",
    "EffectEngine",
    "BuiltInEffect",
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
    "is_effect_of_type",
    "is_effect_from_namespace",
    "StateStore",
    "StateChange",
    "STATE_VERSION",
    "Scene",
    "Choice",
    "coerce_scene",
    "define_scene",
    "define_scenes",
    "load_scenes_from_mapping",
    "load_scenes_from_file",
    "load_demo_scenes",
    "SceneController",
    "SceneTransition",
    "ControllerState",
    "GameEngine",
    "ChoiceOutcome",
    "EventSink",
    "RecordingEventSink",
    "EngineSettings",
    "configure_logging",
    "SceneweaveError",
    "ContentNotFoundError",
    "InvalidEffectError",
    "InvalidStateError",
    "ConcurrentUpdateError",
    "ChoiceError",
    "SceneFileError",
    "__version__",
]
