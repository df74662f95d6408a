"""Load data-only scene packs from JSON."""

from __future__ import annotations

import json
import logging
from importlib import resources
from pathlib import Path
from typing import Any, Dict, List, Mapping

from pydantic import (
    AliasChoices,
    BaseModel,
    Field,
    RootModel,
    ValidationError,
    field_validator,
    model_validator,
)

from .errors import SceneFileError
from .game_state import GameState
from .scene import Choice, Scene

logger = logging.getLogger(__name__)

DEMO_PACKAGE = "sceneweave.data"
DEMO_RESOURCE = "demo_scenes.json"


def _strip_text(value: Any, *, field_name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be provided as a string.")
    return value.strip()


class ChoiceModel(BaseModel):
    """A choice as written in a scene pack."""

    label: str = Field(default="", validation_alias=AliasChoices("label", "content"))
    target: str | None = Field(default=None, validation_alias=AliasChoices("target", "scene"))
    effects: List[Dict[str, Any]] = Field(default_factory=list)
    response: str | None = None
    requires_visited: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("label", mode="before")
    @classmethod
    def _validate_label(cls, value: Any) -> str:
        return _strip_text(value, field_name="Choice label")

    @field_validator("target", "response", mode="before")
    @classmethod
    def _normalise_optional_text(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        raise ValueError("Value must be a string or null.")

    @field_validator("effects")
    @classmethod
    def _validate_effects(cls, value: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        for index, effect in enumerate(value):
            tag = effect.get("type")
            if not isinstance(tag, str) or not tag.strip():
                raise ValueError(f"Effect #{index} must declare a non-empty 'type'.")
        return value

    def to_choice(self) -> Choice:
        condition = None
        if self.requires_visited:
            required = tuple(self.requires_visited)

            def condition(state: GameState) -> bool:
                return all(key in state.visited_keys for key in required)

        return Choice(
            label=self.label,
            target=self.target,
            condition=condition,
            effects=tuple(self.effects),
            response=self.response,
            metadata=self.metadata,
        )


class SceneModel(BaseModel):
    """A scene as written in a scene pack."""

    title: str
    content: str = ""
    choices: List[ChoiceModel] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("title", mode="before")
    @classmethod
    def _validate_title(cls, value: Any) -> str:
        trimmed = _strip_text(value, field_name="Scene title")
        if not trimmed:
            raise ValueError("Scene title must be a non-empty string.")
        return trimmed

    @field_validator("content", mode="before")
    @classmethod
    def _validate_content(cls, value: Any) -> str:
        return _strip_text(value, field_name="Scene content")

    def to_scene(self, key: str) -> Scene:
        return Scene(
            title=self.title,
            content=self.content,
            choices=tuple(choice.to_choice() for choice in self.choices),
            metadata=self.metadata,
            key=key,
        )


class SceneFileModel(RootModel[Dict[str, SceneModel]]):
    """Top level of a scene pack: scene keys mapped to scene definitions."""

    @field_validator("root")
    @classmethod
    def _validate_keys(cls, value: Dict[str, SceneModel]) -> Dict[str, SceneModel]:
        for key in value:
            if not key.strip():
                raise ValueError("Scene keys must be non-empty strings.")
        return value

    @model_validator(mode="after")
    def _validate_targets(self) -> "SceneFileModel":
        for key, scene in self.root.items():
            for choice in scene.choices:
                if choice.target and choice.target not in self.root:
                    raise ValueError(
                        f"Scene '{key}' has a choice leading to unknown scene '{choice.target}'."
                    )
                for required in choice.requires_visited:
                    if required not in self.root:
                        raise ValueError(
                            f"Scene '{key}' has a choice requiring unknown scene '{required}'."
                        )
        return self

    def to_scenes(self) -> Dict[str, Scene]:
        return {key: scene.to_scene(key) for key, scene in self.root.items()}


def load_scenes_from_mapping(definitions: Mapping[str, Any]) -> Dict[str, Scene]:
    """Validate a parsed scene pack and convert it into :class:`Scene` objects.

    Args:
        definitions: Mapping of scene key to scene definition, typically parsed
            from JSON. Each scene needs a ``title`` and may carry ``content``,
            ``choices`` and ``metadata``. Choices take ``label``, ``target``
            (or ``scene``), ``effects``, ``response``, ``requires_visited`` and
            ``metadata``.

    Raises:
        SceneFileError: If the pack is malformed or a choice points at a scene
            that the pack does not define.
    """

    if not isinstance(definitions, Mapping):
        raise SceneFileError("Scene packs must contain an object at the top level.")

    try:
        model = SceneFileModel.model_validate(dict(definitions))
    except ValidationError as exc:
        raise SceneFileError(str(exc)) from exc

    scenes = model.to_scenes()
    logger.debug("Loaded %d scenes", len(scenes))
    return scenes


def load_scenes_from_file(path: str | Path) -> Dict[str, Scene]:
    """Load a scene pack from a JSON file on disk."""

    data_path = Path(path)
    with data_path.open("r", encoding="utf-8") as handle:
        try:
            raw_data = json.load(handle)
        except json.JSONDecodeError as exc:
            raise SceneFileError(f"Scene file '{data_path}' is not valid JSON: {exc}") from exc

    return load_scenes_from_mapping(raw_data)


def load_demo_scenes() -> Dict[str, Scene]:
    """Read the scene pack bundled with the package."""

    data_resource = resources.files(DEMO_PACKAGE).joinpath(DEMO_RESOURCE)
    with data_resource.open("r", encoding="utf-8") as handle:
        raw_data = json.load(handle)

    return load_scenes_from_mapping(raw_data)


__all__ = [
    "ChoiceModel",
    "SceneModel",
    "SceneFileModel",
    "load_scenes_from_mapping",
    "load_scenes_from_file",
    "load_demo_scenes",
]
