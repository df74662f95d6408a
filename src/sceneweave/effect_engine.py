"""Interpreter applying effects to game state with copy-on-write semantics."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Sequence

from .effects import NAMESPACE_SEPARATOR, BuiltInEffect, Effect, effect_tag, qualify
from .errors import InvalidEffectError
from .game_state import GameState
from .handlers import EffectHandler, default_handlers, is_self_contained

logger = logging.getLogger(__name__)


class EffectEngine:
    """Map effect tags to handlers and run them against drafts.

    :meth:`apply` and :meth:`apply_all` never touch the state they receive:
    they clone it once, run every effect against that single draft and return
    the draft as the new snapshot. An effect whose handler raises leaves no
    trace in the draft while its siblings still apply: custom handlers run
    against a checkpoint that is restored in place on failure, and built-in
    handlers validate before they write so they need none.
    """

    def __init__(self, *, register_default_effects: bool = True) -> None:
        self._handlers: Dict[str, EffectHandler] = {}
        self._fallback: EffectHandler | None = None
        if register_default_effects:
            self.register_handlers(default_handlers())

    def register_handler(
        self, tag: str, handler: EffectHandler, namespace: str | None = None
    ) -> None:
        """Register ``handler`` for ``tag``, optionally inside ``namespace``.

        Registering the same qualified tag twice replaces the earlier handler.
        """

        if not callable(handler):
            raise TypeError("handler must be callable")
        key = qualify(_validate_tag(tag), namespace)
        self._handlers[key] = handler

    def register_handlers(
        self, handlers: Mapping[str, EffectHandler], namespace: str | None = None
    ) -> None:
        for tag, handler in handlers.items():
            self.register_handler(tag, handler, namespace)

    def unregister_handler(self, tag: str, namespace: str | None = None) -> bool:
        """Remove a handler, returning ``True`` when one was registered."""

        return self._handlers.pop(qualify(_validate_tag(tag), namespace), None) is not None

    def unregister_namespace(self, namespace: str) -> int:
        """Remove every handler registered under ``namespace``.

        Returns:
            The number of handlers removed.
        """

        prefix = f"{namespace}{NAMESPACE_SEPARATOR}"
        doomed = [key for key in self._handlers if key.startswith(prefix)]
        for key in doomed:
            del self._handlers[key]
        return len(doomed)

    def unregister_builtin_handlers(self) -> None:
        for tag in BuiltInEffect:
            self._handlers.pop(tag.value, None)

    def set_fallback_handler(self, handler: EffectHandler | None) -> None:
        """Use ``handler`` for unmatched tags; ``None`` restores warn-and-skip."""

        if handler is not None and not callable(handler):
            raise TypeError("fallback handler must be callable or None")
        self._fallback = handler

    def has_handler(self, tag: str, namespace: str | None = None) -> bool:
        return qualify(_validate_tag(tag), namespace) in self._handlers

    def registered_tags(self) -> List[str]:
        return list(self._handlers)

    def apply(self, effect: Effect, state: GameState) -> GameState:
        """Return a new state with ``effect`` applied; ``state`` is untouched."""

        draft = state.clone()
        self._dispatch(effect, draft)
        return draft

    def apply_all(self, effects: Sequence[Effect], state: GameState) -> GameState:
        """Apply ``effects`` in order inside a single draft.

        An empty sequence returns ``state`` itself.
        """

        effects = list(effects)
        if not effects:
            return state
        draft = state.clone()
        self.run(effects, draft)
        return draft

    def run(self, effects: Iterable[Effect], draft: GameState) -> None:
        """Apply ``effects`` directly to an already opened ``draft``."""

        for effect in effects:
            self._dispatch(effect, draft)

    def _lookup(self, effect: Effect) -> tuple[str | None, EffectHandler | None]:
        tag = effect_tag(effect)
        if tag is None:
            return None, None
        handler = self._handlers.get(tag)
        if handler is None:
            handler = self._fallback
        return tag, handler

    def _dispatch(self, effect: Effect, draft: GameState) -> None:
        if not isinstance(effect, Mapping):
            logger.error("Ignoring effect %r: effects must be mappings", effect)
            return

        tag, handler = self._lookup(effect)
        if handler is None:
            if tag is None:
                logger.warning("Ignoring effect without a 'type': %r", effect)
            else:
                logger.warning("No handler registered for effect type '%s'", tag)
            return

        checkpoint = None if is_self_contained(handler) else draft.clone()

        def dispatch(sub_effect: Effect) -> None:
            self._dispatch(sub_effect, draft)

        try:
            handler(effect, draft, dispatch)
        except InvalidEffectError as exc:
            if checkpoint is not None:
                draft.restore_from(checkpoint)
            logger.error("Effect '%s' aborted: %s", tag, exc)
        except Exception:
            if checkpoint is not None:
                draft.restore_from(checkpoint)
            logger.exception("Effect '%s' raised; its changes were discarded", tag)


def _validate_tag(tag: str) -> str:
    if isinstance(tag, BuiltInEffect):
        return tag.value
    if not isinstance(tag, str):
        raise TypeError(f"effect tag must be a string, got {type(tag)!r}")
    stripped = tag.strip()
    if not stripped:
        raise ValueError("effect tag must be a non-empty string")
    return stripped


__all__ = ["EffectEngine"]
