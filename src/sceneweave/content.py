"""Keyed content registries with memoised, coalesced asynchronous loading."""

from __future__ import annotations

import asyncio
import inspect
import logging
import re
from dataclasses import dataclass
from types import MappingProxyType, ModuleType
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Generic,
    Iterable,
    List,
    Mapping,
    TypeVar,
    Union,
)

from .errors import ContentNotFoundError

logger = logging.getLogger(__name__)

T = TypeVar("T")

ContentEntry = Union[T, Callable[[], Any]]
"""A materialised value or a zero-argument callable producing one."""

KEY_FIELD = "_key"


def _unwrap_default(value: Any) -> Any:
    if isinstance(value, ModuleType) and hasattr(value, "default"):
        return value.default
    if isinstance(value, Mapping) and "default" in value:
        return value["default"]
    return value


def _inject_key(value: Any, key: str) -> Any:
    if isinstance(value, Mapping):
        enhanced = dict(value)
        enhanced[KEY_FIELD] = key
        return enhanced
    with_key = getattr(value, "with_key", None)
    if callable(with_key):
        return with_key(key)
    return value


class ContentResolver(Generic[T]):
    """Resolve content by key, loading deferred entries at most once.

    Entries are either materialised values or zero-argument callables. A
    callable may return the content directly, an awaitable of it, a
    ``{"default": content}`` wrapper or a module exposing ``default``.
    Resolved values are cached; concurrent requests for a key that is still
    loading share a single :class:`asyncio.Task`, so the loader runs once and
    every caller receives the identical object.

    Mapping content is copied with a ``_key`` field naming its registry key.
    Content objects offering ``with_key(key)`` are replaced by its result.
    """

    def __init__(
        self,
        entries: Mapping[str, ContentEntry[T]] | None = None,
        *,
        name: str = "content",
    ) -> None:
        self.name = name
        self._registry: Dict[str, ContentEntry[T]] = {}
        self._loaded: Dict[str, T] = {}
        self._loading: Dict[str, asyncio.Task[T]] = {}
        self._generation = 0
        if entries:
            self.register(entries)

    def __repr__(self) -> str:
        return (
            f"ContentResolver(name={self.name!r}, registered={len(self._registry)}, "
            f"loaded={len(self._loaded)})"
        )

    @property
    def registry(self) -> Mapping[str, ContentEntry[T]]:
        """Read-only view of the registered entries."""

        return MappingProxyType(self._registry)

    def register(self, entries: Mapping[str, ContentEntry[T]]) -> None:
        """Merge ``entries`` into the registry.

        Later entries replace earlier ones under the same key. Content that
        has already been resolved stays cached until :meth:`clear_cache`.
        """

        if not isinstance(entries, Mapping):
            raise TypeError("content entries must be provided as a mapping")
        for key in entries:
            if not isinstance(key, str) or not key.strip():
                raise ValueError("content keys must be non-empty strings")
        self._registry.update(entries)

    def register_all(self, entries: Mapping[str, ContentEntry[T]]) -> None:
        self.register(entries)

    def has(self, key: str) -> bool:
        return key in self._registry

    def keys(self) -> List[str]:
        return list(self._registry)

    def is_loaded(self, key: str) -> bool:
        return key in self._loaded

    def is_loading(self, key: str) -> bool:
        return key in self._loading

    async def resolve(self, key: str) -> T:
        """Return the content registered under ``key``.

        Raises:
            ContentNotFoundError: If ``key`` is not registered.
            Exception: Whatever a deferred loader raised; every caller that
                was waiting on the same load receives it.
        """

        if key in self._loaded:
            return self._loaded[key]

        pending = self._loading.get(key)
        if pending is not None:
            return await asyncio.shield(pending)

        if key not in self._registry:
            raise ContentNotFoundError(key)

        entry = self._registry[key]
        if not callable(entry):
            content = _inject_key(entry, key)
            self._loaded[key] = content
            return content

        try:
            produced = entry()
        except Exception:
            logger.exception("Failed to load %s '%s'", self.name, key)
            raise

        if not inspect.isawaitable(produced):
            return self._materialise(key, produced, self._generation)

        task = asyncio.ensure_future(self._settle(key, produced, self._generation))
        self._loading[key] = task
        return await asyncio.shield(task)

    async def _settle(self, key: str, pending: Awaitable[Any], generation: int) -> T:
        try:
            produced = await pending
        except Exception:
            logger.exception("Failed to load %s '%s'", self.name, key)
            raise
        finally:
            if generation == self._generation:
                self._loading.pop(key, None)
        return self._materialise(key, produced, generation)

    def _materialise(self, key: str, produced: Any, generation: int) -> T:
        content = _inject_key(_unwrap_default(produced), key)
        if generation == self._generation:
            self._loaded[key] = content
        else:
            logger.debug("Discarding %s '%s' loaded before the cache was cleared", self.name, key)
        return content

    async def preload(self, keys: Iterable[str] | None = None) -> None:
        """Resolve several entries concurrently.

        Args:
            keys: Keys to load. Unregistered keys are skipped. When omitted,
                every deferred entry that is neither loaded nor loading is
                preloaded.

        Raises:
            Exception: The first failure among the loads.
        """

        if keys is None:
            targets = [
                key
                for key, entry in self._registry.items()
                if callable(entry) and key not in self._loaded and key not in self._loading
            ]
        else:
            targets = [key for key in keys if key in self._registry]

        if not targets:
            return

        logger.debug("Preloading %s: %s", self.name, ", ".join(targets))
        await asyncio.gather(*(self.resolve(key) for key in targets))

    def clear_cache(self) -> None:
        """Forget resolved and in-flight content; registrations are kept."""

        self._generation += 1
        self._loaded.clear()
        self._loading.clear()
        logger.debug("Cleared the %s cache", self.name)


class ResolverRegistry:
    """Map content type names such as ``"scenes"`` to their resolvers."""

    def __init__(self) -> None:
        self._resolvers: Dict[str, ContentResolver[Any]] = {}

    def register_resolver(
        self, content_type: str, resolver: ContentResolver[Any]
    ) -> "ResolverRegistry":
        self._resolvers[_validate_type(content_type)] = resolver
        return self

    def get(self, content_type: str) -> ContentResolver[Any] | None:
        return self._resolvers.get(content_type)

    def has(self, content_type: str) -> bool:
        return content_type in self._resolvers

    def types(self) -> List[str]:
        return list(self._resolvers)

    def remove(self, content_type: str) -> bool:
        return self._resolvers.pop(content_type, None) is not None


def _validate_type(content_type: str) -> str:
    if not isinstance(content_type, str):
        raise TypeError("content type must be a string")
    trimmed = content_type.strip()
    if not trimmed:
        raise ValueError("content type must be a non-empty string")
    return trimmed


@dataclass(frozen=True)
class ContentDefinition:
    """A batch of entries destined for the resolver of ``type``."""

    type: str
    entries: Mapping[str, Any]

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", _validate_type(self.type))
        if not isinstance(self.entries, Mapping):
            raise TypeError("content entries must be provided as a mapping")
        object.__setattr__(self, "entries", MappingProxyType(dict(self.entries)))


def define_content(content_type: str, entries: Mapping[str, Any]) -> ContentDefinition:
    return ContentDefinition(type=content_type, entries=entries)


def merge_content_registries(*registries: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a new registry where later registries win on duplicate keys."""

    merged: Dict[str, Any] = {}
    for registry in registries:
        merged.update(registry)
    return merged


_SLASHES = re.compile(r"/+")


def generate_content_key(*parts: str) -> str:
    """Join non-blank ``parts`` into a normalised ``a/b/c`` key.

    >>> generate_content_key("items", " potions ", "/healing", "")
    'items/potions/healing'
    """

    cleaned = [part.strip() for part in parts if part and part.strip()]
    if not cleaned:
        return ""
    return _SLASHES.sub("/", "/".join(cleaned)).strip("/")


__all__ = [
    "ContentEntry",
    "ContentResolver",
    "ResolverRegistry",
    "ContentDefinition",
    "KEY_FIELD",
    "define_content",
    "merge_content_registries",
    "generate_content_key",
]
