"""
Observable key-value store.

A small in-memory map whose entries can be watched individually. It backs the
per-room model selection: the presentation layer subscribes to the key of the
room it shows and is told when another part of the app (or a load from
storage) changes it. Instances are injected, never module globals, so each
test and each controller can own an independent store.
"""

from collections.abc import Callable, Hashable
from typing import Generic, TypeVar

from loguru import logger

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

_MISSING = object()


class KeyValueStore(Generic[K, V]):
    def __init__(self) -> None:
        self._values: dict[K, V] = {}
        self._listeners: dict[K, list[Callable[[V | None], None]]] = {}

    def get(self, key: K, default: V | None = None) -> V | None:
        return self._values.get(key, default)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def set(self, key: K, value: V) -> None:
        previous = self._values.get(key, _MISSING)
        self._values[key] = value
        if previous is _MISSING or previous != value:
            self._notify(key, value)

    def delete(self, key: K) -> None:
        if key in self._values:
            del self._values[key]
            self._notify(key, None)

    def subscribe(self, key: K, callback: Callable[[V | None], None]) -> Callable[[], None]:
        """Call 'callback' with the new value whenever 'key' changes. Returns an unsubscribe function."""
        self._listeners.setdefault(key, []).append(callback)

        def unsubscribe() -> None:
            listeners = self._listeners.get(key, [])
            if callback in listeners:
                listeners.remove(callback)
            if not listeners:
                self._listeners.pop(key, None)

        return unsubscribe

    def _notify(self, key: K, value: V | None) -> None:
        for callback in list(self._listeners.get(key, [])):
            try:
                callback(value)
            except Exception:
                logger.exception(f"Store listener for {key!r} failed")
