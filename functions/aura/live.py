"""
Live document and query subscriptions driven by the change bus.

Every watcher receives the full current result immediately and again after
any change that touches its document or collection. Watchers are not
coordinated with each other.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Optional

from aura.changes import ChangeBus, DocumentChange, Subscription

if TYPE_CHECKING:
    from aura.store import DocumentSnapshot, Query

logger = logging.getLogger(__name__)


def _parent_collection(path: str) -> str:
    return path.rsplit("/", 1)[0]


def _collection_id(collection_path: str) -> str:
    return collection_path.rsplit("/", 1)[-1]


@dataclass
class _Watcher:
    callback: Callable[[Any], None]
    path: Optional[str] = None
    query: Optional["Query"] = None

    def is_affected_by(self, change: DocumentChange) -> bool:
        if self.path is not None:
            return change.path == self.path
        parent = _parent_collection(change.path)
        if self.query.all_descendants:
            return _collection_id(parent) == self.query.collection
        return parent == self.query.collection


@dataclass
class LiveSubscription:
    registry: "LiveQueryRegistry"
    watcher_id: int

    def unsubscribe(self) -> None:
        self.registry._remove(self.watcher_id)


class LiveQueryRegistry:
    """Tracks watchers for one store and refreshes them on change events."""

    def __init__(self, store, bus: ChangeBus):
        self._store = store
        self._bus = bus
        self._watchers: dict[int, _Watcher] = {}
        self._next_id = 0
        self._lock = threading.Lock()
        self._bus_subscription: Optional[Subscription] = None

    def watch_document(
        self, path: str, callback: Callable[["DocumentSnapshot"], None]
    ) -> LiveSubscription:
        return self._add(_Watcher(callback=callback, path=path))

    def watch_query(
        self, query: "Query", callback: Callable[[list["DocumentSnapshot"]], None]
    ) -> LiveSubscription:
        return self._add(_Watcher(callback=callback, query=query))

    def _add(self, watcher: _Watcher) -> LiveSubscription:
        with self._lock:
            if self._bus_subscription is None:
                self._bus_subscription = self._bus.subscribe(self._on_change)
            self._next_id += 1
            watcher_id = self._next_id
            self._watchers[watcher_id] = watcher
        self._refresh(watcher)
        return LiveSubscription(self, watcher_id)

    def _remove(self, watcher_id: int) -> None:
        with self._lock:
            self._watchers.pop(watcher_id, None)
            if not self._watchers and self._bus_subscription is not None:
                self._bus_subscription.unsubscribe()
                self._bus_subscription = None

    def _on_change(self, change: DocumentChange) -> None:
        with self._lock:
            watchers = list(self._watchers.values())
        for watcher in watchers:
            if watcher.is_affected_by(change):
                self._refresh(watcher)

    def _refresh(self, watcher: _Watcher) -> None:
        try:
            if watcher.path is not None:
                result = self._store.get(watcher.path)
            else:
                result = self._store.query(watcher.query)
            watcher.callback(result)
        except Exception:
            logger.exception("Live subscription callback failed")
