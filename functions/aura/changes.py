"""
Document change events and the bus that carries them.

Stores publish one event per written document after a commit. Live
subscriptions and "on create" triggers subscribe to the bus instead of
polling the store. The in-memory bus dispatches synchronously in the
publishing thread; the Redis bus fans events out across processes.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from enum import StrEnum
from typing import Callable, Optional, Protocol

import redis

logger = logging.getLogger(__name__)


class ChangeKind(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True)
class DocumentChange:
    kind: ChangeKind
    path: str
    data: Optional[dict] = None

    def as_dict(self) -> dict:
        return {"kind": self.kind.value, "path": self.path, "data": self.data}

    @classmethod
    def from_dict(cls, payload: dict) -> "DocumentChange":
        return cls(
            kind=ChangeKind(payload["kind"]),
            path=payload["path"],
            data=payload.get("data"),
        )


ChangeHandler = Callable[[DocumentChange], None]


class Subscription(Protocol):
    def unsubscribe(self) -> None:
        ...


class ChangeBus(Protocol):
    """Publish/subscribe channel for document change events."""

    def publish(self, change: DocumentChange) -> None:
        ...

    def subscribe(self, handler: ChangeHandler) -> Subscription:
        ...


@dataclass
class _HandlerSubscription:
    bus: "InMemoryChangeBus"
    handler_id: int

    def unsubscribe(self) -> None:
        self.bus._remove(self.handler_id)


class InMemoryChangeBus:
    """Synchronous in-process bus for development and tests."""

    def __init__(self):
        self._handlers: dict[int, ChangeHandler] = {}
        self._next_id = 0
        self._lock = threading.Lock()

    def publish(self, change: DocumentChange) -> None:
        with self._lock:
            handlers = list(self._handlers.values())
        for handler in handlers:
            try:
                handler(change)
            except Exception:
                logger.exception("Change handler failed for %s", change.path)

    def subscribe(self, handler: ChangeHandler) -> _HandlerSubscription:
        with self._lock:
            self._next_id += 1
            self._handlers[self._next_id] = handler
            return _HandlerSubscription(self, self._next_id)

    def _remove(self, handler_id: int) -> None:
        with self._lock:
            self._handlers.pop(handler_id, None)


@dataclass
class _RedisSubscription:
    pubsub: "redis.client.PubSub"
    thread: "redis.client.PubSubWorkerThread"

    def unsubscribe(self) -> None:
        self.thread.stop()
        self.pubsub.close()


@dataclass
class RedisChangeBus:
    """
    Redis pub/sub bus. Event payloads are JSON; non-JSON values such as
    datetimes are sent as strings, so subscribers re-read documents rather
    than trusting `data`.
    """

    url: str
    channel: str = "aura:changes"

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    def publish(self, change: DocumentChange) -> None:
        self.client.publish(self.channel, json.dumps(change.as_dict(), default=str))

    def subscribe(self, handler: ChangeHandler) -> _RedisSubscription:
        def _on_message(message: dict) -> None:
            try:
                change = DocumentChange.from_dict(json.loads(message["data"]))
            except (KeyError, ValueError, TypeError):
                logger.warning("Dropping malformed change event: %r", message)
                return
            try:
                handler(change)
            except Exception:
                logger.exception("Change handler failed for %s", change.path)

        pubsub = self.client.pubsub(ignore_subscribe_messages=True)
        pubsub.subscribe(**{self.channel: _on_message})
        thread = pubsub.run_in_thread(sleep_time=0.1, daemon=True)
        return _RedisSubscription(pubsub=pubsub, thread=thread)
