"""
Hand-off queue between the "on create" trigger and the push worker.

Items are notification document paths. The in-memory queue serves tests and
single-process development; the Redis list is shared by the API processes
and the worker in production.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Optional, Protocol

import redis
from redis import exceptions as redis_exceptions

logger = logging.getLogger(__name__)


class PushQueue(Protocol):
    def enqueue(self, notification_path: str) -> None:
        ...

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[str]:
        """Next path, or None when nothing arrived (within `timeout` if blocking)."""
        ...

    def pending(self) -> int:
        ...


@dataclass
class InMemoryPushQueue:
    """FIFO of notification paths. `dequeue` never blocks."""

    items: deque = field(default_factory=deque)

    def __post_init__(self):
        self._lock = threading.Lock()

    def enqueue(self, notification_path: str) -> None:
        with self._lock:
            self.items.append(notification_path)

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[str]:
        with self._lock:
            return self.items.popleft() if self.items else None

    def pending(self) -> int:
        with self._lock:
            return len(self.items)


@dataclass
class RedisPushQueue:
    """Redis list: RPUSH to enqueue, BLPOP/LPOP to take the oldest path."""

    url: str
    queue_key: str = "aura:push"

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    def enqueue(self, notification_path: str) -> None:
        self.client.rpush(self.queue_key, notification_path)

    def _pop(self, block: bool, timeout: int | None) -> Optional[bytes]:
        if not block:
            return self.client.lpop(self.queue_key)
        popped = self.client.blpop(self.queue_key, timeout=timeout or 0)
        return popped[1] if popped else None

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[str]:
        try:
            raw = self._pop(block, timeout)
        except redis_exceptions.ConnectionError:
            # Idle connections get dropped by managed Redis; the worker polls again.
            logger.warning("Lost connection to %s; reconnecting", self.queue_key)
            self.client = redis.Redis.from_url(self.url)
            return None
        return raw.decode("utf-8") if raw is not None else None

    def pending(self) -> int:
        return int(self.client.llen(self.queue_key))
