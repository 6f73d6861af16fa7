"""
"On create" trigger wiring for self-hosted deployments.

Subscribes to the store's change bus and enqueues every newly created
notification path for the push worker.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from aura.changes import ChangeBus, ChangeKind, DocumentChange, Subscription
from aura.push_dispatch import parse_notification_path
from aura.queue import PushQueue

logger = logging.getLogger(__name__)


def register_push_trigger(
    bus: ChangeBus,
    queue: PushQueue,
    on_enqueue: Optional[Callable[[str], None]] = None,
) -> Subscription:
    """
    Enqueues the path of each created notification. `on_enqueue` runs after
    each enqueue, e.g. to process the queue inline in development.
    """

    def _on_change(change: DocumentChange) -> None:
        if change.kind != ChangeKind.CREATED:
            return
        if parse_notification_path(change.path) is None:
            return
        queue.enqueue(change.path)
        logger.debug("Queued push for %s", change.path)
        if on_enqueue is not None:
            on_enqueue(change.path)

    return bus.subscribe(_on_change)
