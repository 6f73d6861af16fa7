"""
Worker loop that delivers push notifications for queued notification paths.

Run with `python -m aura.worker` next to the API when the deployment does
not use Cloud Functions triggers.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from aura.dependencies import get_push_gateway, get_push_queue, get_store
from aura.push import PushGateway
from aura.push_dispatch import dispatch_once
from aura.queue import PushQueue
from aura.store import DocumentStore

logger = logging.getLogger(__name__)


def process_next(
    *,
    store: Optional[DocumentStore] = None,
    gateway: Optional[PushGateway] = None,
    queue: Optional[PushQueue] = None,
    block: bool = True,
    timeout: Optional[int] = None,
) -> bool:
    """
    Pop one notification path from the queue and dispatch it. Returns True if
    a path was processed (whether or not a push was sent).
    """
    store = store or get_store()
    gateway = gateway or get_push_gateway()
    queue = queue or get_push_queue()

    path = queue.dequeue(block=block, timeout=timeout)
    if not path:
        return False
    try:
        dispatch_once(store, gateway, path)
    except Exception:
        logger.exception("Push dispatch failed for %s", path)
    return True


def drain(
    *,
    store: Optional[DocumentStore] = None,
    gateway: Optional[PushGateway] = None,
    queue: Optional[PushQueue] = None,
) -> int:
    """Processes queued paths without blocking until the queue is empty."""
    processed = 0
    while process_next(store=store, gateway=gateway, queue=queue, block=False):
        processed += 1
    return processed


def run_loop(poll_interval_seconds: float = 2.0) -> None:
    """
    Simple loop that blocks on the queue. Intended to be run under systemd/supervisor.
    """
    store = get_store()
    gateway = get_push_gateway()
    queue = get_push_queue()
    logger.info(
        "Push worker started (queue: %s, %d pending)",
        queue.__class__.__name__,
        queue.pending(),
    )
    while True:
        processed = process_next(
            store=store,
            gateway=gateway,
            queue=queue,
            block=True,
            timeout=int(poll_interval_seconds),
        )
        if not processed:
            time.sleep(poll_interval_seconds)


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    run_loop()
