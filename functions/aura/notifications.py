"""
Per-recipient notification records.

Notifications are only ever appended (inside the transaction of the action
that caused them) and marked read; nothing else mutates them.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from aura.profiles import get_profiles
from aura.store import (
    DESCENDING,
    SERVER_TIMESTAMP,
    DocumentStore,
    Query,
    Transaction,
    new_document_id,
)
from shared.constants import NOTIFICATION_PAGE_SIZE
from shared.firebase_constants import (
    NOTIFICATIONS_COLLECTION,
    USER_NOTIFICATIONS_COLLECTION,
)
from shared.types import Notification, NotificationType, from_document

logger = logging.getLogger(__name__)


def notification_collection(recipient_id: str) -> str:
    return f"{NOTIFICATIONS_COLLECTION}/{recipient_id}/{USER_NOTIFICATIONS_COLLECTION}"


def notification_path(recipient_id: str, notification_id: str) -> str:
    return f"{notification_collection(recipient_id)}/{notification_id}"


def build_notification(
    recipient_id: str,
    sender_id: str,
    notification_type: NotificationType,
    post_id: Optional[str] = None,
    chat_id: Optional[str] = None,
) -> dict:
    data = {
        "recipientId": recipient_id,
        "senderId": sender_id,
        "type": str(notification_type),
        "read": False,
        "createdAt": SERVER_TIMESTAMP,
    }
    if post_id:
        data["postId"] = post_id
    if chat_id:
        data["chatId"] = chat_id
    return data


def add_notification(
    transaction: Transaction,
    recipient_id: str,
    sender_id: str,
    notification_type: NotificationType,
    post_id: Optional[str] = None,
    chat_id: Optional[str] = None,
) -> str:
    """Queues a new notification write on `transaction` and returns its id."""
    notification_id = new_document_id()
    transaction.set(
        notification_path(recipient_id, notification_id),
        build_notification(recipient_id, sender_id, notification_type, post_id, chat_id),
    )
    return notification_id


def list_notifications(
    store: DocumentStore,
    uid: str,
    limit: int = NOTIFICATION_PAGE_SIZE,
    mark_read: bool = True,
) -> list[Notification]:
    """
    Newest notifications first, each with its sender's profile. Unread ones
    are marked read in a single batch after they have been listed.
    """
    query = (
        Query(notification_collection(uid))
        .order_by("createdAt", DESCENDING)
        .limit(limit)
    )
    snapshots = store.query(query)
    senders = get_profiles(store, [s.get("senderId") for s in snapshots])

    notifications = []
    for snapshot in snapshots:
        notification = from_document(Notification, snapshot.id, snapshot.to_dict())
        notification.sender = senders.get(notification.sender_id)
        if notification.sender is None:
            continue
        notifications.append(notification)

    if mark_read:
        unread = [s.path for s in snapshots if not s.get("read", False)]
        if unread:
            _mark_read(store, unread)
    return notifications


def _mark_read(store: DocumentStore, paths: list[str]) -> None:
    def _batch(transaction: Transaction) -> None:
        for path in paths:
            transaction.update(path, {"read": True})

    store.run_transaction(_batch)
    logger.info("Marked %d notifications read", len(paths))


def _unread_query(uid: str) -> Query:
    return Query(notification_collection(uid)).where("read", "==", False)


def unread_count(store: DocumentStore, uid: str) -> int:
    return len(store.query(_unread_query(uid)))


def watch_unread_count(
    store: DocumentStore, uid: str, callback: Callable[[int], None]
):
    return store.watch_query(_unread_query(uid), lambda snapshots: callback(len(snapshots)))
