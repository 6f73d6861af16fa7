"""
Push notification dispatch for newly created notification records.

For each new notification: look up the recipient's device token, look up
the sender's username, pick the title/body for the notification type and
send. Missing data is logged and the push is skipped; send failures are
logged and never raised.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from aura.push import PushGateway
from aura.store import SERVER_TIMESTAMP, DocumentStore, Transaction
from shared.constants import APP_NAME
from shared.firebase_constants import (
    FCM_TOKENS_COLLECTION,
    NOTIFICATIONS_COLLECTION,
    PUSH_DELIVERIES_COLLECTION,
    USER_NOTIFICATIONS_COLLECTION,
    USERS_COLLECTION,
)
from shared.types import NotificationType

logger = logging.getLogger(__name__)

DEFAULT_SENDER_NAME = "Someone"

NOTIFICATION_PATH_PATTERN = re.compile(
    rf"^{NOTIFICATIONS_COLLECTION}/([^/]+)/{USER_NOTIFICATIONS_COLLECTION}/([^/]+)$"
)


@dataclass(frozen=True)
class PushContent:
    title: str
    body: str


def render_push(notification_type: Optional[str], sender_name: str) -> PushContent:
    if notification_type == NotificationType.LIKE:
        return PushContent("New Like!", f"{sender_name} liked your post.")
    if notification_type == NotificationType.COMMENT:
        return PushContent("New Comment!", f"{sender_name} commented on your post.")
    if notification_type == NotificationType.FOLLOW:
        return PushContent("New Follower!", f"{sender_name} started following you.")
    if notification_type == NotificationType.MESSAGE:
        return PushContent(f"New Message from {sender_name}!", "You have a new message.")
    return PushContent("New Notification", f"You have a new notification on {APP_NAME}")


def parse_notification_path(path: str) -> Optional[tuple[str, str]]:
    """Returns (recipient_id, notification_id) for a notification document path."""
    match = NOTIFICATION_PATH_PATTERN.match(path)
    if not match:
        return None
    return match.group(1), match.group(2)


def _push_data(data: dict) -> dict:
    payload = {"type": str(data.get("type") or "")}
    for key in ("postId", "chatId", "senderId"):
        if data.get(key):
            payload[key] = str(data[key])
    return payload


def dispatch_notification_push(
    store: DocumentStore,
    gateway: PushGateway,
    recipient_id: str,
    data: Optional[dict],
) -> bool:
    """Sends the push for one notification. Returns True if a push was sent."""
    if not data:
        logger.info("No data associated with the notification for %s", recipient_id)
        return False

    token_doc = store.get(f"{FCM_TOKENS_COLLECTION}/{recipient_id}")
    if not token_doc.exists:
        logger.info("No FCM token for user %s", recipient_id)
        return False
    token = token_doc.get("token")
    if not token:
        logger.info("FCM token document for user %s is missing token field.", recipient_id)
        return False

    sender_id = data.get("senderId")
    sender_doc = store.get(f"{USERS_COLLECTION}/{sender_id}") if sender_id else None
    if sender_doc is None or not sender_doc.exists:
        logger.info("Sender profile %s not found.", sender_id)
        return False
    sender_name = sender_doc.get("username") or DEFAULT_SENDER_NAME

    content = render_push(data.get("type"), sender_name)
    try:
        message_id = gateway.send(token, content.title, content.body, _push_data(data))
    except Exception:
        logger.exception("Error sending notification to user %s", recipient_id)
        return False
    logger.info("Successfully sent notification to user %s (%s)", recipient_id, message_id)
    return True


def delivery_path(recipient_id: str, notification_id: str) -> str:
    return f"{PUSH_DELIVERIES_COLLECTION}/{recipient_id}_{notification_id}"


def _claim_delivery(store: DocumentStore, path: str, recipient_id: str, notification_path: str) -> bool:
    def _claim(transaction: Transaction) -> bool:
        if transaction.get(path).exists:
            return False
        transaction.set(
            path,
            {
                "recipientId": recipient_id,
                "path": notification_path,
                "attemptedAt": SERVER_TIMESTAMP,
                "success": False,
            },
        )
        return True

    return store.run_transaction(_claim)


def dispatch_once(
    store: DocumentStore,
    gateway: PushGateway,
    notification_path: str,
    data: Optional[dict] = None,
) -> bool:
    """
    Dispatches the push for a notification at most once, no matter how many
    times the same creation event is delivered. The attempt is recorded in
    `pushDeliveries` before sending. Returns True if this call sent a push.
    """
    parsed = parse_notification_path(notification_path)
    if parsed is None:
        logger.warning("Ignoring non-notification path %s", notification_path)
        return False
    recipient_id, notification_id = parsed
    ledger = delivery_path(recipient_id, notification_id)

    if not _claim_delivery(store, ledger, recipient_id, notification_path):
        logger.info("Push for %s already attempted; skipping", notification_path)
        return False

    if data is None:
        data = store.get(notification_path).to_dict()
    sent = dispatch_notification_push(store, gateway, recipient_id, data)
    store.update(ledger, {"success": sent})
    return sent
