"""
Direct message chats between two users.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from aura.errors import NotFoundError, PermissionDeniedError, ValidationError
from aura.notifications import add_notification
from aura.profiles import get_profile, get_profiles
from aura.store import (
    ASCENDING,
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    DocumentStore,
    Query,
    Transaction,
    new_document_id,
)
from shared.firebase_constants import CHATS_COLLECTION, MESSAGES_COLLECTION
from shared.types import Chat, Message, NotificationType, from_document

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def chat_path(chat_id: str) -> str:
    return f"{CHATS_COLLECTION}/{chat_id}"


def messages_collection(chat_id: str) -> str:
    return f"{chat_path(chat_id)}/{MESSAGES_COLLECTION}"


def direct_chat_id(uid: str, other_uid: str) -> str:
    """Id for a new chat between two users; the same for either ordering."""
    first, second = sorted((uid, other_uid))
    return f"{first}_{second}"


def _member_chats(store: DocumentStore, uid: str) -> list[DocumentSnapshot]:
    return store.query(Query(CHATS_COLLECTION).where("members", "array-contains", uid))


def _other_member(chat: Chat, uid: str) -> str:
    return next((m for m in chat.members if m != uid), uid)


def get_or_create_chat(store: DocumentStore, uid: str, other_uid: str) -> Chat:
    """
    Returns the existing chat between the two users, creating it if there is
    none. Chats created elsewhere with random ids are found by membership.
    """
    if uid == other_uid:
        raise ValidationError("You cannot message yourself.")
    recipient = get_profile(store, other_uid)

    for snapshot in _member_chats(store, uid):
        if other_uid in (snapshot.get("members") or []):
            chat = from_document(Chat, snapshot.id, snapshot.to_dict())
            chat.recipient = recipient
            return chat

    chat_id = direct_chat_id(uid, other_uid)

    def _create(transaction: Transaction) -> None:
        if transaction.get(chat_path(chat_id)).exists:
            return
        transaction.set(
            chat_path(chat_id),
            {
                "members": [uid, other_uid],
                "createdAt": SERVER_TIMESTAMP,
                "updatedAt": SERVER_TIMESTAMP,
            },
        )

    store.run_transaction(_create)
    logger.info("Opened chat %s", chat_id)
    chat = from_document(Chat, chat_id, store.get(chat_path(chat_id)).to_dict())
    chat.recipient = recipient
    return chat


def _load_member_chat(store: DocumentStore, uid: str, chat_id: str) -> Chat:
    snapshot = store.get(chat_path(chat_id))
    if not snapshot.exists:
        raise NotFoundError("Chat not found.")
    chat = from_document(Chat, snapshot.id, snapshot.to_dict())
    if uid not in chat.members:
        raise PermissionDeniedError("You are not a member of this chat.")
    return chat


def send_message(store: DocumentStore, uid: str, chat_id: str, text: str) -> Message:
    text = (text or "").strip()
    if not text:
        raise ValidationError("Message cannot be empty.")
    path = chat_path(chat_id)
    message_id = new_document_id()
    message_path = f"{messages_collection(chat_id)}/{message_id}"

    def _apply(transaction: Transaction) -> None:
        snapshot = transaction.get(path)
        if not snapshot.exists:
            raise NotFoundError("Chat not found.")
        members = snapshot.get("members") or []
        if uid not in members:
            raise PermissionDeniedError("You are not a member of this chat.")

        transaction.set(
            message_path,
            {
                "chatId": chat_id,
                "senderId": uid,
                "text": text,
                "createdAt": SERVER_TIMESTAMP,
            },
        )
        transaction.update(
            path,
            {
                "lastMessage": text,
                "lastMessageAt": SERVER_TIMESTAMP,
                "updatedAt": SERVER_TIMESTAMP,
            },
        )
        for recipient_id in members:
            if recipient_id != uid:
                add_notification(
                    transaction, recipient_id, uid, NotificationType.MESSAGE, chat_id=chat_id
                )

    store.run_transaction(_apply)
    return from_document(Message, message_id, store.get(message_path).to_dict())


def list_chats(store: DocumentStore, uid: str) -> list[Chat]:
    """Chats of `uid`, most recently active first, each with the other member's profile."""
    chats = [from_document(Chat, s.id, s.to_dict()) for s in _member_chats(store, uid)]
    chats.sort(
        key=lambda c: (c.updated_at or c.last_message_at or c.created_at or _EPOCH, c.id),
        reverse=True,
    )
    recipients = get_profiles(store, [_other_member(c, uid) for c in chats])
    resolved = []
    for chat in chats:
        chat.recipient = recipients.get(_other_member(chat, uid))
        if chat.recipient is not None:
            resolved.append(chat)
    return resolved


def _messages_query(chat_id: str) -> Query:
    return Query(messages_collection(chat_id)).order_by("createdAt", ASCENDING)


def _to_messages(snapshots: list[DocumentSnapshot]) -> list[Message]:
    return [from_document(Message, s.id, s.to_dict()) for s in snapshots]


def list_messages(store: DocumentStore, uid: str, chat_id: str) -> list[Message]:
    _load_member_chat(store, uid, chat_id)
    return _to_messages(store.query(_messages_query(chat_id)))


def watch_messages(
    store: DocumentStore,
    uid: str,
    chat_id: str,
    callback: Callable[[list[Message]], None],
):
    _load_member_chat(store, uid, chat_id)
    return store.watch_query(
        _messages_query(chat_id), lambda snapshots: callback(_to_messages(snapshots))
    )
