import unittest
from datetime import datetime, timezone

from aura.errors import NotFoundError, PermissionDeniedError, ValidationError
from aura.messages import (
    direct_chat_id,
    get_or_create_chat,
    list_chats,
    list_messages,
    send_message,
    watch_messages,
)
from aura.notifications import notification_collection
from aura.store import InMemoryDocumentStore, Query


def _make_user(store, uid):
    store.set(f"users/{uid}", {"uid": uid, "username": uid})


class ChatTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryDocumentStore()
        for uid in ("alice", "bob", "carol"):
            _make_user(self.store, uid)

    def test_direct_chat_id_is_order_independent(self):
        self.assertEqual(direct_chat_id("b", "a"), "a_b")
        self.assertEqual(direct_chat_id("a", "b"), "a_b")

    def test_get_or_create_reuses_existing_chat(self):
        chat = get_or_create_chat(self.store, "alice", "bob")
        again = get_or_create_chat(self.store, "bob", "alice")

        self.assertEqual(chat.id, again.id)
        self.assertEqual(sorted(chat.members), ["alice", "bob"])
        self.assertEqual(chat.recipient.uid, "bob")
        self.assertEqual(again.recipient.uid, "alice")

    def test_finds_chats_created_with_other_ids(self):
        self.store.set("chats/legacy", {"members": ["alice", "carol"]})
        self.assertEqual(get_or_create_chat(self.store, "carol", "alice").id, "legacy")

    def test_cannot_message_self_or_missing_user(self):
        with self.assertRaises(ValidationError):
            get_or_create_chat(self.store, "alice", "alice")
        with self.assertRaises(NotFoundError):
            get_or_create_chat(self.store, "alice", "ghost")

    def test_send_message_updates_chat_and_notifies_recipient(self):
        chat = get_or_create_chat(self.store, "alice", "bob")
        message = send_message(self.store, "alice", chat.id, " hi bob ")

        self.assertEqual(message.text, "hi bob")
        self.assertEqual(message.sender_id, "alice")
        stored = self.store.get(f"chats/{chat.id}")
        self.assertEqual(stored.get("lastMessage"), "hi bob")
        self.assertIsNotNone(stored.get("lastMessageAt"))

        notifications = self.store.query(Query(notification_collection("bob")))
        self.assertEqual(len(notifications), 1)
        self.assertEqual(notifications[0].get("type"), "message")
        self.assertEqual(notifications[0].get("chatId"), chat.id)
        self.assertEqual(self.store.query(Query(notification_collection("alice"))), [])

    def test_only_members_may_send_or_read(self):
        chat = get_or_create_chat(self.store, "alice", "bob")
        with self.assertRaises(PermissionDeniedError):
            send_message(self.store, "carol", chat.id, "let me in")
        with self.assertRaises(PermissionDeniedError):
            list_messages(self.store, "carol", chat.id)
        with self.assertRaises(PermissionDeniedError):
            watch_messages(self.store, "carol", chat.id, lambda _: None)

    def test_empty_message_and_missing_chat(self):
        chat = get_or_create_chat(self.store, "alice", "bob")
        with self.assertRaises(ValidationError):
            send_message(self.store, "alice", chat.id, "   ")
        with self.assertRaises(NotFoundError):
            send_message(self.store, "alice", "nope", "hello")

    def test_list_messages_in_send_order(self):
        chat = get_or_create_chat(self.store, "alice", "bob")
        send_message(self.store, "alice", chat.id, "one")
        send_message(self.store, "bob", chat.id, "two")

        messages = list_messages(self.store, "bob", chat.id)
        self.assertCountEqual([m.text for m in messages], ["one", "two"])
        self.assertLessEqual(messages[0].created_at, messages[1].created_at)

    def test_list_chats_most_recent_first(self):
        with_bob = get_or_create_chat(self.store, "alice", "bob")
        with_carol = get_or_create_chat(self.store, "alice", "carol")
        self.store.update(
            f"chats/{with_carol.id}", {"updatedAt": datetime(2020, 1, 1, tzinfo=timezone.utc)}
        )
        send_message(self.store, "alice", with_bob.id, "latest")

        chats = list_chats(self.store, "alice")
        self.assertEqual([c.id for c in chats], [with_bob.id, with_carol.id])
        self.assertEqual(chats[0].recipient.username, "bob")
        self.assertEqual(chats[0].last_message, "latest")

    def test_watch_messages_streams_updates(self):
        chat = get_or_create_chat(self.store, "alice", "bob")
        seen = []
        subscription = watch_messages(
            self.store, "alice", chat.id, lambda messages: seen.append([m.text for m in messages])
        )
        send_message(self.store, "bob", chat.id, "hey")
        subscription.unsubscribe()

        self.assertEqual(seen, [[], ["hey"]])


if __name__ == "__main__":
    unittest.main()
