import unittest
from datetime import datetime, timedelta, timezone

from aura.follows import follow
from aura.notifications import (
    add_notification,
    list_notifications,
    notification_path,
    unread_count,
    watch_unread_count,
)
from aura.posts import create_post, set_like
from aura.store import InMemoryDocumentStore
from shared.types import NotificationType


def _make_user(store, uid):
    store.set(
        f"users/{uid}",
        {"uid": uid, "username": uid, "followersCount": 0, "followingCount": 0},
    )


class NotificationTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryDocumentStore()
        for uid in ("alice", "bob", "carol"):
            _make_user(self.store, uid)

    def test_add_notification_inside_transaction(self):
        notification_id = self.store.run_transaction(
            lambda txn: add_notification(
                txn, "alice", "bob", NotificationType.LIKE, post_id="p1"
            )
        )
        stored = self.store.get(notification_path("alice", notification_id))
        self.assertEqual(stored.get("type"), "like")
        self.assertEqual(stored.get("postId"), "p1")
        self.assertIsNone(stored.get("chatId"))
        self.assertFalse(stored.get("read"))
        self.assertIsInstance(stored.get("createdAt"), datetime)

    def test_list_marks_read_and_resolves_senders(self):
        follow(self.store, "bob", "alice")
        post = create_post(self.store, "alice", "hi")
        set_like(self.store, "carol", post.id, True)
        self.assertEqual(unread_count(self.store, "alice"), 2)

        notifications = list_notifications(self.store, "alice")

        self.assertEqual({n.type for n in notifications}, {"follow", "like"})
        self.assertEqual({n.sender.username for n in notifications}, {"bob", "carol"})
        self.assertTrue(all(not n.read for n in notifications))
        self.assertEqual(unread_count(self.store, "alice"), 0)

    def test_list_without_marking_read(self):
        follow(self.store, "bob", "alice")
        list_notifications(self.store, "alice", mark_read=False)
        self.assertEqual(unread_count(self.store, "alice"), 1)

    def test_newest_first_and_limited(self):
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        for i in range(5):
            self.store.set(
                notification_path("alice", f"n{i}"),
                {
                    "recipientId": "alice",
                    "senderId": "bob",
                    "type": "follow",
                    "read": False,
                    "createdAt": base + timedelta(minutes=i),
                },
            )
        notifications = list_notifications(self.store, "alice", limit=3)
        self.assertEqual([n.id for n in notifications], ["n4", "n3", "n2"])
        self.assertEqual(unread_count(self.store, "alice"), 2)

    def test_notifications_from_deleted_senders_are_omitted(self):
        follow(self.store, "bob", "alice")
        self.store.delete("users/bob")
        self.assertEqual(list_notifications(self.store, "alice"), [])

    def test_watch_unread_count(self):
        counts = []
        subscription = watch_unread_count(self.store, "alice", counts.append)
        follow(self.store, "bob", "alice")
        follow(self.store, "carol", "alice")
        list_notifications(self.store, "alice")
        subscription.unsubscribe()

        # Marking read touches two documents, so the last refresh may repeat.
        self.assertEqual(counts[:3], [0, 1, 2])
        self.assertEqual(counts[-1], 0)


if __name__ == "__main__":
    unittest.main()
