import unittest

from aura.push import InMemoryPushGateway
from aura.push_dispatch import (
    delivery_path,
    dispatch_notification_push,
    dispatch_once,
    parse_notification_path,
    render_push,
)
from aura.store import InMemoryDocumentStore


class RenderPushTests(unittest.TestCase):
    def test_templates_per_type(self):
        cases = {
            "like": ("New Like!", "ann liked your post."),
            "comment": ("New Comment!", "ann commented on your post."),
            "follow": ("New Follower!", "ann started following you."),
            "message": ("New Message from ann!", "You have a new message."),
        }
        for notification_type, expected in cases.items():
            with self.subTest(notification_type=notification_type):
                content = render_push(notification_type, "ann")
                self.assertEqual((content.title, content.body), expected)

    def test_unknown_type_uses_generic_text(self):
        content = render_push("mention", "ann")
        self.assertEqual(content.title, "New Notification")
        self.assertEqual(content.body, "You have a new notification on AURA")

    def test_parse_notification_path(self):
        self.assertEqual(
            parse_notification_path("notifications/bob/userNotifications/n1"), ("bob", "n1")
        )
        self.assertIsNone(parse_notification_path("posts/p1"))
        self.assertIsNone(parse_notification_path("notifications/bob/other/n1"))


class DispatchTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryDocumentStore()
        self.gateway = InMemoryPushGateway()
        self.store.set("users/alice", {"uid": "alice", "username": "alice"})
        self.store.set("users/bob", {"uid": "bob", "username": "bob"})
        self.store.set("fcmTokens/bob", {"token": "tok-bob"})

    def test_sends_with_data_payload(self):
        sent = dispatch_notification_push(
            self.store,
            self.gateway,
            "bob",
            {"type": "comment", "senderId": "alice", "postId": "p1"},
        )
        self.assertTrue(sent)
        push = self.gateway.sent[0]
        self.assertEqual(push.token, "tok-bob")
        self.assertEqual(push.title, "New Comment!")
        self.assertEqual(push.data, {"type": "comment", "postId": "p1", "senderId": "alice"})

    def test_skips_without_token(self):
        self.store.delete("fcmTokens/bob")
        self.assertFalse(
            dispatch_notification_push(
                self.store, self.gateway, "bob", {"type": "like", "senderId": "alice"}
            )
        )
        self.store.set("fcmTokens/bob", {"updatedAt": "x"})
        self.assertFalse(
            dispatch_notification_push(
                self.store, self.gateway, "bob", {"type": "like", "senderId": "alice"}
            )
        )
        self.assertEqual(self.gateway.sent, [])

    def test_skips_when_sender_missing(self):
        self.assertFalse(
            dispatch_notification_push(
                self.store, self.gateway, "bob", {"type": "like", "senderId": "ghost"}
            )
        )
        self.assertEqual(self.gateway.sent, [])

    def test_sender_without_username_is_someone(self):
        self.store.set("users/anon", {"uid": "anon"})
        dispatch_notification_push(
            self.store, self.gateway, "bob", {"type": "follow", "senderId": "anon"}
        )
        self.assertEqual(self.gateway.sent[0].body, "Someone started following you.")

    def test_send_failure_is_logged_not_raised(self):
        self.gateway.fail_with = RuntimeError("fcm down")
        with self.assertLogs("aura.push_dispatch", level="ERROR"):
            sent = dispatch_notification_push(
                self.store, self.gateway, "bob", {"type": "like", "senderId": "alice"}
            )
        self.assertFalse(sent)

    def test_dispatch_once_reads_document_and_records_delivery(self):
        path = "notifications/bob/userNotifications/n1"
        self.store.set(path, {"type": "follow", "senderId": "alice", "read": False})

        self.assertTrue(dispatch_once(self.store, self.gateway, path))
        self.assertFalse(dispatch_once(self.store, self.gateway, path))

        self.assertEqual(len(self.gateway.sent), 1)
        ledger = self.store.get(delivery_path("bob", "n1"))
        self.assertTrue(ledger.get("success"))
        self.assertEqual(ledger.get("path"), path)

    def test_failed_attempt_is_not_retried(self):
        path = "notifications/bob/userNotifications/n2"
        self.store.set(path, {"type": "like", "senderId": "alice"})
        self.gateway.fail_with = RuntimeError("fcm down")

        self.assertFalse(dispatch_once(self.store, self.gateway, path))
        self.gateway.fail_with = None
        self.assertFalse(dispatch_once(self.store, self.gateway, path))

        self.assertEqual(self.gateway.sent, [])
        self.assertFalse(self.store.get(delivery_path("bob", "n2")).get("success"))

    def test_non_notification_paths_are_ignored(self):
        self.assertFalse(dispatch_once(self.store, self.gateway, "posts/p1"))
        self.assertEqual(self.gateway.sent, [])


if __name__ == "__main__":
    unittest.main()
