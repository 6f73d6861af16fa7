import threading
import unittest
from datetime import datetime, timezone

from aura.errors import (
    NotFoundError,
    PermissionDeniedError,
    TransactionConflictError,
    ValidationError,
)
from aura.notifications import notification_collection
from aura.posts import (
    add_comment,
    create_post,
    get_post,
    is_liked,
    list_comments,
    list_user_comments,
    list_user_posts,
    set_like,
    toggle_like,
    watch_comments,
    watch_post,
)
from aura.storage import InMemoryStorageClient, Upload
from aura.store import InMemoryDocumentStore, Query


def _make_user(store, uid):
    store.set(f"users/{uid}", {"uid": uid, "username": uid, "followersCount": 0, "followingCount": 0})


class PostTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryDocumentStore()
        _make_user(self.store, "alice")
        _make_user(self.store, "bob")
        self.post = create_post(self.store, "alice", "hello world")

    def _notifications(self, uid):
        return self.store.query(Query(notification_collection(uid)))

    def test_create_post_initializes_counters_and_author(self):
        self.assertEqual(self.post.like_count, 0)
        self.assertEqual(self.post.comment_count, 0)
        self.assertIsInstance(self.post.created_at, datetime)
        self.assertEqual(self.post.author.username, "alice")

    def test_create_post_validates_caption(self):
        with self.assertRaises(ValidationError):
            create_post(self.store, "alice", "   ")
        with self.assertRaises(ValidationError):
            create_post(self.store, "alice", "x" * 2201)

    def test_create_post_with_image(self):
        storage = InMemoryStorageClient()
        post = create_post(
            self.store,
            "alice",
            "photo",
            image=Upload(b"\x89PNG", "image/png"),
            storage=storage,
        )
        self.assertTrue(post.image_url.endswith(f"posts/alice/{post.id}"))
        self.assertIn(f"posts/alice/{post.id}", storage.stored_objects)

    def test_get_missing_post(self):
        with self.assertRaises(NotFoundError):
            get_post(self.store, "missing")

    def test_list_user_posts_newest_first(self):
        self.store.set(
            "posts/old",
            {
                "authorId": "alice",
                "caption": "old",
                "createdAt": datetime(2020, 1, 1, tzinfo=timezone.utc),
            },
        )
        posts = list_user_posts(self.store, "alice")
        self.assertEqual([p.id for p in posts], [self.post.id, "old"])

    def test_like_and_unlike(self):
        self.assertTrue(set_like(self.store, "bob", self.post.id, True))
        self.assertTrue(is_liked(self.store, "bob", self.post.id))
        self.assertEqual(get_post(self.store, self.post.id).like_count, 1)

        notifications = self._notifications("alice")
        self.assertEqual(len(notifications), 1)
        self.assertEqual(notifications[0].get("type"), "like")
        self.assertEqual(notifications[0].get("postId"), self.post.id)

        self.assertFalse(set_like(self.store, "bob", self.post.id, False))
        self.assertEqual(get_post(self.store, self.post.id).like_count, 0)

    def test_like_count_never_goes_negative(self):
        set_like(self.store, "bob", self.post.id, False)
        set_like(self.store, "bob", self.post.id, False)
        self.assertEqual(get_post(self.store, self.post.id).like_count, 0)

    def test_double_like_counts_once(self):
        set_like(self.store, "bob", self.post.id, True)
        set_like(self.store, "bob", self.post.id, True)
        self.assertEqual(get_post(self.store, self.post.id).like_count, 1)
        self.assertEqual(len(self._notifications("alice")), 1)

    def test_concurrent_likes_from_many_users_match_like_records(self):
        uids = [f"fan{i}" for i in range(6)]
        for uid in uids:
            _make_user(self.store, uid)
        errors = []

        def _worker(uid):
            for round_number in range(6):
                try:
                    if round_number % 3 == 2:
                        set_like(self.store, uid, self.post.id, True)
                    else:
                        toggle_like(self.store, uid, self.post.id)
                except TransactionConflictError as exc:
                    errors.append(exc)

        threads = [threading.Thread(target=_worker, args=(uid,)) for uid in uids]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        likes = self.store.query(Query(f"posts/{self.post.id}/likes"))
        like_count = get_post(self.store, self.post.id).like_count
        self.assertGreaterEqual(like_count, 0)
        self.assertEqual(like_count, len(likes))

    def test_liking_own_post_does_not_notify(self):
        self.assertTrue(toggle_like(self.store, "alice", self.post.id))
        self.assertEqual(get_post(self.store, self.post.id).like_count, 1)
        self.assertEqual(self._notifications("alice"), [])

    def test_like_missing_post(self):
        with self.assertRaises(NotFoundError):
            toggle_like(self.store, "bob", "missing")

    def test_add_comment(self):
        comment = add_comment(self.store, "bob", self.post.id, "  nice  ")

        self.assertEqual(comment.text, "nice")
        self.assertEqual(comment.post_id, self.post.id)
        self.assertEqual(comment.author.username, "bob")
        self.assertEqual(get_post(self.store, self.post.id).comment_count, 1)
        self.assertEqual(self._notifications("alice")[0].get("type"), "comment")

    def test_own_comment_does_not_notify(self):
        add_comment(self.store, "alice", self.post.id, "first")
        self.assertEqual(self._notifications("alice"), [])

    def test_comment_validation_and_disabled_commenting(self):
        with self.assertRaises(ValidationError):
            add_comment(self.store, "bob", self.post.id, " ")
        self.store.update(f"posts/{self.post.id}", {"commentingDisabled": True})
        with self.assertRaises(PermissionDeniedError):
            add_comment(self.store, "bob", self.post.id, "hi")
        self.assertEqual(get_post(self.store, self.post.id).comment_count, 0)

    def test_list_comments_oldest_first_without_deleted_authors(self):
        _make_user(self.store, "carol")
        first = add_comment(self.store, "bob", self.post.id, "one")
        add_comment(self.store, "carol", self.post.id, "two")
        third = add_comment(self.store, "alice", self.post.id, "three")
        self.store.delete("users/carol")

        comments = list_comments(self.store, self.post.id)
        self.assertCountEqual([c.id for c in comments], [first.id, third.id])
        self.assertLessEqual(comments[0].created_at, comments[1].created_at)

    def test_list_user_comments_skips_deleted_posts(self):
        other = create_post(self.store, "alice", "second")
        add_comment(self.store, "bob", self.post.id, "on first")
        add_comment(self.store, "bob", other.id, "on second")
        self.store.delete(f"posts/{other.id}")

        comments = list_user_comments(self.store, "bob")
        self.assertEqual([c.text for c in comments], ["on first"])
        self.assertEqual(comments[0].post.caption, "hello world")

    def test_watch_post_and_comments(self):
        posts = []
        comment_counts = []
        post_sub = watch_post(self.store, self.post.id, posts.append)
        comment_sub = watch_comments(
            self.store, self.post.id, lambda comments: comment_counts.append(len(comments))
        )

        add_comment(self.store, "bob", self.post.id, "hi")
        post_sub.unsubscribe()
        comment_sub.unsubscribe()

        self.assertEqual([p.comment_count for p in posts], [0, 1])
        self.assertEqual(comment_counts, [0, 1])


if __name__ == "__main__":
    unittest.main()
