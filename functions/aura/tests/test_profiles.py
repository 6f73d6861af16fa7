import unittest
from unittest.mock import patch

from aura.auth import InMemoryAuthClient
from aura.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from aura.profiles import (
    change_password,
    get_profile,
    get_profile_by_username,
    get_profiles,
    register_device_token,
    search_users,
    set_private,
    sign_in,
    sign_up,
    suggested_users,
    update_profile,
)
from aura.storage import InMemoryStorageClient, Upload
from aura.store import InMemoryDocumentStore


class SignUpTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryDocumentStore()
        self.auth = InMemoryAuthClient()

    def test_sign_up_creates_profile_and_reservation(self):
        profile = sign_up(self.store, self.auth, "ann@example.com", "secret1", "ann")

        self.assertEqual(profile.username, "ann")
        self.assertEqual(profile.display_name, "ann")
        self.assertEqual(profile.followers_count, 0)
        self.assertFalse(profile.is_private)
        self.assertIn(profile.uid, profile.photo_url)
        self.assertEqual(self.store.get("usernames/ann").get("uid"), profile.uid)
        self.assertEqual(sign_in(self.auth, "ann@example.com", "secret1").uid, profile.uid)

    def test_taken_username_is_rejected_before_account_creation(self):
        sign_up(self.store, self.auth, "ann@example.com", "secret1", "ann")
        with self.assertRaises(ConflictError):
            sign_up(self.store, self.auth, "other@example.com", "secret1", "ann")
        self.assertEqual(len(self.auth.accounts), 1)

    def test_account_is_removed_when_reservation_fails(self):
        # Another signup claims the name between the pre-check and the transaction.
        original = self.auth.create_user

        def _create_and_race(email, password):
            uid = original(email, password)
            self.store.set("usernames/ann", {"uid": "someone-else"})
            return uid

        with patch.object(self.auth, "create_user", side_effect=_create_and_race):
            with self.assertRaises(ConflictError):
                sign_up(self.store, self.auth, "ann@example.com", "secret1", "ann")

        self.assertEqual(self.auth.accounts, {})
        self.assertEqual(self.store.get("usernames/ann").get("uid"), "someone-else")

    def test_validation(self):
        cases = [
            ("bad-email", "secret1", "ann"),
            ("ann@example.com", "123", "ann"),
            ("ann@example.com", "secret1", "an"),
            ("ann@example.com", "secret1", "a" * 21),
            ("ann@example.com", "secret1", "a/b"),
        ]
        for email, password, username in cases:
            with self.subTest(username=username, password=password):
                with self.assertRaises(ValidationError):
                    sign_up(self.store, self.auth, email, password, username)
        self.assertEqual(self.auth.accounts, {})

    def test_change_password(self):
        profile = sign_up(self.store, self.auth, "ann@example.com", "secret1", "ann")
        with self.assertRaises(AuthenticationError):
            change_password(self.auth, profile.uid, "wrong", "newpass")
        with self.assertRaises(ValidationError):
            change_password(self.auth, profile.uid, "secret1", "123")

        change_password(self.auth, profile.uid, "secret1", "newpass")
        self.assertEqual(sign_in(self.auth, "ann@example.com", "newpass").uid, profile.uid)


class ProfileTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryDocumentStore()
        for uid, username, followers in [
            ("u1", "anna", 5),
            ("u2", "annabel", 10),
            ("u3", "bob", 1),
        ]:
            self.store.set(
                f"users/{uid}",
                {
                    "uid": uid,
                    "username": username,
                    "displayName": username,
                    "photoURL": f"https://img/{uid}",
                    "followersCount": followers,
                    "followingCount": 0,
                },
            )

    def test_lookup(self):
        self.assertEqual(get_profile(self.store, "u1").photo_url, "https://img/u1")
        self.assertEqual(get_profile_by_username(self.store, "bob").uid, "u3")
        with self.assertRaises(NotFoundError):
            get_profile(self.store, "missing")
        with self.assertRaises(NotFoundError):
            get_profile_by_username(self.store, "nobody")

    def test_get_profiles_batches_more_than_thirty_ids(self):
        uids = ["u1", "u3"] + [f"ghost{i}" for i in range(40)]
        self.assertEqual(set(get_profiles(self.store, uids)), {"u1", "u3"})

    def test_search_is_a_prefix_match(self):
        self.assertEqual([p.username for p in search_users(self.store, "ann")], ["anna", "annabel"])
        self.assertEqual(search_users(self.store, "a"), [])
        self.assertEqual(search_users(self.store, "zz"), [])

    def test_suggestions_exclude_self_and_order_by_followers(self):
        suggestions = suggested_users(self.store, "u2")
        self.assertEqual([p.uid for p in suggestions], ["u1", "u3"])

    def test_update_profile(self):
        profile = update_profile(self.store, "u1", "  Anna K  ", "hello")
        self.assertEqual(profile.display_name, "Anna K")
        self.assertEqual(profile.bio, "hello")
        self.assertEqual(profile.photo_url, "https://img/u1")

    def test_update_profile_without_bio_keeps_it(self):
        update_profile(self.store, "u1", "Anna", "hello")
        profile = update_profile(self.store, "u1", "Anna K")
        self.assertEqual(profile.display_name, "Anna K")
        self.assertEqual(profile.bio, "hello")

        self.assertEqual(update_profile(self.store, "u1", "Anna K", "").bio, "")

    def test_update_profile_with_photo(self):
        storage = InMemoryStorageClient()
        profile = update_profile(
            self.store, "u1", "Anna", photo=Upload(b"img", "image/jpeg"), storage=storage
        )
        self.assertEqual(profile.photo_url, "https://example.test/storage/profilePictures/u1/profile.jpg")

    def test_update_profile_validation(self):
        with self.assertRaises(ValidationError):
            update_profile(self.store, "u1", "   ")
        with self.assertRaises(ValidationError):
            update_profile(self.store, "u1", "x" * 51)
        with self.assertRaises(ValidationError):
            update_profile(self.store, "u1", "Anna", "b" * 151)
        with self.assertRaises(ValidationError):
            update_profile(
                self.store,
                "u1",
                "Anna",
                photo=Upload(b"x" * (2 * 1024 * 1024 + 1), "image/png"),
                storage=InMemoryStorageClient(),
            )

    def test_privacy_and_device_token(self):
        self.assertTrue(set_private(self.store, "u1", True).is_private)
        register_device_token(self.store, "u1", "tok")
        self.assertEqual(self.store.get("fcmTokens/u1").get("token"), "tok")
        with self.assertRaises(ValidationError):
            register_device_token(self.store, "u1", " ")


if __name__ == "__main__":
    unittest.main()
