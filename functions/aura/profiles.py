"""
User profiles: signup, lookup, editing, search and follow lists.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from aura.auth import AuthClient, Session
from aura.errors import ConflictError, NotFoundError, ValidationError
from aura.storage import StorageClient, Upload, upload_image
from aura.store import (
    DESCENDING,
    IN_FILTER_LIMIT,
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    DocumentStore,
    Query,
    Transaction,
)
from shared.constants import (
    BIO_MAX_LENGTH,
    DEFAULT_PHOTO_URL_TEMPLATE,
    DISPLAY_NAME_MAX_LENGTH,
    MAX_PROFILE_PHOTO_SIZE_MB,
    PASSWORD_MIN_LENGTH,
    SEARCH_MIN_LENGTH,
    SEARCH_RESULT_LIMIT,
    SUGGESTION_LIMIT,
    USERNAME_MAX_LENGTH,
    USERNAME_MIN_LENGTH,
)
from shared.firebase_constants import (
    FCM_TOKENS_COLLECTION,
    FOLLOWERS_COLLECTION,
    FOLLOWING_COLLECTION,
    USERNAMES_COLLECTION,
    USERS_COLLECTION,
)
from shared.types import UserProfile, from_document

logger = logging.getLogger(__name__)

# Appended to a prefix to form the upper bound of a prefix range query.
PREFIX_RANGE_END = "\uf8ff"


def user_path(uid: str) -> str:
    return f"{USERS_COLLECTION}/{uid}"


def profile_from_snapshot(snapshot: DocumentSnapshot) -> UserProfile:
    data = snapshot.to_dict()
    data.setdefault("uid", snapshot.id)
    return from_document(UserProfile, snapshot.id, data)


def chunked(values: list, size: int = IN_FILTER_LIMIT) -> list[list]:
    return [values[i : i + size] for i in range(0, len(values), size)]


def get_profiles(store: DocumentStore, uids: Iterable[str]) -> dict[str, UserProfile]:
    """
    Resolves profiles for `uids` in batches of at most 30 ids. Missing users
    are absent from the result.
    """
    unique = list(dict.fromkeys(uid for uid in uids if uid))
    profiles: dict[str, UserProfile] = {}
    for chunk in chunked(unique):
        query = Query(USERS_COLLECTION).where("uid", "in", chunk)
        for snapshot in store.query(query):
            profile = profile_from_snapshot(snapshot)
            profiles[profile.uid] = profile
    return profiles


def get_profile(store: DocumentStore, uid: str) -> UserProfile:
    snapshot = store.get(user_path(uid))
    if not snapshot.exists:
        raise NotFoundError("User not found.")
    return profile_from_snapshot(snapshot)


def get_profile_by_username(store: DocumentStore, username: str) -> UserProfile:
    query = Query(USERS_COLLECTION).where("username", "==", username).limit(1)
    results = store.query(query)
    if not results:
        raise NotFoundError("User not found.")
    return profile_from_snapshot(results[0])


def _validate_signup(email: str, password: str, username: str) -> None:
    if not email or "@" not in email:
        raise ValidationError("A valid email address is required.")
    if len(password or "") < PASSWORD_MIN_LENGTH:
        raise ValidationError(
            f"Password must be at least {PASSWORD_MIN_LENGTH} characters."
        )
    if len(username or "") < USERNAME_MIN_LENGTH:
        raise ValidationError(
            f"Username must be at least {USERNAME_MIN_LENGTH} characters."
        )
    if len(username) > USERNAME_MAX_LENGTH:
        raise ValidationError(
            f"Username must be less than {USERNAME_MAX_LENGTH} characters."
        )
    if "/" in username:
        raise ValidationError("Username may not contain '/'.")


def sign_up(
    store: DocumentStore,
    auth: AuthClient,
    email: str,
    password: str,
    username: str,
) -> UserProfile:
    """
    Creates the auth account, then reserves the username and writes the
    profile in one transaction. The account is removed again if the
    username turns out to be taken.
    """
    username = (username or "").strip()
    email = (email or "").strip()
    _validate_signup(email, password, username)

    if store.get(f"{USERNAMES_COLLECTION}/{username}").exists:
        raise ConflictError("Username is already taken.")

    uid = auth.create_user(email, password)

    def _reserve(transaction: Transaction) -> None:
        reservation = transaction.get(f"{USERNAMES_COLLECTION}/{username}")
        if reservation.exists:
            raise ConflictError("Username is already taken.")
        transaction.set(
            user_path(uid),
            {
                "uid": uid,
                "email": email,
                "username": username,
                "displayName": username,
                "bio": "",
                "photoURL": DEFAULT_PHOTO_URL_TEMPLATE.format(uid=uid),
                "followersCount": 0,
                "followingCount": 0,
                "isPrivate": False,
                "createdAt": SERVER_TIMESTAMP,
            },
        )
        transaction.set(f"{USERNAMES_COLLECTION}/{username}", {"uid": uid})

    try:
        store.run_transaction(_reserve)
    except Exception:
        logger.info("Signup for %s failed; removing auth account %s", username, uid)
        auth.delete_user(uid)
        raise
    logger.info("Created user %s (%s)", uid, username)
    return get_profile(store, uid)


def sign_in(auth: AuthClient, email: str, password: str) -> Session:
    return auth.sign_in((email or "").strip(), password or "")


def change_password(
    auth: AuthClient, uid: str, current_password: str, new_password: str
) -> None:
    if not current_password:
        raise ValidationError("Current password is required.")
    if len(new_password or "") < PASSWORD_MIN_LENGTH:
        raise ValidationError(
            f"New password must be at least {PASSWORD_MIN_LENGTH} characters."
        )
    auth.reauthenticate(uid, current_password)
    auth.update_password(uid, new_password)
    logger.info("Password changed for %s", uid)


def update_profile(
    store: DocumentStore,
    uid: str,
    display_name: str,
    bio: Optional[str] = None,
    photo: Optional[Upload] = None,
    storage: Optional[StorageClient] = None,
) -> UserProfile:
    display_name = (display_name or "").strip()
    if not display_name:
        raise ValidationError("Display name is required")
    if len(display_name) > DISPLAY_NAME_MAX_LENGTH:
        raise ValidationError(
            f"Display name must be {DISPLAY_NAME_MAX_LENGTH} characters or less"
        )
    if bio is not None and len(bio) > BIO_MAX_LENGTH:
        raise ValidationError(f"Bio must be {BIO_MAX_LENGTH} characters or less")

    profile = get_profile(store, uid)
    if bio is None:
        bio = profile.bio
    updates = {"displayName": display_name, "bio": bio}
    if photo is not None:
        if storage is None:
            raise ValueError("A storage client is required to upload a photo")
        updates["photoURL"] = upload_image(
            storage,
            f"profilePictures/{uid}/profile.jpg",
            photo,
            max_size_mb=MAX_PROFILE_PHOTO_SIZE_MB,
        )
    else:
        updates["photoURL"] = profile.photo_url
    store.update(user_path(uid), updates)
    return get_profile(store, uid)


def set_private(store: DocumentStore, uid: str, is_private: bool) -> UserProfile:
    get_profile(store, uid)
    store.update(user_path(uid), {"isPrivate": bool(is_private)})
    return get_profile(store, uid)


def search_users(store: DocumentStore, term: str) -> list[UserProfile]:
    """Username prefix search; terms shorter than two characters match nothing."""
    term = (term or "").strip()
    if len(term) < SEARCH_MIN_LENGTH:
        return []
    query = (
        Query(USERS_COLLECTION)
        .order_by("username")
        .where("username", ">=", term)
        .where("username", "<=", term + PREFIX_RANGE_END)
        .limit(SEARCH_RESULT_LIMIT)
    )
    return [profile_from_snapshot(s) for s in store.query(query)]


def suggested_users(store: DocumentStore, uid: str) -> list[UserProfile]:
    """Most-followed users, excluding the caller."""
    query = (
        Query(USERS_COLLECTION)
        .order_by("followersCount", DESCENDING)
        .limit(SUGGESTION_LIMIT + 1)
    )
    profiles = [
        profile_from_snapshot(s) for s in store.query(query) if s.id != uid
    ]
    return profiles[:SUGGESTION_LIMIT]


def register_device_token(store: DocumentStore, uid: str, token: str) -> None:
    token = (token or "").strip()
    if not token:
        raise ValidationError("A device token is required.")
    store.set(
        f"{FCM_TOKENS_COLLECTION}/{uid}",
        {"token": token, "updatedAt": SERVER_TIMESTAMP},
    )


def _edge_ids(store: DocumentStore, uid: str, collection: str) -> list[str]:
    query = Query(f"{user_path(uid)}/{collection}").order_by("createdAt", DESCENDING)
    return [snapshot.id for snapshot in store.query(query)]


def follower_ids(store: DocumentStore, uid: str) -> list[str]:
    return _edge_ids(store, uid, FOLLOWERS_COLLECTION)


def following_ids(store: DocumentStore, uid: str) -> list[str]:
    return _edge_ids(store, uid, FOLLOWING_COLLECTION)


def _profiles_in_order(store: DocumentStore, uids: list[str]) -> list[UserProfile]:
    profiles = get_profiles(store, uids)
    return [profiles[uid] for uid in uids if uid in profiles]


def list_followers(store: DocumentStore, uid: str) -> list[UserProfile]:
    get_profile(store, uid)
    return _profiles_in_order(store, follower_ids(store, uid))


def list_following(store: DocumentStore, uid: str) -> list[UserProfile]:
    get_profile(store, uid)
    return _profiles_in_order(store, following_ids(store, uid))
