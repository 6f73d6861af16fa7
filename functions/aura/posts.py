"""
Posts, likes and comments.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from aura.counters import CounterDelta, apply_deltas, transition_delta
from aura.errors import NotFoundError, PermissionDeniedError, ValidationError
from aura.notifications import add_notification
from aura.profiles import get_profiles
from aura.storage import StorageClient, Upload, upload_image
from aura.store import (
    ASCENDING,
    DESCENDING,
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    DocumentStore,
    Query,
    Transaction,
    new_document_id,
)
from shared.constants import CAPTION_MAX_LENGTH
from shared.firebase_constants import (
    COMMENTS_COLLECTION,
    LIKES_COLLECTION,
    POSTS_COLLECTION,
)
from shared.types import Comment, NotificationType, Post, from_document

logger = logging.getLogger(__name__)


def post_path(post_id: str) -> str:
    return f"{POSTS_COLLECTION}/{post_id}"


def like_path(post_id: str, uid: str) -> str:
    return f"{post_path(post_id)}/{LIKES_COLLECTION}/{uid}"


def comments_collection(post_id: str) -> str:
    return f"{post_path(post_id)}/{COMMENTS_COLLECTION}"


def post_from_snapshot(snapshot: DocumentSnapshot) -> Post:
    return from_document(Post, snapshot.id, snapshot.to_dict())


def attach_authors(store: DocumentStore, posts: list[Post]) -> list[Post]:
    authors = get_profiles(store, [p.author_id for p in posts])
    for post in posts:
        post.author = authors.get(post.author_id)
    return posts


def create_post(
    store: DocumentStore,
    author_uid: str,
    caption: str,
    image: Optional[Upload] = None,
    storage: Optional[StorageClient] = None,
) -> Post:
    caption = caption or ""
    if not caption.strip():
        raise ValidationError("Post content cannot be empty.")
    if len(caption) > CAPTION_MAX_LENGTH:
        raise ValidationError("Post is too long.")

    post_id = new_document_id()
    data = {
        "authorId": author_uid,
        "caption": caption,
        "likeCount": 0,
        "commentCount": 0,
        "createdAt": SERVER_TIMESTAMP,
    }
    if image is not None:
        if storage is None:
            raise ValueError("A storage client is required to upload an image")
        data["imageUrl"] = upload_image(
            storage, f"{POSTS_COLLECTION}/{author_uid}/{post_id}", image
        )
    store.set(post_path(post_id), data)
    logger.info("User %s created post %s", author_uid, post_id)
    return get_post(store, post_id)


def get_post(store: DocumentStore, post_id: str) -> Post:
    snapshot = store.get(post_path(post_id))
    if not snapshot.exists:
        raise NotFoundError("Post not found.")
    return attach_authors(store, [post_from_snapshot(snapshot)])[0]


def list_user_posts(store: DocumentStore, uid: str) -> list[Post]:
    query = (
        Query(POSTS_COLLECTION)
        .where("authorId", "==", uid)
        .order_by("createdAt", DESCENDING)
    )
    return attach_authors(store, [post_from_snapshot(s) for s in store.query(query)])


def _set_like(
    store: DocumentStore, uid: str, post_id: str, desired: Optional[bool]
) -> bool:
    path = post_path(post_id)
    record = like_path(post_id, uid)

    def _apply(transaction: Transaction) -> bool:
        post = transaction.get(path)
        if not post.exists:
            raise NotFoundError("Post does not exist!")
        was_liked = transaction.get(record).exists
        now_liked = (not was_liked) if desired is None else desired

        delta = transition_delta(was_liked, now_liked)
        if delta == 0:
            return now_liked
        if now_liked:
            transaction.set(record, {"userId": uid, "createdAt": SERVER_TIMESTAMP})
        else:
            transaction.delete(record)
        apply_deltas(transaction, {path: post}, [CounterDelta(path, "likeCount", delta)])

        author_id = post.get("authorId")
        if now_liked and author_id and author_id != uid:
            add_notification(
                transaction, author_id, uid, NotificationType.LIKE, post_id=post_id
            )
        return now_liked

    return store.run_transaction(_apply)


def set_like(store: DocumentStore, uid: str, post_id: str, liked: bool) -> bool:
    return _set_like(store, uid, post_id, liked)


def toggle_like(store: DocumentStore, uid: str, post_id: str) -> bool:
    return _set_like(store, uid, post_id, None)


def is_liked(store: DocumentStore, uid: str, post_id: str) -> bool:
    return store.get(like_path(post_id, uid)).exists


def add_comment(store: DocumentStore, uid: str, post_id: str, text: str) -> Comment:
    text = (text or "").strip()
    if not text:
        raise ValidationError("Comment cannot be empty.")

    path = post_path(post_id)
    comment_id = new_document_id()
    comment_path = f"{comments_collection(post_id)}/{comment_id}"

    def _apply(transaction: Transaction) -> None:
        post = transaction.get(path)
        if not post.exists:
            raise NotFoundError("Post does not exist!")
        if post.get("commentingDisabled", False):
            raise PermissionDeniedError("Commenting is disabled for this post.")

        apply_deltas(transaction, {path: post}, [CounterDelta(path, "commentCount", 1)])
        transaction.set(
            comment_path,
            {
                "authorId": uid,
                "text": text,
                "createdAt": SERVER_TIMESTAMP,
                "postId": post_id,
            },
        )
        author_id = post.get("authorId")
        if author_id and author_id != uid:
            add_notification(
                transaction, author_id, uid, NotificationType.COMMENT, post_id=post_id
            )

    store.run_transaction(_apply)
    comment = from_document(Comment, comment_id, store.get(comment_path).to_dict())
    comment.author = get_profiles(store, [uid]).get(uid)
    return comment


def _comments_from(store: DocumentStore, snapshots: list[DocumentSnapshot]) -> list[Comment]:
    comments = [from_document(Comment, s.id, s.to_dict()) for s in snapshots]
    authors = get_profiles(store, [c.author_id for c in comments])
    resolved = []
    for comment in comments:
        comment.author = authors.get(comment.author_id)
        if comment.author is not None:
            resolved.append(comment)
    return resolved


def _comments_query(post_id: str) -> Query:
    return Query(comments_collection(post_id)).order_by("createdAt", ASCENDING)


def list_comments(store: DocumentStore, post_id: str) -> list[Comment]:
    """Oldest first; comments whose author no longer exists are left out."""
    return _comments_from(store, store.query(_comments_query(post_id)))


def list_user_comments(store: DocumentStore, uid: str) -> list[Comment]:
    """
    Every comment `uid` has written, newest first, paired with its post.
    Comments on deleted posts are left out.
    """
    query = (
        Query.collection_group(COMMENTS_COLLECTION)
        .where("authorId", "==", uid)
        .order_by("createdAt", DESCENDING)
    )
    comments = [from_document(Comment, s.id, s.to_dict()) for s in store.query(query)]
    posts: dict[str, Optional[Post]] = {}
    resolved = []
    for comment in comments:
        if comment.post_id not in posts:
            snapshot = store.get(post_path(comment.post_id))
            posts[comment.post_id] = post_from_snapshot(snapshot) if snapshot.exists else None
        comment.post = posts[comment.post_id]
        if comment.post is not None:
            resolved.append(comment)
    return resolved


def watch_post(
    store: DocumentStore, post_id: str, callback: Callable[[Optional[Post]], None]
):
    def _on_snapshot(snapshot: DocumentSnapshot) -> None:
        callback(post_from_snapshot(snapshot) if snapshot.exists else None)

    return store.watch_document(post_path(post_id), _on_snapshot)


def watch_comments(
    store: DocumentStore, post_id: str, callback: Callable[[list[Comment]], None]
):
    return store.watch_query(
        _comments_query(post_id),
        lambda snapshots: callback(_comments_from(store, snapshots)),
    )
