"""
Follow relationships.

A follow is stored twice, as `users/{a}/following/{b}` and
`users/{b}/followers/{a}`. Both edges and both counters change together in
one transaction, keyed off the follower-side edge read in that transaction.
"""

from __future__ import annotations

import logging
from typing import Optional

from aura.counters import CounterDelta, apply_deltas, transition_delta
from aura.errors import NotFoundError, ValidationError
from aura.notifications import add_notification
from aura.profiles import user_path
from aura.store import SERVER_TIMESTAMP, DocumentStore, Transaction
from shared.firebase_constants import FOLLOWERS_COLLECTION, FOLLOWING_COLLECTION
from shared.types import NotificationType

logger = logging.getLogger(__name__)


def following_path(actor_uid: str, target_uid: str) -> str:
    return f"{user_path(actor_uid)}/{FOLLOWING_COLLECTION}/{target_uid}"


def follower_path(target_uid: str, actor_uid: str) -> str:
    return f"{user_path(target_uid)}/{FOLLOWERS_COLLECTION}/{actor_uid}"


def _set_follow(
    store: DocumentStore, actor_uid: str, target_uid: str, desired: Optional[bool]
) -> bool:
    """
    Brings the edge to `desired`, or flips it when `desired` is None. The
    current state is whatever the transaction reads, so repeating a call with
    the same desired state is a no-op. Returns the resulting state.
    """
    if actor_uid == target_uid:
        raise ValidationError("You cannot follow yourself.")

    actor_path = user_path(actor_uid)
    target_path = user_path(target_uid)
    out_edge = following_path(actor_uid, target_uid)
    in_edge = follower_path(target_uid, actor_uid)

    def _apply(transaction: Transaction) -> bool:
        actor = transaction.get(actor_path)
        target = transaction.get(target_path)
        if not actor.exists or not target.exists:
            raise NotFoundError("User not found.")
        was_following = transaction.get(out_edge).exists
        now_following = (not was_following) if desired is None else desired

        delta = transition_delta(was_following, now_following)
        if delta == 0:
            return now_following

        if now_following:
            transaction.set(out_edge, {"userId": target_uid, "createdAt": SERVER_TIMESTAMP})
            transaction.set(in_edge, {"userId": actor_uid, "createdAt": SERVER_TIMESTAMP})
        else:
            transaction.delete(out_edge)
            transaction.delete(in_edge)

        apply_deltas(
            transaction,
            {actor_path: actor, target_path: target},
            [
                CounterDelta(actor_path, "followingCount", delta),
                CounterDelta(target_path, "followersCount", delta),
            ],
        )
        if now_following:
            add_notification(transaction, target_uid, actor_uid, NotificationType.FOLLOW)
        return now_following

    state = store.run_transaction(_apply)
    logger.info("%s %s %s", actor_uid, "follows" if state else "does not follow", target_uid)
    return state


def follow(store: DocumentStore, actor_uid: str, target_uid: str) -> bool:
    return _set_follow(store, actor_uid, target_uid, True)


def unfollow(store: DocumentStore, actor_uid: str, target_uid: str) -> bool:
    return _set_follow(store, actor_uid, target_uid, False)


def toggle_follow(store: DocumentStore, actor_uid: str, target_uid: str) -> bool:
    return _set_follow(store, actor_uid, target_uid, None)


def is_following(store: DocumentStore, actor_uid: str, target_uid: str) -> bool:
    return store.get(following_path(actor_uid, target_uid)).exists
