"""
Counter maintenance.

Counters are denormalized totals of existence records (likes, follow edges,
comments). They only change inside the transaction that changes the
underlying record, by a delta derived from what that transaction read, and
never drop below zero.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Mapping

from aura.store import DocumentSnapshot, DocumentStore, Query, Transaction
from shared.firebase_constants import (
    COMMENTS_COLLECTION,
    FOLLOWERS_COLLECTION,
    FOLLOWING_COLLECTION,
    LIKES_COLLECTION,
    POSTS_COLLECTION,
    USERS_COLLECTION,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CounterDelta:
    path: str
    field: str
    delta: int


def transition_delta(was_present: bool, now_present: bool) -> int:
    """+1 for absent -> present, -1 for present -> absent, 0 otherwise."""
    return int(now_present) - int(was_present)


def apply_deltas(
    transaction: Transaction,
    snapshots: Mapping[str, DocumentSnapshot],
    deltas: Iterable[CounterDelta],
) -> None:
    """
    Writes `max(0, current + delta)` for each delta. `snapshots` must hold the
    documents as read earlier in the same transaction.
    """
    totals: dict[tuple[str, str], int] = {}
    for delta in deltas:
        if delta.delta:
            key = (delta.path, delta.field)
            totals[key] = totals.get(key, 0) + delta.delta

    updates: dict[str, dict] = {}
    for (path, field_name), delta in totals.items():
        snapshot = snapshots[path]
        current = snapshot.get(field_name, 0) or 0
        updates.setdefault(path, {})[field_name] = max(0, current + delta)

    for path, fields in updates.items():
        transaction.update(path, fields)


def _count(store: DocumentStore, collection: str) -> int:
    return len(store.query(Query(collection)))


def recount_user(store: DocumentStore, uid: str, apply: bool = False) -> dict:
    """
    Recomputes a user's follow counters from the edge records. Returns the
    fields that disagree with the stored profile (and fixes them if `apply`).
    """
    user_path = f"{USERS_COLLECTION}/{uid}"
    actual = {
        "followersCount": _count(store, f"{user_path}/{FOLLOWERS_COLLECTION}"),
        "followingCount": _count(store, f"{user_path}/{FOLLOWING_COLLECTION}"),
    }
    return _reconcile(store, user_path, actual, apply)


def recount_post(store: DocumentStore, post_id: str, apply: bool = False) -> dict:
    post_path = f"{POSTS_COLLECTION}/{post_id}"
    actual = {
        "likeCount": _count(store, f"{post_path}/{LIKES_COLLECTION}"),
        "commentCount": _count(store, f"{post_path}/{COMMENTS_COLLECTION}"),
    }
    return _reconcile(store, post_path, actual, apply)


def _reconcile(store: DocumentStore, path: str, actual: dict, apply: bool) -> dict:
    snapshot = store.get(path)
    if not snapshot.exists:
        return {}
    drift = {k: v for k, v in actual.items() if snapshot.get(k, 0) != v}
    if drift:
        logger.warning("Counter drift on %s: %s", path, drift)
        if apply:
            store.update(path, drift)
    return drift
