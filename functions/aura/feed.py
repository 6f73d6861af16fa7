"""
Home feed assembly.

The document store caps "in" filters at 30 values, so the author set is
split into chunks, queried in parallel and merged client-side.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable

from aura.posts import attach_authors, post_from_snapshot
from aura.profiles import chunked, following_ids
from aura.store import DESCENDING, IN_FILTER_LIMIT, DocumentSnapshot, DocumentStore, Query
from shared.firebase_constants import POSTS_COLLECTION
from shared.types import Post

logger = logging.getLogger(__name__)

PER_CHUNK_LIMIT = 20
FEED_DISPLAY_LIMIT = 50
MAX_QUERY_WORKERS = 8


def feed_author_ids(store: DocumentStore, uid: str) -> list[str]:
    """Everyone `uid` follows, plus `uid` itself."""
    return list(dict.fromkeys([uid] + following_ids(store, uid)))


def _chunk_query(author_ids: list[str]) -> Query:
    return (
        Query(POSTS_COLLECTION)
        .where("authorId", "in", author_ids)
        .order_by("createdAt", DESCENDING)
        .limit(PER_CHUNK_LIMIT)
    )


def merge_posts(
    results: Iterable[list[DocumentSnapshot]], limit: int = FEED_DISPLAY_LIMIT
) -> list[DocumentSnapshot]:
    """
    Merges per-chunk results into one list ordered by (createdAt, id)
    descending. The output does not depend on the order of `results`.
    """
    seen: dict[str, DocumentSnapshot] = {}
    for snapshots in results:
        for snapshot in snapshots:
            seen[snapshot.path] = snapshot
    merged = sorted(
        seen.values(),
        key=lambda s: (s.get("createdAt"), s.id),
        reverse=True,
    )
    return merged[:limit]


def build_feed(store: DocumentStore, uid: str) -> list[Post]:
    author_ids = feed_author_ids(store, uid)
    chunks = chunked(author_ids, IN_FILTER_LIMIT)
    with ThreadPoolExecutor(max_workers=min(MAX_QUERY_WORKERS, len(chunks))) as pool:
        results = list(pool.map(lambda chunk: store.query(_chunk_query(chunk)), chunks))
    merged = merge_posts(results)
    logger.debug(
        "Feed for %s: %d authors, %d chunks, %d posts", uid, len(author_ids), len(chunks), len(merged)
    )
    return attach_authors(store, [post_from_snapshot(s) for s in merged])
