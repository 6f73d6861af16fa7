"""
Stories: short-lived posts that expire 24 hours after creation.

Expired stories are never deleted; every read filters on `expiresAt`.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from aura.errors import ValidationError
from aura.feed import feed_author_ids
from aura.profiles import chunked, get_profiles
from aura.storage import StorageClient, Upload, upload_image
from aura.store import DESCENDING, IN_FILTER_LIMIT, DocumentStore, Query, new_document_id
from shared.constants import STORY_LIFETIME_HOURS
from shared.firebase_constants import STORIES_COLLECTION
from shared.types import Story, from_document

logger = logging.getLogger(__name__)


def create_story(
    store: DocumentStore,
    uid: str,
    text_content: Optional[str] = None,
    image: Optional[Upload] = None,
    storage: Optional[StorageClient] = None,
    now: Optional[datetime] = None,
) -> Story:
    text_content = (text_content or "").strip()
    if not text_content and image is None:
        raise ValidationError("A story needs text or an image.")

    created_at = now or datetime.now(timezone.utc)
    story_id = new_document_id()
    data = {
        "authorId": uid,
        "createdAt": created_at,
        "expiresAt": created_at + timedelta(hours=STORY_LIFETIME_HOURS),
    }
    if text_content:
        data["textContent"] = text_content
    if image is not None:
        if storage is None:
            raise ValueError("A storage client is required to upload an image")
        data["imageUrl"] = upload_image(storage, f"{STORIES_COLLECTION}/{uid}/{story_id}", image)

    store.set(f"{STORIES_COLLECTION}/{story_id}", data)
    logger.info("User %s posted story %s", uid, story_id)
    return from_document(Story, story_id, data)


def list_active_stories(
    store: DocumentStore, uid: str, now: Optional[datetime] = None
) -> list[Story]:
    """
    The latest unexpired story of each followed user (and of `uid`), latest
    expiry first. Stories whose author no longer exists are left out.
    """
    now = now or datetime.now(timezone.utc)
    snapshots = []
    for chunk in chunked(feed_author_ids(store, uid), IN_FILTER_LIMIT):
        query = (
            Query(STORIES_COLLECTION)
            .where("authorId", "in", chunk)
            .where("expiresAt", ">", now)
            .order_by("expiresAt", DESCENDING)
        )
        snapshots.extend(store.query(query))
    snapshots.sort(key=lambda s: (s.get("expiresAt"), s.id), reverse=True)

    latest: dict[str, Story] = {}
    for snapshot in snapshots:
        story = from_document(Story, snapshot.id, snapshot.to_dict())
        latest.setdefault(story.author_id, story)

    authors = get_profiles(store, latest.keys())
    stories = []
    for story in latest.values():
        story.author = authors.get(story.author_id)
        if story.author is not None:
            stories.append(story)
    return stories
