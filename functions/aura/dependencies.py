"""
Dependency wiring for the FastAPI app and the push worker.
"""

from __future__ import annotations

import logging
from typing import Optional

import firebase_admin

from aura.auth import AuthClient, FirebaseAuthClient, InMemoryAuthClient
from aura.changes import ChangeBus, InMemoryChangeBus, RedisChangeBus, Subscription
from aura.config import get_settings
from aura.push import FcmPushGateway, InMemoryPushGateway, PushGateway
from aura.queue import InMemoryPushQueue, PushQueue, RedisPushQueue
from aura.storage import InMemoryStorageClient, S3StorageClient, StorageClient
from aura.store import DocumentStore, InMemoryDocumentStore

logger = logging.getLogger(__name__)

_store: DocumentStore | None = None
_change_bus: ChangeBus | None = None
_auth_client: AuthClient | None = None
_storage_client: StorageClient | None = None
_push_gateway: PushGateway | None = None
_push_queue: PushQueue | None = None
_push_trigger: Subscription | None = None


def _ensure_firebase_app() -> None:
    try:
        firebase_admin.get_app()
    except ValueError:
        settings = get_settings()
        options = {"projectId": settings.firebase_project_id} if settings.firebase_project_id else None
        firebase_admin.initialize_app(options=options)


def get_change_bus() -> ChangeBus:
    global _change_bus
    if _change_bus:
        return _change_bus

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.redis_url:
        _change_bus = InMemoryChangeBus()
    else:
        _change_bus = RedisChangeBus(
            url=settings.redis_url, channel=settings.redis_changes_channel
        )
    return _change_bus


def get_store() -> DocumentStore:
    """
    Return a singleton document store so state persists across requests.
    """
    global _store
    if _store:
        return _store

    settings = get_settings()
    if settings.use_in_memory_backends or settings.store_backend == "memory":
        _store = InMemoryDocumentStore(bus=get_change_bus())
    elif settings.store_backend == "sql":
        from aura.sql_store import SqlDocumentStore

        _store = SqlDocumentStore(settings.database_url, bus=get_change_bus())
    else:
        from aura.firestore_store import FirestoreDocumentStore

        _ensure_firebase_app()
        _store = FirestoreDocumentStore()
    logger.info("Document store: %s", _store.__class__.__name__)
    return _store


def get_auth_client() -> AuthClient:
    global _auth_client
    if _auth_client:
        return _auth_client

    settings = get_settings()
    if settings.use_in_memory_backends or settings.auth_backend == "memory":
        _auth_client = InMemoryAuthClient()
    else:
        _ensure_firebase_app()
        _auth_client = FirebaseAuthClient(web_api_key=settings.firebase_web_api_key)
    return _auth_client


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.s3_bucket:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = S3StorageClient(
            bucket=settings.s3_bucket,
            region=settings.s3_region or "",
            endpoint=settings.s3_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            public_base_url=settings.s3_public_base_url,
        )
    return _storage_client


def get_push_gateway() -> PushGateway:
    global _push_gateway
    if _push_gateway:
        return _push_gateway

    settings = get_settings()
    if settings.use_in_memory_backends or settings.push_backend == "memory":
        _push_gateway = InMemoryPushGateway()
    else:
        _ensure_firebase_app()
        _push_gateway = FcmPushGateway()
    return _push_gateway


def get_push_queue() -> PushQueue:
    """
    Return a singleton queue client for handing notifications to the push worker.
    """
    global _push_queue
    if _push_queue:
        return _push_queue

    settings = get_settings()
    if settings.redis_url and not settings.use_in_memory_backends:
        _push_queue = RedisPushQueue(url=settings.redis_url, queue_key=settings.redis_queue_key)
    else:
        _push_queue = InMemoryPushQueue()
    return _push_queue


def wire_push_trigger() -> Optional[Subscription]:
    """
    Connects notification creation to the push queue for stores that publish
    change events. Firestore deployments use the Cloud Functions trigger in
    `main.py` instead. With an in-memory queue the worker runs inline.
    """
    global _push_trigger
    if _push_trigger:
        return _push_trigger

    store = get_store()
    bus = getattr(store, "bus", None)
    if bus is None:
        return None

    from aura.triggers import register_push_trigger
    from aura.worker import drain

    queue = get_push_queue()
    on_enqueue = None
    if isinstance(queue, InMemoryPushQueue):
        def on_enqueue(_path: str) -> None:
            drain(store=store, gateway=get_push_gateway(), queue=queue)

    _push_trigger = register_push_trigger(bus, queue, on_enqueue=on_enqueue)
    return _push_trigger


def reset_clients() -> None:
    """Drops every singleton (used by tests to start from a clean slate)."""
    global _store, _change_bus, _auth_client, _storage_client, _push_gateway, _push_queue, _push_trigger
    if _push_trigger:
        _push_trigger.unsubscribe()
    _store = None
    _change_bus = None
    _auth_client = None
    _storage_client = None
    _push_gateway = None
    _push_queue = None
    _push_trigger = None
