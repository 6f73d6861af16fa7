"""
Cloud Firestore adapter for the document store interface.

Paths, queries and transactions map one-to-one onto the Firestore client;
live subscriptions use `on_snapshot` listeners instead of the change bus.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from firebase_admin import firestore
from google.api_core import exceptions
from google.cloud.firestore_v1 import SERVER_TIMESTAMP as FIRESTORE_SERVER_TIMESTAMP
from google.cloud.firestore_v1.base_query import FieldFilter as FirestoreFieldFilter

from aura.errors import NotFoundError, TransactionConflictError
from aura.store import (
    DEFAULT_MAX_ATTEMPTS,
    DESCENDING,
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    Query,
    _check_path,
    new_document_id,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_OPERATOR_NAMES = {"array-contains": "array_contains"}


def _to_firestore(data: Any) -> Any:
    if data is SERVER_TIMESTAMP:
        return FIRESTORE_SERVER_TIMESTAMP
    if isinstance(data, dict):
        return {k: _to_firestore(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_to_firestore(v) for v in data]
    return data


def _snapshot(path: str, doc) -> DocumentSnapshot:
    return DocumentSnapshot(path, doc.to_dict() if doc.exists else None)


class _FirestoreTransaction:
    def __init__(self, client, transaction):
        self._client = client
        self._transaction = transaction

    def get(self, path: str) -> DocumentSnapshot:
        _check_path(path, document=True)
        doc = self._client.document(path).get(transaction=self._transaction)
        return _snapshot(path, doc)

    def set(self, path: str, data: dict, merge: bool = False) -> None:
        self._transaction.set(self._client.document(path), _to_firestore(data), merge=merge)

    def update(self, path: str, data: dict) -> None:
        self._transaction.update(self._client.document(path), _to_firestore(data))

    def delete(self, path: str) -> None:
        self._transaction.delete(self._client.document(path))


class _SnapshotSubscription:
    def __init__(self, watch):
        self._watch = watch

    def unsubscribe(self) -> None:
        self._watch.unsubscribe()


class FirestoreDocumentStore:
    def __init__(self, client=None):
        self.client = client or firestore.client()

    def get(self, path: str) -> DocumentSnapshot:
        _check_path(path, document=True)
        return _snapshot(path, self.client.document(path).get())

    def set(self, path: str, data: dict, merge: bool = False) -> None:
        _check_path(path, document=True)
        self.client.document(path).set(_to_firestore(data), merge=merge)

    def update(self, path: str, data: dict) -> None:
        _check_path(path, document=True)
        try:
            self.client.document(path).update(_to_firestore(data))
        except exceptions.NotFound as exc:
            raise NotFoundError(f"No document to update: {path}") from exc

    def delete(self, path: str) -> None:
        _check_path(path, document=True)
        self.client.document(path).delete()

    def add(self, collection: str, data: dict) -> str:
        _check_path(collection, document=False)
        doc_id = new_document_id()
        self.client.collection(collection).document(doc_id).set(_to_firestore(data))
        return doc_id

    def _build(self, query: Query):
        if query.all_descendants:
            native = self.client.collection_group(query.collection)
        else:
            native = self.client.collection(query.collection)
        for flt in query.filters:
            op = _OPERATOR_NAMES.get(flt.op, flt.op)
            native = native.where(filter=FirestoreFieldFilter(flt.field, op, flt.value))
        for field_name, direction in query.orders:
            native = native.order_by(
                field_name,
                direction=firestore.Query.DESCENDING
                if direction == DESCENDING
                else firestore.Query.ASCENDING,
            )
        if query.limit_to is not None:
            native = native.limit(query.limit_to)
        return native

    def query(self, query: Query) -> list[DocumentSnapshot]:
        return [
            DocumentSnapshot(doc.reference.path, doc.to_dict())
            for doc in self._build(query).stream()
        ]

    def run_transaction(
        self, fn: Callable[[Any], T], max_attempts: int = DEFAULT_MAX_ATTEMPTS
    ) -> T:
        @firestore.transactional
        def _run(transaction):
            return fn(_FirestoreTransaction(self.client, transaction))

        try:
            return _run(self.client.transaction(max_attempts=max_attempts))
        except ValueError as exc:
            if str(exc).startswith("Failed to commit transaction"):
                logger.info("Transaction gave up after %d attempts", max_attempts)
                raise TransactionConflictError(
                    f"Transaction failed after {max_attempts} attempts due to concurrent updates"
                ) from exc
            raise

    def watch_document(
        self, path: str, callback: Callable[[DocumentSnapshot], None]
    ) -> _SnapshotSubscription:
        _check_path(path, document=True)

        def _on_snapshot(docs, changes, read_time):
            doc = docs[0] if docs else None
            callback(DocumentSnapshot(path, doc.to_dict() if doc and doc.exists else None))

        return _SnapshotSubscription(self.client.document(path).on_snapshot(_on_snapshot))

    def watch_query(
        self, query: Query, callback: Callable[[list[DocumentSnapshot]], None]
    ) -> _SnapshotSubscription:
        def _on_snapshot(docs, changes, read_time):
            callback([DocumentSnapshot(doc.reference.path, doc.to_dict()) for doc in docs])

        return _SnapshotSubscription(self._build(query).on_snapshot(_on_snapshot))

