"""
Document store abstraction and an in-memory implementation.

Documents are addressed by slash-separated paths with an even number of
segments (`posts/abc/likes/uid`); collections have an odd number. The
interface mirrors what the application needs from a hosted document
database: point reads and writes, filtered/ordered queries, multi-document
transactions with optimistic retry, and live subscriptions.
"""

from __future__ import annotations

import copy
import logging
import secrets
import string
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional, Protocol, TypeVar

from aura.changes import ChangeBus, ChangeKind, DocumentChange, InMemoryChangeBus
from aura.errors import NotFoundError, TransactionConflictError
from aura.live import LiveQueryRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Cap on the number of values accepted by an "in" filter.
IN_FILTER_LIMIT = 30
DEFAULT_MAX_ATTEMPTS = 5

ASCENDING = "ASCENDING"
DESCENDING = "DESCENDING"

_OPERATORS = {"==", "!=", "<", "<=", ">", ">=", "in", "not-in", "array-contains"}
_AUTO_ID_ALPHABET = string.ascii_letters + string.digits


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


# Replaced with the commit time when the write is applied.
SERVER_TIMESTAMP = _ServerTimestamp()


def new_document_id() -> str:
    """Returns a 20-character random id, the same shape as Firestore auto ids."""
    return "".join(secrets.choice(_AUTO_ID_ALPHABET) for _ in range(20))


def document_path(*segments: str) -> str:
    path = "/".join(segments)
    _check_path(path, document=True)
    return path


def collection_path(*segments: str) -> str:
    path = "/".join(segments)
    _check_path(path, document=False)
    return path


def _check_path(path: str, *, document: bool) -> None:
    parts = path.split("/")
    if any(not part for part in parts):
        raise ValueError(f"Invalid path: {path!r}")
    if (len(parts) % 2 == 0) != document:
        kind = "document" if document else "collection"
        raise ValueError(f"Not a {kind} path: {path!r}")


def parent_collection(path: str) -> str:
    return path.rsplit("/", 1)[0]


def parent_document(path: str) -> Optional[str]:
    """Returns the document that owns the collection holding `path`, if any."""
    parent = parent_collection(path)
    if "/" not in parent:
        return None
    return parent.rsplit("/", 1)[0]


@dataclass(frozen=True)
class DocumentSnapshot:
    path: str
    data: Optional[dict] = None

    @property
    def id(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def exists(self) -> bool:
        return self.data is not None

    def to_dict(self) -> Optional[dict]:
        return copy.deepcopy(self.data) if self.data is not None else None

    def get(self, field_name: str, default: Any = None) -> Any:
        if self.data is None:
            return default
        return self.data.get(field_name, default)


@dataclass(frozen=True)
class FieldFilter:
    field: str
    op: str
    value: Any


@dataclass(frozen=True)
class Query:
    """
    Immutable query description. `collection` is a collection path, or a
    bare collection id when `all_descendants` is set (collection group).
    """

    collection: str
    filters: tuple[FieldFilter, ...] = ()
    orders: tuple[tuple[str, str], ...] = ()
    limit_to: Optional[int] = None
    all_descendants: bool = False

    @classmethod
    def collection_group(cls, collection_id: str) -> "Query":
        return cls(collection=collection_id, all_descendants=True)

    def where(self, field_name: str, op: str, value: Any) -> "Query":
        if op not in _OPERATORS:
            raise ValueError(f"Unsupported operator: {op}")
        if op in ("in", "not-in"):
            value = list(value)
            if not value:
                raise ValueError(f"'{op}' filter requires at least one value")
            if len(value) > IN_FILTER_LIMIT:
                raise ValueError(
                    f"'{op}' filter supports at most {IN_FILTER_LIMIT} values, got {len(value)}"
                )
        return replace(self, filters=self.filters + (FieldFilter(field_name, op, value),))

    def order_by(self, field_name: str, direction: str = ASCENDING) -> "Query":
        if direction not in (ASCENDING, DESCENDING):
            raise ValueError(f"Unsupported direction: {direction}")
        return replace(self, orders=self.orders + ((field_name, direction),))

    def limit(self, count: int) -> "Query":
        return replace(self, limit_to=count)

    def contains(self, path: str) -> bool:
        parent = parent_collection(path)
        if self.all_descendants:
            return parent.rsplit("/", 1)[-1] == self.collection
        return parent == self.collection


def _matches_filter(data: dict, flt: FieldFilter) -> bool:
    if flt.field not in data:
        return False
    value = data[flt.field]
    try:
        if flt.op == "==":
            return value == flt.value
        if flt.op == "!=":
            return value != flt.value
        if flt.op == "<":
            return value < flt.value
        if flt.op == "<=":
            return value <= flt.value
        if flt.op == ">":
            return value > flt.value
        if flt.op == ">=":
            return value >= flt.value
        if flt.op == "in":
            return value in flt.value
        if flt.op == "not-in":
            return value not in flt.value
        if flt.op == "array-contains":
            return isinstance(value, list) and flt.value in value
    except TypeError:
        # Mismatched types never match, as in a typed document database.
        return False
    return False


def run_query(query: Query, documents: Iterable[tuple[str, dict]]) -> list[DocumentSnapshot]:
    """Filters, orders and limits `(path, data)` pairs for stores without a query engine."""
    ordered_fields = [name for name, _ in query.orders]
    selected = [
        (path, data)
        for path, data in documents
        if query.contains(path)
        and all(_matches_filter(data, flt) for flt in query.filters)
        and all(name in data for name in ordered_fields)
    ]

    last_direction = query.orders[-1][1] if query.orders else ASCENDING
    selected.sort(key=lambda item: item[0].rsplit("/", 1)[-1], reverse=last_direction == DESCENDING)
    for name, direction in reversed(query.orders):
        selected.sort(key=lambda item: item[1][name], reverse=direction == DESCENDING)

    if query.limit_to is not None:
        selected = selected[: query.limit_to]
    return [DocumentSnapshot(path, copy.deepcopy(data)) for path, data in selected]


def resolve_server_timestamps(data: Any, now: datetime) -> Any:
    if data is SERVER_TIMESTAMP:
        return now
    if isinstance(data, dict):
        return {k: resolve_server_timestamps(v, now) for k, v in data.items()}
    if isinstance(data, list):
        return [resolve_server_timestamps(v, now) for v in data]
    return data


@dataclass(frozen=True)
class Write:
    kind: str  # "set" | "update" | "delete"
    path: str
    data: Optional[dict] = None
    merge: bool = False


def apply_write(current: Optional[dict], write: Write, now: datetime) -> Optional[dict]:
    """Returns the new document contents after `write` (None when deleted)."""
    if write.kind == "delete":
        return None
    payload = resolve_server_timestamps(copy.deepcopy(write.data or {}), now)
    if write.kind == "set":
        if write.merge and current is not None:
            return {**current, **payload}
        return payload
    if write.kind == "update":
        if current is None:
            raise NotFoundError(f"No document to update: {write.path}")
        return {**current, **payload}
    raise ValueError(f"Unknown write kind: {write.kind}")


class Transaction(Protocol):
    def get(self, path: str) -> DocumentSnapshot:
        ...

    def set(self, path: str, data: dict, merge: bool = False) -> None:
        ...

    def update(self, path: str, data: dict) -> None:
        ...

    def delete(self, path: str) -> None:
        ...


class DocumentStore(Protocol):
    """Interface for document database access."""

    def get(self, path: str) -> DocumentSnapshot:
        ...

    def set(self, path: str, data: dict, merge: bool = False) -> None:
        ...

    def update(self, path: str, data: dict) -> None:
        ...

    def delete(self, path: str) -> None:
        ...

    def add(self, collection: str, data: dict) -> str:
        ...

    def query(self, query: Query) -> list[DocumentSnapshot]:
        ...

    def run_transaction(
        self, fn: Callable[[Transaction], T], max_attempts: int = DEFAULT_MAX_ATTEMPTS
    ) -> T:
        ...

    def watch_document(
        self, path: str, callback: Callable[[DocumentSnapshot], None]
    ):
        ...

    def watch_query(
        self, query: Query, callback: Callable[[list[DocumentSnapshot]], None]
    ):
        ...


class StaleReadError(Exception):
    """A document read inside a transaction changed before commit."""


class BufferedTransaction:
    """
    Records reads (with the version seen) and buffers writes until commit.
    Reads after the first write are rejected, as in Firestore.
    """

    def __init__(self, store: "VersionedDocumentStore"):
        self._store = store
        self.read_versions: dict[str, int] = {}
        self.writes: list[Write] = []

    def get(self, path: str) -> DocumentSnapshot:
        if self.writes:
            raise ValueError("Transaction reads must happen before writes")
        _check_path(path, document=True)
        data, version = self._store._read(path)
        self.read_versions.setdefault(path, version)
        return DocumentSnapshot(path, data)

    def set(self, path: str, data: dict, merge: bool = False) -> None:
        _check_path(path, document=True)
        self.writes.append(Write("set", path, data, merge))

    def update(self, path: str, data: dict) -> None:
        _check_path(path, document=True)
        self.writes.append(Write("update", path, data))

    def delete(self, path: str) -> None:
        _check_path(path, document=True)
        self.writes.append(Write("delete", path))


class VersionedDocumentStore:
    """
    Shared behaviour for stores that keep a version number per document and
    implement optimistic transactions themselves. Subclasses provide
    `_read`, `_scan` and `_commit`; changes are published on `bus` after
    every commit and drive live subscriptions.
    """

    def __init__(self, bus: Optional[ChangeBus] = None):
        self.bus = bus or InMemoryChangeBus()
        self._live = LiveQueryRegistry(self, self.bus)

    def _read(self, path: str) -> tuple[Optional[dict], int]:
        raise NotImplementedError

    def _scan(self, query: Query) -> Iterable[tuple[str, dict]]:
        raise NotImplementedError

    def _commit(
        self, writes: list[Write], expected_versions: dict[str, int]
    ) -> list[DocumentChange]:
        raise NotImplementedError

    def get(self, path: str) -> DocumentSnapshot:
        _check_path(path, document=True)
        data, _ = self._read(path)
        return DocumentSnapshot(path, data)

    # Single writes are one-write transactions.
    def set(self, path: str, data: dict, merge: bool = False) -> None:
        _check_path(path, document=True)
        self.run_transaction(lambda txn: txn.set(path, data, merge))

    def update(self, path: str, data: dict) -> None:
        _check_path(path, document=True)
        self.run_transaction(lambda txn: txn.update(path, data))

    def delete(self, path: str) -> None:
        _check_path(path, document=True)
        self.run_transaction(lambda txn: txn.delete(path))

    def add(self, collection: str, data: dict) -> str:
        _check_path(collection, document=False)
        doc_id = new_document_id()
        self.set(f"{collection}/{doc_id}", data)
        return doc_id

    def query(self, query: Query) -> list[DocumentSnapshot]:
        return run_query(query, self._scan(query))

    def run_transaction(
        self, fn: Callable[[Transaction], T], max_attempts: int = DEFAULT_MAX_ATTEMPTS
    ) -> T:
        for attempt in range(1, max_attempts + 1):
            transaction = BufferedTransaction(self)
            result = fn(transaction)
            try:
                self._commit_and_publish(transaction.writes, transaction.read_versions)
                return result
            except StaleReadError:
                logger.info(
                    "Transaction conflict on attempt %d/%d", attempt, max_attempts
                )
        raise TransactionConflictError(
            f"Transaction failed after {max_attempts} attempts due to concurrent updates"
        )

    def watch_document(self, path: str, callback: Callable[[DocumentSnapshot], None]):
        _check_path(path, document=True)
        return self._live.watch_document(path, callback)

    def watch_query(self, query: Query, callback: Callable[[list[DocumentSnapshot]], None]):
        return self._live.watch_query(query, callback)

    def _commit_and_publish(
        self, writes: list[Write], expected_versions: dict[str, int]
    ) -> None:
        if not writes:
            if expected_versions:
                # A read-only transaction still validates what it read.
                self._commit(writes, expected_versions)
            return
        changes = self._commit(writes, expected_versions)
        for change in changes:
            self.bus.publish(change)


def _change_kind(before: Optional[dict], after: Optional[dict]) -> Optional[ChangeKind]:
    if before is None and after is None:
        return None
    if before is None:
        return ChangeKind.CREATED
    if after is None:
        return ChangeKind.DELETED
    return ChangeKind.UPDATED


def summarize_changes(
    before: dict[str, Optional[dict]], after: dict[str, Optional[dict]]
) -> list[DocumentChange]:
    """One change event per document, comparing its state before and after a commit."""
    changes = []
    for path, new_data in after.items():
        kind = _change_kind(before.get(path), new_data)
        if kind is not None:
            changes.append(DocumentChange(kind=kind, path=path, data=copy.deepcopy(new_data)))
    return changes


@dataclass
class _StoredDocument:
    data: dict
    version: int


class InMemoryDocumentStore(VersionedDocumentStore):
    """Thread-safe in-memory document store for development and tests."""

    def __init__(self, bus: Optional[ChangeBus] = None):
        super().__init__(bus)
        self._docs: dict[str, _StoredDocument] = {}
        self._sequence = 0
        self._lock = threading.RLock()

    def _read(self, path: str) -> tuple[Optional[dict], int]:
        with self._lock:
            stored = self._docs.get(path)
            if stored is None:
                return None, 0
            return copy.deepcopy(stored.data), stored.version

    def _scan(self, query: Query) -> Iterable[tuple[str, dict]]:
        with self._lock:
            return [
                (path, copy.deepcopy(stored.data))
                for path, stored in self._docs.items()
                if query.contains(path)
            ]

    def _commit(
        self, writes: list[Write], expected_versions: dict[str, int]
    ) -> list[DocumentChange]:
        now = datetime.now(timezone.utc)
        with self._lock:
            for path, version in expected_versions.items():
                stored = self._docs.get(path)
                if (stored.version if stored else 0) != version:
                    raise StaleReadError(path)

            before: dict[str, Optional[dict]] = {}
            after: dict[str, Optional[dict]] = {}
            for write in writes:
                if write.path not in before:
                    stored = self._docs.get(write.path)
                    before[write.path] = stored.data if stored else None
                current = after.get(write.path, before[write.path])
                after[write.path] = apply_write(current, write, now)

            for path, data in after.items():
                if data is None:
                    self._docs.pop(path, None)
                else:
                    self._sequence += 1
                    self._docs[path] = _StoredDocument(data=data, version=self._sequence)
        return summarize_changes(before, after)
