"""
SQLAlchemy-backed document store.

Documents live in a single `documents` table keyed by path, with the JSON
payload and a version counter used for optimistic transactions. Commits are
compare-and-swap statements on that counter. Accepts any SQLAlchemy URL (e.g.,
Postgres, or SQLite for tests). Filtering and ordering run in Python over the
rows of the queried collection.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from sqlalchemy import (
    JSON,
    Column,
    Connection,
    Float,
    Integer,
    String,
    create_engine,
    delete,
    insert,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from aura.changes import ChangeBus, DocumentChange
from aura.store import (
    Query,
    StaleReadError,
    VersionedDocumentStore,
    Write,
    apply_write,
    parent_collection,
    summarize_changes,
)

_DATETIME_TAG = "__datetime__"


def encode_value(value: Any) -> Any:
    """Makes a document JSON-safe, tagging datetimes so they round-trip."""
    if isinstance(value, datetime):
        return {_DATETIME_TAG: value.isoformat()}
    if isinstance(value, dict):
        return {k: encode_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [encode_value(v) for v in value]
    return value


def decode_value(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value) == {_DATETIME_TAG}:
            return datetime.fromisoformat(value[_DATETIME_TAG])
        return {k: decode_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode_value(v) for v in value]
    return value


Base = declarative_base()


class DocumentRow(Base):
    __tablename__ = "documents"

    path = Column(String, primary_key=True)
    collection = Column(String, nullable=False, index=True)
    collection_id = Column(String, nullable=False, index=True)
    data = Column(JSON, nullable=False)
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(Float, nullable=False)


documents = DocumentRow.__table__


class SqlDocumentStore(VersionedDocumentStore):
    def __init__(self, database_url: str, bus: Optional[ChangeBus] = None):
        if not database_url:
            raise ValueError("A database URL is required for SqlDocumentStore")
        super().__init__(bus)
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _read(self, path: str) -> tuple[Optional[dict], int]:
        with self.Session() as session:
            row = session.get(DocumentRow, path)
            if not row:
                return None, 0
            return decode_value(row.data), row.version

    def _scan(self, query: Query) -> Iterable[tuple[str, dict]]:
        with self.Session() as session:
            if query.all_descendants:
                stmt = select(DocumentRow).where(
                    DocumentRow.collection_id == query.collection
                )
            else:
                stmt = select(DocumentRow).where(
                    DocumentRow.collection == query.collection
                )
            rows = session.execute(stmt).scalars().all()
            return [(row.path, decode_value(row.data)) for row in rows]

    def _commit(
        self, writes: list[Write], expected_versions: dict[str, int]
    ) -> list[DocumentChange]:
        now = datetime.now(timezone.utc)
        try:
            with self.engine.begin() as conn:
                return self._apply_writes(conn, writes, expected_versions, now)
        except IntegrityError as exc:
            # Another writer created the same document first.
            raise StaleReadError(str(exc)) from exc

    def _apply_writes(
        self,
        conn: Connection,
        writes: list[Write],
        expected_versions: dict[str, int],
        now: datetime,
    ) -> list[DocumentChange]:
        paths = set(expected_versions) | {write.path for write in writes}
        stmt = (
            select(documents.c.path, documents.c.data, documents.c.version)
            .where(documents.c.path.in_(paths))
            .with_for_update()
        )
        current = {row.path: row for row in conn.execute(stmt)}
        versions = {
            path: current[path].version if path in current else 0 for path in paths
        }
        for path, version in expected_versions.items():
            if versions[path] != version:
                raise StaleReadError(path)

        before: dict[str, Optional[dict]] = {}
        after: dict[str, Optional[dict]] = {}
        for write in writes:
            if write.path not in before:
                row = current.get(write.path)
                before[write.path] = decode_value(row.data) if row else None
            current_data = after.get(write.path, before[write.path])
            after[write.path] = apply_write(current_data, write, now)

        # Writes only match the version that was read.
        for path, version in expected_versions.items():
            if path not in after and version:
                _swap(
                    conn,
                    update(documents)
                    .where(documents.c.path == path, documents.c.version == version)
                    .values(updated_at=time.time()),
                    path,
                )

        for path, data in after.items():
            version = versions[path]
            if data is None:
                if version:
                    _swap(
                        conn,
                        delete(documents).where(
                            documents.c.path == path, documents.c.version == version
                        ),
                        path,
                    )
            elif not version:
                collection = parent_collection(path)
                conn.execute(
                    insert(documents).values(
                        path=path,
                        collection=collection,
                        collection_id=collection.rsplit("/", 1)[-1],
                        data=encode_value(data),
                        version=1,
                        updated_at=time.time(),
                    )
                )
            else:
                _swap(
                    conn,
                    update(documents)
                    .where(documents.c.path == path, documents.c.version == version)
                    .values(
                        data=encode_value(data),
                        version=version + 1,
                        updated_at=time.time(),
                    ),
                    path,
                )
        return summarize_changes(before, after)


def _swap(conn: Connection, stmt, path: str) -> None:
    if conn.execute(stmt).rowcount != 1:
        raise StaleReadError(path)
