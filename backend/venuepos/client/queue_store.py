# Overview: Device-local durable storage for queued mutations (sqlite via SQLAlchemy Core).

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.pool import StaticPool

from venuepos.time_utils import utcnow
from .mutations import from_record, to_record


metadata = sa.MetaData()

mutation_queue = sa.Table(
    "mutation_queue",
    metadata,
    # AUTOINCREMENT so ids never get reused after the newest entry is removed
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("kind", sa.String(40), nullable=False),
    sa.Column("payload", sa.JSON, nullable=False),
    sa.Column("created_at", sa.DateTime, nullable=False),
    sqlite_autoincrement=True,
)


@dataclass(frozen=True)
class QueuedMutation:
    """
    One stored entry. `mutation` is None when the row could not be decoded
    (unknown kind or a payload that no longer fits); `decode_error` says why.
    """
    id: int
    mutation: object
    created_at: datetime
    kind_name: str
    decode_error: str | None = None

    @property
    def kind(self):
        return self.mutation.kind if self.mutation is not None else None


def _decode(row) -> QueuedMutation:
    try:
        mutation = from_record(row.kind, row.payload)
    except (ValueError, TypeError) as e:
        return QueuedMutation(
            id=row.id, mutation=None, created_at=row.created_at, kind_name=row.kind, decode_error=str(e)
        )
    return QueuedMutation(id=row.id, mutation=mutation, created_at=row.created_at, kind_name=row.kind)


class QueueStore:
    """
    Insertion-ordered mutation log in a local sqlite file.

    Survives process restarts; entries leave only through remove().
    """

    def __init__(self, path: str):
        self.path = path
        if path == ":memory:":
            self._engine = sa.create_engine(
                "sqlite://",
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        else:
            self._engine = sa.create_engine(f"sqlite:///{path}")
        metadata.create_all(self._engine)

    def append(self, mutation) -> int:
        kind, payload = to_record(mutation)
        with self._engine.begin() as conn:
            result = conn.execute(
                mutation_queue.insert().values(kind=kind, payload=payload, created_at=utcnow())
            )
            return result.inserted_primary_key[0]

    def list_in_order(self) -> list[QueuedMutation]:
        with self._engine.connect() as conn:
            rows = conn.execute(sa.select(mutation_queue).order_by(mutation_queue.c.id)).all()
        return [_decode(row) for row in rows]

    def peek(self) -> QueuedMutation | None:
        """The oldest entry, or None when the queue is empty."""
        with self._engine.connect() as conn:
            row = conn.execute(sa.select(mutation_queue).order_by(mutation_queue.c.id).limit(1)).first()
        return _decode(row) if row is not None else None

    def remove(self, entry_id: int) -> bool:
        with self._engine.begin() as conn:
            result = conn.execute(mutation_queue.delete().where(mutation_queue.c.id == entry_id))
            return result.rowcount > 0

    def count(self) -> int:
        with self._engine.connect() as conn:
            return conn.execute(sa.select(sa.func.count()).select_from(mutation_queue)).scalar_one()

    def close(self) -> None:
        self._engine.dispose()
