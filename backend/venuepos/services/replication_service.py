# Overview: Server side of the replication protocol; leader lease, edits, snapshots and broadcasts.

from __future__ import annotations

import threading
from datetime import datetime

from flask import current_app

from ..extensions import socketio
from ..errors import ValidationError
from venuepos.events import SALE_FINALIZED, STATE_BROADCAST
from venuepos.time_utils import utcnow
from . import active_order_service
"""
Replication Protocol (authoritative)

The Active-Order Store is the single writer. Every persisted write is
followed by STATE_BROADCAST carrying the re-read state, so clients converge on
the last value durably written, not the last value sent.

The leader lease is the bootstrap/compat path from the earlier protocol
generation: a device that announces itself becomes the lease holder, may push
its local tables with STATE_SNAPSHOT (seeding only tables the store lacks), and is asked for its state on
REQUEST_STATE. Losing the leader (disconnect) only releases the lease; the
store keeps serving state.
"""

LEASE_EXTENSION_KEY = "venuepos.leader_lease"


class LeaderLease:
    """
    Server-side record of which connection holds the leader role.

    Exactly one holder or none. acquire() by a new connection takes over the
    lease (the newest announcement wins); release() by anyone other than the
    holder is a no-op, so a stale disconnect can't evict the current leader.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._holder: str | None = None
        self._acquired_at: datetime | None = None

    @property
    def holder(self) -> str | None:
        with self._lock:
            return self._holder

    @property
    def acquired_at(self) -> datetime | None:
        with self._lock:
            return self._acquired_at

    def acquire(self, sid: str) -> str | None:
        """Make `sid` the holder. Returns the previous holder, if any."""
        with self._lock:
            previous = self._holder
            self._holder = sid
            self._acquired_at = utcnow()
            return previous

    def release(self, sid: str) -> bool:
        with self._lock:
            if self._holder != sid:
                return False
            self._holder = None
            self._acquired_at = None
            return True

    def is_holder(self, sid: str) -> bool:
        with self._lock:
            return self._holder is not None and self._holder == sid


def get_lease() -> LeaderLease:
    return current_app.extensions[LEASE_EXTENSION_KEY]


def broadcast_active_orders() -> None:
    socketio.emit(STATE_BROADCAST, active_order_service.list_active_orders())


def announce_sale(sale: dict) -> None:
    socketio.emit(SALE_FINALIZED, sale)


def _checked_order(order) -> dict | None:
    if order is None:
        return None
    if not isinstance(order, dict):
        raise ValidationError("order must be an object or null")
    return order if order.get("items") else None


def apply_edit(payload) -> dict | None:
    """
    Apply one table's edit: {"tableId": ..., "order": {"items": [...], "sessionUuid": ...} | null}.

    Only the named table is written. A null order or an empty item list clears it.
    """
    if not isinstance(payload, dict):
        raise ValidationError("edit payload must be an object")
    table_id = payload.get("tableId")
    order = _checked_order(payload.get("order"))

    if order is None:
        active_order_service.clear(table_id)
        return None
    return active_order_service.upsert(table_id, order.get("sessionUuid"), order.get("items"))


def _snapshot_entries(tables) -> list[tuple]:
    """Accept either [{"tableId", "order"}, ...] or {tableId: order}."""
    if isinstance(tables, dict):
        return list(tables.items())
    if isinstance(tables, list):
        entries = []
        for entry in tables:
            if not isinstance(entry, dict):
                raise ValidationError("snapshot entries must be objects")
            entries.append((entry.get("tableId"), entry.get("order")))
        return entries
    raise ValidationError("snapshot must be a list or an object")


def apply_snapshot(sid: str, tables) -> int:
    """
    Seed the store with the leader's tables and broadcast once.

    Only tables the store has no row for are written. A persisted table is
    never overwritten or cleared from a snapshot, since the leader's copy may
    predate edits the store already accepted. Returns the number of tables
    written; 0 when the sender doesn't hold the lease.
    """
    if not get_lease().is_holder(sid):
        return 0

    written = 0
    for table_id, order in _snapshot_entries(tables):
        order = _checked_order(order)
        if order is None or active_order_service.get_active_order(table_id) is not None:
            continue
        active_order_service.upsert(
            table_id,
            order.get("sessionUuid"),
            order.get("items"),
            broadcast=False,
        )
        written += 1

    broadcast_active_orders()
    return written


def leader_to_ask(requester_sid: str) -> str | None:
    """The lease holder to forward a state request to, or None to serve from the store."""
    holder = get_lease().holder
    if holder is None or holder == requester_sid:
        return None
    return holder
