# Overview: Device side of the real-time channel; keeps the last-known active orders and routes edits.

from __future__ import annotations

import logging
import re
import threading

import socketio
from socketio.exceptions import SocketIOError

from venuepos.events import (
    ANNOUNCE_LEADER,
    EDIT,
    EDIT_REJECTED,
    REQUEST_INITIAL_STATE,
    REQUEST_STATE,
    SALE_FINALIZED,
    SHARE_YOUR_STATE,
    STATE_BROADCAST,
    STATE_SNAPSHOT,
)
from .mutations import ClearActiveOrder, SaveActiveOrder
from .sync import MutationQueue, QueueState

logger = logging.getLogger(__name__)

MOBILE_USER_AGENT = re.compile(r"Mobi|Android|iPhone|iPad")
# Screens this wide or narrower are phones
LEADER_MIN_WIDTH = 768


def is_leader_device(width: int, user_agent: str | None) -> bool:
    """
    Form-factor guess for whether this device should announce itself as leader.

    A wide screen or a non-mobile browser is taken to be the till.
    """
    return width > LEADER_MIN_WIDTH or not MOBILE_USER_AGENT.search(user_agent or "")


class ReplicationClient:
    """
    Device's view of the shared table state.

    `orders` maps table id -> the last order the server broadcast. Edits go out
    over the socket when connected and into the mutation queue otherwise; on
    reconnect the queue is drained before fresh state is requested, so the
    broadcast that follows already contains the offline edits.
    """

    def __init__(
        self,
        server_url: str,
        queue: MutationQueue,
        remote,
        *,
        is_leader: bool = False,
        sio: socketio.Client | None = None,
    ):
        self.server_url = server_url
        self.queue = queue
        self.remote = remote
        self.is_leader = is_leader
        self.orders: dict[str, dict] = {}
        self.last_rejection: dict | None = None
        self.finalized_sales: list[dict] = []

        self._sio = sio or socketio.Client(reconnection=True)
        self._lock = threading.Lock()
        self._syncing = False

        self._sio.on("connect", self._on_connect)
        self._sio.on("disconnect", self._on_disconnect)
        self._sio.on(STATE_BROADCAST, self._on_state_broadcast)
        self._sio.on(REQUEST_INITIAL_STATE, self._on_share_requested)
        self._sio.on(SHARE_YOUR_STATE, self._on_share_requested)
        self._sio.on(EDIT_REJECTED, self._on_edit_rejected)
        self._sio.on(SALE_FINALIZED, self._on_sale_finalized)

    @property
    def connected(self) -> bool:
        return bool(self._sio.connected)

    def connect(self) -> None:
        self._sio.connect(self.server_url)

    def disconnect(self) -> None:
        self._sio.disconnect()

    def submit_edit(self, table_id, order: dict | None) -> bool:
        """
        Send one table's order. Returns True if it went out live, False if queued.

        A None order or one without items clears the table. While older entries
        are still queued (or a drain is running) the edit is queued behind them,
        so a later replay can never overwrite it with an older copy.
        """
        table_key = str(table_id)
        items = (order or {}).get("items") or []
        if items:
            self.orders[table_key] = {**(self.orders.get(table_key) or {}), **order, "table_id": table_key}
        else:
            self.orders.pop(table_key, None)

        if self.connected and self._queue_is_clear():
            try:
                self._sio.emit(EDIT, {"tableId": table_key, "order": order if items else None})
                return True
            except SocketIOError:
                logger.warning("Edit for table %s could not be sent; queuing", table_key)

        if items:
            self.queue.enqueue(SaveActiveOrder(
                table_id=table_key,
                items=list(items),
                session_uuid=order.get("sessionUuid"),
            ))
        else:
            self.queue.enqueue(ClearActiveOrder(table_id=table_key))
        if self.connected and self.queue.state is QueueState.IDLE:
            # Nothing is draining or blocked; send the backlog over HTTP now
            self.queue.drain(self.remote)
        return False

    def _queue_is_clear(self) -> bool:
        return self.queue.state is QueueState.IDLE and len(self.queue) == 0

    def resync(self):
        """Drain the offline queue, then ask for fresh state. No-op if already running."""
        with self._lock:
            if self._syncing:
                return None
            self._syncing = True
        try:
            result = self.queue.drain(self.remote)
            if result.blocked_on is not None:
                logger.warning("Offline queue blocked at entry %s: %s", result.blocked_on.id, result.error)
            if self.connected:
                if self.is_leader:
                    self._sio.emit(ANNOUNCE_LEADER)
                self._sio.emit(REQUEST_STATE)
            return result
        finally:
            with self._lock:
                self._syncing = False

    def snapshot(self) -> list[dict]:
        return [
            {
                "tableId": table_id,
                "order": {
                    "items": order.get("items") or [],
                    "sessionUuid": order.get("session_uuid") or order.get("sessionUuid"),
                },
            }
            for table_id, order in sorted(self.orders.items())
        ]

    # Socket handlers

    def _on_connect(self):
        logger.info("Connected to %s", self.server_url)
        self.resync()

    def _on_disconnect(self, *args):
        logger.info("Disconnected from %s; edits will be queued", self.server_url)

    def _on_state_broadcast(self, orders):
        self.orders = {str(order["table_id"]): order for order in orders or []}

    def _on_share_requested(self, data=None):
        if not self.is_leader:
            return
        self._sio.emit(STATE_SNAPSHOT, self.snapshot())

    def _on_edit_rejected(self, data):
        self.last_rejection = data
        logger.warning("Server rejected edit for table %s: %s", (data or {}).get("tableId"), (data or {}).get("error"))

    def _on_sale_finalized(self, sale):
        self.finalized_sales.append(sale)
