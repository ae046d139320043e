# Overview: Drains the device's mutation queue against the server, strictly in order.

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, field

from venuepos.errors import ConflictError, PosError, UnsupportedOperation
from .queue_store import QueuedMutation, QueueStore

logger = logging.getLogger(__name__)
"""
Queue Invariants (authoritative)

- Entries are sent in insertion order. An entry leaves the store only after
  the server accepted it (or reported it as already applied).
- The first hard failure stops the drain. That entry and everything after it
  stay queued; the next drain starts again from that entry.
- A kind the server has no endpoint for is logged and dropped; the drain
  continues behind it.
- One drain at a time per queue. A drain requested while another runs
  returns at once without touching the store.
"""


class QueueState(str, enum.Enum):
    IDLE = "IDLE"
    DRAINING = "DRAINING"
    BLOCKED = "BLOCKED"


@dataclass
class DrainResult:
    applied: int = 0
    skipped: list[QueuedMutation] = field(default_factory=list)
    remaining: int = 0
    blocked_on: QueuedMutation | None = None
    error: str | None = None
    already_running: bool = False

    @property
    def ok(self) -> bool:
        return self.blocked_on is None and not self.already_running


class MutationQueue:
    def __init__(self, store: QueueStore):
        self._store = store
        self._drain_lock = threading.Lock()
        self._state = QueueState.IDLE
        self._blocked_on: QueuedMutation | None = None
        self._last_error: str | None = None

    @property
    def state(self) -> QueueState:
        return self._state

    @property
    def blocked_on(self) -> QueuedMutation | None:
        return self._blocked_on

    @property
    def last_error(self) -> str | None:
        return self._last_error

    def __len__(self) -> int:
        return self._store.count()

    def pending(self) -> list[QueuedMutation]:
        return self._store.list_in_order()

    def enqueue(self, mutation) -> int:
        """Record a mutation locally. Never touches the network."""
        entry_id = self._store.append(mutation)
        logger.info("Queued %s as entry %s", mutation.kind.value, entry_id)
        return entry_id

    def drain(self, remote) -> DrainResult:
        """
        Replay queued entries through `remote.apply(mutation)`.

        Conflicts (the server already has it, e.g. a sale already paid) count
        as applied. UnsupportedOperation is skipped. Any other PosError blocks.
        """
        if not self._drain_lock.acquire(blocking=False):
            return DrainResult(already_running=True, remaining=self._store.count())

        result = DrainResult()
        try:
            self._state = QueueState.DRAINING
            self._blocked_on = None
            self._last_error = None

            # Re-read the head each step so entries queued mid-drain are sent too
            while True:
                entry = self._store.peek()
                if entry is None:
                    self._state = QueueState.IDLE
                    break

                if entry.decode_error is not None:
                    message = f"cannot decode entry: {entry.decode_error}"
                    logger.error("Queue blocked at entry %s (%s): %s", entry.id, entry.kind_name, message)
                    self._block(entry, message)
                    result.blocked_on = entry
                    result.error = message
                    break

                try:
                    remote.apply(entry.mutation)
                except ConflictError as e:
                    logger.info("Entry %s (%s) already applied on server: %s", entry.id, entry.kind_name, e.message)
                except UnsupportedOperation as e:
                    logger.warning("Dropping entry %s (%s): %s", entry.id, entry.kind_name, e.message)
                    self._store.remove(entry.id)
                    result.skipped.append(entry)
                    continue
                except PosError as e:
                    logger.warning("Queue blocked at entry %s (%s): %s", entry.id, entry.kind_name, e.message)
                    self._block(entry, e.message)
                    result.blocked_on = entry
                    result.error = e.message
                    break
                except Exception as e:
                    self._block(entry, str(e))
                    raise

                self._store.remove(entry.id)
                result.applied += 1

            result.remaining = self._store.count()
            return result
        finally:
            self._drain_lock.release()

    def discard(self, entry_id: int) -> bool:
        """Drop one entry by hand, e.g. the one the queue is blocked on."""
        removed = self._store.remove(entry_id)
        if removed:
            logger.warning("Discarded queue entry %s", entry_id)
            if self._blocked_on is not None and self._blocked_on.id == entry_id:
                self._state = QueueState.IDLE
                self._blocked_on = None
                self._last_error = None
        return removed

    def _block(self, entry: QueuedMutation, error: str) -> None:
        self._state = QueueState.BLOCKED
        self._blocked_on = entry
        self._last_error = error
