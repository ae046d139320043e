import threading

import pytest
import sqlalchemy as sa

from venuepos.client.mutations import (
    PAYLOAD_TYPES,
    AddSale,
    ClearActiveOrder,
    MutationKind,
    SaveActiveOrder,
    SetTaxRate,
    StockWaste,
    from_record,
    to_record,
)
from venuepos.client.queue_store import QueueStore, mutation_queue
from venuepos.client.sync import MutationQueue, QueueState
from venuepos.errors import AlreadyProcessed, TransientError, UnsupportedOperation, ValidationError
from venuepos.time_utils import utcnow


class FakeRemote:
    """Records applied mutations; raises whatever `failures` maps a table/kind to."""

    def __init__(self, failures=None):
        self.applied = []
        self.failures = failures or {}

    def apply(self, mutation):
        key = getattr(mutation, "table_id", None) or mutation.kind
        error = self.failures.get(key)
        if error is not None:
            raise error
        self.applied.append(mutation)
        return {}


@pytest.fixture
def queue(tmp_path):
    store = QueueStore(str(tmp_path / "queue.sqlite3"))
    yield MutationQueue(store)
    store.close()


def _save(table_id):
    return SaveActiveOrder(table_id=table_id, items=[{"id": 1, "name": "Cola", "quantity": 1}], session_uuid=None)


def test_every_kind_has_a_payload_type():
    assert set(PAYLOAD_TYPES) == set(MutationKind)


def test_record_round_trip_keeps_payload_type():
    original = StockWaste(item_id=4, quantity=2, reason="Dropped")

    kind, payload = to_record(original)

    assert kind == "STOCK_WASTE"
    assert from_record(kind, payload) == original


def test_entries_survive_reopening_the_store(tmp_path):
    path = str(tmp_path / "queue.sqlite3")
    store = QueueStore(path)
    store.append(_save("1"))
    store.append(ClearActiveOrder(table_id="2"))
    store.close()

    reopened = QueueStore(path)
    entries = reopened.list_in_order()
    reopened.close()

    assert [e.kind for e in entries] == [MutationKind.SAVE_ACTIVE_ORDER, MutationKind.CLEAR_ACTIVE_ORDER]
    assert entries[0].mutation.items[0]["name"] == "Cola"


def test_drain_applies_in_order_and_empties_queue(queue):
    queue.enqueue(_save("1"))
    queue.enqueue(_save("2"))
    queue.enqueue(_save("3"))
    remote = FakeRemote()

    result = queue.drain(remote)

    assert result.ok
    assert result.applied == 3
    assert [m.table_id for m in remote.applied] == ["1", "2", "3"]
    assert len(queue) == 0
    assert queue.state is QueueState.IDLE


def test_failure_blocks_at_that_entry(queue):
    for table_id in ("1", "2", "3"):
        queue.enqueue(_save(table_id))
    remote = FakeRemote(failures={"2": TransientError("server unreachable")})

    result = queue.drain(remote)

    assert [m.table_id for m in remote.applied] == ["1"]
    assert result.blocked_on.mutation.table_id == "2"
    assert result.remaining == 2
    assert queue.state is QueueState.BLOCKED
    assert queue.last_error == "server unreachable"
    assert [e.mutation.table_id for e in queue.pending()] == ["2", "3"]

    # Next trigger resumes from the failed entry
    remote.failures.clear()
    result = queue.drain(remote)

    assert result.ok
    assert [m.table_id for m in remote.applied] == ["1", "2", "3"]
    assert queue.state is QueueState.IDLE


def test_validation_failure_also_blocks(queue):
    queue.enqueue(_save("1"))
    queue.enqueue(_save("2"))

    result = queue.drain(FakeRemote(failures={"1": ValidationError("bad line")}))

    assert result.applied == 0
    assert result.error == "bad line"
    assert len(queue) == 2


def test_unsupported_operation_is_skipped(queue):
    queue.enqueue(SetTaxRate(rate="0.18"))
    queue.enqueue(_save("1"))
    remote = FakeRemote(failures={MutationKind.SET_TAX_RATE: UnsupportedOperation("no tax endpoint")})

    result = queue.drain(remote)

    assert result.ok
    assert [e.kind for e in result.skipped] == [MutationKind.SET_TAX_RATE]
    assert [m.table_id for m in remote.applied] == ["1"]
    assert len(queue) == 0


def test_already_paid_sale_is_dropped_as_success(queue):
    queue.enqueue(AddSale(table_id="5", order={"items": []}, session_uuid="sess-5"))
    remote = FakeRemote(failures={"5": AlreadyProcessed("Sale already paid")})

    result = queue.drain(remote)

    assert result.ok
    assert result.applied == 1
    assert len(queue) == 0


def test_concurrent_drain_returns_immediately(queue):
    queue.enqueue(_save("1"))
    started = threading.Event()
    release = threading.Event()

    class SlowRemote(FakeRemote):
        def apply(self, mutation):
            started.set()
            release.wait(timeout=5)
            return super().apply(mutation)

    remote = SlowRemote()
    worker = threading.Thread(target=queue.drain, args=(remote,))
    worker.start()
    assert started.wait(timeout=5)

    second = queue.drain(remote)

    assert second.already_running is True
    assert queue.state is QueueState.DRAINING
    release.set()
    worker.join(timeout=5)
    assert len(remote.applied) == 1
    assert len(queue) == 0


def test_undecodable_entry_blocks_until_discarded(tmp_path):
    path = str(tmp_path / "queue.sqlite3")
    store = QueueStore(path)
    queue = MutationQueue(store)
    queue.enqueue(_save("1"))
    # A row written by a newer app version this one doesn't know
    engine = sa.create_engine(f"sqlite:///{path}")
    with engine.begin() as conn:
        conn.execute(mutation_queue.insert().values(kind="REFUND_SALE", payload={"saleId": "x"}, created_at=utcnow()))
    engine.dispose()
    queue.enqueue(_save("2"))
    remote = FakeRemote()

    result = queue.drain(remote)

    assert [m.table_id for m in remote.applied] == ["1"]
    assert result.blocked_on.kind_name == "REFUND_SALE"
    assert "unknown mutation kind" in result.error
    assert queue.state is QueueState.BLOCKED
    assert len(queue) == 2

    assert queue.discard(result.blocked_on.id) is True
    assert queue.state is QueueState.IDLE
    assert queue.drain(remote).ok
    assert [m.table_id for m in remote.applied] == ["1", "2"]
    store.close()


def test_entry_queued_mid_drain_is_sent_in_the_same_drain(queue):
    queue.enqueue(_save("5"))

    class EnqueueingRemote(FakeRemote):
        def apply(self, mutation):
            if not self.applied:
                queue.enqueue(_save("6"))
            return super().apply(mutation)

    remote = EnqueueingRemote()
    result = queue.drain(remote)

    assert result.applied == 2
    assert [m.table_id for m in remote.applied] == ["5", "6"]
    assert len(queue) == 0
