"""
Device library against the real app, with no network.

RemoteApi talks to the Flask test client through an httpx MockTransport, and
a Socket.IO test client stands in for another device watching broadcasts.
"""

import httpx
import pytest

from conftest import order_line, received_events
from venuepos.client.api import RemoteApi
from venuepos.client.mutations import AddHistoryEntry, SaveActiveOrder, SetTableCount, SetTaxRate
from venuepos.client.queue_store import QueueStore
from venuepos.client.replication import ReplicationClient
from venuepos.client.sync import MutationQueue, QueueState
from venuepos.models import ActiveOrder, Sale


def flask_transport(flask_client):
    def handler(request: httpx.Request) -> httpx.Response:
        response = flask_client.open(
            request.url.raw_path.decode(),
            method=request.method,
            data=request.content,
            content_type=request.headers.get("content-type"),
        )
        return httpx.Response(
            response.status_code,
            content=response.get_data(),
            headers={"content-type": response.content_type or ""},
        )

    return httpx.MockTransport(handler)


class FakeSocket:
    """Just enough of socketio.Client for ReplicationClient."""

    def __init__(self):
        self.connected = False
        self.handlers = {}
        self.emitted = []

    def on(self, event, handler):
        self.handlers[event] = handler

    def emit(self, event, data=None):
        self.emitted.append((event, data))

    def connect(self, url):
        self.connected = True
        self.handlers["connect"]()

    def disconnect(self):
        self.connected = False


@pytest.fixture
def device(tmp_path, client, db_session):
    store = QueueStore(str(tmp_path / "device-queue.sqlite3"))
    remote = RemoteApi("http://pos.test", transport=flask_transport(client))
    sio = FakeSocket()
    replication = ReplicationClient("http://pos.test", MutationQueue(store), remote, sio=sio)
    yield replication, sio
    remote.close()
    store.close()


def test_offline_edit_replays_then_finalizes(device, socket_client, db_session, make_item):
    replication, sio = device
    item = make_item(name="Beer", price_cents=300, stock=10)
    line = order_line(item, 1, unique_id="line-1")

    # Offline: the edit is queued, nothing reaches the server
    assert replication.submit_edit("5", {"items": [line], "sessionUuid": "sess-e2e"}) is False
    assert len(replication.queue) == 1
    assert db_session.query(ActiveOrder).count() == 0

    # Back online: connect drains the queue, then asks for state
    sio.connect("http://pos.test")
    assert len(replication.queue) == 0
    assert sio.emitted[-1] == ("request-state", None)

    [state] = received_events(socket_client, "state-broadcast")
    assert state[0]["table_id"] == "5"
    assert state[0]["items"][0]["name"] == "Beer"
    sio.handlers["state-broadcast"](state)
    assert replication.orders["5"]["session_uuid"] == "sess-e2e"

    # Finalize through the HTTP API
    body = replication.remote.finalize_sale(
        table_id="5",
        order={"items": [line]},
        session_uuid="sess-e2e",
    )
    assert body["status"] == "ok"

    db_session.expire_all()
    assert db_session.query(ActiveOrder).filter_by(table_id="5").count() == 0
    sale = db_session.query(Sale).one()
    assert [(line.item_name, line.quantity) for line in sale.items] == [("Beer", 1)]

    # A replayed finalize is success-shaped
    again = replication.remote.finalize_sale(table_id="5", order={"items": [line]}, session_uuid="sess-e2e")
    assert again["status"] == "already_paid"


def test_queued_settings_and_history_replay(device, db_session, cashier):
    replication, _ = device
    replication.queue.enqueue(SetTaxRate(rate="0.18"))
    replication.queue.enqueue(SetTableCount(count=24))
    replication.queue.enqueue(AddHistoryEntry(table_id="3", details="Order sent to bar", user_id=cashier.id))

    result = replication.queue.drain(replication.remote)

    assert result.ok and result.applied == 3
    bootstrap = replication.remote.bootstrap()
    assert bootstrap["settings"]["taxRate"] == "0.18"
    assert bootstrap["settings"]["tableCount"] == 24
    history = replication.remote.list_history("3")
    assert history[0]["user"]["username"] == "Kamarier"


def test_online_edit_goes_over_the_socket(device):
    replication, sio = device
    sio.connected = True

    assert replication.submit_edit("2", {"items": [{"id": 1, "quantity": 1}]}) is True
    assert replication.submit_edit("2", None) is True

    assert [event for event, _ in sio.emitted] == ["edit", "edit"]
    assert sio.emitted[1][1] == {"tableId": "2", "order": None}
    assert len(replication.queue) == 0
    assert "2" not in replication.orders


def test_leader_answers_state_requests_with_snapshot(device):
    replication, sio = device
    replication.is_leader = True
    replication.orders = {"7": {"table_id": "7", "session_uuid": "sess-7", "items": [{"id": 1, "quantity": 2}]}}

    sio.handlers["share-your-state"]({"requester": "abc"})

    event, snapshot = sio.emitted[-1]
    assert event == "state-snapshot"
    assert snapshot == [{"tableId": "7", "order": {"items": [{"id": 1, "quantity": 2}], "sessionUuid": "sess-7"}}]


def test_non_leader_ignores_state_requests(device):
    replication, sio = device

    sio.handlers["request-initial-state"]()

    assert sio.emitted == []


def test_edit_waits_behind_blocked_queue(device, db_session, make_item):
    replication, sio = device
    item = make_item(name="Beer", price_cents=300, stock=10)
    a = order_line(item, 1, unique_id="a")
    b = order_line(item, 1, unique_id="b")
    replication.queue.enqueue(SaveActiveOrder(table_id="1", items=[order_line(item, 0)], session_uuid=None))
    replication.queue.enqueue(SaveActiveOrder(table_id="5", items=[a], session_uuid="sess-5"))

    assert replication.queue.drain(replication.remote).blocked_on is not None
    assert replication.queue.state is QueueState.BLOCKED

    # Connected, but the newer copy of table 5 must not overtake the queued one
    sio.connected = True
    assert replication.submit_edit("5", {"items": [a, b], "sessionUuid": "sess-5"}) is False
    assert sio.emitted == []
    assert [e.mutation.table_id for e in replication.queue.pending()] == ["1", "5", "5"]

    # Operator drops the bad entry; the replay ends on the newest copy
    assert replication.queue.discard(replication.queue.blocked_on.id)
    assert replication.queue.drain(replication.remote).ok

    db_session.expire_all()
    order = db_session.query(ActiveOrder).filter_by(table_id="5").one()
    assert [line["uniqueId"] for line in order.items] == ["a", "b"]
