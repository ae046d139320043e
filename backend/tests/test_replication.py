from conftest import order_line, received_events
from venuepos.extensions import socketio
from venuepos.services import active_order_service
from venuepos.services.replication_service import LeaderLease


def test_lease_release_by_non_holder_is_a_no_op():
    lease = LeaderLease()
    assert lease.acquire("a") is None
    assert lease.acquire("b") == "a"

    assert lease.release("a") is False
    assert lease.holder == "b"
    assert lease.release("b") is True
    assert lease.holder is None


def test_connect_receives_persisted_state(app, client, db_session, make_item):
    item = make_item()
    active_order_service.upsert("3", "sess-3", [order_line(item)])

    sio = socketio.test_client(app, flask_test_client=client)
    try:
        [state] = received_events(sio, "state-broadcast")
        assert [order["table_id"] for order in state] == ["3"]
    finally:
        sio.disconnect()


def test_edit_is_persisted_then_broadcast_to_everyone(app, client, socket_client, make_item):
    other = socketio.test_client(app, flask_test_client=client)
    other.get_received()
    item = make_item()

    ack = socket_client.emit(
        "edit",
        {"tableId": "5", "order": {"items": [order_line(item, 2)], "sessionUuid": "sess-5"}},
        callback=True,
    )

    assert ack["ok"] is True
    assert ack["order"]["session_uuid"] == "sess-5"
    [state] = received_events(other, "state-broadcast")
    assert state[0]["table_id"] == "5"
    assert state[0]["items"][0]["quantity"] == 2
    assert active_order_service.get_active_order("5") is not None
    other.disconnect()


def test_null_order_clears_only_that_table(socket_client, make_item):
    item = make_item()
    active_order_service.upsert("1", "sess-1", [order_line(item)])
    active_order_service.upsert("2", "sess-2", [order_line(item)])
    socket_client.get_received()

    socket_client.emit("edit", {"tableId": "1", "order": None})

    [state] = received_events(socket_client, "state-broadcast")
    assert [order["table_id"] for order in state] == ["2"]


def test_invalid_edit_is_rejected_to_sender_only(app, client, socket_client, make_item):
    other = socketio.test_client(app, flask_test_client=client)
    other.get_received()
    item = make_item()

    ack = socket_client.emit(
        "edit",
        {"tableId": "5", "order": {"items": [order_line(item, 0)]}},
        callback=True,
    )

    assert ack["ok"] is False
    [rejection] = received_events(socket_client, "edit-rejected")
    assert rejection["tableId"] == "5"
    assert other.get_received() == []
    assert active_order_service.get_active_order("5") is None
    other.disconnect()


def test_announce_then_snapshot_merges_by_table(app, socket_client, make_item):
    item = make_item()
    active_order_service.upsert("9", "sess-9", [order_line(item)])
    socket_client.get_received()

    ack = socket_client.emit("announce-leader", callback=True)
    assert ack["ok"] is True
    assert received_events(socket_client, "request-initial-state") == [None]

    ack = socket_client.emit(
        "state-snapshot",
        [{"tableId": "4", "order": {"items": [order_line(item, 3)], "sessionUuid": "sess-4"}}],
        callback=True,
    )

    assert ack == {"ok": True, "tables": 1}
    tables = {order["table_id"] for order in active_order_service.list_active_orders()}
    # Table 9 was not in the snapshot and survives
    assert tables == {"4", "9"}


def test_snapshot_from_non_leader_is_ignored(app, client, socket_client, make_item):
    leader = socketio.test_client(app, flask_test_client=client)
    leader.emit("announce-leader")
    item = make_item()

    ack = socket_client.emit(
        "state-snapshot",
        {"4": {"items": [order_line(item)]}},
        callback=True,
    )

    assert ack["ok"] is False
    assert active_order_service.get_active_order("4") is None
    leader.disconnect()


def test_request_state_is_forwarded_to_leader(app, client, socket_client):
    leader = socketio.test_client(app, flask_test_client=client)
    leader.emit("announce-leader")
    leader.get_received()

    ack = socket_client.emit("request-state", callback=True)

    assert ack["forwardedTo"] is not None
    [request] = received_events(leader, "share-your-state")
    assert request["requester"]
    # The requester is answered from the store either way
    assert received_events(socket_client, "state-broadcast") == [[]]
    leader.disconnect()


def test_leader_disconnect_releases_lease(app, client, db_session):
    leader = socketio.test_client(app, flask_test_client=client)
    leader.emit("announce-leader")
    assert client.get("/api/health").json["checks"]["replication"]["leader_connected"] is True

    leader.disconnect()

    assert client.get("/api/health").json["checks"]["replication"]["leader_connected"] is False


def test_stale_snapshot_does_not_revert_accepted_edit(app, client, socket_client, make_item):
    item = make_item()
    first = order_line(item, 1, unique_id="l1")
    second = order_line(item, 1, unique_id="l2")
    active_order_service.upsert("5", "sess-5", [first])
    socket_client.emit("announce-leader")

    waiter = socketio.test_client(app, flask_test_client=client)
    waiter.emit("edit", {"tableId": "5", "order": {"items": [first, second], "sessionUuid": "sess-5"}})

    # The leader's cache still has the older copy of table 5
    ack = socket_client.emit(
        "state-snapshot",
        [
            {"tableId": "5", "order": {"items": [first], "sessionUuid": "sess-5"}},
            {"tableId": "6", "order": None},
        ],
        callback=True,
    )

    assert ack == {"ok": True, "tables": 0}
    lines = active_order_service.get_active_order("5")["items"]
    assert [line["uniqueId"] for line in lines] == ["l1", "l2"]
    assert active_order_service.get_active_order("6") is None
    waiter.disconnect()
