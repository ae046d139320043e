import pytest

from conftest import order_line
from venuepos.errors import NotFoundError, ValidationError
from venuepos.models import ActiveOrder
from venuepos.services import active_order_service


def _lines(item, count, prefix):
    return [order_line(item, quantity=1, unique_id=f"{prefix}-{n}") for n in range(count)]


def test_upsert_creates_row_with_fresh_session_for_placeholder(db_session, make_item):
    item = make_item()

    order = active_order_service.upsert("5", "temp-123", [order_line(item, quantity=2)])

    assert order["table_id"] == "5"
    assert order["session_uuid"] and not order["session_uuid"].startswith("temp-")
    assert order["items"][0]["quantity"] == 2
    # Lines without a uniqueId get one
    assert order["items"][0]["uniqueId"]


def test_placeholder_session_does_not_replace_real_one(db_session, make_item):
    item = make_item()
    first = active_order_service.upsert("5", "sess-real-1", [order_line(item)])

    second = active_order_service.upsert("5", "offline-9", [order_line(item, quantity=3)])

    assert second["session_uuid"] == first["session_uuid"] == "sess-real-1"
    assert second["items"][0]["quantity"] == 3
    assert db_session.query(ActiveOrder).count() == 1


def test_real_session_replaces_previous(db_session, make_item):
    item = make_item()
    active_order_service.upsert("5", None, [order_line(item)])

    updated = active_order_service.upsert("5", "sess-real-2", [order_line(item)])

    assert updated["session_uuid"] == "sess-real-2"


def test_empty_items_clear_the_table(db_session, make_item):
    item = make_item()
    active_order_service.upsert("7", "sess-7", [order_line(item)])

    assert active_order_service.upsert("7", "sess-7", []) is None
    assert active_order_service.get_active_order("7") is None


@pytest.mark.parametrize("quantity", [0, -1, 1.5, "2"])
def test_upsert_rejects_bad_quantities(db_session, make_item, quantity):
    item = make_item()

    with pytest.raises(ValidationError):
        active_order_service.upsert("5", "sess", [order_line(item, quantity=quantity)])

    assert db_session.query(ActiveOrder).count() == 0


def test_partial_transfer_appends_selected_lines(db_session, make_item):
    item = make_item()
    active_order_service.upsert("1", "sess-1", _lines(item, 5, "src"))
    active_order_service.upsert("2", "sess-2", _lines(item, 1, "dst"))

    result = active_order_service.transfer("1", "2", ["src-1", "src-3"])

    assert result == {"moved": 2, "sourceTableId": "1", "destTableId": "2", "sourceCleared": False}
    source = active_order_service.get_active_order("1")
    dest = active_order_service.get_active_order("2")
    assert [line["uniqueId"] for line in source["items"]] == ["src-0", "src-2", "src-4"]
    # Appended, never merged with the same product already on the table
    assert [line["uniqueId"] for line in dest["items"]] == ["dst-0", "src-1", "src-3"]
    assert dest["session_uuid"] == "sess-2"


def test_full_transfer_deletes_source_and_creates_destination(db_session, make_item):
    item = make_item()
    active_order_service.upsert("1", "sess-1", _lines(item, 2, "src"))

    result = active_order_service.transfer("1", "9")

    assert result["sourceCleared"] is True
    assert active_order_service.get_active_order("1") is None
    dest = active_order_service.get_active_order("9")
    assert [line["uniqueId"] for line in dest["items"]] == ["src-0", "src-1"]
    assert dest["session_uuid"] and dest["session_uuid"] != "sess-1"


def test_transfer_from_empty_table_is_not_found(db_session):
    with pytest.raises(NotFoundError):
        active_order_service.transfer("1", "2")


def test_transfer_with_unmatched_selection_is_rejected(db_session, make_item):
    item = make_item()
    active_order_service.upsert("1", "sess-1", _lines(item, 2, "src"))

    with pytest.raises(ValidationError):
        active_order_service.transfer("1", "2", ["nope"])

    assert len(active_order_service.get_active_order("1")["items"]) == 2
    assert active_order_service.get_active_order("2") is None


def test_transfer_to_same_table_is_rejected(db_session):
    with pytest.raises(ValidationError):
        active_order_service.transfer("3", "3")


def test_routes_round_trip(client, db_session, make_item):
    item = make_item()

    put = client.put("/api/active-orders/12", json={"sessionUuid": "sess-12", "items": [order_line(item)]})
    assert put.status_code == 200
    assert put.json["table_id"] == "12"

    listed = client.get("/api/active-orders")
    assert listed.json["count"] == 1

    moved = client.put("/api/active-orders/transfer", json={"sourceTableId": "12", "destTableId": "14"})
    assert moved.status_code == 200
    assert moved.json["moved"] == 1

    cleared = client.delete("/api/active-orders/14")
    assert cleared.json == {"tableId": "14", "cleared": True}
    assert client.get("/api/active-orders").json["count"] == 0


def test_route_reports_validation_errors(client, db_session):
    response = client.put("/api/active-orders/transfer", json={"sourceTableId": "1", "destTableId": "1"})
    assert response.status_code == 400
    assert "error" in response.json

    missing = client.put("/api/active-orders/transfer", json={"sourceTableId": "1", "destTableId": "2"})
    assert missing.status_code == 404
    assert missing.json["details"]["sourceTableId"] == "1"
