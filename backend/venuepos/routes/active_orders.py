# backend/venuepos/routes/active_orders.py
"""
Active-order HTTP surface.

Same store as the real-time `edit` event; devices fall back to these routes
when the socket is down and their mutation queue replays through them.
Every write broadcasts the re-read state to connected clients.
"""

from flask import Blueprint, request

from ..services import active_order_service

active_orders_bp = Blueprint("active_orders", __name__, url_prefix="/api/active-orders")


@active_orders_bp.get("")
def list_active_orders():
    orders = active_order_service.list_active_orders()
    return {"orders": orders, "count": len(orders)}


@active_orders_bp.put("/transfer")
def transfer_route():
    """
    Body: {"sourceTableId", "destTableId", "itemUniqueIds"?}

    Omit itemUniqueIds to move the whole order.
    """
    payload = request.get_json(silent=True) or {}
    result = active_order_service.transfer(
        payload.get("sourceTableId"),
        payload.get("destTableId"),
        payload.get("itemUniqueIds"),
    )
    return result


@active_orders_bp.get("/<table_id>")
def get_active_order(table_id):
    order = active_order_service.get_active_order(table_id)
    if order is None:
        return {"error": "No active order for table", "details": {"tableId": table_id}}, 404
    return order


@active_orders_bp.put("/<table_id>")
def upsert_active_order(table_id):
    """Body: {"sessionUuid", "items": [...]}. An empty list clears the table."""
    payload = request.get_json(silent=True) or {}
    persisted = active_order_service.upsert(table_id, payload.get("sessionUuid"), payload.get("items"))
    if persisted is None:
        return {"tableId": table_id, "cleared": True}
    return persisted


@active_orders_bp.delete("/<table_id>")
def clear_active_order(table_id):
    deleted = active_order_service.clear(table_id)
    return {"tableId": table_id, "cleared": deleted}
