# backend/venuepos/routes/stock.py
"""
Stock ledger routes.

Quantities are whole units. Costs arrive as decimal currency ("totalCost": 30.00)
or integer cents ("totalCost_cents": 3000) and are stored as cents.
"""
from flask import Blueprint, request

from ..errors import ValidationError
from ..services import stock_service
from ..validation import optional_cents, optional_user_id, require_positive_int

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.post("/bulk-update")
def bulk_update_route():
    """
    Body: {"movements": [{"itemId", "quantity", "totalCost"?}], "reason",
    "userId", "type": "supply" | "correction"}

    All lines apply in one transaction.
    """
    payload = request.get_json(silent=True) or {}
    movements = payload.get("movements")
    if not isinstance(movements, list):
        raise ValidationError("movements must be a list")

    lines = []
    for index, entry in enumerate(movements):
        if not isinstance(entry, dict):
            raise ValidationError(f"movements[{index}] must be an object")
        lines.append({
            "itemId": entry.get("itemId"),
            "quantity": entry.get("quantity"),
            "totalCost_cents": optional_cents(entry, "totalCost"),
        })

    created = stock_service.apply_bulk(
        movements=lines,
        reason=payload.get("reason"),
        user_id=optional_user_id(payload),
        movement_type=payload.get("type") or "supply",
    )
    return {"movements": [m.to_dict() for m in created], "count": len(created)}, 201


@stock_bp.post("/waste")
def waste_route():
    """Body: {"itemId", "quantity" (positive), "reason", "userId", "type": "waste" | "correction"}"""
    payload = request.get_json(silent=True) or {}
    movement = stock_service.record_waste(
        item_id=require_positive_int(payload.get("itemId"), "itemId"),
        quantity=payload.get("quantity"),
        reason=payload.get("reason"),
        user_id=optional_user_id(payload),
        movement_type=payload.get("type") or "waste",
    )
    return {"movement": movement.to_dict()}, 201


@stock_bp.get("/movements/<int:item_id>")
def movements_route(item_id: int):
    limit = request.args.get("limit", default=500, type=int)
    return stock_service.get_stock_history(item_id, limit=max(1, min(limit, 5000)))
