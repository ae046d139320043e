# backend/venuepos/routes/sales.py
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from ..errors import AlreadyProcessed, PosError
from ..services import sale_service
from ..validation import optional_user_id

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
def finalize_sale_route():
    """
    Finalize a table's order.

    Body: {"order": {"items", "subtotal"?, "tax"?, "total"?}, "tableId",
    "tableName"?, "userId" | "user", "sessionUuid"?, "saleId"?}

    A retry of an already committed session answers 200 "already_paid" with
    the original sale id, so offline queues can drop the entry.
    """
    payload = request.get_json(silent=True) or {}
    order = payload.get("order")
    if order is None and "items" in payload:
        order = payload

    try:
        sale = sale_service.finalize_sale(
            order=order,
            table_id=payload.get("tableId"),
            table_name=payload.get("tableName"),
            user_id=optional_user_id(payload),
            session_uuid=payload.get("sessionUuid"),
            sale_uuid=payload.get("saleId"),
        )
    except AlreadyProcessed as e:
        current_app.logger.info("Duplicate finalize for session %s ignored", e.details.get("sessionUuid"))
        return jsonify({"status": "already_paid", **e.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to finalize sale")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info(
        "Finalized sale %s for table %s (%s cents)", sale.sale_uuid, sale.table_id, sale.total_cents
    )
    return jsonify({"status": "ok", "sale": sale.to_dict()}), 201


@sales_bp.get("")
def list_sales_route():
    limit = request.args.get("limit", default=200, type=int)
    limit = max(1, min(limit, 1000))
    sales = sale_service.list_sales(limit=limit)
    return {"sales": [s.to_dict() for s in sales], "count": len(sales)}


@sales_bp.get("/<sale_uuid>")
def get_sale_route(sale_uuid: str):
    return sale_service.get_sale(sale_uuid).to_dict()
