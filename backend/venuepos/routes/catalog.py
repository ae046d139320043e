# backend/venuepos/routes/catalog.py
"""
Catalog, operator, settings and table-history routes.

These are the endpoints a device's mutation queue replays after an outage.
Deletes answer 200 with deleted=false for rows that are already gone.
"""
from __future__ import annotations

from flask import Blueprint, request

from ..services import catalog_service
from ..validation import optional_user_id

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


def _payload() -> dict:
    return request.get_json(silent=True) or {}


# Menu items

@catalog_bp.get("/menu-items")
def list_menu_items():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    items = catalog_service.list_menu_items(include_inactive=include_inactive)
    return {"items": [i.to_dict() for i in items], "count": len(items)}


@catalog_bp.post("/menu-items")
def create_menu_item():
    payload = _payload()
    item = catalog_service.create_menu_item(payload, user_id=optional_user_id(payload))
    return item.to_dict(), 201


@catalog_bp.put("/menu-items/<int:item_id>")
def update_menu_item(item_id: int):
    payload = _payload()
    item = catalog_service.update_menu_item(item_id, payload, user_id=optional_user_id(payload))
    return item.to_dict()


@catalog_bp.delete("/menu-items/<int:item_id>")
def delete_menu_item(item_id: int):
    return {"id": item_id, "deleted": catalog_service.delete_menu_item(item_id)}


# Categories

@catalog_bp.get("/menu-categories")
def list_categories():
    categories = catalog_service.list_categories()
    return {"categories": [c.to_dict() for c in categories], "count": len(categories)}


@catalog_bp.post("/menu-categories")
def create_category():
    return catalog_service.create_category(_payload()).to_dict(), 201


@catalog_bp.put("/menu-categories/<int:category_id>")
def update_category(category_id: int):
    return catalog_service.update_category(category_id, _payload()).to_dict()


@catalog_bp.delete("/menu-categories/<int:category_id>")
def delete_category(category_id: int):
    return {"id": category_id, "deleted": catalog_service.delete_category(category_id)}


# Users

@catalog_bp.get("/users")
def list_users():
    users = catalog_service.list_users()
    return {"users": [u.to_dict() for u in users], "count": len(users)}


@catalog_bp.post("/users")
def create_user():
    return catalog_service.create_user(_payload()).to_dict(), 201


@catalog_bp.delete("/users/<int:user_id>")
def delete_user(user_id: int):
    return {"id": user_id, "deleted": catalog_service.deactivate_user(user_id)}


# Settings

@catalog_bp.get("/settings")
def get_settings():
    return catalog_service.get_settings()


@catalog_bp.post("/settings/tax")
def set_tax_rate():
    return {"taxRate": catalog_service.set_tax_rate(_payload().get("rate"))}


@catalog_bp.post("/settings/table-count")
def set_table_count():
    return {"tableCount": catalog_service.set_table_count(_payload().get("count"))}


# Table history

@catalog_bp.get("/history")
def list_history():
    limit = request.args.get("limit", default=200, type=int)
    entries = catalog_service.list_history(
        table_id=request.args.get("tableId"),
        limit=max(1, min(limit, 1000)),
    )
    return {"history": [e.to_dict() for e in entries], "count": len(entries)}


@catalog_bp.post("/history")
def add_history_entry():
    payload = _payload()
    entry = catalog_service.add_history_entry(
        table_id=payload.get("tableId"),
        user_id=optional_user_id(payload),
        details=payload.get("details"),
    )
    return entry.to_dict(), 201
