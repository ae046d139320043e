# Overview: Catalog, operator, settings and table-history mutations replayed by device queues.

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import HistoryEntry, MenuCategory, MenuItem, Setting, User
from ..validation import cents_from, require_int, require_positive_int
from .concurrency import begin_write, run_with_retry
from . import stock_service
"""
Catalog Invariants (authoritative)

- Single-statement atomicity only; nothing here coordinates with other writers
  beyond the stock-group rules delegated to stock_service.
- Stock counter edits made through the catalog are booked as correction
  movements. Threshold and tracking edits land on every stock-group member.
- Deletes are idempotent: removing a missing row reports deleted=False rather
  than 404, so a replayed offline delete drains cleanly.
- Users are deactivated, never removed; sales and movements keep their operator.
"""


TAX_RATE_KEY = "taxRate"
TABLE_COUNT_KEY = "tableCount"

USER_ROLES = ("ADMIN", "CASHIER")

DEFAULT_USERS = (
    {"username": "Admin", "pin": "1234", "role": "ADMIN"},
    {"username": "Kamarier", "pin": "0000", "role": "CASHIER"},
)


def _require_text(data: dict, key: str, *, max_length: int) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{key} is required")
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{key} is too long")
    return value


def _optional_text(data: dict, key: str, *, max_length: int) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{key} is too long")
    return value or None


def _require_bool(value, field: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be true or false")
    return value


# --- Menu items --------------------------------------------------------------


def list_menu_items(*, include_inactive: bool = False) -> list[MenuItem]:
    query = db.session.query(MenuItem)
    if not include_inactive:
        query = query.filter(MenuItem.is_active.is_(True))
    return query.order_by(MenuItem.category_name, MenuItem.display_order, MenuItem.id).all()


def get_menu_item(item_id: int) -> MenuItem:
    item = db.session.get(MenuItem, item_id)
    if item is None:
        raise NotFoundError("Menu item not found", details={"item_id": item_id})
    return item


def _apply_item_fields(item: MenuItem, data: dict, *, user_id: int | None) -> None:
    if "name" in data:
        item.name = _require_text(data, "name", max_length=100)
    if "price" in data or "price_cents" in data:
        item.price_cents = cents_from(data, "price")
    if "category" in data:
        item.category_name = _optional_text(data, "category", max_length=50)
    if "printer" in data:
        item.printer = _optional_text(data, "printer", max_length=20)
    if "display_order" in data:
        item.display_order = require_int(data["display_order"], "display_order")
    if "is_active" in data:
        item.is_active = _require_bool(data["is_active"], "is_active")

    # Group membership first, so threshold/tracking edits below reach the new group
    if "stockGroupId" in data:
        stock_service.join_stock_group(
            item=item,
            stock_group_id=_optional_text(data, "stockGroupId", max_length=50),
            user_id=user_id,
        )

    members = [item]
    if item.stock_group_id:
        members = (
            db.session.query(MenuItem)
            .filter_by(stock_group_id=item.stock_group_id)
            .order_by(MenuItem.id)
            .all()
        )
    if "stockThreshold" in data:
        threshold = require_int(data["stockThreshold"], "stockThreshold")
        for member in members:
            member.stock_threshold = threshold
    if "trackStock" in data:
        track = _require_bool(data["trackStock"], "trackStock")
        for member in members:
            member.track_stock = track

    if "stock" in data:
        stock_service.set_stock_level(
            item_id=item.id,
            new_stock=require_int(data["stock"], "stock"),
            reason=data.get("reason") or "Catalog stock edit",
            user_id=user_id,
        )


def create_menu_item(data: dict, *, user_id: int | None = None) -> MenuItem:
    if not isinstance(data, dict):
        raise ValidationError("menu item payload must be an object")
    name = _require_text(data, "name", max_length=100)
    price_cents = cents_from(data, "price")

    def _op():
        begin_write()
        item = MenuItem(name=name, price_cents=price_cents, stock=0)
        db.session.add(item)
        db.session.flush()
        _apply_item_fields(item, data, user_id=user_id)
        db.session.commit()
        return item

    item = run_with_retry(_op)
    current_app.logger.info("Created menu item %s (%s)", item.id, item.name)
    return item


def update_menu_item(item_id: int, data: dict, *, user_id: int | None = None) -> MenuItem:
    if not isinstance(data, dict):
        raise ValidationError("menu item payload must be an object")

    def _op():
        begin_write()
        item = get_menu_item(item_id)
        _apply_item_fields(item, data, user_id=user_id)
        db.session.commit()
        return item

    return run_with_retry(_op)


def delete_menu_item(item_id: int) -> bool:
    """Hide the item from the menu. Sales and movements keep referencing it."""

    def _op():
        item = db.session.get(MenuItem, item_id)
        if item is None or not item.is_active:
            return False
        item.is_active = False
        db.session.commit()
        return True

    return run_with_retry(_op)


# --- Categories --------------------------------------------------------------


def list_categories() -> list[MenuCategory]:
    return db.session.query(MenuCategory).order_by(MenuCategory.display_order, MenuCategory.id).all()


def _commit_unique_category(name: str):
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Category already exists", details={"name": name})


def create_category(data: dict) -> MenuCategory:
    if not isinstance(data, dict):
        raise ValidationError("category payload must be an object")
    name = _require_text(data, "name", max_length=50)
    display_order = require_int(data.get("display_order", 0), "display_order")

    def _op():
        category = MenuCategory(name=name, display_order=display_order)
        db.session.add(category)
        _commit_unique_category(name)
        return category

    return run_with_retry(_op)


def update_category(category_id: int, data: dict) -> MenuCategory:
    """Rename and/or reorder. A rename is carried over to the category's items."""
    if not isinstance(data, dict):
        raise ValidationError("category payload must be an object")

    def _op():
        category = db.session.get(MenuCategory, category_id)
        if category is None:
            raise NotFoundError("Category not found", details={"category_id": category_id})

        if "name" in data:
            new_name = _require_text(data, "name", max_length=50)
            if new_name != category.name:
                db.session.query(MenuItem).filter_by(category_name=category.name).update(
                    {MenuItem.category_name: new_name}, synchronize_session=False
                )
                category.name = new_name
        if "display_order" in data:
            category.display_order = require_int(data["display_order"], "display_order")
        _commit_unique_category(category.name)
        return category

    return run_with_retry(_op)


def delete_category(category_id: int) -> bool:
    """Remove the category; its items become uncategorized."""

    def _op():
        category = db.session.get(MenuCategory, category_id)
        if category is None:
            return False
        db.session.query(MenuItem).filter_by(category_name=category.name).update(
            {MenuItem.category_name: None}, synchronize_session=False
        )
        db.session.delete(category)
        db.session.commit()
        return True

    return run_with_retry(_op)


# --- Users -------------------------------------------------------------------


def list_users(*, include_inactive: bool = False) -> list[User]:
    query = db.session.query(User)
    if not include_inactive:
        query = query.filter(User.active.is_(True))
    return query.order_by(User.id).all()


def create_user(data: dict) -> User:
    if not isinstance(data, dict):
        raise ValidationError("user payload must be an object")
    username = _require_text(data, "username", max_length=50)
    pin = _require_text(data, "pin", max_length=10)
    if not pin.isdigit():
        raise ValidationError("pin must be numeric")
    role = str(data.get("role") or "CASHIER").upper()
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of {', '.join(USER_ROLES)}")

    def _op():
        existing = db.session.query(User).filter_by(username=username).first()
        if existing is not None:
            if existing.active:
                raise ConflictError("Username already exists", details={"username": username})
            # Re-adding a deactivated operator brings the same row back
            existing.pin = pin
            existing.role = role
            existing.active = True
            db.session.commit()
            return existing

        user = User(username=username, pin=pin, role=role, active=True)
        db.session.add(user)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("Username already exists", details={"username": username})
        return user

    return run_with_retry(_op)


def deactivate_user(user_id: int) -> bool:
    def _op():
        user = db.session.get(User, user_id)
        if user is None or not user.active:
            return False
        user.active = False
        db.session.commit()
        return True

    return run_with_retry(_op)


def seed_default_users() -> int:
    """Create the stock operators when the users table is empty. Returns rows added."""
    if db.session.query(User).count() > 0:
        return 0
    for fields in DEFAULT_USERS:
        db.session.add(User(**fields))
    db.session.commit()
    return len(DEFAULT_USERS)


# --- Settings ----------------------------------------------------------------


def _upsert_setting(key: str, value: str) -> None:
    def _op():
        setting = db.session.get(Setting, key)
        if setting is None:
            db.session.add(Setting(key=key, value=value))
        else:
            setting.value = value
        db.session.commit()

    run_with_retry(_op)


def get_settings() -> dict:
    stored = {row.key: row.value for row in db.session.query(Setting).all()}
    tax_rate = stored.get(TAX_RATE_KEY) or str(current_app.config["DEFAULT_TAX_RATE"])
    table_count = stored.get(TABLE_COUNT_KEY) or str(current_app.config["DEFAULT_TABLE_COUNT"])
    settings = dict(stored)
    settings[TAX_RATE_KEY] = tax_rate
    settings[TABLE_COUNT_KEY] = int(table_count)
    return settings


def set_tax_rate(rate) -> str:
    """Store the rate as a decimal fraction string (0.09 for 9%)."""
    if rate is None or isinstance(rate, bool):
        raise ValidationError("rate is required")
    try:
        value = Decimal(str(rate))
    except (InvalidOperation, ValueError):
        raise ValidationError("rate must be a number")
    if not value.is_finite() or value < 0 or value >= 1:
        raise ValidationError("rate must be between 0 and 1")
    stored = format(value.normalize(), "f")
    _upsert_setting(TAX_RATE_KEY, stored)
    return stored


def set_table_count(count) -> int:
    count = require_positive_int(count, "count")
    _upsert_setting(TABLE_COUNT_KEY, str(count))
    return count


# --- Table history -----------------------------------------------------------


def list_history(*, table_id: str | None = None, limit: int = 200) -> list[HistoryEntry]:
    query = db.session.query(HistoryEntry)
    if table_id:
        query = query.filter_by(table_id=str(table_id))
    return query.order_by(HistoryEntry.timestamp.desc(), HistoryEntry.id.desc()).limit(limit).all()


def add_history_entry(*, table_id, user_id, details) -> HistoryEntry:
    if not isinstance(details, str) or not details.strip():
        raise ValidationError("details is required")
    if user_id is not None:
        user_id = require_positive_int(user_id, "userId")
        if db.session.get(User, user_id) is None:
            raise NotFoundError("User not found", details={"user_id": user_id})

    def _op():
        entry = HistoryEntry(
            table_id=str(table_id) if table_id is not None else None,
            user_id=user_id,
            details=details.strip(),
        )
        db.session.add(entry)
        db.session.commit()
        return entry

    return run_with_retry(_op)
