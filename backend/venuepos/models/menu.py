from __future__ import annotations

from ..extensions import db
from venuepos.time_utils import to_utc_z


class MenuCategory(db.Model):
    __tablename__ = "menu_categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False, unique=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "display_order": self.display_order,
        }


class MenuItem(db.Model):
    """
    Sellable catalog item with a materialized stock counter.

    STOCK GROUPS:
    Items sharing a stock_group_id are different menu entries drawing on one
    physical inventory (e.g. "Espresso" and "Double Espresso" both consume beans
    counted in one bag count). For such items, stock, stock_threshold,
    track_stock and average_cost_cents are kept identical on every member;
    stock_service writes all members in the same transaction.

    The counter is not derived from stock_movements at read time. Every write to
    it appends a StockMovement in the same DB transaction.
    """
    __tablename__ = "menu_items"
    __table_args__ = (
        db.Index("ix_menu_items_category_order", "category_name", "display_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    # Loose link by name so category renames don't need id plumbing on devices
    category_name = db.Column(db.String(50), nullable=True, index=True)
    printer = db.Column(db.String(20), nullable=True)

    stock = db.Column(db.Integer, nullable=False, default=0)
    stock_threshold = db.Column(db.Integer, nullable=False, default=10)
    track_stock = db.Column(db.Boolean, nullable=False, default=False)
    stock_group_id = db.Column(db.String(50), nullable=True, index=True)

    # Weighted-average unit cost, recomputed on every supply
    average_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    display_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<MenuItem id={self.id} name={self.name!r} stock={self.stock} group={self.stock_group_id!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price_cents": self.price_cents,
            "category": self.category_name,
            "printer": self.printer,
            "stock": self.stock,
            "stockThreshold": self.stock_threshold,
            "trackStock": self.track_stock,
            "stockGroupId": self.stock_group_id,
            "average_cost_cents": self.average_cost_cents,
            "display_order": self.display_order,
            "is_active": self.is_active,
            "updated_at": to_utc_z(self.updated_at),
        }
