from __future__ import annotations

from ..extensions import db
from venuepos.time_utils import to_utc_z


class Sale(db.Model):
    """
    Immutable financial record produced by sale finalization.

    WHY two ids: sale_uuid is the client-facing display id ("sale-<millis>"),
    id is the server sequence. session_uuid comes from the ActiveOrder the sale
    was created from; its UNIQUE constraint is what makes finalization
    idempotent. It is nullable for legacy/direct sales (NULLs never collide).
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_uuid = db.Column(db.String(50), nullable=False, unique=True)
    session_uuid = db.Column(db.String(100), nullable=True, unique=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    table_id = db.Column(db.String(50), nullable=True, index=True)
    table_name = db.Column(db.String(50), nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User")

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.sale_uuid,
            "sequence": self.id,
            "session_uuid": self.session_uuid,
            "date": to_utc_z(self.created_at),
            "tableId": self.table_id,
            "tableName": self.table_name,
            "user": self.user.to_dict() if self.user else None,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
        }
        if include_items:
            data["items"] = [line.to_dict() for line in self.items]
        return data


class SaleItem(db.Model):
    """
    Snapshot of one sold line.

    item_id is a weak reference: later catalog edits or deletions must not alter
    historical sales, so name and price are copied at sale time.
    """
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, nullable=False)
    item_name = db.Column(db.String(100), nullable=False)
    price_at_sale_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    sale = db.relationship(
        "Sale",
        backref=db.backref("items", lazy=True, order_by="SaleItem.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.item_id,
            "name": self.item_name,
            "price_cents": self.price_at_sale_cents,
            "quantity": self.quantity,
        }
