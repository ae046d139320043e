from __future__ import annotations

from ..extensions import db
from venuepos.time_utils import to_utc_z


MOVEMENT_TYPES = ("supply", "sale", "waste", "correction")


class StockMovement(db.Model):
    """
    Append-only stock ledger entry.

    quantity is the signed delta applied to the item's counter (and to every
    member of its stock group). unit_cost_cents is the batch's own unit cost on
    supply rows, not the blended average.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint(
            "type IN ('supply', 'sale', 'waste', 'correction')",
            name="ck_stock_movements_type",
        ),
        db.Index("ix_stock_movements_item_created", "item_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("menu_items.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    type = db.Column(db.String(20), nullable=False, index=True)
    reason = db.Column(db.String(255), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    unit_cost_cents = db.Column(db.Integer, nullable=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    item = db.relationship("MenuItem")
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "item_name": self.item.name if self.item else None,
            "quantity": self.quantity,
            "type": self.type,
            "reason": self.reason,
            "unit_cost_cents": self.unit_cost_cents,
            "sale_id": self.sale_id,
            "username": self.user.username if self.user else None,
            "created_at": to_utc_z(self.created_at),
        }
