from __future__ import annotations

from ..extensions import db
from venuepos.time_utils import to_utc_z


class ActiveOrder(db.Model):
    """
    Canonical in-progress order for one table.

    One row per table_id (unique). A row only exists while the table has at
    least one line; emptied or finalized orders are deleted, not kept with an
    empty list. session_uuid ties the order to the Sale it eventually produces
    and is the idempotency key for finalization.
    """
    __tablename__ = "active_orders"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    table_id = db.Column(db.String(50), nullable=False, unique=True)
    session_uuid = db.Column(db.String(100), nullable=False)

    # Ordered list of line dicts; always reassigned, never mutated in place
    items = db.Column(db.JSON, nullable=False, default=list)

    status = db.Column(db.String(20), nullable=False, default="open")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "table_id": self.table_id,
            "session_uuid": self.session_uuid,
            "items": list(self.items or []),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class HistoryEntry(db.Model):
    """Operator-facing activity log per table ("order sent", "invoice finalized", ...)."""
    __tablename__ = "history"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    table_id = db.Column(db.String(50), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    details = db.Column(db.Text, nullable=False)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tableId": self.table_id,
            "timestamp": to_utc_z(self.timestamp),
            "user": self.user.to_dict() if self.user else None,
            "details": self.details,
        }
