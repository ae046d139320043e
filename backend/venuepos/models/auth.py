from __future__ import annotations

from ..extensions import db


class User(db.Model):
    """
    Operator (cashier / waiter / admin).

    PIN lookup lives outside this service; users are referenced as the
    operator on sales, stock movements and history. Deleting a user only
    deactivates it so historical references stay intact.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(50), nullable=False, unique=True)
    pin = db.Column(db.String(10), nullable=False)
    role = db.Column(db.String(20), nullable=False, default="CASHIER")
    active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "role": self.role,
            "active": self.active,
        }
