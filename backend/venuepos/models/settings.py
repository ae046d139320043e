from __future__ import annotations

from ..extensions import db


class Setting(db.Model):
    """Key/value venue settings (taxRate, tableCount, ...). Values are stored as text."""
    __tablename__ = "settings"

    key = db.Column(db.String(50), primary_key=True)
    value = db.Column(db.Text, nullable=True)
