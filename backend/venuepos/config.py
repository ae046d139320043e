# backend/venuepos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/venuepos.sqlite3 unless DATABASE_URL points elsewhere
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///venuepos.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Real-time channel; waiters connect from phones on the venue LAN
    SOCKETIO_CORS_ORIGINS = os.environ.get("SOCKETIO_CORS_ORIGINS", "*")
    SOCKETIO_ASYNC_MODE = os.environ.get("SOCKETIO_ASYNC_MODE", "threading")

    # Used by /api/bootstrap when the settings table is empty
    DEFAULT_TAX_RATE = os.environ.get("DEFAULT_TAX_RATE", "0.09")
    DEFAULT_TABLE_COUNT = int(os.environ.get("DEFAULT_TABLE_COUNT", "50"))

    SEED_DEFAULT_USERS = True
