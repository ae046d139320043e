# backend/venuepos/client/config.py
from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class ClientConfig:
    # Base URL of the POS server (HTTP API and Socket.IO share it)
    server_url: str = "http://localhost:5000"

    # Local sqlite file holding the offline mutation queue
    queue_db_path: str = "venuepos-queue.sqlite3"

    request_timeout: float = 10.0

    @classmethod
    def from_env(cls) -> "ClientConfig":
        return cls(
            server_url=os.environ.get("VENUEPOS_SERVER_URL", cls.server_url),
            queue_db_path=os.environ.get("VENUEPOS_QUEUE_DB", cls.queue_db_path),
            request_timeout=float(os.environ.get("VENUEPOS_REQUEST_TIMEOUT", cls.request_timeout)),
        )
