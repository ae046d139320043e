# backend/venuepos/routes/system.py
"""
Health and bootstrap endpoints.

/api/bootstrap is what a device loads on start (and after reconnecting) before
it joins the real-time channel: operators, catalog, settings and the current
active orders in one response.
"""

import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import ActiveOrder, MenuItem
from ..services import active_order_service, catalog_service, replication_service
from venuepos.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        item_count = db.session.query(MenuItem).count()
        open_tables = db.session.query(ActiveOrder).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "menu_items": item_count,
                "open_tables": open_tables,
            },
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database reachable
    - 503: database unreachable

    The replication block reports whether a leader device currently holds the
    lease; having none is normal and does not degrade the status.
    """
    database_health = check_database_health()
    lease = replication_service.get_lease()

    http_status = 200 if database_health["status"] == "healthy" else 503
    response = {
        "status": database_health["status"],
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {
            "database": database_health,
            "replication": {
                "leader_connected": lease.holder is not None,
                "leader_since": to_utc_z(lease.acquired_at),
            },
        },
    }
    return response, http_status


@system_bp.get("/bootstrap")
def bootstrap():
    return {
        "users": [u.to_dict() for u in catalog_service.list_users()],
        "menuItems": [i.to_dict() for i in catalog_service.list_menu_items()],
        "menuCategories": [c.to_dict() for c in catalog_service.list_categories()],
        "settings": catalog_service.get_settings(),
        "activeOrders": active_order_service.list_active_orders(),
    }
