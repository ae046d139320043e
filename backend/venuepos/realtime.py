# Overview: Socket.IO event handlers for the replication channel.

# backend/venuepos/realtime.py
"""
Real-time channel handlers.

Every handler is thin: it identifies the sender (request.sid), calls
replication_service, and acks the sender. Persisted state reaches all clients
through the STATE_BROADCAST emitted by the service after each write.
"""

from flask import current_app, request
from flask_socketio import emit

from .extensions import socketio
from .errors import PosError
from .services import active_order_service, replication_service
from .events import (
    ANNOUNCE_LEADER,
    EDIT,
    EDIT_REJECTED,
    REQUEST_INITIAL_STATE,
    REQUEST_STATE,
    SHARE_YOUR_STATE,
    STATE_BROADCAST,
    STATE_SNAPSHOT,
)


@socketio.on("connect")
def handle_connect(auth=None):
    current_app.logger.info("Real-time client connected: %s", request.sid)
    emit(STATE_BROADCAST, active_order_service.list_active_orders())


@socketio.on("disconnect")
def handle_disconnect(*args):
    sid = request.sid
    if replication_service.get_lease().release(sid):
        current_app.logger.info("Leader %s disconnected; lease released", sid)
    else:
        current_app.logger.info("Real-time client disconnected: %s", sid)


@socketio.on(ANNOUNCE_LEADER)
def handle_announce_leader(data=None):
    sid = request.sid
    previous = replication_service.get_lease().acquire(sid)
    if previous and previous != sid:
        current_app.logger.info("Leader lease moved from %s to %s", previous, sid)
    else:
        current_app.logger.info("Client %s holds the leader lease", sid)
    emit(REQUEST_INITIAL_STATE)
    return {"ok": True, "leader": sid}


@socketio.on(REQUEST_STATE)
def handle_request_state(data=None):
    sid = request.sid
    leader = replication_service.leader_to_ask(sid)
    if leader is not None:
        socketio.emit(SHARE_YOUR_STATE, {"requester": sid}, to=leader)
    emit(STATE_BROADCAST, active_order_service.list_active_orders())
    return {"ok": True, "forwardedTo": leader}


@socketio.on(STATE_SNAPSHOT)
def handle_state_snapshot(tables):
    sid = request.sid
    try:
        written = replication_service.apply_snapshot(sid, tables)
    except PosError as e:
        emit(EDIT_REJECTED, e.to_dict())
        return {"ok": False, "error": e.message}
    except Exception:
        current_app.logger.exception("Failed to apply state snapshot from %s", sid)
        return {"ok": False, "error": "Internal server error"}

    if written == 0 and not replication_service.get_lease().is_holder(sid):
        current_app.logger.info("Ignored snapshot from non-leader %s", sid)
        return {"ok": False, "error": "not the leader"}
    return {"ok": True, "tables": written}


@socketio.on(EDIT)
def handle_edit(payload):
    table_id = payload.get("tableId") if isinstance(payload, dict) else None
    try:
        persisted = replication_service.apply_edit(payload)
    except PosError as e:
        emit(EDIT_REJECTED, {**e.to_dict(), "tableId": table_id})
        return {"ok": False, "error": e.message}
    except Exception:
        current_app.logger.exception("Failed to apply edit from %s", request.sid)
        return {"ok": False, "error": "Internal server error"}
    return {"ok": True, "order": persisted}
