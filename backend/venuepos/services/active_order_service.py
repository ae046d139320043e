# Overview: Active-order store; one canonical in-progress order per table, persisted before broadcast.

from __future__ import annotations

import uuid

from sqlalchemy.dialects import postgresql, sqlite

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import ActiveOrder
from venuepos.time_utils import utcnow
from .concurrency import begin_write, lock_for_update, run_with_retry
"""
Active-Order Store Invariants (authoritative)

- At most one row per table_id (UNIQUE). Writes use the dialect's atomic
  INSERT ... ON CONFLICT DO UPDATE, never read-then-write.
- A row exists only while it has at least one line. Writing an empty list
  deletes the row.
- session_uuid survives updates unless the incoming value is a real id. A
  device reconnecting with a placeholder must not replace the real session id
  that the eventual Sale will be keyed on.
- Every line carries a uniqueId. Transfers append lines as-is; they are never
  merged with same-product lines at the destination.
- Every successful write is followed by a broadcast of the full, re-read
  set of active orders (pass broadcast=False to batch several writes).
"""


PLACEHOLDER_SESSION_PREFIXES = ("temp-", "offline-", "pending")


def is_placeholder_session(session_uuid: str | None) -> bool:
    """True for missing/blank ids and the temporary ids devices mint offline."""
    if session_uuid is None:
        return True
    value = str(session_uuid).strip()
    if not value:
        return True
    return value.lower().startswith(PLACEHOLDER_SESSION_PREFIXES)


def new_session_uuid() -> str:
    return str(uuid.uuid4())


def _normalize_table_id(table_id) -> str:
    if table_id is None:
        raise ValidationError("tableId is required")
    value = str(table_id).strip()
    if not value:
        raise ValidationError("tableId is required")
    if len(value) > 50:
        raise ValidationError("tableId is too long")
    return value


def _normalize_items(items) -> list[dict]:
    """
    Validate order lines and give each one a uniqueId.

    Lines are stored as the devices send them (name/price/addedBy/...), with
    quantity coerced to a positive int.
    """
    if items is None:
        return []
    if not isinstance(items, list):
        raise ValidationError("items must be a list")

    normalized = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        line = dict(raw)
        quantity = line.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, (int, float)) or int(quantity) != quantity:
            raise ValidationError(
                f"items[{index}].quantity must be an integer",
                details={"line": index, "uniqueId": line.get("uniqueId")},
            )
        if quantity <= 0:
            raise ValidationError(
                f"items[{index}].quantity must be positive",
                details={"line": index, "uniqueId": line.get("uniqueId")},
            )
        line["quantity"] = int(quantity)
        if not line.get("uniqueId"):
            line["uniqueId"] = uuid.uuid4().hex
        normalized.append(line)
    return normalized


def _upsert_statement(table_id: str, session_uuid: str, items: list[dict], incoming_is_real: bool):
    dialect = db.engine.dialect.name
    if dialect == "postgresql":
        insert = postgresql.insert
    elif dialect == "sqlite":
        insert = sqlite.insert
    else:
        raise RuntimeError(f"active order upsert not supported on {dialect}")

    now = utcnow()
    stmt = insert(ActiveOrder.__table__).values(
        table_id=table_id,
        session_uuid=session_uuid,
        items=items,
        status="open",
        created_at=now,
        updated_at=now,
    )
    update = {
        "items": stmt.excluded["items"],
        "status": "open",
        "updated_at": now,
    }
    if incoming_is_real:
        update["session_uuid"] = stmt.excluded["session_uuid"]
    return stmt.on_conflict_do_update(index_elements=["table_id"], set_=update)


def _broadcast() -> None:
    from . import replication_service
    replication_service.broadcast_active_orders()


def list_active_orders() -> list[dict]:
    rows = db.session.query(ActiveOrder).order_by(ActiveOrder.table_id).all()
    return [row.to_dict() for row in rows]


def get_active_order(table_id) -> dict | None:
    row = db.session.query(ActiveOrder).filter_by(table_id=_normalize_table_id(table_id)).first()
    return row.to_dict() if row else None


def upsert(table_id, session_uuid: str | None, items, *, broadcast: bool = True) -> dict | None:
    """
    Write the full line list for a table.

    Returns the persisted order, or None when items was empty and the table
    was cleared.
    """
    table_key = _normalize_table_id(table_id)
    lines = _normalize_items(items)
    if not lines:
        clear(table_key, broadcast=broadcast)
        return None

    incoming_is_real = not is_placeholder_session(session_uuid)
    candidate_session = str(session_uuid).strip() if incoming_is_real else new_session_uuid()

    def _op():
        db.session.execute(_upsert_statement(table_key, candidate_session, lines, incoming_is_real))
        db.session.commit()
        # Re-read the committed row; the broadcast carries what was persisted
        return db.session.query(ActiveOrder).filter_by(table_id=table_key).one().to_dict()

    persisted = run_with_retry(_op)
    if broadcast:
        _broadcast()
    return persisted


def clear(table_id, *, broadcast: bool = True) -> bool:
    """Delete the table's active order. Returns False if there was none."""
    table_key = _normalize_table_id(table_id)

    def _op():
        deleted = db.session.query(ActiveOrder).filter_by(table_id=table_key).delete(
            synchronize_session=False
        )
        db.session.commit()
        return deleted > 0

    deleted = run_with_retry(_op)
    if broadcast:
        _broadcast()
    return deleted


def transfer(
    source_table_id,
    dest_table_id,
    item_unique_ids: list[str] | None = None,
    *,
    broadcast: bool = True,
) -> dict:
    """
    Move all lines, or only the lines whose uniqueId is listed, to another table.

    Moved lines are appended to the destination unchanged. An emptied source
    row is deleted. A destination without an order gets a fresh session id.
    """
    source_key = _normalize_table_id(source_table_id)
    dest_key = _normalize_table_id(dest_table_id)
    if source_key == dest_key:
        raise ValidationError("source and destination tables must differ")

    selection = None
    if item_unique_ids is not None:
        if not isinstance(item_unique_ids, list):
            raise ValidationError("itemUniqueIds must be a list")
        selection = {str(unique_id) for unique_id in item_unique_ids}

    def _op():
        begin_write()
        # Lock both rows in table_id order
        rows = lock_for_update(
            db.session.query(ActiveOrder)
            .filter(ActiveOrder.table_id.in_(sorted([source_key, dest_key])))
            .order_by(ActiveOrder.table_id)
        ).all()
        by_table = {row.table_id: row for row in rows}

        source = by_table.get(source_key)
        if source is None or not source.items:
            raise NotFoundError(
                "Source table has no active order",
                details={"sourceTableId": source_key},
            )

        source_lines = list(source.items)
        if selection is None:
            moving = source_lines
            staying = []
        else:
            moving = [line for line in source_lines if str(line.get("uniqueId")) in selection]
            staying = [line for line in source_lines if str(line.get("uniqueId")) not in selection]
            if not moving:
                raise ValidationError(
                    "No items selected for transfer",
                    details={"sourceTableId": source_key, "itemUniqueIds": sorted(selection)},
                )

        dest = by_table.get(dest_key)
        if dest is None:
            dest = ActiveOrder(
                table_id=dest_key,
                session_uuid=new_session_uuid(),
                items=list(moving),
                status="open",
            )
            db.session.add(dest)
        else:
            dest.items = list(dest.items or []) + list(moving)
            if is_placeholder_session(dest.session_uuid):
                dest.session_uuid = new_session_uuid()
            dest.updated_at = utcnow()

        if staying:
            source.items = staying
            source.updated_at = utcnow()
        else:
            db.session.delete(source)

        db.session.commit()
        return {
            "moved": len(moving),
            "sourceTableId": source_key,
            "destTableId": dest_key,
            "sourceCleared": not staying,
        }

    result = run_with_retry(_op)
    if broadcast:
        _broadcast()
    return result
