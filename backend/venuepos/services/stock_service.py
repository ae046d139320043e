# Overview: Stock ledger and costing; stock-group propagation and weighted-average cost.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import MenuItem, StockMovement, MOVEMENT_TYPES
from ..validation import require_int, require_positive_int
from .concurrency import begin_write, lock_for_update, run_with_retry
"""
Stock Ledger Invariants (authoritative)

- MenuItem.stock is a materialized counter. Every change to it appends exactly
  one StockMovement carrying the same signed delta, in the same transaction.
- Items sharing a stock_group_id share one physical counter. Any write lands on
  every member: after the operation all members carry the same stock (and, for
  supply, the same average_cost_cents).
- The movements of an item, or of its whole stock group, add up to its counter.
  A membership change books the correction that restores this for every
  history the change touches.
- Weighted-average cost is recomputed on supply only:
    new_avg = (old_stock * old_avg + total_cost) / (old_stock + quantity)
  rounded half-up to the cent. Waste, sale and correction never change it.
- A supply movement records the batch's own unit cost, not the blended average.
- Counters may go negative. A sale is never refused because the counter is off;
  the operator reconciles with a correction.
- Sale consumption only happens inside sale finalization (sale_service), which
  owns the transaction.
"""


def _div_half_up(numerator: int, denominator: int) -> int:
    """Integer division rounded half-up (both operands non-negative)."""
    return (2 * numerator + denominator) // (2 * denominator)


def _lock_group(item_id: int) -> tuple[MenuItem, list[MenuItem]]:
    """
    Return (item, members) with members locked in id order.

    members is [item] for an ungrouped item. Locking in a fixed order keeps two
    writers on the same group from deadlocking each other.
    """
    item = db.session.query(MenuItem).filter_by(id=item_id).first()
    if item is None:
        raise NotFoundError("Menu item not found", details={"item_id": item_id})

    if not item.stock_group_id:
        item = lock_for_update(db.session.query(MenuItem).filter_by(id=item_id)).first()
        return item, [item]

    members = lock_for_update(
        db.session.query(MenuItem)
        .filter_by(stock_group_id=item.stock_group_id)
        .order_by(MenuItem.id)
    ).all()
    return item, members


def _apply_delta(
    item: MenuItem,
    members: list[MenuItem],
    *,
    delta: int,
    movement_type: str,
    reason: str | None,
    user_id: int | None,
    unit_cost_cents: int | None = None,
    average_cost_cents: int | None = None,
    sale_id: int | None = None,
) -> StockMovement:
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"unknown movement type {movement_type!r}")

    new_stock = (item.stock or 0) + delta
    for member in members:
        member.stock = new_stock
        if average_cost_cents is not None:
            member.average_cost_cents = average_cost_cents

    movement = StockMovement(
        item_id=item.id,
        quantity=delta,
        type=movement_type,
        reason=reason,
        user_id=user_id,
        unit_cost_cents=unit_cost_cents,
        sale_id=sale_id,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def _receive_supply_inner(
    *,
    item_id: int,
    quantity: int,
    total_cost_cents: int | None,
    reason: str | None,
    user_id: int | None,
) -> StockMovement:
    """Core supply logic without transaction start, retry or commit."""
    item, members = _lock_group(item_id)

    old_stock = item.stock or 0
    old_avg = item.average_cost_cents or 0

    if total_cost_cents is None:
        # No invoice value given: the batch is valued at the current average
        batch_unit_cost = None
        total_cost_cents = old_avg * quantity
    else:
        batch_unit_cost = _div_half_up(total_cost_cents, quantity)

    # Legacy items carry stock but were never costed. Value that stock at the
    # incoming batch's cost rather than at zero.
    if old_avg == 0 and old_stock > 0 and batch_unit_cost is not None:
        old_avg = batch_unit_cost

    valued_stock = max(old_stock, 0)
    new_avg = _div_half_up(valued_stock * old_avg + total_cost_cents, valued_stock + quantity)

    return _apply_delta(
        item,
        members,
        delta=quantity,
        movement_type="supply",
        reason=reason,
        user_id=user_id,
        unit_cost_cents=batch_unit_cost,
        average_cost_cents=new_avg,
    )


def receive_supply(
    *,
    item_id: int,
    quantity,
    total_cost_cents: int | None,
    reason: str | None = None,
    user_id: int | None = None,
) -> StockMovement:
    """
    Book a delivery: increase stock and recompute the weighted-average cost
    for the item and every member of its stock group.
    """
    quantity = require_positive_int(quantity, "quantity")
    if total_cost_cents is not None and total_cost_cents < 0:
        raise ValidationError("totalCost cannot be negative")

    def _op():
        begin_write()
        movement = _receive_supply_inner(
            item_id=item_id,
            quantity=quantity,
            total_cost_cents=total_cost_cents,
            reason=reason,
            user_id=user_id,
        )
        db.session.commit()
        return movement

    return run_with_retry(_op)


def record_waste(
    *,
    item_id: int,
    quantity,
    reason: str | None = None,
    user_id: int | None = None,
    movement_type: str = "waste",
) -> StockMovement:
    """Remove spoiled/broken stock. quantity is positive; the movement is negative."""
    quantity = require_positive_int(quantity, "quantity")
    if movement_type not in ("waste", "correction"):
        raise ValidationError("type must be waste or correction")

    def _op():
        begin_write()
        item, members = _lock_group(item_id)
        movement = _apply_delta(
            item,
            members,
            delta=-quantity,
            movement_type=movement_type,
            reason=reason,
            user_id=user_id,
        )
        db.session.commit()
        return movement

    return run_with_retry(_op)


def record_correction(
    *,
    item_id: int,
    delta,
    reason: str | None = None,
    user_id: int | None = None,
) -> StockMovement:
    """Signed manual correction after a count. Never touches the average cost."""
    delta = require_int(delta, "quantity")
    if delta == 0:
        raise ValidationError("quantity must not be zero")

    def _op():
        begin_write()
        item, members = _lock_group(item_id)
        movement = _apply_delta(
            item,
            members,
            delta=delta,
            movement_type="correction",
            reason=reason,
            user_id=user_id,
        )
        db.session.commit()
        return movement

    return run_with_retry(_op)


def apply_bulk(
    *,
    movements: list[dict],
    reason: str | None = None,
    user_id: int | None = None,
    movement_type: str = "supply",
) -> list[StockMovement]:
    """
    Apply a delivery note (supply) or a count sheet (correction) in one transaction.

    Each entry is {"itemId", "quantity", "totalCost_cents"?}. Either every line
    applies or none does.
    """
    if movement_type not in ("supply", "correction"):
        raise ValidationError("type must be supply or correction")
    if not movements:
        raise ValidationError("movements must not be empty")

    lines = []
    for index, entry in enumerate(movements):
        item_id = require_positive_int(entry.get("itemId"), f"movements[{index}].itemId")
        if movement_type == "supply":
            quantity = require_positive_int(entry.get("quantity"), f"movements[{index}].quantity")
        else:
            quantity = require_int(entry.get("quantity"), f"movements[{index}].quantity")
            if quantity == 0:
                raise ValidationError(f"movements[{index}].quantity must not be zero")
        lines.append((item_id, quantity, entry.get("totalCost_cents")))

    def _op():
        begin_write()
        created = []
        for item_id, quantity, total_cost_cents in lines:
            if movement_type == "supply":
                movement = _receive_supply_inner(
                    item_id=item_id,
                    quantity=quantity,
                    total_cost_cents=total_cost_cents,
                    reason=reason,
                    user_id=user_id,
                )
            else:
                item, members = _lock_group(item_id)
                movement = _apply_delta(
                    item,
                    members,
                    delta=quantity,
                    movement_type="correction",
                    reason=reason,
                    user_id=user_id,
                )
            created.append(movement)
        db.session.commit()
        return created

    return run_with_retry(_op)


def record_sale_consumption(
    *,
    item: MenuItem,
    quantity: int,
    sale_id: int,
    reason: str | None,
    user_id: int | None,
) -> StockMovement | None:
    """
    Decrement stock for one sold line. Caller owns the transaction (no commit).

    Items that don't track stock are left alone: no counter change, no movement.
    """
    if not item.track_stock:
        return None

    item, members = _lock_group(item.id)
    return _apply_delta(
        item,
        members,
        delta=-quantity,
        movement_type="sale",
        reason=reason,
        user_id=user_id,
        sale_id=sale_id,
    )


def set_stock_level(
    *,
    item_id: int,
    new_stock: int,
    reason: str | None,
    user_id: int | None,
) -> StockMovement | None:
    """
    Overwrite the counter from a catalog edit as a correction movement.

    Caller owns the transaction. Returns None when the level is unchanged.
    """
    item, members = _lock_group(item_id)
    delta = new_stock - (item.stock or 0)
    if delta == 0:
        return None
    return _apply_delta(
        item,
        members,
        delta=delta,
        movement_type="correction",
        reason=reason,
        user_id=user_id,
    )


def _movement_sum(item_ids: list[int]) -> int:
    if not item_ids:
        return 0
    total = (
        db.session.query(func.coalesce(func.sum(StockMovement.quantity), 0))
        .filter(StockMovement.item_id.in_(item_ids))
        .scalar()
    )
    return int(total or 0)


def _book_reconciliation(
    item: MenuItem,
    *,
    counter: int,
    history_ids: list[int],
    reason: str,
    user_id: int | None,
) -> StockMovement | None:
    """
    Set item's counter and book the correction that makes the summed
    history of `history_ids` equal it. Used when group membership changes
    which movements an item's history covers.
    """
    item.stock = counter
    delta = counter - _movement_sum(history_ids)
    if delta == 0:
        return None
    movement = StockMovement(
        item_id=item.id,
        quantity=delta,
        type="correction",
        reason=reason,
        user_id=user_id,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def _leave_stock_group(item: MenuItem, *, user_id: int | None) -> None:
    group_id = item.stock_group_id
    remaining = lock_for_update(
        db.session.query(MenuItem)
        .filter(MenuItem.stock_group_id == group_id, MenuItem.id != item.id)
        .order_by(MenuItem.id)
    ).all()
    item.stock_group_id = None
    counter = item.stock or 0
    reason = f"Left stock group {group_id}"

    # Both sides keep the counter; each history must still add up to it
    _book_reconciliation(item, counter=counter, history_ids=[item.id], reason=reason, user_id=user_id)
    if remaining:
        _book_reconciliation(
            remaining[0],
            counter=counter,
            history_ids=[m.id for m in remaining],
            reason=reason,
            user_id=user_id,
        )


def join_stock_group(
    *,
    item: MenuItem,
    stock_group_id: str | None,
    user_id: int | None = None,
) -> StockMovement | None:
    """
    Move an item into (or out of) a stock group. Caller owns the transaction.

    Joining an existing group adopts the group's counter, threshold, tracking
    flag and average cost. The joining item's own movements become part of the
    group's history, so the correction booked on it is whatever brings the
    group's summed movements back to the adopted counter. The first member of
    a new group keeps its own values.
    """
    group_id = (stock_group_id or "").strip() or None
    if group_id == item.stock_group_id:
        return None

    if item.stock_group_id:
        _leave_stock_group(item, user_id=user_id)
    if group_id is None:
        return None

    members = lock_for_update(
        db.session.query(MenuItem)
        .filter(MenuItem.stock_group_id == group_id, MenuItem.id != item.id)
        .order_by(MenuItem.id)
    ).all()
    item.stock_group_id = group_id
    if not members:
        return None

    leader = members[0]
    item.stock_threshold = leader.stock_threshold
    item.track_stock = leader.track_stock
    item.average_cost_cents = leader.average_cost_cents
    return _book_reconciliation(
        item,
        counter=leader.stock or 0,
        history_ids=[m.id for m in members] + [item.id],
        reason=f"Joined stock group {group_id}",
        user_id=user_id,
    )


def get_stock_history(item_id: int, *, limit: int = 500) -> dict:
    """
    Movement history for an item, aggregated over its whole stock group.

    Grouped items share one inventory story, so the history of "Espresso"
    includes movements booked against "Double Espresso".
    """
    item = db.session.query(MenuItem).filter_by(id=item_id).first()
    if item is None:
        raise NotFoundError("Menu item not found", details={"item_id": item_id})

    if item.stock_group_id:
        members = (
            db.session.query(MenuItem)
            .filter_by(stock_group_id=item.stock_group_id)
            .order_by(MenuItem.id)
            .all()
        )
    else:
        members = [item]
    member_ids = [m.id for m in members]

    rows = (
        db.session.query(StockMovement)
        .filter(StockMovement.item_id.in_(member_ids))
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )

    totals = {movement_type: 0 for movement_type in MOVEMENT_TYPES}
    for movement_type, quantity in (
        db.session.query(StockMovement.type, func.coalesce(func.sum(StockMovement.quantity), 0))
        .filter(StockMovement.item_id.in_(member_ids))
        .group_by(StockMovement.type)
    ):
        totals[movement_type] = int(quantity)

    by_type: dict[str, list[dict]] = {movement_type: [] for movement_type in MOVEMENT_TYPES}
    detail = []
    for row in rows:
        entry = row.to_dict()
        by_type[row.type].append(entry)
        detail.append(entry)

    return {
        "item_id": item.id,
        "stock_group_id": item.stock_group_id,
        "members": [{"id": m.id, "name": m.name} for m in members],
        "stock": item.stock,
        "average_cost_cents": item.average_cost_cents,
        "totals": totals,
        "by_type": by_type,
        "movements": detail,
    }
