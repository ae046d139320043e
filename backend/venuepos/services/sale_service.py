"""
Sale finalization - turns a table's active order into an immutable Sale, once.

WHY: devices retry finalize after timeouts that may have hidden a successful
response, and offline devices replay it from their mutation queue. The
session id of the active order is the de-duplication key; the UNIQUE
constraint on sales.session_uuid is the last line of defence.
"""

import uuid

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import AlreadyProcessed, ConflictError, NotFoundError, ValidationError
from ..models import ActiveOrder, MenuItem, Sale, SaleItem
from ..validation import cents_from, parse_item_id, require_positive_int
from venuepos.time_utils import epoch_millis
from .concurrency import begin_write, run_with_retry
from .stock_service import record_sale_consumption


def _order_totals(order: dict, lines: list) -> tuple[int, int, int]:
    computed_subtotal = 0
    for line in lines:
        if isinstance(line, dict) and (line.get("price") is not None or line.get("price_cents") is not None):
            quantity = line.get("quantity")
            if isinstance(quantity, int) and not isinstance(quantity, bool):
                computed_subtotal += cents_from(line, "price") * quantity

    subtotal = cents_from(order, "subtotal", default=computed_subtotal)
    tax = cents_from(order, "tax", default=0)
    total = cents_from(order, "total", default=subtotal + tax)
    return subtotal, tax, total


def _raise_duplicate(session_uuid: str | None, sale_uuid: str):
    """Work out which unique key a failed header insert hit."""
    if session_uuid:
        existing = db.session.query(Sale).filter_by(session_uuid=session_uuid).first()
        if existing is not None:
            raise AlreadyProcessed(
                "Sale already paid",
                details={"saleId": existing.sale_uuid, "sessionUuid": session_uuid},
            )
    raise ConflictError("Duplicate sale id", details={"saleId": sale_uuid})


def finalize_sale(
    *,
    order: dict,
    table_id,
    table_name: str | None = None,
    user_id: int | None = None,
    session_uuid: str | None = None,
    sale_uuid: str | None = None,
) -> Sale:
    """
    Commit an order as a Sale in one transaction:

    1. refuse a session id that already produced a sale (AlreadyProcessed)
    2. insert the sale header
    3. delete the table's active order
    4. per line: check the product id is genuine and the product exists,
       snapshot the line, decrement stock (whole stock group) with a sale movement
    5. commit, then broadcast active orders and announce the sale

    Any failure in 2-4 rolls everything back; the active order is untouched.
    """
    if not isinstance(order, dict):
        raise ValidationError("order is required")
    lines = order.get("items") or []
    if not isinstance(lines, list) or not lines:
        raise ValidationError("Cannot finalize an empty order")

    table_key = str(table_id).strip() if table_id is not None else None
    session_key = str(session_uuid).strip() if session_uuid else None
    sale_key = str(sale_uuid).strip() if sale_uuid else f"sale-{epoch_millis()}-{uuid.uuid4().hex[:6]}"
    subtotal_cents, tax_cents, total_cents = _order_totals(order, lines)

    def _op():
        begin_write()

        if session_key:
            existing = db.session.query(Sale).filter_by(session_uuid=session_key).first()
            if existing is not None:
                raise AlreadyProcessed(
                    "Sale already paid",
                    details={"saleId": existing.sale_uuid, "sessionUuid": session_key},
                )

        sale = Sale(
            sale_uuid=sale_key,
            session_uuid=session_key,
            user_id=user_id,
            table_id=table_key,
            table_name=table_name or table_key,
            subtotal_cents=subtotal_cents,
            tax_cents=tax_cents,
            total_cents=total_cents,
        )
        db.session.add(sale)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            _raise_duplicate(session_key, sale_key)

        if table_key is not None:
            db.session.query(ActiveOrder).filter_by(table_id=table_key).delete(synchronize_session=False)

        for index, line in enumerate(lines):
            if not isinstance(line, dict):
                raise ValidationError(f"Line {index + 1} is not an object", details={"line": index})

            raw_id = line.get("id")
            name = line.get("name")
            item_id = parse_item_id(raw_id)
            if item_id is None:
                raise ValidationError(
                    f"Line {index + 1} ({name or 'unnamed'}) has an invalid product id: {raw_id!r}",
                    details={"line": index, "item_id": raw_id, "name": name},
                )

            item = db.session.get(MenuItem, item_id)
            if item is None:
                raise NotFoundError(
                    f"Line {index + 1} ({name or 'unnamed'}) refers to a product that no longer exists",
                    details={"line": index, "item_id": item_id, "name": name},
                )

            quantity = require_positive_int(line.get("quantity"), f"items[{index}].quantity")
            price_cents = cents_from(line, "price", default=item.price_cents)

            db.session.add(SaleItem(
                sale_id=sale.id,
                item_id=item.id,
                item_name=name or item.name,
                price_at_sale_cents=price_cents,
                quantity=quantity,
            ))

            record_sale_consumption(
                item=item,
                quantity=quantity,
                sale_id=sale.id,
                reason=f"Sale {sale.sale_uuid}",
                user_id=user_id,
            )

        db.session.commit()
        return sale

    sale = run_with_retry(_op)

    from . import replication_service
    replication_service.broadcast_active_orders()
    replication_service.announce_sale(sale.to_dict())
    return sale


def list_sales(limit: int = 200) -> list[Sale]:
    return (
        db.session.query(Sale)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .limit(limit)
        .all()
    )


def get_sale(sale_uuid: str) -> Sale:
    sale = db.session.query(Sale).filter_by(sale_uuid=sale_uuid).first()
    if sale is None:
        raise NotFoundError("Sale not found", details={"saleId": sale_uuid})
    return sale
