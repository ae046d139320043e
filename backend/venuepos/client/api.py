# Overview: HTTP client for the POS server, plus the dispatcher that replays queued mutations.

from __future__ import annotations

import logging
from urllib.parse import quote

import httpx

from venuepos.errors import (
    ConflictError,
    NotFoundError,
    PosError,
    TransientError,
    UnsupportedOperation,
    ValidationError,
)
from .mutations import MutationKind

logger = logging.getLogger(__name__)


def _table_path(table_id) -> str:
    return quote(str(table_id), safe="")


class RemoteApi:
    """
    Thin wrapper over the server's JSON API.

    Failures are mapped onto the domain taxonomy so the mutation queue can
    decide what to do with them:
    - connection problems and 5xx -> TransientError (retry later)
    - 404/405/501 without a JSON error body -> UnsupportedOperation (route missing)
    - 409 -> ConflictError (already applied)
    - other 4xx -> ValidationError / NotFoundError
    """

    def __init__(self, base_url: str, *, timeout: float = 10.0, transport: httpx.BaseTransport | None = None):
        self._client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _request(self, method: str, path: str, *, json=None, params=None) -> dict:
        try:
            response = self._client.request(method, path, json=json, params=params)
        except httpx.TransportError as e:
            raise TransientError(f"{method} {path} failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            body = {} if body is None else {"data": body}

        status = response.status_code
        if status < 400:
            return body

        message = body.get("error") or f"{method} {path} returned {status}"
        details = body.get("details") or {}
        if status in (404, 405, 501) and "error" not in body:
            raise UnsupportedOperation(f"{method} {path} is not supported by the server", {"status": status})
        if status >= 500:
            raise TransientError(message, details)
        if status == 409:
            raise ConflictError(message, details)
        if status == 404:
            raise NotFoundError(message, details)
        if status == 400:
            raise ValidationError(message, details)
        raise PosError(message, details)

    # Reads

    def health(self) -> dict:
        return self._request("GET", "/api/health")

    def bootstrap(self) -> dict:
        return self._request("GET", "/api/bootstrap")

    def list_active_orders(self) -> list[dict]:
        return self._request("GET", "/api/active-orders").get("orders", [])

    def list_history(self, table_id=None) -> list[dict]:
        params = {"tableId": table_id} if table_id is not None else None
        return self._request("GET", "/api/history", params=params).get("history", [])

    # Writes

    def save_active_order(self, table_id, items, session_uuid=None) -> dict:
        return self._request(
            "PUT",
            f"/api/active-orders/{_table_path(table_id)}",
            json={"sessionUuid": session_uuid, "items": items},
        )

    def clear_active_order(self, table_id) -> dict:
        return self._request("DELETE", f"/api/active-orders/{_table_path(table_id)}")

    def transfer_table(self, source_table_id, dest_table_id, item_unique_ids=None) -> dict:
        body = {"sourceTableId": source_table_id, "destTableId": dest_table_id}
        if item_unique_ids is not None:
            body["itemUniqueIds"] = item_unique_ids
        return self._request("PUT", "/api/active-orders/transfer", json=body)

    def finalize_sale(self, *, table_id, order, session_uuid=None, sale_id=None, table_name=None, user_id=None) -> dict:
        """A 200 "already_paid" answer is returned like a fresh 201; both mean the sale exists."""
        body = self._request(
            "POST",
            "/api/sales",
            json={
                "order": order,
                "tableId": table_id,
                "tableName": table_name,
                "userId": user_id,
                "sessionUuid": session_uuid,
                "saleId": sale_id,
            },
        )
        if body.get("status") == "already_paid":
            logger.info("Sale for session %s was already paid", session_uuid)
        return body

    def add_user(self, username, pin, role="CASHIER") -> dict:
        return self._request("POST", "/api/users", json={"username": username, "pin": pin, "role": role})

    def delete_user(self, user_id) -> dict:
        return self._request("DELETE", f"/api/users/{int(user_id)}")

    def add_menu_item(self, fields: dict) -> dict:
        return self._request("POST", "/api/menu-items", json=fields)

    def update_menu_item(self, item_id, fields: dict) -> dict:
        return self._request("PUT", f"/api/menu-items/{int(item_id)}", json=fields)

    def delete_menu_item(self, item_id) -> dict:
        return self._request("DELETE", f"/api/menu-items/{int(item_id)}")

    def add_menu_category(self, name, display_order=0) -> dict:
        return self._request("POST", "/api/menu-categories", json={"name": name, "display_order": display_order})

    def update_menu_category(self, category_id, fields: dict) -> dict:
        return self._request("PUT", f"/api/menu-categories/{int(category_id)}", json=fields)

    def delete_menu_category(self, category_id) -> dict:
        return self._request("DELETE", f"/api/menu-categories/{int(category_id)}")

    def add_history_entry(self, table_id, details, user_id=None) -> dict:
        return self._request("POST", "/api/history", json={"tableId": table_id, "details": details, "userId": user_id})

    def set_tax_rate(self, rate) -> dict:
        return self._request("POST", "/api/settings/tax", json={"rate": rate})

    def set_table_count(self, count) -> dict:
        return self._request("POST", "/api/settings/table-count", json={"count": count})

    def stock_bulk_update(self, movements, reason=None, user_id=None, movement_type="supply") -> dict:
        return self._request(
            "POST",
            "/api/stock/bulk-update",
            json={"movements": movements, "reason": reason, "userId": user_id, "type": movement_type},
        )

    def stock_waste(self, item_id, quantity, reason=None, user_id=None, movement_type="waste") -> dict:
        return self._request(
            "POST",
            "/api/stock/waste",
            json={"itemId": item_id, "quantity": quantity, "reason": reason, "userId": user_id, "type": movement_type},
        )

    # Replay

    def apply(self, mutation) -> dict:
        """Send one queued mutation to the server."""
        return _DISPATCH[mutation.kind](self, mutation)


_DISPATCH = {
    MutationKind.SAVE_ACTIVE_ORDER: lambda api, m: api.save_active_order(m.table_id, m.items, m.session_uuid),
    MutationKind.CLEAR_ACTIVE_ORDER: lambda api, m: api.clear_active_order(m.table_id),
    MutationKind.TRANSFER_TABLE: lambda api, m: api.transfer_table(
        m.source_table_id, m.dest_table_id, m.item_unique_ids
    ),
    MutationKind.ADD_SALE: lambda api, m: api.finalize_sale(
        table_id=m.table_id,
        order=m.order,
        session_uuid=m.session_uuid,
        sale_id=m.sale_id,
        table_name=m.table_name,
        user_id=m.user_id,
    ),
    MutationKind.ADD_USER: lambda api, m: api.add_user(m.username, m.pin, m.role),
    MutationKind.DELETE_USER: lambda api, m: api.delete_user(m.user_id),
    MutationKind.ADD_MENU_ITEM: lambda api, m: api.add_menu_item(m.fields),
    MutationKind.UPDATE_MENU_ITEM: lambda api, m: api.update_menu_item(m.item_id, m.fields),
    MutationKind.DELETE_MENU_ITEM: lambda api, m: api.delete_menu_item(m.item_id),
    MutationKind.ADD_MENU_CATEGORY: lambda api, m: api.add_menu_category(m.name, m.display_order),
    MutationKind.UPDATE_MENU_CATEGORY: lambda api, m: api.update_menu_category(m.category_id, m.fields),
    MutationKind.DELETE_MENU_CATEGORY: lambda api, m: api.delete_menu_category(m.category_id),
    MutationKind.ADD_HISTORY_ENTRY: lambda api, m: api.add_history_entry(m.table_id, m.details, m.user_id),
    MutationKind.SET_TAX_RATE: lambda api, m: api.set_tax_rate(m.rate),
    MutationKind.SET_TABLE_COUNT: lambda api, m: api.set_table_count(m.count),
    MutationKind.STOCK_SUPPLY: lambda api, m: api.stock_bulk_update(
        m.movements, m.reason, m.user_id, m.movement_type
    ),
    MutationKind.STOCK_WASTE: lambda api, m: api.stock_waste(
        m.item_id, m.quantity, m.reason, m.user_id, m.movement_type
    ),
}

_undispatched = set(MutationKind) - set(_DISPATCH)
if _undispatched:
    raise RuntimeError(f"mutation kinds without a handler: {sorted(k.value for k in _undispatched)}")
