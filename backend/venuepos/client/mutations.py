# Overview: Closed set of mutations a device can queue while offline, one frozen payload type per kind.

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from typing import ClassVar


class MutationKind(str, enum.Enum):
    SAVE_ACTIVE_ORDER = "SAVE_ACTIVE_ORDER"
    CLEAR_ACTIVE_ORDER = "CLEAR_ACTIVE_ORDER"
    TRANSFER_TABLE = "TRANSFER_TABLE"
    ADD_SALE = "ADD_SALE"
    ADD_USER = "ADD_USER"
    DELETE_USER = "DELETE_USER"
    ADD_MENU_ITEM = "ADD_MENU_ITEM"
    UPDATE_MENU_ITEM = "UPDATE_MENU_ITEM"
    DELETE_MENU_ITEM = "DELETE_MENU_ITEM"
    ADD_MENU_CATEGORY = "ADD_MENU_CATEGORY"
    UPDATE_MENU_CATEGORY = "UPDATE_MENU_CATEGORY"
    DELETE_MENU_CATEGORY = "DELETE_MENU_CATEGORY"
    ADD_HISTORY_ENTRY = "ADD_HISTORY_ENTRY"
    SET_TAX_RATE = "SET_TAX_RATE"
    SET_TABLE_COUNT = "SET_TABLE_COUNT"
    STOCK_SUPPLY = "STOCK_SUPPLY"
    STOCK_WASTE = "STOCK_WASTE"


@dataclass(frozen=True)
class SaveActiveOrder:
    kind: ClassVar[MutationKind] = MutationKind.SAVE_ACTIVE_ORDER
    table_id: str
    items: list
    session_uuid: str | None = None


@dataclass(frozen=True)
class ClearActiveOrder:
    kind: ClassVar[MutationKind] = MutationKind.CLEAR_ACTIVE_ORDER
    table_id: str


@dataclass(frozen=True)
class TransferTable:
    kind: ClassVar[MutationKind] = MutationKind.TRANSFER_TABLE
    source_table_id: str
    dest_table_id: str
    item_unique_ids: list | None = None


@dataclass(frozen=True)
class AddSale:
    """Finalize a table. session_uuid is what makes a replay safe."""

    kind: ClassVar[MutationKind] = MutationKind.ADD_SALE
    table_id: str
    order: dict
    session_uuid: str | None = None
    sale_id: str | None = None
    table_name: str | None = None
    user_id: int | None = None


@dataclass(frozen=True)
class AddUser:
    kind: ClassVar[MutationKind] = MutationKind.ADD_USER
    username: str
    pin: str
    role: str = "CASHIER"


@dataclass(frozen=True)
class DeleteUser:
    kind: ClassVar[MutationKind] = MutationKind.DELETE_USER
    user_id: int


@dataclass(frozen=True)
class AddMenuItem:
    kind: ClassVar[MutationKind] = MutationKind.ADD_MENU_ITEM
    fields: dict = field(default_factory=dict)


@dataclass(frozen=True)
class UpdateMenuItem:
    kind: ClassVar[MutationKind] = MutationKind.UPDATE_MENU_ITEM
    item_id: int
    fields: dict = field(default_factory=dict)


@dataclass(frozen=True)
class DeleteMenuItem:
    kind: ClassVar[MutationKind] = MutationKind.DELETE_MENU_ITEM
    item_id: int


@dataclass(frozen=True)
class AddMenuCategory:
    kind: ClassVar[MutationKind] = MutationKind.ADD_MENU_CATEGORY
    name: str
    display_order: int = 0


@dataclass(frozen=True)
class UpdateMenuCategory:
    kind: ClassVar[MutationKind] = MutationKind.UPDATE_MENU_CATEGORY
    category_id: int
    fields: dict = field(default_factory=dict)


@dataclass(frozen=True)
class DeleteMenuCategory:
    kind: ClassVar[MutationKind] = MutationKind.DELETE_MENU_CATEGORY
    category_id: int


@dataclass(frozen=True)
class AddHistoryEntry:
    kind: ClassVar[MutationKind] = MutationKind.ADD_HISTORY_ENTRY
    table_id: str | None
    details: str
    user_id: int | None = None


@dataclass(frozen=True)
class SetTaxRate:
    # Decimal string ("0.09") so the value survives JSON unchanged
    kind: ClassVar[MutationKind] = MutationKind.SET_TAX_RATE
    rate: str


@dataclass(frozen=True)
class SetTableCount:
    kind: ClassVar[MutationKind] = MutationKind.SET_TABLE_COUNT
    count: int


@dataclass(frozen=True)
class StockSupply:
    """movements: [{"itemId", "quantity", "totalCost"?}]; movement_type supply or correction."""

    kind: ClassVar[MutationKind] = MutationKind.STOCK_SUPPLY
    movements: list
    reason: str | None = None
    user_id: int | None = None
    movement_type: str = "supply"


@dataclass(frozen=True)
class StockWaste:
    kind: ClassVar[MutationKind] = MutationKind.STOCK_WASTE
    item_id: int
    quantity: int
    reason: str | None = None
    user_id: int | None = None
    movement_type: str = "waste"


PAYLOAD_TYPES: dict[MutationKind, type] = {
    cls.kind: cls
    for cls in (
        SaveActiveOrder,
        ClearActiveOrder,
        TransferTable,
        AddSale,
        AddUser,
        DeleteUser,
        AddMenuItem,
        UpdateMenuItem,
        DeleteMenuItem,
        AddMenuCategory,
        UpdateMenuCategory,
        DeleteMenuCategory,
        AddHistoryEntry,
        SetTaxRate,
        SetTableCount,
        StockSupply,
        StockWaste,
    )
}

_unpaired = set(MutationKind) - set(PAYLOAD_TYPES)
if _unpaired:
    raise RuntimeError(f"mutation kinds without a payload type: {sorted(k.value for k in _unpaired)}")


def to_record(mutation) -> tuple[str, dict]:
    """(kind, JSON-safe payload) for storage."""
    return mutation.kind.value, asdict(mutation)


def from_record(kind: str, payload: dict):
    try:
        payload_type = PAYLOAD_TYPES[MutationKind(kind)]
    except ValueError:
        raise ValueError(f"unknown mutation kind {kind!r}")
    return payload_type(**payload)
