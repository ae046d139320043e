from .auth import User
from .menu import MenuItem, MenuCategory
from .orders import ActiveOrder, HistoryEntry
from .sales import Sale, SaleItem
from .inventory import StockMovement, MOVEMENT_TYPES
from .settings import Setting

__all__ = [
    'User',
    'MenuItem', 'MenuCategory',
    'ActiveOrder', 'HistoryEntry',
    'Sale', 'SaleItem',
    'StockMovement', 'MOVEMENT_TYPES',
    'Setting',
]
