from .catalog import Category, Product, Batch
from .inventory import InventoryTransaction
from .sales import Sale, SaleLine
from .purchases import Purchase, PurchaseLine
from .auth import User, SessionToken

__all__ = [
    'Category', 'Product', 'Batch',
    'InventoryTransaction',
    'Sale', 'SaleLine',
    'Purchase', 'PurchaseLine',
    'User', 'SessionToken',
]
