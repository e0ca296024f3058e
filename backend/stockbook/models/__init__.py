from .inventory import Category, Product, StockMovement
from .customers import Customer
from .documents import DocumentSequence
from .sales import Sale, SaleDetail
from .purchases import Purchase, PurchaseDetail

__all__ = [
    'Category', 'Product', 'StockMovement',
    'Customer',
    'DocumentSequence',
    'Sale', 'SaleDetail',
    'Purchase', 'PurchaseDetail',
]
