from .auth import User, SessionToken
from .catalog import Product, StockHistoryEntry
from .orders import Order, OrderItem, OrderStatusHistory
from .sales import Sale, SaleItem
from .notifications import Notification
from .documents import DocumentSequence

__all__ = [
    'User', 'SessionToken',
    'Product', 'StockHistoryEntry',
    'Order', 'OrderItem', 'OrderStatusHistory',
    'Sale', 'SaleItem',
    'Notification',
    'DocumentSequence',
]
