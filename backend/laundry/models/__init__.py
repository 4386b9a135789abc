from .branches import Branch
from .employees import Employee
from .documents import DocumentSequence
from .inventory import InventoryItem, StockLog, LowStockAlert
from .orders import Order, OrderLine, OrderStatusHistory

__all__ = [
    'Branch', 'Employee', 'DocumentSequence',
    'InventoryItem', 'StockLog', 'LowStockAlert',
    'Order', 'OrderLine', 'OrderStatusHistory',
]
