from .catalog import User, Category, Product, DiningTable, SystemSetting
from .orders import Order, OrderItem, OrderStatusHistory, OrderNotification
from .payments import Payment
from .inventory import InventoryRecord, InventoryHistory
from .notifications import Notification

__all__ = [
    'User', 'Category', 'Product', 'DiningTable', 'SystemSetting',
    'Order', 'OrderItem', 'OrderStatusHistory', 'OrderNotification',
    'Payment',
    'InventoryRecord', 'InventoryHistory',
    'Notification',
]
