from .catalog import Product
from .orders import Order, OrderItem
from .inventory import InventoryItem
from .deliveries import Delivery, DeliveryItem

__all__ = [
    'Product',
    'Order', 'OrderItem',
    'InventoryItem',
    'Delivery', 'DeliveryItem',
]
