from .catalog import Client, Product
from .inventory import Inventory
from .orders import Order, OrderItem, Invoice
from .auth import User, SessionToken

__all__ = [
    'Client', 'Product',
    'Inventory',
    'Order', 'OrderItem', 'Invoice',
    'User', 'SessionToken',
]
