from .auth import User, SessionToken
from .activity import Note, Communication
from .customers import Customer
from .catalog import Product, ProductImage, ProductPriceTier
from .orders import Order, OrderItem, OrderStatusChange
from .inquiries import Inquiry
from .documents import DocumentSequence

__all__ = [
    'User', 'SessionToken',
    'Note', 'Communication',
    'Customer',
    'Product', 'ProductImage', 'ProductPriceTier',
    'Order', 'OrderItem', 'OrderStatusChange',
    'Inquiry',
    'DocumentSequence',
]
