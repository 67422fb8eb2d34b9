from .users import User
from .vendors import Vendor
from .catalog import Category, CategoryChild, CategoryAttribute, Product
from .orders import Order, OrderItem, OrderTimelineEntry, OrderSequence
from .reviews import Review

__all__ = [
    'User',
    'Vendor',
    'Category', 'CategoryChild', 'CategoryAttribute', 'Product',
    'Order', 'OrderItem', 'OrderTimelineEntry', 'OrderSequence',
    'Review',
]
