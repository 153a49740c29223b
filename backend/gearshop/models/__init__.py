"""
Database table definitions
"""
from .catalog import Category, Product
from .user import User, WishlistItem, CartItem
from .order import Order, OrderItem
from .review import Review

__all__ = [
    "Category",
    "Product",
    "User",
    "WishlistItem",
    "CartItem",
    "Order",
    "OrderItem",
    "Review",
]
