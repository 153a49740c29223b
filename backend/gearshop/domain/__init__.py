"""
Domain Layer - Business Entities

This layer contains Pydantic models representing business entities.
These models enforce type safety and validation across the application.

Author: GearShop
Date: 2025-06-02
"""
from gearshop.domain.product import Product, ProductImage, ProductCreate, ProductUpdate
from gearshop.domain.category import Category, CategoryCreate, CategoryUpdate
from gearshop.domain.user import User, Address, UserCreate, UserLogin, UserUpdate
from gearshop.domain.cart import Cart, CartItem
from gearshop.domain.order import Order, OrderItem, OrderCreate, PaymentDetails
from gearshop.domain.review import Review, ReviewCreate, ReviewUpdate

__all__ = [
    'Product', 'ProductImage', 'ProductCreate', 'ProductUpdate',
    'Category', 'CategoryCreate', 'CategoryUpdate',
    'User', 'Address', 'UserCreate', 'UserLogin', 'UserUpdate',
    'Cart', 'CartItem',
    'Order', 'OrderItem', 'OrderCreate', 'PaymentDetails',
    'Review', 'ReviewCreate', 'ReviewUpdate',
]
