"""
Repository Layer - Data Access

This layer handles all database queries and returns domain models.
Repositories abstract away SQL details from business logic.

Author: GearShop
Date: 2025-06-02
"""
from gearshop.repositories.product_repository import ProductRepository
from gearshop.repositories.category_repository import CategoryRepository
from gearshop.repositories.user_repository import UserRepository
from gearshop.repositories.cart_repository import CartRepository
from gearshop.repositories.order_repository import OrderRepository
from gearshop.repositories.review_repository import ReviewRepository

__all__ = [
    'ProductRepository',
    'CategoryRepository',
    'UserRepository',
    'CartRepository',
    'OrderRepository',
    'ReviewRepository'
]
