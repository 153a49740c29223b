"""
Cart Service

Stock-checked cart mutations shared by the REST API and the chatbot tools.
"""
import logging
from typing import Optional

from gearshop.core.exceptions import InsufficientStockError, NotFoundError
from gearshop.domain.cart import Cart, CartItem
from gearshop.domain.product import Product
from gearshop.repositories.cart_repository import CartRepository
from gearshop.repositories.product_repository import ProductRepository

logger = logging.getLogger(__name__)


class CartService:
    """
    Business logic for carts

    Handles:
    - Stock validation on add / update
    - Merging quantities when a product is already in the cart
    - Snapshotting name, image and effective price at add time
    """

    def __init__(
        self,
        cart_repository: Optional[CartRepository] = None,
        product_repository: Optional[ProductRepository] = None
    ):
        self.cart_repo = cart_repository or CartRepository()
        self.product_repo = product_repository or ProductRepository()

    def get_cart(self, user_id: int) -> Cart:
        return self.cart_repo.get_cart(user_id)

    def _get_product(self, product_id: int) -> Product:
        product = self.product_repo.find_by_id(product_id)
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        return product

    def add_item(self, user_id: int, product_id: int, quantity: int = 1) -> Cart:
        """
        Add a product, merging with an existing line.

        Raises:
            NotFoundError: unknown product
            InsufficientStockError: merged quantity exceeds stock
        """
        product = self._get_product(product_id)
        cart = self.cart_repo.get_cart(user_id)

        existing = cart.find_item(product_id)
        new_quantity = quantity + (existing.quantity if existing else 0)

        if new_quantity > product.stock:
            raise InsufficientStockError(product.name, product.stock, new_quantity)

        self.cart_repo.upsert_item(user_id, CartItem(
            product_id=product.id,
            name=product.name,
            image=product.main_image,
            price=product.effective_price,
            quantity=new_quantity
        ))

        logger.info(f"User {user_id} cart: product {product_id} quantity now {new_quantity}")
        return self.cart_repo.get_cart(user_id)

    def update_quantity(self, user_id: int, product_id: int, quantity: int) -> Cart:
        cart = self.cart_repo.get_cart(user_id)
        existing = cart.find_item(product_id)
        if not existing:
            raise NotFoundError(f"Product {product_id} is not in the cart")

        product = self._get_product(product_id)
        if quantity > product.stock:
            raise InsufficientStockError(product.name, product.stock, quantity)

        self.cart_repo.upsert_item(user_id, existing.model_copy(update={'quantity': quantity}))
        return self.cart_repo.get_cart(user_id)

    def remove_item(self, user_id: int, product_id: int) -> Cart:
        if not self.cart_repo.remove_item(user_id, product_id):
            raise NotFoundError(f"Product {product_id} is not in the cart")
        return self.cart_repo.get_cart(user_id)

    def clear(self, user_id: int) -> Cart:
        removed = self.cart_repo.clear(user_id)
        logger.info(f"User {user_id} cart cleared ({removed} lines)")
        return Cart(user_id=user_id, items=[])
