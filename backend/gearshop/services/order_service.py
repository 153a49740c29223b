"""
Order Service

Order placement, access control and lifecycle (pay, ship, deliver, cancel).
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from gearshop.core.exceptions import (
    InsufficientStockError,
    InvalidRequestError,
    NotFoundError,
    PermissionDeniedError,
)
from gearshop.domain.order import Order, OrderCreate, OrderItem, OrderPayment, PaymentDetails
from gearshop.repositories.cart_repository import CartRepository
from gearshop.repositories.order_repository import OrderRepository
from gearshop.repositories.product_repository import ProductRepository
from gearshop.services.coupon_service import calculate_discount, validate_coupon

logger = logging.getLogger(__name__)


class OrderService:
    """
    Business logic for orders

    Stock is validated here for a friendly error, then enforced again by
    OrderRepository.create inside the insert transaction.
    """

    def __init__(
        self,
        order_repository: Optional[OrderRepository] = None,
        product_repository: Optional[ProductRepository] = None,
        cart_repository: Optional[CartRepository] = None
    ):
        self.order_repo = order_repository or OrderRepository()
        self.product_repo = product_repository or ProductRepository()
        self.cart_repo = cart_repository or CartRepository()

    def _build_items(self, user_id: int, data: OrderCreate) -> List[OrderItem]:
        if data.items:
            requested = [(item.product_id, item.quantity) for item in data.items]
        else:
            cart = self.cart_repo.get_cart(user_id)
            requested = [(item.product_id, item.quantity) for item in cart.items]

        if not requested:
            raise InvalidRequestError("No order items")

        # One line per product
        merged: Dict[int, int] = {}
        for product_id, quantity in requested:
            merged[product_id] = merged.get(product_id, 0) + quantity

        products = {p.id: p for p in self.product_repo.find_by_ids(list(merged))}

        items = []
        for product_id, quantity in merged.items():
            product = products.get(product_id)
            if not product:
                raise NotFoundError(f"Product {product_id} not found")
            if product.stock < quantity:
                raise InsufficientStockError(product.name, product.stock, quantity)

            items.append(OrderItem(
                product_id=product.id,
                name=product.name,
                image=product.main_image,
                price=product.effective_price,
                quantity=quantity
            ))
        return items

    def create_order(self, user_id: int, data: OrderCreate) -> Order:
        """
        Place an order from explicit items or, when none are given, the cart.

        total = items + tax + shipping - coupon discount (never below zero)
        """
        items = self._build_items(user_id, data)
        items_price = sum((item.subtotal for item in items), Decimal("0"))

        coupon_code = None
        coupon_discount = Decimal("0")
        if data.coupon_code:
            coupon = validate_coupon(data.coupon_code, items_price)
            coupon_code = coupon.code
            coupon_discount = calculate_discount(coupon, items_price, data.shipping_price)

        total_price = max(items_price + data.tax_price + data.shipping_price - coupon_discount, Decimal("0"))

        order = self.order_repo.create(
            user_id=user_id,
            items=items,
            shipping_address=data.shipping_address,
            payment_method=data.payment_method,
            items_price=items_price,
            tax_price=data.tax_price,
            shipping_price=data.shipping_price,
            coupon_code=coupon_code,
            coupon_discount=coupon_discount,
            total_price=total_price,
            notes=data.notes,
            order_source=data.order_source,
            conversation_id=data.conversation_id,
            clear_cart=True
        )

        logger.info(
            f"Order {order.id} created for user {user_id}: {len(items)} items, "
            f"total {total_price} VND via {data.payment_method} ({data.order_source})"
        )
        return order

    def get_order(self, order_id: int, user_id: int, is_admin: bool = False) -> Order:
        """Owner or admin only"""
        order = self.order_repo.find_by_id(order_id)
        if not order:
            raise NotFoundError(f"Order {order_id} not found")
        if order.user_id != user_id and not is_admin:
            raise PermissionDeniedError("You do not have access to this order")
        return order

    def list_user_orders(self, user_id: int) -> List[Order]:
        return self.order_repo.find_by_user(user_id)

    def latest_user_order(self, user_id: int) -> Optional[Order]:
        return self.order_repo.find_latest_for_user(user_id)

    def list_orders(
        self,
        status: Optional[str] = None,
        is_paid: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[Order], int]:
        return self.order_repo.find_all(status=status, is_paid=is_paid, limit=limit, offset=offset)

    def mark_paid(self, order_id: int, user_id: int, is_admin: bool, payment: OrderPayment) -> Order:
        order = self.get_order(order_id, user_id, is_admin)
        if order.status == "Cancelled":
            raise InvalidRequestError("Cannot pay a cancelled order")

        provider = "vnpay" if order.payment_method == "VNPay" else order.payment_method.lower()
        details = PaymentDetails(
            provider=provider,
            txn_ref=payment.id,
            transaction_status=payment.status,
            pay_date=payment.update_time,
            status="completed"
        )
        logger.info(f"Order {order_id} marked as paid")
        return self.order_repo.update_payment(order_id, details, is_paid=True, paid_at=datetime.now(timezone.utc))

    def cancel_order(self, order_id: int, user_id: int) -> Order:
        """Owners may cancel while Processing and unpaid; stock is restored"""
        order = self.get_order(order_id, user_id)
        if not order.is_cancellable:
            raise InvalidRequestError(
                f"Order {order_id} can no longer be cancelled (status {order.status}, paid={order.is_paid})"
            )
        logger.info(f"Order {order_id} cancelled by user {user_id}")
        return self.order_repo.cancel(order_id)

    def update_status(self, order_id: int, status: str, tracking_number: Optional[str] = None) -> Order:
        """
        Admin status change.

        Delivered sets is_delivered/delivered_at, Shipped stores the tracking
        number, Cancelled restores stock.
        """
        order = self.order_repo.find_by_id(order_id)
        if not order:
            raise NotFoundError(f"Order {order_id} not found")

        if status == "Cancelled":
            if order.status == "Delivered":
                raise InvalidRequestError("Delivered orders cannot be cancelled")
            return self.order_repo.cancel(order_id)

        if order.status == "Cancelled":
            raise InvalidRequestError("Cancelled orders cannot change status")

        if status == "Shipped" and not tracking_number and not order.tracking_number:
            logger.warning(f"Order {order_id} shipped without tracking number")

        logger.info(f"Order {order_id} status {order.status} -> {status}")
        return self.order_repo.update_status(
            order_id,
            status,
            tracking_number=tracking_number if status == "Shipped" else None
        )

    def delete_order(self, order_id: int) -> None:
        if not self.order_repo.delete(order_id):
            raise NotFoundError(f"Order {order_id} not found")

    def get_stats(self) -> dict:
        return self.order_repo.get_stats()
