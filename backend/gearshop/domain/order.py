"""
Order Domain Models

Represents order-related entities in the GearShop system.
These are the single source of truth for order data structure.

Author: GearShop
Date: 2025-06-02
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from gearshop.domain.user import Address


PAYMENT_METHODS = ("CashOnDelivery", "VNPay", "BankTransfer", "CreditCard", "PayPal", "Stripe")
ORDER_STATUSES = ("Processing", "Shipped", "Delivered", "Cancelled")
PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded")
ORDER_SOURCES = ("web", "chatbot", "mobile")


class OrderItem(BaseModel):
    """
    Order Item domain model - a line item snapshotted at order time

    Fields:
        product_id: Reference to product catalog
        name: Product name at order time
        image: Main image URL at order time
        price: Unit price charged
        quantity: Number of units ordered
    """

    product_id: int = Field(..., description="Product catalog ID")
    name: str = Field(..., description="Product name at order time")
    image: str = Field("", description="Product image at order time")
    price: Decimal = Field(..., description="Price per unit", ge=0)
    quantity: int = Field(..., description="Quantity ordered", ge=1)

    @property
    def subtotal(self) -> Decimal:
        return self.price * self.quantity

    def to_dict(self) -> dict:
        return {
            'product_id': self.product_id,
            'name': self.name,
            'image': self.image,
            'price': float(self.price),
            'quantity': self.quantity,
        }


class PaymentDetails(BaseModel):
    """Gateway payment record (VNPay fields are stored as received)"""
    provider: Optional[str] = None
    txn_ref: Optional[str] = None
    transaction_no: Optional[str] = None
    bank_code: Optional[str] = None
    bank_tran_no: Optional[str] = None
    card_type: Optional[str] = None
    pay_date: Optional[str] = None
    response_code: Optional[str] = None
    transaction_status: Optional[str] = None
    status: str = Field("pending", pattern="^(pending|completed|failed|refunded)$")


class Order(BaseModel):
    """
    Order domain model

    Money fields are VND. total_price = items_price + tax_price
    + shipping_price - coupon_discount, computed at creation.
    """

    id: int = Field(..., description="Order ID")
    user_id: int = Field(..., description="Owner user ID")
    items: List[OrderItem] = Field(default_factory=list)
    shipping_address: Address = Field(default_factory=Address)
    payment_method: str = Field(..., description="Payment method")

    # Amounts
    items_price: Decimal = Field(Decimal('0'), ge=0)
    tax_price: Decimal = Field(Decimal('0'), ge=0)
    shipping_price: Decimal = Field(Decimal('0'), ge=0)
    coupon_code: Optional[str] = None
    coupon_discount: Decimal = Field(Decimal('0'), ge=0)
    total_price: Decimal = Field(Decimal('0'), ge=0)

    # Payment
    is_paid: bool = False
    paid_at: Optional[datetime] = None
    payment_details: Optional[PaymentDetails] = None

    # Fulfillment
    status: str = Field("Processing", description="Processing|Shipped|Delivered|Cancelled")
    is_delivered: bool = False
    delivered_at: Optional[datetime] = None
    tracking_number: Optional[str] = None

    # Metadata
    notes: Optional[str] = None
    order_source: str = "web"
    conversation_id: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(
        from_attributes=True,
        json_encoders={
            Decimal: float,
            datetime: lambda v: v.isoformat()
        }
    )

    @property
    def item_count(self) -> int:
        return len(self.items)

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def is_cancellable(self) -> bool:
        """Owners may cancel only while still Processing and unpaid"""
        return self.status == "Processing" and not self.is_paid

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses"""
        return {
            'id': self.id,
            'user_id': self.user_id,
            'items': [item.to_dict() for item in self.items],
            'shipping_address': self.shipping_address.model_dump(),
            'payment_method': self.payment_method,
            'items_price': float(self.items_price),
            'tax_price': float(self.tax_price),
            'shipping_price': float(self.shipping_price),
            'coupon_code': self.coupon_code,
            'coupon_discount': float(self.coupon_discount),
            'total_price': float(self.total_price),
            'is_paid': self.is_paid,
            'paid_at': self.paid_at.isoformat() if self.paid_at else None,
            'payment_details': self.payment_details.model_dump() if self.payment_details else None,
            'status': self.status,
            'is_delivered': self.is_delivered,
            'delivered_at': self.delivered_at.isoformat() if self.delivered_at else None,
            'tracking_number': self.tracking_number,
            'notes': self.notes,
            'order_source': self.order_source,
            'conversation_id': self.conversation_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class OrderItemInput(BaseModel):
    product_id: int
    quantity: int = Field(..., ge=1)


class OrderCreate(BaseModel):
    """
    Model for creating a new order

    When items is omitted the user's cart is ordered.
    """
    items: Optional[List[OrderItemInput]] = None
    shipping_address: Address
    payment_method: str = Field(..., pattern="^(" + "|".join(PAYMENT_METHODS) + ")$")
    tax_price: Decimal = Field(Decimal('0'), ge=0)
    shipping_price: Decimal = Field(Decimal('0'), ge=0)
    coupon_code: Optional[str] = None
    notes: Optional[str] = None
    order_source: str = Field("web", pattern="^(web|chatbot|mobile)$")
    conversation_id: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    """Admin status change"""
    status: str = Field(..., pattern="^(Processing|Shipped|Delivered|Cancelled)$")
    tracking_number: Optional[str] = None


class OrderPayment(BaseModel):
    """PUT /api/orders/{id}/pay body (manual / non-VNPay payment confirmation)"""
    id: Optional[str] = None
    status: Optional[str] = None
    update_time: Optional[str] = None
    email_address: Optional[str] = None
