"""
Order tables
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, DECIMAL, ForeignKey
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from gearshop.core.database import Base


class Order(Base):
    """
    Customer orders

    payment_details holds the gateway record:
    {"provider": "vnpay", "txn_ref": ..., "transaction_no": ..., "status": "pending", ...}
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    shipping_address = Column(JSONB, nullable=False)
    payment_method = Column(String(30), nullable=False)

    # Montos (VND)
    items_price = Column(DECIMAL(14, 2), nullable=False, default=0)
    tax_price = Column(DECIMAL(14, 2), nullable=False, default=0)
    shipping_price = Column(DECIMAL(14, 2), nullable=False, default=0)
    coupon_code = Column(String(50))
    coupon_discount = Column(DECIMAL(14, 2), nullable=False, default=0)
    total_price = Column(DECIMAL(14, 2), nullable=False, default=0)

    # Pago
    is_paid = Column(Boolean, nullable=False, default=False, index=True)
    paid_at = Column(DateTime(timezone=True))
    payment_details = Column(JSONB)

    # Envío
    status = Column(String(20), nullable=False, default="Processing", index=True)
    is_delivered = Column(Boolean, nullable=False, default=False)
    delivered_at = Column(DateTime(timezone=True))
    tracking_number = Column(String(100))

    notes = Column(Text)
    order_source = Column(String(20), nullable=False, default="web")
    conversation_id = Column(String(100))

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    # Relationships
    user = relationship("User", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")


class OrderItem(Base):
    """
    Line items, snapshotted from the product at order time
    """
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), index=True, nullable=False)

    name = Column(String(100), nullable=False)
    image = Column(String(500), nullable=False, default="")
    price = Column(DECIMAL(14, 2), nullable=False)
    quantity = Column(Integer, nullable=False)

    # Relationships
    order = relationship("Order", back_populates="items")
    product = relationship("Product", back_populates="order_items")
