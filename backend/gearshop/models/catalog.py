"""
Catalog tables: categories and products
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, DECIMAL, Float, ForeignKey, CheckConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from gearshop.core.database import Base


class Category(Base):
    """
    Product categories, optionally nested one level via parent_id
    """
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False, unique=True)
    slug = Column(String(80), nullable=False, unique=True, index=True)
    description = Column(Text)
    parent_id = Column(Integer, ForeignKey("categories.id"), index=True)
    is_featured = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    parent = relationship("Category", remote_side=[id], back_populates="children")
    children = relationship("Category", back_populates="parent")
    products = relationship("Product", back_populates="category")


class Product(Base):
    """
    Sellable products

    images: [{"public_id": ..., "url": ...}]
    specifications: free-form map shown on the product page
    """
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        CheckConstraint("discount_price IS NULL OR discount_price >= 0", name="ck_products_discount_non_negative"),
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        CheckConstraint("average_rating >= 0 AND average_rating <= 5", name="ck_products_rating_range"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, index=True)
    description = Column(Text)

    # Precios (VND)
    price = Column(DECIMAL(14, 2), nullable=False, default=0)
    discount_price = Column(DECIMAL(14, 2))

    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False, index=True)
    brand = Column(String(100), index=True)

    # Inventario
    stock = Column(Integer, nullable=False, default=0)
    sold = Column(Integer, nullable=False, default=0)

    images = Column(JSONB, nullable=False, server_default="[]")
    specifications = Column(JSONB, nullable=False, server_default="{}")
    features = Column(JSONB, nullable=False, server_default="[]")

    is_featured = Column(Boolean, default=False, nullable=False, index=True)
    is_new_arrival = Column(Boolean, default=False, nullable=False, index=True)
    average_rating = Column(Float, default=0, nullable=False)
    num_reviews = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    category = relationship("Category", back_populates="products")
    order_items = relationship("OrderItem", back_populates="product")
    reviews = relationship("Review", back_populates="product", cascade="all, delete-orphan")
