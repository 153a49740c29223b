"""
Product Domain Model

Represents a product entity in the GearShop catalog.
This is the single source of truth for product data structure.

Author: GearShop
Date: 2025-06-02
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Any, Dict, List, Optional
from datetime import datetime
from decimal import Decimal


class ProductImage(BaseModel):
    """Hosted product image"""
    public_id: Optional[str] = None
    url: str


class Product(BaseModel):
    """
    Product domain model - represents a gaming gear product in our catalog

    Fields:
        id: Internal product ID (primary key)
        name: Product name
        description: Long description
        price: List price in VND
        discount_price: Sale price in VND (optional)
        category_id / category_name: Owning category
        brand: Manufacturer brand
        stock: Units available for sale
        sold: Units sold so far
        images: Hosted images
        specifications: Free-form spec sheet (e.g. {"DPI": "26000"})
        features: Marketing bullet points
        is_featured / is_new_arrival: Storefront flags
        average_rating / num_reviews: Review aggregate
    """

    id: int = Field(..., description="Internal product ID")
    name: str = Field(..., description="Product name", max_length=100)
    description: Optional[str] = Field(None, description="Product description")

    # Pricing
    price: Decimal = Field(..., description="List price (VND)", ge=0)
    discount_price: Optional[Decimal] = Field(None, description="Discounted price (VND)", ge=0)

    # Classification
    category_id: Optional[int] = Field(None, description="Category ID")
    category_name: Optional[str] = Field(None, description="Category name (joined)")
    brand: Optional[str] = Field(None, description="Product brand")

    # Inventory
    stock: int = Field(0, description="Units in stock", ge=0)
    sold: int = Field(0, description="Units sold", ge=0)

    # Content
    images: List[ProductImage] = Field(default_factory=list)
    specifications: Dict[str, Any] = Field(default_factory=dict)
    features: List[str] = Field(default_factory=list)

    # Flags and reviews
    is_featured: bool = False
    is_new_arrival: bool = False
    average_rating: float = Field(0, ge=0, le=5)
    num_reviews: int = Field(0, ge=0)

    created_at: Optional[datetime] = Field(None, description="Creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="Last update timestamp")

    model_config = ConfigDict(
        from_attributes=True,
        json_encoders={
            Decimal: float,
            datetime: lambda v: v.isoformat()
        }
    )

    @property
    def effective_price(self) -> Decimal:
        """Discount price when set and positive, else list price"""
        if self.discount_price is not None and self.discount_price > 0:
            return self.discount_price
        return self.price

    @property
    def main_image(self) -> str:
        return self.images[0].url if self.images else ""

    @property
    def in_stock(self) -> bool:
        return self.stock > 0

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses"""
        data = self.model_dump()
        data['price'] = float(self.price)
        data['discount_price'] = float(self.discount_price) if self.discount_price is not None else None
        data['effective_price'] = float(self.effective_price)
        data['in_stock'] = self.in_stock
        data['created_at'] = self.created_at.isoformat() if self.created_at else None
        data['updated_at'] = self.updated_at.isoformat() if self.updated_at else None
        return data


class ProductCreate(BaseModel):
    """Payload for creating a product (admin)"""
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0)
    discount_price: Optional[Decimal] = Field(None, ge=0)
    category_id: int
    brand: Optional[str] = None
    stock: int = Field(0, ge=0)
    images: List[ProductImage] = Field(default_factory=list)
    specifications: Dict[str, Any] = Field(default_factory=dict)
    features: List[str] = Field(default_factory=list)
    is_featured: bool = False
    is_new_arrival: bool = False


class ProductUpdate(BaseModel):
    """Partial update - only fields that are set get written"""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0)
    discount_price: Optional[Decimal] = Field(None, ge=0)
    category_id: Optional[int] = None
    brand: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    images: Optional[List[ProductImage]] = None
    specifications: Optional[Dict[str, Any]] = None
    features: Optional[List[str]] = None
    is_featured: Optional[bool] = None
    is_new_arrival: Optional[bool] = None
