"""
Cart Domain Model

One cart per user. Item price is the product's effective price at the
moment the item was added.

Author: GearShop
Date: 2025-06-02
"""
from pydantic import BaseModel, Field
from typing import List, Optional
from decimal import Decimal


class CartItem(BaseModel):
    product_id: int
    name: str
    image: str = ""
    price: Decimal = Field(..., ge=0)
    quantity: int = Field(..., ge=1)

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
            'subtotal': float(self.subtotal),
        }


class Cart(BaseModel):
    user_id: int
    items: List[CartItem] = Field(default_factory=list)

    @property
    def total_price(self) -> Decimal:
        return sum((item.subtotal for item in self.items), Decimal('0'))

    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def is_empty(self) -> bool:
        return not self.items

    def find_item(self, product_id: int) -> Optional[CartItem]:
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None

    def to_dict(self) -> dict:
        return {
            'user_id': self.user_id,
            'items': [item.to_dict() for item in self.items],
            'total_items': self.total_items,
            'total_price': float(self.total_price),
        }


class CartItemInput(BaseModel):
    """POST /api/cart body"""
    product_id: int
    quantity: int = Field(1, ge=1)


class CartQuantityUpdate(BaseModel):
    """PUT /api/cart/{product_id} body"""
    quantity: int = Field(..., ge=1)
