"""
Category Domain Model

Author: GearShop
Date: 2025-06-02
"""
import re
import unicodedata
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime


def slugify(name: str) -> str:
    """
    Build a URL slug from a category name.

    Vietnamese diacritics are folded to ASCII ("Bàn phím cơ" -> "ban-phim-co").
    """
    text = name.replace('đ', 'd').replace('Đ', 'D')
    text = unicodedata.normalize('NFKD', text).encode('ascii', 'ignore').decode('ascii')
    text = re.sub(r'[^a-zA-Z0-9]+', '-', text.lower())
    return text.strip('-')


class Category(BaseModel):
    id: int
    name: str = Field(..., max_length=50)
    slug: str
    description: Optional[str] = None
    parent_id: Optional[int] = None
    is_featured: bool = False
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_main(self) -> bool:
        return self.parent_id is None

    def to_dict(self) -> dict:
        data = self.model_dump()
        data['created_at'] = self.created_at.isoformat() if self.created_at else None
        return data


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    parent_id: Optional[int] = None
    is_featured: bool = False


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = None
    parent_id: Optional[int] = None
    is_featured: Optional[bool] = None
