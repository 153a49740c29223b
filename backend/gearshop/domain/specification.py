"""
Specification analysis request models

Author: GearShop
Date: 2025-06-02
"""
from pydantic import BaseModel, Field
from typing import Dict, List, Optional, Union


PERFORMANCE_TIERS = ("entry", "mid", "high")
USE_CASES = ("competitive", "content", "casual")
SPEC_SORT_FIELDS = ("name", "price", "rating")


class SpecificationFilter(BaseModel):
    """
    Advanced product filter

    specifications: {"switches": "Cherry MX"} or {"panel": ["IPS", "OLED"]};
    a product matches when its standardized value contains the text
    (any of the texts for a list).
    """
    category_id: Optional[int] = None
    performance_tier: Optional[str] = Field(None, pattern="^(entry|mid|high|unknown)$")
    use_case: Optional[str] = Field(None, pattern="^(competitive|content|casual)$")
    specifications: Dict[str, Union[str, List[str]]] = Field(default_factory=dict)
    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)
    sort_by: str = Field("name", pattern="^(name|price|rating)$")
    sort_order: str = Field("asc", pattern="^(asc|desc)$")
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)


class CompareRequest(BaseModel):
    product_ids: List[int] = Field(default_factory=list)


class PrioritySpec(BaseModel):
    key: str
    value: str
    weight: float = 1


class RecommendRequest(BaseModel):
    category_id: Optional[int] = None
    budget: Optional[float] = Field(None, gt=0, description="Maximum effective price (VND)")
    use_case: str = Field("casual", pattern="^(competitive|content|casual)$")
    priority_specs: List[PrioritySpec] = Field(default_factory=list)
    limit: int = Field(10, ge=1, le=50)
