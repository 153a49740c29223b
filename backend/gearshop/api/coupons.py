"""
Coupons API Endpoints
"""
import logging
from decimal import Decimal

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from gearshop.core.exceptions import ShopError
from gearshop.services.coupon_service import apply_coupon, recommend_coupons

logger = logging.getLogger(__name__)

router = APIRouter()


class CouponApplyRequest(BaseModel):
    code: str = Field(..., min_length=1)
    order_total: Decimal = Field(..., ge=0)
    shipping_price: Decimal = Field(Decimal("0"), ge=0)


@router.get("/available")
async def get_available_coupons(order_total: Decimal = Query(..., ge=0)):
    """Coupons the order total qualifies for, best discount first"""
    try:
        coupons = recommend_coupons(order_total)
        return {"status": "success", "count": len(coupons), "data": [c.to_dict() for c in coupons]}

    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching coupons: {str(e)}")


@router.post("/apply")
async def apply(request: CouponApplyRequest):
    try:
        result = apply_coupon(request.code, request.order_total, request.shipping_price)
        return {"status": "success", "data": result}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error applying coupon: {str(e)}")
