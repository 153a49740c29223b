"""
GHN Shipping API Endpoints

Endpoints:
- GET  /api/ghn/provinces - Provinces
- GET  /api/ghn/districts/{province_id} - Districts of a province
- GET  /api/ghn/wards/{district_id} - Wards of a district
- POST /api/ghn/calculate-fee - Shipping fee quote (falls back to a flat fee)
"""
import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from gearshop.core.exceptions import ShopError
from gearshop.services.ghn_service import GHNService

logger = logging.getLogger(__name__)

router = APIRouter()


class ShippingFeeRequest(BaseModel):
    to_district_id: int
    to_ward_code: str = Field(..., min_length=1)
    weight: int = Field(200, gt=0, description="Grams")
    length: int = Field(20, gt=0, description="Centimetres")
    width: int = Field(20, gt=0)
    height: int = Field(5, gt=0)
    cod_value: int = Field(0, ge=0)
    insurance_value: int = Field(0, ge=0)


@router.get("/provinces")
async def get_provinces():
    try:
        provinces = await GHNService().get_provinces()
        return {"status": "success", "count": len(provinces), "data": provinces}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error fetching GHN provinces: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error fetching provinces: {str(e)}")


@router.get("/districts/{province_id}")
async def get_districts(province_id: int):
    try:
        districts = await GHNService().get_districts(province_id)
        return {"status": "success", "count": len(districts), "data": districts}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching districts: {str(e)}")


@router.get("/wards/{district_id}")
async def get_wards(district_id: int):
    try:
        wards = await GHNService().get_wards(district_id)
        return {"status": "success", "count": len(wards), "data": wards}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching wards: {str(e)}")


@router.post("/calculate-fee")
async def calculate_fee(data: ShippingFeeRequest):
    """Quote; `success` is false when the flat fallback fee was used"""
    try:
        return await GHNService().calculate_fee(**data.model_dump())

    except Exception as e:
        logger.error(f"Error calculating shipping fee: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error calculating shipping fee: {str(e)}")
