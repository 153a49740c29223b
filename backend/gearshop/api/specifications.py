"""
Specifications API Endpoints

Endpoints:
- GET  /api/specifications/analyze - Tier and use-case report for the catalog
- POST /api/specifications/filter - Filter by tier, use case and spec values
- GET  /api/specifications/category/{category_id} - Spec values found in a category
- POST /api/specifications/compare - Spec matrix for 2-5 products
- POST /api/specifications/recommend - Products for a use case and budget
"""
import logging

from fastapi import APIRouter, HTTPException

from gearshop.core.exceptions import ShopError
from gearshop.domain.specification import CompareRequest, RecommendRequest, SpecificationFilter
from gearshop.services.specification_service import SpecificationService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/analyze")
async def analyze_products():
    try:
        return {"status": "success", "data": SpecificationService().analyze()}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error analyzing products: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error analyzing products: {str(e)}")


@router.post("/filter")
async def filter_by_specifications(criteria: SpecificationFilter):
    try:
        return {"status": "success", "data": SpecificationService().filter(criteria)}

    except Exception as e:
        logger.error(f"Error filtering products by specifications: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error filtering products: {str(e)}")


@router.get("/category/{category_id}")
async def get_category_specifications(category_id: int):
    try:
        return {"status": "success", "data": SpecificationService().category_specifications(category_id)}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error getting category specifications: {str(e)}")


@router.post("/compare")
async def compare_products(request: CompareRequest):
    try:
        return {"status": "success", "data": SpecificationService().compare(request)}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error comparing products: {str(e)}")


@router.post("/recommend")
async def recommend_products(request: RecommendRequest):
    try:
        return {"status": "success", "data": SpecificationService().recommend(request)}

    except Exception as e:
        logger.error(f"Error generating recommendations: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error generating recommendations: {str(e)}")
