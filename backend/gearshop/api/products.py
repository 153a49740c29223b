"""
Products API Endpoints
Handles product catalog queries and admin product management
"""
import logging
import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from gearshop.core.auth import TokenUser, require_admin
from gearshop.domain.product import ProductCreate, ProductUpdate
from gearshop.repositories.category_repository import CategoryRepository
from gearshop.repositories.product_repository import SORT_OPTIONS, ProductRepository

logger = logging.getLogger(__name__)

router = APIRouter()


def _page_payload(products, total: int, page: int, page_size: int) -> dict:
    return {
        "status": "success",
        "total": total,
        "page": page,
        "page_size": page_size,
        "pages": math.ceil(total / page_size) if page_size else 0,
        "count": len(products),
        "data": [p.to_dict() for p in products]
    }


@router.get("/")
async def get_products(
    keyword: Optional[str] = Query(None, description="Search in name, brand or description"),
    category: Optional[int] = Query(None, description="Category ID (includes subcategories)"),
    brand: Optional[str] = Query(None, description="Brand"),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    in_stock: Optional[bool] = Query(None, description="Only products with stock"),
    sort: str = Query("newest", description=f"One of: {', '.join(SORT_OPTIONS)}"),
    page: int = Query(1, ge=1),
    page_size: int = Query(12, ge=1, le=100)
):
    """
    Get products with optional filters, sorted and paginated
    """
    try:
        if sort not in SORT_OPTIONS:
            raise HTTPException(status_code=400, detail=f"Invalid sort '{sort}'")

        repo = ProductRepository()
        products, total = repo.find_all(
            keyword=keyword,
            category_id=category,
            brand=brand,
            min_price=min_price,
            max_price=max_price,
            in_stock=in_stock,
            sort=sort,
            limit=page_size,
            offset=(page - 1) * page_size
        )
        return _page_payload(products, total, page, page_size)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching products: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error fetching products: {str(e)}")


@router.get("/top")
async def get_top_products(limit: int = Query(5, ge=1, le=50)):
    """Highest rated products"""
    try:
        products = ProductRepository().find_top_rated(limit)
        return {"status": "success", "count": len(products), "data": [p.to_dict() for p in products]}

    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching top products: {str(e)}")


@router.get("/new-arrivals")
async def get_new_arrivals(limit: int = Query(8, ge=1, le=50)):
    try:
        products = ProductRepository().find_new_arrivals(limit)
        return {"status": "success", "count": len(products), "data": [p.to_dict() for p in products]}

    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching new arrivals: {str(e)}")


@router.get("/featured")
async def get_featured_products(limit: int = Query(8, ge=1, le=50)):
    try:
        products = ProductRepository().find_featured(limit)
        return {"status": "success", "count": len(products), "data": [p.to_dict() for p in products]}

    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching featured products: {str(e)}")


@router.get("/brands")
async def get_brands():
    try:
        brands = ProductRepository().list_brands()
        return {"status": "success", "count": len(brands), "data": brands}

    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching brands: {str(e)}")


@router.get("/search/suggestions")
async def get_search_suggestions(
    q: str = Query(..., min_length=1, description="Partial product name"),
    limit: int = Query(5, ge=1, le=20)
):
    """Autocomplete suggestions for the search box"""
    try:
        suggestions = ProductRepository().search_suggestions(q, limit)
        return {"status": "success", "count": len(suggestions), "data": suggestions}

    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching suggestions: {str(e)}")


@router.get("/category/{category_id}")
async def get_products_by_category(
    category_id: int,
    sort: str = Query("newest"),
    page: int = Query(1, ge=1),
    page_size: int = Query(12, ge=1, le=100)
):
    try:
        if not CategoryRepository().find_by_id(category_id):
            raise HTTPException(status_code=404, detail=f"Category {category_id} not found")

        products, total = ProductRepository().find_all(
            category_id=category_id,
            sort=sort if sort in SORT_OPTIONS else "newest",
            limit=page_size,
            offset=(page - 1) * page_size
        )
        return _page_payload(products, total, page, page_size)

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching products: {str(e)}")


@router.get("/{product_id}")
async def get_product(product_id: int):
    try:
        product = ProductRepository().find_by_id(product_id)
        if not product:
            raise HTTPException(status_code=404, detail=f"Product {product_id} not found")
        return {"status": "success", "data": product.to_dict()}

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching product: {str(e)}")


# =============================================================================
# Admin
# =============================================================================

@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_product(data: ProductCreate, admin: TokenUser = Depends(require_admin)):
    try:
        if not CategoryRepository().find_by_id(data.category_id):
            raise HTTPException(status_code=400, detail=f"Category {data.category_id} does not exist")

        product = ProductRepository().create(data)
        logger.info(f"Product {product.id} created by admin {admin.id}")
        return {"status": "success", "data": product.to_dict()}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating product: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating product: {str(e)}")


@router.put("/{product_id}")
async def update_product(product_id: int, data: ProductUpdate, admin: TokenUser = Depends(require_admin)):
    try:
        if data.category_id is not None and not CategoryRepository().find_by_id(data.category_id):
            raise HTTPException(status_code=400, detail=f"Category {data.category_id} does not exist")

        product = ProductRepository().update(product_id, data)
        if not product:
            raise HTTPException(status_code=404, detail=f"Product {product_id} not found")
        return {"status": "success", "data": product.to_dict()}

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error updating product: {str(e)}")


@router.delete("/{product_id}")
async def delete_product(product_id: int, admin: TokenUser = Depends(require_admin)):
    try:
        if not ProductRepository().delete(product_id):
            raise HTTPException(status_code=404, detail=f"Product {product_id} not found")
        logger.info(f"Product {product_id} deleted by admin {admin.id}")
        return {"status": "success", "message": f"Product {product_id} deleted"}

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error deleting product: {str(e)}")
