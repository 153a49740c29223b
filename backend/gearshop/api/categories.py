"""
Categories API Endpoints
Category tree queries and admin category management
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from gearshop.core.auth import TokenUser, require_admin
from gearshop.domain.category import CategoryCreate, CategoryUpdate, slugify
from gearshop.repositories.category_repository import CategoryRepository
from gearshop.repositories.product_repository import ProductRepository

logger = logging.getLogger(__name__)

router = APIRouter()


def _with_counts(categories, counts) -> list:
    return [{**c.to_dict(), "product_count": counts.get(c.id, 0)} for c in categories]


@router.get("/")
async def get_categories():
    """All categories with their product counts"""
    try:
        repo = CategoryRepository()
        categories = repo.find_all()
        return {"status": "success", "count": len(categories), "data": _with_counts(categories, repo.product_counts())}

    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching categories: {str(e)}")


@router.get("/main")
async def get_main_categories():
    """Top-level categories (no parent)"""
    try:
        repo = CategoryRepository()
        categories = repo.find_main()
        return {"status": "success", "count": len(categories), "data": _with_counts(categories, repo.product_counts())}

    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching categories: {str(e)}")


@router.get("/featured")
async def get_featured_categories():
    try:
        categories = CategoryRepository().find_featured()
        return {"status": "success", "count": len(categories), "data": [c.to_dict() for c in categories]}

    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching categories: {str(e)}")


@router.get("/slug/{slug}")
async def get_category_by_slug(slug: str):
    try:
        category = CategoryRepository().find_by_slug(slug)
        if not category:
            raise HTTPException(status_code=404, detail=f"Category '{slug}' not found")
        return {"status": "success", "data": category.to_dict()}

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching category: {str(e)}")


@router.get("/{category_id}")
async def get_category(category_id: int):
    try:
        category = CategoryRepository().find_by_id(category_id)
        if not category:
            raise HTTPException(status_code=404, detail=f"Category {category_id} not found")
        return {"status": "success", "data": category.to_dict()}

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching category: {str(e)}")


@router.get("/{category_id}/subcategories")
async def get_subcategories(category_id: int):
    try:
        repo = CategoryRepository()
        if not repo.find_by_id(category_id):
            raise HTTPException(status_code=404, detail=f"Category {category_id} not found")

        subcategories = repo.find_subcategories(category_id)
        return {"status": "success", "count": len(subcategories), "data": [c.to_dict() for c in subcategories]}

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching subcategories: {str(e)}")


# =============================================================================
# Admin
# =============================================================================

@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_category(data: CategoryCreate, admin: TokenUser = Depends(require_admin)):
    try:
        repo = CategoryRepository()
        if repo.find_by_slug(slugify(data.name)):
            raise HTTPException(status_code=400, detail=f"Category '{data.name}' already exists")
        if data.parent_id is not None and not repo.find_by_id(data.parent_id):
            raise HTTPException(status_code=400, detail=f"Parent category {data.parent_id} does not exist")

        category = repo.create(data)
        logger.info(f"Category {category.id} '{category.name}' created by admin {admin.id}")
        return {"status": "success", "data": category.to_dict()}

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error creating category: {str(e)}")


@router.put("/{category_id}")
async def update_category(category_id: int, data: CategoryUpdate, admin: TokenUser = Depends(require_admin)):
    try:
        if data.parent_id is not None and data.parent_id == category_id:
            raise HTTPException(status_code=400, detail="A category cannot be its own parent")

        category = CategoryRepository().update(category_id, data)
        if not category:
            raise HTTPException(status_code=404, detail=f"Category {category_id} not found")
        return {"status": "success", "data": category.to_dict()}

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error updating category: {str(e)}")


@router.delete("/{category_id}")
async def delete_category(category_id: int, admin: TokenUser = Depends(require_admin)):
    """Refused while products or subcategories still reference the category"""
    try:
        repo = CategoryRepository()
        if not repo.find_by_id(category_id):
            raise HTTPException(status_code=404, detail=f"Category {category_id} not found")

        product_count = ProductRepository().count_by_category(category_id)
        if product_count:
            raise HTTPException(
                status_code=400,
                detail=f"Cannot delete category with {product_count} products"
            )
        if repo.find_subcategories(category_id):
            raise HTTPException(status_code=400, detail="Cannot delete category with subcategories")

        repo.delete(category_id)
        logger.info(f"Category {category_id} deleted by admin {admin.id}")
        return {"status": "success", "message": f"Category {category_id} deleted"}

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error deleting category: {str(e)}")
