"""
Reviews API Endpoints

Endpoints:
- GET    /api/reviews/product/{product_id} - Reviews of a product (public)
- GET    /api/reviews/myreviews - Current user's reviews
- GET    /api/reviews/{review_id} - One review (public)
- POST   /api/reviews - Create a review
- PUT    /api/reviews/{review_id} - Edit own review
- DELETE /api/reviews/{review_id} - Delete own review (admin: any)
- GET    /api/reviews - All reviews (admin)
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from gearshop.core.auth import TokenUser, get_current_user, require_admin
from gearshop.core.exceptions import ShopError
from gearshop.domain.review import ReviewCreate, ReviewUpdate
from gearshop.services.review_service import ReviewService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/product/{product_id}")
async def get_product_reviews(product_id: int):
    try:
        reviews = ReviewService().list_product_reviews(product_id)
        return {"status": "success", "count": len(reviews), "data": [r.to_dict() for r in reviews]}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching reviews: {str(e)}")


@router.get("/myreviews")
async def get_my_reviews(current_user: TokenUser = Depends(get_current_user)):
    try:
        reviews = ReviewService().list_user_reviews(current_user.id)
        return {"status": "success", "count": len(reviews), "data": [r.to_dict() for r in reviews]}

    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching reviews: {str(e)}")


@router.get("/")
async def get_all_reviews(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    admin: TokenUser = Depends(require_admin)
):
    try:
        reviews = ReviewService().list_all(limit=limit, offset=offset)
        return {"status": "success", "count": len(reviews), "data": [r.to_dict() for r in reviews]}

    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching reviews: {str(e)}")


@router.get("/{review_id}")
async def get_review(review_id: int):
    try:
        return {"status": "success", "data": ReviewService().get_review(review_id).to_dict()}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching review: {str(e)}")


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_review(data: ReviewCreate, current_user: TokenUser = Depends(get_current_user)):
    """
    Review a product

    Marked as a verified purchase when the user has a paid order with it.
    The product's average rating and review count are updated.
    """
    try:
        review = ReviewService().create_review(current_user.id, data)
        return {"status": "success", "data": review.to_dict()}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error creating review for user {current_user.id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating review: {str(e)}")


@router.put("/{review_id}")
async def update_review(review_id: int, data: ReviewUpdate, current_user: TokenUser = Depends(get_current_user)):
    try:
        review = ReviewService().update_review(review_id, current_user.id, data)
        return {"status": "success", "data": review.to_dict()}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error updating review: {str(e)}")


@router.delete("/{review_id}")
async def delete_review(review_id: int, current_user: TokenUser = Depends(get_current_user)):
    try:
        ReviewService().delete_review(review_id, current_user.id, current_user.is_admin)
        return {"status": "success", "message": "Review deleted successfully"}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error deleting review: {str(e)}")
