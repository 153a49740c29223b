"""
Review Service

Product reviews: one per user per product, edited by their author,
deleted by the author or an admin.
"""
import logging
from typing import List, Optional

from gearshop.core.exceptions import InvalidRequestError, NotFoundError, PermissionDeniedError
from gearshop.domain.review import Review, ReviewCreate, ReviewUpdate
from gearshop.repositories.product_repository import ProductRepository
from gearshop.repositories.review_repository import ReviewRepository

logger = logging.getLogger(__name__)


class ReviewService:
    """
    Business logic for reviews

    Handles:
    - Duplicate review check per (user, product)
    - Verified-purchase flag from the user's paid orders
    - Author / admin access control on update and delete
    """

    def __init__(
        self,
        review_repository: Optional[ReviewRepository] = None,
        product_repository: Optional[ProductRepository] = None
    ):
        self.review_repo = review_repository or ReviewRepository()
        self.product_repo = product_repository or ProductRepository()

    def get_review(self, review_id: int) -> Review:
        review = self.review_repo.find_by_id(review_id)
        if not review:
            raise NotFoundError(f"Review {review_id} not found")
        return review

    def list_product_reviews(self, product_id: int) -> List[Review]:
        if not self.product_repo.find_by_id(product_id):
            raise NotFoundError(f"Product {product_id} not found")
        return self.review_repo.find_by_product(product_id)

    def list_user_reviews(self, user_id: int) -> List[Review]:
        return self.review_repo.find_by_user(user_id)

    def list_all(self, limit: int = 50, offset: int = 0) -> List[Review]:
        return self.review_repo.find_all(limit=limit, offset=offset)

    def create_review(self, user_id: int, data: ReviewCreate) -> Review:
        """
        Raises:
            NotFoundError: unknown product
            InvalidRequestError: the user already reviewed this product
        """
        if not self.product_repo.find_by_id(data.product_id):
            raise NotFoundError(f"Product {data.product_id} not found")

        if self.review_repo.exists_for_user(user_id, data.product_id):
            raise InvalidRequestError("You have already reviewed this product")

        verified = self.review_repo.has_paid_order_with_product(user_id, data.product_id)
        review = self.review_repo.create(user_id, data, is_verified_purchase=verified)

        logger.info(f"User {user_id} reviewed product {data.product_id} ({data.rating}/5, verified={verified})")
        return review

    def update_review(self, review_id: int, user_id: int, data: ReviewUpdate) -> Review:
        review = self.get_review(review_id)
        if review.user_id != user_id:
            raise PermissionDeniedError("Not authorized to update this review")

        updated = self.review_repo.update(review_id, data)
        if not updated:
            raise NotFoundError(f"Review {review_id} not found")
        return updated

    def delete_review(self, review_id: int, user_id: int, is_admin: bool = False) -> None:
        review = self.get_review(review_id)
        if review.user_id != user_id and not is_admin:
            raise PermissionDeniedError("Not authorized to delete this review")

        if not self.review_repo.delete(review_id):
            raise NotFoundError(f"Review {review_id} not found")
        logger.info(f"Review {review_id} on product {review.product_id} deleted by user {user_id}")
