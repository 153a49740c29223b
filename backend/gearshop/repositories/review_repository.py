"""
Review Repository - Data Access Layer for Reviews

Every write also recalculates the product's average_rating and num_reviews
inside the same transaction.

Author: GearShop
Date: 2025-06-02
"""
from typing import List, Optional, Any

from psycopg2 import errors

from gearshop.core.database import get_db_connection_dict
from gearshop.core.exceptions import InvalidRequestError
from gearshop.domain.review import Review, ReviewCreate, ReviewUpdate


REVIEW_COLUMNS = """
    r.id, r.user_id, u.name AS user_name, r.product_id, p.name AS product_name,
    r.rating, r.title, r.comment, r.is_verified_purchase, r.created_at, r.updated_at
"""

REVIEW_JOINS = """
    FROM reviews r
    LEFT JOIN users u ON u.id = r.user_id
    LEFT JOIN products p ON p.id = r.product_id
"""

# An aggregate without GROUP BY always yields one row, so a product with
# no reviews left gets 0 / 0
REFRESH_PRODUCT_RATING_SQL = """
    UPDATE products p
    SET average_rating = COALESCE(s.avg_rating, 0),
        num_reviews = s.num_reviews,
        updated_at = NOW()
    FROM (
        SELECT AVG(rating)::float AS avg_rating, COUNT(*) AS num_reviews
        FROM reviews
        WHERE product_id = %s
    ) s
    WHERE p.id = %s
"""


class ReviewRepository:
    """Repository for Review data access"""

    @staticmethod
    def _map_row_to_review(row: dict) -> Review:
        return Review(
            id=row['id'],
            user_id=row['user_id'],
            user_name=row.get('user_name'),
            product_id=row['product_id'],
            product_name=row.get('product_name'),
            rating=row['rating'],
            title=row.get('title'),
            comment=row['comment'],
            is_verified_purchase=row.get('is_verified_purchase', False),
            created_at=row.get('created_at'),
            updated_at=row.get('updated_at')
        )

    @staticmethod
    def _refresh_product_rating(cursor, product_id: int) -> None:
        cursor.execute(REFRESH_PRODUCT_RATING_SQL, (product_id, product_id))

    def _fetch_many(self, where: str, params: tuple, limit: Optional[int] = None, offset: int = 0) -> List[Review]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            query = f"""
                SELECT {REVIEW_COLUMNS}
                {REVIEW_JOINS}
                WHERE {where}
                ORDER BY r.created_at DESC
            """
            if limit is not None:
                query += " LIMIT %s OFFSET %s"
                params = params + (limit, offset)

            cursor.execute(query, params)
            return [self._map_row_to_review(row) for row in cursor.fetchall()]

        finally:
            cursor.close()
            conn.close()

    def find_by_id(self, review_id: int) -> Optional[Review]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {REVIEW_COLUMNS}
                {REVIEW_JOINS}
                WHERE r.id = %s
            """, (review_id,))
            row = cursor.fetchone()
            return self._map_row_to_review(row) if row else None

        finally:
            cursor.close()
            conn.close()

    def find_by_product(self, product_id: int) -> List[Review]:
        """Newest first"""
        return self._fetch_many("r.product_id = %s", (product_id,))

    def find_by_user(self, user_id: int) -> List[Review]:
        return self._fetch_many("r.user_id = %s", (user_id,))

    def find_all(self, limit: int = 50, offset: int = 0) -> List[Review]:
        return self._fetch_many("1=1", (), limit=limit, offset=offset)

    def exists_for_user(self, user_id: int, product_id: int) -> bool:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(
                "SELECT 1 FROM reviews WHERE user_id = %s AND product_id = %s",
                (user_id, product_id)
            )
            return cursor.fetchone() is not None

        finally:
            cursor.close()
            conn.close()

    def has_paid_order_with_product(self, user_id: int, product_id: int) -> bool:
        """True when the user has a paid order containing the product"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                SELECT 1
                FROM orders o
                JOIN order_items oi ON oi.order_id = o.id
                WHERE o.user_id = %s AND oi.product_id = %s AND o.is_paid = TRUE
                LIMIT 1
            """, (user_id, product_id))
            return cursor.fetchone() is not None

        finally:
            cursor.close()
            conn.close()

    def create(self, user_id: int, data: ReviewCreate, is_verified_purchase: bool = False) -> Review:
        """
        Insert a review and refresh the product rating

        Raises:
            InvalidRequestError: the user already reviewed this product
        """
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                INSERT INTO reviews (user_id, product_id, rating, title, comment, is_verified_purchase)
                VALUES (%s, %s, %s, %s, %s, %s)
                RETURNING id
            """, (
                user_id,
                data.product_id,
                data.rating,
                data.title,
                data.comment,
                is_verified_purchase,
            ))
            review_id = cursor.fetchone()['id']
            self._refresh_product_rating(cursor, data.product_id)
            conn.commit()

        except errors.UniqueViolation:
            conn.rollback()
            raise InvalidRequestError("You have already reviewed this product")

        except Exception:
            conn.rollback()
            raise

        finally:
            cursor.close()
            conn.close()

        return self.find_by_id(review_id)

    def update(self, review_id: int, data: ReviewUpdate) -> Optional[Review]:
        """Write only the fields that were set, then refresh the product rating"""
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            return self.find_by_id(review_id)

        assignments = [f"{field} = %s" for field in changes]
        params: List[Any] = list(changes.values())

        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                UPDATE reviews
                SET {", ".join(assignments)}, updated_at = NOW()
                WHERE id = %s
                RETURNING product_id
            """, params + [review_id])
            row = cursor.fetchone()
            if not row:
                conn.rollback()
                return None

            self._refresh_product_rating(cursor, row['product_id'])
            conn.commit()

        except Exception:
            conn.rollback()
            raise

        finally:
            cursor.close()
            conn.close()

        return self.find_by_id(review_id)

    def delete(self, review_id: int) -> bool:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("DELETE FROM reviews WHERE id = %s RETURNING product_id", (review_id,))
            row = cursor.fetchone()
            if not row:
                conn.rollback()
                return False

            self._refresh_product_rating(cursor, row['product_id'])
            conn.commit()
            return True

        except Exception:
            conn.rollback()
            raise

        finally:
            cursor.close()
            conn.close()
