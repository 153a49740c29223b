"""
Product Repository - Data Access Layer for Products

Handles all database queries for products and returns Product domain models.

Author: GearShop
Date: 2025-06-02
"""
from typing import List, Optional, Tuple, Dict, Any
from psycopg2.extras import Json

from gearshop.domain.product import Product, ProductCreate, ProductUpdate
from gearshop.core.database import get_db_connection_dict


PRODUCT_COLUMNS = """
    p.id, p.name, p.description, p.price, p.discount_price,
    p.category_id, c.name AS category_name, p.brand,
    p.stock, p.sold, p.images, p.specifications, p.features,
    p.is_featured, p.is_new_arrival, p.average_rating, p.num_reviews,
    p.created_at, p.updated_at
"""

# Effective price in SQL: discount when set and positive
EFFECTIVE_PRICE_SQL = "COALESCE(NULLIF(p.discount_price, 0), p.price)"

SORT_OPTIONS = {
    'newest': "p.created_at DESC",
    'price_asc': f"{EFFECTIVE_PRICE_SQL} ASC",
    'price_desc': f"{EFFECTIVE_PRICE_SQL} DESC",
    'rating': "p.average_rating DESC, p.num_reviews DESC",
    'best_selling': "p.sold DESC",
    'name': "p.name ASC",
}


class ProductRepository:
    """
    Repository for Product data access

    All SQL queries for products are centralized here.
    Returns Product domain models, not raw dictionaries.
    """

    @staticmethod
    def _map_row_to_product(row: dict) -> Product:
        return Product(
            id=row['id'],
            name=row['name'],
            description=row.get('description'),
            price=row['price'],
            discount_price=row.get('discount_price'),
            category_id=row.get('category_id'),
            category_name=row.get('category_name'),
            brand=row.get('brand'),
            stock=row.get('stock') or 0,
            sold=row.get('sold') or 0,
            images=row.get('images') or [],
            specifications=row.get('specifications') or {},
            features=row.get('features') or [],
            is_featured=row.get('is_featured', False),
            is_new_arrival=row.get('is_new_arrival', False),
            average_rating=row.get('average_rating') or 0,
            num_reviews=row.get('num_reviews') or 0,
            created_at=row.get('created_at'),
            updated_at=row.get('updated_at')
        )

    def find_by_id(self, product_id: int) -> Optional[Product]:
        """
        Find product by ID

        Returns:
            Product or None if not found
        """
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {PRODUCT_COLUMNS}
                FROM products p
                LEFT JOIN categories c ON c.id = p.category_id
                WHERE p.id = %s
            """, (product_id,))

            row = cursor.fetchone()
            if not row:
                return None

            return self._map_row_to_product(row)

        finally:
            cursor.close()
            conn.close()

    def find_by_ids(self, product_ids: List[int]) -> List[Product]:
        """Find several products, preserving the order of product_ids"""
        if not product_ids:
            return []

        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {PRODUCT_COLUMNS}
                FROM products p
                LEFT JOIN categories c ON c.id = p.category_id
                WHERE p.id = ANY(%s)
            """, (list(product_ids),))

            by_id = {row['id']: self._map_row_to_product(row) for row in cursor.fetchall()}
            return [by_id[pid] for pid in product_ids if pid in by_id]

        finally:
            cursor.close()
            conn.close()

    def find_all(
        self,
        keyword: Optional[str] = None,
        category_id: Optional[int] = None,
        brand: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        in_stock: Optional[bool] = None,
        sort: str = 'newest',
        limit: int = 12,
        offset: int = 0
    ) -> Tuple[List[Product], int]:
        """
        Find products with filters

        Args:
            keyword: Search in name, brand or description
            category_id: Filter by category (includes direct subcategories)
            brand: Filter by brand (case-insensitive)
            min_price / max_price: Range on the effective price
            in_stock: Only products with stock > 0
            sort: One of SORT_OPTIONS
            limit: Maximum results to return
            offset: Number of results to skip

        Returns:
            Tuple of (list of products, total count)
        """
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            conditions = []
            params: List[Any] = []

            if keyword:
                conditions.append("(p.name ILIKE %s OR p.brand ILIKE %s OR p.description ILIKE %s)")
                term = f"%{keyword}%"
                params.extend([term, term, term])

            if category_id:
                conditions.append(
                    "(p.category_id = %s OR p.category_id IN (SELECT id FROM categories WHERE parent_id = %s))"
                )
                params.extend([category_id, category_id])

            if brand:
                conditions.append("p.brand ILIKE %s")
                params.append(brand)

            if min_price is not None:
                conditions.append(f"{EFFECTIVE_PRICE_SQL} >= %s")
                params.append(min_price)

            if max_price is not None:
                conditions.append(f"{EFFECTIVE_PRICE_SQL} <= %s")
                params.append(max_price)

            if in_stock:
                conditions.append("p.stock > 0")

            where_clause = " AND ".join(conditions) if conditions else "1=1"
            order_by = SORT_OPTIONS.get(sort, SORT_OPTIONS['newest'])

            cursor.execute(f"""
                SELECT COUNT(*) as total
                FROM products p
                WHERE {where_clause}
            """, params)
            total = cursor.fetchone()['total']

            cursor.execute(f"""
                SELECT {PRODUCT_COLUMNS}
                FROM products p
                LEFT JOIN categories c ON c.id = p.category_id
                WHERE {where_clause}
                ORDER BY {order_by}
                LIMIT %s OFFSET %s
            """, params + [limit, offset])

            products = [self._map_row_to_product(row) for row in cursor.fetchall()]
            return products, total

        finally:
            cursor.close()
            conn.close()

    def _find_ordered(self, where: str, order_by: str, limit: int) -> List[Product]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {PRODUCT_COLUMNS}
                FROM products p
                LEFT JOIN categories c ON c.id = p.category_id
                WHERE {where}
                ORDER BY {order_by}
                LIMIT %s
            """, (limit,))
            return [self._map_row_to_product(row) for row in cursor.fetchall()]

        finally:
            cursor.close()
            conn.close()

    def find_top_rated(self, limit: int = 5) -> List[Product]:
        return self._find_ordered("1=1", SORT_OPTIONS['rating'], limit)

    def find_new_arrivals(self, limit: int = 8) -> List[Product]:
        return self._find_ordered("p.is_new_arrival = TRUE", "p.created_at DESC", limit)

    def find_featured(self, limit: int = 8) -> List[Product]:
        return self._find_ordered("p.is_featured = TRUE", "p.created_at DESC", limit)

    def find_all_for_index(self) -> List[Product]:
        """Every product with its category name - feeds the vector store"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {PRODUCT_COLUMNS}
                FROM products p
                LEFT JOIN categories c ON c.id = p.category_id
                ORDER BY p.id
            """)
            return [self._map_row_to_product(row) for row in cursor.fetchall()]

        finally:
            cursor.close()
            conn.close()

    def search_suggestions(self, keyword: str, limit: int = 5) -> List[Dict]:
        """Lightweight name matches for search-as-you-type"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                SELECT id, name, price, discount_price, images
                FROM products
                WHERE name ILIKE %s OR brand ILIKE %s
                ORDER BY sold DESC, name
                LIMIT %s
            """, (f"%{keyword}%", f"%{keyword}%", limit))

            suggestions = []
            for row in cursor.fetchall():
                images = row.get('images') or []
                price = row['discount_price'] if row.get('discount_price') else row['price']
                suggestions.append({
                    'id': row['id'],
                    'name': row['name'],
                    'price': float(price),
                    'image': images[0]['url'] if images else "",
                })
            return suggestions

        finally:
            cursor.close()
            conn.close()

    def list_brands(self) -> List[str]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                SELECT DISTINCT brand FROM products
                WHERE brand IS NOT NULL AND brand != ''
                ORDER BY brand
            """)
            return [row['brand'] for row in cursor.fetchall()]

        finally:
            cursor.close()
            conn.close()

    def count_by_category(self, category_id: int) -> int:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(
                "SELECT COUNT(*) as total FROM products WHERE category_id = %s",
                (category_id,)
            )
            return cursor.fetchone()['total']

        finally:
            cursor.close()
            conn.close()

    def create(self, data: ProductCreate) -> Product:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                INSERT INTO products (
                    name, description, price, discount_price, category_id, brand,
                    stock, sold, images, specifications, features,
                    is_featured, is_new_arrival, average_rating, num_reviews
                ) VALUES (
                    %s, %s, %s, %s, %s, %s, %s, 0, %s, %s, %s, %s, %s, 0, 0
                )
                RETURNING id
            """, (
                data.name,
                data.description,
                data.price,
                data.discount_price,
                data.category_id,
                data.brand,
                data.stock,
                Json([image.model_dump() for image in data.images]),
                Json(data.specifications),
                Json(data.features),
                data.is_featured,
                data.is_new_arrival,
            ))
            product_id = cursor.fetchone()['id']
            conn.commit()

        except Exception:
            conn.rollback()
            raise

        finally:
            cursor.close()
            conn.close()

        return self.find_by_id(product_id)

    def update(self, product_id: int, data: ProductUpdate) -> Optional[Product]:
        """Write only the fields that were set on the payload"""
        changes = data.model_dump(exclude_unset=True)
        if not changes:
            return self.find_by_id(product_id)

        assignments = []
        params: List[Any] = []
        for field, value in changes.items():
            if field in ('images', 'specifications', 'features'):
                value = Json(value)
            assignments.append(f"{field} = %s")
            params.append(value)

        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                UPDATE products
                SET {", ".join(assignments)}, updated_at = NOW()
                WHERE id = %s
            """, params + [product_id])
            updated = cursor.rowcount
            conn.commit()

        except Exception:
            conn.rollback()
            raise

        finally:
            cursor.close()
            conn.close()

        if not updated:
            return None
        return self.find_by_id(product_id)

    def delete(self, product_id: int) -> bool:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("DELETE FROM products WHERE id = %s", (product_id,))
            deleted = cursor.rowcount > 0
            conn.commit()
            return deleted

        except Exception:
            conn.rollback()
            raise

        finally:
            cursor.close()
            conn.close()
