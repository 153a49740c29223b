"""
Category Repository - Data Access Layer for Categories

Author: GearShop
Date: 2025-06-02
"""
from typing import List, Optional, Dict

from gearshop.domain.category import Category, CategoryCreate, CategoryUpdate, slugify
from gearshop.core.database import get_db_connection_dict


class CategoryRepository:
    """Repository for Category data access"""

    @staticmethod
    def _map_row_to_category(row: dict) -> Category:
        return Category(
            id=row['id'],
            name=row['name'],
            slug=row['slug'],
            description=row.get('description'),
            parent_id=row.get('parent_id'),
            is_featured=row.get('is_featured', False),
            created_at=row.get('created_at')
        )

    def _fetch_many(self, where: str = "1=1", params: tuple = ()) -> List[Category]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT id, name, slug, description, parent_id, is_featured, created_at
                FROM categories
                WHERE {where}
                ORDER BY name
            """, params)
            return [self._map_row_to_category(row) for row in cursor.fetchall()]

        finally:
            cursor.close()
            conn.close()

    def _fetch_one(self, where: str, params: tuple) -> Optional[Category]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT id, name, slug, description, parent_id, is_featured, created_at
                FROM categories
                WHERE {where}
            """, params)
            row = cursor.fetchone()
            return self._map_row_to_category(row) if row else None

        finally:
            cursor.close()
            conn.close()

    def find_all(self) -> List[Category]:
        return self._fetch_many()

    def find_main(self) -> List[Category]:
        return self._fetch_many("parent_id IS NULL")

    def find_featured(self) -> List[Category]:
        return self._fetch_many("is_featured = TRUE")

    def find_subcategories(self, parent_id: int) -> List[Category]:
        return self._fetch_many("parent_id = %s", (parent_id,))

    def find_by_id(self, category_id: int) -> Optional[Category]:
        return self._fetch_one("id = %s", (category_id,))

    def find_by_slug(self, slug: str) -> Optional[Category]:
        return self._fetch_one("slug = %s", (slug,))

    def find_by_name(self, name: str) -> Optional[Category]:
        return self._fetch_one("LOWER(name) = LOWER(%s)", (name,))

    def product_counts(self) -> Dict[int, int]:
        """Number of products per category id"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                SELECT category_id, COUNT(*) as total
                FROM products
                GROUP BY category_id
            """)
            return {row['category_id']: row['total'] for row in cursor.fetchall()}

        finally:
            cursor.close()
            conn.close()

    def create(self, data: CategoryCreate) -> Category:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                INSERT INTO categories (name, slug, description, parent_id, is_featured)
                VALUES (%s, %s, %s, %s, %s)
                RETURNING id, name, slug, description, parent_id, is_featured, created_at
            """, (
                data.name,
                slugify(data.name),
                data.description,
                data.parent_id,
                data.is_featured,
            ))
            row = cursor.fetchone()
            conn.commit()
            return self._map_row_to_category(row)

        except Exception:
            conn.rollback()
            raise

        finally:
            cursor.close()
            conn.close()

    def update(self, category_id: int, data: CategoryUpdate) -> Optional[Category]:
        changes = data.model_dump(exclude_unset=True)
        if not changes:
            return self.find_by_id(category_id)

        if 'name' in changes:
            changes['slug'] = slugify(changes['name'])

        assignments = ", ".join(f"{field} = %s" for field in changes)
        params = list(changes.values()) + [category_id]

        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                UPDATE categories SET {assignments}
                WHERE id = %s
                RETURNING id, name, slug, description, parent_id, is_featured, created_at
            """, params)
            row = cursor.fetchone()
            conn.commit()
            return self._map_row_to_category(row) if row else None

        except Exception:
            conn.rollback()
            raise

        finally:
            cursor.close()
            conn.close()

    def delete(self, category_id: int) -> bool:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("DELETE FROM categories WHERE id = %s", (category_id,))
            deleted = cursor.rowcount > 0
            conn.commit()
            return deleted

        except Exception:
            conn.rollback()
            raise

        finally:
            cursor.close()
            conn.close()
