"""
User Repository - Data Access Layer for Users and Wishlists

Author: GearShop
Date: 2025-06-02
"""
from typing import List, Optional, Dict, Any
from psycopg2.extras import Json

from gearshop.domain.user import User, Address
from gearshop.core.database import get_db_connection_dict


USER_COLUMNS = """
    u.id, u.name, u.email, u.password_hash, u.role, u.address, u.created_at,
    COALESCE(
        (SELECT array_agg(w.product_id ORDER BY w.created_at)
         FROM user_wishlist w WHERE w.user_id = u.id),
        '{}'
    ) AS wishlist
"""


class UserRepository:
    """Repository for User data access"""

    @staticmethod
    def _map_row_to_user(row: dict) -> User:
        address = row.get('address')
        return User(
            id=row['id'],
            name=row['name'],
            email=row['email'],
            password_hash=row.get('password_hash'),
            role=row.get('role') or 'user',
            address=Address(**address) if address else None,
            wishlist=list(row.get('wishlist') or []),
            created_at=row.get('created_at')
        )

    def _fetch_one(self, where: str, params: tuple) -> Optional[User]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {USER_COLUMNS}
                FROM users u
                WHERE {where}
            """, params)
            row = cursor.fetchone()
            return self._map_row_to_user(row) if row else None

        finally:
            cursor.close()
            conn.close()

    def find_by_id(self, user_id: int) -> Optional[User]:
        return self._fetch_one("u.id = %s", (user_id,))

    def find_by_email(self, email: str) -> Optional[User]:
        return self._fetch_one("LOWER(u.email) = LOWER(%s)", (email,))

    def find_all(self, limit: int = 100, offset: int = 0) -> List[User]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {USER_COLUMNS}
                FROM users u
                ORDER BY u.created_at DESC
                LIMIT %s OFFSET %s
            """, (limit, offset))
            return [self._map_row_to_user(row) for row in cursor.fetchall()]

        finally:
            cursor.close()
            conn.close()

    def create(self, name: str, email: str, password_hash: str, role: str = "user") -> User:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                INSERT INTO users (name, email, password_hash, role)
                VALUES (%s, %s, %s, %s)
                RETURNING id
            """, (name, email.lower(), password_hash, role))
            user_id = cursor.fetchone()['id']
            conn.commit()

        except Exception:
            conn.rollback()
            raise

        finally:
            cursor.close()
            conn.close()

        return self.find_by_id(user_id)

    def _execute_write(self, sql: str, params: tuple) -> int:
        """Run a single write statement and return the affected row count"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(sql, params)
            affected = cursor.rowcount
            conn.commit()
            return affected

        except Exception:
            conn.rollback()
            raise

        finally:
            cursor.close()
            conn.close()

    def update(self, user_id: int, changes: Dict[str, Any]) -> Optional[User]:
        """Update name/email/role columns present in changes"""
        allowed = {k: v for k, v in changes.items() if k in ('name', 'email', 'role') and v is not None}
        if allowed:
            if 'email' in allowed:
                allowed['email'] = allowed['email'].lower()
            assignments = ", ".join(f"{field} = %s" for field in allowed)
            self._execute_write(
                f"UPDATE users SET {assignments} WHERE id = %s",
                tuple(allowed.values()) + (user_id,)
            )
        return self.find_by_id(user_id)

    def update_password(self, user_id: int, password_hash: str) -> bool:
        return self._execute_write(
            "UPDATE users SET password_hash = %s WHERE id = %s",
            (password_hash, user_id)
        ) > 0

    def update_address(self, user_id: int, address: Address) -> Optional[User]:
        self._execute_write(
            "UPDATE users SET address = %s WHERE id = %s",
            (Json(address.model_dump()), user_id)
        )
        return self.find_by_id(user_id)

    def delete(self, user_id: int) -> bool:
        return self._execute_write("DELETE FROM users WHERE id = %s", (user_id,)) > 0

    # ------------------------------------------------------------------
    # Wishlist
    # ------------------------------------------------------------------

    def get_wishlist_ids(self, user_id: int) -> List[int]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                SELECT product_id FROM user_wishlist
                WHERE user_id = %s
                ORDER BY created_at
            """, (user_id,))
            return [row['product_id'] for row in cursor.fetchall()]

        finally:
            cursor.close()
            conn.close()

    def add_to_wishlist(self, user_id: int, product_id: int) -> bool:
        """Returns False when the product was already in the wishlist"""
        return self._execute_write("""
            INSERT INTO user_wishlist (user_id, product_id)
            VALUES (%s, %s)
            ON CONFLICT (user_id, product_id) DO NOTHING
        """, (user_id, product_id)) > 0

    def remove_from_wishlist(self, user_id: int, product_id: int) -> bool:
        return self._execute_write(
            "DELETE FROM user_wishlist WHERE user_id = %s AND product_id = %s",
            (user_id, product_id)
        ) > 0
