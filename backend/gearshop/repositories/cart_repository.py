"""
Cart Repository - Data Access Layer for Carts

A cart is the set of cart_items rows of one user.

Author: GearShop
Date: 2025-06-02
"""
from decimal import Decimal

from gearshop.domain.cart import Cart, CartItem
from gearshop.core.database import get_db_connection_dict


class CartRepository:
    """Repository for Cart data access"""

    def get_cart(self, user_id: int) -> Cart:
        """Return the user's cart (empty when no rows exist)"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                SELECT product_id, name, image, price, quantity
                FROM cart_items
                WHERE user_id = %s
                ORDER BY created_at, id
            """, (user_id,))

            items = [
                CartItem(
                    product_id=row['product_id'],
                    name=row['name'],
                    image=row.get('image') or "",
                    price=row['price'],
                    quantity=row['quantity']
                )
                for row in cursor.fetchall()
            ]
            return Cart(user_id=user_id, items=items)

        finally:
            cursor.close()
            conn.close()

    def upsert_item(self, user_id: int, item: CartItem) -> None:
        """Insert the item or replace quantity/price of the existing row"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                INSERT INTO cart_items (user_id, product_id, name, image, price, quantity)
                VALUES (%s, %s, %s, %s, %s, %s)
                ON CONFLICT (user_id, product_id) DO UPDATE SET
                    name = EXCLUDED.name,
                    image = EXCLUDED.image,
                    price = EXCLUDED.price,
                    quantity = EXCLUDED.quantity
            """, (
                user_id,
                item.product_id,
                item.name,
                item.image,
                Decimal(item.price),
                item.quantity,
            ))
            conn.commit()

        except Exception:
            conn.rollback()
            raise

        finally:
            cursor.close()
            conn.close()

    def remove_item(self, user_id: int, product_id: int) -> bool:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(
                "DELETE FROM cart_items WHERE user_id = %s AND product_id = %s",
                (user_id, product_id)
            )
            removed = cursor.rowcount > 0
            conn.commit()
            return removed

        except Exception:
            conn.rollback()
            raise

        finally:
            cursor.close()
            conn.close()

    def clear(self, user_id: int) -> int:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("DELETE FROM cart_items WHERE user_id = %s", (user_id,))
            removed = cursor.rowcount
            conn.commit()
            return removed

        except Exception:
            conn.rollback()
            raise

        finally:
            cursor.close()
            conn.close()
