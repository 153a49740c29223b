"""
Order Repository - Data Access Layer for Orders

Handles all database queries for orders and returns Order domain models.
Order creation and cancellation touch product stock and the cart in the
same transaction.

Author: GearShop
Date: 2025-06-02
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple, Dict, Any
from psycopg2.extras import Json

from gearshop.domain.order import Order, OrderItem, PaymentDetails
from gearshop.domain.user import Address
from gearshop.core.database import get_db_connection_dict
from gearshop.core.exceptions import InsufficientStockError, NotFoundError


ORDER_COLUMNS = """
    id, user_id, shipping_address, payment_method,
    items_price, tax_price, shipping_price, coupon_code, coupon_discount, total_price,
    is_paid, paid_at, payment_details,
    status, is_delivered, delivered_at, tracking_number,
    notes, order_source, conversation_id, created_at
"""


class OrderRepository:
    """
    Repository for Order data access

    All SQL queries for orders are centralized here.
    Returns Order domain models with their items.
    """

    @staticmethod
    def _map_row_to_order(row: dict, items: List[dict]) -> Order:
        payment_details = row.get('payment_details')
        return Order(
            id=row['id'],
            user_id=row['user_id'],
            items=[OrderItem(**item) for item in items],
            shipping_address=Address(**(row.get('shipping_address') or {})),
            payment_method=row['payment_method'],
            items_price=row['items_price'],
            tax_price=row['tax_price'],
            shipping_price=row['shipping_price'],
            coupon_code=row.get('coupon_code'),
            coupon_discount=row['coupon_discount'],
            total_price=row['total_price'],
            is_paid=row['is_paid'],
            paid_at=row.get('paid_at'),
            payment_details=PaymentDetails(**payment_details) if payment_details else None,
            status=row['status'],
            is_delivered=row['is_delivered'],
            delivered_at=row.get('delivered_at'),
            tracking_number=row.get('tracking_number'),
            notes=row.get('notes'),
            order_source=row.get('order_source') or 'web',
            conversation_id=row.get('conversation_id'),
            created_at=row.get('created_at')
        )

    @staticmethod
    def _fetch_items(cursor, order_ids: List[int]) -> Dict[int, List[dict]]:
        if not order_ids:
            return {}

        cursor.execute("""
            SELECT order_id, product_id, name, image, price, quantity
            FROM order_items
            WHERE order_id = ANY(%s)
            ORDER BY id
        """, (list(order_ids),))

        items_by_order: Dict[int, List[dict]] = {order_id: [] for order_id in order_ids}
        for row in cursor.fetchall():
            item = dict(row)
            order_id = item.pop('order_id')
            items_by_order.setdefault(order_id, []).append(item)
        return items_by_order

    def _fetch_orders(self, where: str, params: list, suffix: str = "") -> List[Order]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {ORDER_COLUMNS}
                FROM orders
                WHERE {where}
                {suffix}
            """, params)
            rows = cursor.fetchall()

            items_by_order = self._fetch_items(cursor, [row['id'] for row in rows])
            return [self._map_row_to_order(row, items_by_order.get(row['id'], [])) for row in rows]

        finally:
            cursor.close()
            conn.close()

    def find_by_id(self, order_id: int) -> Optional[Order]:
        """
        Find order by ID with its items

        Returns:
            Order or None if not found
        """
        orders = self._fetch_orders("id = %s", [order_id])
        return orders[0] if orders else None

    def find_by_user(self, user_id: int, limit: int = 50) -> List[Order]:
        return self._fetch_orders("user_id = %s", [user_id, limit], "ORDER BY created_at DESC LIMIT %s")

    def find_latest_for_user(self, user_id: int) -> Optional[Order]:
        orders = self.find_by_user(user_id, limit=1)
        return orders[0] if orders else None

    def find_all(
        self,
        status: Optional[str] = None,
        is_paid: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[Order], int]:
        """
        Find orders with filters (admin listing)

        Returns:
            Tuple of (list of orders, total count)
        """
        conditions = []
        params: List[Any] = []

        if status:
            conditions.append("status = %s")
            params.append(status)

        if is_paid is not None:
            conditions.append("is_paid = %s")
            params.append(is_paid)

        where_clause = " AND ".join(conditions) if conditions else "1=1"

        conn = get_db_connection_dict()
        cursor = conn.cursor()
        try:
            cursor.execute(f"SELECT COUNT(*) as total FROM orders WHERE {where_clause}", params)
            total = cursor.fetchone()['total']
        finally:
            cursor.close()
            conn.close()

        orders = self._fetch_orders(
            where_clause,
            params + [limit, offset],
            "ORDER BY created_at DESC LIMIT %s OFFSET %s"
        )
        return orders, total

    def create(
        self,
        user_id: int,
        items: List[OrderItem],
        shipping_address: Address,
        payment_method: str,
        items_price: Decimal,
        tax_price: Decimal,
        shipping_price: Decimal,
        coupon_code: Optional[str],
        coupon_discount: Decimal,
        total_price: Decimal,
        notes: Optional[str] = None,
        order_source: str = "web",
        conversation_id: Optional[str] = None,
        clear_cart: bool = True
    ) -> Order:
        """
        Insert the order and its items, reserve stock and clear the cart.

        Stock is decremented with a guarded UPDATE (stock >= quantity), so two
        concurrent orders can never oversell. Everything rolls back on failure.

        Raises:
            InsufficientStockError: when any product no longer has enough stock
        """
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                INSERT INTO orders (
                    user_id, shipping_address, payment_method,
                    items_price, tax_price, shipping_price,
                    coupon_code, coupon_discount, total_price,
                    is_paid, status, is_delivered,
                    notes, order_source, conversation_id
                ) VALUES (
                    %s, %s, %s, %s, %s, %s, %s, %s, %s,
                    FALSE, 'Processing', FALSE, %s, %s, %s
                )
                RETURNING id
            """, (
                user_id,
                Json(shipping_address.model_dump()),
                payment_method,
                items_price,
                tax_price,
                shipping_price,
                coupon_code,
                coupon_discount,
                total_price,
                notes,
                order_source,
                conversation_id,
            ))
            order_id = cursor.fetchone()['id']

            for item in items:
                cursor.execute("""
                    UPDATE products
                    SET stock = stock - %s, sold = sold + %s, updated_at = NOW()
                    WHERE id = %s AND stock >= %s
                    RETURNING id
                """, (item.quantity, item.quantity, item.product_id, item.quantity))

                if cursor.fetchone() is None:
                    cursor.execute("SELECT stock FROM products WHERE id = %s", (item.product_id,))
                    stock_row = cursor.fetchone()
                    available = stock_row['stock'] if stock_row else 0
                    raise InsufficientStockError(item.name, available, item.quantity)

                cursor.execute("""
                    INSERT INTO order_items (order_id, product_id, name, image, price, quantity)
                    VALUES (%s, %s, %s, %s, %s, %s)
                """, (order_id, item.product_id, item.name, item.image, item.price, item.quantity))

            if clear_cart:
                cursor.execute("DELETE FROM cart_items WHERE user_id = %s", (user_id,))

            conn.commit()

        except Exception:
            conn.rollback()
            raise

        finally:
            cursor.close()
            conn.close()

        return self.find_by_id(order_id)

    def cancel(self, order_id: int) -> Order:
        """Mark the order Cancelled and give its items back to stock"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                UPDATE orders SET status = 'Cancelled'
                WHERE id = %s AND status != 'Cancelled'
                RETURNING id
            """, (order_id,))
            if cursor.fetchone() is None:
                raise NotFoundError(f"Order {order_id} not found or already cancelled")

            cursor.execute("""
                UPDATE products p
                SET stock = p.stock + oi.quantity,
                    sold = GREATEST(p.sold - oi.quantity, 0),
                    updated_at = NOW()
                FROM (
                    SELECT product_id, SUM(quantity) AS quantity
                    FROM order_items
                    WHERE order_id = %s
                    GROUP BY product_id
                ) oi
                WHERE oi.product_id = p.id
            """, (order_id,))

            conn.commit()

        except Exception:
            conn.rollback()
            raise

        finally:
            cursor.close()
            conn.close()

        return self.find_by_id(order_id)

    def _update(self, order_id: int, changes: Dict[str, Any]) -> Optional[Order]:
        assignments = ", ".join(f"{field} = %s" for field in changes)
        params = [Json(v) if isinstance(v, dict) else v for v in changes.values()]

        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(
                f"UPDATE orders SET {assignments} WHERE id = %s",
                params + [order_id]
            )
            updated = cursor.rowcount
            conn.commit()

        except Exception:
            conn.rollback()
            raise

        finally:
            cursor.close()
            conn.close()

        return self.find_by_id(order_id) if updated else None

    def update_payment(
        self,
        order_id: int,
        payment_details: PaymentDetails,
        is_paid: Optional[bool] = None,
        paid_at: Optional[datetime] = None
    ) -> Optional[Order]:
        changes: Dict[str, Any] = {'payment_details': payment_details.model_dump()}
        if is_paid is not None:
            changes['is_paid'] = is_paid
        if paid_at is not None:
            changes['paid_at'] = paid_at
        return self._update(order_id, changes)

    def update_status(
        self,
        order_id: int,
        status: str,
        tracking_number: Optional[str] = None,
        delivered_at: Optional[datetime] = None
    ) -> Optional[Order]:
        changes: Dict[str, Any] = {'status': status}
        if status == "Delivered":
            changes['is_delivered'] = True
            changes['delivered_at'] = delivered_at or datetime.now()
        if tracking_number:
            changes['tracking_number'] = tracking_number
        return self._update(order_id, changes)

    def delete(self, order_id: int) -> bool:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("DELETE FROM orders WHERE id = %s", (order_id,))
            deleted = cursor.rowcount > 0
            conn.commit()
            return deleted

        except Exception:
            conn.rollback()
            raise

        finally:
            cursor.close()
            conn.close()

    def get_stats(self) -> Dict[str, Any]:
        """
        Get order statistics

        Returns:
            Dict with totals, by_status, by_payment_method and by_source
        """
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            # Cancelled orders carry no revenue
            cursor.execute("""
                SELECT
                    COUNT(*) as total_orders,
                    COALESCE(SUM(total_price) FILTER (WHERE is_paid), 0) as total_revenue,
                    COALESCE(AVG(total_price), 0) as average_order_value
                FROM orders
                WHERE status != 'Cancelled'
            """)
            totals = cursor.fetchone()

            cursor.execute("""
                SELECT status, COUNT(*) as count
                FROM orders
                GROUP BY status
                ORDER BY count DESC
            """)
            by_status = cursor.fetchall()

            cursor.execute("""
                SELECT payment_method, COUNT(*) as count
                FROM orders
                GROUP BY payment_method
                ORDER BY count DESC
            """)
            by_payment_method = cursor.fetchall()

            cursor.execute("""
                SELECT order_source, COUNT(*) as count
                FROM orders
                GROUP BY order_source
                ORDER BY count DESC
            """)
            by_source = cursor.fetchall()

            cursor.execute("""
                SELECT COUNT(*) as count
                FROM orders
                WHERE created_at >= CURRENT_DATE - INTERVAL '7 days'
            """)
            recent_orders = cursor.fetchone()['count']

            return {
                'totals': {
                    'total_orders': totals['total_orders'],
                    'total_revenue': float(totals['total_revenue']),
                    'average_order_value': float(totals['average_order_value']),
                    'recent_orders_7d': recent_orders
                },
                'by_status': by_status,
                'by_payment_method': by_payment_method,
                'by_source': by_source
            }

        finally:
            cursor.close()
            conn.close()
