"""
Unit tests for the GearShop repositories

These tests validate repository logic without requiring a database connection.

Author: GearShop
Date: 2025-06-02
"""
import pytest
from unittest.mock import MagicMock, patch
from datetime import datetime
from decimal import Decimal

from psycopg2 import errors

from gearshop.core.exceptions import InsufficientStockError, InvalidRequestError, NotFoundError
from gearshop.domain.cart import CartItem
from gearshop.domain.category import CategoryCreate
from gearshop.domain.order import OrderItem
from gearshop.domain.product import Product, ProductCreate
from gearshop.domain.review import ReviewCreate, ReviewUpdate
from gearshop.domain.user import Address
from gearshop.repositories.cart_repository import CartRepository
from gearshop.repositories.category_repository import CategoryRepository
from gearshop.repositories.order_repository import OrderRepository
from gearshop.repositories.product_repository import ProductRepository
from gearshop.repositories.review_repository import ReviewRepository
from gearshop.repositories.user_repository import UserRepository


@pytest.fixture
def order_row():
    return {
        'id': 42,
        'user_id': 7,
        'shipping_address': {'street': '123 Lê Lợi', 'ward': 'Bến Thành', 'district': 'Quận 1', 'province': 'TP. Hồ Chí Minh'},
        'payment_method': 'VNPay',
        'items_price': Decimal('2990000'),
        'tax_price': Decimal('0'),
        'shipping_price': Decimal('30000'),
        'coupon_code': None,
        'coupon_discount': Decimal('0'),
        'total_price': Decimal('3020000'),
        'is_paid': False,
        'paid_at': None,
        'payment_details': {'provider': 'vnpay', 'txn_ref': '42_1717200000000', 'status': 'pending'},
        'status': 'Processing',
        'is_delivered': False,
        'delivered_at': None,
        'tracking_number': None,
        'notes': None,
        'order_source': 'chatbot',
        'conversation_id': 'user_7_session_1',
        'created_at': datetime(2025, 6, 1, 3, 0, 0),
    }


def _order_items():
    return [
        OrderItem(product_id=1, name="Logitech G Pro X Superlight", price=Decimal("2990000"), quantity=1),
        OrderItem(product_id=2, name="Razer BlackWidow V4", price=Decimal("1500000"), quantity=2),
    ]


def _create_kwargs():
    return dict(
        user_id=7,
        items=_order_items(),
        shipping_address=Address(street="1", ward="2", district="3", province="4"),
        payment_method="CashOnDelivery",
        items_price=Decimal("5990000"),
        tax_price=Decimal("0"),
        shipping_price=Decimal("30000"),
        coupon_code=None,
        coupon_discount=Decimal("0"),
        total_price=Decimal("6020000"),
    )


class TestProductRepository:
    """Test ProductRepository methods"""

    @patch('gearshop.repositories.product_repository.get_db_connection_dict')
    def test_find_by_id_returns_product(self, mock_get_conn, mock_connection, sample_product_row):
        """Test find_by_id returns a Product domain model"""
        # Arrange
        conn, cursor = mock_connection
        mock_get_conn.return_value = conn
        cursor.fetchone.return_value = sample_product_row

        # Act
        product = ProductRepository().find_by_id(1)

        # Assert
        assert isinstance(product, Product)
        assert product.category_name == 'Chuột'
        assert product.effective_price == Decimal('2990000')
        assert product.main_image == 'https://cdn.example.com/gpx.jpg'
        assert product.specifications['DPI'] == '25600'
        cursor.close.assert_called_once()
        conn.close.assert_called_once()

    @patch('gearshop.repositories.product_repository.get_db_connection_dict')
    def test_find_by_id_returns_none_when_not_found(self, mock_get_conn, mock_connection):
        conn, cursor = mock_connection
        mock_get_conn.return_value = conn
        cursor.fetchone.return_value = None

        assert ProductRepository().find_by_id(999) is None
        conn.close.assert_called_once()

    @patch('gearshop.repositories.product_repository.get_db_connection_dict')
    def test_find_by_ids_preserves_requested_order(self, mock_get_conn, mock_connection, sample_product_row):
        """Rows come back in id order; the result follows the caller's order"""
        conn, cursor = mock_connection
        mock_get_conn.return_value = conn
        cursor.fetchall.return_value = [
            sample_product_row,
            {**sample_product_row, 'id': 2, 'name': 'Razer DeathAdder V3'},
        ]

        products = ProductRepository().find_by_ids([2, 1, 3])

        assert [p.id for p in products] == [2, 1]
        assert cursor.execute.call_args[0][1] == ([2, 1, 3],)

    @patch('gearshop.repositories.product_repository.get_db_connection_dict')
    def test_find_by_ids_empty_skips_database(self, mock_get_conn):
        assert ProductRepository().find_by_ids([]) == []
        mock_get_conn.assert_not_called()

    @patch('gearshop.repositories.product_repository.get_db_connection_dict')
    def test_find_all_with_filters(self, mock_get_conn, mock_connection, sample_product_row):
        """Test find_all builds WHERE/ORDER BY from filters and returns the total"""
        # Arrange
        conn, cursor = mock_connection
        mock_get_conn.return_value = conn
        cursor.fetchone.return_value = {'total': 1}
        cursor.fetchall.return_value = [sample_product_row]

        # Act
        products, total = ProductRepository().find_all(
            keyword='logitech', category_id=3, min_price=1000000, in_stock=True,
            sort='price_asc', limit=12, offset=24
        )

        # Assert
        assert total == 1
        assert len(products) == 1

        count_sql, count_params = cursor.execute.call_args_list[0][0]
        assert 'ILIKE' in count_sql
        assert 'parent_id = %s' in count_sql
        assert 'p.stock > 0' in count_sql
        assert count_params == ['%logitech%', '%logitech%', '%logitech%', 3, 3, 1000000]

        select_sql, select_params = cursor.execute.call_args_list[1][0]
        assert 'ORDER BY COALESCE(NULLIF(p.discount_price, 0), p.price) ASC' in select_sql
        assert select_params[-2:] == [12, 24]

    @patch('gearshop.repositories.product_repository.get_db_connection_dict')
    def test_find_all_unknown_sort_falls_back_to_newest(self, mock_get_conn, mock_connection):
        conn, cursor = mock_connection
        mock_get_conn.return_value = conn
        cursor.fetchone.return_value = {'total': 0}
        cursor.fetchall.return_value = []

        ProductRepository().find_all(sort='bogus')

        assert 'ORDER BY p.created_at DESC' in cursor.execute.call_args_list[1][0][0]

    @patch('gearshop.repositories.product_repository.get_db_connection_dict')
    def test_create_rolls_back_on_error(self, mock_get_conn, mock_connection):
        conn, cursor = mock_connection
        mock_get_conn.return_value = conn
        cursor.execute.side_effect = Exception("duplicate key")

        with pytest.raises(Exception, match="duplicate key"):
            ProductRepository().create(ProductCreate(name="Razer Viper", price=Decimal("1990000"), category_id=3))

        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()
        conn.close.assert_called_once()


class TestCartRepository:

    @patch('gearshop.repositories.cart_repository.get_db_connection_dict')
    def test_get_cart_maps_rows(self, mock_get_conn, mock_connection):
        conn, cursor = mock_connection
        mock_get_conn.return_value = conn
        cursor.fetchall.return_value = [
            {'product_id': 1, 'name': 'Logitech G Pro', 'image': None, 'price': Decimal('2990000'), 'quantity': 2},
        ]

        cart = CartRepository().get_cart(7)

        assert cart.user_id == 7
        assert cart.items[0].image == ""
        assert cart.total_price == Decimal('5980000')

    @patch('gearshop.repositories.cart_repository.get_db_connection_dict')
    def test_upsert_commits(self, mock_get_conn, mock_connection):
        conn, cursor = mock_connection
        mock_get_conn.return_value = conn

        CartRepository().upsert_item(7, CartItem(product_id=1, name="G Pro", price=Decimal("2990000"), quantity=3))

        sql, params = cursor.execute.call_args[0]
        assert 'ON CONFLICT (user_id, product_id)' in sql
        assert params[0] == 7
        assert params[-1] == 3
        conn.commit.assert_called_once()


class TestOrderRepository:

    @patch('gearshop.repositories.order_repository.get_db_connection_dict')
    def test_find_by_id_attaches_items(self, mock_get_conn, mock_connection, order_row):
        conn, cursor = mock_connection
        mock_get_conn.return_value = conn
        cursor.fetchall.side_effect = [
            [order_row],
            [{'order_id': 42, 'product_id': 1, 'name': 'G Pro', 'image': '', 'price': Decimal('2990000'), 'quantity': 1}],
        ]

        order = OrderRepository().find_by_id(42)

        assert order.id == 42
        assert order.item_count == 1
        assert order.shipping_address.district == 'Quận 1'
        assert order.payment_details.txn_ref == '42_1717200000000'
        assert order.order_source == 'chatbot'

    @patch('gearshop.repositories.order_repository.get_db_connection_dict')
    def test_create_reserves_stock_and_clears_cart(self, mock_get_conn, mock_connection):
        """Test create inserts order + items in one transaction"""
        # Arrange
        conn, cursor = mock_connection
        mock_get_conn.return_value = conn
        cursor.fetchone.side_effect = [{'id': 100}, {'id': 1}, {'id': 2}]
        repo = OrderRepository()

        # Act
        with patch.object(repo, 'find_by_id', return_value='order') as mock_find:
            result = repo.create(**_create_kwargs())

        # Assert
        assert result == 'order'
        mock_find.assert_called_once_with(100)
        statements = [c[0][0] for c in cursor.execute.call_args_list]
        assert sum('stock >= %s' in s for s in statements) == 2
        assert sum('INSERT INTO order_items' in s for s in statements) == 2
        assert 'DELETE FROM cart_items' in statements[-1]
        conn.commit.assert_called_once()

    @patch('gearshop.repositories.order_repository.get_db_connection_dict')
    def test_create_fails_when_stock_ran_out(self, mock_get_conn, mock_connection):
        conn, cursor = mock_connection
        mock_get_conn.return_value = conn
        # order insert, first item ok, second item guard fails, stock lookup
        cursor.fetchone.side_effect = [{'id': 100}, {'id': 1}, None, {'stock': 1}]

        with pytest.raises(InsufficientStockError) as exc:
            OrderRepository().create(**_create_kwargs())

        assert exc.value.product_name == "Razer BlackWidow V4"
        assert exc.value.available == 1
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()

    @patch('gearshop.repositories.order_repository.get_db_connection_dict')
    def test_cancel_unknown_order(self, mock_get_conn, mock_connection):
        conn, cursor = mock_connection
        mock_get_conn.return_value = conn
        cursor.fetchone.return_value = None

        with pytest.raises(NotFoundError):
            OrderRepository().cancel(999)

        conn.rollback.assert_called_once()

    @patch('gearshop.repositories.order_repository.get_db_connection_dict')
    def test_cancel_restores_summed_quantities(self, mock_get_conn, mock_connection):
        """Test stock is restored from per-product totals of the order lines"""
        # Arrange
        conn, cursor = mock_connection
        mock_get_conn.return_value = conn
        cursor.fetchone.return_value = {'id': 42}
        repo = OrderRepository()

        # Act
        with patch.object(repo, 'find_by_id', return_value='order'):
            result = repo.cancel(42)

        # Assert
        assert result == 'order'
        sql, params = cursor.execute.call_args_list[1][0]
        assert "SUM(quantity)" in sql
        assert "GROUP BY product_id" in sql
        assert params == (42,)
        conn.commit.assert_called_once()

    @patch('gearshop.repositories.order_repository.get_db_connection_dict')
    def test_delivered_status_sets_delivery_fields(self, mock_get_conn, mock_connection):
        conn, cursor = mock_connection
        mock_get_conn.return_value = conn
        cursor.rowcount = 1
        repo = OrderRepository()
        delivered_at = datetime(2025, 6, 3, 9, 0, 0)

        with patch.object(repo, 'find_by_id', return_value='order'):
            repo.update_status(42, "Delivered", delivered_at=delivered_at)

        sql, params = cursor.execute.call_args[0]
        assert sql.startswith("UPDATE orders SET status = %s, is_delivered = %s, delivered_at = %s")
        assert params == ["Delivered", True, delivered_at, 42]


class TestUserRepository:

    @patch('gearshop.repositories.user_repository.get_db_connection_dict')
    def test_find_by_email_maps_address_and_wishlist(self, mock_get_conn, mock_connection):
        conn, cursor = mock_connection
        mock_get_conn.return_value = conn
        cursor.fetchone.return_value = {
            'id': 7, 'name': 'Nguyen Van A', 'email': 'a@example.com', 'password_hash': 'x',
            'role': 'user', 'address': {'street': '1', 'ward': '2', 'district': '3', 'province': '4'},
            'wishlist': [3, 1], 'created_at': None,
        }

        user = UserRepository().find_by_email('A@Example.com')

        assert user.address.is_complete
        assert user.wishlist == [3, 1]
        assert cursor.execute.call_args[0][1] == ('A@Example.com',)

    @patch('gearshop.repositories.user_repository.get_db_connection_dict')
    def test_add_to_wishlist_duplicate(self, mock_get_conn, mock_connection):
        conn, cursor = mock_connection
        mock_get_conn.return_value = conn
        cursor.rowcount = 0

        assert UserRepository().add_to_wishlist(7, 1) is False
        conn.commit.assert_called_once()

    @patch('gearshop.repositories.user_repository.get_db_connection_dict')
    def test_update_lowercases_email(self, mock_get_conn, mock_connection):
        conn, cursor = mock_connection
        mock_get_conn.return_value = conn
        cursor.rowcount = 1
        repo = UserRepository()

        with patch.object(repo, 'find_by_id', return_value='user'):
            repo.update(7, {'email': 'New@Example.com', 'password_hash': 'ignored'})

        sql, params = cursor.execute.call_args[0]
        assert sql == "UPDATE users SET email = %s WHERE id = %s"
        assert params == ('new@example.com', 7)


class TestCategoryRepository:

    @patch('gearshop.repositories.category_repository.get_db_connection_dict')
    def test_product_counts(self, mock_get_conn, mock_connection):
        conn, cursor = mock_connection
        mock_get_conn.return_value = conn
        cursor.fetchall.return_value = [{'category_id': 3, 'total': 12}, {'category_id': 4, 'total': 5}]

        assert CategoryRepository().product_counts() == {3: 12, 4: 5}

    @patch('gearshop.repositories.category_repository.get_db_connection_dict')
    def test_create_generates_slug(self, mock_get_conn, mock_connection):
        conn, cursor = mock_connection
        mock_get_conn.return_value = conn
        cursor.fetchone.return_value = {
            'id': 4, 'name': 'Bàn phím cơ', 'slug': 'ban-phim-co', 'description': None,
            'parent_id': None, 'is_featured': True, 'created_at': None,
        }

        category = CategoryRepository().create(CategoryCreate(name='Bàn phím cơ', is_featured=True))

        assert cursor.execute.call_args[0][1][1] == 'ban-phim-co'
        assert category.is_main
        conn.commit.assert_called_once()


@pytest.fixture
def review_row():
    return {
        'id': 5,
        'user_id': 7,
        'user_name': 'Nguyen Van A',
        'product_id': 1,
        'product_name': 'Logitech G Pro X Superlight',
        'rating': 5,
        'title': 'Rất nhẹ',
        'comment': 'Cầm rất sướng tay',
        'is_verified_purchase': True,
        'created_at': datetime(2025, 6, 2, 9, 0, 0),
        'updated_at': None,
    }


class TestReviewRepository:
    """Every review write recalculates the product rating in the same transaction"""

    @patch('gearshop.repositories.review_repository.get_db_connection_dict')
    def test_create_refreshes_product_rating(self, mock_get_conn, mock_connection, review_row):
        """Test create inserts the review, then updates average_rating and num_reviews before commit"""
        # Arrange
        conn, cursor = mock_connection
        mock_get_conn.return_value = conn
        cursor.fetchone.side_effect = [{'id': 5}, review_row]

        # Act
        review = ReviewRepository().create(
            7, ReviewCreate(product_id=1, rating=5, title='Rất nhẹ', comment='Cầm rất sướng tay'),
            is_verified_purchase=True
        )

        # Assert
        insert_params = cursor.execute.call_args_list[0][0][1]
        assert insert_params == (7, 1, 5, 'Rất nhẹ', 'Cầm rất sướng tay', True)

        refresh_sql, refresh_params = cursor.execute.call_args_list[1][0]
        assert "AVG(rating)" in refresh_sql
        assert "num_reviews" in refresh_sql
        assert refresh_params == (1, 1)
        conn.commit.assert_called_once()

        assert review.id == 5
        assert review.user_name == 'Nguyen Van A'

    @patch('gearshop.repositories.review_repository.get_db_connection_dict')
    def test_create_duplicate_review(self, mock_get_conn, mock_connection):
        conn, cursor = mock_connection
        mock_get_conn.return_value = conn
        cursor.execute.side_effect = errors.UniqueViolation("duplicate key")

        with pytest.raises(InvalidRequestError, match="already reviewed"):
            ReviewRepository().create(7, ReviewCreate(product_id=1, rating=4, comment='Tốt'))

        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()

    @patch('gearshop.repositories.review_repository.get_db_connection_dict')
    def test_update_writes_set_fields_and_refreshes(self, mock_get_conn, mock_connection, review_row):
        conn, cursor = mock_connection
        mock_get_conn.return_value = conn
        cursor.fetchone.side_effect = [{'product_id': 1}, {**review_row, 'rating': 3}]

        review = ReviewRepository().update(5, ReviewUpdate(rating=3))

        update_sql, update_params = cursor.execute.call_args_list[0][0]
        assert "rating = %s" in update_sql
        assert "comment" not in update_sql
        assert update_params == [3, 5]
        assert cursor.execute.call_args_list[1][0][1] == (1, 1)
        conn.commit.assert_called_once()
        assert review.rating == 3

    @patch('gearshop.repositories.review_repository.get_db_connection_dict')
    def test_delete_refreshes_product_rating(self, mock_get_conn, mock_connection):
        conn, cursor = mock_connection
        mock_get_conn.return_value = conn
        cursor.fetchone.return_value = {'product_id': 1}

        assert ReviewRepository().delete(5) is True

        assert "AVG(rating)" in cursor.execute.call_args_list[1][0][0]
        conn.commit.assert_called_once()

    @patch('gearshop.repositories.review_repository.get_db_connection_dict')
    def test_delete_unknown_review(self, mock_get_conn, mock_connection):
        conn, cursor = mock_connection
        mock_get_conn.return_value = conn
        cursor.fetchone.return_value = None

        assert ReviewRepository().delete(999) is False

        assert cursor.execute.call_count == 1
        conn.commit.assert_not_called()

    @patch('gearshop.repositories.review_repository.get_db_connection_dict')
    def test_verified_purchase_requires_paid_order(self, mock_get_conn, mock_connection):
        conn, cursor = mock_connection
        mock_get_conn.return_value = conn
        cursor.fetchone.return_value = {'?column?': 1}

        assert ReviewRepository().has_paid_order_with_product(7, 1) is True

        sql, params = cursor.execute.call_args[0]
        assert "o.is_paid = TRUE" in sql
        assert params == (7, 1)
