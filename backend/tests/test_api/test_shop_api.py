"""
API tests for the GearShop routers

Services and repositories are patched where the routers look them up, so
no database or LLM is needed.

Author: GearShop
Date: 2025-06-02
"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from gearshop.core.exceptions import (
    AuthenticationError,
    InsufficientStockError,
    InvalidRequestError,
    NotFoundError,
    PermissionDeniedError,
    ShippingProviderError,
)
from gearshop.domain.cart import Cart
from gearshop.domain.review import Review
from gearshop.services.chatbot.chat_service import ChatResult


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


class TestRootEndpoints:

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "online"

    @patch('gearshop.main.get_db_connection_dict_with_retry')
    def test_health_degraded_without_database(self, mock_get_conn, client):
        mock_get_conn.side_effect = Exception("connection refused")

        data = client.get("/health").json()

        assert data["status"] == "degraded"
        assert data["database"]["status"] == "disconnected"
        assert data["database"]["error"] == "connection refused"


class TestProductsAPI:

    @patch('gearshop.api.products.ProductRepository')
    def test_list_products_paginates(self, mock_repo_class, client, product_factory):
        """Test GET /api/products returns a page and the page count"""
        # Arrange
        mock_repo = MagicMock()
        mock_repo.find_all.return_value = ([product_factory()], 13)
        mock_repo_class.return_value = mock_repo

        # Act
        response = client.get("/api/products/?keyword=logitech&sort=price_asc&page=2&page_size=12")

        # Assert
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 13
        assert data["pages"] == 2
        assert data["data"][0]["effective_price"] == 3290000.0
        kwargs = mock_repo.find_all.call_args.kwargs
        assert kwargs["offset"] == 12
        assert kwargs["keyword"] == "logitech"

    def test_invalid_sort(self, client):
        response = client.get("/api/products/?sort=cheapest_first")

        assert response.status_code == 400
        assert "Invalid sort" in response.json()["detail"]

    @patch('gearshop.api.products.ProductRepository')
    def test_product_not_found(self, mock_repo_class, client):
        mock_repo_class.return_value.find_by_id.return_value = None

        response = client.get("/api/products/999")

        assert response.status_code == 404

    def test_create_requires_token(self, client):
        response = client.post("/api/products/", json={"name": "X", "price": 1, "category_id": 3})
        assert response.status_code == 401

    def test_create_requires_admin(self, client, customer_token):
        response = client.post(
            "/api/products/",
            json={"name": "X", "price": 1, "category_id": 3},
            headers=_auth(customer_token)
        )
        assert response.status_code == 403

    @patch('gearshop.api.products.CategoryRepository')
    @patch('gearshop.api.products.ProductRepository')
    def test_admin_creates_product(self, mock_repo_class, mock_category_class, client, admin_token, product_factory):
        mock_category_class.return_value.find_by_id.return_value = MagicMock()
        mock_repo_class.return_value.create.return_value = product_factory(product_id=55, name="Razer Viper V3")

        response = client.post(
            "/api/products/",
            json={"name": "Razer Viper V3", "price": 3990000, "category_id": 3},
            headers=_auth(admin_token)
        )

        assert response.status_code == 201
        assert response.json()["data"]["id"] == 55


class TestUsersAPI:

    @patch('gearshop.api.users.UserService')
    def test_login_wrong_password(self, mock_service_class, client):
        mock_service_class.return_value.login.side_effect = AuthenticationError("Invalid email or password")

        response = client.post("/api/users/login", json={"email": "a@example.com", "password": "nope"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password"

    @patch('gearshop.api.users.UserService')
    def test_register_returns_token(self, mock_service_class, client, sample_user):
        mock_service_class.return_value.register.return_value = (sample_user, "jwt-token")

        response = client.post(
            "/api/users/register",
            json={"name": "Nguyen Van A", "email": "a@example.com", "password": "secret1"}
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["token"] == "jwt-token"
        assert "password_hash" not in data["user"]

    def test_register_validates_email(self, client):
        response = client.post("/api/users/register", json={"name": "A", "email": "not-an-email", "password": "secret1"})
        assert response.status_code == 422


class TestCartAndOrdersAPI:

    @patch('gearshop.api.cart.CartService')
    def test_add_to_cart_out_of_stock(self, mock_service_class, client, customer_token):
        mock_service_class.return_value.add_item.side_effect = InsufficientStockError("Razer Viper", 1, 5)

        response = client.post("/api/cart/", json={"product_id": 1, "quantity": 5}, headers=_auth(customer_token))

        assert response.status_code == 400
        assert "Only 1 items" in response.json()["detail"]

    @patch('gearshop.api.cart.CartService')
    def test_get_cart_uses_token_user(self, mock_service_class, client, customer_token):
        mock_service_class.return_value.get_cart.return_value = Cart(user_id=7)

        response = client.get("/api/cart/", headers=_auth(customer_token))

        assert response.status_code == 200
        mock_service_class.return_value.get_cart.assert_called_once_with(7)

    @patch('gearshop.api.orders.OrderService')
    def test_create_order_error(self, mock_service_class, client, customer_token, sample_address):
        mock_service_class.return_value.create_order.side_effect = InvalidRequestError("Cart is empty")

        response = client.post(
            "/api/orders/",
            json={"shipping_address": sample_address.model_dump(), "payment_method": "CashOnDelivery"},
            headers=_auth(customer_token)
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Cart is empty"

    def test_order_rejects_unknown_payment_method(self, client, customer_token, sample_address):
        response = client.post(
            "/api/orders/",
            json={"shipping_address": sample_address.model_dump(), "payment_method": "Bitcoin"},
            headers=_auth(customer_token)
        )
        assert response.status_code == 422


class TestCouponsAPI:

    def test_apply_coupon(self, client):
        response = client.post("/api/coupons/apply", json={"code": "save10low", "order_total": 2000000})

        assert response.status_code == 200
        assert response.json()["data"]["discount_amount"] == 200000.0

    def test_apply_unknown_coupon(self, client):
        response = client.post("/api/coupons/apply", json={"code": "NOPE", "order_total": 2000000})
        assert response.status_code == 404

    def test_available_coupons(self, client):
        data = client.get("/api/coupons/available?order_total=25000000").json()

        assert data["data"][0]["code"] == "SAVE20MID"


class TestPaymentsAPI:

    @patch('gearshop.api.payments.VNPayService')
    def test_ipn_passes_query_params(self, mock_service_class, client):
        mock_service_class.return_value.process_ipn.return_value = {"RspCode": "00", "Message": "Confirm Success"}

        response = client.get("/api/payment/vnpay/ipn?vnp_TxnRef=42_1&vnp_ResponseCode=00")

        assert response.json() == {"RspCode": "00", "Message": "Confirm Success"}
        params = mock_service_class.return_value.process_ipn.call_args[0][0]
        assert params["vnp_TxnRef"] == "42_1"

    @patch('gearshop.api.payments.VNPayService')
    def test_return_redirects_to_frontend(self, mock_service_class, client):
        mock_service_class.return_value.process_return.return_value = "http://localhost:3000/order/42?payment=success"

        response = client.get("/api/payment/vnpay/payment-return?vnp_TxnRef=42_1", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "http://localhost:3000/order/42?payment=success"

    def test_refund_is_admin_only(self, client, customer_token):
        response = client.post("/api/payment/vnpay/refund/42", headers=_auth(customer_token))
        assert response.status_code == 403


class TestReviewsAPI:

    @pytest.fixture
    def review(self):
        return Review(id=5, user_id=7, user_name="Nguyen Van A", product_id=1, rating=5, comment="Rất tốt")

    @patch('gearshop.api.reviews.ReviewService')
    def test_create_review(self, mock_service_class, client, customer_token, review):
        """Test POST /api/reviews creates a review for the logged-in user"""
        # Arrange
        mock_service_class.return_value.create_review.return_value = review

        # Act
        response = client.post(
            "/api/reviews/",
            json={"product_id": 1, "rating": 5, "comment": "Rất tốt"},
            headers=_auth(customer_token)
        )

        # Assert
        assert response.status_code == 201
        assert response.json()["data"]["id"] == 5
        user_id, data = mock_service_class.return_value.create_review.call_args[0]
        assert user_id == 7
        assert data.rating == 5

    def test_create_review_requires_login(self, client):
        response = client.post("/api/reviews/", json={"product_id": 1, "rating": 5, "comment": "x"})
        assert response.status_code == 401

    def test_rating_must_be_one_to_five(self, client, customer_token):
        response = client.post(
            "/api/reviews/",
            json={"product_id": 1, "rating": 6, "comment": "x"},
            headers=_auth(customer_token)
        )
        assert response.status_code == 422

    @patch('gearshop.api.reviews.ReviewService')
    def test_product_reviews_are_public(self, mock_service_class, client, review):
        mock_service_class.return_value.list_product_reviews.return_value = [review]

        data = client.get("/api/reviews/product/1").json()

        assert data["count"] == 1
        assert data["data"][0]["user_name"] == "Nguyen Van A"

    @patch('gearshop.api.reviews.ReviewService')
    def test_delete_someone_elses_review(self, mock_service_class, client, customer_token):
        mock_service_class.return_value.delete_review.side_effect = PermissionDeniedError(
            "Not authorized to delete this review"
        )

        response = client.delete("/api/reviews/5", headers=_auth(customer_token))

        assert response.status_code == 403
        mock_service_class.return_value.delete_review.assert_called_once_with(5, 7, False)

    def test_all_reviews_is_admin_only(self, client, customer_token):
        assert client.get("/api/reviews/", headers=_auth(customer_token)).status_code == 403


class TestShippingAPI:

    @patch('gearshop.api.shipping.GHNService')
    def test_provinces(self, mock_service_class, client):
        mock_service_class.return_value.get_provinces = AsyncMock(
            return_value=[{"ProvinceID": 220, "ProvinceName": "Cần Thơ"}]
        )

        data = client.get("/api/ghn/provinces").json()

        assert data["count"] == 1
        assert data["data"][0]["ProvinceID"] == 220

    @patch('gearshop.api.shipping.GHNService')
    def test_ghn_unreachable(self, mock_service_class, client):
        mock_service_class.return_value.get_districts = AsyncMock(
            side_effect=ShippingProviderError("GHN API unreachable: timeout")
        )

        response = client.get("/api/ghn/districts/220")

        assert response.status_code == 502

    @patch('gearshop.api.shipping.GHNService')
    def test_calculate_fee(self, mock_service_class, client):
        mock_service_class.return_value.calculate_fee = AsyncMock(
            return_value={"success": True, "fee": 36500, "details": {"total": 36500}}
        )

        response = client.post("/api/ghn/calculate-fee", json={"to_district_id": 1572, "to_ward_code": "550113"})

        assert response.json()["fee"] == 36500
        kwargs = mock_service_class.return_value.calculate_fee.call_args.kwargs
        assert kwargs["weight"] == 200
        assert kwargs["to_ward_code"] == "550113"


class TestSpecificationsAPI:

    @patch('gearshop.api.specifications.SpecificationService')
    def test_compare_validation_error(self, mock_service_class, client):
        mock_service_class.return_value.compare.side_effect = InvalidRequestError(
            "Please provide at least 2 product IDs for comparison"
        )

        response = client.post("/api/specifications/compare", json={"product_ids": [1]})

        assert response.status_code == 400

    @patch('gearshop.api.specifications.SpecificationService')
    def test_analyze_empty_catalog(self, mock_service_class, client):
        mock_service_class.return_value.analyze.side_effect = NotFoundError("No products found")

        assert client.get("/api/specifications/analyze").status_code == 404

    @patch('gearshop.api.specifications.SpecificationService')
    def test_recommend(self, mock_service_class, client):
        mock_service_class.return_value.recommend.return_value = {"recommendations": [], "criteria": {}}

        response = client.post("/api/specifications/recommend", json={"use_case": "competitive", "budget": 3000000})

        assert response.status_code == 200
        request = mock_service_class.return_value.recommend.call_args[0][0]
        assert request.use_case == "competitive"

    def test_filter_rejects_unknown_tier(self, client):
        assert client.post("/api/specifications/filter", json={"performance_tier": "ultra"}).status_code == 422


class TestChatbotAPI:

    @pytest.fixture
    def chat_result(self):
        return ChatResult(
            response="Mình gợi ý Razer Viper V3.",
            session_id="user_7_session_1_abc",
            tools_used=["product_search"],
            model="claude-test",
            input_tokens=1200,
            output_tokens=300,
            iterations=1,
        )

    @patch('gearshop.api.chatbot.get_chatbot_service')
    def test_chat_success(self, mock_get_service, client, customer_token, chat_result):
        mock_get_service.return_value.process_message.return_value = chat_result

        response = client.post(
            "/api/chatbot/chat",
            json={"message": "Tìm chuột gaming"},
            headers=_auth(customer_token)
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["session_id"] == "user_7_session_1_abc"
        assert data["usage"]["total_tokens"] == 1500
        mock_get_service.return_value.process_message.assert_called_once_with(
            message="Tìm chuột gaming", session_id=None, user_id=7
        )

    @patch('gearshop.api.chatbot.get_chatbot_service')
    def test_chat_not_configured(self, mock_get_service, client):
        mock_get_service.side_effect = ValueError("ANTHROPIC_API_KEY environment variable not set")

        response = client.post("/api/chatbot/chat", json={"message": "xin chào"})

        assert response.status_code == 500
        assert response.json()["detail"] == "Chat service not configured. Please contact administrator."

    def test_chat_rejects_empty_message(self, client):
        assert client.post("/api/chatbot/chat", json={"message": ""}).status_code == 422

    @patch('gearshop.api.chatbot.get_chatbot_service')
    def test_chat_rate_limit(self, mock_get_service, client, chat_result):
        mock_get_service.return_value.process_message.return_value = chat_result

        codes = [client.post("/api/chatbot/chat", json={"message": "hi"}).status_code for _ in range(21)]

        assert codes[:20] == [200] * 20
        assert codes[20] == 429

    @patch('gearshop.api.chatbot.get_chatbot_service')
    def test_health_not_configured(self, mock_get_service, client):
        mock_get_service.side_effect = ValueError("no key")

        assert client.get("/api/chatbot/health").json()["status"] == "not_configured"

    @patch('gearshop.api.chatbot.get_chatbot_service')
    def test_clear_session(self, mock_get_service, client, customer_token):
        mock_get_service.return_value.clear_session.return_value = True

        data = client.delete("/api/chatbot/session/s1", headers=_auth(customer_token)).json()

        assert data == {"success": True, "session_id": "s1", "existed": True}
        mock_get_service.return_value.clear_session.assert_called_once_with("s1", user_id=7, is_admin=False)

    @patch('gearshop.api.chatbot.get_chatbot_service')
    def test_clear_session_of_another_user(self, mock_get_service, client):
        mock_get_service.return_value.clear_session.side_effect = PermissionDeniedError(
            "Not allowed to clear this chat session"
        )

        response = client.delete("/api/chatbot/session/user_7_session_1_abc")

        assert response.status_code == 403
        mock_get_service.return_value.clear_session.assert_called_once_with(
            "user_7_session_1_abc", user_id=None, is_admin=False
        )

    @patch('gearshop.api.chatbot.get_chatbot_service')
    def test_websocket_streams_events_then_message(self, mock_get_service, client, customer_token, chat_result):
        def process_message(message, session_id, user_id, on_event):
            on_event("tool:start", {"tool": "product_search"})
            return chat_result

        mock_get_service.return_value.process_message.side_effect = process_message

        with client.websocket_connect(f"/api/chatbot/ws/chat?token={customer_token}") as ws:
            ws.send_json({"message": "Tìm chuột gaming", "session_id": "s1"})
            event = ws.receive_json()
            final = ws.receive_json()

        assert event == {"type": "tool:start", "data": {"tool": "product_search"}}
        assert final["type"] == "message"
        assert final["data"]["response"] == "Mình gợi ý Razer Viper V3."
        assert mock_get_service.return_value.process_message.call_args[0][:3] == ("Tìm chuột gaming", "s1", 7)

    @patch('gearshop.api.chatbot.get_chatbot_service')
    def test_websocket_requires_message(self, mock_get_service, client):
        with client.websocket_connect("/api/chatbot/ws/chat") as ws:
            ws.send_json({"message": "   "})
            reply = ws.receive_json()

        assert reply == {"type": "error", "data": {"message": "Message is required"}}

    @patch('gearshop.api.chatbot.get_chatbot_service')
    def test_websocket_rejects_non_object_payloads(self, mock_get_service, client, chat_result):
        mock_get_service.return_value.process_message.return_value = chat_result

        with client.websocket_connect("/api/chatbot/ws/chat") as ws:
            ws.send_json("hi")
            first = ws.receive_json()
            ws.send_json([1])
            second = ws.receive_json()
            ws.send_text("{not json")
            third = ws.receive_json()
            ws.send_json({"message": "Tìm chuột gaming"})
            final = ws.receive_json()

        expected = {"type": "error", "data": {"message": "Expected a JSON object"}}
        assert first == second == third == expected
        assert final["type"] == "message"
