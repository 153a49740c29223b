"""
Unit tests for VNPay signing and callback handling

Author: GearShop
Date: 2025-06-02
"""
import asyncio
import hashlib
import hmac
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qsl, urlparse

import pytest

from gearshop.core.exceptions import PaymentGatewayError
from gearshop.domain.order import PaymentDetails
from gearshop.services.vnpay_service import (
    IPN_ALREADY_CONFIRMED,
    IPN_INVALID_AMOUNT,
    IPN_INVALID_SIGNATURE,
    IPN_ORDER_NOT_FOUND,
    IPN_SUCCESS,
    REFUND_SIGN_FIELDS,
    VNPayService,
    build_order_info,
    build_pipe_sign_data,
    build_sign_data,
    create_secure_hash,
    create_txn_ref,
    extract_order_id,
    format_amount,
    format_vnpay_date,
    sign_params,
    verify_params,
)

SECRET = "TESTHASHSECRET"


@pytest.fixture
def pay_params():
    return {
        "vnp_Version": "2.1.0",
        "vnp_Command": "pay",
        "vnp_TmnCode": "TESTTMN1",
        "vnp_Amount": 302000000,
        "vnp_CreateDate": "20250601100000",
        "vnp_CurrCode": "VND",
        "vnp_IpAddr": "127.0.0.1",
        "vnp_Locale": "vn",
        "vnp_OrderInfo": "Payment-for-order-42",
        "vnp_OrderType": "billpayment",
        "vnp_ReturnUrl": "http://localhost:5000/api/payment/vnpay/payment-return",
        "vnp_TxnRef": "42_1748772000000",
    }


def callback_params(txn_ref="42_1748772000000", amount="302000000", response_code="00", status="00"):
    params = {
        "vnp_Amount": amount,
        "vnp_BankCode": "NCB",
        "vnp_BankTranNo": "VNP14500000",
        "vnp_CardType": "ATM",
        "vnp_OrderInfo": "Payment-for-order-42",
        "vnp_PayDate": "20250601101500",
        "vnp_ResponseCode": response_code,
        "vnp_TmnCode": "TESTTMN1",
        "vnp_TransactionNo": "14500000",
        "vnp_TransactionStatus": status,
        "vnp_TxnRef": txn_ref,
    }
    signed = sign_params(params, SECRET)
    signed["vnp_SecureHashType"] = "HmacSHA512"
    return signed


class TestSigning:
    """Canonical sort / join / HMAC-SHA512"""

    def test_sign_data_sorts_keys_and_joins_raw_values(self):
        data = build_sign_data({"vnp_TxnRef": "42_1", "vnp_Amount": 1000, "vnp_OrderInfo": "Thanh toan don 42"})
        assert data == "vnp_Amount=1000&vnp_OrderInfo=Thanh toan don 42&vnp_TxnRef=42_1"

    def test_sign_data_can_url_encode_values(self):
        data = build_sign_data({"b": "x y", "a": "1/2"}, encode=True)
        assert data == "a=1%2F2&b=x+y"

    def test_sort_is_bytewise(self):
        # Uppercase sorts before lowercase
        assert build_sign_data({"a": "1", "B": "2"}) == "B=2&a=1"

    def test_hash_is_hmac_sha512_hex(self):
        expected = hmac.new(SECRET.encode(), b"a=1&b=2", hashlib.sha512).hexdigest()
        assert create_secure_hash("a=1&b=2", SECRET) == expected
        assert len(expected) == 128

    def test_signing_is_deterministic(self, pay_params):
        assert sign_params(pay_params, SECRET)["vnp_SecureHash"] == sign_params(pay_params, SECRET)["vnp_SecureHash"]

    def test_input_order_does_not_matter(self, pay_params):
        reversed_params = dict(reversed(list(pay_params.items())))
        assert sign_params(reversed_params, SECRET)["vnp_SecureHash"] == sign_params(pay_params, SECRET)["vnp_SecureHash"]

    def test_empty_values_are_excluded(self, pay_params):
        with_empties = dict(pay_params, vnp_BankCode="", vnp_ExpireDate=None)
        assert build_sign_data(with_empties) == build_sign_data(pay_params)
        signed = sign_params(with_empties, SECRET)
        assert "vnp_BankCode" not in signed
        assert "vnp_ExpireDate" not in signed
        assert signed["vnp_SecureHash"] == sign_params(pay_params, SECRET)["vnp_SecureHash"]

    def test_verify_accepts_untampered_request(self, pay_params):
        signed = sign_params(pay_params, SECRET)
        signed["vnp_SecureHashType"] = "HmacSHA512"
        assert verify_params(signed, SECRET) is True

    def test_verify_rejects_wrong_secret(self, pay_params):
        signed = sign_params(pay_params, SECRET)
        assert verify_params(signed, "OTHER") is False

    def test_verify_rejects_missing_hash(self, pay_params):
        assert verify_params(pay_params, SECRET) is False

    @pytest.mark.parametrize("field", ["vnp_Amount", "vnp_TxnRef", "vnp_OrderInfo", "vnp_IpAddr"])
    def test_single_character_change_breaks_signature(self, pay_params, field):
        signed = sign_params(pay_params, SECRET)
        original_hash = signed["vnp_SecureHash"]

        tampered = dict(signed)
        value = str(tampered[field])
        tampered[field] = value[:-1] + ("0" if value[-1] != "0" else "1")

        assert verify_params(tampered, SECRET) is False
        assert sign_params(tampered, SECRET)["vnp_SecureHash"] != original_hash

    def test_pipe_sign_data_keeps_field_order_and_blanks(self):
        params = {field: f"v{i}" for i, field in enumerate(REFUND_SIGN_FIELDS)}
        params["vnp_TransactionNo"] = ""
        data = build_pipe_sign_data(params, REFUND_SIGN_FIELDS)
        parts = data.split("|")
        assert len(parts) == len(REFUND_SIGN_FIELDS)
        assert parts[0] == "v0"
        assert parts[REFUND_SIGN_FIELDS.index("vnp_TransactionNo")] == ""


class TestFormatting:

    def test_amount_has_two_implied_decimals(self):
        assert format_amount(Decimal("3020000")) == 302000000
        assert format_amount("10000.505") == 1000051

    def test_date_is_vietnam_time(self):
        assert format_vnpay_date(datetime(2025, 1, 1, 0, 0, 0, tzinfo=timezone.utc)) == "20250101070000"

    def test_naive_date_is_taken_as_utc(self):
        assert format_vnpay_date(datetime(2025, 1, 1, 20, 30, 0)) == "20250102033000"

    def test_txn_ref_round_trip(self):
        txn_ref = create_txn_ref(42, now_millis=1748772000000)
        assert txn_ref == "42_1748772000000"
        assert extract_order_id(txn_ref) == "42"

    def test_order_info_is_alphanumeric(self):
        assert build_order_info("ab-12") == "Payment-for-order-ab12"


class TestVNPayService:
    """Payment URL and callbacks with a mocked OrderRepository"""

    def test_create_payment_url_is_signed_and_marks_pending(self, sample_order):
        repo = MagicMock()
        service = VNPayService(order_repository=repo)

        url = service.create_payment_url(sample_order, "10.0.0.1")

        parsed = urlparse(url)
        params = dict(parse_qsl(parsed.query))
        assert url.startswith("https://sandbox.vnpayment.vn/paymentv2/vpcpay.html?")
        assert params["vnp_Amount"] == "302000000"
        assert params["vnp_TmnCode"] == "TESTTMN1"
        assert params["vnp_IpAddr"] == "10.0.0.1"
        assert params["vnp_TxnRef"].startswith("42_")
        assert verify_params(params, SECRET) is True

        order_id, details = repo.update_payment.call_args[0]
        assert order_id == 42
        assert details.status == "pending"
        assert details.txn_ref == params["vnp_TxnRef"]

    def test_ipn_success_marks_order_paid(self, sample_order):
        repo = MagicMock()
        repo.find_by_id.return_value = sample_order
        service = VNPayService(order_repository=repo)

        result = service.process_ipn(callback_params())

        assert result == IPN_SUCCESS
        repo.find_by_id.assert_called_once_with(42)
        args, kwargs = repo.update_payment.call_args
        assert kwargs["is_paid"] is True
        assert args[1].status == "completed"
        assert args[1].transaction_no == "14500000"

    def test_ipn_failed_payment_is_recorded_but_confirmed(self, sample_order):
        repo = MagicMock()
        repo.find_by_id.return_value = sample_order
        service = VNPayService(order_repository=repo)

        result = service.process_ipn(callback_params(response_code="24", status="02"))

        assert result == IPN_SUCCESS
        args, kwargs = repo.update_payment.call_args
        assert args[1].status == "failed"
        assert "is_paid" not in kwargs

    def test_ipn_invalid_signature(self, sample_order):
        repo = MagicMock()
        params = callback_params()
        params["vnp_Amount"] = "1"

        result = VNPayService(order_repository=repo).process_ipn(params)

        assert result == IPN_INVALID_SIGNATURE
        repo.find_by_id.assert_not_called()

    def test_ipn_unknown_order(self):
        repo = MagicMock()
        repo.find_by_id.return_value = None

        assert VNPayService(order_repository=repo).process_ipn(callback_params()) == IPN_ORDER_NOT_FOUND

    def test_ipn_amount_mismatch(self, sample_order):
        repo = MagicMock()
        repo.find_by_id.return_value = sample_order

        result = VNPayService(order_repository=repo).process_ipn(callback_params(amount="100"))

        assert result == IPN_INVALID_AMOUNT
        repo.update_payment.assert_not_called()

    def test_ipn_already_paid(self, sample_order):
        repo = MagicMock()
        repo.find_by_id.return_value = sample_order.model_copy(update={"is_paid": True})

        result = VNPayService(order_repository=repo).process_ipn(callback_params())

        assert result == IPN_ALREADY_CONFIRMED
        repo.update_payment.assert_not_called()

    def test_return_redirects_to_order_page(self, sample_order):
        repo = MagicMock()
        repo.find_by_id.return_value = sample_order

        url = VNPayService(order_repository=repo).process_return(callback_params())

        assert url == "http://localhost:3000/order/42?payment=success"

    def test_return_with_bad_signature_redirects_to_error(self):
        params = callback_params()
        params["vnp_SecureHash"] = "0" * 128

        url = VNPayService(order_repository=MagicMock()).process_return(params)

        assert url == "http://localhost:3000/payment-error?error=invalid-signature"

    def test_payment_status(self, sample_order):
        pending = sample_order.model_copy(update={
            "payment_details": PaymentDetails(provider="vnpay", txn_ref="42_1", status="pending")
        })
        status = VNPayService.get_payment_status(pending)
        assert status["payment_status"] == "pending"
        assert status["is_paid"] is False

    def test_query_requires_transaction(self, sample_order):
        service = VNPayService(order_repository=MagicMock())
        with pytest.raises(PaymentGatewayError):
            asyncio.run(service.query_transaction(sample_order, "127.0.0.1"))

    def test_full_refund_marks_payment_refunded(self, sample_order):
        repo = MagicMock()
        paid = sample_order.model_copy(update={
            "is_paid": True,
            "payment_details": PaymentDetails(
                provider="vnpay", txn_ref="42_1", transaction_no="14500000",
                pay_date="20250601101500", status="completed"
            )
        })
        service = VNPayService(order_repository=repo)
        service._post = AsyncMock(return_value={"vnp_ResponseCode": "00", "vnp_Message": "OK"})

        result = asyncio.run(service.refund_transaction(paid, "127.0.0.1", created_by="admin@example.com"))

        assert result["success"] is True
        payload = service._post.call_args[0][0]
        assert payload["vnp_TransactionType"] == "02"
        assert payload["vnp_Amount"] == 302000000
        assert payload["vnp_TransactionDate"] == "20250601101500"
        assert len(payload["vnp_SecureHash"]) == 128
        assert repo.update_payment.call_args[0][1].status == "refunded"

    def test_partial_refund_type(self, sample_order):
        paid = sample_order.model_copy(update={
            "is_paid": True,
            "payment_details": PaymentDetails(provider="vnpay", txn_ref="42_1", status="completed")
        })
        service = VNPayService(order_repository=MagicMock())
        service._post = AsyncMock(return_value={"vnp_ResponseCode": "94"})

        result = asyncio.run(service.refund_transaction(paid, "127.0.0.1", "admin", amount=Decimal("1000")))

        assert result["success"] is False
        assert service._post.call_args[0][0]["vnp_TransactionType"] == "03"
