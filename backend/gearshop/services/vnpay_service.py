"""
VNPay Payment Service

Builds signed payment URLs, verifies Return URL / IPN callbacks and talks
to the VNPay merchant API (querydr / refund).

Signing scheme (HMAC-SHA512, hex digest):
- pay / return / IPN: parameters with empty values removed, keys sorted
  byte-wise ascending, joined as key=value with '&'
- querydr / refund: fixed field order joined with '|'

Author: GearShop
Date: 2025-06-02
"""
import hmac
import hashlib
import logging
import re
import time
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote_plus, urlencode

import httpx

from gearshop.core.config import settings
from gearshop.core.exceptions import PaymentGatewayError
from gearshop.domain.order import Order, PaymentDetails
from gearshop.repositories.order_repository import OrderRepository

logger = logging.getLogger(__name__)


# Vietnam has no DST, a fixed offset is exact
VNPAY_TIMEZONE = timezone(timedelta(hours=7), name="Asia/Ho_Chi_Minh")

SECURE_HASH_FIELDS = ("vnp_SecureHash", "vnp_SecureHashType")

SUCCESS_CODE = "00"

QUERY_SIGN_FIELDS = (
    "vnp_RequestId", "vnp_Version", "vnp_Command", "vnp_TmnCode", "vnp_TxnRef",
    "vnp_TransactionDate", "vnp_CreateDate", "vnp_IpAddr", "vnp_OrderInfo",
)

REFUND_SIGN_FIELDS = (
    "vnp_RequestId", "vnp_Version", "vnp_Command", "vnp_TmnCode", "vnp_TransactionType",
    "vnp_TxnRef", "vnp_Amount", "vnp_TransactionNo", "vnp_TransactionDate",
    "vnp_CreateBy", "vnp_CreateDate", "vnp_IpAddr", "vnp_OrderInfo",
)

RESPONSE_SIGN_FIELDS = (
    "vnp_ResponseId", "vnp_Command", "vnp_ResponseCode", "vnp_Message", "vnp_TmnCode",
    "vnp_TxnRef", "vnp_Amount", "vnp_BankCode", "vnp_PayDate", "vnp_TransactionNo",
    "vnp_TransactionType", "vnp_TransactionStatus", "vnp_OrderInfo",
)

QUERY_RESPONSE_SIGN_FIELDS = RESPONSE_SIGN_FIELDS + ("vnp_PromotionCode", "vnp_PromotionAmount")

# IPN response codes (VNPay merchant contract)
IPN_SUCCESS = {"RspCode": "00", "Message": "Confirm Success"}
IPN_ORDER_NOT_FOUND = {"RspCode": "01", "Message": "Order not found"}
IPN_ALREADY_CONFIRMED = {"RspCode": "02", "Message": "Order already confirmed"}
IPN_INVALID_AMOUNT = {"RspCode": "04", "Message": "Invalid amount"}
IPN_INVALID_SIGNATURE = {"RspCode": "97", "Message": "Invalid signature"}
IPN_UNKNOWN_ERROR = {"RspCode": "99", "Message": "Unknown error"}


# ============================================================================
# Signing primitives
# ============================================================================

def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def build_sign_data(params: Mapping[str, Any], encode: bool = False) -> str:
    """
    Canonical string-to-sign for pay / return / IPN requests.

    Empty and None values are dropped, keys are sorted byte-wise and the
    pairs are joined with '&'. Values stay raw unless encode=True.
    """
    pairs = []
    for key in sorted(k for k, v in params.items() if not _is_empty(v)):
        value = str(params[key])
        if encode:
            value = quote_plus(value)
        pairs.append(f"{key}={value}")
    return "&".join(pairs)


def create_secure_hash(data: str, secret: str) -> str:
    """HMAC-SHA512 hex digest"""
    return hmac.new(secret.encode("utf-8"), data.encode("utf-8"), hashlib.sha512).hexdigest()


def sign_params(params: Mapping[str, Any], secret: str, encode: bool = False) -> Dict[str, Any]:
    """
    Return a copy of params (empty values removed) with vnp_SecureHash attached
    """
    signed = {k: v for k, v in params.items() if not _is_empty(v) and k not in SECURE_HASH_FIELDS}
    signed["vnp_SecureHash"] = create_secure_hash(build_sign_data(signed, encode), secret)
    return signed


def verify_params(params: Mapping[str, Any], secret: str, encode: bool = False) -> bool:
    """
    Verify a signed parameter set received from VNPay.

    vnp_SecureHash and vnp_SecureHashType are excluded from the string-to-sign;
    the digest comparison is exact and constant time.
    """
    received = params.get("vnp_SecureHash")
    if not received:
        return False

    unsigned = {k: v for k, v in params.items() if k not in SECURE_HASH_FIELDS}
    expected = create_secure_hash(build_sign_data(unsigned, encode), secret)
    return hmac.compare_digest(expected, str(received))


def build_pipe_sign_data(params: Mapping[str, Any], fields) -> str:
    """Fixed-order '|' join used by querydr / refund and their responses"""
    return "|".join("" if _is_empty(params.get(field)) else str(params.get(field)) for field in fields)


def sign_query_request(params: Mapping[str, Any], secret: str) -> str:
    return create_secure_hash(build_pipe_sign_data(params, QUERY_SIGN_FIELDS), secret)


def sign_refund_request(params: Mapping[str, Any], secret: str) -> str:
    return create_secure_hash(build_pipe_sign_data(params, REFUND_SIGN_FIELDS), secret)


def verify_api_response(response: Mapping[str, Any], secret: str, is_query: bool) -> bool:
    """Verify vnp_SecureHash on a querydr (is_query=True) or refund response"""
    received = response.get("vnp_SecureHash")
    if not received:
        return False

    fields = QUERY_RESPONSE_SIGN_FIELDS if is_query else RESPONSE_SIGN_FIELDS
    expected = create_secure_hash(build_pipe_sign_data(response, fields), secret)
    return hmac.compare_digest(expected, str(received))


# ============================================================================
# Formatting helpers
# ============================================================================

def format_vnpay_date(dt: Optional[datetime] = None) -> str:
    """yyyyMMddHHmmss in Vietnam time; naive datetimes are taken as UTC"""
    dt = dt or datetime.now(timezone.utc)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(VNPAY_TIMEZONE).strftime("%Y%m%d%H%M%S")


def create_txn_ref(order_id: Any, now_millis: Optional[int] = None) -> str:
    """<order_id>_<unix millis> - unique per payment attempt"""
    millis = now_millis if now_millis is not None else int(time.time() * 1000)
    return f"{order_id}_{millis}"


def extract_order_id(txn_ref: str) -> str:
    return (txn_ref or "").split("_", 1)[0]


def format_amount(total_price: Any) -> int:
    """VNPay amounts carry two implied decimals: round(total * 100)"""
    return int((Decimal(str(total_price)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def build_order_info(order_id: Any) -> str:
    return "Payment-for-order-" + re.sub(r"[^a-zA-Z0-9]", "", str(order_id))


def is_successful(params: Mapping[str, Any]) -> bool:
    return params.get("vnp_ResponseCode") == SUCCESS_CODE and params.get("vnp_TransactionStatus") == SUCCESS_CODE


def payment_details_from_params(params: Mapping[str, Any], status: str) -> PaymentDetails:
    return PaymentDetails(
        provider="vnpay",
        txn_ref=params.get("vnp_TxnRef"),
        transaction_no=params.get("vnp_TransactionNo"),
        bank_code=params.get("vnp_BankCode"),
        bank_tran_no=params.get("vnp_BankTranNo"),
        card_type=params.get("vnp_CardType"),
        pay_date=params.get("vnp_PayDate"),
        response_code=params.get("vnp_ResponseCode"),
        transaction_status=params.get("vnp_TransactionStatus"),
        status=status,
    )


# ============================================================================
# Service
# ============================================================================

class VNPayService:
    """
    VNPay gateway integration

    Handles:
    - Signed payment URL creation (marks payment pending)
    - Return URL handling (browser redirect back from VNPay)
    - IPN handling (server-to-server confirmation)
    - querydr / refund calls to the merchant API
    """

    def __init__(self, order_repository: Optional[OrderRepository] = None):
        self.order_repo = order_repository or OrderRepository()
        self.tmn_code = settings.VNPAY_TMN_CODE
        self.hash_secret = settings.VNPAY_HASH_SECRET
        self.encode_sign_data = settings.VNPAY_URL_ENCODE_SIGN_DATA

    def _find_order_by_txn_ref(self, txn_ref: Optional[str]) -> Optional[Order]:
        order_id = extract_order_id(txn_ref or "")
        if not order_id.isdigit():
            return None
        return self.order_repo.find_by_id(int(order_id))

    # ------------------------------------------------------------------
    # Pay
    # ------------------------------------------------------------------

    def create_payment_url(self, order: Order, ip_addr: str) -> str:
        """
        Build the signed redirect URL for an order and mark its payment pending
        """
        now = datetime.now(timezone.utc)
        txn_ref = create_txn_ref(order.id)

        params = {
            "vnp_Version": settings.VNPAY_VERSION,
            "vnp_Command": "pay",
            "vnp_TmnCode": self.tmn_code,
            "vnp_Amount": format_amount(order.total_price),
            "vnp_CreateDate": format_vnpay_date(now),
            "vnp_ExpireDate": format_vnpay_date(now + timedelta(minutes=settings.VNPAY_EXPIRE_MINUTES)),
            "vnp_CurrCode": settings.VNPAY_CURR_CODE,
            "vnp_IpAddr": ip_addr,
            "vnp_Locale": settings.VNPAY_LOCALE,
            "vnp_OrderInfo": build_order_info(order.id),
            "vnp_OrderType": settings.VNPAY_ORDER_TYPE,
            "vnp_ReturnUrl": settings.VNPAY_RETURN_URL,
            "vnp_TxnRef": txn_ref,
        }

        signed = sign_params(params, self.hash_secret, self.encode_sign_data)
        payment_url = f"{settings.VNPAY_URL}?{urlencode(signed)}"

        self.order_repo.update_payment(
            order.id,
            PaymentDetails(provider="vnpay", txn_ref=txn_ref, status="pending")
        )

        logger.info(f"Created VNPay payment URL for order {order.id} (txn_ref={txn_ref})")
        return payment_url

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def _record_result(self, order: Order, params: Mapping[str, Any]) -> bool:
        success = is_successful(params)
        details = payment_details_from_params(params, "completed" if success else "failed")

        if success:
            self.order_repo.update_payment(order.id, details, is_paid=True, paid_at=datetime.now(timezone.utc))
        else:
            self.order_repo.update_payment(order.id, details)

        logger.info(
            f"VNPay result for order {order.id}: response_code={params.get('vnp_ResponseCode')} "
            f"transaction_status={params.get('vnp_TransactionStatus')} success={success}"
        )
        return success

    def process_return(self, params: Mapping[str, Any]) -> str:
        """
        Handle the browser coming back from VNPay.

        Returns:
            Frontend URL to redirect to
        """
        frontend_url = settings.FRONTEND_URL.rstrip("/")

        try:
            if not verify_params(params, self.hash_secret, self.encode_sign_data):
                logger.warning(f"VNPay return with invalid signature (txn_ref={params.get('vnp_TxnRef')})")
                return f"{frontend_url}/payment-error?error=invalid-signature"

            order = self._find_order_by_txn_ref(params.get("vnp_TxnRef"))
            if not order:
                logger.warning(f"VNPay return for unknown order (txn_ref={params.get('vnp_TxnRef')})")
                return f"{frontend_url}/payment-error?error=order-not-found"

            if order.is_paid:
                success = True
            else:
                success = self._record_result(order, params)

            return f"{frontend_url}/order/{order.id}?payment={'success' if success else 'failed'}"

        except Exception as e:
            logger.error(f"VNPay return handling failed: {e}", exc_info=True)
            return f"{frontend_url}/payment-error?error=unknown"

    def process_ipn(self, params: Mapping[str, Any]) -> Dict[str, str]:
        """
        Handle the VNPay server-to-server notification.

        Always answers with {RspCode, Message}; VNPay retries on anything but 00/02.
        """
        try:
            if not verify_params(params, self.hash_secret, self.encode_sign_data):
                logger.warning(f"VNPay IPN with invalid signature (txn_ref={params.get('vnp_TxnRef')})")
                return IPN_INVALID_SIGNATURE

            order = self._find_order_by_txn_ref(params.get("vnp_TxnRef"))
            if not order:
                return IPN_ORDER_NOT_FOUND

            if str(params.get("vnp_Amount")) != str(format_amount(order.total_price)):
                logger.warning(
                    f"VNPay IPN amount mismatch for order {order.id}: "
                    f"got {params.get('vnp_Amount')}, expected {format_amount(order.total_price)}"
                )
                return IPN_INVALID_AMOUNT

            if order.is_paid or (order.payment_details and order.payment_details.status == "completed"):
                return IPN_ALREADY_CONFIRMED

            self._record_result(order, params)
            return IPN_SUCCESS

        except Exception as e:
            logger.error(f"VNPay IPN handling failed: {e}", exc_info=True)
            return IPN_UNKNOWN_ERROR

    @staticmethod
    def get_payment_status(order: Order) -> Dict[str, Any]:
        return {
            "success": True,
            "payment_status": "completed" if order.is_paid else (
                order.payment_details.status if order.payment_details else "pending"
            ),
            "is_paid": order.is_paid,
            "paid_at": order.paid_at.isoformat() if order.paid_at else None,
            "payment_details": order.payment_details.model_dump() if order.payment_details else {},
        }

    # ------------------------------------------------------------------
    # Merchant API
    # ------------------------------------------------------------------

    @staticmethod
    def _transaction_date(order: Order) -> str:
        if order.payment_details and order.payment_details.pay_date:
            return order.payment_details.pay_date
        return format_vnpay_date(order.created_at)

    async def _post(self, payload: Dict[str, Any], is_query: bool) -> Dict[str, Any]:
        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(
                    settings.VNPAY_API_URL,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                    timeout=30.0
                )
                response.raise_for_status()
                data = response.json()

            except httpx.HTTPStatusError as e:
                logger.error(f"VNPay API error: {e.response.status_code} - {e.response.text}")
                raise PaymentGatewayError(f"VNPay API returned HTTP {e.response.status_code}")
            except httpx.HTTPError as e:
                logger.error(f"VNPay API unreachable: {e}")
                raise PaymentGatewayError(f"VNPay API unreachable: {e}")

        if data.get("vnp_SecureHash") and not verify_api_response(data, self.hash_secret, is_query):
            logger.error(f"VNPay API response with invalid signature: {data}")
            raise PaymentGatewayError("VNPay API response signature mismatch")

        return data

    async def query_transaction(self, order: Order, ip_addr: str) -> Dict[str, Any]:
        """querydr - ask VNPay for the current state of the order's transaction"""
        if not order.payment_details or not order.payment_details.txn_ref:
            raise PaymentGatewayError(f"Order {order.id} has no VNPay transaction")

        payload = {
            "vnp_RequestId": uuid.uuid4().hex,
            "vnp_Version": settings.VNPAY_VERSION,
            "vnp_Command": "querydr",
            "vnp_TmnCode": self.tmn_code,
            "vnp_TxnRef": order.payment_details.txn_ref,
            "vnp_OrderInfo": f"Query transaction {order.payment_details.txn_ref}",
            "vnp_TransactionDate": self._transaction_date(order),
            "vnp_CreateDate": format_vnpay_date(),
            "vnp_IpAddr": ip_addr,
        }
        payload["vnp_SecureHash"] = sign_query_request(payload, self.hash_secret)

        logger.info(f"Querying VNPay transaction for order {order.id}")
        data = await self._post(payload, is_query=True)

        return {
            "success": data.get("vnp_ResponseCode") == SUCCESS_CODE,
            "response_code": data.get("vnp_ResponseCode"),
            "transaction_status": data.get("vnp_TransactionStatus"),
            "message": data.get("vnp_Message"),
            "data": data,
        }

    async def refund_transaction(
        self,
        order: Order,
        ip_addr: str,
        created_by: str,
        amount: Optional[Decimal] = None
    ) -> Dict[str, Any]:
        """
        Refund a paid VNPay order.

        transaction type 02 = full refund, 03 = partial refund
        """
        details = order.payment_details
        if not details or not details.txn_ref or not order.is_paid:
            raise PaymentGatewayError(f"Order {order.id} has no completed VNPay payment to refund")

        refund_amount = amount if amount is not None else order.total_price
        transaction_type = "02" if Decimal(str(refund_amount)) >= order.total_price else "03"

        payload = {
            "vnp_RequestId": uuid.uuid4().hex,
            "vnp_Version": settings.VNPAY_VERSION,
            "vnp_Command": "refund",
            "vnp_TmnCode": self.tmn_code,
            "vnp_TransactionType": transaction_type,
            "vnp_TxnRef": details.txn_ref,
            "vnp_Amount": format_amount(refund_amount),
            "vnp_TransactionNo": details.transaction_no or "",
            "vnp_TransactionDate": self._transaction_date(order),
            "vnp_CreateBy": created_by,
            "vnp_CreateDate": format_vnpay_date(),
            "vnp_IpAddr": ip_addr,
            "vnp_OrderInfo": f"Refund order {order.id}",
        }
        payload["vnp_SecureHash"] = sign_refund_request(payload, self.hash_secret)

        logger.info(f"Requesting VNPay refund for order {order.id} (type={transaction_type})")
        data = await self._post(payload, is_query=False)

        success = data.get("vnp_ResponseCode") == SUCCESS_CODE
        if success:
            refunded = details.model_copy(update={"status": "refunded"})
            self.order_repo.update_payment(order.id, refunded)
            logger.info(f"Order {order.id} refunded via VNPay")

        return {
            "success": success,
            "response_code": data.get("vnp_ResponseCode"),
            "message": data.get("vnp_Message"),
            "data": data,
        }
