"""
VNPay API Endpoints

Endpoints:
- POST /api/payment/vnpay/create-payment/{order_id} - Signed payment URL (owner or admin)
- GET  /api/payment/vnpay/payment-return - Browser redirect back from VNPay
- GET  /api/payment/vnpay/ipn - Server-to-server payment notification
- GET  /api/payment/vnpay/payment-status/{order_id} - Payment state (owner or admin)
- POST /api/payment/vnpay/query/{order_id} - querydr (admin)
- POST /api/payment/vnpay/refund/{order_id} - refund (admin)
"""
import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field

from gearshop.core.auth import TokenUser, get_current_user, require_admin
from gearshop.core.exceptions import InvalidRequestError, ShopError
from gearshop.core.rate_limit import get_client_ip
from gearshop.services.order_service import OrderService
from gearshop.services.vnpay_service import VNPayService

logger = logging.getLogger(__name__)

router = APIRouter()


class RefundRequest(BaseModel):
    amount: Optional[Decimal] = Field(None, gt=0, description="Partial refund amount; full refund when omitted")


@router.post("/create-payment/{order_id}")
async def create_payment(order_id: int, request: Request, current_user: TokenUser = Depends(get_current_user)):
    try:
        order = OrderService().get_order(order_id, current_user.id, current_user.is_admin)
        if order.is_paid:
            raise InvalidRequestError(f"Order {order_id} is already paid")
        if order.status == "Cancelled":
            raise InvalidRequestError(f"Order {order_id} is cancelled")

        payment_url = VNPayService().create_payment_url(order, get_client_ip(request))
        return {"success": True, "payment_url": payment_url}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error creating VNPay payment for order {order_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating payment: {str(e)}")


@router.get("/payment-return")
async def payment_return(request: Request):
    """Verify the redirect parameters, record the result and send the browser to the frontend"""
    redirect_url = VNPayService().process_return(dict(request.query_params))
    return RedirectResponse(url=redirect_url, status_code=302)


@router.get("/ipn")
async def payment_ipn(request: Request):
    """Always HTTP 200 with {RspCode, Message}"""
    return VNPayService().process_ipn(dict(request.query_params))


@router.get("/payment-status/{order_id}")
async def payment_status(order_id: int, current_user: TokenUser = Depends(get_current_user)):
    try:
        order = OrderService().get_order(order_id, current_user.id, current_user.is_admin)
        return VNPayService.get_payment_status(order)

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching payment status: {str(e)}")


@router.post("/query/{order_id}")
async def query_transaction(order_id: int, request: Request, admin: TokenUser = Depends(require_admin)):
    try:
        order = OrderService().get_order(order_id, admin.id, is_admin=True)
        return await VNPayService().query_transaction(order, get_client_ip(request))

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error querying VNPay for order {order_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error querying transaction: {str(e)}")


@router.post("/refund/{order_id}")
async def refund_transaction(
    order_id: int,
    request: Request,
    body: Optional[RefundRequest] = None,
    admin: TokenUser = Depends(require_admin)
):
    try:
        order = OrderService().get_order(order_id, admin.id, is_admin=True)
        return await VNPayService().refund_transaction(
            order,
            get_client_ip(request),
            created_by=admin.email,
            amount=body.amount if body else None
        )

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error refunding VNPay order {order_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error refunding transaction: {str(e)}")
