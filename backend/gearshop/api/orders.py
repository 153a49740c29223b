"""
Orders API Endpoints
Order placement and lifecycle for customers; listing, status and stats for admins
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from gearshop.core.auth import TokenUser, get_current_user, require_admin
from gearshop.core.exceptions import ShopError
from gearshop.domain.order import ORDER_STATUSES, OrderCreate, OrderPayment, OrderStatusUpdate
from gearshop.services.order_service import OrderService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_order(data: OrderCreate, current_user: TokenUser = Depends(get_current_user)):
    """
    Place an order

    Items default to the current cart. Stock is validated and decremented,
    the coupon (if any) is applied and the cart is cleared.
    """
    try:
        order = OrderService().create_order(current_user.id, data)
        return {"status": "success", "data": order.to_dict()}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error creating order for user {current_user.id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating order: {str(e)}")


@router.get("/myorders")
async def get_my_orders(current_user: TokenUser = Depends(get_current_user)):
    try:
        orders = OrderService().list_user_orders(current_user.id)
        return {"status": "success", "count": len(orders), "data": [o.to_dict() for o in orders]}

    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching orders: {str(e)}")


@router.get("/stats")
async def get_order_stats(admin: TokenUser = Depends(require_admin)):
    """
    Get order statistics

    Returns:
    - Total orders and revenue
    - Orders by status
    - Paid vs unpaid
    """
    try:
        return {"status": "success", "data": OrderService().get_stats()}

    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching stats: {str(e)}")


@router.get("/")
async def get_orders(
    order_status: Optional[str] = Query(None, alias="status", description=f"One of: {', '.join(ORDER_STATUSES)}"),
    is_paid: Optional[bool] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    admin: TokenUser = Depends(require_admin)
):
    try:
        if order_status and order_status not in ORDER_STATUSES:
            raise HTTPException(status_code=400, detail=f"Invalid status '{order_status}'")

        orders, total = OrderService().list_orders(status=order_status, is_paid=is_paid, limit=limit, offset=offset)
        return {
            "status": "success",
            "total": total,
            "limit": limit,
            "offset": offset,
            "count": len(orders),
            "data": [o.to_dict() for o in orders]
        }

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching orders: {str(e)}")


@router.get("/{order_id}")
async def get_order(order_id: int, current_user: TokenUser = Depends(get_current_user)):
    """Owner or admin"""
    try:
        order = OrderService().get_order(order_id, current_user.id, current_user.is_admin)
        return {"status": "success", "data": order.to_dict()}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching order: {str(e)}")


@router.put("/{order_id}/pay")
async def pay_order(order_id: int, payment: OrderPayment, current_user: TokenUser = Depends(get_current_user)):
    try:
        order = OrderService().mark_paid(order_id, current_user.id, current_user.is_admin, payment)
        return {"status": "success", "data": order.to_dict()}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error updating payment: {str(e)}")


@router.put("/{order_id}/cancel")
async def cancel_order(order_id: int, current_user: TokenUser = Depends(get_current_user)):
    """Owner only, while Processing and unpaid; stock is restored"""
    try:
        order = OrderService().cancel_order(order_id, current_user.id)
        return {"status": "success", "data": order.to_dict()}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error cancelling order: {str(e)}")


@router.put("/{order_id}/status")
async def update_order_status(
    order_id: int,
    update: OrderStatusUpdate,
    admin: TokenUser = Depends(require_admin)
):
    try:
        order = OrderService().update_status(order_id, update.status, update.tracking_number)
        return {"status": "success", "data": order.to_dict()}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error updating order status: {str(e)}")


@router.delete("/{order_id}")
async def delete_order(order_id: int, admin: TokenUser = Depends(require_admin)):
    try:
        OrderService().delete_order(order_id)
        logger.info(f"Order {order_id} deleted by admin {admin.id}")
        return {"status": "success", "message": f"Order {order_id} deleted"}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error deleting order: {str(e)}")
