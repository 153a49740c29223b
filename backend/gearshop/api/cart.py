"""
Cart API Endpoints
The logged-in user's shopping cart
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from gearshop.core.auth import TokenUser, get_current_user
from gearshop.core.exceptions import ShopError
from gearshop.domain.cart import CartItemInput, CartQuantityUpdate
from gearshop.services.cart_service import CartService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/")
async def get_cart(current_user: TokenUser = Depends(get_current_user)):
    try:
        cart = CartService().get_cart(current_user.id)
        return {"status": "success", "data": cart.to_dict()}

    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching cart: {str(e)}")


@router.post("/")
async def add_to_cart(item: CartItemInput, current_user: TokenUser = Depends(get_current_user)):
    """Add a product; quantities merge with an existing line and are checked against stock"""
    try:
        cart = CartService().add_item(current_user.id, item.product_id, item.quantity)
        return {"status": "success", "data": cart.to_dict()}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error adding to cart: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error adding to cart: {str(e)}")


@router.put("/{product_id}")
async def update_cart_item(
    product_id: int,
    update: CartQuantityUpdate,
    current_user: TokenUser = Depends(get_current_user)
):
    try:
        cart = CartService().update_quantity(current_user.id, product_id, update.quantity)
        return {"status": "success", "data": cart.to_dict()}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error updating cart: {str(e)}")


@router.delete("/{product_id}")
async def remove_cart_item(product_id: int, current_user: TokenUser = Depends(get_current_user)):
    try:
        cart = CartService().remove_item(current_user.id, product_id)
        return {"status": "success", "data": cart.to_dict()}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error updating cart: {str(e)}")


@router.delete("/")
async def clear_cart(current_user: TokenUser = Depends(get_current_user)):
    try:
        cart = CartService().clear(current_user.id)
        return {"status": "success", "data": cart.to_dict()}

    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error clearing cart: {str(e)}")
