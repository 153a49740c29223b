"""
Users API Endpoints
Registration, login, profile, address and wishlist; admin user management
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from gearshop.core.auth import TokenUser, get_current_user, require_admin
from gearshop.core.exceptions import ShopError
from gearshop.domain.user import (
    Address,
    AdminUserUpdate,
    PasswordChange,
    UserCreate,
    UserLogin,
    UserUpdate,
)
from gearshop.services.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter()


def _auth_payload(user, token: str) -> dict:
    return {
        "status": "success",
        "data": {
            "user": user.to_dict(),
            "token": token,
        }
    }


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(data: UserCreate):
    """Create an account and return it with a JWT"""
    try:
        user, token = UserService().register(data)
        return _auth_payload(user, token)

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Registration failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error registering user: {str(e)}")


@router.post("/login")
async def login(data: UserLogin):
    try:
        user, token = UserService().login(data)
        return _auth_payload(user, token)

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Login failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error logging in: {str(e)}")


# =============================================================================
# Current user
# =============================================================================

@router.get("/profile")
async def get_profile(current_user: TokenUser = Depends(get_current_user)):
    try:
        user = UserService().get_user(current_user.id)
        return {"status": "success", "data": user.to_dict()}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching profile: {str(e)}")


@router.put("/profile")
async def update_profile(data: UserUpdate, current_user: TokenUser = Depends(get_current_user)):
    """Update name/email; returns a fresh token since the claims changed"""
    try:
        service = UserService()
        user = service.update_profile(current_user.id, data)
        return _auth_payload(user, service.issue_token(user))

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error updating profile: {str(e)}")


@router.put("/profile/password")
async def change_password(data: PasswordChange, current_user: TokenUser = Depends(get_current_user)):
    try:
        UserService().change_password(current_user.id, data)
        return {"status": "success", "message": "Password changed successfully"}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to change password: {str(e)}")


@router.get("/address")
async def get_address(current_user: TokenUser = Depends(get_current_user)):
    try:
        address = UserService().get_address(current_user.id)
        return {"status": "success", "data": address.model_dump() if address else None}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching address: {str(e)}")


@router.put("/address")
async def update_address(address: Address, current_user: TokenUser = Depends(get_current_user)):
    try:
        user = UserService().update_address(current_user.id, address)
        return {"status": "success", "data": user.address.model_dump() if user.address else None}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error updating address: {str(e)}")


@router.get("/wishlist")
async def get_wishlist(current_user: TokenUser = Depends(get_current_user)):
    try:
        products = UserService().get_wishlist(current_user.id)
        return {"status": "success", "count": len(products), "data": [p.to_dict() for p in products]}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching wishlist: {str(e)}")


@router.post("/wishlist/{product_id}")
async def add_to_wishlist(product_id: int, current_user: TokenUser = Depends(get_current_user)):
    try:
        products = UserService().add_to_wishlist(current_user.id, product_id)
        return {"status": "success", "count": len(products), "data": [p.to_dict() for p in products]}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error updating wishlist: {str(e)}")


@router.delete("/wishlist/{product_id}")
async def remove_from_wishlist(product_id: int, current_user: TokenUser = Depends(get_current_user)):
    try:
        products = UserService().remove_from_wishlist(current_user.id, product_id)
        return {"status": "success", "count": len(products), "data": [p.to_dict() for p in products]}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error updating wishlist: {str(e)}")


# =============================================================================
# Admin
# =============================================================================

@router.get("/")
async def list_users(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    admin: TokenUser = Depends(require_admin)
):
    try:
        users = UserService().list_users(limit=limit, offset=offset)
        return {
            "status": "success",
            "count": len(users),
            "limit": limit,
            "offset": offset,
            "data": [u.to_dict() for u in users]
        }

    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching users: {str(e)}")


@router.get("/{user_id}")
async def get_user(user_id: int, admin: TokenUser = Depends(require_admin)):
    try:
        user = UserService().get_user(user_id)
        return {"status": "success", "data": user.to_dict()}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching user: {str(e)}")


@router.put("/{user_id}")
async def update_user(user_id: int, data: AdminUserUpdate, admin: TokenUser = Depends(require_admin)):
    try:
        user = UserService().admin_update(user_id, data)
        return {"status": "success", "data": user.to_dict()}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error updating user: {str(e)}")


@router.delete("/{user_id}")
async def delete_user(user_id: int, admin: TokenUser = Depends(require_admin)):
    try:
        UserService().delete_user(user_id, acting_user_id=admin.id)
        return {"status": "success", "message": f"User {user_id} deleted"}

    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error deleting user: {str(e)}")
