"""
User Service

Registration, login, profile and wishlist management.
"""
import logging
from typing import List, Optional, Tuple

from gearshop.core.auth import create_access_token, hash_password, verify_password
from gearshop.core.exceptions import AuthenticationError, InvalidRequestError, NotFoundError
from gearshop.domain.product import Product
from gearshop.domain.user import (
    Address,
    AdminUserUpdate,
    PasswordChange,
    User,
    UserCreate,
    UserLogin,
    UserUpdate,
)
from gearshop.repositories.product_repository import ProductRepository
from gearshop.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)


class UserService:
    """Business logic for accounts"""

    def __init__(
        self,
        user_repository: Optional[UserRepository] = None,
        product_repository: Optional[ProductRepository] = None
    ):
        self.user_repo = user_repository or UserRepository()
        self.product_repo = product_repository or ProductRepository()

    @staticmethod
    def issue_token(user: User) -> str:
        return create_access_token(user.id, user.email, user.name, user.role)

    def register(self, data: UserCreate) -> Tuple[User, str]:
        """Create a regular user account and return it with a token"""
        if self.user_repo.find_by_email(data.email):
            raise InvalidRequestError("User already exists")

        user = self.user_repo.create(
            name=data.name,
            email=data.email,
            password_hash=hash_password(data.password)
        )
        logger.info(f"Registered user {user.id} ({user.email})")
        return user, self.issue_token(user)

    def login(self, data: UserLogin) -> Tuple[User, str]:
        user = self.user_repo.find_by_email(data.email)
        if not user or not user.password_hash or not verify_password(data.password, user.password_hash):
            logger.warning(f"Failed login for {data.email}")
            raise AuthenticationError("Invalid email or password")
        return user, self.issue_token(user)

    def get_user(self, user_id: int) -> User:
        user = self.user_repo.find_by_id(user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def list_users(self, limit: int = 100, offset: int = 0) -> List[User]:
        return self.user_repo.find_all(limit=limit, offset=offset)

    def _ensure_email_free(self, user_id: int, email: Optional[str]) -> None:
        if not email:
            return
        existing = self.user_repo.find_by_email(email)
        if existing and existing.id != user_id:
            raise InvalidRequestError("Email is already in use")

    def update_profile(self, user_id: int, data: UserUpdate) -> User:
        self.get_user(user_id)
        self._ensure_email_free(user_id, data.email)
        return self.user_repo.update(user_id, data.model_dump(exclude_unset=True, exclude={'role'}))

    def admin_update(self, user_id: int, data: AdminUserUpdate) -> User:
        self.get_user(user_id)
        self._ensure_email_free(user_id, data.email)
        user = self.user_repo.update(user_id, data.model_dump(exclude_unset=True))
        logger.info(f"Admin updated user {user_id}: {data.model_dump(exclude_unset=True)}")
        return user

    def change_password(self, user_id: int, data: PasswordChange) -> None:
        user = self.get_user(user_id)
        if not user.password_hash or not verify_password(data.current_password, user.password_hash):
            raise InvalidRequestError("Current password is incorrect")
        self.user_repo.update_password(user_id, hash_password(data.new_password))
        logger.info(f"User {user_id} changed password")

    def get_address(self, user_id: int) -> Optional[Address]:
        return self.get_user(user_id).address

    def update_address(self, user_id: int, address: Address) -> User:
        self.get_user(user_id)
        return self.user_repo.update_address(user_id, address)

    def delete_user(self, user_id: int, acting_user_id: int) -> None:
        if user_id == acting_user_id:
            raise InvalidRequestError("You cannot delete your own account")
        user = self.get_user(user_id)
        if user.is_admin:
            raise InvalidRequestError("Cannot delete an admin user")
        self.user_repo.delete(user_id)
        logger.info(f"User {user_id} deleted by {acting_user_id}")

    # ------------------------------------------------------------------
    # Wishlist
    # ------------------------------------------------------------------

    def get_wishlist(self, user_id: int) -> List[Product]:
        ids = self.user_repo.get_wishlist_ids(user_id)
        return self.product_repo.find_by_ids(ids) if ids else []

    def add_to_wishlist(self, user_id: int, product_id: int) -> List[Product]:
        if not self.product_repo.find_by_id(product_id):
            raise NotFoundError(f"Product {product_id} not found")
        self.user_repo.add_to_wishlist(user_id, product_id)
        return self.get_wishlist(user_id)

    def remove_from_wishlist(self, user_id: int, product_id: int) -> List[Product]:
        if not self.user_repo.remove_from_wishlist(user_id, product_id):
            raise NotFoundError(f"Product {product_id} is not in the wishlist")
        return self.get_wishlist(user_id)
