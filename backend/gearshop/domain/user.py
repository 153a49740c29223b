"""
User Domain Model

Author: GearShop
Date: 2025-06-02
"""
from pydantic import BaseModel, Field, ConfigDict, EmailStr
from typing import List, Optional
from datetime import datetime


class Address(BaseModel):
    """Vietnamese postal address (street, ward, district, province)"""
    street: str = ""
    ward: str = ""
    district: str = ""
    province: str = ""

    @property
    def is_complete(self) -> bool:
        return all([self.street, self.ward, self.district, self.province])

    def format(self) -> str:
        return ", ".join(part for part in [self.street, self.ward, self.district, self.province] if part)


class User(BaseModel):
    """
    User domain model

    password_hash never leaves the repository/service layer:
    to_dict() drops it.
    """
    id: int
    name: str
    email: str
    password_hash: Optional[str] = None
    role: str = Field("user", pattern="^(user|admin)$")
    address: Optional[Address] = None
    wishlist: List[int] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def to_dict(self) -> dict:
        data = self.model_dump(exclude={'password_hash'})
        data['created_at'] = self.created_at.isoformat() if self.created_at else None
        return data


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6)


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None


class AdminUserUpdate(UserUpdate):
    role: Optional[str] = Field(None, pattern="^(user|admin)$")


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6)
