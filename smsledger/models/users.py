"""User accounts, roles and merchant category bodies."""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from smsledger.models.base import LedgerBaseModel
from smsledger.models.patterns import MessageSubtype


class Role(str, Enum):
    USER = "USER"
    MAKER = "MAKER"
    CHECKER = "CHECKER"
    ADMIN = "ADMIN"


class SignupRequest(LedgerBaseModel):
    username: str = Field(..., min_length=3, max_length=64)
    password: str = Field(..., min_length=6)


class LoginRequest(LedgerBaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class CreateUserRequest(SignupRequest):
    role: Role = Role.USER


class RoleUpdateRequest(LedgerBaseModel):
    role: Role


class UserOut(LedgerBaseModel):
    user_id: int
    username: str
    role: Role
    created_at: Optional[datetime] = None


class TokenResponse(LedgerBaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user_id: int
    username: str
    role: Role


class MerchantCategoryRequest(LedgerBaseModel):
    merchant_name: str = Field(..., min_length=1)
    category: MessageSubtype


class MerchantCategory(LedgerBaseModel):
    merchant_name: str
    category: MessageSubtype
