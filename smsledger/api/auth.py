"""
SMS Ledger Auth API

Self-service signup (USER role) and login.
"""

from fastapi import APIRouter, HTTPException

from smsledger.core.auth import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    authenticate_user,
    create_access_token,
    register_user,
)
from smsledger.models.users import LoginRequest, Role, SignupRequest, TokenResponse

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _token_response(user: dict) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(user["user_id"], user["username"], user["role"]),
        expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user_id=user["user_id"],
        username=user["username"],
        role=Role(user["role"]),
    )


@router.post("/signup", response_model=TokenResponse, status_code=201)
def signup(request: SignupRequest):
    """Register a new account with the USER role."""
    user = register_user(request.username, request.password, Role.USER)
    if user is None:
        raise HTTPException(status_code=409, detail="Username already exists")
    return _token_response(user)


@router.post("/login", response_model=TokenResponse)
def login(request: LoginRequest):
    """Login with username and password."""
    user = authenticate_user(request.username, request.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid username or password")
    return _token_response(user)
