"""
SMS Ledger Authentication

JWT bearer tokens carrying the caller's id, username and role. Routers
declare the roles they accept with ``require_roles``; everything below the
router receives an explicit ``Actor``.
"""

import logging
import os
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

import jwt
from passlib.context import CryptContext

from smsledger.core.database import get_db
from smsledger.models.users import Role

logger = logging.getLogger(__name__)

# Configuration
SECRET_KEY = os.getenv("SMSLEDGER_SECRET_KEY", secrets.token_urlsafe(32))
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("SMSLEDGER_TOKEN_EXPIRE_MINUTES", "60"))

# Password hashing
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

# Bearer token security
security = HTTPBearer(auto_error=False)


class Actor(BaseModel):
    """Authenticated caller, passed explicitly into service operations."""
    user_id: int
    username: str
    role: Role


def hash_password(password: str) -> str:
    """Hash a password."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(
    user_id: int,
    username: str,
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a JWT access token."""
    if expires_delta is None:
        expires_delta = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)

    expire = datetime.now(timezone.utc) + expires_delta

    payload = {
        "sub": str(user_id),
        "username": username,
        "role": Role(role).value,
        "exp": expire,
        "iat": datetime.now(timezone.utc),
        "type": "access",
    }

    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """Decode and validate a JWT token."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Actor:
    """Resolve the bearer token into an Actor or fail with 401."""
    if not credentials or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Not authenticated. Provide a Bearer token.")

    payload = decode_token(credentials.credentials)
    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type")

    try:
        return Actor(
            user_id=int(payload["sub"]),
            username=payload.get("username", ""),
            role=Role(payload.get("role", Role.USER.value)),
        )
    except (KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")


def require_roles(*roles: Role):
    """Dependency factory: the caller must hold one of ``roles``."""
    allowed = set(roles)

    def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed:
            raise HTTPException(
                status_code=403,
                detail=f"Role '{actor.role.value}' not authorized. Required: {sorted(r.value for r in allowed)}",
            )
        return actor

    return dependency


def register_user(username: str, password: str, role: Role = Role.USER) -> Optional[Dict[str, Any]]:
    """Create a user. Returns None if the username is taken."""
    return get_db().create_user(username, hash_password(password), role)


def authenticate_user(username: str, password: str) -> Optional[Dict[str, Any]]:
    """Authenticate a user by username and password."""
    user = get_db().get_user_by_username(username)
    if not user:
        return None
    if not verify_password(password, user["password_hash"]):
        return None
    return user


def bootstrap_admin() -> None:
    """Create the ADMIN account named by the environment, if configured and missing."""
    username = os.getenv("SMSLEDGER_ADMIN_USERNAME")
    password = os.getenv("SMSLEDGER_ADMIN_PASSWORD")
    if not username or not password:
        return
    if get_db().get_user_by_username(username):
        return
    register_user(username, password, Role.ADMIN)
    logger.info("Bootstrapped admin account %s", username)
