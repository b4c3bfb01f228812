"""User administration: account creation, role changes and role counts."""
from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException

from smsledger.core.auth import Actor, register_user, require_roles
from smsledger.core.database import get_db
from smsledger.models.users import CreateUserRequest, Role, RoleUpdateRequest, UserOut
from smsledger.services.logging import log_event

router = APIRouter(prefix="/admin", tags=["Admin"])

require_admin = require_roles(Role.ADMIN)


def _user_out(row: dict) -> UserOut:
    return UserOut(
        user_id=row["user_id"],
        username=row["username"],
        role=Role(row["role"]),
        created_at=row.get("created_at"),
    )


@router.get("/users", response_model=List[UserOut])
def list_users(actor: Actor = Depends(require_admin)):
    return [_user_out(row) for row in get_db().list_users()]


@router.post("/users", response_model=UserOut, status_code=201)
def create_user(request: CreateUserRequest, actor: Actor = Depends(require_admin)):
    user = register_user(request.username, request.password, request.role)
    if user is None:
        raise HTTPException(status_code=409, detail="Username already exists")
    log_event("user_created", user_id=user["user_id"], role=user["role"], by=actor.user_id)
    return _user_out(user)


@router.put("/users/{user_id}/role", response_model=UserOut)
def update_role(user_id: int, request: RoleUpdateRequest, actor: Actor = Depends(require_admin)):
    if user_id == actor.user_id:
        raise HTTPException(status_code=403, detail="Admins cannot change their own role")
    db = get_db()
    if not db.update_user_role(user_id, request.role):
        raise HTTPException(status_code=404, detail=f"User not found with id: {user_id}")
    log_event("role_changed", user_id=user_id, role=request.role.value, by=actor.user_id)
    return _user_out(db.get_user(user_id))


@router.get("/users/counts", response_model=Dict[str, int])
def role_counts(actor: Actor = Depends(require_admin)):
    counts = {role.value: 0 for role in Role}
    counts.update(get_db().count_users_by_role())
    return counts
