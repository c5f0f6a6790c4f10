"""
projecthub/routes_admin.py

User administration for organization admins: listing users, inviting users,
changing roles and per-user project capacity. All queries are scoped to the
caller's organization.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path

from projecthub import users_service
from projecthub.auth_context import AuthContext, get_db
from projecthub.authz import Capability
from projecthub.db import DbConnection
from projecthub.dependencies import require_capability
from projecthub.schemas_users import CapacityUpdateRequest, RoleUpdateRequest, UserCreateRequest

router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
)


@router.get("/users")
def list_users(
    ctx: AuthContext = Depends(require_capability(Capability.USERS_MANAGE)),
    conn: DbConnection = Depends(get_db),
) -> dict:
    users = users_service.list_users(conn, ctx)
    return {"success": True, "data": {"users": users, "total": len(users)}}


@router.post("/users", status_code=201)
def create_user(
    request: UserCreateRequest,
    ctx: AuthContext = Depends(require_capability(Capability.USERS_MANAGE)),
    conn: DbConnection = Depends(get_db),
) -> dict:
    user = users_service.create_user(conn, ctx, request.model_dump())
    return {"success": True, "message": "User created successfully", "data": {"user": user}}


@router.put("/users/{user_id}/role")
def change_user_role(
    request: RoleUpdateRequest,
    user_id: int = Path(..., ge=1),
    ctx: AuthContext = Depends(require_capability(Capability.USERS_MANAGE)),
    conn: DbConnection = Depends(get_db),
) -> dict:
    user = users_service.set_user_role(conn, ctx, user_id, request.role)
    return {"success": True, "message": "User role updated successfully", "data": {"user": user}}


@router.put("/users/{user_id}/capacity")
def update_user_capacity(
    request: CapacityUpdateRequest,
    user_id: int = Path(..., ge=1),
    ctx: AuthContext = Depends(require_capability(Capability.USERS_MANAGE)),
    conn: DbConnection = Depends(get_db),
) -> dict:
    user = users_service.set_user_capacity(conn, ctx, user_id, request.max_projects)
    return {"success": True, "message": "User capacity updated successfully", "data": {"user": user}}
