"""
projecthub/routes_auth.py

Signup and login. Both return an HS256 access token; every other route
re-reads the user row on each request, so role changes apply immediately.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from projecthub import users_service
from projecthub.auth_context import get_db
from projecthub.db import DbConnection
from projecthub.schemas_users import LoginRequest, RegisterRequest

router = APIRouter(
    prefix="/api/auth",
    tags=["auth"],
)


@router.post("/register", status_code=201)
def register(request: RegisterRequest, conn: DbConnection = Depends(get_db)) -> dict:
    data = users_service.register_organization(conn, request.model_dump())
    return {"success": True, "message": "Organization created", "data": data}


@router.post("/login")
def login(request: LoginRequest, conn: DbConnection = Depends(get_db)) -> dict:
    data = users_service.authenticate(conn, request.email, request.password)
    return {"success": True, "data": data}
