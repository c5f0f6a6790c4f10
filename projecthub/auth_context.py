"""
projecthub/auth_context.py

Shared authentication context primitives for FastAPI dependency injection.

Contains:
- AuthContext: Immutable tenant boundary context for the calling user
- require_auth_context: FastAPI dependency for auth enforcement
- get_db: per-request database connection dependency
- create_access_token / verify_token: JWT helpers
- hash_password / verify_password: salted PBKDF2 helpers

This module MUST NOT import projecthub.main to avoid circular dependencies.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Generator, Optional, Set

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict

from projecthub import config
from projecthub.db import DbConnection, fetch_one, get_db_connection
from projecthub.rbac import effective_capabilities

# Security scheme for HTTPBearer
security = HTTPBearer()

PBKDF2_ITERATIONS = 120_000


# ---------------------------------------------------------
# DB Helper
# ---------------------------------------------------------
def get_db() -> Generator[DbConnection, None, None]:
    """Per-request connection, closed when the response is sent."""
    with get_db_connection() as conn:
        yield conn


# ---------------------------------------------------------
# Passwords
# ---------------------------------------------------------
def hash_password(password: str) -> str:
    """Salted PBKDF2-SHA256, stored as "pbkdf2_sha256$iterations$salt$hash"."""
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PBKDF2_ITERATIONS)
    return f"pbkdf2_sha256${PBKDF2_ITERATIONS}${salt}${digest.hex()}"


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        algorithm, iterations, salt, expected = password_hash.split("$")
    except ValueError:
        return False
    if algorithm != "pbkdf2_sha256":
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), int(iterations))
    return hmac.compare_digest(digest.hex(), expected)


# ---------------------------------------------------------
# JWT Tokens
# ---------------------------------------------------------
def create_access_token(user_id: int, organization_id: int, minutes: Optional[int] = None) -> str:
    expires = datetime.now(timezone.utc) + timedelta(minutes=minutes or config.ACCESS_TOKEN_MINUTES)
    payload = {"sub": str(user_id), "org": organization_id, "exp": expires}
    return jwt.encode(payload, config.SECRET_KEY, algorithm=config.ALGORITHM)


def verify_token(token: str) -> dict:
    """
    Verify JWT access token and return decoded payload.

    Raises:
        HTTPException(401): If token is expired or invalid
    """
    try:
        return jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


# ---------------------------------------------------------
# AuthContext - tenant boundary for the calling user
# ---------------------------------------------------------
class AuthContext(BaseModel):
    """
    Immutable context derived from the JWT and the user's current row.
    This is the ONLY source of truth for organization_id, user_id and role in
    protected endpoints. Never trust ids from request bodies for scoping.
    """
    model_config = ConfigDict(frozen=True)

    user_id: int
    organization_id: int
    role: str
    email: str
    name: str
    max_projects: int
    capabilities: Set[str]


def require_auth_context(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> AuthContext:
    """
    Auth dependency for protected routes.

    Process:
    1. Verify JWT signature and expiration
    2. Load the user row (role, organization and capacity come from the DB)
    3. Reject inactive users and users without an organization
    4. Attach the role's capabilities

    Raises:
        HTTPException(401): If token is invalid, expired, or user not found
        HTTPException(403): If user is inactive or has no organization
    """
    payload = verify_token(credentials.credentials)
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        print("[AUTH] Missing user_id in token payload")
        raise HTTPException(status_code=401, detail="Invalid token payload")

    with get_db_connection() as conn:
        user_row = fetch_one(
            conn,
            """
            SELECT id, organization_id, email, first_name, last_name, role, max_projects, is_active
            FROM users WHERE id = :id
            """,
            {"id": user_id},
        )

    if not user_row:
        print(f"[AUTH] User not found: user_id={user_id}")
        raise HTTPException(status_code=401, detail="User not found")

    if not user_row["is_active"]:
        print(f"[AUTH] Inactive user attempted access: user_id={user_id}")
        raise HTTPException(status_code=403, detail="Account inactive")

    if not user_row["organization_id"]:
        print(f"[AUTH] User has no organization_id: user_id={user_id}")
        raise HTTPException(status_code=403, detail="No organization associated")

    token_org = payload.get("org")
    if token_org is not None and token_org != user_row["organization_id"]:
        print(f"[AUTH] Token organization mismatch: user_id={user_id}, token_org={token_org}")
        raise HTTPException(status_code=401, detail="Invalid token")

    role = user_row["role"] or "member"
    name = f"{user_row.get('first_name') or ''} {user_row.get('last_name') or ''}".strip()

    ctx = AuthContext(
        user_id=user_row["id"],
        organization_id=user_row["organization_id"],
        role=role,
        email=user_row["email"],
        name=name or user_row["email"],
        max_projects=user_row["max_projects"] or 0,
        capabilities=effective_capabilities(role),
    )

    if config.IS_DEV:
        print(f"[AUTH] Authenticated: user_id={ctx.user_id}, organization_id={ctx.organization_id}, "
              f"role={ctx.role}, capabilities={len(ctx.capabilities)}")

    return ctx
