"""
projecthub/schemas_users.py

Pydantic schemas for authentication and user administration.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from projecthub.models import UserRole


def _normalize_email(v):
    if isinstance(v, str):
        v = v.strip().lower()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("must be a valid email address")
    return v


class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    organization_name: str = Field(..., alias="organizationName", min_length=1, max_length=200)
    email: str = Field(..., max_length=254)
    password: str = Field(..., min_length=8, max_length=128)
    first_name: Optional[str] = Field(None, alias="firstName", max_length=100)
    last_name: Optional[str] = Field(None, alias="lastName", max_length=100)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return _normalize_email(v)


class LoginRequest(BaseModel):
    email: str
    password: str


class UserCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    email: str = Field(..., max_length=254)
    password: str = Field(..., min_length=8, max_length=128)
    first_name: Optional[str] = Field(None, alias="firstName", max_length=100)
    last_name: Optional[str] = Field(None, alias="lastName", max_length=100)
    role: UserRole = UserRole.member
    max_projects: Optional[int] = Field(None, alias="maxProjects", ge=0)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return _normalize_email(v)


class RoleUpdateRequest(BaseModel):
    role: UserRole


class CapacityUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    max_projects: int = Field(..., alias="maxProjects", ge=0)
