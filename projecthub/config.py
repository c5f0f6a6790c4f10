# projecthub/config.py
# Environment-aware configuration for the ProjectHub backend

import os
from typing import Literal

# Environment detection
ENV: Literal["dev", "staging", "prod"] = os.environ.get("ENV", "dev")  # type: ignore
IS_DEV = (ENV == "dev")
IS_STAGING = (ENV == "staging")
IS_PROD = (ENV == "prod")

# JWT configuration
SECRET_KEY = os.environ.get("SECRET_KEY", "dev-only-secret-change-me")
ALGORITHM = "HS256"
ACCESS_TOKEN_MINUTES = int(os.environ.get("ACCESS_TOKEN_MINUTES", "60"))

# Database configuration
# DATABASE_URL takes precedence (managed Postgres); SQLite file otherwise
DATABASE_URL = os.environ.get("DATABASE_URL", "").strip()
DATABASE_PATH = os.environ.get("DATABASE_PATH", "projecthub.db")

IS_POSTGRES = DATABASE_URL.startswith(("postgres://", "postgresql://"))
IS_SQLITE = not IS_POSTGRES

# CORS origins (React dev server by default)
CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

if IS_STAGING or IS_PROD:
    extra_origins = os.environ.get("CORS_ORIGINS", "")
    if extra_origins:
        CORS_ORIGINS.extend(origin.strip() for origin in extra_origins.split(",") if origin.strip())

# Budget defaults
DEFAULT_ALERT_THRESHOLD = int(os.environ.get("DEFAULT_ALERT_THRESHOLD", "80"))
DEFAULT_CURRENCY = "USD"

# Capacity defaults (concurrent active projects per user)
MEMBER_DEFAULT_MAX_PROJECTS = int(os.environ.get("MEMBER_DEFAULT_MAX_PROJECTS", "4"))
MEMBER_MAX_PROJECTS_LIMIT = int(os.environ.get("MEMBER_MAX_PROJECTS_LIMIT", "5"))
PM_DEFAULT_MAX_PROJECTS = int(os.environ.get("PM_DEFAULT_MAX_PROJECTS", "10"))
PM_MAX_PROJECTS_LIMIT = int(os.environ.get("PM_MAX_PROJECTS_LIMIT", "20"))

print(f"[CONFIG] Environment: {ENV}")
print(f"[CONFIG] Database: {'PostgreSQL' if IS_POSTGRES else 'SQLite (local dev)'}")
print(f"[CONFIG] Access token: {ACCESS_TOKEN_MINUTES} minutes")
