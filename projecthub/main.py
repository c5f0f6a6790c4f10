# ---------------------------------------------------------
# projecthub/main.py
# ProjectHub - budget & capacity backend
#
# Run: uvicorn projecthub.main:app --reload (from repo root)
#
# - FastAPI + SQLite (PostgreSQL when DATABASE_URL is set)
# - /api/auth   : register organization, login
# - /api/budget : budget status, updates, expenses, alerts, ledger
# - /api/pm     : PM capacity, projects, team staffing
# - /api/admin  : users, roles, capacity
# ---------------------------------------------------------

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Dict

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from projecthub.config import CORS_ORIGINS, ENV, IS_PROD
from projecthub.errors import register_exception_handlers
from projecthub.migrate import run_migrations
from projecthub.routes_admin import router as admin_router
from projecthub.routes_auth import router as auth_router
from projecthub.routes_budget import router as budget_router
from projecthub.routes_pm import router as pm_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    run_migrations()
    yield


# ---------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------
app = FastAPI(title="ProjectHub Backend", version="0.1", lifespan=lifespan)

# CORS configuration from config module
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS if IS_PROD else ["*"],  # Restrict origins in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(auth_router)
app.include_router(budget_router)
app.include_router(pm_router)
app.include_router(admin_router)


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok", "env": ENV}
