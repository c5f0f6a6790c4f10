"""
Shared pytest fixtures: a fresh migrated SQLite database per test, a
TestClient bound to it, and helpers to seed organizations, users and projects.
"""

from typing import Optional

import pytest
from fastapi.testclient import TestClient

from projecthub import config
from projecthub.auth_context import create_access_token, hash_password
from projecthub.budget import to_minor_units
from projecthub.capacity import default_max_projects
from projecthub.db import commit, get_db_connection, insert_returning_id
from projecthub.migrate import backfill_opening_balances, run_migrations


@pytest.fixture
def db(tmp_path, monkeypatch):
    """Point the app at a throwaway SQLite file and migrate it."""
    monkeypatch.setattr(config, "DATABASE_PATH", str(tmp_path / "projecthub_test.db"))
    run_migrations()
    return tmp_path / "projecthub_test.db"


@pytest.fixture
def conn(db):
    with get_db_connection() as connection:
        yield connection


@pytest.fixture
def client(db):
    from projecthub.main import app
    return TestClient(app)


class Seed:
    """Direct-to-database fixtures; bypasses the API and its capacity guards."""

    def org(self, name: str = "Acme") -> int:
        with get_db_connection() as c:
            org_id = insert_returning_id(c, "INSERT INTO organizations (name) VALUES (:name)", {"name": name})
            commit(c)
        return org_id

    def user(
        self,
        org_id: int,
        email: str,
        role: str = "member",
        max_projects: Optional[int] = None,
        first_name: str = "Test",
        last_name: Optional[str] = None,
    ) -> int:
        if max_projects is None:
            max_projects = default_max_projects(role)
        with get_db_connection() as c:
            user_id = insert_returning_id(
                c,
                """
                INSERT INTO users (organization_id, email, password_hash, first_name, last_name, role, max_projects)
                VALUES (:org, :email, :pw, :first, :last, :role, :max_projects)
                """,
                {"org": org_id, "email": email, "pw": hash_password("password123"),
                 "first": first_name, "last": last_name or role, "role": role, "max_projects": max_projects},
            )
            commit(c)
        return user_id

    def project(
        self,
        org_id: int,
        manager_id: int,
        name: str = "Project",
        planned=0,
        spent=0,
        alert_threshold: int = 80,
        status: str = "active",
        team_leader_id: Optional[int] = None,
        currency: str = "USD",
    ) -> int:
        with get_db_connection() as c:
            project_id = insert_returning_id(
                c,
                """
                INSERT INTO projects
                    (organization_id, name, manager_id, team_leader_id, status,
                     budget_planned_cents, budget_spent_cents, budget_currency, budget_alert_threshold)
                VALUES (:org, :name, :manager_id, :tl, :status, :planned, :spent, :currency, :threshold)
                """,
                {"org": org_id, "name": name, "manager_id": manager_id, "tl": team_leader_id,
                 "status": status, "planned": to_minor_units(planned), "spent": to_minor_units(spent),
                 "currency": currency, "threshold": alert_threshold},
            )
            # Seeded spend gets an opening ledger entry like migrated data does
            backfill_opening_balances(c)
            commit(c)
        return project_id

    def member(self, project_id: int, user_id: int) -> None:
        with get_db_connection() as c:
            insert_returning_id(
                c,
                "INSERT INTO project_members (project_id, user_id) VALUES (:p, :u)",
                {"p": project_id, "u": user_id},
            )
            commit(c)

    @staticmethod
    def headers(user_id: int, org_id: int) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user_id, org_id)}"}


@pytest.fixture
def seed(db):
    return Seed()
