# projecthub/migrate.py
# Database migration module for PostgreSQL and SQLite
# Run: python -m projecthub.migrate

from typing import List

from projecthub import config
from projecthub.db import DbConnection, commit, execute_query, fetch_all, get_db_connection

# Column types that differ between backends
_DIALECTS = {
    "sqlite": {"pk": "INTEGER PRIMARY KEY AUTOINCREMENT", "ts": "TEXT", "money": "INTEGER"},
    "postgres": {"pk": "SERIAL PRIMARY KEY", "ts": "TIMESTAMP", "money": "BIGINT"},
}

_MONEY_COLUMNS = [
    ("projects", "budget_planned_cents"),
    ("projects", "budget_spent_cents"),
    ("expenses", "amount_cents"),
]

_TABLES = [
    # Organizations (tenants)
    """
    CREATE TABLE IF NOT EXISTS organizations (
        id {pk},
        name TEXT NOT NULL,
        created_at {ts} DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # Users
    """
    CREATE TABLE IF NOT EXISTS users (
        id {pk},
        organization_id INTEGER NOT NULL REFERENCES organizations(id),
        email TEXT UNIQUE NOT NULL,
        password_hash TEXT NOT NULL,
        first_name TEXT,
        last_name TEXT,
        role TEXT NOT NULL DEFAULT 'member',
        max_projects INTEGER NOT NULL DEFAULT 4 CHECK (max_projects >= 0),
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at {ts} DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # Projects, with the budget embedded as columns
    """
    CREATE TABLE IF NOT EXISTS projects (
        id {pk},
        organization_id INTEGER NOT NULL REFERENCES organizations(id),
        name TEXT NOT NULL,
        description TEXT,
        manager_id INTEGER NOT NULL REFERENCES users(id),
        team_leader_id INTEGER REFERENCES users(id),
        status TEXT NOT NULL DEFAULT 'planning'
            CHECK (status IN ('planning', 'active', 'on_hold', 'completed', 'cancelled')),
        priority TEXT NOT NULL DEFAULT 'medium'
            CHECK (priority IN ('low', 'medium', 'high', 'urgent')),
        start_date TEXT,
        end_date TEXT,
        is_archived INTEGER NOT NULL DEFAULT 0,
        budget_planned_cents {money} NOT NULL DEFAULT 0 CHECK (budget_planned_cents >= 0),
        budget_spent_cents {money} NOT NULL DEFAULT 0 CHECK (budget_spent_cents >= 0),
        budget_currency TEXT NOT NULL DEFAULT 'USD',
        budget_alert_threshold INTEGER NOT NULL DEFAULT 80
            CHECK (budget_alert_threshold BETWEEN 0 AND 100),
        budget_version INTEGER NOT NULL DEFAULT 0,
        created_at {ts} DEFAULT CURRENT_TIMESTAMP,
        updated_at {ts} DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # Project membership (team leader lives on the project row)
    """
    CREATE TABLE IF NOT EXISTS project_members (
        id {pk},
        project_id INTEGER NOT NULL REFERENCES projects(id),
        user_id INTEGER NOT NULL REFERENCES users(id),
        role TEXT NOT NULL DEFAULT 'member',
        joined_at {ts} DEFAULT CURRENT_TIMESTAMP,
        UNIQUE(project_id, user_id)
    )
    """,
    # Append-only expense ledger; projects.budget_spent_cents is its running total
    """
    CREATE TABLE IF NOT EXISTS expenses (
        id {pk},
        organization_id INTEGER NOT NULL REFERENCES organizations(id),
        project_id INTEGER NOT NULL REFERENCES projects(id),
        kind TEXT NOT NULL CHECK (kind IN ('expense', 'adjustment', 'reversal')),
        amount_cents {money} NOT NULL,
        description TEXT,
        actor_id INTEGER REFERENCES users(id),
        reverses_id INTEGER REFERENCES expenses(id),
        idempotency_key TEXT,
        created_at {ts} DEFAULT CURRENT_TIMESTAMP,
        UNIQUE(project_id, idempotency_key)
    )
    """,
]

_INDEXES = [
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_users_email_unique ON users(email)",
    "CREATE INDEX IF NOT EXISTS idx_users_organization_id ON users(organization_id)",
    "CREATE INDEX IF NOT EXISTS idx_projects_organization_id ON projects(organization_id)",
    "CREATE INDEX IF NOT EXISTS idx_projects_manager_status ON projects(manager_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_projects_team_leader_status ON projects(team_leader_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_project_members_user_id ON project_members(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_expenses_project_id ON expenses(project_id)",
    # One reversal per expense
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_expenses_reverses_unique ON expenses(reverses_id)",
]


def run_migrations() -> None:
    """
    Run all database migrations (idempotent).
    Creates tables and indexes if missing, then reconciles pre-ledger spend.
    Safe to run multiple times.
    """
    print("[MIGRATE] Starting database migrations...")

    with get_db_connection() as conn:
        dialect = "postgres" if config.IS_POSTGRES else "sqlite"
        print(f"[MIGRATE] Running {'PostgreSQL' if config.IS_POSTGRES else 'SQLite'} migrations...")

        for ddl in schema_statements(dialect):
            execute_query(conn, ddl)

        if config.IS_POSTGRES:
            # Widen money columns created as int4 by earlier versions
            for table, column in _MONEY_COLUMNS:
                execute_query(conn, f"ALTER TABLE {table} ALTER COLUMN {column} TYPE BIGINT")
        else:
            _ensure_sqlite_column(conn, "projects", "budget_version", "INTEGER NOT NULL DEFAULT 0")
            _ensure_sqlite_column(conn, "users", "max_projects", "INTEGER NOT NULL DEFAULT 4")

        backfilled = backfill_opening_balances(conn)
        commit(conn)

    if backfilled:
        print(f"[MIGRATE] Backfilled opening balances for {backfilled} project(s)")
    print("[MIGRATE] All migrations complete!")


def schema_statements(dialect: str) -> List[str]:
    types = _DIALECTS[dialect]
    return [ddl.format(**types) for ddl in _TABLES] + list(_INDEXES)


def backfill_opening_balances(conn: DbConnection) -> int:
    """
    Give every project whose stored spend exceeds its ledger total an opening
    adjustment entry for the difference, so spent == ledger sum afterwards.

    Returns:
        Number of projects reconciled
    """
    rows = fetch_all(
        conn,
        """
        SELECT p.id, p.organization_id, p.budget_spent_cents,
               COALESCE((SELECT SUM(e.amount_cents) FROM expenses e WHERE e.project_id = p.id), 0) AS ledger_cents
        FROM projects p
        """,
    )

    count = 0
    for row in rows:
        delta = int(row["budget_spent_cents"]) - int(row["ledger_cents"])
        if delta > 0:
            execute_query(
                conn,
                """
                INSERT INTO expenses (organization_id, project_id, kind, amount_cents, description)
                VALUES (:org, :project_id, 'adjustment', :amount, 'Opening balance')
                """,
                {"org": row["organization_id"], "project_id": row["id"], "amount": delta},
            )
            count += 1
        elif delta < 0:
            print(f"[MIGRATE] Warning: project {row['id']} ledger exceeds stored spend by {-delta} cents")
    return count


def _ensure_sqlite_column(conn: DbConnection, table: str, column: str, ddl: str) -> None:
    """Add column to SQLite table if missing (idempotent)."""
    columns = {row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}
    if column not in columns:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}")
        print(f"[MIGRATE] Added column {table}.{column}")


if __name__ == "__main__":
    run_migrations()
