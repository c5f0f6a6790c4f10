"""
projecthub/ledger.py

Expense ledger operations.

Every change to a project's spent total is an append-only ledger entry plus
an atomic update of projects.budget_spent_cents in the same transaction, so
the stored total always equals the sum of the project's entries.

- expense:    positive amount, spent = spent + amount (no read-modify-write)
- adjustment: signed delta from a manual spent correction (compare-and-swap)
- reversal:   negates one expense, at most once, guarded so spent stays >= 0

Callers are responsible for authorization.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from projecthub import config
from projecthub.budget import MAX_MINOR_UNITS, Number, from_minor_units, to_minor_units
from projecthub.db import (
    DbConnection,
    execute_query,
    fetch_all,
    fetch_one,
    fetch_scalar,
    insert_returning_id,
    is_integrity_error,
    transaction,
)
from projecthub.errors import ConflictError, NotFoundError, ValidationError
from projecthub.models import ExpenseEntry, ExpenseKind, Project

_ENTRY_COLUMNS = (
    "id, organization_id, project_id, kind, amount_cents, description, "
    "actor_id, reverses_id, idempotency_key, created_at"
)


def _entry_from_row(row: Dict[str, Any]) -> ExpenseEntry:
    data = dict(row)
    if data.get("created_at") is not None:
        data["created_at"] = str(data["created_at"])
    return ExpenseEntry(**data)


def _get_entry(conn: DbConnection, entry_id: int) -> Optional[ExpenseEntry]:
    row = fetch_one(conn, f"SELECT {_ENTRY_COLUMNS} FROM expenses WHERE id = :id", {"id": entry_id})
    return _entry_from_row(row) if row else None


def find_by_idempotency_key(conn: DbConnection, project_id: int, key: str) -> Optional[ExpenseEntry]:
    row = fetch_one(
        conn,
        f"SELECT {_ENTRY_COLUMNS} FROM expenses WHERE project_id = :project_id AND idempotency_key = :key",
        {"project_id": project_id, "key": key},
    )
    return _entry_from_row(row) if row else None


def _append(
    conn: DbConnection,
    project: Project,
    kind: ExpenseKind,
    amount_cents: int,
    description: Optional[str],
    actor_id: Optional[int],
    reverses_id: Optional[int] = None,
    idempotency_key: Optional[str] = None,
) -> int:
    return insert_returning_id(
        conn,
        """
        INSERT INTO expenses
            (organization_id, project_id, kind, amount_cents, description, actor_id, reverses_id, idempotency_key)
        VALUES
            (:org, :project_id, :kind, :amount, :description, :actor_id, :reverses_id, :key)
        """,
        {
            "org": project.organization_id,
            "project_id": project.id,
            "kind": kind.value,
            "amount": amount_cents,
            "description": description,
            "actor_id": actor_id,
            "reverses_id": reverses_id,
            "key": idempotency_key,
        },
    )


def _bump_spent(conn: DbConnection, project_id: int, delta_cents: int, guard: str = "", params: Optional[dict] = None) -> int:
    """Atomic spent += delta; returns the number of rows updated."""
    result = execute_query(
        conn,
        f"""
        UPDATE projects
        SET budget_spent_cents = budget_spent_cents + :delta,
            budget_version = budget_version + 1,
            updated_at = CURRENT_TIMESTAMP
        WHERE id = :id {guard}
        """,
        {"delta": delta_cents, "id": project_id, **(params or {})},
    )
    return result.rowcount


# ============================================================================
# Operations
# ============================================================================

def log_expense(
    conn: DbConnection,
    project: Project,
    amount: Number,
    description: Optional[str],
    actor_id: Optional[int],
    idempotency_key: Optional[str] = None,
) -> Tuple[ExpenseEntry, bool]:
    """
    Record an expense against a project.

    Args:
        project: Project the caller is already authorized to log against
        amount: Positive amount in the project's currency
        idempotency_key: Optional client key; a repeat returns the original entry

    Returns:
        (entry, replayed). replayed is True when the key matched an earlier
        entry and nothing was applied.

    Raises:
        ValidationError: amount is not positive, or over MAX_AMOUNT
        NotFoundError: the project no longer exists
    """
    amount_cents = to_minor_units(amount)
    if amount_cents <= 0:
        raise ValidationError.for_field("amount", "Amount must be greater than 0")
    if amount_cents > MAX_MINOR_UNITS:
        raise ValidationError.for_field("amount", "Amount is too large")

    if idempotency_key:
        existing = find_by_idempotency_key(conn, project.id, idempotency_key)
        if existing:
            if config.IS_DEV:
                print(f"[LEDGER] Replayed expense {existing.id} for key={idempotency_key}")
            return existing, True

    try:
        with transaction(conn):
            entry_id = _append(
                conn, project, ExpenseKind.expense, amount_cents, description, actor_id,
                idempotency_key=idempotency_key,
            )
            if _bump_spent(conn, project.id, amount_cents) == 0:
                raise NotFoundError("Project not found")
    except Exception as e:
        # Lost a race with a concurrent request carrying the same key
        if idempotency_key and is_integrity_error(e):
            existing = find_by_idempotency_key(conn, project.id, idempotency_key)
            if existing:
                return existing, True
        raise

    if config.IS_DEV:
        print(f"[LEDGER] Expense logged: project_id={project.id}, amount_cents={amount_cents}, entry_id={entry_id}")

    return _get_entry(conn, entry_id), False


def apply_spent_change(
    conn: DbConnection,
    project: Project,
    new_spent: Number,
    actor_id: Optional[int],
    reason: Optional[str] = None,
) -> Optional[int]:
    """
    set_spent() without its own transaction: the caller commits or rolls back.

    Returns:
        The adjustment entry id, or None when the value is unchanged
    """
    new_cents = to_minor_units(new_spent)
    if new_cents < 0:
        raise ValidationError.for_field("spent", "Spent cannot be negative")
    if new_cents > MAX_MINOR_UNITS:
        raise ValidationError.for_field("spent", "Spent is too large")

    expected = project.budget.spent_cents
    delta = new_cents - expected
    if delta == 0:
        return None

    result = execute_query(
        conn,
        """
        UPDATE projects
        SET budget_spent_cents = :new_spent,
            budget_version = budget_version + 1,
            updated_at = CURRENT_TIMESTAMP
        WHERE id = :id AND budget_spent_cents = :expected
        """,
        {"new_spent": new_cents, "id": project.id, "expected": expected},
    )
    if result.rowcount == 0:
        print(f"[LEDGER] Spent CAS failed: project_id={project.id}, expected_cents={expected}")
        raise ConflictError("Budget was modified by another request, reload and try again")

    entry_id = _append(
        conn, project, ExpenseKind.adjustment, delta,
        reason or f"Spent set to {from_minor_units(new_cents)}", actor_id,
    )
    if config.IS_DEV:
        print(f"[LEDGER] Spent adjusted: project_id={project.id}, delta_cents={delta}")
    return entry_id


def set_spent(
    conn: DbConnection,
    project: Project,
    new_spent: Number,
    actor_id: Optional[int],
    reason: Optional[str] = None,
) -> Optional[ExpenseEntry]:
    """
    Overwrite the spent total by appending an adjustment for the difference.

    Compare-and-swap against the spent value on the loaded project: if another
    write landed in between, nothing is applied.

    Returns:
        The adjustment entry, or None when the value is unchanged

    Raises:
        ValidationError: new_spent is negative or too large
        ConflictError: spent changed since the project was read
    """
    with transaction(conn):
        entry_id = apply_spent_change(conn, project, new_spent, actor_id, reason)
    return _get_entry(conn, entry_id) if entry_id is not None else None


def reverse_expense(
    conn: DbConnection,
    project: Project,
    expense_id: int,
    actor_id: Optional[int],
    reason: Optional[str] = None,
) -> ExpenseEntry:
    """
    Append a reversal that negates one expense entry.

    Raises:
        NotFoundError: no such expense on this project
        ValidationError: the entry is not an expense
        ConflictError: already reversed, or spent is lower than the amount
    """
    original = _get_entry(conn, expense_id)
    if original is None or original.project_id != project.id:
        raise NotFoundError("Expense not found")
    if original.kind != ExpenseKind.expense:
        raise ValidationError("Only expense entries can be reversed")

    already = fetch_scalar(
        conn, "SELECT COUNT(*) FROM expenses WHERE reverses_id = :id", {"id": expense_id}
    )
    if already:
        raise ConflictError("Expense has already been reversed")

    amount = original.amount_cents
    try:
        with transaction(conn):
            updated = _bump_spent(
                conn, project.id, -amount,
                guard="AND budget_spent_cents >= :amount", params={"amount": amount},
            )
            if updated == 0:
                raise ConflictError("Spent total is lower than the expense amount")
            entry_id = _append(
                conn, project, ExpenseKind.reversal, -amount,
                reason or f"Reversal of expense {expense_id}", actor_id,
                reverses_id=expense_id,
            )
    except Exception as e:
        if is_integrity_error(e):
            raise ConflictError("Expense has already been reversed")
        raise

    if config.IS_DEV:
        print(f"[LEDGER] Expense reversed: project_id={project.id}, expense_id={expense_id}, entry_id={entry_id}")

    return _get_entry(conn, entry_id)


def list_entries(conn: DbConnection, project_id: int) -> List[ExpenseEntry]:
    rows = fetch_all(
        conn,
        f"SELECT {_ENTRY_COLUMNS} FROM expenses WHERE project_id = :project_id ORDER BY id",
        {"project_id": project_id},
    )
    return [_entry_from_row(row) for row in rows]


def ledger_total(conn: DbConnection, project_id: int) -> int:
    """Sum of all entries for the project, in minor units."""
    total = fetch_scalar(
        conn,
        "SELECT COALESCE(SUM(amount_cents), 0) FROM expenses WHERE project_id = :project_id",
        {"project_id": project_id},
    )
    return int(total or 0)


def get_entry(conn: DbConnection, entry_id: int) -> Optional[ExpenseEntry]:
    return _get_entry(conn, entry_id)
