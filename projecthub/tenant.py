"""
projecthub/tenant.py

Tenant guardrails (defense in depth).

Every organization-owned query result can be passed through these helpers
to catch a missing `organization_id` filter before data leaks across tenants.

- In DEV: emit warnings for unsafe access
- In STAGING/PROD: fail fast with a 500
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from projecthub import config
from projecthub.errors import ServerError


def require_organization_id(organization_id: Optional[int]) -> int:
    """
    Require organization_id for tenant-scoped operations.

    Returns:
        The validated organization_id (0 in dev when missing)

    Raises:
        ServerError: If organization_id is missing outside dev
    """
    if not organization_id or organization_id < 1:
        error_msg = f"[TENANT] Missing or invalid organization_id: {organization_id}"
        if config.IS_DEV:
            print(f"{error_msg} (DEV warning - continuing)")
            return organization_id or 0
        print(f"{error_msg} (PRODUCTION - failing fast)")
        raise ServerError("Tenant scope missing")

    return organization_id


def _row_organization_id(row: Dict[str, Any], label: str, index: int = 0) -> Optional[int]:
    if "organization_id" not in row:
        # Column missing from SELECT is a query bug, not a data problem
        msg = f"[TENANT] Query missing organization_id in SELECT for {label or 'unknown'} (row {index})"
        print(f"ERROR: {msg}")
        raise RuntimeError(msg)
    return row["organization_id"]


def _violation(label: str, detail: str) -> None:
    error_msg = f"[TENANT] Tenant isolation violation{f' in {label}' if label else ''}"
    if config.IS_DEV:
        print(f"{error_msg}: {detail} (DEV warning)")
        return
    print(f"{error_msg}: {detail} (PRODUCTION - failing fast)")
    raise ServerError("Tenant isolation violation detected")


def assert_rows_scoped(rows: List[Dict[str, Any]], organization_id: int, label: str = "") -> None:
    """Assert that every returned row belongs to organization_id."""
    if not rows:
        return

    mismatches = []
    for i, row in enumerate(rows):
        row_org = _row_organization_id(row, label, i)
        if row_org is not None and row_org != organization_id:
            mismatches.append({"index": i, "expected": organization_id, "found": row_org})

    if mismatches:
        _violation(label, f"{len(mismatches)} row(s) with mismatched organization_id, first: {mismatches[:3]}")


def assert_row_scoped(row: Optional[Dict[str, Any]], organization_id: int, label: str = "") -> None:
    """Single-row variant of assert_rows_scoped. None (the 404 case) passes."""
    if row is None:
        return

    row_org = _row_organization_id(row, label)
    if row_org is not None and row_org != organization_id:
        _violation(label, f"expected organization_id={organization_id}, found={row_org}")
