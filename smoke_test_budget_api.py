"""
Smoke Test for Budget API - Alerts, Expenses & Cross-Tenant Isolation

Tests:
1. Register two organizations (A and B) and a project manager in A
2. Create a budgeted project in A
3. Log expenses until the project alerts (warning, then critical)
4. Retry an expense with the same Idempotency-Key (no double counting)
5. Verify organization B cannot read or change A's budget (403)
6. Verify the alerts list shows A's project to A only

Run: python smoke_test_budget_api.py

Requirements:
- Backend running on localhost:8000
- Fresh database or test mode
"""

import sys
import uuid
from typing import Any, Dict, Optional

import requests

BASE_URL = "http://localhost:8000"


class TestResult:
    def __init__(self):
        self.passed = 0
        self.failed = 0
        self.tests = []

    def add_pass(self, name: str, detail: str = ""):
        self.passed += 1
        self.tests.append(("PASS", name, detail))
        print(f"PASS: {name}")
        if detail:
            print(f"  - {detail}")

    def add_fail(self, name: str, detail: str = ""):
        self.failed += 1
        self.tests.append(("FAIL", name, detail))
        print(f"FAIL: {name}")
        if detail:
            print(f"  - {detail}")

    def summary(self):
        print("\n" + "=" * 60)
        print(f"SMOKE TEST SUMMARY: {self.passed} passed, {self.failed} failed")
        print("=" * 60)
        return self.failed == 0


def auth_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def login(email: str, password: str) -> Optional[Dict[str, Any]]:
    resp = requests.post(f"{BASE_URL}/api/auth/login", json={"email": email, "password": password})
    if resp.status_code == 200:
        return resp.json()["data"]
    return None


def register_or_login(email: str, password: str, organization_name: str) -> Optional[Dict[str, Any]]:
    """Register an organization admin, or log in if it already exists"""
    resp = requests.post(f"{BASE_URL}/api/auth/register", json={
        "organizationName": organization_name,
        "email": email,
        "password": password,
        "firstName": "Smoke",
        "lastName": "Admin",
    })
    if resp.status_code == 201:
        return resp.json()["data"]
    return login(email, password)


def ensure_project_manager(admin_token: str, email: str, password: str) -> Optional[Dict[str, Any]]:
    resp = requests.post(f"{BASE_URL}/api/admin/users", json={
        "email": email,
        "password": password,
        "role": "project_manager",
        "firstName": "Smoke",
        "lastName": "Manager",
    }, headers=auth_headers(admin_token))
    if resp.status_code not in (201, 409):
        return None
    return login(email, password)


def log_expense(token: str, project_id: int, amount: float, key: Optional[str] = None) -> requests.Response:
    headers = auth_headers(token)
    if key:
        headers["Idempotency-Key"] = key
    return requests.post(f"{BASE_URL}/api/budget/expense", json={
        "projectId": project_id,
        "amount": amount,
        "description": "Smoke test expense",
    }, headers=headers)


def main():
    result = TestResult()

    print("=" * 60)
    print("SMOKE TEST: Budget API - Alerts, Expenses & Isolation")
    print("=" * 60)
    print()

    # Test 1: Setup
    print("TEST 1: Setup - Two organizations and a project manager")
    print("-" * 60)

    org_a = register_or_login("smoke_admin_a@test.com", "password123", "Smoke Org A")
    org_b = register_or_login("smoke_admin_b@test.com", "password123", "Smoke Org B")
    if not org_a or not org_b:
        result.add_fail("Setup", "Failed to register/login organization admins")
        result.summary()
        return 1

    pm = ensure_project_manager(org_a["token"], "smoke_pm_a@test.com", "password123")
    if not pm:
        result.add_fail("Setup", "Failed to create/login project manager in Org A")
        result.summary()
        return 1

    result.add_pass("Setup", f"PM user_id={pm['user']['_id']} in Org A")
    print()

    # Test 2: Create project
    print("TEST 2: Create budgeted project in Org A")
    print("-" * 60)

    resp = requests.post(f"{BASE_URL}/api/pm/projects", json={
        "name": f"Smoke project {uuid.uuid4().hex[:6]}",
        "status": "active",
        "budget": {"planned": 1000, "currency": "USD", "alertThreshold": 80},
    }, headers=auth_headers(pm["token"]))
    if resp.status_code != 201:
        result.add_fail("Project Creation", f"Expected 201, got {resp.status_code}: {resp.text}")
        result.summary()
        return 1

    project_id = resp.json()["data"]["project"]["_id"]
    result.add_pass("Project Creation", f"Created project ID={project_id}")
    print()

    # Test 3: Expenses drive the status
    print("TEST 3: Expenses move the project into warning, then critical")
    print("-" * 60)

    resp = log_expense(pm["token"], project_id, 850)
    status = resp.json().get("data", {}).get("status", {}) if resp.status_code == 200 else {}
    if status.get("status") == "warning" and status.get("percentage") == 85.0:
        result.add_pass("Warning Alert", "850 of 1000 spent -> 85.0% warning")
    else:
        result.add_fail("Warning Alert", f"Unexpected response {resp.status_code}: {resp.text}")

    resp = log_expense(pm["token"], project_id, 150.50)
    data = resp.json().get("data", {}) if resp.status_code == 200 else {}
    alert = data.get("alert") or {}
    if alert.get("level") == "critical" and data.get("budget", {}).get("spent") == 1000.5:
        result.add_pass("Critical Alert", alert.get("message", ""))
    else:
        result.add_fail("Critical Alert", f"Unexpected response {resp.status_code}: {resp.text}")
    print()

    # Test 4: Idempotency
    print("TEST 4: Retried expense with the same Idempotency-Key")
    print("-" * 60)

    key = f"smoke-{uuid.uuid4().hex}"
    first = log_expense(pm["token"], project_id, 10, key=key)
    second = log_expense(pm["token"], project_id, 10, key=key)
    if first.status_code == 200 and second.status_code == 200:
        spent_first = first.json()["data"]["budget"]["spent"]
        spent_second = second.json()["data"]["budget"]["spent"]
        if spent_first == spent_second == 1010.5:
            result.add_pass("Idempotency", "Retry returned the original expense, spent unchanged")
        else:
            result.add_fail("Idempotency", f"Spent changed on retry: {spent_first} -> {spent_second}")
    else:
        result.add_fail("Idempotency", f"Got {first.status_code}/{second.status_code}")
    print()

    # Test 5: Cross-tenant access
    print("TEST 5: Cross-Tenant Isolation - Budget read/update")
    print("-" * 60)

    headers_b = auth_headers(org_b["token"])
    resp = requests.get(f"{BASE_URL}/api/budget/project/{project_id}", headers=headers_b)
    if resp.status_code == 403:
        result.add_pass("Tenant Isolation - Read", "Org B admin got 403 reading Org A's budget")
    else:
        result.add_fail("Tenant Isolation - Read", f"Expected 403, got {resp.status_code}")

    resp = requests.put(f"{BASE_URL}/api/budget/project/{project_id}", json={"planned": 1}, headers=headers_b)
    if resp.status_code == 403:
        result.add_pass("Tenant Isolation - Update", "Org B admin got 403 updating Org A's budget")
    else:
        result.add_fail("Tenant Isolation - Update", f"Expected 403, got {resp.status_code}")
    print()

    # Test 6: Alerts
    print("TEST 6: Alerts list is organization-scoped")
    print("-" * 60)

    alerts_a = requests.get(f"{BASE_URL}/api/budget/alerts", headers=auth_headers(pm["token"]))
    alerts_b = requests.get(f"{BASE_URL}/api/budget/alerts", headers=headers_b)
    if alerts_a.status_code == 200 and alerts_b.status_code == 200:
        ids_a = {a["project"]["_id"] for a in alerts_a.json()["data"]["alerts"]}
        ids_b = {a["project"]["_id"] for a in alerts_b.json()["data"]["alerts"]}
        if project_id in ids_a and project_id not in ids_b:
            result.add_pass("Alerts", "Project alert visible to Org A only")
        else:
            result.add_fail("Alerts", f"Org A ids={sorted(ids_a)}, Org B ids={sorted(ids_b)}")
    else:
        result.add_fail("Alerts", f"Got {alerts_a.status_code}/{alerts_b.status_code}")
    print()

    success = result.summary()
    return 0 if success else 1


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n\nTest interrupted by user")
        sys.exit(1)
    except requests.RequestException as e:
        print(f"\n\nERROR: could not reach {BASE_URL}: {e}")
        sys.exit(1)
