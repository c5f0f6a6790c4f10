"""
projecthub/test_budget_api.py

HTTP tests for /api/budget: status reads, updates, expenses, alerts, ledger.

Run:
    pytest projecthub/test_budget_api.py -v
"""

import pytest


@pytest.fixture
def org(seed):
    org_id = seed.org("Acme")
    ids = {
        "org": org_id,
        "admin": seed.user(org_id, "admin@acme.test", "admin"),
        "pm": seed.user(org_id, "pm@acme.test", "project_manager"),
        "other_pm": seed.user(org_id, "pm2@acme.test", "project_manager"),
        "tl": seed.user(org_id, "tl@acme.test", "team_leader"),
        "member": seed.user(org_id, "member@acme.test", "member"),
        "client_user": seed.user(org_id, "client@acme.test", "client"),
    }
    ids["project"] = seed.project(
        org_id, ids["pm"], name="Website", planned=1000, spent=850, team_leader_id=ids["tl"]
    )
    ids["headers"] = {key: seed.headers(ids[key], org_id)
                      for key in ("admin", "pm", "other_pm", "tl", "member", "client_user")}
    return ids


class TestGetBudget:
    def test_manager_reads_status(self, client, org):
        response = client.get(f"/api/budget/project/{org['project']}", headers=org["headers"]["pm"])
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        data = body["data"]
        assert data["project"] == {"_id": org["project"], "name": "Website"}
        assert data["budget"]["planned"] == 1000.0
        assert data["budget"]["currency"] == "USD"
        assert data["status"]["percentage"] == 85.0
        assert data["status"]["status"] == "warning"
        assert data["status"]["isAlert"] is True
        assert data["status"]["remaining"] == 150.0

    @pytest.mark.parametrize("who", ["tl", "admin"])
    def test_team_leader_and_admin_can_read(self, client, org, who):
        response = client.get(f"/api/budget/project/{org['project']}", headers=org["headers"][who])
        assert response.status_code == 200

    @pytest.mark.parametrize("who", ["member", "other_pm", "client_user"])
    def test_unrelated_users_are_forbidden(self, client, org, who):
        response = client.get(f"/api/budget/project/{org['project']}", headers=org["headers"][who])
        assert response.status_code == 403
        assert response.json()["success"] is False

    def test_reads_are_idempotent(self, client, org):
        url = f"/api/budget/project/{org['project']}"
        first = client.get(url, headers=org["headers"]["pm"]).json()
        second = client.get(url, headers=org["headers"]["pm"]).json()
        assert first == second

    def test_unknown_project(self, client, org):
        response = client.get("/api/budget/project/9999", headers=org["headers"]["pm"])
        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Project not found"}

    def test_requires_token(self, client, org):
        response = client.get(f"/api/budget/project/{org['project']}")
        assert response.status_code in (401, 403)

    def test_rejects_bad_token(self, client, org):
        response = client.get(f"/api/budget/project/{org['project']}",
                              headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401


class TestUpdateBudget:
    def test_manager_updates_planned_and_threshold(self, client, org):
        response = client.put(
            f"/api/budget/project/{org['project']}",
            json={"planned": 2000, "alertThreshold": 50, "currency": "EUR"},
            headers=org["headers"]["pm"],
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["budget"]["planned"] == 2000.0
        assert data["budget"]["currency"] == "EUR"
        assert data["status"]["percentage"] == 42.5
        assert data["status"]["status"] == "ok"
        assert data["status"]["alertThreshold"] == 50

    def test_team_leader_cannot_update(self, client, org):
        response = client.put(f"/api/budget/project/{org['project']}", json={"planned": 1},
                              headers=org["headers"]["tl"])
        assert response.status_code == 403

    def test_spent_override_goes_through_ledger(self, client, org):
        response = client.put(f"/api/budget/project/{org['project']}", json={"spent": 900},
                              headers=org["headers"]["pm"])
        assert response.status_code == 200
        assert response.json()["data"]["budget"]["spent"] == 900.0

        ledger = client.get(f"/api/budget/project/{org['project']}/expenses",
                            headers=org["headers"]["pm"]).json()["data"]
        assert ledger["ledgerTotal"] == ledger["spent"] == 900.0
        assert ledger["entries"][-1]["kind"] == "adjustment"
        assert ledger["entries"][-1]["amount"] == 50.0

    def test_invalid_threshold_is_a_field_error(self, client, org):
        response = client.put(f"/api/budget/project/{org['project']}", json={"alertThreshold": 150},
                              headers=org["headers"]["pm"])
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["errors"][0]["field"] == "alertThreshold"

    @pytest.mark.parametrize("field", ["planned", "spent"])
    def test_amount_over_the_money_ceiling_is_a_field_error(self, client, org, field):
        response = client.put(f"/api/budget/project/{org['project']}", json={field: 1e18},
                              headers=org["headers"]["pm"])
        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == field

        budget = client.get(f"/api/budget/project/{org['project']}", headers=org["headers"]["pm"]).json()["data"]
        assert budget["budget"]["planned"] == 1000.0
        assert budget["budget"]["spent"] == 850.0

    def test_large_planned_budget_within_ceiling(self, client, org):
        response = client.put(f"/api/budget/project/{org['project']}", json={"planned": 25000000},
                              headers=org["headers"]["pm"])
        assert response.status_code == 200
        assert response.json()["data"]["budget"]["planned"] == 25000000.0


class TestLogExpense:
    def test_expense_updates_spent_and_alerts(self, client, org):
        response = client.post(
            "/api/budget/expense",
            json={"projectId": org["project"], "amount": 150.50, "description": "Servers"},
            headers=org["headers"]["tl"],
        )
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Expense logged successfully"
        data = body["data"]
        assert data["budget"]["spent"] == 1000.5
        assert data["status"]["percentage"] == 100.1
        assert data["status"]["status"] == "critical"
        assert data["alert"] == {"message": "Budget alert: 100.1% of budget spent", "level": "critical"}
        assert data["expense"]["amount"] == 150.5
        assert data["expense"]["kind"] == "expense"

    def test_no_alert_block_below_threshold(self, client, seed, org):
        quiet = seed.project(org["org"], org["pm"], name="Quiet", planned=1000)
        data = client.post("/api/budget/expense", json={"projectId": quiet, "amount": 10},
                           headers=org["headers"]["pm"]).json()["data"]
        assert data["alert"] is None
        assert data["status"]["status"] == "ok"

    @pytest.mark.parametrize("amount", [0, -10, 0.001])
    def test_amount_must_be_at_least_one_cent(self, client, org, amount):
        response = client.post("/api/budget/expense", json={"projectId": org["project"], "amount": amount},
                               headers=org["headers"]["pm"])
        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "amount"

    def test_missing_project_id(self, client, org):
        response = client.post("/api/budget/expense", json={"amount": 5}, headers=org["headers"]["pm"])
        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "projectId"

    def test_amount_over_the_money_ceiling_is_a_field_error(self, client, org):
        response = client.post("/api/budget/expense", json={"projectId": org["project"], "amount": 1e18},
                               headers=org["headers"]["pm"])
        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "amount"

        ledger = client.get(f"/api/budget/project/{org['project']}/expenses",
                            headers=org["headers"]["pm"]).json()["data"]
        assert ledger["spent"] == 850.0
        assert len(ledger["entries"]) == 1

    def test_member_cannot_log(self, client, org):
        response = client.post("/api/budget/expense", json={"projectId": org["project"], "amount": 5},
                               headers=org["headers"]["member"])
        assert response.status_code == 403

    def test_idempotency_key_prevents_double_logging(self, client, org):
        headers = {**org["headers"]["pm"], "Idempotency-Key": "invoice-42"}
        payload = {"projectId": org["project"], "amount": 20}
        first = client.post("/api/budget/expense", json=payload, headers=headers).json()
        second = client.post("/api/budget/expense", json=payload, headers=headers).json()

        assert first["message"] == "Expense logged successfully"
        assert second["message"] == "Expense already recorded"
        assert second["data"]["expense"]["_id"] == first["data"]["expense"]["_id"]
        assert second["data"]["budget"]["spent"] == 870.0

    def test_currency_mismatch(self, client, org):
        response = client.post(
            "/api/budget/expense",
            json={"projectId": org["project"], "amount": 5, "currency": "EUR"},
            headers=org["headers"]["pm"],
        )
        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "currency"

    def test_matching_currency_is_accepted(self, client, org):
        response = client.post(
            "/api/budget/expense",
            json={"projectId": org["project"], "amount": 5, "currency": "USD"},
            headers=org["headers"]["pm"],
        )
        assert response.status_code == 200


class TestAlerts:
    @pytest.fixture
    def alerting(self, seed, org):
        return {
            "critical": seed.project(org["org"], org["pm"], name="Hot", planned=100, spent=97),
            "caution_alert": seed.project(org["org"], org["pm"], name="Warm", planned=100, spent=75,
                                          alert_threshold=70),
            "quiet": seed.project(org["org"], org["pm"], name="Cold", planned=100, spent=10),
            "no_budget": seed.project(org["org"], org["pm"], name="Unfunded", planned=0, spent=10),
            "elsewhere": seed.project(org["org"], org["other_pm"], name="Theirs", planned=100, spent=99),
        }

    def test_manager_sees_own_alerts_sorted(self, client, org, alerting):
        data = client.get("/api/budget/alerts", headers=org["headers"]["pm"]).json()["data"]
        names = [a["project"]["name"] for a in data["alerts"]]
        # critical, then warning (Website 85%, Warm 75% with threshold 70)
        assert names == ["Hot", "Website", "Warm"]
        assert data["alerts"][0]["alert"] == {"status": "critical", "threshold": 80, "message": "97.0% of budget spent"}
        assert data["summary"] == {"total": 3, "critical": 1, "warning": 2, "caution": 0}

    def test_admin_sees_whole_organization(self, client, org, alerting):
        data = client.get("/api/budget/alerts", headers=org["headers"]["admin"]).json()["data"]
        assert data["summary"]["total"] == 4
        assert data["summary"]["critical"] == 2

    def test_team_leader_sees_led_projects(self, client, org, alerting):
        data = client.get("/api/budget/alerts", headers=org["headers"]["tl"]).json()["data"]
        assert [a["project"]["_id"] for a in data["alerts"]] == [org["project"]]

    def test_member_sees_projects_they_belong_to(self, client, seed, org, alerting):
        assert client.get("/api/budget/alerts", headers=org["headers"]["member"]).json()["data"]["alerts"] == []
        seed.member(alerting["critical"], org["member"])
        data = client.get("/api/budget/alerts", headers=org["headers"]["member"]).json()["data"]
        assert [a["project"]["name"] for a in data["alerts"]] == ["Hot"]

    def test_clients_cannot_list_alerts(self, client, org):
        assert client.get("/api/budget/alerts", headers=org["headers"]["client_user"]).status_code == 403


class TestLedgerEndpoints:
    def test_list_and_reverse(self, client, org):
        logged = client.post("/api/budget/expense", json={"projectId": org["project"], "amount": 40},
                             headers=org["headers"]["tl"]).json()["data"]["expense"]

        reversed_ = client.post(f"/api/budget/expense/{logged['_id']}/reverse", json={"reason": "duplicate"},
                                headers=org["headers"]["pm"])
        assert reversed_.status_code == 200
        data = reversed_.json()["data"]
        assert data["budget"]["spent"] == 850.0
        assert data["reversal"]["amount"] == -40.0
        assert data["reversal"]["reversesId"] == logged["_id"]

        again = client.post(f"/api/budget/expense/{logged['_id']}/reverse", headers=org["headers"]["pm"])
        assert again.status_code == 409

        entries = client.get(f"/api/budget/project/{org['project']}/expenses",
                             headers=org["headers"]["tl"]).json()["data"]["entries"]
        assert [e["kind"] for e in entries] == ["adjustment", "expense", "reversal"]

    def test_team_leader_cannot_reverse(self, client, org):
        logged = client.post("/api/budget/expense", json={"projectId": org["project"], "amount": 40},
                             headers=org["headers"]["tl"]).json()["data"]["expense"]
        response = client.post(f"/api/budget/expense/{logged['_id']}/reverse", headers=org["headers"]["tl"])
        assert response.status_code == 403

    def test_unknown_expense(self, client, org):
        response = client.post("/api/budget/expense/9999/reverse", headers=org["headers"]["pm"])
        assert response.status_code == 404
