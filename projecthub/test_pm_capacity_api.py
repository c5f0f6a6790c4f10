"""
projecthub/test_pm_capacity_api.py

HTTP tests for /api/pm: manager capacity, project creation and staffing guards.

Run:
    pytest projecthub/test_pm_capacity_api.py -v
"""

import pytest

from projecthub.db import fetch_scalar


@pytest.fixture
def team(seed):
    org_id = seed.org("Acme")
    ids = {
        "org": org_id,
        "pm": seed.user(org_id, "pm@acme.test", "project_manager", max_projects=2,
                        first_name="Pat", last_name="Manager"),
        "tl": seed.user(org_id, "tl@acme.test", "team_leader"),
        "free_tl": seed.user(org_id, "tl2@acme.test", "team_leader"),
        "busy": seed.user(org_id, "busy@acme.test", "member", max_projects=1),
        "free": seed.user(org_id, "free@acme.test", "member"),
        "client_user": seed.user(org_id, "client@acme.test", "client"),
    }
    ids["led"] = seed.project(org_id, ids["pm"], name="Led", team_leader_id=ids["tl"])
    seed.member(ids["led"], ids["busy"])
    ids["headers"] = {key: seed.headers(ids[key], org_id) for key in ("pm", "tl", "busy", "client_user")}
    return ids


def create(client, headers, **body):
    body.setdefault("name", "New project")
    return client.post("/api/pm/projects", json=body, headers=headers)


class TestPmCapacity:
    def test_capacity_counts_active_projects(self, client, team):
        response = client.get("/api/pm/capacity", headers=team["headers"]["pm"])
        assert response.status_code == 200
        assert response.json()["data"]["pm"] == {
            "name": "Pat Manager",
            "maxProjects": 2,
            "activeProjects": 1,
            "availableSlots": 1,
            "canTakeMore": True,
            "utilizationPercentage": 50.0,
        }

    def test_closed_projects_free_a_slot(self, client, seed, team):
        seed.project(team["org"], team["pm"], name="Done", status="completed")
        seed.project(team["org"], team["pm"], name="Paused", status="on_hold")
        data = client.get("/api/pm/capacity", headers=team["headers"]["pm"]).json()["data"]["pm"]
        assert data["activeProjects"] == 2
        assert data["canTakeMore"] is False
        assert data["availableSlots"] == 0

    def test_members_have_no_pm_capacity_view(self, client, team):
        assert client.get("/api/pm/capacity", headers=team["headers"]["busy"]).status_code == 403


class TestCreateProject:
    def test_create_with_budget_and_staff(self, client, team):
        response = create(
            client, team["headers"]["pm"],
            name="  Launch  ", status="active", priority="high",
            budget={"planned": 5000, "currency": "EUR", "alertThreshold": 75},
            teamLeader=team["free_tl"], teamMembers=[team["free"]],
        )
        assert response.status_code == 201
        project = response.json()["data"]["project"]
        assert project["name"] == "Launch"
        assert project["managerId"] == team["pm"]
        assert project["teamLeaderId"] == team["free_tl"]
        assert [m["_id"] for m in project["members"]] == [team["free"]]
        assert project["budget"] == {"planned": 5000.0, "spent": 0.0, "currency": "EUR",
                                     "alertThreshold": 75, "version": 0}
        assert project["budgetStatus"]["status"] == "ok"

    def test_manager_at_capacity_is_rejected(self, client, seed, team):
        seed.project(team["org"], team["pm"], name="Second")
        response = create(client, team["headers"]["pm"], status="active")
        assert response.status_code == 400
        assert response.json()["message"] == "Project manager has reached maximum project capacity (2 projects)"

    def test_closed_project_can_be_created_at_capacity(self, client, seed, team):
        seed.project(team["org"], team["pm"], name="Second")
        assert create(client, team["headers"]["pm"], status="completed").status_code == 201

    def test_team_leader_of_another_active_project_is_rejected(self, client, conn, team):
        before = fetch_scalar(conn, "SELECT COUNT(*) FROM projects")
        response = create(client, team["headers"]["pm"], teamLeader=team["tl"])
        assert response.status_code == 400
        assert response.json()["message"] == "User is already a team leader in another project (max 1)"
        # Nothing from the failed creation is left behind
        assert fetch_scalar(conn, "SELECT COUNT(*) FROM projects") == before

    def test_member_at_capacity_rolls_back_creation(self, client, conn, team):
        before = fetch_scalar(conn, "SELECT COUNT(*) FROM projects")
        response = create(client, team["headers"]["pm"], teamMembers=[team["free"], team["busy"]])
        assert response.status_code == 400
        assert response.json()["message"] == "User has reached maximum project capacity (1 projects)"
        assert fetch_scalar(conn, "SELECT COUNT(*) FROM projects") == before
        assert fetch_scalar(conn, "SELECT COUNT(*) FROM project_members WHERE user_id = :u",
                            {"u": team["free"]}) == 0

    def test_non_staff_role_cannot_be_assigned(self, client, team):
        response = create(client, team["headers"]["pm"], teamMembers=[team["client_user"]])
        assert response.status_code == 404
        assert response.json()["message"] == "Member not found or is not a valid team member"

    def test_team_leaders_cannot_create_projects(self, client, team):
        assert create(client, team["headers"]["tl"]).status_code == 403

    def test_validation(self, client, team):
        response = create(client, team["headers"]["pm"], name="", budget={"planned": -1})
        assert response.status_code == 400
        fields = {e["field"] for e in response.json()["errors"]}
        assert {"name", "budget.planned"} <= fields

    def test_planned_budget_over_the_money_ceiling(self, client, team):
        response = create(client, team["headers"]["pm"], budget={"planned": 1e18})
        assert response.status_code == 400
        assert [e["field"] for e in response.json()["errors"]] == ["budget.planned"]

    def test_list_projects(self, client, team):
        data = client.get("/api/pm/projects", headers=team["headers"]["pm"]).json()["data"]
        assert data["total"] == 1
        assert data["projects"][0]["name"] == "Led"
        assert data["projects"][0]["members"][0]["_id"] == team["busy"]


class TestProjectStatus:
    def test_reactivation_checks_manager_capacity(self, client, seed, team):
        done = seed.project(team["org"], team["pm"], name="Done", status="completed")
        seed.project(team["org"], team["pm"], name="Second")

        response = client.patch(f"/api/pm/projects/{done}/status", json={"status": "active"},
                                headers=team["headers"]["pm"])
        assert response.status_code == 400
        assert "maximum project capacity" in response.json()["message"]

    def test_closing_a_project_frees_the_slot(self, client, seed, team):
        done = seed.project(team["org"], team["pm"], name="Done", status="completed")
        second = seed.project(team["org"], team["pm"], name="Second")
        headers = team["headers"]["pm"]

        closed = client.patch(f"/api/pm/projects/{second}/status", json={"status": "cancelled"}, headers=headers)
        assert closed.status_code == 200
        reopened = client.patch(f"/api/pm/projects/{done}/status", json={"status": "on_hold"}, headers=headers)
        assert reopened.status_code == 200
        assert reopened.json()["data"]["project"]["status"] == "on_hold"

    def test_reactivation_checks_team_leader_limit(self, client, seed, team):
        old = seed.project(team["org"], team["pm"], name="Old", status="completed", team_leader_id=team["tl"])

        response = client.patch(f"/api/pm/projects/{old}/status", json={"status": "active"},
                                headers=team["headers"]["pm"])
        assert response.status_code == 400
        assert response.json()["message"] == "User is already a team leader in another project (max 1)"

        projects = client.get("/api/pm/projects", headers=team["headers"]["pm"]).json()["data"]["projects"]
        led_active = [p for p in projects if p["teamLeaderId"] == team["tl"] and p["status"] == "active"]
        assert [p["_id"] for p in led_active] == [team["led"]]

    def test_reactivation_checks_member_capacity(self, client, seed, team):
        old = seed.project(team["org"], team["pm"], name="Old", status="completed")
        seed.member(old, team["busy"])

        response = client.patch(f"/api/pm/projects/{old}/status", json={"status": "planning"},
                                headers=team["headers"]["pm"])
        assert response.status_code == 400
        assert response.json()["message"] == "User has reached maximum project capacity (1 projects)"

        projects = client.get("/api/pm/projects", headers=team["headers"]["pm"]).json()["data"]["projects"]
        assert next(p for p in projects if p["_id"] == old)["status"] == "completed"

    def test_reactivation_with_room_for_everyone(self, client, seed, team):
        old = seed.project(team["org"], team["pm"], name="Old", status="cancelled",
                           team_leader_id=team["free_tl"])
        seed.member(old, team["free"])

        response = client.patch(f"/api/pm/projects/{old}/status", json={"status": "active"},
                                headers=team["headers"]["pm"])
        assert response.status_code == 200
        assert response.json()["data"]["project"]["status"] == "active"

    def test_moving_between_active_statuses_is_not_guarded(self, client, seed, team):
        seed.project(team["org"], team["pm"], name="Second")
        response = client.patch(f"/api/pm/projects/{team['led']}/status", json={"status": "on_hold"},
                                headers=team["headers"]["pm"])
        assert response.status_code == 200


class TestStaffing:
    @pytest.fixture
    def project(self, seed, team):
        return seed.project(team["org"], team["pm"], name="Fresh", status="planning")

    def test_set_and_remove_team_leader(self, client, team, project):
        url = f"/api/pm/projects/{project}/team-leader"
        response = client.put(url, json={"teamLeaderId": team["free_tl"]}, headers=team["headers"]["pm"])
        assert response.status_code == 200
        assert response.json()["data"]["project"]["teamLeaderId"] == team["free_tl"]

        response = client.put(url, json={"teamLeaderId": None}, headers=team["headers"]["pm"])
        assert response.status_code == 200
        assert response.json()["message"] == "Team leader removed from project"
        assert response.json()["data"]["project"]["teamLeaderId"] is None

    def test_team_leader_limit(self, client, team, project):
        response = client.put(f"/api/pm/projects/{project}/team-leader", json={"teamLeaderId": team["tl"]},
                              headers=team["headers"]["pm"])
        assert response.status_code == 400
        assert response.json()["message"] == "User is already a team leader in another project (max 1)"

    def test_promoting_a_member_to_team_leader(self, client, team, project):
        headers = team["headers"]["pm"]
        client.post(f"/api/pm/projects/{project}/members", json={"userId": team["free_tl"]}, headers=headers)
        response = client.put(f"/api/pm/projects/{project}/team-leader", json={"teamLeaderId": team["free_tl"]},
                              headers=headers)
        project_data = response.json()["data"]["project"]
        assert project_data["teamLeaderId"] == team["free_tl"]
        assert project_data["members"] == []

    def test_add_and_remove_member(self, client, team, project):
        headers = team["headers"]["pm"]
        added = client.post(f"/api/pm/projects/{project}/members", json={"userId": team["free"]}, headers=headers)
        assert added.status_code == 200
        assert [m["_id"] for m in added.json()["data"]["project"]["members"]] == [team["free"]]

        again = client.post(f"/api/pm/projects/{project}/members", json={"userId": team["free"]}, headers=headers)
        assert again.status_code == 400
        assert again.json()["message"] == "User is already part of this project"

        removed = client.delete(f"/api/pm/projects/{project}/members/{team['free']}", headers=headers)
        assert removed.status_code == 200
        assert removed.json()["data"]["project"]["members"] == []

        missing = client.delete(f"/api/pm/projects/{project}/members/{team['free']}", headers=headers)
        assert missing.status_code == 404

    def test_member_at_capacity(self, client, team, project):
        response = client.post(f"/api/pm/projects/{project}/members", json={"userId": team["busy"]},
                               headers=team["headers"]["pm"])
        assert response.status_code == 400
        assert response.json()["message"] == "User has reached maximum project capacity (1 projects)"

    def test_closed_project_does_not_use_capacity(self, client, seed, team, project):
        headers = team["headers"]["pm"]
        client.patch(f"/api/pm/projects/{team['led']}/status", json={"status": "completed"}, headers=headers)
        response = client.post(f"/api/pm/projects/{project}/members", json={"userId": team["busy"]},
                               headers=headers)
        assert response.status_code == 200

    def test_other_manager_cannot_staff(self, client, seed, team, project):
        other = seed.user(team["org"], "pm2@acme.test", "project_manager")
        response = client.post(f"/api/pm/projects/{project}/members", json={"userId": team["free"]},
                               headers=seed.headers(other, team["org"]))
        assert response.status_code == 403


class TestAvailability:
    def test_available_team_leaders_exclude_current_leaders(self, client, team):
        data = client.get("/api/pm/team-leaders/available", headers=team["headers"]["pm"]).json()["data"]
        ids = [u["_id"] for u in data["teamLeaders"]]
        assert team["tl"] not in ids
        assert team["free_tl"] in ids
        assert team["free"] in ids
        # busy has no free slot left
        assert team["busy"] not in ids
        assert data["total"] == len(ids)

    def test_available_members_have_free_slots(self, client, team):
        data = client.get("/api/pm/members/available", headers=team["headers"]["pm"]).json()["data"]
        by_id = {u["_id"]: u for u in data["members"]}
        assert team["busy"] not in by_id
        assert team["client_user"] not in by_id
        assert by_id[team["tl"]]["currentProjects"] == 1
        assert by_id[team["tl"]]["capacity"] == {"allowed": True, "availableSlots": 3, "maxProjects": 4, "current": 1}

    def test_members_cannot_browse_availability(self, client, team):
        assert client.get("/api/pm/members/available", headers=team["headers"]["busy"]).status_code == 403
