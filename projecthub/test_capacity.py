"""
projecthub/test_capacity.py

Capacity checker: slot arithmetic, the team-leader rule, role defaults and ceilings.

Run:
    pytest projecthub/test_capacity.py -v
"""

from decimal import Decimal

import pytest

from projecthub.capacity import (
    ACTIVE_PROJECT_STATUSES,
    TEAM_LEADER_MAX_PROJECTS,
    can_assign,
    default_max_projects,
    is_active_status,
    max_projects_ceiling,
    utilization_percentage,
    validate_max_projects,
)


class TestCanAssign:
    def test_full_member_cannot_take_more(self):
        check = can_assign(4, "project", 4)
        assert check.allowed is False
        assert check.available_slots == 0

    def test_free_slots(self):
        check = can_assign(10, "project", 3)
        assert check.allowed is True
        assert check.available_slots == 7
        assert check.to_dict() == {"allowed": True, "availableSlots": 7, "maxProjects": 10, "current": 3}

    def test_over_capacity_never_reports_negative_slots(self):
        check = can_assign(4, "project", 6)
        assert check.allowed is False
        assert check.available_slots == 0

    def test_team_leader_ceiling_ignores_max_projects(self):
        assert TEAM_LEADER_MAX_PROJECTS == 1
        assert can_assign(5, "team_leader", 0).allowed is True
        check = can_assign(5, "team_leader", 1)
        assert check.allowed is False
        assert check.max_projects == 1

    def test_zero_capacity(self):
        assert can_assign(0, "project", 0).allowed is False

    def test_unknown_assignment_kind(self):
        with pytest.raises(ValueError):
            can_assign(4, "observer", 0)

    @pytest.mark.parametrize("max_projects", [0, 1, 4, 10, 20])
    @pytest.mark.parametrize("current", [0, 1, 3, 4, 5, 25])
    def test_slot_invariants(self, max_projects, current):
        check = can_assign(max_projects, "project", current)
        assert check.allowed == (current < max_projects)
        assert check.available_slots == max(0, max_projects - current)


class TestActiveStatuses:
    def test_canonical_set(self):
        assert set(ACTIVE_PROJECT_STATUSES) == {"planning", "active", "on_hold"}

    def test_closed_projects_do_not_count(self):
        assert is_active_status("on_hold")
        assert not is_active_status("completed")
        assert not is_active_status("cancelled")
        assert not is_active_status(None)


class TestRoleLimits:
    @pytest.mark.parametrize("role,default,ceiling", [
        ("member", 4, 5),
        ("team_leader", 4, 5),
        ("project_manager", 10, 20),
        ("admin", 10, 20),
        ("super_admin", 10, 20),
        ("client", 0, 0),
        ("guest", 0, 0),
    ])
    def test_defaults_and_ceilings(self, role, default, ceiling):
        assert default_max_projects(role) == default
        assert max_projects_ceiling(role) == ceiling

    def test_validate_within_ceiling(self):
        assert validate_max_projects("member", 5) is None
        assert validate_max_projects("project_manager", 20) is None

    def test_validate_rejects_over_ceiling(self):
        assert "at most 5" in validate_max_projects("member", 6)
        assert "at most 20" in validate_max_projects("project_manager", 21)
        assert validate_max_projects("guest", 1) is not None

    def test_validate_rejects_negative(self):
        assert validate_max_projects("member", -1) == "Max projects cannot be negative"


class TestUtilization:
    def test_one_decimal_half_up(self):
        assert utilization_percentage(1, 3) == Decimal("33.3")
        assert utilization_percentage(2, 3) == Decimal("66.7")
        assert utilization_percentage(10, 10) == Decimal("100.0")

    def test_zero_capacity_is_zero(self):
        assert utilization_percentage(2, 0) == Decimal("0.0")
