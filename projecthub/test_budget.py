"""
projecthub/test_budget.py

Budget value object: percentage, remaining, status and alert derivation.

Run:
    pytest projecthub/test_budget.py -v
"""

from decimal import Decimal

import pytest

from projecthub.budget import (
    SEVERITY_ORDER,
    BudgetLevel,
    alert_message,
    alert_payload,
    compute_budget_status,
    from_minor_units,
    round_percentage,
    to_minor_units,
)


class TestScenarios:
    def test_nothing_spent_is_ok(self):
        status = compute_budget_status(1000, 0, 80)
        assert status.percentage == Decimal("0.0")
        assert status.status == "ok"
        assert status.is_alert is False
        assert status.remaining == Decimal("1000")

    def test_past_threshold_is_warning(self):
        status = compute_budget_status(1000, 850, 80)
        assert status.percentage == Decimal("85.0")
        assert status.status == "warning"
        assert status.is_alert is True
        assert status.remaining == Decimal("150")

    def test_past_95_is_critical(self):
        status = compute_budget_status(1000, 960)
        assert status.percentage == Decimal("96.0")
        assert status.status == "critical"
        assert status.is_alert is True

    def test_zero_planned_is_no_budget(self):
        status = compute_budget_status(0, 500)
        assert status.percentage == Decimal("0.0")
        assert status.status == "no_budget"
        assert status.is_alert is False
        assert status.remaining == Decimal("-500")


class TestStatusBands:
    def test_caution_between_70_and_threshold(self):
        assert compute_budget_status(1000, 700, 80).status == "caution"
        assert compute_budget_status(1000, 699.4, 80).status == "ok"

    def test_critical_takes_precedence_over_warning(self):
        status = compute_budget_status(1000, 950, 80)
        assert status.status == "critical"

    def test_low_threshold_warns_below_caution_band(self):
        status = compute_budget_status(1000, 550, 50)
        assert status.status == "warning"
        assert status.is_alert is True

    def test_threshold_100_can_be_critical_without_alerting(self):
        status = compute_budget_status(1000, 980, 100)
        assert status.status == "critical"
        assert status.is_alert is False

    def test_threshold_zero_alerts_immediately(self):
        status = compute_budget_status(100, 0, 0)
        assert status.is_alert is True
        assert status.status == "warning"

    def test_over_budget_has_negative_remaining(self):
        status = compute_budget_status(100, 150)
        assert status.percentage == Decimal("150.0")
        assert status.remaining == Decimal("-50")
        assert status.status == "critical"


class TestRounding:
    def test_percentage_rounds_half_up_to_one_decimal(self):
        assert compute_budget_status(3, 2).percentage == Decimal("66.7")
        assert round_percentage(Decimal("12.25")) == Decimal("12.3")
        assert round_percentage(Decimal("12.24")) == Decimal("12.2")

    def test_status_uses_rounded_percentage(self):
        # 79.95% displays as 80.0%, so it must also be a warning
        status = compute_budget_status(1000, Decimal("799.50"), 80)
        assert status.percentage == Decimal("80.0")
        assert status.status == "warning"
        assert status.is_alert is True

    def test_float_and_string_inputs(self):
        assert compute_budget_status("1000", "850.50").percentage == Decimal("85.1")
        assert compute_budget_status(1000.0, 0.1 + 0.2).spent == Decimal("0.30000000000000004")


class TestProperties:
    @pytest.mark.parametrize("threshold", [0, 50, 80, 100])
    def test_severity_never_decreases_as_spend_grows(self, threshold):
        previous = -1
        for spent in range(0, 1300, 5):
            status = compute_budget_status(1000, spent, threshold)
            assert status.status in {level.value for level in BudgetLevel}
            assert status.severity >= previous
            previous = status.severity

    @pytest.mark.parametrize("planned,spent,threshold", [
        (1000, 0, 80), (1000, 799, 80), (1000, 800, 80), (500, 499.99, 100), (0, 10, 0), (250, 400, 90),
    ])
    def test_is_alert_iff_percentage_reaches_threshold(self, planned, spent, threshold):
        status = compute_budget_status(planned, spent, threshold)
        expected = Decimal(planned) > 0 and status.percentage >= threshold
        assert status.is_alert == expected

    def test_recomputing_is_idempotent(self):
        assert compute_budget_status(1000, 850, 80) == compute_budget_status(1000, 850, 80)


class TestHelpers:
    def test_minor_units(self):
        assert to_minor_units("150.50") == 15050
        assert to_minor_units(0.1 + 0.2) == 30
        assert to_minor_units(Decimal("0.005")) == 1
        assert from_minor_units(100050) == Decimal("1000.50")

    def test_to_dict_shape(self):
        data = compute_budget_status(1000, 850, 80).to_dict()
        assert data == {
            "planned": 1000.0,
            "spent": 850.0,
            "remaining": 150.0,
            "percentage": 85.0,
            "status": "warning",
            "isAlert": True,
            "alertThreshold": 80,
        }

    def test_alert_payload(self):
        status = compute_budget_status(1000, 960)
        assert alert_message(status) == "96.0% of budget spent"
        assert alert_payload(status) == {"message": "Budget alert: 96.0% of budget spent", "level": "critical"}

    def test_severity_order_puts_critical_first(self):
        ordered = sorted(["caution", "critical", "ok", "warning"], key=SEVERITY_ORDER.get)
        assert ordered == ["critical", "warning", "caution", "ok"]
