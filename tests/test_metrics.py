"""
Tests for sprint metric derivation and dashboard aggregation.
"""

from datetime import datetime, timezone

import pytest

from conftest import make_form, make_sprint
from sprint_tracker.metrics import (
    build_sprint,
    calculate_dashboard_metrics,
    calculate_percent_complete,
    calculate_sprint_metrics,
    calculate_velocity,
)
from sprint_tracker.models import AppConfig
from sprint_tracker.validation import validate_sprint


class TestSprintMetrics:
    """Tests for the derived sprint figures."""

    def test_worked_example(self):
        """Test a sprint with partially completed carry-over."""
        metrics = calculate_sprint_metrics(
            total_points_in_sprint=30,
            carry_over_points_total=5,
            carry_over_points_completed=3,
            total_completed_points=28,
            working_hours=120
        )

        assert metrics.planned_points == 27
        assert metrics.new_work_points == 25
        assert metrics.points_completed == 25
        assert metrics.percent_complete == pytest.approx(92.59, abs=0.01)
        assert metrics.velocity == pytest.approx(0.2083, abs=0.0001)

    def test_percent_complete_not_capped(self):
        """Test finishing more than planned goes over 100%."""
        assert calculate_percent_complete(30, 20) == pytest.approx(150)

    def test_zero_planned_points(self):
        """Test zero planned points gives 0% instead of dividing by zero."""
        assert calculate_percent_complete(5, 0) == 0

    def test_zero_working_hours(self):
        """Test zero hours gives zero velocity."""
        assert calculate_velocity(10, 0) == 0


class TestBuildSprint:
    """Tests for turning raw input into a sprint record."""

    def test_new_sprint(self, sample_form):
        """Test a new sprint gets an id, timestamps and derived fields."""
        now = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

        sprint = build_sprint(sample_form, 120, now=now)

        assert sprint.id.startswith("sprint-")
        assert sprint.created_at == "2024-03-01T12:00:00.000Z"
        assert sprint.updated_at == sprint.created_at
        assert sprint.points_completed == 25
        assert sprint.planned_points == 27
        assert sprint.working_hours == 120
        assert sprint.taskei_link is None

    def test_built_sprint_is_valid(self, sample_form):
        """Test a built sprint passes stored-record validation."""
        sprint = build_sprint(sample_form, 120)

        assert validate_sprint(sprint.to_dict()).is_valid

    def test_ids_are_unique(self, sample_form):
        """Test two builds produce different ids."""
        assert build_sprint(sample_form, 120).id != build_sprint(sample_form, 120).id

    def test_update_keeps_identity(self, sample_form):
        """Test rebuilding from an existing sprint keeps id and creation time."""
        created = datetime(2024, 3, 1, tzinfo=timezone.utc)
        later = datetime(2024, 3, 5, tzinfo=timezone.utc)
        existing = build_sprint(sample_form, 120, now=created)
        existing.predicted_capacity = 24

        updated = build_sprint(make_form(pointsCompleted=30), 120, existing=existing, now=later)

        assert updated.id == existing.id
        assert updated.created_at == existing.created_at
        assert updated.updated_at == "2024-03-05T00:00:00.000Z"
        assert updated.predicted_capacity == 24
        assert updated.points_completed == 27

    def test_strips_name(self):
        """Test the sprint name is trimmed."""
        sprint = build_sprint(make_form(sprintName="  Sprint 7  "), 100)

        assert sprint.sprint_name == "Sprint 7"


class TestDashboardMetrics:
    """Tests for dashboard aggregation."""

    def test_no_sprints(self):
        """Test the empty dashboard."""
        metrics = calculate_dashboard_metrics([], AppConfig())

        assert metrics.current_sprint_name == "No sprints available"
        assert metrics.average_velocity == 0
        assert metrics.sprint_completion_rate == 0

    def test_current_sprint_is_latest(self):
        """Test the most recent sprint is reported as current."""
        sprints = [make_sprint(0.2, name="Sprint 1"), make_sprint(0.25, name="Sprint 2")]

        metrics = calculate_dashboard_metrics(sprints, AppConfig())

        assert metrics.current_sprint_name == "Sprint 2"
        assert metrics.average_velocity == pytest.approx(0.225)
        assert metrics.points_per_hour == metrics.average_velocity

    def test_forecast_uses_roster_hours(self, config):
        """Test the forecast uses the configured roster's hours."""
        sprints = [make_sprint(0.25)]

        metrics = calculate_dashboard_metrics(sprints, config)

        # Roster nets 76 hours
        assert metrics.forecasted_capacity == pytest.approx(19)

    def test_forecast_falls_back_to_last_sprint_hours(self):
        """Test the forecast uses the last sprint's hours without a roster."""
        sprints = [make_sprint(0.2, working_hours=150)]

        metrics = calculate_dashboard_metrics(sprints, AppConfig())

        assert metrics.forecasted_capacity == pytest.approx(30)

    def test_utilization_capped(self):
        """Test per-sprint utilization is capped at 100%."""
        sprints = [make_sprint(0.1), make_sprint(0.3)]

        metrics = calculate_dashboard_metrics(sprints, AppConfig())

        # 0.1 / 0.2 = 50%, 0.3 / 0.2 = 150% capped to 100%
        assert metrics.capacity_utilization == pytest.approx(75)

    def test_zero_velocity_history(self):
        """Test zero velocity does not divide by zero."""
        sprints = [make_sprint(0), make_sprint(0)]

        metrics = calculate_dashboard_metrics(sprints, AppConfig())

        assert metrics.capacity_utilization == 0
        assert metrics.forecasted_capacity == 0

    def test_to_dict_shape(self):
        """Test the serialized shape."""
        data = calculate_dashboard_metrics([make_sprint(0.2)], AppConfig()).to_dict()

        assert set(data) == {
            "currentSprintStatus", "averageVelocity", "forecastedCapacity",
            "capacityUtilization", "sprintCompletionRate", "pointsPerHour"
        }
        assert data["currentSprintStatus"]["sprintName"] == "Sprint"
