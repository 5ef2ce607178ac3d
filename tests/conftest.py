"""
Shared fixtures for sprint tracker tests.
"""

import pytest

from sprint_tracker.capacity import calculate_team_member_net_hours
from sprint_tracker.metrics import build_sprint
from sprint_tracker.models import AppConfig, Sprint, TeamMember


def make_form(**overrides) -> dict:
    """Raw sprint input: 30 points, 5 carried in, 3 of those done, 28 done overall."""
    form = {
        "sprintName": "Sprint 1",
        "businessDays": 10,
        "numberOfPeople": 3,
        "totalPointsInSprint": 30,
        "carryOverPointsTotal": 5,
        "carryOverPointsCompleted": 3,
        "unplannedPointsBroughtIn": 2,
        "pointsCompleted": 28,
    }
    form.update(overrides)
    return form


def make_sprint(velocity: float = 0.2, name: str = "Sprint", working_hours: float = 100, **form) -> Sprint:
    """A valid stored sprint whose velocity is exactly the given value."""
    completed = round(velocity * working_hours, 6)
    sprint = build_sprint(
        make_form(
            sprintName=name,
            totalPointsInSprint=max(completed, 1),
            carryOverPointsTotal=0,
            carryOverPointsCompleted=0,
            pointsCompleted=completed,
            **form
        ),
        working_hours
    )
    sprint.velocity = velocity
    return sprint


@pytest.fixture
def sample_form():
    return make_form()


@pytest.fixture
def team():
    return [
        TeamMember(name="Alice", total_gross_hours=40),
        TeamMember(name="Bob", total_gross_hours=40, on_call_hours=8),
        TeamMember(name="Carol", total_gross_hours=40, meeting_hours=4, time_off_hours=16),
    ]


@pytest.fixture
def config(team):
    return AppConfig(
        velocity_calculation_sprints=6,
        team_members=[calculate_team_member_net_hours(m, 20) for m in team],
        default_meeting_percentage=20
    )
