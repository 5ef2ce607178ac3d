"""
Sprint Metrics Calculator

Derives planned, completed, percent-complete and velocity figures from raw
sprint inputs, and aggregates them into dashboard metrics.
"""

import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from .capacity import calculate_working_hours
from .forecast import calculate_average_velocity, calculate_predicted_capacity
from .models import AppConfig, Sprint


def calculate_planned_points(
    total_points_in_sprint: float,
    carry_over_points_completed: float
) -> float:
    """Points the team committed to: total minus carry-over already done."""
    return total_points_in_sprint - carry_over_points_completed


def calculate_new_work_points(
    total_points_in_sprint: float,
    carry_over_points_total: float
) -> float:
    return total_points_in_sprint - carry_over_points_total


def calculate_points_completed(
    total_completed_points: float,
    carry_over_points_completed: float
) -> float:
    """Completed points excluding finished carry-over."""
    return total_completed_points - carry_over_points_completed


def calculate_percent_complete(points_completed: float, planned_points: float) -> float:
    """
    Percent of planned points completed.

    Not capped at 100: going over signals unplanned work was finished.
    """
    if planned_points <= 0:
        return 0
    return (points_completed / planned_points) * 100


def calculate_velocity(points_completed: float, working_hours: float) -> float:
    """Points completed per net working hour."""
    if working_hours <= 0:
        return 0
    return points_completed / working_hours


@dataclass
class SprintMetrics:
    """Derived figures for one sprint."""
    planned_points: float
    new_work_points: float
    points_completed: float
    percent_complete: float
    velocity: float

    def to_dict(self) -> dict:
        return {
            "plannedPoints": self.planned_points,
            "newWorkPoints": self.new_work_points,
            "pointsCompleted": self.points_completed,
            "percentComplete": self.percent_complete,
            "velocity": self.velocity
        }


def calculate_sprint_metrics(
    total_points_in_sprint: float,
    carry_over_points_total: float,
    carry_over_points_completed: float,
    total_completed_points: float,
    working_hours: float
) -> SprintMetrics:
    """
    Calculate every derived sprint figure at once.

    Args:
        total_points_in_sprint: All points on the sprint's tickets
        carry_over_points_total: Points carried in from the previous sprint
        carry_over_points_completed: Carried-in points finished this sprint
        total_completed_points: Completed points including carry-over
        working_hours: Net working hours of the team

    Returns:
        SprintMetrics
    """
    planned_points = calculate_planned_points(total_points_in_sprint, carry_over_points_completed)
    new_work_points = calculate_new_work_points(total_points_in_sprint, carry_over_points_total)
    points_completed = calculate_points_completed(total_completed_points, carry_over_points_completed)

    return SprintMetrics(
        planned_points=planned_points,
        new_work_points=new_work_points,
        points_completed=points_completed,
        percent_complete=calculate_percent_complete(points_completed, planned_points),
        velocity=calculate_velocity(points_completed, working_hours)
    )


def _timestamp(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_sprint(
    form_data: Mapping,
    working_hours: float,
    sprint_id: Optional[str] = None,
    existing: Optional[Sprint] = None,
    now: Optional[datetime] = None
) -> Sprint:
    """
    Turn raw sprint input into a complete sprint record.

    Args:
        form_data: camelCase sprint input; pointsCompleted includes carry-over
        working_hours: Net hours of the participating members
        sprint_id: Id for a new sprint (generated when omitted)
        existing: Record being replaced; keeps its id, creation time and forecast
        now: Clock override

    Returns:
        Sprint with derived metrics and timestamps
    """
    carry_over_completed = form_data.get("carryOverPointsCompleted", 0)
    metrics = calculate_sprint_metrics(
        total_points_in_sprint=form_data["totalPointsInSprint"],
        carry_over_points_total=form_data.get("carryOverPointsTotal", 0),
        carry_over_points_completed=carry_over_completed,
        total_completed_points=form_data["pointsCompleted"],
        working_hours=working_hours
    )

    timestamp = _timestamp(now)
    if existing:
        sprint_id = existing.id
        created_at = existing.created_at
        predicted_capacity = existing.predicted_capacity
    else:
        sprint_id = sprint_id or f"sprint-{uuid.uuid4().hex[:12]}"
        created_at = timestamp
        predicted_capacity = 0

    return Sprint(
        id=sprint_id,
        sprint_name=form_data["sprintName"].strip(),
        taskei_link=form_data.get("taskeiLink") or None,
        business_days=form_data["businessDays"],
        number_of_people=form_data.get("numberOfPeople", 0),
        working_hours=working_hours,
        total_points_in_sprint=form_data["totalPointsInSprint"],
        carry_over_points_total=form_data.get("carryOverPointsTotal", 0),
        carry_over_points_completed=carry_over_completed,
        unplanned_points_brought_in=form_data.get("unplannedPointsBroughtIn", 0),
        new_work_points=metrics.new_work_points,
        points_completed=metrics.points_completed,
        planned_points=metrics.planned_points,
        percent_complete=metrics.percent_complete,
        velocity=metrics.velocity,
        predicted_capacity=predicted_capacity,
        created_at=created_at,
        updated_at=timestamp
    )


@dataclass
class DashboardMetrics:
    """Headline figures for the sprint dashboard."""
    current_sprint_name: str
    current_percent_complete: float
    current_points_completed: float
    current_planned_points: float
    average_velocity: float
    forecasted_capacity: float
    capacity_utilization: float
    sprint_completion_rate: float

    @property
    def points_per_hour(self) -> float:
        return self.average_velocity

    def to_dict(self) -> dict:
        return {
            "currentSprintStatus": {
                "sprintName": self.current_sprint_name,
                "percentComplete": self.current_percent_complete,
                "pointsCompleted": self.current_points_completed,
                "plannedPoints": self.current_planned_points
            },
            "averageVelocity": self.average_velocity,
            "forecastedCapacity": self.forecasted_capacity,
            "capacityUtilization": self.capacity_utilization,
            "sprintCompletionRate": self.sprint_completion_rate,
            "pointsPerHour": self.points_per_hour
        }


def calculate_dashboard_metrics(sprints: list[Sprint], config: AppConfig) -> DashboardMetrics:
    """
    Aggregate sprint history into dashboard metrics.

    The most recent sprint is the current one. Upcoming hours come from the
    configured roster, or from the last sprint when no roster exists.
    """
    if not sprints:
        return DashboardMetrics(
            current_sprint_name="No sprints available",
            current_percent_complete=0,
            current_points_completed=0,
            current_planned_points=0,
            average_velocity=0,
            forecasted_capacity=0,
            capacity_utilization=0,
            sprint_completion_rate=0
        )

    current = sprints[-1]
    average_velocity = calculate_average_velocity(sprints, config.velocity_calculation_sprints)

    if config.team_members:
        upcoming_hours = calculate_working_hours(config.team_members, config.default_meeting_percentage)
    else:
        upcoming_hours = current.working_hours

    # Each sprint's velocity relative to the average, capped at 100%
    utilizations = []
    for sprint in sprints:
        if sprint.working_hours > 0 and average_velocity > 0:
            utilization = (sprint.points_completed / sprint.working_hours / average_velocity) * 100
        else:
            utilization = 0
        utilizations.append(min(utilization, 100))

    return DashboardMetrics(
        current_sprint_name=current.sprint_name,
        current_percent_complete=current.percent_complete,
        current_points_completed=current.points_completed,
        current_planned_points=current.planned_points,
        average_velocity=average_velocity,
        forecasted_capacity=calculate_predicted_capacity(average_velocity, upcoming_hours),
        capacity_utilization=sum(utilizations) / len(utilizations),
        sprint_completion_rate=sum(s.percent_complete for s in sprints) / len(sprints)
    )
