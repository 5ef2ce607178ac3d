"""
Sprint Tracker Data Model

Dataclasses for the persisted document. Attributes are snake_case in Python;
the JSON document on disk uses camelCase keys, converted by to_dict/from_dict.
"""

from dataclasses import dataclass, field
from typing import Any, Optional


DEFAULT_VELOCITY_CALCULATION_SPRINTS = 6
DEFAULT_MEETING_PERCENTAGE = 20


@dataclass
class TeamMember:
    """A roster entry with its hour allocations for one sprint."""
    name: str
    total_gross_hours: float
    on_call_hours: float = 0
    meeting_hours: Optional[float] = None  # None = derive from default percentage
    time_off_hours: float = 0
    net_hours: float = 0

    @property
    def total_deductions(self) -> float:
        return self.on_call_hours + (self.meeting_hours or 0) + self.time_off_hours

    def to_dict(self) -> dict:
        data = {
            "name": self.name,
            "totalGrossHours": self.total_gross_hours,
            "onCallHours": self.on_call_hours,
            "timeOffHours": self.time_off_hours,
            "netHours": self.net_hours,
        }
        if self.meeting_hours is not None:
            data["meetingHours"] = self.meeting_hours
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "TeamMember":
        return cls(
            name=data.get("name", ""),
            total_gross_hours=data.get("totalGrossHours", 0),
            on_call_hours=data.get("onCallHours", 0),
            meeting_hours=data.get("meetingHours"),
            time_off_hours=data.get("timeOffHours", 0),
            net_hours=data.get("netHours", 0),
        )


@dataclass
class Sprint:
    """A recorded sprint with raw inputs and derived metrics."""
    id: str
    sprint_name: str
    business_days: int = 0
    number_of_people: int = 0
    working_hours: float = 0  # Net hours of participating members

    total_points_in_sprint: float = 0
    carry_over_points_total: float = 0
    carry_over_points_completed: float = 0
    unplanned_points_brought_in: float = 0

    # Derived
    new_work_points: float = 0
    points_completed: float = 0
    planned_points: float = 0
    percent_complete: float = 0
    velocity: float = 0
    predicted_capacity: float = 0

    created_at: str = ""
    updated_at: str = ""
    taskei_link: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "sprintName": self.sprint_name,
            "businessDays": self.business_days,
            "numberOfPeople": self.number_of_people,
            "workingHours": self.working_hours,
            "totalPointsInSprint": self.total_points_in_sprint,
            "carryOverPointsTotal": self.carry_over_points_total,
            "carryOverPointsCompleted": self.carry_over_points_completed,
            "newWorkPoints": self.new_work_points,
            "unplannedPointsBroughtIn": self.unplanned_points_brought_in,
            "pointsCompleted": self.points_completed,
            "plannedPoints": self.planned_points,
            "percentComplete": self.percent_complete,
            "velocity": self.velocity,
            "predictedCapacity": self.predicted_capacity,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.taskei_link is not None:
            data["taskeiLink"] = self.taskei_link
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Sprint":
        return cls(
            id=data.get("id", ""),
            sprint_name=data.get("sprintName", ""),
            taskei_link=data.get("taskeiLink"),
            business_days=data.get("businessDays", 0),
            number_of_people=data.get("numberOfPeople", 0),
            working_hours=data.get("workingHours", 0),
            total_points_in_sprint=data.get("totalPointsInSprint", 0),
            carry_over_points_total=data.get("carryOverPointsTotal", 0),
            carry_over_points_completed=data.get("carryOverPointsCompleted", 0),
            new_work_points=data.get("newWorkPoints", 0),
            unplanned_points_brought_in=data.get("unplannedPointsBroughtIn", 0),
            points_completed=data.get("pointsCompleted", 0),
            planned_points=data.get("plannedPoints", 0),
            percent_complete=data.get("percentComplete", 0),
            velocity=data.get("velocity", 0),
            predicted_capacity=data.get("predictedCapacity", 0),
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", ""),
        )


@dataclass
class AppConfig:
    """Team-wide settings and roster."""
    velocity_calculation_sprints: int = DEFAULT_VELOCITY_CALCULATION_SPRINTS
    team_members: list[TeamMember] = field(default_factory=list)
    default_meeting_percentage: float = DEFAULT_MEETING_PERCENTAGE

    def to_dict(self) -> dict:
        return {
            "velocityCalculationSprints": self.velocity_calculation_sprints,
            "teamMembers": [m.to_dict() for m in self.team_members],
            "defaultMeetingPercentage": self.default_meeting_percentage,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AppConfig":
        return cls(
            velocity_calculation_sprints=data.get(
                "velocityCalculationSprints", DEFAULT_VELOCITY_CALCULATION_SPRINTS
            ),
            team_members=[TeamMember.from_dict(m) for m in data.get("teamMembers", [])],
            default_meeting_percentage=data.get(
                "defaultMeetingPercentage", DEFAULT_MEETING_PERCENTAGE
            ),
        )


@dataclass
class AppDocument:
    """The single persisted aggregate: every sprint plus the config."""
    sprints: list[Sprint] = field(default_factory=list)
    config: AppConfig = field(default_factory=AppConfig)

    def get_sprint(self, sprint_id: str) -> Optional[Sprint]:
        for sprint in self.sprints:
            if sprint.id == sprint_id:
                return sprint
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "sprints": [s.to_dict() for s in self.sprints],
            "config": self.config.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AppDocument":
        return cls(
            sprints=[Sprint.from_dict(s) for s in data.get("sprints", [])],
            config=AppConfig.from_dict(data.get("config", {})),
        )
