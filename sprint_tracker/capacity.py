"""
Team Capacity Calculator

Converts a team roster and a meeting-overhead percentage into net available hours.
"""

from dataclasses import dataclass, field, replace
from typing import Optional

from .models import TeamMember, DEFAULT_MEETING_PERCENTAGE


def _meeting_hours(member: TeamMember, default_meeting_percentage: float) -> float:
    """Explicit meeting hours win; otherwise a share of gross hours."""
    if member.meeting_hours is not None:
        return member.meeting_hours
    return member.total_gross_hours * default_meeting_percentage / 100


def _net_hours(member: TeamMember, meeting_hours: float) -> float:
    net = (
        member.total_gross_hours
        - member.on_call_hours
        - meeting_hours
        - member.time_off_hours
    )
    # Overbooked members contribute nothing rather than a negative amount
    return max(0, net)


def calculate_working_hours(
    team_members: list[TeamMember],
    default_meeting_percentage: float = DEFAULT_MEETING_PERCENTAGE
) -> float:
    """
    Calculate total net working hours for a team.

    Args:
        team_members: Roster with per-member hour allocations
        default_meeting_percentage: Share of gross hours spent in meetings,
            used for members without explicit meeting hours

    Returns:
        Sum of every member's net hours, each floored at 0
    """
    return sum(
        _net_hours(member, _meeting_hours(member, default_meeting_percentage))
        for member in team_members
    )


def calculate_team_member_net_hours(
    member: TeamMember,
    default_meeting_percentage: float = DEFAULT_MEETING_PERCENTAGE
) -> TeamMember:
    """Return a copy of the member with meeting and net hours populated."""
    meeting_hours = _meeting_hours(member, default_meeting_percentage)
    return replace(
        member,
        meeting_hours=meeting_hours,
        net_hours=_net_hours(member, meeting_hours)
    )


def validate_team_member_hours(member: TeamMember) -> tuple[bool, list[str]]:
    """
    Quick sanity check of a member's hour allocations.

    Used on roster updates before the full validator runs against the
    persisted document.

    Returns:
        (is_valid, errors)
    """
    errors = []

    if member.total_gross_hours < 0:
        errors.append(f"{member.name}: Total gross hours cannot be negative")
    if member.on_call_hours < 0:
        errors.append(f"{member.name}: On-call hours cannot be negative")
    if member.meeting_hours is not None and member.meeting_hours < 0:
        errors.append(f"{member.name}: Meeting hours cannot be negative")
    if member.time_off_hours < 0:
        errors.append(f"{member.name}: Time off hours cannot be negative")

    total_deductions = member.total_deductions
    if total_deductions > member.total_gross_hours:
        errors.append(
            f"{member.name}: Total deductions ({total_deductions:g}h) "
            f"exceed gross hours ({member.total_gross_hours:g}h)"
        )

    return len(errors) == 0, errors


@dataclass
class MemberCapacity:
    """Capacity breakdown for one team member."""
    name: str
    gross_hours: float
    on_call_hours: float
    meeting_hours: float
    time_off_hours: float
    net_hours: float

    @property
    def deductions(self) -> float:
        return self.on_call_hours + self.meeting_hours + self.time_off_hours

    @property
    def is_overbooked(self) -> bool:
        """Deductions exceed gross hours (net was clamped to 0)."""
        return self.deductions > self.gross_hours

    @property
    def availability_percentage(self) -> float:
        if self.gross_hours <= 0:
            return 0
        return (self.net_hours / self.gross_hours) * 100

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "grossHours": self.gross_hours,
            "onCallHours": self.on_call_hours,
            "meetingHours": self.meeting_hours,
            "timeOffHours": self.time_off_hours,
            "netHours": self.net_hours,
            "availabilityPercentage": round(self.availability_percentage, 1),
            "overbooked": self.is_overbooked
        }


@dataclass
class TeamCapacitySummary:
    """Roster-wide capacity totals."""
    members: list[MemberCapacity] = field(default_factory=list)

    @property
    def team_size(self) -> int:
        return len(self.members)

    @property
    def total_gross_hours(self) -> float:
        return sum(m.gross_hours for m in self.members)

    @property
    def total_net_hours(self) -> float:
        return sum(m.net_hours for m in self.members)

    @property
    def overbooked_members(self) -> list[MemberCapacity]:
        return [m for m in self.members if m.is_overbooked]

    def to_dict(self) -> dict:
        return {
            "summary": {
                "teamSize": self.team_size,
                "totalGrossHours": self.total_gross_hours,
                "totalNetHours": self.total_net_hours,
                "overbooked": [m.name for m in self.overbooked_members]
            },
            "members": [m.to_dict() for m in self.members]
        }


def summarize_team_capacity(
    team_members: list[TeamMember],
    default_meeting_percentage: float = DEFAULT_MEETING_PERCENTAGE,
    names: Optional[list[str]] = None
) -> TeamCapacitySummary:
    """
    Break a roster down into per-member capacity.

    Args:
        team_members: Roster
        default_meeting_percentage: Meeting share for members without explicit hours
        names: Optional subset of members (case-insensitive) participating in a sprint
    """
    wanted = {n.lower().strip() for n in names} if names is not None else None

    members = []
    for member in team_members:
        if wanted is not None and member.name.lower().strip() not in wanted:
            continue
        meeting_hours = _meeting_hours(member, default_meeting_percentage)
        members.append(MemberCapacity(
            name=member.name,
            gross_hours=member.total_gross_hours,
            on_call_hours=member.on_call_hours,
            meeting_hours=meeting_hours,
            time_off_hours=member.time_off_hours,
            net_hours=_net_hours(member, meeting_hours)
        ))

    return TeamCapacitySummary(members=members)
