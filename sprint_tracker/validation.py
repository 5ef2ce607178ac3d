"""
Sprint Tracker Validation

Structural and business-rule checks for team members, sprint records,
configuration, and whole-document integrity. Validators work on the plain
dict shape of the JSON document so malformed input can be inspected; they
report problems through ValidationResult and never raise.
"""

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


URL_PATTERN = re.compile(r"^https?://.+")
NAME_PATTERN = re.compile(r"^[a-zA-Z\s\-'\.]+$")

SPRINT_NAME_MAX_LENGTH = 100
TEAM_MEMBER_NAME_MAX_LENGTH = 50
MAX_BUSINESS_DAYS = 30
MAX_HOURS_PER_PERSON = 200
MAX_POINTS = 1000
MIN_VELOCITY_SPRINTS = 1
MAX_VELOCITY_SPRINTS = 20
MIN_MEETING_PERCENTAGE = 0
MAX_MEETING_PERCENTAGE = 100

# Derived values are compared with this tolerance
CALCULATION_TOLERANCE = 0.01


@dataclass
class ValidationResult:
    """Outcome of a validation pass."""
    errors: list[str] = field(default_factory=list)
    field_errors: dict[str, str] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, field_name: str, message: str) -> None:
        self.errors.append(message)
        self.field_errors[field_name] = message

    def to_dict(self) -> dict:
        return {
            "isValid": self.is_valid,
            "errors": self.errors,
            "fieldErrors": self.field_errors
        }


def _is_numeric_type(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    """A finite int or float; ints beyond float range do not count."""
    if not _is_numeric_type(value):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def _as_number(value: Any, default: float = 0) -> float:
    return value if _is_number(value) else default


def validate_string_field(
    value: Any,
    field_name: str,
    required: bool = False,
    min_length: int = 0,
    max_length: Optional[int] = None,
    pattern: Optional[re.Pattern] = None,
    pattern_message: Optional[str] = None
) -> Optional[str]:
    """Return an error message for a string field, or None when it is fine."""
    if value is not None and not isinstance(value, str):
        return f"{field_name} must be text"

    text = (value or "").strip()

    if required and not text:
        return f"{field_name} is required"
    if text and len(text) < min_length:
        return f"{field_name} must be at least {min_length} characters long"
    if text and max_length is not None and len(text) > max_length:
        return f"{field_name} must be no more than {max_length} characters long"
    if text and pattern is not None and not pattern.match(text):
        return pattern_message or f"{field_name} format is invalid"

    return None


def validate_numeric_field(
    value: Any,
    field_name: str,
    required: bool = False,
    min_value: float = -math.inf,
    max_value: float = math.inf,
    integer: bool = False,
    allow_zero: bool = True
) -> Optional[str]:
    """Return an error message for a numeric field, or None when it is fine."""
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return f"{field_name} is required" if required else None

    if not _is_number(value):
        if _is_numeric_type(value):
            return f"{field_name} must be a finite number"
        return f"{field_name} must be a number"

    if not allow_zero and value == 0:
        return f"{field_name} must be greater than 0"
    if value < min_value:
        return f"{field_name} must be at least {min_value:g}"
    if value > max_value:
        return f"{field_name} must be no more than {max_value:g}"
    if integer and not float(value).is_integer():
        return f"{field_name} must be a whole number"

    return None


def validate_url(url: Any, field_name: str, required: bool = False) -> Optional[str]:
    if not url:
        return f"{field_name} is required" if required else None
    if not isinstance(url, str) or not URL_PATTERN.match(url):
        return f"{field_name} must be a valid URL starting with http:// or https://"
    return None


def validate_team_member(member: Mapping) -> ValidationResult:
    """
    Validate a roster entry.

    Checks the name, every hour field, that deductions fit inside gross
    hours, that the stored net hours match a recomputation, and that the
    member has some capacity left.
    """
    result = ValidationResult()

    if not isinstance(member, Mapping):
        result.add_error("structure", "Team member must be an object")
        return result

    name_error = validate_string_field(
        member.get("name"), "Name",
        required=True,
        max_length=TEAM_MEMBER_NAME_MAX_LENGTH,
        pattern=NAME_PATTERN,
        pattern_message="Name can only contain letters, spaces, hyphens, apostrophes, and periods"
    )
    if name_error:
        result.add_error("name", name_error)

    gross = member.get("totalGrossHours")
    gross_error = validate_numeric_field(
        gross, "Total gross hours",
        required=True, min_value=0.5, max_value=MAX_HOURS_PER_PERSON, allow_zero=False
    )
    if gross_error:
        result.add_error("totalGrossHours", gross_error)

    gross_limit = gross if _is_number(gross) else math.inf
    for key, label in (
        ("onCallHours", "On-call hours"),
        ("meetingHours", "Meeting hours"),
        ("timeOffHours", "Time off hours"),
    ):
        error = validate_numeric_field(member.get(key), label, min_value=0, max_value=gross_limit)
        if error:
            result.add_error(key, error)

    total_deductions = (
        _as_number(member.get("onCallHours"))
        + _as_number(member.get("meetingHours"))
        + _as_number(member.get("timeOffHours"))
    )
    if _is_number(gross) and total_deductions > gross:
        result.add_error(
            "general",
            f"Total deductions ({total_deductions:g}h) exceed gross hours ({gross:g}h)"
        )

    net = member.get("netHours")
    expected_net = max(0, _as_number(gross) - total_deductions)
    if not _is_number(net) or abs(net - expected_net) > CALCULATION_TOLERANCE:
        result.add_error("netHours", "Net hours calculation is incorrect")

    if _is_number(net) and net <= 0:
        result.add_error("netHours", "Team member has no available working hours")

    return result


def validate_sprint_form_data(
    form_data: Mapping,
    working_hours: Any,
    team_members_count: Any,
    completed_includes_carry_over: bool = True
) -> ValidationResult:
    """
    Validate raw sprint input before derived metrics are computed.

    Args:
        form_data: Sprint fields as entered (camelCase keys)
        working_hours: Net hours of the participating members
        team_members_count: How many members take part in the sprint
        completed_includes_carry_over: pointsCompleted is the raw total including
            finished carry-over (False for stored records, where it is derived)
    """
    result = ValidationResult()

    name_error = validate_string_field(
        form_data.get("sprintName"), "Sprint name",
        required=True, max_length=SPRINT_NAME_MAX_LENGTH
    )
    if name_error:
        result.add_error("sprintName", name_error)

    if form_data.get("taskeiLink"):
        url_error = validate_url(form_data.get("taskeiLink"), "Taskei link")
        if url_error:
            result.add_error("taskeiLink", url_error)

    business_days_error = validate_numeric_field(
        form_data.get("businessDays"), "Business days",
        required=True, min_value=1, max_value=MAX_BUSINESS_DAYS, integer=True, allow_zero=False
    )
    if business_days_error:
        result.add_error("businessDays", business_days_error)

    points_fields = (
        ("totalPointsInSprint", "Total points in sprint", True),
        ("carryOverPointsTotal", "Carry over points total", False),
        ("carryOverPointsCompleted", "Carry over points completed", False),
        ("unplannedPointsBroughtIn", "Unplanned points brought in", False),
        ("pointsCompleted", "Points completed", True),
    )
    for key, label, required in points_fields:
        error = validate_numeric_field(
            form_data.get(key), label,
            required=required, min_value=0, max_value=MAX_POINTS
        )
        if error:
            result.add_error(key, error)

    carry_total = _as_number(form_data.get("carryOverPointsTotal"))
    carry_completed = _as_number(form_data.get("carryOverPointsCompleted"))
    if carry_completed > carry_total:
        result.add_error(
            "carryOverPointsCompleted",
            "Carry over completed points cannot exceed carry over total points"
        )

    if not _is_number(team_members_count) or team_members_count <= 0:
        result.add_error("teamMembers", "At least one team member must be selected")

    if not _is_number(working_hours) or working_hours <= 0:
        result.add_error(
            "workingHours",
            "Total working hours must be greater than 0. Check team member configurations."
        )

    completed = _as_number(form_data.get("pointsCompleted"))
    if completed_includes_carry_over:
        if completed < carry_completed:
            result.add_error(
                "pointsCompleted",
                "Points completed cannot be less than carry over points completed"
            )
        completed -= carry_completed

    # Scope creep is reported but does not block saving
    planned = _as_number(form_data.get("totalPointsInSprint")) - carry_completed
    if completed > planned:
        result.field_errors["pointsCompletedWarning"] = (
            "Points completed exceeds planned points - this may indicate scope creep"
        )

    return result


def _is_iso_timestamp(value: Any) -> bool:
    if not isinstance(value, str) or not value:
        return False
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return False
    return True


def validate_sprint(sprint: Mapping) -> ValidationResult:
    """Validate a stored sprint record, including its derived fields."""
    if not isinstance(sprint, Mapping):
        result = ValidationResult()
        result.add_error("structure", "Sprint must be an object")
        return result

    result = validate_sprint_form_data(
        sprint,
        sprint.get("workingHours"),
        sprint.get("numberOfPeople"),
        completed_includes_carry_over=False
    )

    sprint_id = sprint.get("id")
    if not isinstance(sprint_id, str) or not sprint_id.strip():
        result.add_error("id", "Sprint ID is required")

    total = _as_number(sprint.get("totalPointsInSprint"))

    expected_new_work = total - _as_number(sprint.get("carryOverPointsTotal"))
    new_work = sprint.get("newWorkPoints")
    if not _is_number(new_work) or abs(new_work - expected_new_work) > CALCULATION_TOLERANCE:
        result.add_error("newWorkPoints", "New work points calculation is inconsistent")

    expected_planned = total - _as_number(sprint.get("carryOverPointsCompleted"))
    planned = sprint.get("plannedPoints")
    if not _is_number(planned) or abs(planned - expected_planned) > CALCULATION_TOLERANCE:
        result.add_error("plannedPoints", "Planned points calculation is inconsistent")

    if not _is_iso_timestamp(sprint.get("createdAt")):
        result.add_error("createdAt", "Created date is invalid")
    if not _is_iso_timestamp(sprint.get("updatedAt")):
        result.add_error("updatedAt", "Updated date is invalid")

    return result


def validate_app_config(config: Mapping) -> ValidationResult:
    """Validate settings ranges, every roster entry, and roster name uniqueness."""
    result = ValidationResult()

    if not isinstance(config, Mapping):
        result.add_error("structure", "Config must be an object")
        return result

    sprints_error = validate_numeric_field(
        config.get("velocityCalculationSprints"), "Velocity calculation sprints",
        required=True,
        min_value=MIN_VELOCITY_SPRINTS,
        max_value=MAX_VELOCITY_SPRINTS,
        integer=True,
        allow_zero=False
    )
    if sprints_error:
        result.add_error("velocityCalculationSprints", sprints_error)

    meeting_error = validate_numeric_field(
        config.get("defaultMeetingPercentage"), "Default meeting percentage",
        required=True,
        min_value=MIN_MEETING_PERCENTAGE,
        max_value=MAX_MEETING_PERCENTAGE
    )
    if meeting_error:
        result.add_error("defaultMeetingPercentage", meeting_error)

    team_members = config.get("teamMembers")
    if not isinstance(team_members, list):
        result.add_error("teamMembers", "Team members must be an array")
        return result

    for index, member in enumerate(team_members):
        member_result = validate_team_member(member)
        if not member_result.is_valid:
            for error in member_result.errors:
                result.errors.append(f"Team member {index + 1}: {error}")
            result.field_errors[f"teamMember{index}"] = ", ".join(member_result.errors)

    seen = set()
    duplicates = []
    for member in team_members:
        if not isinstance(member, Mapping) or not isinstance(member.get("name"), str):
            continue
        name = member["name"].lower().strip()
        if name in seen and name not in duplicates:
            duplicates.append(name)
        seen.add(name)

    if duplicates:
        result.add_error(
            "teamMembersDuplicates",
            f"Duplicate team member names found: {', '.join(duplicates)}"
        )

    return result


def validate_data_integrity(data: Any) -> ValidationResult:
    """
    Validate a whole document.

    Checks the top-level shape, then collects every sprint and config error
    with a positional prefix ("Sprint 2: ...", "Config: ...").
    """
    result = ValidationResult()

    if not isinstance(data, Mapping):
        result.add_error("structure", "Data must be a valid object")
        return result

    if "sprints" not in data:
        result.add_error("sprints", "Data must contain a 'sprints' property")
    if "config" not in data:
        result.add_error("config", "Data must contain a 'config' property")

    if "sprints" in data:
        sprints = data["sprints"]
        if isinstance(sprints, list):
            for index, sprint in enumerate(sprints):
                sprint_result = validate_sprint(sprint)
                for error in sprint_result.errors:
                    result.errors.append(f"Sprint {index + 1}: {error}")
        else:
            result.add_error("sprintsType", "Sprints must be an array")

    if "config" in data:
        config = data["config"]
        if isinstance(config, Mapping):
            config_result = validate_app_config(config)
            for error in config_result.errors:
                result.errors.append(f"Config: {error}")
        else:
            result.add_error("configType", "Config must be an object")

    return result


def is_data_corrupted(data: Any) -> bool:
    """
    Cheap structural smoke test run before full validation.

    True when the document is not an object, lacks either top-level key,
    has non-array sprints, has sprints without id or name, or has a config
    without its core setting.
    """
    if not isinstance(data, Mapping):
        return True
    if "sprints" not in data or "config" not in data:
        return True

    sprints = data["sprints"]
    if not isinstance(sprints, list):
        return True
    if any(
        not isinstance(s, Mapping) or not s.get("id") or not s.get("sprintName")
        for s in sprints
    ):
        return True

    config = data["config"]
    if not isinstance(config, Mapping) or "velocityCalculationSprints" not in config:
        return True

    return False


def format_validation_errors(result: ValidationResult) -> str:
    """Render a result as one user-facing message."""
    if result.is_valid:
        return ""
    if len(result.errors) == 1:
        return result.errors[0]
    return "Multiple validation errors:\n• " + "\n• ".join(result.errors)


_HANDLER_PATTERN = re.compile(r"on\w+=", re.IGNORECASE)
_JS_PROTOCOL_PATTERN = re.compile(r"javascript:", re.IGNORECASE)


def sanitize_string(value: Any) -> str:
    """Strip markup characters, script protocols and inline handlers; cap at 1000 chars."""
    if not value or not isinstance(value, str):
        return ""
    text = value.strip()
    text = re.sub(r"[<>]", "", text)
    text = _JS_PROTOCOL_PATTERN.sub("", text)
    text = _HANDLER_PATTERN.sub("", text)
    return text[:1000]
