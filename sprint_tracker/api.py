"""
FastAPI Backend for Sprint Tracker

REST API over the record store and calculators. Every response uses the
{"success": bool, "data": ..., "error": ...} envelope.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Optional, Union

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from .capacity import (
    calculate_team_member_net_hours,
    summarize_team_capacity,
    validate_team_member_hours,
)
from .config import Settings, setup_logging
from .errors import (
    DataValidationError,
    DuplicateSprintError,
    SprintNotFoundError,
    classify_exception,
    log_error,
)
from .forecast import ForecastEngine
from .metrics import build_sprint, calculate_dashboard_metrics
from .models import AppConfig, Sprint, TeamMember
from .store import RecordStore
from .validation import (
    MAX_VELOCITY_SPRINTS,
    MIN_VELOCITY_SPRINTS,
    sanitize_string,
    validate_sprint_form_data,
)

logger = logging.getLogger(__name__)

Number = Union[int, float]

# Hours per person per business day when no roster hours are available
DEFAULT_HOURS_PER_DAY = 8


# Pydantic models for API
class SprintInput(BaseModel):
    sprint_name: str = Field(alias="sprintName")
    taskei_link: Optional[str] = Field(default=None, alias="taskeiLink")
    business_days: Number = Field(alias="businessDays")
    number_of_people: Number = Field(alias="numberOfPeople")
    total_points_in_sprint: Number = Field(alias="totalPointsInSprint")
    carry_over_points_total: Number = Field(alias="carryOverPointsTotal")
    carry_over_points_completed: Number = Field(alias="carryOverPointsCompleted")
    unplanned_points_brought_in: Number = Field(alias="unplannedPointsBroughtIn")
    points_completed: Number = Field(alias="pointsCompleted")  # includes carry-over

    # Hours source, in order of precedence
    working_hours: Optional[Number] = Field(default=None, alias="workingHours")
    team_member_names: Optional[list[str]] = Field(default=None, alias="teamMemberNames")


class TeamMemberInput(BaseModel):
    name: str
    total_gross_hours: Number = Field(alias="totalGrossHours")
    on_call_hours: Number = Field(default=0, alias="onCallHours")
    meeting_hours: Optional[Number] = Field(default=None, alias="meetingHours")
    time_off_hours: Number = Field(default=0, alias="timeOffHours")

    def to_member(self) -> TeamMember:
        return TeamMember(
            name=self.name.strip(),
            total_gross_hours=self.total_gross_hours,
            on_call_hours=self.on_call_hours,
            meeting_hours=self.meeting_hours,
            time_off_hours=self.time_off_hours
        )


class ConfigUpdate(BaseModel):
    velocity_calculation_sprints: Optional[Number] = Field(
        default=None, alias="velocityCalculationSprints"
    )
    default_meeting_percentage: Optional[Number] = Field(
        default=None, alias="defaultMeetingPercentage"
    )
    team_members: Optional[list[TeamMemberInput]] = Field(default=None, alias="teamMembers")


class TeamMembersUpdate(BaseModel):
    team_members: list[TeamMemberInput] = Field(alias="teamMembers")


class ForecastRequest(BaseModel):
    upcoming_working_hours: Optional[Number] = Field(default=None, alias="upcomingWorkingHours")
    sprint_count: Optional[int] = Field(default=None, alias="sprintCount")


# Envelope helpers
def success(data: Any = None, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": True, "data": data})


def failure(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def error_response(error: Exception, context: str) -> JSONResponse:
    """Convert an exception from the core into an error envelope."""
    if isinstance(error, SprintNotFoundError):
        return failure(str(error), 404)
    if isinstance(error, (DataValidationError, DuplicateSprintError)):
        logger.info("%s rejected: %s", context, error)
        return failure(str(error), 400)

    app_error = classify_exception(error, context)
    log_error(app_error)
    return failure(app_error.user_message, 500)


def _validation_message(error: Union[RequestValidationError, ValidationError]) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()) if part != "body")
        problems.append(f"{location}: {item.get('msg')}" if location else item.get("msg"))
    return "Invalid request: " + "; ".join(problems)


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def _sprint_form(body: SprintInput) -> dict:
    """Raw sprint fields with the free-text values cleaned."""
    form = body.model_dump(by_alias=True)
    form["sprintName"] = sanitize_string(form["sprintName"])
    if form.get("taskeiLink") is not None:
        form["taskeiLink"] = sanitize_string(form["taskeiLink"]) or None
    return form


def _sprint_working_hours(body: SprintInput, config: AppConfig) -> float:
    """
    Net hours for a sprint: explicit hours, else the named roster members,
    else the whole roster, else people x days x 8.
    """
    if body.working_hours is not None:
        return body.working_hours
    if body.team_member_names:
        summary = summarize_team_capacity(
            config.team_members, config.default_meeting_percentage, names=body.team_member_names
        )
        return summary.total_net_hours
    if config.team_members:
        summary = summarize_team_capacity(config.team_members, config.default_meeting_percentage)
        return summary.total_net_hours
    return body.number_of_people * body.business_days * DEFAULT_HOURS_PER_DAY


def _process_team_members(
    members: list[TeamMemberInput],
    meeting_percentage: float
) -> list[TeamMember]:
    """Populate net hours and reject impossible allocations."""
    errors = []
    processed = []
    for member_input in members:
        if not member_input.name.strip():
            errors.append("Each team member must have a valid name")
            continue
        member = calculate_team_member_net_hours(member_input.to_member(), meeting_percentage)
        is_valid, member_errors = validate_team_member_hours(member)
        if is_valid:
            processed.append(member)
        else:
            errors.extend(member_errors)

    if errors:
        raise ValueError(f"Team member validation errors: {', '.join(errors)}")
    return processed


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the API around a store configured from settings."""
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        setup_logging(settings.log_level)
        logger.info("Sprint Tracker API starting up...")
        await app.state.store.initialize()
        yield
        logger.info("Sprint Tracker API shutting down...")

    app = FastAPI(
        title="Sprint Tracker",
        description="API for sprint metrics and capacity forecasting",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.store = settings.create_store()

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return failure(_validation_message(exc), 400)

    # Health check
    @app.get("/health")
    async def health_check(store: RecordStore = Depends(get_store)):
        """Health check endpoint."""
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "storage": {
                "data_file": str(store.data_file),
                "exists": store.data_file.exists(),
                "backups": len(store.list_backups()),
                "quarantined": len(store.list_quarantined())
            }
        }

    # Sprint endpoints
    @app.get("/api/sprints")
    async def list_sprints(store: RecordStore = Depends(get_store)):
        """Get all sprints, oldest first."""
        try:
            sprints = await store.read_sprints()
            return success([s.to_dict() for s in sprints])
        except Exception as e:
            return error_response(e, "list_sprints")

    @app.post("/api/sprints")
    async def create_sprint(body: SprintInput, store: RecordStore = Depends(get_store)):
        """Create a sprint from raw input; derived metrics are calculated here."""
        try:
            document = await store.read_sprint_data()
            config = document.config
            form = _sprint_form(body)
            working_hours = _sprint_working_hours(body, config)

            validation = validate_sprint_form_data(form, working_hours, body.number_of_people)
            if not validation.is_valid:
                raise DataValidationError(validation, prefix="Invalid sprint data")

            sprint = build_sprint(form, working_hours)
            engine = ForecastEngine(config.velocity_calculation_sprints)
            sprint.predicted_capacity = engine.predicted_capacity(document.sprints, working_hours)

            await store.add_sprint(sprint)
            return success(sprint.to_dict(), 201)
        except Exception as e:
            return error_response(e, "create_sprint")

    @app.put("/api/sprints")
    async def update_sprint(request: Request, store: RecordStore = Depends(get_store)):
        """Update one sprint by id, or bulk import when the body has a sprints array."""
        try:
            body = await request.json()
        except ValueError:
            return failure("Request body must be valid JSON", 400)
        if not isinstance(body, dict):
            return failure("Request body must be a JSON object", 400)

        try:
            if isinstance(body.get("sprints"), list):
                sprints = [Sprint.from_dict(s) for s in body["sprints"] if isinstance(s, dict)]
                if len(sprints) != len(body["sprints"]):
                    return failure("Every imported sprint must be an object", 400)
                await store.write_sprints_data(sprints)
                return success([s.to_dict() for s in sprints])

            sprint_id = body.get("id")
            if not sprint_id:
                return failure("Sprint ID is required for updates", 400)

            existing = await store.get_sprint(sprint_id)
            if existing is None:
                return failure(f"Sprint with ID {sprint_id} not found", 404)

            try:
                sprint_input = SprintInput.model_validate(body)
            except ValidationError as e:
                return failure(_validation_message(e), 400)

            config = await store.read_config()
            form = _sprint_form(sprint_input)
            working_hours = _sprint_working_hours(sprint_input, config)

            validation = validate_sprint_form_data(form, working_hours, sprint_input.number_of_people)
            if not validation.is_valid:
                raise DataValidationError(validation, prefix="Invalid sprint data")

            updated = build_sprint(form, working_hours, existing=existing)
            await store.update_sprint(sprint_id, updated)
            return success(updated.to_dict())
        except Exception as e:
            return error_response(e, "update_sprint")

    @app.delete("/api/sprints")
    async def delete_sprint(id: Optional[str] = None, store: RecordStore = Depends(get_store)):
        """Delete a sprint by id."""
        if not id:
            return failure("Sprint ID is required for deletion", 400)
        try:
            await store.delete_sprint(id)
            return success(None)
        except Exception as e:
            return error_response(e, "delete_sprint")

    # Configuration endpoints
    @app.get("/api/config")
    async def get_config(store: RecordStore = Depends(get_store)):
        """Get application configuration."""
        try:
            config = await store.read_config()
            return success(config.to_dict())
        except Exception as e:
            return error_response(e, "get_config")

    @app.put("/api/config")
    async def update_config(body: ConfigUpdate, store: RecordStore = Depends(get_store)):
        """Partially update the configuration."""
        sprints_setting = body.velocity_calculation_sprints
        if sprints_setting is not None and not (
            MIN_VELOCITY_SPRINTS <= sprints_setting <= MAX_VELOCITY_SPRINTS
        ):
            return failure("velocityCalculationSprints must be a number between 1 and 20", 400)

        meeting_setting = body.default_meeting_percentage
        if meeting_setting is not None and not (0 <= meeting_setting <= 100):
            return failure("defaultMeetingPercentage must be a number between 0 and 100", 400)

        try:
            config = await store.read_config()
            if sprints_setting is not None:
                config.velocity_calculation_sprints = sprints_setting
            if meeting_setting is not None:
                config.default_meeting_percentage = meeting_setting
            if body.team_members is not None:
                try:
                    config.team_members = _process_team_members(
                        body.team_members, config.default_meeting_percentage
                    )
                except ValueError as e:
                    return failure(str(e), 400)

            await store.write_config(config)
            return success(config.to_dict())
        except Exception as e:
            return error_response(e, "update_config")

    @app.post("/api/config/team-members")
    async def replace_team_members(body: TeamMembersUpdate, store: RecordStore = Depends(get_store)):
        """Replace the team roster."""
        try:
            config = await store.read_config()
            try:
                config.team_members = _process_team_members(
                    body.team_members, config.default_meeting_percentage
                )
            except ValueError as e:
                return failure(str(e), 400)

            await store.write_config(config)
            return success(config.to_dict(), 201)
        except Exception as e:
            return error_response(e, "replace_team_members")

    @app.get("/api/config/capacity")
    async def get_team_capacity(store: RecordStore = Depends(get_store)):
        """Per-member capacity breakdown for the configured roster."""
        try:
            config = await store.read_config()
            summary = summarize_team_capacity(config.team_members, config.default_meeting_percentage)
            return success(summary.to_dict())
        except Exception as e:
            return error_response(e, "get_team_capacity")

    # Metrics endpoints
    @app.get("/api/metrics")
    async def get_metrics(store: RecordStore = Depends(get_store)):
        """Dashboard metrics across the sprint history."""
        try:
            document = await store.read_sprint_data()
            metrics = calculate_dashboard_metrics(document.sprints, document.config)
            return success(metrics.to_dict())
        except Exception as e:
            return error_response(e, "get_metrics")

    @app.post("/api/metrics/forecasting")
    async def get_forecasting(body: ForecastRequest, store: RecordStore = Depends(get_store)):
        """Forecasting insights and velocity trend for an upcoming sprint."""
        hours = body.upcoming_working_hours
        if hours is None or hours <= 0:
            return failure("Valid upcomingWorkingHours is required", 400)

        try:
            document = await store.read_sprint_data()
            engine = ForecastEngine(document.config.velocity_calculation_sprints)
            forecast = engine.forecast(document.sprints, hours, body.sprint_count)
            return success(forecast.to_dict())
        except Exception as e:
            return error_response(e, "get_forecasting")

    return app


app = create_app()


# Run with: uvicorn sprint_tracker.api:app --reload
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
