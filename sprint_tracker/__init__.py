"""
Sprint Tracker

Record sprints, derive velocity metrics, and forecast team capacity from a
single JSON data file.
"""

__version__ = "1.0.0"

from .models import (
    TeamMember,
    Sprint,
    AppConfig,
    AppDocument
)

from .capacity import (
    calculate_working_hours,
    calculate_team_member_net_hours,
    validate_team_member_hours,
    summarize_team_capacity,
    TeamCapacitySummary
)

from .metrics import (
    calculate_sprint_metrics,
    calculate_dashboard_metrics,
    build_sprint,
    SprintMetrics,
    DashboardMetrics
)

from .forecast import (
    ForecastEngine,
    ForecastingInsights,
    VelocityTrend,
    DataQuality,
    TrendDirection,
    calculate_average_velocity,
    calculate_predicted_capacity,
    get_forecasting_insights,
    calculate_velocity_trend,
    forecast_capacity
)

from .validation import (
    ValidationResult,
    validate_sprint,
    validate_sprint_form_data,
    validate_team_member,
    validate_app_config,
    validate_data_integrity,
    is_data_corrupted
)

from .errors import (
    SprintTrackerError,
    DataValidationError,
    DataCorruptionError,
    SprintNotFoundError,
    DuplicateSprintError,
    AppError
)

from .store import RecordStore

__all__ = [
    # Version
    "__version__",

    # Models
    "TeamMember",
    "Sprint",
    "AppConfig",
    "AppDocument",

    # Capacity
    "calculate_working_hours",
    "calculate_team_member_net_hours",
    "validate_team_member_hours",
    "summarize_team_capacity",
    "TeamCapacitySummary",

    # Metrics
    "calculate_sprint_metrics",
    "calculate_dashboard_metrics",
    "build_sprint",
    "SprintMetrics",
    "DashboardMetrics",

    # Forecast
    "ForecastEngine",
    "ForecastingInsights",
    "VelocityTrend",
    "DataQuality",
    "TrendDirection",
    "calculate_average_velocity",
    "calculate_predicted_capacity",
    "get_forecasting_insights",
    "calculate_velocity_trend",
    "forecast_capacity",

    # Validation
    "ValidationResult",
    "validate_sprint",
    "validate_sprint_form_data",
    "validate_team_member",
    "validate_app_config",
    "validate_data_integrity",
    "is_data_corrupted",

    # Errors
    "SprintTrackerError",
    "DataValidationError",
    "DataCorruptionError",
    "SprintNotFoundError",
    "DuplicateSprintError",
    "AppError",

    # Storage
    "RecordStore",
]
