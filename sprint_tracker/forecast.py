"""
Sprint Capacity Forecasting

Uses historical sprint velocity to predict next-sprint capacity, grade
forecast confidence, and detect velocity trends.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .models import Sprint, DEFAULT_VELOCITY_CALCULATION_SPRINTS


DEFAULT_TREND_WINDOW = 3

# Fewer sprints than this is a "limited" forecast
MIN_RELIABLE_SPRINTS = 3

# (max - min) / mean above this counts as inconsistent velocity
HIGH_VARIATION_THRESHOLD = 0.5

STABLE_CHANGE_PERCENT = 5
MODERATE_CHANGE_PERCENT = 15
STRONG_CHANGE_PERCENT = 30


class DataQuality(Enum):
    """How much history fed the forecast."""
    INSUFFICIENT = "insufficient"  # no sprints
    LIMITED = "limited"            # fewer than 3
    GOOD = "good"                  # fewer than requested
    EXCELLENT = "excellent"        # full window


class TrendDirection(Enum):
    """Velocity trend direction."""
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"
    INSUFFICIENT_DATA = "insufficient_data"


class TrendStrength(Enum):
    WEAK = "weak"
    MODERATE = "moderate"
    STRONG = "strong"


@dataclass
class ForecastingInsights:
    """Capacity forecast with confidence grading."""
    average_velocity: float
    predicted_capacity: float
    data_quality: DataQuality
    sprints_used: int
    warnings: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    @property
    def is_reliable(self) -> bool:
        return self.data_quality in (DataQuality.GOOD, DataQuality.EXCELLENT)

    def to_dict(self) -> dict:
        return {
            "averageVelocity": self.average_velocity,
            "predictedCapacity": self.predicted_capacity,
            "dataQuality": self.data_quality.value,
            "warnings": self.warnings,
            "recommendations": self.recommendations,
            "sprintsUsed": self.sprints_used
        }


@dataclass
class VelocityTrend:
    """Recent velocity window compared to the one before it."""
    trend: TrendDirection
    trend_strength: TrendStrength
    recent_average: float = 0
    previous_average: float = 0
    change_percent: float = 0

    def to_dict(self) -> dict:
        return {
            "trend": self.trend.value,
            "trendStrength": self.trend_strength.value,
            "recentAverage": self.recent_average,
            "previousAverage": self.previous_average,
            "changePercent": round(self.change_percent, 1)
        }


def calculate_average_velocity(
    sprints: list[Sprint],
    number_of_sprints: int = DEFAULT_VELOCITY_CALCULATION_SPRINTS
) -> float:
    """
    Average velocity over the last N sprints.

    Args:
        sprints: Sprint history, oldest first
        number_of_sprints: How many of the most recent sprints to average

    Returns:
        Mean velocity, or 0 with no history
    """
    if not sprints or number_of_sprints <= 0:
        return 0

    recent = sprints[-number_of_sprints:]
    return sum(s.velocity for s in recent) / len(recent)


def calculate_predicted_capacity(
    average_velocity: float,
    upcoming_working_hours: float
) -> float:
    """Story points the team should manage in the upcoming sprint."""
    if average_velocity <= 0 or upcoming_working_hours <= 0:
        return 0
    return average_velocity * upcoming_working_hours


def get_forecasting_insights(
    sprints: list[Sprint],
    upcoming_working_hours: float,
    number_of_sprints: int = DEFAULT_VELOCITY_CALCULATION_SPRINTS
) -> ForecastingInsights:
    """
    Forecast capacity and grade how far the forecast can be trusted.

    Args:
        sprints: Sprint history, oldest first
        upcoming_working_hours: Net hours available in the upcoming sprint
        number_of_sprints: Requested averaging window

    Returns:
        ForecastingInsights with warnings and recommendations
    """
    warnings = []
    recommendations = []

    average_velocity = calculate_average_velocity(sprints, number_of_sprints)
    predicted_capacity = calculate_predicted_capacity(average_velocity, upcoming_working_hours)
    sprints_used = min(len(sprints), max(number_of_sprints, 0))

    if sprints_used == 0:
        data_quality = DataQuality.INSUFFICIENT
        warnings.append("No historical sprint data available for forecasting")
        recommendations.append("Complete at least 2-3 sprints to get meaningful forecasts")
    elif sprints_used < MIN_RELIABLE_SPRINTS:
        data_quality = DataQuality.LIMITED
        warnings.append(
            f"Only {sprints_used} sprint(s) available for forecasting - predictions may be unreliable"
        )
        recommendations.append("Complete more sprints to improve forecast accuracy")
    elif sprints_used < number_of_sprints:
        data_quality = DataQuality.GOOD
        warnings.append(
            f"Using {sprints_used} sprints instead of requested {number_of_sprints} for forecasting"
        )
    else:
        data_quality = DataQuality.EXCELLENT

    recent = sprints[-sprints_used:] if sprints_used > 0 else []

    # Velocity consistency
    if sprints_used >= MIN_RELIABLE_SPRINTS and average_velocity > 0:
        velocities = [s.velocity for s in recent]
        variation = (max(velocities) - min(velocities)) / average_velocity
        if variation > HIGH_VARIATION_THRESHOLD:
            warnings.append("High velocity variation detected - forecasts may be less reliable")
            recommendations.append("Review sprint consistency and team capacity planning")

    zero_velocity_sprints = len([s for s in recent if s.velocity == 0])
    if zero_velocity_sprints > 0:
        warnings.append(f"{zero_velocity_sprints} sprint(s) with zero velocity detected")
        recommendations.append("Review sprints with zero velocity for data accuracy")

    if data_quality == DataQuality.GOOD:
        recommendations.append("Complete more sprints to improve forecast accuracy")

    return ForecastingInsights(
        average_velocity=average_velocity,
        predicted_capacity=predicted_capacity,
        data_quality=data_quality,
        sprints_used=sprints_used,
        warnings=warnings,
        recommendations=recommendations
    )


def _trend_strength(abs_change_percent: float) -> TrendStrength:
    if abs_change_percent < MODERATE_CHANGE_PERCENT:
        return TrendStrength.WEAK
    elif abs_change_percent < STRONG_CHANGE_PERCENT:
        return TrendStrength.MODERATE
    return TrendStrength.STRONG


def calculate_velocity_trend(
    sprints: list[Sprint],
    window_size: int = DEFAULT_TREND_WINDOW
) -> VelocityTrend:
    """
    Compare the last window of sprints to the window before it.

    Args:
        sprints: Sprint history, oldest first
        window_size: Sprints per window; 2x this many are required

    Returns:
        VelocityTrend; INSUFFICIENT_DATA when history is too short
    """
    if window_size <= 0 or len(sprints) < window_size * 2:
        return VelocityTrend(
            trend=TrendDirection.INSUFFICIENT_DATA,
            trend_strength=TrendStrength.WEAK
        )

    recent = sprints[-window_size:]
    previous = sprints[-window_size * 2:-window_size]

    recent_average = sum(s.velocity for s in recent) / window_size
    previous_average = sum(s.velocity for s in previous) / window_size

    if previous_average > 0:
        change_percent = (recent_average - previous_average) / previous_average * 100
    else:
        change_percent = 0

    abs_change = abs(change_percent)
    if abs_change < STABLE_CHANGE_PERCENT:
        trend = TrendDirection.STABLE
        strength = TrendStrength.WEAK
    else:
        trend = TrendDirection.IMPROVING if change_percent > 0 else TrendDirection.DECLINING
        strength = _trend_strength(abs_change)

    return VelocityTrend(
        trend=trend,
        trend_strength=strength,
        recent_average=recent_average,
        previous_average=previous_average,
        change_percent=change_percent
    )


@dataclass
class CapacityForecast:
    """Everything the dashboard needs to plan the next sprint."""
    upcoming_working_hours: float
    insights: ForecastingInsights
    trend: VelocityTrend

    def to_dict(self) -> dict:
        return {
            "upcomingWorkingHours": self.upcoming_working_hours,
            **self.insights.to_dict(),
            "velocityTrend": self.trend.to_dict()
        }


class ForecastEngine:
    """
    Forecasts sprint capacity from historical velocity.

    Usage:
        engine = ForecastEngine(velocity_calculation_sprints=6)
        forecast = engine.forecast(sprints, upcoming_working_hours=120)
    """

    def __init__(
        self,
        velocity_calculation_sprints: int = DEFAULT_VELOCITY_CALCULATION_SPRINTS,
        trend_window: int = DEFAULT_TREND_WINDOW
    ):
        self.velocity_calculation_sprints = velocity_calculation_sprints
        self.trend_window = trend_window

    def average_velocity(self, sprints: list[Sprint]) -> float:
        return calculate_average_velocity(sprints, self.velocity_calculation_sprints)

    def predicted_capacity(self, sprints: list[Sprint], upcoming_working_hours: float) -> float:
        return calculate_predicted_capacity(self.average_velocity(sprints), upcoming_working_hours)

    def insights(
        self,
        sprints: list[Sprint],
        upcoming_working_hours: float,
        number_of_sprints: Optional[int] = None
    ) -> ForecastingInsights:
        return get_forecasting_insights(
            sprints,
            upcoming_working_hours,
            number_of_sprints or self.velocity_calculation_sprints
        )

    def trend(self, sprints: list[Sprint]) -> VelocityTrend:
        return calculate_velocity_trend(sprints, self.trend_window)

    def forecast(
        self,
        sprints: list[Sprint],
        upcoming_working_hours: float,
        number_of_sprints: Optional[int] = None
    ) -> CapacityForecast:
        """
        Forecast the upcoming sprint.

        Args:
            sprints: Sprint history, oldest first
            upcoming_working_hours: Net hours for the upcoming sprint
            number_of_sprints: Override for the configured averaging window
        """
        insights = self.insights(sprints, upcoming_working_hours, number_of_sprints)
        trend = self.trend(sprints)

        if trend.trend == TrendDirection.DECLINING and trend.trend_strength != TrendStrength.WEAK:
            insights.recommendations.append("Team velocity is declining - investigate root cause")

        return CapacityForecast(
            upcoming_working_hours=upcoming_working_hours,
            insights=insights,
            trend=trend
        )


# Convenience function
def forecast_capacity(
    sprints: list[Sprint],
    upcoming_working_hours: float,
    number_of_sprints: int = DEFAULT_VELOCITY_CALCULATION_SPRINTS
) -> CapacityForecast:
    """
    Quick function to forecast the next sprint.

    Example:
        forecast = forecast_capacity(sprints, upcoming_working_hours=120)

        print(f"Predicted capacity: {forecast.insights.predicted_capacity:.1f} points")
        print(f"Data quality: {forecast.insights.data_quality.value}")
    """
    engine = ForecastEngine(velocity_calculation_sprints=number_of_sprints)
    return engine.forecast(sprints, upcoming_working_hours)
