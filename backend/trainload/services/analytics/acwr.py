"""
ACWR Aggregator - weekly training load and Acute:Chronic Workload Ratio.

Takes the workouts of one user, buckets their session load into
Sunday-started weeks and derives:
- a 12-week weekly load series (gap weeks are zero)
- a 12-week ratio history (each week against its own 4 preceding weeks)
- the current acute/chronic summary with a status and suggestions
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional

from trainload.core.logging import get_logger
from trainload.services.analytics.training_load import (
    DEFAULT_DISTANCE_UNIT,
    DistanceUnit,
    WorkoutLoadInput,
    compute_workout_load,
)
from trainload.services.analytics.units import parse_date, round_metric, utcnow

logger = get_logger(__name__)

TARGET_RANGE = {"min": 0.8, "max": 1.3}
MONITOR_MAX = 1.5
HISTORY_WEEKS = 12
CHRONIC_WEEKS = 4


@dataclass
class WeeklyLoadPoint:
    week_start: str
    week_label: str
    total_load: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "weekStart": self.week_start,
            "weekLabel": self.week_label,
            "totalLoad": self.total_load,
        }


@dataclass
class AcwrHistoryPoint:
    week_start: str
    week_label: str
    ratio: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "weekStart": self.week_start,
            "weekLabel": self.week_label,
            "ratio": self.ratio,
        }


@dataclass
class AcwrStatus:
    """Human readable classification of a ratio."""
    label: str
    tone: str  # muted, caution, positive, warning, danger
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "tone": self.tone, "description": self.description}


@dataclass(frozen=True)
class WorkoutSuggestion:
    title: str
    workout_type: str
    duration: str
    distance: str
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "workoutType": self.workout_type,
            "duration": self.duration,
            "distance": self.distance,
            "description": self.description,
        }


@dataclass
class AcwrSummary:
    ratio: Optional[float]
    acute_load: float
    chronic_load: float
    remaining_capacity: Optional[float]
    status: AcwrStatus
    target_range: Dict[str, float] = field(default_factory=lambda: dict(TARGET_RANGE))
    last_updated: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ratio": self.ratio,
            "acuteLoad": self.acute_load,
            "chronicLoad": self.chronic_load,
            "remainingCapacity": self.remaining_capacity,
            "status": self.status.to_dict(),
            "targetRange": dict(self.target_range),
            "lastUpdated": self.last_updated,
        }


@dataclass
class TrainingLoadSummary:
    """Everything the dashboard needs for one user."""
    workouts: List[Dict[str, Any]]
    weekly_load: List[WeeklyLoadPoint]
    acwr_history: List[AcwrHistoryPoint]
    summary: AcwrSummary
    suggestions: List[WorkoutSuggestion]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workouts": self.workouts,
            "weeklyLoad": [point.to_dict() for point in self.weekly_load],
            "acwrHistory": [point.to_dict() for point in self.acwr_history],
            "summary": self.summary.to_dict(),
            "suggestions": [suggestion.to_dict() for suggestion in self.suggestions],
        }


# ========================================
# Status and suggestions
# ========================================

def derive_status(ratio: Optional[float]) -> AcwrStatus:
    """
    Classify a ratio.

    < 0.8 undertraining, [0.8, 1.3] productive, (1.3, 1.5] monitor,
    > 1.5 high risk, None needs more data.
    """
    if ratio is None:
        return AcwrStatus(
            label="Need more data",
            tone="muted",
            description="Log consistent workouts for at least four weeks to unlock ACWR guidance.",
        )
    if ratio < TARGET_RANGE["min"]:
        return AcwrStatus(
            label="Undertraining / Caution",
            tone="caution",
            description="Gradual load increases will help build resilience without spiking injury risk.",
        )
    if ratio <= TARGET_RANGE["max"]:
        return AcwrStatus(
            label="Productive Load",
            tone="positive",
            description="Training stress is in the sweet spot. Maintain this rhythm to keep progressing.",
        )
    if ratio <= MONITOR_MAX:
        return AcwrStatus(
            label="Monitor Load",
            tone="warning",
            description="You are edging past the safe zone. Add recovery or easy volume to stabilize.",
        )
    return AcwrStatus(
        label="High Risk / Deload",
        tone="danger",
        description="Acute stress is spiking. Prioritize rest sessions before stacking harder work.",
    )


SUGGESTIONS: Dict[str, List[WorkoutSuggestion]] = {
    "baseline": [
        WorkoutSuggestion(
            "Consistency First", "Easy Run", "30-40 min", "4-6 km",
            "Log a few conversational runs this week so the dashboard can learn your baseline.",
        ),
        WorkoutSuggestion(
            "Add Strides", "Speed Development", "20 min + strides", "3-4 km",
            "Short pickups at 5k pace prime the legs without adding much stress.",
        ),
        WorkoutSuggestion(
            "Recovery Support", "Mobility & Walk", "15-20 min", "Flexible",
            "Include light strength or walking to reinforce the habit loop.",
        ),
    ],
    "build": [
        WorkoutSuggestion(
            "Easy Volume Run", "Aerobic Base", "45-55 min", "7-9 km",
            "Use the remaining capacity to add smooth mileage. Focus on nose-breathing effort.",
        ),
        WorkoutSuggestion(
            "Light Tempo Finish", "Steady Finish", "35-45 min", "6-7 km",
            "Close the run with a 10 min tempo to gently raise heart rate stimulus.",
        ),
        WorkoutSuggestion(
            "Form Drills", "Strides + Mobility", "25 min", "Short",
            "Add 4-6 relaxed strides to recruit fast-twitch fibers without heavy stress.",
        ),
    ],
    "maintain": [
        WorkoutSuggestion(
            "Maintain the Groove", "Progression Run", "45-50 min", "7-8 km",
            "Hold the current rhythm and finish a touch quicker, but keep RPE under 6.",
        ),
        WorkoutSuggestion(
            "Reload Session", "Threshold Intervals", "40-45 min", "6-7 km",
            "2 x 8-10 min at threshold maintains VO2 without spiking stress.",
        ),
        WorkoutSuggestion(
            "Recovery Run", "Soft Surface", "30-35 min", "4-5 km",
            "Keep at least one super-easy day to defend that optimal ACWR window.",
        ),
    ],
    "cap": [
        WorkoutSuggestion(
            "Cap Load Early", "Recovery Run", "25-30 min", "3-4 km",
            "Use short, gentle running to keep blood flow without stacking load.",
        ),
        WorkoutSuggestion(
            "Non-Impact Session", "Bike / Swim", "35-40 min", "N/A",
            "Cross-train to maintain aerobic work while letting tissues recover.",
        ),
        WorkoutSuggestion(
            "Mobility & Sleep", "Restorative", "20 min", "N/A",
            "Prioritize fascia release and sleep to absorb the chronic load already banked.",
        ),
    ],
    "deload": [
        WorkoutSuggestion(
            "Micro Deload", "Walk + Mobility", "15-20 min", "N/A",
            "Hold off on intensity until the ACWR drops closer to 1.3.",
        ),
        WorkoutSuggestion(
            "Technique Drills", "Stride Mechanics", "20 min", "Short",
            "Keep neuromuscular sharpness with 4 strides and basic drills.",
        ),
        WorkoutSuggestion(
            "Breathing Reset", "Box Breathing", "10 min", "N/A",
            "Parasympathetic work accelerates recovery between harder training weeks.",
        ),
    ],
}


def build_suggestions(
    ratio: Optional[float],
    remaining_capacity: Optional[float],
) -> List[WorkoutSuggestion]:
    """Look up the three example workouts for a ratio band."""
    if ratio is None:
        band = "baseline"
    elif ratio < TARGET_RANGE["min"]:
        band = "build"
    elif ratio <= TARGET_RANGE["max"]:
        band = "maintain"
    elif remaining_capacity is not None and remaining_capacity > 0:
        band = "cap"
    else:
        band = "deload"
    return list(SUGGESTIONS[band])


# ========================================
# Week helpers
# ========================================

def start_of_week(day: date) -> date:
    """Sunday on or before the given day."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def format_week_label(day: date) -> str:
    return f"{day.strftime('%b')} {day.day}"


def _as_day(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        parsed = parse_date(value)
        return parsed.date() if parsed else None
    if isinstance(value, date):
        return value
    parsed = parse_date(value)
    return parsed.date() if parsed else None


# ========================================
# Aggregation
# ========================================

def summarize_training_load(
    workouts: Iterable[Mapping[str, Any]],
    today: Optional[date] = None,
    unit: DistanceUnit = DEFAULT_DISTANCE_UNIT,
) -> TrainingLoadSummary:
    """
    Summarize one user's workouts into weekly load and ACWR figures.

    Args:
        workouts: Workout rows (mappings with at least workout_date and the
            load inputs: distance, duration, speed, heart rate triad)
        today: Reference day for the current week (default: today, UTC)
        unit: "km" or "mi"

    Returns:
        TrainingLoadSummary
    """
    today = _as_day(today) if today is not None else utcnow().date()

    # Load is always recomputed so figures match the requested unit
    computed_workouts: List[Dict[str, Any]] = []
    for workout in workouts:
        computed = compute_workout_load(WorkoutLoadInput.from_mapping(workout), unit=unit)
        computed_workouts.append({
            **workout,
            "distance_km": computed.distance_km,
            "avg_speed_kmh": computed.avg_speed_kmh,
            "delta_hr": computed.delta_hr,
            "internal_load": computed.internal_load,
            "external_load": computed.external_load,
            "total_session_load": computed.total_session_load,
        })

    current_week = start_of_week(today)
    first_week = current_week - timedelta(weeks=HISTORY_WEEKS - 1)
    weeks = [first_week + timedelta(weeks=i) for i in range(HISTORY_WEEKS)]
    week_totals: Dict[date, float] = {week: 0.0 for week in weeks}

    last_updated: Optional[str] = None
    skipped = 0
    for workout in computed_workouts:
        workout_day = _as_day(workout.get("workout_date"))
        if workout_day is None:
            skipped += 1
            continue
        iso_day = workout_day.isoformat()
        if last_updated is None or iso_day > last_updated:
            last_updated = iso_day

        week_key = start_of_week(workout_day)
        load = workout["total_session_load"]
        if week_key in week_totals and load is not None:
            week_totals[week_key] += load

    if skipped:
        logger.debug("Skipped workouts without a usable date", count=skipped)

    weekly_load = [
        WeeklyLoadPoint(
            week_start=week.isoformat(),
            week_label=format_week_label(week),
            total_load=round_metric(week_totals[week]),
        )
        for week in weeks
    ]

    acwr_history: List[AcwrHistoryPoint] = []
    for index, week in enumerate(weeks):
        ratio: Optional[float] = None
        if index >= CHRONIC_WEEKS:
            window = [week_totals[w] for w in weeks[index - CHRONIC_WEEKS:index]]
            chronic_average = sum(window) / CHRONIC_WEEKS
            if chronic_average > 0:
                ratio = round_metric(week_totals[week] / chronic_average)
        acwr_history.append(
            AcwrHistoryPoint(
                week_start=week.isoformat(),
                week_label=format_week_label(week),
                ratio=ratio,
            )
        )

    # Weeks without data count as zero in the chronic average
    acute_load = round_metric(week_totals[current_week])
    previous_loads = [
        week_totals[current_week - timedelta(weeks=i)]
        for i in range(1, CHRONIC_WEEKS + 1)
    ]
    chronic_load = round_metric(sum(previous_loads) / CHRONIC_WEEKS)

    if chronic_load > 0:
        ratio = round_metric(acute_load / chronic_load)
    elif acute_load > 0:
        # No chronic base yet but load this week: reported as 0, not infinite
        ratio = 0.0
    else:
        ratio = None

    remaining_capacity = (
        max(0.0, round_metric(chronic_load * TARGET_RANGE["max"] - acute_load))
        if chronic_load > 0
        else None
    )

    summary = AcwrSummary(
        ratio=ratio,
        acute_load=acute_load,
        chronic_load=chronic_load,
        remaining_capacity=remaining_capacity,
        status=derive_status(ratio),
        last_updated=last_updated,
    )

    return TrainingLoadSummary(
        workouts=computed_workouts,
        weekly_load=weekly_load,
        acwr_history=acwr_history,
        summary=summary,
        suggestions=build_suggestions(ratio, remaining_capacity),
    )
