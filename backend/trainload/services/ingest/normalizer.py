"""
Payload Normalizer - map raw Terra workout payloads onto the canonical workout.

Terra delivers two incompatible shapes for the same workout:
- a legacy flat shape (`calories`, `distance`, `average_heart_rate`, ...)
- a structured shape (`metadata`, `distance_data.summary`,
  `heart_rate_data.summary`, `movement_data`, `calories_data`, ...)

Each canonical field declares an ordered list of candidate paths and takes
the first present, non-empty value ("pick-first"). Missing or malformed
optional fields normalize to None; only unusable identity is an error.
"""
import json
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from trainload.core.logging import get_logger, truncate_content
from trainload.services.analytics.training_load import (
    WorkoutLoadInput,
    compute_workout_load,
)
from trainload.services.analytics.units import (
    as_number,
    clamp,
    iso_week_number,
    minutes_between,
    mps_to_kmh,
    mps_to_pace,
    round_metric,
    to_iso_date,
    utcnow,
)

logger = get_logger(__name__)

ZONE_COUNT = 5

# Missing start time handling
START_TIME_NOW = "now"
START_TIME_REJECT = "reject"


class WorkoutIdentityError(ValueError):
    """The payload cannot be tied to a stable (user, workout) identity."""


class CanonicalWorkout(BaseModel):
    """Normalized, vendor-agnostic workout record."""

    model_config = ConfigDict(extra="forbid")

    # Identity
    terra_workout_id: str
    terra_user_id: str
    provider: str
    user_id: str

    # Time
    started_at: str
    ended_at: str
    workout_date: str
    duration_minutes: Optional[float] = None
    week_number: Optional[int] = None

    # Metrics
    calories: Optional[float] = None
    distance_km: Optional[float] = None
    distance_meters: Optional[float] = None
    steps: Optional[float] = None
    elevation_gain_meters: Optional[float] = None
    avg_heart_rate: Optional[float] = None
    max_heart_rate: Optional[float] = None
    user_max_heart_rate: Optional[float] = None
    rhr: Optional[float] = None
    avg_speed_kmh: Optional[float] = None
    max_speed_kmh: Optional[float] = None
    avg_pace_min_per_km: Optional[float] = None
    best_pace_min_per_km: Optional[float] = None
    zone1: Optional[float] = None
    zone2: Optional[float] = None
    zone3: Optional[float] = None
    zone4: Optional[float] = None
    zone5: Optional[float] = None
    delta_hr: Optional[float] = None
    internal_load: Optional[float] = None
    external_load: Optional[float] = None
    total_session_load: Optional[float] = None
    rpe: Optional[int] = None

    # Provenance
    type_of_workout: Optional[str] = None
    modality: Optional[str] = None
    source: Optional[str] = None
    raw_payload: Dict[str, Any]
    last_synced_at: str


# ========================================
# Candidate paths (priority order)
# ========================================

WORKOUT_ID_PATHS = ("id", "metadata.summary_id")
START_TIME_PATHS = ("metadata.start_time", "start_time")
END_TIME_PATHS = ("metadata.end_time", "end_time")
WORKOUT_TYPE_PATHS = ("metadata.name", "metadata.type", "type")
SOURCE_PATHS = ("source", "metadata.source")

# kJ fields are a last-resort calorie proxy, stored without conversion
CALORIE_PATHS = (
    "calories",
    "calories_data.total_burned_calories",
    "calories_data.net_activity_calories",
    "energy_data.energy_kilojoules",
    "work_data.work_kilojoules",
)
DISTANCE_METERS_PATHS = ("distance", "distance_data.summary.distance_meters")
STEPS_PATHS = ("steps", "distance_data.summary.steps")
ELEVATION_GAIN_PATHS = ("distance_data.summary.elevation.gain_actual_meters",)

AVG_HR_PATHS = ("average_heart_rate", "heart_rate_data.summary.avg_hr_bpm")
MAX_HR_PATHS = ("max_heart_rate", "heart_rate_data.summary.max_hr_bpm")
RESTING_HR_PATHS = ("heart_rate_data.summary.resting_hr_bpm",)
USER_MAX_HR_PATHS = ("heart_rate_data.summary.user_max_hr_bpm",)
HR_ZONES_PATH = "heart_rate_data.summary.hr_zone_data"

AVG_SPEED_MPS_PATHS = ("movement_data.avg_speed_meters_per_second",)
MAX_SPEED_MPS_PATHS = (
    "movement_data.max_speed_meters_per_second",
    "movement_data.max_velocity_meters_per_second",
    "movement_data.adjusted_max_speed_meters_per_second",
    "movement_data.normalized_speed_meters_per_second",
)
AVG_PACE_PATHS = ("movement_data.avg_pace_minutes_per_kilometer",)
BEST_PACE_PATHS = ("movement_data.max_pace_minutes_per_kilometer",)


# ========================================
# Value coercion and path probing
# ========================================

def to_number(value: Any) -> Optional[float]:
    """Finite number from a number or numeric string, else None."""
    number = as_number(value)
    if number is not None:
        return number
    if isinstance(value, str):
        try:
            return as_number(float(value.strip()))
        except ValueError:
            return None
    return None


def to_text(value: Any) -> Optional[str]:
    """Trimmed non-empty text from a string or finite number, else None."""
    if isinstance(value, str):
        trimmed = value.strip()
        return trimmed or None
    if as_number(value) is not None:
        number = value
        if isinstance(number, float) and number.is_integer():
            number = int(number)
        return str(number)
    return None


def dig(payload: Mapping[str, Any], path: str) -> Any:
    """Follow a dotted path through nested mappings; None when absent."""
    current: Any = payload
    for key in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
        if current is None:
            return None
    return current


def pick_first(
    payload: Mapping[str, Any],
    paths: Sequence[str],
    coerce: Callable[[Any], Any],
) -> Any:
    """First candidate path whose value survives coercion."""
    for path in paths:
        value = coerce(dig(payload, path))
        if value is not None:
            return value
    return None


def pick_number(payload: Mapping[str, Any], paths: Sequence[str]) -> Optional[float]:
    return pick_first(payload, paths, to_number)


def pick_text(payload: Mapping[str, Any], paths: Sequence[str]) -> Optional[str]:
    return pick_first(payload, paths, to_text)


# ========================================
# Field resolvers
# ========================================

def estimate_rpe(avg_heart_rate: Optional[float]) -> Optional[int]:
    """Crude RPE proxy: avg HR / 20, rounded, clamped to 1-10."""
    if avg_heart_rate is None:
        return None
    return int(clamp(round_metric(avg_heart_rate / 20, 0), 1, 10))


def extract_zone_minutes(payload: Mapping[str, Any]) -> List[Optional[float]]:
    """
    Map up to five vendor zone entries onto zone1..zone5 minutes.

    An entry's own `zone` number (1-5) wins over its position in the array.
    Minutes come from minutes, duration_minutes, seconds or time, in that order.
    """
    zones: List[Optional[float]] = [None] * ZONE_COUNT
    raw_zones = dig(payload, HR_ZONES_PATH)
    if not isinstance(raw_zones, list):
        return zones

    for index, entry in enumerate(raw_zones[:ZONE_COUNT]):
        if not isinstance(entry, Mapping):
            continue
        zone_number = entry.get("zone")
        if isinstance(zone_number, bool) or not isinstance(zone_number, (int, float)):
            zone_number = index + 1
        elif not 1 <= zone_number <= ZONE_COUNT or not float(zone_number).is_integer():
            zone_number = index + 1

        seconds = to_number(entry.get("seconds"))
        minutes = to_number(entry.get("minutes"))
        if minutes is None:
            minutes = to_number(entry.get("duration_minutes"))
        if minutes is None and seconds is not None:
            minutes = seconds / 60
        if minutes is None:
            minutes = to_number(entry.get("time"))

        zones[int(zone_number) - 1] = round_metric(minutes)
    return zones


def _raw_payload_preview(payload: Mapping[str, Any], max_length: int) -> str:
    try:
        text = json.dumps(payload, default=str)
    except (TypeError, ValueError):
        text = repr(payload)
    return truncate_content(text, max_length)


def map_payload_to_workout(
    payload: Mapping[str, Any],
    provider: str,
    external_user_id: str,
    local_user_id: str,
    missing_start_policy: str = START_TIME_NOW,
    now: Optional[Callable[[], datetime]] = None,
    log_payload: bool = False,
    log_max_length: int = 2000,
) -> CanonicalWorkout:
    """
    Normalize one raw provider payload.

    Args:
        payload: Raw Terra workout payload (arbitrarily shaped mapping)
        provider: Provider name (garmin, fitbit, ...)
        external_user_id: Terra user id of the device
        local_user_id: Local user id
        missing_start_policy: "now" stamps a missing start time with the
            current time, "reject" raises WorkoutIdentityError
        now: Clock, injectable for tests
        log_payload: Log a truncated copy of the payload at debug level
        log_max_length: Truncation for the payload log

    Returns:
        CanonicalWorkout

    Raises:
        WorkoutIdentityError: Blank identity metadata or rejected start time
    """
    clock = now or utcnow
    provider = (provider or "").strip()
    external_user_id = (external_user_id or "").strip()
    local_user_id = (local_user_id or "").strip()
    if not provider or not external_user_id or not local_user_id:
        raise WorkoutIdentityError(
            "provider, external user id and local user id are all required"
        )
    if not isinstance(payload, Mapping):
        payload = {}

    if log_payload:
        logger.debug(
            "Terra workout payload",
            provider=provider,
            terra_user_id=external_user_id,
            payload=_raw_payload_preview(payload, log_max_length),
        )

    # Timestamps
    started_at = pick_text(payload, START_TIME_PATHS)
    if started_at is None:
        if missing_start_policy == START_TIME_REJECT:
            raise WorkoutIdentityError("workout payload has no start time")
        started_at = clock().isoformat()
        logger.warning(
            "Workout payload missing start time, using current time",
            provider=provider,
            terra_user_id=external_user_id,
        )
    ended_at = pick_text(payload, END_TIME_PATHS) or started_at

    workout_date = to_iso_date(started_at)
    if workout_date is None:
        workout_date = clock().date().isoformat()
        logger.warning(
            "Unparseable workout start time, dating workout today",
            provider=provider,
            started_at=started_at,
        )
    duration_minutes = round_metric(minutes_between(started_at, ended_at))

    # Retries of the same event must collide on the same id
    terra_workout_id = (
        pick_text(payload, WORKOUT_ID_PATHS)
        or f"{external_user_id}-{started_at}"
    )

    # Distance, steps, energy
    calories = pick_number(payload, CALORIE_PATHS)
    distance_meters = pick_number(payload, DISTANCE_METERS_PATHS)
    distance_km = round_metric(distance_meters / 1000) if distance_meters is not None else None
    steps = pick_number(payload, STEPS_PATHS)
    elevation_gain = pick_number(payload, ELEVATION_GAIN_PATHS)

    # Heart rate
    avg_hr = pick_number(payload, AVG_HR_PATHS)
    max_hr = pick_number(payload, MAX_HR_PATHS)
    resting_hr = pick_number(payload, RESTING_HR_PATHS)
    user_max_hr = pick_number(payload, USER_MAX_HR_PATHS)
    zones = extract_zone_minutes(payload)

    # Speed and pace
    avg_speed_mps = pick_number(payload, AVG_SPEED_MPS_PATHS)
    if avg_speed_mps is None and distance_meters is not None and duration_minutes:
        avg_speed_mps = distance_meters / (duration_minutes * 60)
    max_speed_mps = pick_number(payload, MAX_SPEED_MPS_PATHS)

    avg_pace = pick_number(payload, AVG_PACE_PATHS)
    if avg_pace is None:
        avg_pace = mps_to_pace(avg_speed_mps)
    best_pace = pick_number(payload, BEST_PACE_PATHS)
    if best_pace is None:
        best_pace = mps_to_pace(max_speed_mps)

    avg_speed_kmh = mps_to_kmh(avg_speed_mps)

    # Sex is never present in provider payloads, so the engine's default applies
    load = compute_workout_load(
        WorkoutLoadInput(
            distance_km=distance_km,
            distance_meters=distance_meters,
            duration_minutes=duration_minutes,
            avg_speed_kmh=avg_speed_kmh,
            avg_heart_rate=avg_hr,
            max_heart_rate=max_hr,
            rhr=resting_hr,
            sex=None,
        )
    )

    workout_type = pick_text(payload, WORKOUT_TYPE_PATHS)

    return CanonicalWorkout(
        terra_workout_id=terra_workout_id,
        terra_user_id=external_user_id,
        provider=provider,
        user_id=local_user_id,
        started_at=started_at,
        ended_at=ended_at,
        workout_date=workout_date,
        duration_minutes=duration_minutes,
        week_number=iso_week_number(workout_date),
        calories=calories,
        distance_km=distance_km,
        distance_meters=distance_meters,
        steps=steps,
        elevation_gain_meters=elevation_gain,
        avg_heart_rate=avg_hr,
        max_heart_rate=max_hr,
        user_max_heart_rate=user_max_hr,
        rhr=resting_hr,
        avg_speed_kmh=avg_speed_kmh,
        max_speed_kmh=mps_to_kmh(max_speed_mps),
        avg_pace_min_per_km=avg_pace,
        best_pace_min_per_km=best_pace,
        zone1=zones[0],
        zone2=zones[1],
        zone3=zones[2],
        zone4=zones[3],
        zone5=zones[4],
        delta_hr=load.delta_hr,
        internal_load=load.internal_load,
        external_load=load.external_load,
        total_session_load=load.total_session_load,
        rpe=estimate_rpe(avg_hr),
        type_of_workout=workout_type,
        modality=workout_type,
        source=pick_text(payload, SOURCE_PATHS) or provider,
        raw_payload=dict(payload),
        last_synced_at=clock().isoformat(),
    )
