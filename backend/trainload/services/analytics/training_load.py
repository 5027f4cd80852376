"""
Training Load Engine - per-workout internal, external and total session load.

Internal load follows an exponential heart-rate dose-response model
(Banister-style TRIMP weighting):

    internal = distance * delta_hr * exp(beta * delta_hr)

where delta_hr is the heart-rate reserve fraction and beta depends on
biological sex. External load is a work-rate proxy: distance * speed.
"""
import math
from dataclasses import asdict, dataclass
from typing import Any, Literal, Mapping, Optional

from trainload.services.analytics.units import (
    KM_TO_MILES,
    as_number,
    clamp,
    round_metric,
)

DistanceUnit = Literal["km", "mi"]

DEFAULT_DISTANCE_UNIT: DistanceUnit = "km"
DISTANCE_UNITS = ("km", "mi")

# Gender-specific exponential weighting factor
FEMALE_BETA = 1.67
MALE_BETA = 1.92


@dataclass
class WorkoutLoadInput:
    """Projection of a workout onto the fields the load model needs."""
    distance_km: Optional[float] = None
    distance_meters: Optional[float] = None
    duration_minutes: Optional[float] = None
    avg_speed_kmh: Optional[float] = None
    avg_heart_rate: Optional[float] = None
    max_heart_rate: Optional[float] = None
    rhr: Optional[float] = None
    sex: Optional[str] = None

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> "WorkoutLoadInput":
        """Build from a workout row; non-numeric values are treated as missing."""
        sex = row.get("sex")
        return cls(
            distance_km=as_number(row.get("distance_km")),
            distance_meters=as_number(row.get("distance_meters")),
            duration_minutes=as_number(row.get("duration_minutes")),
            avg_speed_kmh=as_number(row.get("avg_speed_kmh")),
            avg_heart_rate=as_number(row.get("avg_heart_rate")),
            max_heart_rate=as_number(row.get("max_heart_rate")),
            rhr=as_number(row.get("rhr")),
            sex=sex if isinstance(sex, str) else None,
        )


@dataclass
class WorkoutLoadComputation:
    """Output of the load model for one workout."""
    distance_km: Optional[float]
    avg_speed_kmh: Optional[float]
    delta_hr: Optional[float]
    internal_load: Optional[float]
    external_load: Optional[float]
    total_session_load: Optional[float]
    beta: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _check_unit(unit: str) -> None:
    if unit not in DISTANCE_UNITS:
        raise ValueError(f"Unsupported distance unit: {unit!r}")


def _convert(value: Optional[float], unit: DistanceUnit) -> Optional[float]:
    """Scale a km (or km/h) figure into the target unit."""
    if value is None:
        return None
    return value * KM_TO_MILES if unit == "mi" else value


def resolve_distance_km(
    distance_km: Optional[float],
    distance_meters: Optional[float] = None,
) -> Optional[float]:
    """Prefer an explicit km distance, else derive it from meters."""
    if as_number(distance_km) is not None:
        return as_number(distance_km)
    meters = as_number(distance_meters)
    if meters is not None:
        return meters / 1000
    return None


def resolve_avg_speed_kmh(
    distance_km: Optional[float],
    duration_minutes: Optional[float],
    avg_speed_kmh: Optional[float] = None,
) -> Optional[float]:
    """Prefer an explicit speed, else distance over duration (duration > 0)."""
    if as_number(avg_speed_kmh) is not None:
        return as_number(avg_speed_kmh)
    distance = as_number(distance_km)
    duration = as_number(duration_minutes)
    if distance is None or duration is None or duration <= 0:
        return None
    return distance / (duration / 60)


def get_beta_for_sex(sex: Optional[str]) -> float:
    """
    Exponent for the internal load model.

    Case-insensitive prefix match: "f..." is female, anything else
    (including unknown) uses the male factor.
    """
    if not sex:
        return MALE_BETA
    normalized = sex.strip().lower()
    if normalized.startswith("f"):
        return FEMALE_BETA
    return MALE_BETA


def compute_delta_hr(
    avg_heart_rate: Optional[float],
    rhr: Optional[float],
    max_heart_rate: Optional[float],
) -> Optional[float]:
    """
    Heart-rate reserve fraction, clamped to [0, 1].

    Returns None if any input is missing or max HR does not exceed resting HR.
    """
    if avg_heart_rate is None or rhr is None or max_heart_rate is None:
        return None
    denominator = max_heart_rate - rhr
    if denominator <= 0:
        return None
    ratio = (avg_heart_rate - rhr) / denominator
    if not math.isfinite(ratio):
        return None
    return clamp(ratio, 0.0, 1.0)


def compute_internal_load(
    distance_km: Optional[float],
    delta_hr: Optional[float],
    sex: Optional[str] = None,
    unit: DistanceUnit = DEFAULT_DISTANCE_UNIT,
) -> Optional[float]:
    if distance_km is None or delta_hr is None:
        return None
    _check_unit(unit)
    distance = _convert(distance_km, unit)
    beta = get_beta_for_sex(sex)
    return round_metric(distance * delta_hr * math.exp(beta * delta_hr))


def compute_external_load(
    distance_km: Optional[float],
    avg_speed_kmh: Optional[float],
    unit: DistanceUnit = DEFAULT_DISTANCE_UNIT,
) -> Optional[float]:
    if distance_km is None or avg_speed_kmh is None:
        return None
    _check_unit(unit)
    # Distance and speed are always scaled into the same unit
    return round_metric(_convert(distance_km, unit) * _convert(avg_speed_kmh, unit))


def compute_total_session_load(
    internal_load: Optional[float],
    external_load: Optional[float],
) -> Optional[float]:
    """
    Sum of internal and external load, a missing component counting as 0.

    A non-positive sum falls back to whichever component is present, so
    absent data is not reported as a genuine zero load.
    """
    if internal_load is None and external_load is None:
        return None
    total = (internal_load or 0.0) + (external_load or 0.0)
    if total <= 0:
        return internal_load if internal_load is not None else external_load
    return round_metric(total)


def compute_workout_load(
    load_input: WorkoutLoadInput,
    unit: DistanceUnit = DEFAULT_DISTANCE_UNIT,
) -> WorkoutLoadComputation:
    """
    Compute the full load breakdown for one workout.

    Args:
        load_input: Distance, duration, speed, heart rate triad and sex
        unit: "km" or "mi"; scales distance and speed before multiplying

    Returns:
        WorkoutLoadComputation (loads rounded to 2 decimals)
    """
    _check_unit(unit)
    distance_km = resolve_distance_km(load_input.distance_km, load_input.distance_meters)
    avg_speed_kmh = resolve_avg_speed_kmh(
        distance_km,
        load_input.duration_minutes,
        load_input.avg_speed_kmh,
    )
    delta_hr = compute_delta_hr(
        load_input.avg_heart_rate,
        load_input.rhr,
        load_input.max_heart_rate,
    )
    internal_load = compute_internal_load(distance_km, delta_hr, load_input.sex, unit)
    external_load = compute_external_load(distance_km, avg_speed_kmh, unit)

    return WorkoutLoadComputation(
        distance_km=round_metric(distance_km),
        avg_speed_kmh=round_metric(avg_speed_kmh),
        delta_hr=delta_hr,
        internal_load=internal_load,
        external_load=external_load,
        total_session_load=compute_total_session_load(internal_load, external_load),
        beta=get_beta_for_sex(load_input.sex),
    )
