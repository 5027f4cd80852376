"""
Numeric utilities shared by the normalizer, the load engine and the ACWR aggregator.

- Rounding (half away from zero, None/NaN propagate)
- Unit conversion (km <-> miles, m/s <-> km/h, speed -> pace)
- Date parsing and ISO-8601 week numbers
"""
import math
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Any, Optional, Union

KM_TO_MILES = 0.621371
MPS_TO_KMH = 3.6

DateLike = Union[str, date, datetime]


def round_metric(value: Optional[float], decimals: int = 2) -> Optional[float]:
    """
    Round half away from zero to a fixed number of decimals.

    Args:
        value: Number to round (None and NaN propagate as None)
        decimals: Decimal places to keep

    Returns:
        Rounded float or None
    """
    if value is None:
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    quantum = Decimal(1).scaleb(-decimals)
    # repr() keeps the shortest decimal form, so 2.675 rounds to 2.68
    rounded = Decimal(repr(value) if isinstance(value, float) else str(value))
    with localcontext() as ctx:
        # large magnitudes need more digits than the default context carries
        ctx.prec = max(ctx.prec, rounded.adjusted() + decimals + 2)
        return float(rounded.quantize(quantum, rounding=ROUND_HALF_UP))


def clamp(value: float, lower: float, upper: float) -> float:
    return min(max(value, lower), upper)


def as_number(value: Any) -> Optional[float]:
    """Return value as a finite number, or None (bools and non-numerics excluded)."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        try:
            number = float(value)
        except OverflowError:
            return None
        return number if math.isfinite(number) else None
    return None


# ========================================
# Unit conversion
# ========================================

def km_to_miles(value: Optional[float]) -> Optional[float]:
    return value * KM_TO_MILES if value is not None else None


def miles_to_km(value: Optional[float]) -> Optional[float]:
    return value / KM_TO_MILES if value is not None else None


def mps_to_kmh(value: Optional[float]) -> Optional[float]:
    """Convert m/s to km/h, rounded to 2 decimals."""
    return round_metric(value * MPS_TO_KMH) if value is not None else None


def kmh_to_mps(value: Optional[float]) -> Optional[float]:
    return value / MPS_TO_KMH if value is not None else None


def mps_to_pace(value: Optional[float]) -> Optional[float]:
    """
    Convert a speed in m/s to a pace in min/km.

    Pace is undefined for zero or negative speed (returns None).
    """
    if value is None or value <= 0:
        return None
    return round_metric((1000 / value) / 60)


# ========================================
# Dates
# ========================================

def parse_date(value: Optional[DateLike]) -> Optional[datetime]:
    """
    Parse a date or timestamp into an aware UTC datetime.

    `YYYY-MM-DD` is read as a UTC calendar date (midnight UTC), other
    ISO-8601 strings are parsed as timestamps. Timestamps without an
    offset are taken as UTC. Invalid input returns None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    parts = text.split("-")
    if len(parts) == 3 and all(part.isdigit() for part in parts):
        try:
            return datetime(int(parts[0]), int(parts[1]), int(parts[2]), tzinfo=timezone.utc)
        except ValueError:
            return None

    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_iso_date(value: Optional[DateLike]) -> Optional[str]:
    """UTC calendar date (YYYY-MM-DD) of the given value, or None."""
    parsed = parse_date(value)
    return parsed.date().isoformat() if parsed else None


def iso_week_number(value: Optional[DateLike]) -> Optional[int]:
    """
    ISO-8601 week number.

    Weeks start on Monday and week 1 is the week holding the year's first
    Thursday: shift to the Thursday of the date's week, then count weeks
    from January 1st of that Thursday's year.
    """
    parsed = parse_date(value)
    if parsed is None:
        return None
    day = parsed.date()
    thursday = day + timedelta(days=3 - day.weekday())
    year_start = date(thursday.year, 1, 1)
    return math.ceil(((thursday - year_start).days + 1) / 7)


def minutes_between(start: Optional[DateLike], end: Optional[DateLike]) -> Optional[float]:
    """Minutes from start to end; None when unparseable or negative."""
    start_at = parse_date(start)
    end_at = parse_date(end)
    if start_at is None or end_at is None:
        return None
    diff = (end_at - start_at).total_seconds() / 60
    if diff < 0:
        return None
    return diff


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
