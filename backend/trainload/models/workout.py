"""
Workout database model.
One row per (user, external workout); re-delivery updates the row in place.
"""
import uuid
from datetime import date, datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, Date, DateTime, Float, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from trainload.core.database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")

# Columns copied verbatim from a CanonicalWorkout
CANONICAL_COLUMNS = (
    "terra_workout_id",
    "terra_user_id",
    "provider",
    "user_id",
    "started_at",
    "ended_at",
    "workout_date",
    "duration_minutes",
    "week_number",
    "calories",
    "distance_km",
    "distance_meters",
    "steps",
    "elevation_gain_meters",
    "avg_heart_rate",
    "max_heart_rate",
    "user_max_heart_rate",
    "rhr",
    "avg_speed_kmh",
    "max_speed_kmh",
    "avg_pace_min_per_km",
    "best_pace_min_per_km",
    "zone1",
    "zone2",
    "zone3",
    "zone4",
    "zone5",
    "delta_hr",
    "internal_load",
    "external_load",
    "total_session_load",
    "rpe",
    "type_of_workout",
    "modality",
    "source",
    "raw_payload",
    "last_synced_at",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Workout(Base):
    """Canonical workout stored in database."""

    __tablename__ = "workouts"
    __table_args__ = (
        UniqueConstraint("user_id", "terra_workout_id", name="uq_workouts_user_terra_workout"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    # Identity
    terra_workout_id: Mapped[str] = mapped_column(String(255), nullable=False)
    terra_user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # Time
    started_at: Mapped[str] = mapped_column(String(64), nullable=False)
    ended_at: Mapped[str] = mapped_column(String(64), nullable=False)
    workout_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    duration_minutes: Mapped[Optional[float]] = mapped_column(Float)
    week_number: Mapped[Optional[int]] = mapped_column(Integer)

    # Metrics
    calories: Mapped[Optional[float]] = mapped_column(Float)
    distance_km: Mapped[Optional[float]] = mapped_column(Float)
    distance_meters: Mapped[Optional[float]] = mapped_column(Float)
    steps: Mapped[Optional[float]] = mapped_column(Float)
    elevation_gain_meters: Mapped[Optional[float]] = mapped_column(Float)
    avg_heart_rate: Mapped[Optional[float]] = mapped_column(Float)
    max_heart_rate: Mapped[Optional[float]] = mapped_column(Float)
    user_max_heart_rate: Mapped[Optional[float]] = mapped_column(Float)
    rhr: Mapped[Optional[float]] = mapped_column(Float)
    avg_speed_kmh: Mapped[Optional[float]] = mapped_column(Float)
    max_speed_kmh: Mapped[Optional[float]] = mapped_column(Float)
    avg_pace_min_per_km: Mapped[Optional[float]] = mapped_column(Float)
    best_pace_min_per_km: Mapped[Optional[float]] = mapped_column(Float)
    zone1: Mapped[Optional[float]] = mapped_column(Float)
    zone2: Mapped[Optional[float]] = mapped_column(Float)
    zone3: Mapped[Optional[float]] = mapped_column(Float)
    zone4: Mapped[Optional[float]] = mapped_column(Float)
    zone5: Mapped[Optional[float]] = mapped_column(Float)
    delta_hr: Mapped[Optional[float]] = mapped_column(Float)
    internal_load: Mapped[Optional[float]] = mapped_column(Float)
    external_load: Mapped[Optional[float]] = mapped_column(Float)
    total_session_load: Mapped[Optional[float]] = mapped_column(Float)
    rpe: Mapped[Optional[int]] = mapped_column(Integer)

    # Provenance
    type_of_workout: Mapped[Optional[str]] = mapped_column(String(255))
    modality: Mapped[Optional[str]] = mapped_column(String(255))
    source: Mapped[Optional[str]] = mapped_column(String(100))
    raw_payload: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    last_synced_at: Mapped[str] = mapped_column(String(64), nullable=False)

    @staticmethod
    def column_values(values: dict[str, Any]) -> dict[str, Any]:
        """Canonical column values of a CanonicalWorkout dump, ready to bind."""
        row = {column: values[column] for column in CANONICAL_COLUMNS if column in values}
        if isinstance(row.get("workout_date"), str):
            row["workout_date"] = date.fromisoformat(row["workout_date"])
        return row

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain row (snake_case, as consumed by the aggregator)."""
        row = {column: getattr(self, column) for column in CANONICAL_COLUMNS}
        row["id"] = str(self.id)
        row["workout_date"] = self.workout_date.isoformat() if self.workout_date else None
        return row
