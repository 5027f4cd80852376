"""
Ingestion pipeline - normalize a batch of raw payloads and upsert them.

Shared by the webhook receiver, the device link flow and the poll job.
"""
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from trainload.core.config import Settings
from trainload.core.logging import IngestionTracker, get_logger
from trainload.services.ingest.normalizer import (
    CanonicalWorkout,
    WorkoutIdentityError,
    map_payload_to_workout,
)
from trainload.services.ingest.store import WorkoutStore

logger = get_logger(__name__)


@dataclass
class IngestOutcome:
    """Result of one batch."""
    success: bool
    count: int
    skipped: int = 0
    error: Optional[str] = None


def normalize_payloads(
    payloads: Iterable[Mapping[str, Any]],
    provider: str,
    terra_user_id: str,
    user_id: str,
    config: Settings,
) -> tuple[List[CanonicalWorkout], int]:
    """
    Normalize every payload, skipping the ones without a usable identity.

    Returns:
        (workouts, skipped count)
    """
    workouts: List[CanonicalWorkout] = []
    skipped = 0
    for payload in payloads:
        try:
            workouts.append(
                map_payload_to_workout(
                    payload,
                    provider=provider,
                    external_user_id=terra_user_id,
                    local_user_id=user_id,
                    missing_start_policy=config.MISSING_START_TIME_POLICY,
                    log_payload=config.LOG_RAW_PAYLOADS,
                    log_max_length=config.LOG_PAYLOAD_MAX_LENGTH,
                )
            )
        except WorkoutIdentityError as e:
            skipped += 1
            logger.warning(
                "Skipping workout payload",
                provider=provider,
                terra_user_id=terra_user_id,
                reason=str(e),
            )
    return workouts, skipped


async def ingest_payloads(
    db: AsyncSession,
    payloads: List[Mapping[str, Any]],
    provider: str,
    terra_user_id: str,
    user_id: str,
    config: Settings,
    tracker: Optional[IngestionTracker] = None,
) -> IngestOutcome:
    """
    Normalize and upsert one batch of payloads for a single device.

    Database failures roll the session back and are reported, not raised.
    """
    workouts, skipped = normalize_payloads(payloads, provider, terra_user_id, user_id, config)
    if tracker:
        tracker.add_received(len(payloads))
        tracker.add_skipped(skipped)

    if not workouts:
        return IngestOutcome(success=True, count=0, skipped=skipped)

    try:
        stored = await WorkoutStore(db).upsert_many(workouts)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(
            "Failed to upsert workouts",
            user_id=user_id,
            provider=provider,
            error_type=type(e).__name__,
            error_message=str(e),
        )
        return IngestOutcome(success=False, count=0, skipped=skipped, error=str(e))

    if tracker:
        tracker.add_upserted(len(stored))
    return IngestOutcome(success=True, count=len(stored), skipped=skipped)
