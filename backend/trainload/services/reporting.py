"""
Training load report - weekly load and ACWR for one user.
"""
from datetime import date
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from trainload.core.config import Settings
from trainload.core.logging import get_logger
from trainload.services.analytics.acwr import TrainingLoadSummary, summarize_training_load
from trainload.services.analytics.training_load import DISTANCE_UNITS
from trainload.services.ingest.store import WorkoutStore

logger = get_logger(__name__)


class TrainingLoadReportService:
    """
    Builds the training-load dashboard payload from stored workouts.

    Usage:
        report = await TrainingLoadReportService(db, settings).build(user_id)
        return report.to_dict()
    """

    def __init__(self, db: AsyncSession, config: Settings):
        self.db = db
        self.config = config
        self.workouts = WorkoutStore(db)

    async def build(
        self,
        user_id: str,
        today: Optional[date] = None,
        unit: Optional[str] = None,
    ) -> TrainingLoadSummary:
        """
        Summarize the stored workouts of a user.

        Args:
            user_id: Local user id
            today: Reference day (defaults to the current UTC day)
            unit: "km" or "mi" (defaults to DEFAULT_DISTANCE_UNIT)

        Returns:
            TrainingLoadSummary

        Raises:
            ValueError: Unsupported distance unit
        """
        unit = unit or self.config.DEFAULT_DISTANCE_UNIT
        if unit not in DISTANCE_UNITS:
            raise ValueError(f"Unsupported distance unit: {unit}")

        rows = await self.workouts.list_for_user(user_id, limit=self.config.WORKOUT_ROW_CAP)
        if len(rows) >= self.config.WORKOUT_ROW_CAP:
            logger.warning(
                "Workout row cap reached, older weeks may be incomplete",
                user_id=user_id,
                cap=self.config.WORKOUT_ROW_CAP,
            )

        summary = summarize_training_load(
            [row.to_dict() for row in rows],
            today=today,
            unit=unit,
        )
        logger.debug(
            "Built training load report",
            user_id=user_id,
            workouts=len(rows),
            ratio=summary.summary.ratio,
        )
        return summary
