"""
Ingestion Stores - Database operations for workouts, devices and ingestion logs.
"""
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from trainload.core.logging import get_logger
from trainload.models.device import STATUS_LINKED, UserDevice
from trainload.models.ingestion_log import IngestionLog
from trainload.models.workout import CANONICAL_COLUMNS, Workout
from trainload.services.ingest.normalizer import CanonicalWorkout

logger = get_logger(__name__)

# Identity columns are the conflict target and never change on update
UPSERT_COLUMNS = tuple(
    column for column in CANONICAL_COLUMNS if column not in ("user_id", "terra_workout_id")
)


def _dialect_insert(db: AsyncSession):
    """INSERT construct with ON CONFLICT support for the bound dialect."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"Workout upsert is not supported on {dialect}")


class WorkoutStore:
    """
    Database store for canonical workouts.

    Upserts are keyed by (user_id, terra_workout_id).
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: str, terra_workout_id: str) -> Optional[Workout]:
        result = await self.db.execute(
            select(Workout)
            .where(
                Workout.user_id == user_id,
                Workout.terra_workout_id == terra_workout_id,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def upsert_many(self, workouts: Iterable[CanonicalWorkout]) -> List[Workout]:
        """
        Insert new workouts and overwrite existing ones.

        Duplicates inside one batch collapse onto the last occurrence.

        Args:
            workouts: Normalized workouts

        Returns:
            Stored Workout rows, one per distinct key
        """
        latest: Dict[Tuple[str, str], CanonicalWorkout] = {}
        for workout in workouts:
            latest[(workout.user_id, workout.terra_workout_id)] = workout

        if not latest:
            return []

        insert = _dialect_insert(self.db)
        stmt = insert(Workout).values([
            Workout.column_values(workout.model_dump()) for workout in latest.values()
        ])
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "terra_workout_id"],
            set_={
                **{column: stmt.excluded[column] for column in UPSERT_COLUMNS},
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self.db.execute(stmt)
        await self.db.commit()

        stored: List[Workout] = []
        for user_id, terra_workout_id in latest:
            row = await self.get(user_id, terra_workout_id)
            if row is not None:
                stored.append(row)

        logger.debug("Upserted workouts", total=len(stored))
        return stored

    async def list_for_user(self, user_id: str, limit: int = 1000) -> List[Workout]:
        """Newest-first workouts of one user, capped at `limit` rows."""
        result = await self.db.execute(
            select(Workout)
            .where(Workout.user_id == user_id)
            .order_by(Workout.workout_date.desc(), Workout.started_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())


class DeviceStore:
    """Database store for linked wearables."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_terra_user_id(self, terra_user_id: str) -> Optional[UserDevice]:
        result = await self.db.execute(
            select(UserDevice)
            .where(UserDevice.terra_user_id == terra_user_id)
            .order_by(UserDevice.connected_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_latest_for_user(
        self,
        user_id: str,
        provider: Optional[str] = None,
    ) -> Optional[UserDevice]:
        """Most recently connected device of a user, optionally for one provider."""
        query = select(UserDevice).where(UserDevice.user_id == user_id)
        if provider:
            query = query.where(UserDevice.provider == provider)
        result = await self.db.execute(
            query.order_by(UserDevice.connected_at.desc()).limit(1)
        )
        return result.scalar_one_or_none()

    async def list_linked(self) -> List[UserDevice]:
        result = await self.db.execute(
            select(UserDevice)
            .where(UserDevice.status == STATUS_LINKED)
            .order_by(UserDevice.connected_at)
        )
        return list(result.scalars().all())

    async def upsert_link(
        self,
        user_id: str,
        terra_user_id: str,
        provider: str,
        reset_sync: bool = False,
    ) -> UserDevice:
        """
        Create or refresh the (user_id, provider) device as linked.

        Args:
            user_id: Local user id
            terra_user_id: Terra user id
            provider: Lower-cased provider name
            reset_sync: Clear last_synced_at (fresh connection)
        """
        device = await self.get_latest_for_user(user_id, provider)
        if device is None:
            device = UserDevice(user_id=user_id, provider=provider)
            self.db.add(device)

        device.terra_user_id = terra_user_id
        device.status = STATUS_LINKED
        if reset_sync:
            device.last_synced_at = None

        await self.db.commit()
        await self.db.refresh(device)
        return device

    async def set_terra_user_id(self, device: UserDevice, terra_user_id: str) -> None:
        device.terra_user_id = terra_user_id
        await self.db.commit()

    async def mark_synced(self, device: UserDevice, synced_at: datetime) -> UserDevice:
        device.last_synced_at = synced_at
        await self.db.commit()
        await self.db.refresh(device)
        return device


class IngestionLogStore:
    """Database store for ingestion logs."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def add(
        self,
        source: str,
        status: str,
        message: str,
        user_id: Optional[str] = None,
    ) -> IngestionLog:
        entry = IngestionLog(user_id=user_id, source=source, status=status, message=message)
        self.db.add(entry)
        await self.db.commit()
        return entry
