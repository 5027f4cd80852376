"""
Device Sync Service - link wearables and pull their workouts over REST.

Webhooks are the primary feed; this covers the first sync after a device
connects, manual resyncs and the periodic poll that fills webhook gaps.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from trainload.core.config import Settings
from trainload.core.logging import IngestionTracker, get_logger
from trainload.models.device import UserDevice
from trainload.services.external.terra import TerraClient
from trainload.services.ingest.pipeline import ingest_payloads
from trainload.services.ingest.store import DeviceStore, IngestionLogStore

logger = get_logger(__name__)

ACTION_CONNECT = "connect"
ACTION_RESYNC = "resync"
ACTION_CALLBACK = "callback"
LINK_ACTIONS = (ACTION_CONNECT, ACTION_RESYNC, ACTION_CALLBACK)


@dataclass
class LinkResult:
    """Outcome of linking (or relinking) a device."""
    device: UserDevice
    fetched: int
    upserted: int
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device": self.device.to_dict(),
            "fetched": self.fetched,
            "upserted": self.upserted,
            "success": self.success,
            "error": self.error,
        }


@dataclass
class PollSummary:
    """Totals of one poll run."""
    devices: int = 0
    workouts: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"devices": self.devices, "workouts": self.workouts}


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class DeviceSyncService:
    """
    Links devices and pulls their workouts from Terra.

    Usage:
        service = DeviceSyncService(db, TerraClient.from_settings(settings), settings)
        await service.link_device_and_sync(user_id, terra_user_id, "garmin")
        summary = await service.poll_linked_devices()
    """

    def __init__(self, db: AsyncSession, client: TerraClient, config: Settings):
        self.db = db
        self.client = client
        self.config = config
        self.devices = DeviceStore(db)
        self.logs = IngestionLogStore(db)

    async def link_device_and_sync(
        self,
        user_id: str,
        terra_user_id: str,
        provider: str,
        action: str = ACTION_CONNECT,
    ) -> LinkResult:
        """
        Link a device to a user and pull its recent workouts.

        Args:
            user_id: Local user id
            terra_user_id: Terra user id returned by the connect flow
            provider: Provider name (any case)
            action: connect, resync or callback

        Returns:
            LinkResult with the stored device and sync counts

        Raises:
            ValueError: Unknown action or blank identifiers
        """
        if action not in LINK_ACTIONS:
            raise ValueError(f"Unknown link action: {action}")
        if not user_id or not terra_user_id or not provider or not provider.strip():
            raise ValueError("user_id, terra_user_id and provider are required")

        provider = provider.strip().lower()
        device = await self.devices.upsert_link(
            user_id,
            terra_user_id,
            provider,
            reset_sync=action == ACTION_CONNECT,
        )

        days = self.config.RESYNC_DAYS if action == ACTION_RESYNC else self.config.LINK_SYNC_DAYS
        source = f"link:{action}"

        with IngestionTracker.track(logger, source, user_id=user_id, provider=provider) as run:
            payloads = await self.client.fetch_recent_workouts(terra_user_id, provider, days)
            outcome = await ingest_payloads(
                self.db,
                payloads,
                provider=provider,
                terra_user_id=terra_user_id,
                user_id=user_id,
                config=self.config,
                tracker=run,
            )
            if not outcome.success:
                run.set_error("UpsertError", outcome.error or "")

        if outcome.success and (outcome.count > 0 or action == ACTION_RESYNC):
            device = await self.devices.mark_synced(device, datetime.now(timezone.utc))
        elif not outcome.success:
            # rollback expired the instance
            await self.db.refresh(device)

        status = "success" if outcome.success else "error"
        message = (
            f"{action}: fetched {len(payloads)}, upserted {outcome.count} workout(s) over {days} days"
            if outcome.success
            else f"{action}: {outcome.error}"
        )
        await self.logs.add("link", status, message, user_id=user_id)

        return LinkResult(
            device=device,
            fetched=len(payloads),
            upserted=outcome.count,
            success=outcome.success,
            error=outcome.error,
        )

    async def poll_linked_devices(self) -> PollSummary:
        """
        Pull new workouts for every linked device.

        Each device fetches from its last sync (or the default lookback) to now.
        An empty fetch is logged as ignored and leaves the sync cursor alone.
        A failing device is logged and does not stop the run.
        """
        summary = PollSummary()
        # a failed upsert rolls back and expires every loaded device
        snapshot = [
            (device, device.id, device.user_id, device.provider, device.terra_user_id, device.last_synced_at)
            for device in await self.devices.list_linked()
        ]
        summary.devices = len(snapshot)

        for device, device_id, user_id, provider, terra_user_id, last_synced_at in snapshot:
            if not terra_user_id:
                logger.warning("Linked device has no terra_user_id", device_id=str(device_id))
                continue

            now = datetime.now(timezone.utc)
            if last_synced_at is not None:
                since = _as_utc(last_synced_at)
            else:
                since = now - timedelta(days=self.config.POLL_DEFAULT_LOOKBACK_DAYS)

            with IngestionTracker.track(
                logger, "poll", user_id=user_id, provider=provider
            ) as run:
                payloads = await self.client.fetch_since(terra_user_id, provider, since)
                outcome = None
                if payloads:
                    outcome = await ingest_payloads(
                        self.db,
                        payloads,
                        provider=provider,
                        terra_user_id=terra_user_id,
                        user_id=user_id,
                        config=self.config,
                        tracker=run,
                    )
                    if not outcome.success:
                        run.set_error("UpsertError", outcome.error or "")

            # the cursor only moves once a non-empty batch is stored
            if outcome is None:
                await self.logs.add(
                    "poll",
                    "ignored",
                    f"Device {device_id} returned no workouts since {since.isoformat()}",
                    user_id=user_id,
                )
            elif outcome.success:
                summary.workouts += outcome.count
                await self.devices.mark_synced(device, now)
                await self.logs.add(
                    "poll",
                    "success",
                    f"Upserted {outcome.count} workout(s) since {since.isoformat()}",
                    user_id=user_id,
                )
            else:
                await self.logs.add(
                    "poll",
                    "error",
                    f"Device {device_id} upsert failed: {outcome.error or 'unknown error'}",
                    user_id=user_id,
                )

        logger.info("Poll run finished", **summary.to_dict())
        return summary
