"""
Webhook receiver - verify, parse and ingest Terra webhook deliveries.

The caller hands over the raw body and headers; HTTP status mapping is
left to the caller (see WebhookResult.status).
"""
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from trainload.core.config import Settings
from trainload.core.logging import IngestionTracker, get_logger
from trainload.models.device import UserDevice
from trainload.services.ingest.pipeline import ingest_payloads
from trainload.services.ingest.signature import SIGNATURE_HEADER, get_header, verify_signature
from trainload.services.ingest.store import DeviceStore, IngestionLogStore

logger = get_logger(__name__)

LOG_SOURCE = "webhook"


class WebhookStatus:
    """Outcomes of a webhook delivery."""
    MISCONFIGURED = "misconfigured"
    INVALID_SIGNATURE = "invalid_signature"
    INVALID_JSON = "invalid_json"
    IGNORED = "ignored"
    PROCESSED = "processed"
    ERROR = "error"


@dataclass
class WebhookResult:
    status: str
    upserted: int = 0
    message: Optional[str] = None

    @property
    def accepted(self) -> bool:
        """Whether the delivery passed authentication and parsing."""
        return self.status in (WebhookStatus.IGNORED, WebhookStatus.PROCESSED, WebhookStatus.ERROR)


# ========================================
# Event extraction helpers
# ========================================

def _clean_string(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def _section(event: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = event.get(key)
    return value if isinstance(value, Mapping) else {}


def extract_terra_user_id(event: Mapping[str, Any]) -> Optional[str]:
    candidates = (
        _section(event, "user").get("user_id"),
        event.get("terra_user_id"),
        event.get("user_id"),
        _section(event, "payload").get("terra_user_id"),
    )
    for candidate in candidates:
        cleaned = _clean_string(candidate)
        if cleaned:
            return cleaned
    return None


def extract_user_reference(event: Mapping[str, Any]) -> Optional[str]:
    user = _section(event, "user")
    payload = _section(event, "payload")
    candidates = (
        user.get("reference_id"),
        user.get("user_reference"),
        payload.get("reference_id"),
        payload.get("user_reference"),
    )
    for candidate in candidates:
        cleaned = _clean_string(candidate)
        if cleaned:
            return cleaned
    return None


def extract_workouts(event: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """Workout payloads from the first non-empty bucket of the event."""
    payload = _section(event, "payload")
    buckets = (
        event.get("data"),
        event.get("workout"),
        event.get("session"),
        payload.get("workout"),
        payload.get("session"),
        payload.get("data"),
        payload.get("workouts"),
    )
    for bucket in buckets:
        if isinstance(bucket, list):
            workouts = [item for item in bucket if isinstance(item, dict)]
        elif isinstance(bucket, dict):
            workouts = [bucket]
        else:
            continue
        if workouts:
            return workouts
    return []


def extract_provider(event: Mapping[str, Any], workouts: List[Dict[str, Any]]) -> Optional[str]:
    payload = _section(event, "payload")
    for candidate in (event.get("provider"), payload.get("provider"), payload.get("source")):
        cleaned = _clean_string(candidate)
        if cleaned:
            return cleaned.lower()

    for workout in workouts:
        metadata = workout.get("metadata") if isinstance(workout.get("metadata"), dict) else {}
        cleaned = _clean_string(workout.get("source")) or _clean_string(metadata.get("provider"))
        if cleaned:
            return cleaned.lower()
    return None


# ========================================
# Processor
# ========================================

class WebhookProcessor:
    """
    Handles one Terra webhook delivery end to end.

    Usage:
        processor = WebhookProcessor(db, settings)
        result = await processor.process(request.headers, await request.body())
    """

    def __init__(self, db: AsyncSession, config: Settings, secret: Optional[str] = None):
        self.db = db
        self.config = config
        self.secret = secret if secret is not None else config.TERRA_WEBHOOK_SECRET
        self.devices = DeviceStore(db)
        self.logs = IngestionLogStore(db)

    async def process(
        self,
        headers: Mapping[str, Any],
        raw_body: Union[bytes, str],
    ) -> WebhookResult:
        """
        Verify and ingest a webhook delivery.

        Args:
            headers: Request headers
            raw_body: Exact raw request body

        Returns:
            WebhookResult
        """
        secret = self.secret
        if not secret:
            logger.error("Terra webhook secret is not configured")
            return WebhookResult(WebhookStatus.MISCONFIGURED, message="Server misconfigured")

        verification = verify_signature(headers, raw_body, secret)
        if not verification.valid:
            logger.warning(
                "Terra webhook signature mismatch",
                has_header=get_header(headers, SIGNATURE_HEADER) is not None,
                body_length=len(raw_body),
                computed=verification.computed,
                payload=verification.payload_preview,
            )
            return WebhookResult(WebhookStatus.INVALID_SIGNATURE, message="Invalid signature")

        try:
            event = json.loads(raw_body)
        except (TypeError, ValueError, UnicodeDecodeError) as e:
            logger.error("Failed to parse Terra webhook body", error_message=str(e))
            return WebhookResult(WebhookStatus.INVALID_JSON, message="Invalid JSON")
        if not isinstance(event, dict):
            return WebhookResult(WebhookStatus.INVALID_JSON, message="Webhook body is not an object")

        event_type = _clean_string(event.get("type")) or _clean_string(event.get("event_type")) or "unknown"
        terra_user_id = extract_terra_user_id(event)
        if not terra_user_id:
            logger.warning("Terra webhook missing terra_user_id", event_type=event_type)
            return WebhookResult(WebhookStatus.IGNORED, message="Missing terra user id")

        return await self.process_event(event, terra_user_id, event_type)

    async def process_event(
        self,
        event: Dict[str, Any],
        terra_user_id: str,
        event_type: str,
    ) -> WebhookResult:
        """Resolve the device and ingest the workouts of a verified event."""
        user_reference = extract_user_reference(event)
        workouts = extract_workouts(event)
        provider_hint = extract_provider(event, workouts)

        with IngestionTracker.track(logger, LOG_SOURCE, provider=provider_hint) as run:
            device = await self._resolve_device(terra_user_id, user_reference, provider_hint)
            if device is None:
                logger.warning(
                    "No matching device for terra webhook",
                    terra_user_id=terra_user_id,
                    user_reference=user_reference,
                    provider=provider_hint,
                )
                await self.logs.add(
                    LOG_SOURCE,
                    "ignored",
                    f"No device matched for terra_user_id={terra_user_id} reference={user_reference}",
                    user_id=user_reference,
                )
                return WebhookResult(WebhookStatus.IGNORED, message="No matching device")

            user_id = device.user_id
            provider = provider_hint or device.provider
            run.set_user(user_id, provider)

            if not workouts:
                logger.warning("No workout payloads found in Terra webhook", event_type=event_type)
                await self.logs.add(
                    LOG_SOURCE,
                    "ignored",
                    f"Webhook {event_type} contained no workouts",
                    user_id=user_id,
                )
                return WebhookResult(WebhookStatus.IGNORED, message="No workouts")

            outcome = await ingest_payloads(
                self.db,
                workouts,
                provider=provider,
                terra_user_id=terra_user_id,
                user_id=user_id,
                config=self.config,
                tracker=run,
            )

            if not outcome.success:
                run.set_error("UpsertError", outcome.error or "")
                await self.logs.add(LOG_SOURCE, "error", outcome.error or "Upsert failed", user_id=user_id)
                return WebhookResult(WebhookStatus.ERROR, message=outcome.error)

            message = f"Upserted {outcome.count} workout(s) via webhook"
            await self.logs.add(LOG_SOURCE, "success", message, user_id=user_id)
            return WebhookResult(WebhookStatus.PROCESSED, upserted=outcome.count, message=message)

    async def _resolve_device(
        self,
        terra_user_id: str,
        user_reference: Optional[str],
        provider_hint: Optional[str],
    ) -> Optional[UserDevice]:
        """Look up by terra user id, then by user reference (backfilling the terra id)."""
        device = await self.devices.get_by_terra_user_id(terra_user_id)
        if device is not None or not user_reference:
            return device

        device = await self.devices.get_latest_for_user(user_reference, provider_hint)
        if device is None:
            return None

        if device.terra_user_id != terra_user_id:
            if device.terra_user_id:
                logger.warning(
                    "Device terra_user_id mismatch",
                    stored=device.terra_user_id,
                    incoming=terra_user_id,
                )
            await self.devices.set_terra_user_id(device, terra_user_id)
        return device
