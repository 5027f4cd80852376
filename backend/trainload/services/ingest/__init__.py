"""
Ingest module - Getting provider workouts into the canonical table.

- normalizer: Raw Terra payload -> CanonicalWorkout
- signature: HMAC webhook verification
- store: Workout, device and ingestion log persistence
- webhook / device_sync: Push and pull entry points
"""
from trainload.services.ingest.normalizer import (
    CanonicalWorkout,
    WorkoutIdentityError,
    map_payload_to_workout,
)
from trainload.services.ingest.signature import SignatureCheck, verify_signature
from trainload.services.ingest.store import DeviceStore, IngestionLogStore, WorkoutStore
from trainload.services.ingest.webhook import WebhookProcessor, WebhookResult, WebhookStatus
from trainload.services.ingest.device_sync import DeviceSyncService, LinkResult, PollSummary

__all__ = [
    "CanonicalWorkout",
    "WorkoutIdentityError",
    "map_payload_to_workout",
    "SignatureCheck",
    "verify_signature",
    "WorkoutStore",
    "DeviceStore",
    "IngestionLogStore",
    "WebhookProcessor",
    "WebhookResult",
    "WebhookStatus",
    "DeviceSyncService",
    "LinkResult",
    "PollSummary",
]
