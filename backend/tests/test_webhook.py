"""
Tests for the Terra webhook processor.
"""
import hashlib
import hmac
import json
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from trainload.models import IngestionLog, Workout
from trainload.services.ingest.store import DeviceStore
from trainload.services.ingest.webhook import (
    WebhookProcessor,
    WebhookStatus,
    extract_provider,
    extract_terra_user_id,
    extract_user_reference,
    extract_workouts,
)

SECRET = "test_secret"


def _payload(workout_id, start="2025-01-01T10:00:00Z", **extra):
    payload = {
        "id": workout_id,
        "start_time": start,
        "end_time": "2025-01-01T11:00:00Z",
        "distance": 5000,
        "average_heart_rate": 140,
    }
    payload.update(extra)
    return payload


def _signed(event):
    body = json.dumps(event).encode("utf-8")
    signature = hmac.new(SECRET.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return {"terra-signature": signature, "content-type": "application/json"}, body


def _sign_raw(body: bytes):
    return {"terra-signature": hmac.new(SECRET.encode("utf-8"), body, hashlib.sha256).hexdigest()}


async def _workouts(db):
    return list((await db.execute(select(Workout))).scalars().all())


async def _logs(db):
    return list((await db.execute(select(IngestionLog))).scalars().all())


class TestExtraction:

    def test_terra_user_id_candidates(self):
        assert extract_terra_user_id({"user": {"user_id": "a"}, "user_id": "b"}) == "a"
        assert extract_terra_user_id({"terra_user_id": " b "}) == "b"
        assert extract_terra_user_id({"payload": {"terra_user_id": "c"}}) == "c"
        assert extract_terra_user_id({"user": {"user_id": ""}}) is None

    def test_user_reference(self):
        assert extract_user_reference({"user": {"reference_id": "u1"}}) == "u1"
        assert extract_user_reference({"payload": {"user_reference": "u2"}}) == "u2"
        assert extract_user_reference({}) is None

    def test_workouts_from_first_non_empty_bucket(self):
        assert extract_workouts({"data": [], "workout": {"id": "w"}}) == [{"id": "w"}]
        assert extract_workouts({"payload": {"workouts": [{"id": "a"}, "junk"]}}) == [{"id": "a"}]
        assert extract_workouts({"data": "nope"}) == []

    def test_provider(self):
        assert extract_provider({"provider": "GARMIN"}, []) == "garmin"
        assert extract_provider({"payload": {"source": "Oura"}}, []) == "oura"
        assert extract_provider({}, [{"metadata": {"provider": "WHOOP"}}]) == "whoop"
        assert extract_provider({}, [{}]) is None


class TestRejectedDeliveries:

    async def test_missing_secret(self, db, settings):
        config = settings.model_copy(update={"TERRA_WEBHOOK_SECRET": None})
        headers, body = _signed({"user": {"user_id": "terra-1"}})

        result = await WebhookProcessor(db, config).process(headers, body)

        assert result.status == WebhookStatus.MISCONFIGURED
        assert not result.accepted

    async def test_invalid_signature(self, db, settings):
        body = json.dumps({"user": {"user_id": "terra-1"}}).encode("utf-8")

        result = await WebhookProcessor(db, settings).process({"terra-signature": "bad"}, body)

        assert result.status == WebhookStatus.INVALID_SIGNATURE
        assert await _logs(db) == []

    async def test_invalid_json(self, db, settings):
        body = b"not json"
        result = await WebhookProcessor(db, settings).process(_sign_raw(body), body)
        assert result.status == WebhookStatus.INVALID_JSON

    async def test_json_array_rejected(self, db, settings):
        body = b"[1, 2]"
        result = await WebhookProcessor(db, settings).process(_sign_raw(body), body)
        assert result.status == WebhookStatus.INVALID_JSON

    async def test_missing_terra_user(self, db, settings):
        headers, body = _signed({"type": "activity", "data": [_payload("w-1")]})

        result = await WebhookProcessor(db, settings).process(headers, body)

        assert result.status == WebhookStatus.IGNORED
        assert result.accepted


@pytest.fixture
async def device(db):
    return await DeviceStore(db).upsert_link("user-1", "terra-1", "garmin")


class TestProcessing:

    async def test_workouts_upserted(self, db, settings, device):
        event = {
            "type": "activity",
            "user": {"user_id": "terra-1"},
            "data": [_payload("w-1"), _payload("w-2")],
        }
        headers, body = _signed(event)

        result = await WebhookProcessor(db, settings).process(headers, body)

        assert result.status == WebhookStatus.PROCESSED
        assert result.upserted == 2
        rows = await _workouts(db)
        assert {row.terra_workout_id for row in rows} == {"w-1", "w-2"}
        assert all(row.user_id == "user-1" for row in rows)
        assert all(row.provider == "garmin" for row in rows)
        assert [(log.source, log.status) for log in await _logs(db)] == [("webhook", "success")]

    async def test_redelivery_does_not_duplicate(self, db, settings, device):
        headers, body = _signed({"user": {"user_id": "terra-1"}, "data": [_payload("w-1")]})
        processor = WebhookProcessor(db, settings)

        await processor.process(headers, body)
        await processor.process(headers, body)

        assert len(await _workouts(db)) == 1

    async def test_uppercase_signature_header(self, db, settings, device):
        headers, body = _signed({"user": {"user_id": "terra-1"}, "workout": _payload("w-1")})
        headers = {"Terra-Signature": headers["terra-signature"]}

        result = await WebhookProcessor(db, settings).process(headers, body)

        assert result.status == WebhookStatus.PROCESSED
        assert result.upserted == 1

    async def test_no_workouts(self, db, settings, device):
        headers, body = _signed({"type": "auth", "user": {"user_id": "terra-1"}})

        result = await WebhookProcessor(db, settings).process(headers, body)

        assert result.status == WebhookStatus.IGNORED
        assert [(log.status, log.user_id) for log in await _logs(db)] == [("ignored", "user-1")]

    async def test_unknown_device(self, db, settings):
        headers, body = _signed({"user": {"user_id": "terra-x"}, "data": [_payload("w-1")]})

        result = await WebhookProcessor(db, settings).process(headers, body)

        assert result.status == WebhookStatus.IGNORED
        assert await _workouts(db) == []
        assert [log.status for log in await _logs(db)] == ["ignored"]

    async def test_device_found_by_reference_is_backfilled(self, db, settings):
        await DeviceStore(db).upsert_link("user-1", "terra-old", "garmin")
        event = {
            "user": {"user_id": "terra-new", "reference_id": "user-1"},
            "data": [_payload("w-1", source="GARMIN")],
        }
        headers, body = _signed(event)

        result = await WebhookProcessor(db, settings).process(headers, body)

        assert result.status == WebhookStatus.PROCESSED
        device = await DeviceStore(db).get_by_terra_user_id("terra-new")
        assert device is not None
        assert device.user_id == "user-1"
        rows = await _workouts(db)
        assert rows[0].terra_user_id == "terra-new"

    async def test_explicit_secret_overrides_settings(self, db, settings, device):
        headers, body = _signed({"user": {"user_id": "terra-1"}, "data": [_payload("w-1")]})

        result = await WebhookProcessor(db, settings, secret="rotated").process(headers, body)

        assert result.status == WebhookStatus.INVALID_SIGNATURE

    async def test_database_failure(self, db, settings, device):
        headers, body = _signed({"user": {"user_id": "terra-1"}, "data": [_payload("w-1")]})

        with patch(
            "trainload.services.ingest.pipeline.WorkoutStore.upsert_many",
            new=AsyncMock(side_effect=SQLAlchemyError("boom")),
        ):
            result = await WebhookProcessor(db, settings).process(headers, body)

        assert result.status == WebhookStatus.ERROR
        assert result.message == "boom"
        assert [log.status for log in await _logs(db)] == ["error"]
