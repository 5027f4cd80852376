"""
Tests for the Terra REST client (httpx MockTransport, no network).
"""
import json
from datetime import datetime, timezone

import httpx
import pytest

from trainload.services.external.terra import (
    TerraAPIError,
    TerraClient,
    TerraConfigurationError,
)

BASE_URL = "https://terra.test/v2"


def _client(handler, api_key="key", developer_id="dev"):
    return TerraClient(
        api_key=api_key,
        developer_id=developer_id,
        base_url=BASE_URL,
        transport=httpx.MockTransport(handler),
    )


class TestFetchSince:

    async def test_request_shape(self):
        seen = {}

        def handler(request):
            seen["request"] = request
            return httpx.Response(200, json={"data": [{"id": "w-1"}, "junk", {"id": "w-2"}]})

        since = datetime(2025, 1, 1, tzinfo=timezone.utc)
        payloads = await _client(handler).fetch_since("terra-1", "garmin", since)

        assert payloads == [{"id": "w-1"}, {"id": "w-2"}]
        request = seen["request"]
        assert request.method == "GET"
        assert request.url.path == "/v2/activity"
        assert request.url.params["user_id"] == "terra-1"
        assert request.url.params["providers"] == "garmin"
        assert request.url.params["to_webhook"] == "false"
        assert request.url.params["start_date"] == str(int(since.timestamp()))
        assert int(request.url.params["end_date"]) >= int(since.timestamp())
        assert request.headers["x-api-key"] == "key"
        assert request.headers["dev-id"] == "dev"
        assert request.headers["x-user-id"] == "terra-1"

    async def test_naive_since_taken_as_utc(self):
        seen = {}

        def handler(request):
            seen["start"] = request.url.params["start_date"]
            return httpx.Response(200, json={"data": []})

        await _client(handler).fetch_since("terra-1", "garmin", datetime(2025, 1, 1))

        assert seen["start"] == str(int(datetime(2025, 1, 1, tzinfo=timezone.utc).timestamp()))

    async def test_missing_credentials_skips_request(self):
        def handler(request):
            raise AssertionError("no request expected")

        assert await _client(handler, api_key=None).fetch_recent_workouts("terra-1", "garmin", 7) == []

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(500, text="upstream down"),
            httpx.Response(200, text="<html>"),
            httpx.Response(200, json={"data": "not a list"}),
            httpx.Response(200, json=["not", "an", "object"]),
        ],
    )
    async def test_failures_yield_empty_list(self, response):
        payloads = await _client(lambda request: response).fetch_recent_workouts("terra-1", "garmin", 7)
        assert payloads == []

    async def test_transport_error_yields_empty_list(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        assert await _client(handler).fetch_recent_workouts("terra-1", "garmin", 7) == []


class TestWidgetSession:

    async def test_creates_session(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            seen["path"] = request.url.path
            return httpx.Response(
                200,
                json={"session_id": "s-1", "url": "https://widget.test/s-1"},
            )

        session = await _client(handler).create_widget_session(
            "user-1", "https://app.test/ok", "https://app.test/fail", provider="GARMIN"
        )

        assert session == {
            "session_id": "s-1",
            "session_token": None,
            "widget_url": "https://widget.test/s-1",
        }
        assert seen["path"] == "/v2/auth/generateWidgetSession"
        assert seen["body"]["reference_id"] == "user-1"
        assert seen["body"]["providers"] == ["garmin"]

    async def test_nested_response(self):
        def handler(request):
            return httpx.Response(
                200,
                json={"data": {"session_id": "s-2", "session_token": "t", "widget_url": "https://w"}},
            )

        session = await _client(handler).create_widget_session("u", "ok", "fail")
        assert session["widget_url"] == "https://w"
        assert session["session_token"] == "t"

    async def test_missing_widget_url(self):
        client = _client(lambda request: httpx.Response(200, json={"session_id": "s-1"}))
        with pytest.raises(TerraAPIError):
            await client.create_widget_session("u", "ok", "fail")

    async def test_error_status(self):
        client = _client(lambda request: httpx.Response(401, json={"message": "unauthorized"}))
        with pytest.raises(TerraAPIError):
            await client.create_widget_session("u", "ok", "fail")

    async def test_not_configured(self):
        client = _client(lambda request: httpx.Response(200), developer_id=None)
        with pytest.raises(TerraConfigurationError):
            await client.create_widget_session("u", "ok", "fail")


def test_from_settings(settings):
    client = TerraClient.from_settings(settings)

    assert client.is_configured()
    assert client.base_url == BASE_URL
