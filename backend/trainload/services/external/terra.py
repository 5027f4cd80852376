"""
Terra Service - REST integration with the Terra wearables API.

Activity fetches are best-effort: missing credentials or API failures are
logged and yield an empty list so a sync run never hard-fails on Terra.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx

from trainload.core.config import Settings
from trainload.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://api.tryterra.co/v2"


class TerraConfigurationError(RuntimeError):
    """Terra developer credentials are not configured."""


class TerraAPIError(RuntimeError):
    """Terra answered with an error or an unexpected body."""


class TerraClient:
    """
    Async client for the Terra REST API.

    Usage:
        client = TerraClient.from_settings(settings)
        payloads = await client.fetch_recent_workouts("terra-user", "garmin", days=7)
    """

    def __init__(
        self,
        api_key: Optional[str],
        developer_id: Optional[str],
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the Terra client.

        Args:
            api_key: Terra API key
            developer_id: Terra developer id
            base_url: API root
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.api_key = api_key
        self.developer_id = developer_id
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, config: Settings, **kwargs: Any) -> "TerraClient":
        return cls(
            api_key=config.TERRA_API_KEY,
            developer_id=config.TERRA_DEVELOPER_ID,
            base_url=config.TERRA_BASE_URL,
            timeout=config.TERRA_TIMEOUT_SECONDS,
            **kwargs,
        )

    def is_configured(self) -> bool:
        """Check if the client has credentials."""
        return bool(self.api_key and self.developer_id)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def _headers(self, terra_user_id: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "x-api-key": self.api_key or "",
            "dev-id": self.developer_id or "",
        }
        if terra_user_id is not None:
            headers["x-user-id"] = terra_user_id
        return headers

    # ========================================
    # Activity fetches
    # ========================================

    async def fetch_since(
        self,
        terra_user_id: str,
        provider: str,
        since: datetime,
    ) -> List[Dict[str, Any]]:
        """
        Fetch raw workout payloads from `since` until now.

        Args:
            terra_user_id: Terra user id
            provider: Provider filter
            since: Window start (naive values are taken as UTC)

        Returns:
            List of raw payloads (empty on any failure)
        """
        if not self.is_configured():
            logger.warning("Terra API key/developer id missing, skipping fetch")
            return []

        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        start_seconds = int(since.timestamp())
        end_seconds = max(int(datetime.now(timezone.utc).timestamp()), start_seconds)

        params = {
            "user_id": terra_user_id,
            "start_date": str(start_seconds),
            "end_date": str(end_seconds),
            "to_webhook": "false",
            "providers": provider,
        }

        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self.base_url}/activity",
                    params=params,
                    headers=self._headers(terra_user_id),
                )
        except httpx.HTTPError as e:
            logger.warning(
                "Terra REST request error",
                terra_user_id=terra_user_id,
                error_type=type(e).__name__,
                error_message=str(e),
            )
            return []

        if response.is_error:
            logger.warning(
                "Terra REST request failed",
                terra_user_id=terra_user_id,
                status_code=response.status_code,
                body=response.text[:500],
            )
            return []

        try:
            body = response.json()
        except ValueError:
            logger.warning("Terra REST response is not JSON", terra_user_id=terra_user_id)
            return []

        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, list):
            return []
        return [item for item in data if isinstance(item, dict)]

    async def fetch_recent_workouts(
        self,
        terra_user_id: str,
        provider: str,
        days: int,
    ) -> List[Dict[str, Any]]:
        """Fetch the last `days` days of workouts."""
        since = datetime.now(timezone.utc) - timedelta(days=days)
        return await self.fetch_since(terra_user_id, provider, since)

    # ========================================
    # Connect widget
    # ========================================

    async def create_widget_session(
        self,
        reference_id: str,
        success_redirect_url: str,
        failure_redirect_url: str,
        provider: Optional[str] = None,
    ) -> Dict[str, Optional[str]]:
        """
        Create a Terra Connect widget session.

        Returns:
            Dict with session_id, session_token and widget_url

        Raises:
            TerraConfigurationError: Credentials missing
            TerraAPIError: Request failed or no widget url returned
        """
        if not self.is_configured():
            raise TerraConfigurationError("Terra developer credentials are not configured")

        body: Dict[str, Any] = {
            "reference_id": reference_id,
            "auth_success_redirect_url": success_redirect_url,
            "auth_failure_redirect_url": failure_redirect_url,
            "language": "en",
        }
        if provider:
            body["providers"] = [provider.lower()]

        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.base_url}/auth/generateWidgetSession",
                    json=body,
                    headers=self._headers(),
                )
        except httpx.HTTPError as e:
            raise TerraAPIError(f"Terra Connect session request failed: {e}") from e

        if response.is_error:
            logger.error(
                "Terra widget session creation failed",
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise TerraAPIError("Terra Connect session request failed")

        try:
            payload = response.json()
        except ValueError as e:
            raise TerraAPIError("Terra Connect response is not JSON") from e
        if not isinstance(payload, dict):
            raise TerraAPIError("Terra Connect response is not an object")

        nested = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        session_id = payload.get("session_id") or nested.get("session_id")
        session_token = payload.get("session_token") or nested.get("session_token")
        widget_url = payload.get("widget_url") or payload.get("url") or nested.get("widget_url")

        if not widget_url:
            logger.error("Terra Connect session missing widget url", keys=sorted(payload))
            raise TerraAPIError("Terra Connect response did not include a widget url")

        return {
            "session_id": session_id,
            "session_token": session_token,
            "widget_url": widget_url,
        }
