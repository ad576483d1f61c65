"""
Mobile App Server Notifier

Forwards confirmed accidents to the cooperating Mobile App Server.

The request is validated before sending and bounded by a network timeout.
Failures (timeout, connection error, non-2xx) are returned as
ExternalNotifyError and logged by the caller; they never undo a decision
that has already been applied and are not retried.
"""

import asyncio
import os
from datetime import datetime
from typing import Optional

import aiohttp

from central_unit.models.result import Result, Success, ValidationError, ExternalNotifyError


RECEIVE_ACCIDENT_PATH = "/central-unit/receive-accident-from-central-unit"


def parse_iso8601(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 datetime string, None if invalid"""
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def validate_notification(accident_id, occurred_at, lat, lng) -> Optional[ValidationError]:
    """
    Validate an outbound accident notification

    Returns:
        ValidationError describing the first problem, or None if valid
    """
    if not accident_id or not isinstance(accident_id, str):
        return ValidationError("accidentId is required", field="accidentId")
    if parse_iso8601(occurred_at) is None:
        return ValidationError("occurredAt must be a valid ISO 8601 datetime string", field="occurredAt")
    if isinstance(lat, bool) or not isinstance(lat, (int, float)) or not -90 <= lat <= 90:
        return ValidationError("location.lat must be between -90 and 90", field="location.lat")
    if isinstance(lng, bool) or not isinstance(lng, (int, float)) or not -180 <= lng <= 180:
        return ValidationError("location.lng must be between -180 and 180", field="location.lng")
    return None


class MobileAppNotifier:
    """
    HTTP client for the Mobile App Server

    Usage:
        notifier = MobileAppNotifier("http://mobile-server:4000", timeout=10)
        result = await notifier.notify_accident(
            accident_id="incident_N1_...",
            occurred_at="2026-01-10T10:30:00+00:00",
            lat=30.0444, lng=31.2357
        )
        if not result.ok:
            print(result.message)
    """

    def __init__(self, server_url: Optional[str] = None, timeout: float = 10.0):
        """
        Args:
            server_url: Base URL (defaults to MOBILE_APP_SERVER_URL env var)
            timeout: Total request timeout in seconds
        """
        self.server_url = (server_url or os.getenv("MOBILE_APP_SERVER_URL", "")).rstrip("/")
        self.timeout = timeout

        self._session: Optional[aiohttp.ClientSession] = None

        # Statistics
        self.total_sent = 0
        self.total_failed = 0

    @property
    def is_configured(self) -> bool:
        return bool(self.server_url)

    async def initialize(self):
        """Initialize the HTTP session"""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)

    async def close(self):
        """Close the HTTP session"""
        if self._session and not self._session.closed:
            await self._session.close()

    async def notify_accident(
        self,
        accident_id: str,
        occurred_at: str,
        lat: float,
        lng: float
    ) -> Result:
        """
        Send one accident to the Mobile App Server

        Returns:
            Success(response body) | ValidationError | ExternalNotifyError
        """
        invalid = validate_notification(accident_id, occurred_at, lat, lng)
        if invalid:
            print(f"[MOBILE] [WARN] Notification for {accident_id} rejected: {invalid.message}")
            return invalid

        if not self.is_configured:
            return ExternalNotifyError("Mobile App Server URL not configured")

        await self.initialize()

        body = {
            "accidentId": accident_id,
            "occurredAt": occurred_at,
            "location": {"lat": lat, "lng": lng}
        }
        url = f"{self.server_url}{RECEIVE_ACCIDENT_PATH}"

        try:
            async with self._session.post(url, json=body) as response:
                if 200 <= response.status < 300:
                    self.total_sent += 1
                    try:
                        data = await response.json(content_type=None)
                    except ValueError:
                        data = None
                    print(f"[MOBILE] Accident {accident_id} delivered ({response.status})")
                    return Success(data)

                text = await response.text()
                self.total_failed += 1
                return ExternalNotifyError(
                    f"Mobile App Server answered {response.status}: {text[:200]}",
                    status_code=response.status
                )

        except asyncio.TimeoutError:
            self.total_failed += 1
            return ExternalNotifyError(f"Mobile App Server timed out after {self.timeout}s")

        except aiohttp.ClientError as e:
            self.total_failed += 1
            return ExternalNotifyError(f"Failed to notify Mobile App Server: {e}")

    def get_statistics(self) -> dict:
        return {
            'configured': self.is_configured,
            'serverUrl': self.server_url or None,
            'totalSent': self.total_sent,
            'totalFailed': self.total_failed
        }
