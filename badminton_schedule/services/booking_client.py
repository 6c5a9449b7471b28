"""Booking platform (YClients-style REST API) client."""

import logging
import os
from typing import Any, Dict, List, Optional

import requests

from ..errors import IntegrationError

logger = logging.getLogger(__name__)

DEFAULT_BOOKING_API_URL = "https://api.yclients.com/api/v1"


class BookingPlatformClient:
    """Read-only client for company activities, records and profile."""

    def __init__(
        self,
        partner_token: Optional[str] = None,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: int = 30,
    ):
        """
        Initialize the booking platform client.

        Args:
            partner_token: Partner API token (defaults to env var)
            base_url: API root (defaults to env var, then the public API)
            session: Optional requests session
            timeout: Per-request timeout in seconds
        """
        self.partner_token = partner_token or os.getenv("BOOKING_PARTNER_TOKEN")
        if not self.partner_token:
            raise ValueError("BOOKING_PARTNER_TOKEN not found")

        self.base_url = (base_url or os.getenv("BOOKING_API_URL") or DEFAULT_BOOKING_API_URL).rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _headers(self, user_token: Optional[str] = None) -> Dict[str, str]:
        auth = f"Bearer {self.partner_token}"
        if user_token:
            auth = f"{auth}, User {user_token}"
        return {
            "Accept": "application/vnd.yclients.v2+json",
            "Content-Type": "application/json",
            "Authorization": auth,
        }

    def _get(self, endpoint: str, params: Optional[Dict[str, Any]] = None, user_token: Optional[str] = None) -> Any:
        url = f"{self.base_url}{endpoint}"
        try:
            response = self.session.get(url, headers=self._headers(user_token), params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise IntegrationError(f"Booking API request failed for {endpoint}: {e}") from e

        if response.status_code != 200:
            logger.error("Booking API error: %s - %s", response.status_code, response.text[:200])
            raise IntegrationError(f"Booking API error ({response.status_code}) for {endpoint}")

        try:
            body = response.json()
        except ValueError as e:
            raise IntegrationError(f"Booking API returned invalid JSON for {endpoint}") from e

        if isinstance(body, dict) and body.get("success") is False:
            message = (body.get("meta") or {}).get("message") or "unknown error"
            raise IntegrationError(f"Booking API rejected {endpoint}: {message}")

        return body.get("data") if isinstance(body, dict) else body

    def fetch_company_address(self, company_id: str, user_token: Optional[str] = None) -> Optional[str]:
        """Company address, used as the location of every session it hosts."""
        data = self._get(f"/company/{company_id}", user_token=user_token)
        return (data or {}).get("address") or None

    def fetch_activities(
        self,
        company_id: str,
        date_from: str,
        date_to: str,
        user_token: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Scheduled group activities in a date range.

        Args:
            company_id: Company id on the platform
            date_from: ISO start date (inclusive)
            date_to: ISO end date (inclusive)
            user_token: Optional user token

        Returns:
            List of activity dicts

        Raises:
            IntegrationError: on network, HTTP or API-level failure
        """
        data = self._get(
            f"/activity/{company_id}/search",
            params={"from": date_from, "till": date_to},
            user_token=user_token,
        )
        activities = data if isinstance(data, list) else []
        logger.info("Booking company %s: %d activities %s..%s", company_id, len(activities), date_from, date_to)
        return activities

    def fetch_records(
        self,
        company_id: str,
        date_from: str,
        date_to: str,
        user_token: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Client booking records in a date range (requires a user token)."""
        data = self._get(
            f"/records/{company_id}",
            params={"start_date": date_from, "end_date": date_to},
            user_token=user_token,
        )
        records = data if isinstance(data, list) else []
        logger.info("Booking company %s: %d records %s..%s", company_id, len(records), date_from, date_to)
        return records
