"""Polling client for partner-provided JSON schedule APIs."""

import logging
from typing import Any, Optional

import requests

from ..errors import IntegrationError
from ..models.channel import ExternalApiConfig

logger = logging.getLogger(__name__)


class ExternalApiClient:
    """Fetches the raw schedule payload of one external API."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: int = 30):
        self.session = session or requests.Session()
        self.timeout = timeout

    def fetch_items(self, config: ExternalApiConfig) -> Any:
        """
        GET ``endpoint_url?date=<days_ahead>`` with the configured API-key header.

        Returns the decoded JSON payload (a list, or an object wrapping one).

        Raises:
            IntegrationError: on network error, non-2xx status or invalid JSON
        """
        headers = {
            config.header_name or "x-api-key": config.api_key,
            "Accept": "application/json",
        }
        params = {"date": config.days_ahead or 14}

        logger.info("Fetching %s with header %s", config.endpoint_url, config.header_name)
        try:
            response = self.session.get(config.endpoint_url, headers=headers, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise IntegrationError(f"External API request failed: {e}") from e

        if not response.ok:
            logger.error("External API error: %s - %s", response.status_code, response.text[:200])
            raise IntegrationError(f"External API returned {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise IntegrationError("External API returned invalid JSON") from e
