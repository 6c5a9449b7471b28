"""Tests for the booking platform and external API clients."""

from unittest.mock import MagicMock

import pytest
import requests

from badminton_schedule.errors import IntegrationError
from badminton_schedule.models.channel import ExternalApiConfig
from badminton_schedule.services.booking_client import BookingPlatformClient
from badminton_schedule.services.external_api_client import ExternalApiClient


def make_response(status_code=200, body=None, text=""):
    response = MagicMock(status_code=status_code, ok=200 <= status_code < 300, text=text)
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body
    return response


class TestBookingPlatformClient:

    @pytest.fixture
    def session(self):
        return MagicMock()

    @pytest.fixture
    def client(self, session):
        return BookingPlatformClient(partner_token="partner", base_url="https://booking.example.com/api/v1/", session=session)

    def test_requires_partner_token(self, monkeypatch):
        monkeypatch.delenv("BOOKING_PARTNER_TOKEN", raising=False)
        with pytest.raises(ValueError):
            BookingPlatformClient()

    def test_fetch_activities(self, client, session):
        session.get.return_value = make_response(body={"success": True, "data": [{"id": 1}]})

        assert client.fetch_activities("123", "2025-03-01", "2025-03-14", "user") == [{"id": 1}]

        args, kwargs = session.get.call_args
        assert args[0] == "https://booking.example.com/api/v1/activity/123/search"
        assert kwargs["params"] == {"from": "2025-03-01", "till": "2025-03-14"}
        assert kwargs["headers"]["Authorization"] == "Bearer partner, User user"

    def test_fetch_records(self, client, session):
        session.get.return_value = make_response(body={"success": True, "data": [{"id": 7}]})

        assert client.fetch_records("123", "2025-03-01", "2025-03-14", "user") == [{"id": 7}]
        assert session.get.call_args[1]["params"] == {"start_date": "2025-03-01", "end_date": "2025-03-14"}

    def test_company_address(self, client, session):
        session.get.return_value = make_response(body={"success": True, "data": {"address": "ул. Ленина, 1"}})

        assert client.fetch_company_address("123") == "ул. Ленина, 1"
        assert session.get.call_args[1]["headers"]["Authorization"] == "Bearer partner"

    @pytest.mark.parametrize("response", [
        make_response(status_code=500, text="Internal error"),
        make_response(body=ValueError("not json")),
        make_response(body={"success": False, "meta": {"message": "Access denied"}}),
    ])
    def test_failures_raise_integration_error(self, client, session, response):
        session.get.return_value = response
        with pytest.raises(IntegrationError):
            client.fetch_activities("123", "2025-03-01", "2025-03-14")

    def test_network_error(self, client, session):
        session.get.side_effect = requests.Timeout("slow")
        with pytest.raises(IntegrationError):
            client.fetch_records("123", "2025-03-01", "2025-03-14", "user")


class TestExternalApiClient:

    @pytest.fixture
    def config(self):
        return ExternalApiConfig(
            endpoint_url="https://partner.example.com/api/trainings",
            api_key="secret",
            days_ahead=7,
            header_name="X-Partner-Key",
        )

    def test_fetch_items(self, config):
        session = MagicMock()
        session.get.return_value = make_response(body={"trainings": []})

        assert ExternalApiClient(session=session).fetch_items(config) == {"trainings": []}

        args, kwargs = session.get.call_args
        assert args[0] == "https://partner.example.com/api/trainings"
        assert kwargs["params"] == {"date": 7}
        assert kwargs["headers"]["X-Partner-Key"] == "secret"

    def test_http_error(self, config):
        session = MagicMock()
        session.get.return_value = make_response(status_code=401, text="Unauthorized")

        with pytest.raises(IntegrationError):
            ExternalApiClient(session=session).fetch_items(config)
