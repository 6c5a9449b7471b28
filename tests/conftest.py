"""Shared fixtures for the test suite."""

from datetime import date
from unittest.mock import MagicMock

import pytest

from badminton_schedule.models import ChannelConfig, Location
from badminton_schedule.models.channel import BookingConfig, ExternalApiConfig, ParseMode


CHANNEL_ID = "3f1c2a9e-0000-4000-8000-000000000001"


@pytest.fixture
def today():
    """Pinned reference date: 1 March 2025 (a Saturday)."""
    return date(2025, 3, 1)


@pytest.fixture
def locations():
    return [
        Location(id="loc-1", name="СК Юность", address="ул. Ленина, 1", aliases=["Юность"]),
        Location(id="loc-2", name="Олимп", address=None, aliases=["олимпийский"]),
    ]


@pytest.fixture
def channel():
    return ChannelConfig(
        id=CHANNEL_ID,
        name="Волан",
        username="volan_club",
        default_coach="Петров",
        permanent_signup_url_game="https://t.me/volan_games",
        permanent_signup_url_group="https://t.me/volan_groups",
    )


@pytest.fixture
def booking_channel(channel):
    return channel.model_copy(update={
        "parse_mode": ParseMode.BOOKING,
        "booking_config": BookingConfig(company_id="123", user_token="user-token"),
    })


@pytest.fixture
def external_channel(channel):
    return channel.model_copy(update={
        "parse_mode": ParseMode.EXTERNAL_API,
        "external_api_config": ExternalApiConfig(
            endpoint_url="https://partner.example.com/api/trainings",
            api_key="secret",
        ),
    })


@pytest.fixture
def store():
    """TrainingStore double: every upsert succeeds for every row."""
    mock = MagicMock()
    mock.get_locations.return_value = []
    mock.upsert_trainings.side_effect = lambda trainings: len(trainings)
    mock.is_image_processed.return_value = False
    return mock


SINGLE_POST = """Групповая тренировка
15.03
Время: 19:00-20:30
Уровень: C-D
Тренер: Иванов
10 мест
500 руб"""


WEEKLY_POST = """Расписание на неделю
Стоимость групповых тренировок - 600 руб
Стоимость игровых тренировок - 700 руб

🔹Понедельник (10.03)
СК Юность 19:00 - 20:30
Групповая, уровень C-D
Тренер Иванов

Олимп 20:30 - 22:00
Игровая

🔹Среда (12.03)
СК Юность 18:00 - 19:30
Техника"""


@pytest.fixture
def single_post():
    return SINGLE_POST


@pytest.fixture
def weekly_post():
    return WEEKLY_POST
