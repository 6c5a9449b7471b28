"""Tests for schedule image analysis and mapping."""

from unittest.mock import patch

import pytest

from badminton_schedule.errors import IntegrationError
from badminton_schedule.models import ImageScheduleEntry, ImageScheduleResult
from badminton_schedule.services.image_schedule import ScheduleImageAnalyzer, map_image_schedule


MONDAYS_MARCH_APRIL_2025 = [
    "2025-03-03", "2025-03-10", "2025-03-17", "2025-03-24", "2025-03-31",
    "2025-04-07", "2025-04-14", "2025-04-21", "2025-04-28",
]


@pytest.fixture
def schedule():
    return ImageScheduleResult(
        location="СК Юность",
        trainings=[
            ImageScheduleEntry(type="Игра", level="Б1-Б2", day="понедельник", time_start="19:00", time_end="21:00"),
            ImageScheduleEntry(type="Игра", level="ВСЕ УРОВНИ", day="понедельник", time_start="19:00", time_end="21:00"),
        ],
    )


class TestMapImageSchedule:

    def test_expands_to_current_and_next_month(self, schedule, channel, locations, today):
        trainings = map_image_schedule(schedule, "77", channel.id, locations, channel=channel, today=today)

        first_cohort = [t for t in trainings if t.level == "Б1-Б2"]
        assert [t.date for t in first_cohort] == MONDAYS_MARCH_APRIL_2025

    def test_concurrent_cohorts_stay_separate(self, schedule, channel, locations, today):
        trainings = map_image_schedule(schedule, "77", channel.id, locations, channel=channel, today=today)

        assert len(trainings) == 18
        keys = {t.upsert_key() for t in trainings}
        assert len(keys) == 18
        assert "77_понедельник_19:00_0" in {t.message_id for t in trainings}
        assert "77_понедельник_19:00_1" in {t.message_id for t in trainings}

    def test_fields(self, schedule, channel, locations, today):
        training = map_image_schedule(schedule, "77", channel.id, locations, channel=channel, today=today)[0]

        assert training.type == "игровая"
        assert training.level == "Б1-Б2"
        assert training.time_end == "21:00"
        assert training.location == "СК Юность (ул. Ленина, 1)"
        assert training.location_id == "loc-1"
        assert training.coach == "Петров"
        assert training.signup_url == "https://t.me/volan_games"
        assert training.title == "игровая"

    def test_entries_without_day_or_time_are_skipped(self, channel, today):
        result = ImageScheduleResult(trainings=[
            ImageScheduleEntry(type="Техника", time_start="19:00"),
            ImageScheduleEntry(type="Техника", day="среда"),
            ImageScheduleEntry(type="Техника", day="среда", time_start="25:00"),
            ImageScheduleEntry(type="Техника", day="funday", time_start="19:00"),
        ])
        assert map_image_schedule(result, "78", channel.id, channel=channel, today=today) == []

    def test_unknown_location_is_kept_raw(self, channel, today):
        result = ImageScheduleResult(
            location="М. Петроградская",
            trainings=[ImageScheduleEntry(day="среда", time_start="9.30")],
        )
        trainings = map_image_schedule(result, "79", channel.id, channel=channel, today=today)
        assert trainings[0].location == "М. Петроградская"
        assert trainings[0].location_id is None
        assert trainings[0].time_start == "09:30"
        assert trainings[0].title == "Тренировка"


class TestScheduleImageAnalyzer:

    def test_requires_api_key(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        with pytest.raises(ValueError):
            ScheduleImageAnalyzer()

    @patch("badminton_schedule.services.image_schedule.ChatGoogleGenerativeAI")
    def test_analyze_returns_structured_result(self, llm_class, schedule):
        structured = llm_class.return_value.with_structured_output.return_value
        structured.invoke.return_value = schedule

        analyzer = ScheduleImageAnalyzer(api_key="test-key")
        result = analyzer.analyze("https://cdn4.telesco.pe/file/schedule.jpg")

        assert result is schedule
        llm_class.return_value.with_structured_output.assert_called_once_with(ImageScheduleResult)
        message = structured.invoke.call_args[0][0][0]
        assert message.content[1]["image_url"]["url"] == "https://cdn4.telesco.pe/file/schedule.jpg"

    @patch("badminton_schedule.services.image_schedule.ChatGoogleGenerativeAI")
    def test_analyze_failure_raises_integration_error(self, llm_class):
        structured = llm_class.return_value.with_structured_output.return_value
        structured.invoke.side_effect = RuntimeError("quota exceeded")

        analyzer = ScheduleImageAnalyzer(api_key="test-key")
        with pytest.raises(IntegrationError):
            analyzer.analyze("https://cdn4.telesco.pe/file/schedule.jpg")
