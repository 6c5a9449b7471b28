"""Tests for the ingestion workflow."""

from unittest.mock import MagicMock

import pytest

from badminton_schedule.errors import IntegrationError
from badminton_schedule.models import ImageScheduleEntry, ImageScheduleResult
from badminton_schedule.models.channel import ParseMode
from badminton_schedule.services.telegram_service import ChannelImage, ChannelPost
from badminton_schedule.workflows.ingest_workflow import (
    IngestionServices,
    call_with_retries,
    ingest_channel,
    run_ingestion,
)


class TestCallWithRetries:

    def test_retries_until_success(self):
        delays = []
        func = MagicMock(side_effect=[IntegrationError("down"), IntegrationError("down"), "ok"])

        assert call_with_retries(func, "arg", attempts=3, sleep=delays.append) == "ok"
        assert func.call_count == 3
        func.assert_called_with("arg")
        assert 1.0 <= delays[0] < 1.2
        assert 2.0 <= delays[1] < 2.4

    def test_reraises_after_last_attempt(self):
        func = MagicMock(side_effect=IntegrationError("down"))

        with pytest.raises(IntegrationError):
            call_with_retries(func, attempts=2, sleep=lambda _: None)
        assert func.call_count == 2

    def test_other_errors_are_not_retried(self):
        func = MagicMock(side_effect=KeyError("bug"))

        with pytest.raises(KeyError):
            call_with_retries(func, attempts=3, sleep=lambda _: None)
        assert func.call_count == 1


class TestIngestTextChannel:

    def test_posts_are_parsed_and_stored(self, channel, store, single_post, weekly_post, today):
        scraper = MagicMock()
        scraper.fetch_posts.return_value = [
            ChannelPost(message_id="101", text=single_post),
            ChannelPost(message_id="102", text=weekly_post),
            ChannelPost(message_id="103", text="Поздравляем всех с праздником!"),
            ChannelPost(message_id="104", text="Турнир 15.03, подробности позже"),
        ]
        services = IngestionServices(store=store, scraper=scraper)

        result = ingest_channel(channel, services, today=today)

        assert result.success
        assert result.parsed == 3
        assert result.added == 4
        assert result.skipped == 1
        stored = store.upsert_trainings.call_args[0][0]
        assert {t.message_id for t in stored} == {
            "101", "102_понедельник_0", "102_понедельник_1", "102_среда_0",
        }

    def test_missing_username_fails_channel(self, channel, store):
        channel = channel.model_copy(update={"username": None})
        result = ingest_channel(channel, IngestionServices(store=store, scraper=MagicMock()))

        assert not result.success
        assert "username" in result.error
        store.upsert_trainings.assert_not_called()

    def test_fetch_failure_is_reported(self, channel, store):
        scraper = MagicMock()
        scraper.fetch_posts.side_effect = IntegrationError("Failed to fetch: 502")
        services = IngestionServices(store=store, scraper=scraper, retry_attempts=1)

        result = ingest_channel(channel, services)

        assert not result.success
        assert result.error == "Failed to fetch: 502"


class TestIngestImageChannel:

    @pytest.fixture
    def image_channel(self, channel):
        return channel.model_copy(update={"parse_mode": ParseMode.IMAGES})

    @pytest.fixture
    def scraper(self):
        scraper = MagicMock()
        scraper.fetch_images.return_value = [
            ChannelImage(message_id="201", image_url="https://cdn4.telesco.pe/file/a.jpg"),
            ChannelImage(message_id="201", image_url="https://cdn4.telesco.pe/file/b.jpg"),
        ]
        return scraper

    def test_images_are_analyzed_and_marked(self, image_channel, store, scraper, today):
        analyzer = MagicMock()
        analyzer.analyze.return_value = ImageScheduleResult(trainings=[
            ImageScheduleEntry(type="Игра", day="понедельник", time_start="19:00"),
        ])
        services = IngestionServices(store=store, scraper=scraper, analyzer=analyzer)

        result = ingest_channel(image_channel, services, today=today)

        assert result.success
        assert result.parsed == 2
        assert result.added == 18
        ids = {t.message_id for t in store.upsert_trainings.call_args[0][0]}
        assert "201_понедельник_19:00_0" in ids
        assert "201.1_понедельник_19:00_0" in ids
        assert store.mark_image_processed.call_count == 2

    def test_processed_images_come_from_cache(self, image_channel, store, scraper, today):
        store.is_image_processed.return_value = True
        analyzer = MagicMock()
        services = IngestionServices(store=store, scraper=scraper, analyzer=analyzer)

        result = ingest_channel(image_channel, services, today=today)

        assert result.success
        assert result.from_cache == 2
        analyzer.analyze.assert_not_called()

    def test_failed_analysis_skips_image(self, image_channel, store, scraper, today):
        analyzer = MagicMock()
        analyzer.analyze.side_effect = IntegrationError("quota exceeded")
        services = IngestionServices(store=store, scraper=scraper, analyzer=analyzer, retry_attempts=1)

        result = ingest_channel(image_channel, services, today=today)

        assert result.success
        assert result.skipped == 2
        store.mark_image_processed.assert_not_called()

    def test_missing_analyzer_fails_channel(self, image_channel, store, scraper):
        result = ingest_channel(image_channel, IngestionServices(store=store, scraper=scraper))
        assert not result.success
        assert "Image analyzer" in result.error


class TestIngestBookingChannel:

    def test_falls_back_to_records(self, booking_channel, store, today):
        client = MagicMock()
        client.fetch_company_address.side_effect = IntegrationError("forbidden")
        client.fetch_activities.return_value = []
        client.fetch_records.return_value = [{
            "id": 1,
            "datetime": "2025-03-11T10:00:00+03:00",
            "services": [{"id": 2, "title": "Групповая"}],
            "staff": {"id": 9, "name": "Смирнова"},
        }]
        services = IngestionServices(store=store, booking_client=client, retry_attempts=1)

        result = ingest_channel(booking_channel, services, today=today)

        assert result.success
        assert result.added == 1
        client.fetch_activities.assert_called_once_with("123", "2025-03-01", "2025-03-14", "user-token")
        stored = store.upsert_trainings.call_args[0][0]
        assert stored[0].message_id == "source:123:record:2025-03-11T10:00:2:9"
        assert stored[0].location is None

    def test_missing_config_fails_channel(self, channel, store):
        channel = channel.model_copy(update={"parse_mode": ParseMode.BOOKING})
        result = ingest_channel(channel, IngestionServices(store=store, booking_client=MagicMock()))
        assert not result.success


class TestIngestExternalChannel:

    def test_poll_replaces_future_rows(self, external_channel, store, today):
        client = MagicMock()
        client.fetch_items.return_value = {"trainings": [
            {"id": 1, "date": "2025-03-15", "time_start": "19:00"},
        ]}
        services = IngestionServices(store=store, external_client=client)

        result = ingest_channel(external_channel, services, today=today)

        assert result.success
        assert result.added == 1
        store.delete_future_external.assert_called_once_with(external_channel.id, today=today)

    def test_empty_poll_keeps_rows(self, external_channel, store, today):
        client = MagicMock()
        client.fetch_items.return_value = []
        services = IngestionServices(store=store, external_client=client)

        ingest_channel(external_channel, services, today=today)

        store.delete_future_external.assert_not_called()


class TestRunIngestion:

    def test_failed_channel_does_not_abort_others(self, channel, store, single_post, today):
        broken = channel.model_copy(update={"id": "broken", "name": "Аэро", "username": "aero"})

        def fetch_posts(username):
            if username == "aero":
                raise IntegrationError("Failed to fetch: 404")
            return [ChannelPost(message_id="101", text=single_post)]

        scraper = MagicMock()
        scraper.fetch_posts.side_effect = fetch_posts
        services = IngestionServices(store=store, scraper=scraper, retry_attempts=1)

        data = run_ingestion(services, channels=[channel, broken], today=today)

        summary = data["summary"]
        assert summary["channels"] == {"total": 2, "successful": 1, "failed": 1}
        assert summary["totals"]["added"] == 1
        assert [r["channel_name"] for r in data["results"]] == ["Аэро", "Волан"]
        assert data["results"][0]["error"] == "Failed to fetch: 404"

    def test_loads_channels_and_locations_from_store(self, channel, store, today):
        store.get_active_channels.return_value = []

        data = run_ingestion(IngestionServices(store=store), channel_id="abc", today=today)

        store.get_active_channels.assert_called_once_with("abc")
        store.get_locations.assert_called_once_with()
        assert data["summary"]["channels"]["total"] == 0
