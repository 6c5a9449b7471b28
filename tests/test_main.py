"""Tests for the command line entry point."""

import json
import sys
from unittest.mock import MagicMock, patch

import main
from badminton_schedule.models import ChannelConfig

CHANNEL_ID = "3f1c2a9e-0000-4000-8000-000000000001"


class TestParseCommand:

    def test_prints_drafts(self, single_post, tmp_path, monkeypatch, capsys):
        post = tmp_path / "post.txt"
        post.write_text(single_post, encoding="utf-8")
        monkeypatch.setattr(sys, "argv", ["main.py", "parse", str(post), "--message-id", "101"])

        assert main.main() == 0

        drafts = json.loads(capsys.readouterr().out)
        assert drafts[0]["message_id"] == "101"
        assert drafts[0]["time_start"] == "19:00"
        assert "raw_text" not in drafts[0]

    def test_nothing_parsed(self, tmp_path, monkeypatch, capsys):
        post = tmp_path / "post.txt"
        post.write_text("Всем спасибо за игру!", encoding="utf-8")
        monkeypatch.setattr(sys, "argv", ["main.py", "parse", str(post)])

        assert main.main() == 1
        assert json.loads(capsys.readouterr().out) == []


class TestWebhookCommand:

    @patch("main.TrainingStore")
    def test_upserts_payload(self, store_class, tmp_path, monkeypatch, capsys):
        store = store_class.return_value
        store.get_active_channels.return_value = [ChannelConfig(id=CHANNEL_ID, name="Волан")]
        store.upsert_trainings.side_effect = lambda trainings: len(trainings)

        payload = tmp_path / "payload.json"
        payload.write_text(json.dumps({"trainings": [{"id": 1, "date": "2025-03-15", "time_start": "19:00"}]}))
        monkeypatch.setattr(sys, "argv", ["main.py", "webhook", str(payload), "--channel-id", CHANNEL_ID])

        assert main.main() == 0
        stored = store.upsert_trainings.call_args[0][0]
        assert stored[0].message_id == "extapi:3f1c2a9e:1"
        assert "upserted 1/1" in capsys.readouterr().out

    @patch("main.TrainingStore")
    def test_unknown_channel(self, store_class, tmp_path, monkeypatch):
        store_class.return_value.get_active_channels.return_value = []
        payload = tmp_path / "payload.json"
        payload.write_text("[]")
        monkeypatch.setattr(sys, "argv", ["main.py", "webhook", str(payload), "--channel-id", "missing"])

        assert main.main() == 1


class TestIngestCommand:

    @patch("main.run_ingestion")
    @patch("main.TrainingStore")
    def test_exit_code_reports_failed_channels(self, store_class, run_ingestion, monkeypatch, capsys):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.delenv("BOOKING_PARTNER_TOKEN", raising=False)
        monkeypatch.setattr("main.load_dotenv", MagicMock())
        run_ingestion.return_value = {
            "summary": {
                "ran_at": "2025-03-01T10:00:00",
                "channels": {"total": 1, "successful": 0, "failed": 1},
                "totals": {"parsed": 0, "added": 0, "skipped": 0, "from_cache": 0},
            },
            "results": [{"channel_name": "Волан", "success": False, "added": 0, "skipped": 0,
                         "from_cache": 0, "error": "Failed to fetch: 404"}],
        }
        monkeypatch.setattr(sys, "argv", ["main.py", "ingest", "--sequential"])

        assert main.main() == 2
        assert run_ingestion.call_args[1]["parallel"] is False
        assert "Failed to fetch: 404" in capsys.readouterr().out
