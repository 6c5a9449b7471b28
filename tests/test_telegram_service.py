"""Tests for public channel page scraping."""

from datetime import date, datetime
from unittest.mock import MagicMock

import pytest
import requests

from badminton_schedule.errors import IntegrationError
from badminton_schedule.services.telegram_service import (
    ChannelImage,
    TelegramChannelScraper,
    filter_recent_images,
    parse_channel_images,
    parse_channel_posts,
)


CHANNEL_HTML = """
<html><body>
<div class="tgme_widget_message_wrap">
  <div class="tgme_widget_message" data-post="volan_club/101">
    <div class="tgme_widget_message_user"><img src="https://cdn4.telesco.pe/file/userpic_volan.jpg"></div>
    <a class="tgme_widget_message_photo_wrap" style="width:800px;background-image:url('https://cdn4.telesco.pe/file/schedule.jpg')"></a>
    <div class="tgme_widget_message_text js-message_text">Групповая тренировка<br/>15.03&nbsp;19:00-20:30</div>
    <a class="tgme_widget_message_date"><time datetime="2025-03-10T12:00:00+00:00" class="time">12:00</time></a>
  </div>
</div>
<div class="tgme_widget_message_wrap">
  <div class="tgme_widget_message" data-post="volan_club/102">
    <div class="tgme_widget_message_text js-message_text">Привет!</div>
  </div>
</div>
<div class="tgme_widget_message_wrap">
  <div class="tgme_widget_message" data-post="volan_club/103">
    <img src="https://cdn4.telesco.pe/file/poster.png">
    <img src="/static/emoji.png">
  </div>
</div>
</body></html>
"""


class TestParseChannelPage:

    def test_posts_keep_line_breaks(self):
        posts = parse_channel_posts(CHANNEL_HTML)

        assert len(posts) == 1
        assert posts[0].message_id == "101"
        assert posts[0].text == "Групповая тренировка\n15.03 19:00-20:30"

    def test_images(self):
        images = parse_channel_images(CHANNEL_HTML)

        assert [(i.message_id, i.image_url) for i in images] == [
            ("101", "https://cdn4.telesco.pe/file/schedule.jpg"),
            ("103", "https://cdn4.telesco.pe/file/poster.png"),
        ]
        assert images[0].posted_at.date() == date(2025, 3, 10)
        assert images[1].posted_at is None


class TestFilterRecentImages:

    def test_keeps_current_and_previous_month(self):
        def image(message_id, posted_at):
            return ChannelImage(message_id=message_id, image_url=f"https://cdn/{message_id}.jpg", posted_at=posted_at)

        images = [
            image("1", datetime(2025, 3, 10)),
            image("2", datetime(2025, 2, 5)),
            image("3", datetime(2025, 1, 5)),
            image("4", None),
        ]
        recent = filter_recent_images(images, today=date(2025, 3, 20))
        assert [i.message_id for i in recent] == ["1", "2", "4"]

    def test_january_keeps_december(self):
        images = [ChannelImage(message_id="1", image_url="https://cdn/1.jpg", posted_at=datetime(2024, 12, 28))]
        assert len(filter_recent_images(images, today=date(2025, 1, 3))) == 1


class TestTelegramChannelScraper:

    def test_fetch_posts(self):
        session = MagicMock()
        session.get.return_value = MagicMock(ok=True, text=CHANNEL_HTML)

        posts = TelegramChannelScraper(session=session).fetch_posts("@volan_club")

        assert len(posts) == 1
        assert session.get.call_args[0][0] == "https://t.me/s/volan_club"

    def test_http_error(self):
        session = MagicMock()
        session.get.return_value = MagicMock(ok=False, status_code=502)

        with pytest.raises(IntegrationError):
            TelegramChannelScraper(session=session).fetch_html("volan_club")

    def test_network_error(self):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("boom")

        with pytest.raises(IntegrationError):
            TelegramChannelScraper(session=session).fetch_html("volan_club")
