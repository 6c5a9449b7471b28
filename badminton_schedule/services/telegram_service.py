"""Public Telegram channel page (t.me/s/<username>) scraping."""

import logging
import re
from datetime import date, datetime
from typing import List, Optional

import requests
from bs4 import BeautifulSoup, Tag
from pydantic import BaseModel

from ..errors import IntegrationError

logger = logging.getLogger(__name__)

CHANNEL_URL = "https://t.me/s/{username}"
HEADERS = {"User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"}
BACKGROUND_URL_RE = re.compile(r"background-image:\s*url\(['\"]?([^'\")]+)['\"]?\)")
MIN_TEXT_LENGTH = 10


class ChannelPost(BaseModel):
    """Text of one channel post."""
    message_id: str
    text: str


class ChannelImage(BaseModel):
    """One image attached to a channel post."""
    message_id: str
    image_url: str
    posted_at: Optional[datetime] = None


def _message_id(block: Tag) -> Optional[str]:
    post = block.get("data-post") or ""
    _, _, message_id = post.rpartition("/")
    return message_id or None


def _posted_at(block: Tag) -> Optional[datetime]:
    time_tag = block.find("time", attrs={"datetime": True})
    if not time_tag:
        return None
    try:
        return datetime.fromisoformat(time_tag["datetime"])
    except ValueError:
        return None


def _is_content_image(url: Optional[str]) -> bool:
    return bool(url) and "userpic" not in url and "cdn" in url


def parse_channel_posts(html: str) -> List[ChannelPost]:
    """
    Text posts of a channel page, in page order.

    Line breaks are kept; posts of 10 characters or fewer are dropped.
    """
    soup = BeautifulSoup(html, "html.parser")
    posts = []
    for block in soup.find_all(attrs={"data-post": True}):
        message_id = _message_id(block)
        text_div = block.find("div", class_="tgme_widget_message_text")
        if not message_id or not text_div:
            continue

        for br in text_div.find_all("br"):
            br.replace_with("\n")
        text = text_div.get_text().replace("\xa0", " ").strip()

        if len(text) > MIN_TEXT_LENGTH:
            posts.append(ChannelPost(message_id=message_id, text=text))

    logger.info("Found %d text posts", len(posts))
    return posts


def parse_channel_images(html: str) -> List[ChannelImage]:
    """Images of a channel page: background-image photo wraps and <img> tags."""
    soup = BeautifulSoup(html, "html.parser")
    images = []
    for block in soup.find_all(attrs={"data-post": True}):
        message_id = _message_id(block)
        if not message_id:
            continue
        posted_at = _posted_at(block)

        urls = []
        for el in block.find_all(style=BACKGROUND_URL_RE):
            m = BACKGROUND_URL_RE.search(el["style"])
            if m:
                urls.append(m.group(1))
        urls.extend(img.get("src") for img in block.find_all("img"))

        for url in urls:
            if _is_content_image(url):
                images.append(ChannelImage(message_id=message_id, image_url=url, posted_at=posted_at))

    logger.info("Found %d images", len(images))
    return images


def filter_recent_images(images: List[ChannelImage], today: Optional[date] = None) -> List[ChannelImage]:
    """Keep images posted in the current or the previous month (undated ones are kept)."""
    today = today or date.today()
    if today.month == 1:
        previous = (today.year - 1, 12)
    else:
        previous = (today.year, today.month - 1)
    allowed = {(today.year, today.month), previous}

    recent = [
        img for img in images
        if img.posted_at is None or (img.posted_at.year, img.posted_at.month) in allowed
    ]
    logger.info("Filtered to %d images from current/last month", len(recent))
    return recent


class TelegramChannelScraper:
    """Fetches public channel pages."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: int = 30):
        self.session = session or requests.Session()
        self.timeout = timeout

    def fetch_html(self, username: str) -> str:
        """
        Fetch the public preview page of a channel.

        Raises:
            IntegrationError: on network error or non-2xx status
        """
        url = CHANNEL_URL.format(username=username.lstrip("@"))
        logger.info("Fetching channel: %s", url)
        try:
            response = self.session.get(url, headers=HEADERS, timeout=self.timeout)
        except requests.RequestException as e:
            raise IntegrationError(f"Failed to fetch {url}: {e}") from e

        if not response.ok:
            raise IntegrationError(f"Failed to fetch {url}: {response.status_code}")
        return response.text

    def fetch_posts(self, username: str) -> List[ChannelPost]:
        return parse_channel_posts(self.fetch_html(username))

    def fetch_images(self, username: str, today: Optional[date] = None) -> List[ChannelImage]:
        return filter_recent_images(parse_channel_images(self.fetch_html(username)), today=today)
