"""
Posts published by partner bots into a channel.

Bots post either a JSON object (English or Russian keys) or a labelled text
card::

    🏸 Клуб: Волан
    📅 Дата: 15.03.2025
    ⏰ Время: 19:00 - 20:30
    🎯 Тип: Игровая
    📊 Уровень: C-D
    👤 Тренер: Иванов Иван
    📍 Локация: СК Юность
    👥 Мест: 12
    💰 Цена: 700
    🔗 Запись: https://t.me/volan_bot
"""

import json
import logging
import re
from datetime import date
from typing import Any, Dict, Optional, Sequence

from ..models.channel import ChannelConfig
from ..models.training import Location, Training, canonical_type
from ..utils.normalization import (
    as_text,
    expand_year,
    is_valid_day_month,
    is_valid_time,
    normalize_time_token,
    parse_clock,
)
from .field_extractors import extract_date, extract_price, extract_signup_url, extract_spots, lookup_location

logger = logging.getLogger(__name__)


LABEL_PREFIX = r"(?:^|\n)[^\w\n]*"

DATE_LABEL_RE = re.compile(LABEL_PREFIX + r"(?i:дата)\s*:\s*(\d{1,2})\.(\d{1,2})(?:\.(\d{4}|\d{2}))?")
TIME_LABEL_RE = re.compile(LABEL_PREFIX + r"(?i:время)\s*:\s*(\d{1,2}[:.]\d{2})(?:\s*[-–—]\s*(\d{1,2}[:.]\d{2}))?")
ANY_TIME_RANGE_RE = re.compile(r"(\d{1,2}[:.]\d{2})\s*[-–—]\s*(\d{1,2}[:.]\d{2})")
SPOTS_LABEL_RE = re.compile(LABEL_PREFIX + r"(?i:мест[а]?)\s*:\s*(\d+)")
PRICE_LABEL_RE = re.compile(LABEL_PREFIX + r"(?i:цена|стоимость)\s*:\s*(\d+)")


def _label(text: str, *names: str) -> Optional[str]:
    pattern = LABEL_PREFIX + r"(?i:" + "|".join(names) + r")\s*:\s*(.+)"
    m = re.search(pattern, text)
    if not m:
        return None
    return m.group(1).strip() or None


def _iso_date(value: Any, today: Optional[date] = None) -> Optional[str]:
    """ISO date from "2025-03-15", "15.03.2025" or "15.03"."""
    if not value:
        return None
    value = str(value).strip()
    if re.fullmatch(r"\d{4}-\d{2}-\d{2}", value):
        return value
    m = re.fullmatch(r"(\d{1,2})\.(\d{1,2})(?:\.(\d{4}|\d{2}))?", value)
    if not m:
        return None
    day, month = int(m.group(1)), int(m.group(2))
    if not is_valid_day_month(day, month):
        return None
    try:
        return date(expand_year(m.group(3), month, today), month, day).isoformat()
    except ValueError:
        return None


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def _fields_from_json(data: Dict[str, Any], today: Optional[date] = None) -> Dict[str, Any]:
    def pick(*keys: str) -> Any:
        return next((data[k] for k in keys if data.get(k) not in (None, "")), None)

    def text(*keys: str) -> Optional[str]:
        return as_text(pick(*keys))

    return {
        "date": _iso_date(text("date", "дата"), today),
        "time_start": parse_clock(text("time_start", "время_начала")),
        "time_end": parse_clock(text("time_end", "время_окончания")),
        "type": canonical_type(text("type", "тип")),
        "level": text("level", "уровень"),
        "coach": text("coach", "тренер"),
        "location": text("location", "локация", "место"),
        "spots": _as_int(pick("spots", "места")),
        "price": _as_int(pick("price", "цена")),
        "description": text("description", "описание"),
        "signup_url": text("signup_url", "ссылка"),
        "title": text("club", "клуб"),
    }


def _fields_from_text(text: str, today: Optional[date] = None) -> Dict[str, Any]:
    m = DATE_LABEL_RE.search(text)
    if m:
        training_date = _iso_date(".".join(g for g in m.groups() if g), today)
    else:
        training_date = extract_date(text, today=today)

    time_start = time_end = None
    m = TIME_LABEL_RE.search(text) or ANY_TIME_RANGE_RE.search(text)
    if m:
        start_token, end_token = m.groups()
        time_start = normalize_time_token(start_token)
        time_end = normalize_time_token(end_token) if end_token else None

    spots = SPOTS_LABEL_RE.search(text)
    price = PRICE_LABEL_RE.search(text)

    return {
        "date": training_date,
        "time_start": time_start,
        "time_end": time_end,
        "type": canonical_type(_label(text, "тип")),
        "level": _label(text, "уровень"),
        "coach": _label(text, "тренер"),
        "location": _label(text, "локация", "место", "адрес"),
        "spots": int(spots.group(1)) if spots else extract_spots(text),
        "price": int(price.group(1)) if price else extract_price(text),
        "description": text,
        "signup_url": extract_signup_url(text),
        "title": _label(text, "клуб"),
    }


def parse_bot_post(
    text: str,
    message_id: str,
    channel_id: str,
    locations: Sequence[Location] = (),
    channel: Optional[ChannelConfig] = None,
    today: Optional[date] = None,
) -> Optional[Training]:
    """
    Parse one bot post into a Training keyed ``webhook_<message_id>``.

    Returns None when the post has no date or no start time.
    """
    try:
        data = json.loads(text)
    except ValueError:
        data = None

    if isinstance(data, dict):
        fields = _fields_from_json(data, today)
    else:
        fields = _fields_from_text(text or "", today)

    if not is_valid_time(fields["time_start"]):
        fields["time_start"] = None
    if not is_valid_time(fields["time_end"]):
        fields["time_end"] = None

    if not fields["date"] or not fields["time_start"]:
        logger.info("Bot post %s: missing date or start time, skipped", message_id)
        return None

    location = lookup_location(fields.pop("location"), locations)
    coach = fields.pop("coach") or (channel.default_coach if channel else None)
    signup_url = fields.pop("signup_url")
    if channel:
        signup_url = channel.signup_url_for(fields["type"], signup_url)

    return Training(
        channel_id=channel_id,
        coach=coach,
        location=location.name if location else None,
        location_id=(location.location_id or None) if location else None,
        signup_url=signup_url,
        raw_text=text,
        message_id=f"webhook_{message_id}",
        **fields,
    )
