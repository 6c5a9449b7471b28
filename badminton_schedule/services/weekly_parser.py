"""
Weekly schedule assembler.

A weekly post looks like::

    Стоимость групповых тренировок - 600 руб
    Стоимость игровых тренировок - 700 руб

    🔹Понедельник (10.03)
    СК Юность 19:00 - 20:30
    Групповая, уровень C-D
    Тренер Иванов

    Олимп 20:30 - 22:00
    Игровая

    🔹Среда (12.03)
    ...

Day headers split the post into day blocks; blank lines split a day block
into session blocks.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence

from ..models.channel import ChannelConfig
from ..models.training import GROUP_TYPES, Location, Training, TrainingType
from ..utils.normalization import is_valid_day_month, is_valid_time, normalize_time_token, resolve_year
from .field_extractors import (
    extract_price,
    extract_type,
    keyword_letter_level,
    lookup_location,
)

logger = logging.getLogger(__name__)


GROUP_PRICE_RE = re.compile(r"стоимость\s+групповых\s+тренировок\s*[:\-–—]?\s*(\d+)", re.IGNORECASE)
GAME_PRICE_RE = re.compile(r"стоимость\s+игровых\s+тренировок\s*[:\-–—]?\s*(\d+)", re.IGNORECASE)

DAY_HEADER_RE = re.compile(
    r"^[^\w\n]*"
    r"(понедельник|вторник|среда|четверг|пятница|суббота|воскресенье)"
    r"\s*\((\d{1,2})\.(\d{1,2})\)",
    re.IGNORECASE | re.MULTILINE,
)
SLOT_TIME_RE = re.compile(r"(\d{1,2}[:.]\d{2})\s*[-–—]\s*(\d{1,2}[:.]\d{2})")
BLANK_LINE_RE = re.compile(r"\n\s*\n")


@dataclass
class DayBlock:
    """Text of one weekday section with its resolved date."""
    day_name: str
    date: Optional[str]
    content: str


@dataclass
class DefaultPrices:
    group: Optional[int] = None
    game: Optional[int] = None


def extract_default_prices(text: str) -> DefaultPrices:
    """Globally stated group/game prices of a weekly post."""
    group = GROUP_PRICE_RE.search(text)
    game = GAME_PRICE_RE.search(text)
    return DefaultPrices(
        group=int(group.group(1)) if group else None,
        game=int(game.group(1)) if game else None,
    )


def split_day_blocks(text: str, today: Optional[date] = None) -> List[DayBlock]:
    """
    Split a weekly post into day blocks, one per "<weekday> (DD.MM)" header.

    A header with an impossible day/month still yields a block with
    ``date=None`` so the caller can log and skip it explicitly.
    """
    headers = list(DAY_HEADER_RE.finditer(text or ""))
    blocks = []
    for idx, m in enumerate(headers):
        end = headers[idx + 1].start() if idx + 1 < len(headers) else len(text)
        day, month = int(m.group(2)), int(m.group(3))

        block_date = None
        if is_valid_day_month(day, month):
            try:
                block_date = date(resolve_year(month, today), month, day).isoformat()
            except ValueError:
                block_date = None

        blocks.append(DayBlock(
            day_name=m.group(1).lower(),
            date=block_date,
            content=text[m.end():end],
        ))
    return blocks


def _coach_from_block(lines: List[str]) -> Optional[str]:
    """Name after "Тренер" up to the first comma or semicolon."""
    for line in lines:
        if "тренер" in line.lower():
            coach = re.sub(r"(?i)^.*?тренер[а-яё]*\s*:?", "", line)
            coach = re.split(r"[,;(]", coach, maxsplit=1)[0].strip(" -–—:")
            return coach or None
    return None


def _price_for(training_type: Optional[str], block: str, defaults: DefaultPrices) -> Optional[int]:
    price = None
    if training_type == TrainingType.GAME.value:
        price = defaults.game
    elif training_type in GROUP_TYPES:
        price = defaults.group

    if price is None:
        price = extract_price(block)
    if price is None:
        price = defaults.group
    return price


def parse_session_block(
    block: str,
    day: DayBlock,
    index: int,
    message_id: str,
    channel_id: str,
    text: str,
    defaults: DefaultPrices,
    locations: Sequence[Location] = (),
    channel: Optional[ChannelConfig] = None,
) -> Optional[Training]:
    """One session block of a day. None when its first line has no time range."""
    lines = [ln.strip() for ln in block.splitlines() if ln.strip()]
    if not lines:
        return None

    first = lines[0]
    time_match = SLOT_TIME_RE.search(first)
    if not time_match:
        logger.debug("Message %s: %s block %d has no time range, skipped", message_id, day.day_name, index)
        return None

    time_start = normalize_time_token(time_match.group(1))
    time_end = normalize_time_token(time_match.group(2))
    if not is_valid_time(time_end):
        time_end = None
    if not is_valid_time(time_start):
        logger.debug("Message %s: %s block %d has invalid start time %s, skipped",
                     message_id, day.day_name, index, time_start)
        return None

    location = lookup_location(first[:time_match.start()].strip(" -–—:,"), locations)

    training_type = extract_type(block)
    if training_type is None and "игров" not in block.lower():
        training_type = TrainingType.GROUP.value

    coach = _coach_from_block(lines)
    if not coach and channel:
        coach = channel.default_coach

    signup_url = channel.signup_url_for(training_type) if channel else None

    return Training(
        channel_id=channel_id,
        date=day.date,
        time_start=time_start,
        time_end=time_end,
        type=training_type,
        level=keyword_letter_level(block),
        coach=coach,
        location=location.name if location else None,
        location_id=(location.location_id or None) if location else None,
        price=_price_for(training_type, block, defaults),
        signup_url=signup_url,
        title=training_type or "Тренировка",
        description=" ".join(lines[1:]) or None,
        raw_text=text,
        message_id=f"{message_id}_{day.day_name}_{index}",
    )


def parse_weekly_schedule(
    text: str,
    message_id: str,
    channel_id: str,
    locations: Sequence[Location] = (),
    channel: Optional[ChannelConfig] = None,
    today: Optional[date] = None,
) -> List[Training]:
    """
    Expand a weekly post into one Training per session block.

    Every recognised day header is attempted; days and blocks that cannot be
    parsed are logged and skipped without affecting the rest.
    """
    logger.info("Message %s: detected WEEKLY SCHEDULE", message_id)

    defaults = extract_default_prices(text)
    trainings: List[Training] = []

    for day in split_day_blocks(text, today=today):
        if day.date is None:
            logger.warning("Message %s: invalid date in %s header, day skipped", message_id, day.day_name)
            continue

        found = 0
        blocks = [b for b in BLANK_LINE_RE.split(day.content) if b.strip()]
        for index, block in enumerate(blocks):
            training = parse_session_block(
                block, day, index, message_id, channel_id, text, defaults, locations, channel,
            )
            if training:
                trainings.append(training)
                found += 1

        logger.info("Message %s: %s %s -> %d sessions", message_id, day.day_name, day.date, found)

    return trainings
