"""Single-session post assembler."""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional, Sequence

from ..models.channel import ChannelConfig
from ..models.training import Location, Training
from ..utils.normalization import contains_training_date, is_valid_time, non_empty_lines
from .field_extractors import (
    extract_coach,
    extract_date,
    extract_level,
    extract_location,
    extract_price,
    extract_signup_url,
    extract_spots,
    extract_time,
    extract_type,
)

logger = logging.getLogger(__name__)


def parse_single_session(
    text: str,
    message_id: str,
    channel_id: str,
    locations: Sequence[Location] = (),
    channel: Optional[ChannelConfig] = None,
    today: Optional[date] = None,
) -> Optional[Training]:
    """
    Build one Training draft from a post describing a single session.

    Returns None when the text has no valid DD.MM date. A draft may still
    come back with time_start=None; callers drop it with
    ``Training.has_required_fields`` before storage.
    """
    if not contains_training_date(text or ""):
        logger.info("Message %s: SKIP - no valid date found", message_id)
        return None

    lines = non_empty_lines(text)

    training_date = extract_date(text, today=today)
    time_start, time_end = extract_time(text)
    if not is_valid_time(time_start):
        time_start = None
    if not is_valid_time(time_end):
        time_end = None

    training_type = extract_type(text)
    location = extract_location(text, locations)

    coach = extract_coach(text)
    if not coach and channel:
        coach = channel.default_coach

    signup_url = extract_signup_url(text)
    if channel:
        signup_url = channel.signup_url_for(training_type, signup_url)

    training = Training(
        channel_id=channel_id,
        date=training_date,
        time_start=time_start,
        time_end=time_end,
        type=training_type,
        level=extract_level(text),
        coach=coach,
        location=location.name if location else None,
        location_id=(location.location_id or None) if location else None,
        price=extract_price(text),
        spots=extract_spots(text),
        signup_url=signup_url,
        title=lines[0] if lines else None,
        description=" ".join(lines[1:3]) or None,
        raw_text=text,
        message_id=message_id,
    )

    logger.info(
        "Message %s: PARSED - date=%s, time=%s-%s, price=%s, level=%s, type=%s, location=%s, spots=%s",
        message_id, training.date, training.time_start, training.time_end, training.price,
        training.level, training.type, training.location, training.spots,
    )
    return training
