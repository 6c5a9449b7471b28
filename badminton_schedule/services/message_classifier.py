"""Decide how an incoming post should be parsed."""

import re
from enum import Enum

from ..utils.normalization import contains_training_date, is_valid_day_month


class MessageKind(str, Enum):
    SINGLE = "single"
    WEEKLY = "weekly"
    UNPARSEABLE = "unparseable"


WEEK_PHRASE_RE = re.compile(
    r"(?<![а-яё])(?:следующ[а-яё]*|текущ[а-яё]*|эт(?:у|ой|а))\s+(?:[а-яё]+\s+){0,3}?недел[юиея]",
    re.IGNORECASE,
)
SCHEDULE_FOR_WEEK_RE = re.compile(r"расписани[а-яё]*[^\n]{0,60}?\bна\b[^\n]{0,30}?недел", re.IGNORECASE)
DATE_RANGE_RE = re.compile(r"(?<![\d.])(\d{1,2})\.(\d{1,2})\s*[-–—]\s*(\d{1,2})\.(\d{1,2})(?![\d])")
PAREN_DATE_RE = re.compile(r"\((\d{1,2})\.(\d{1,2})\)")

WEEKDAY_PATTERNS = {
    "понедельник": re.compile(r"понедельник", re.IGNORECASE),
    "вторник": re.compile(r"вторник", re.IGNORECASE),
    "среда": re.compile(r"(?<![а-яё])сред[аеуы](?![а-яё])", re.IGNORECASE),
    "четверг": re.compile(r"четверг", re.IGNORECASE),
    "пятница": re.compile(r"пятниц", re.IGNORECASE),
    "суббота": re.compile(r"суббот", re.IGNORECASE),
    "воскресенье": re.compile(r"воскресень", re.IGNORECASE),
}


def count_weekdays(text: str) -> int:
    """Number of distinct weekday names mentioned in the text."""
    return sum(1 for pattern in WEEKDAY_PATTERNS.values() if pattern.search(text))


def has_date_range(text: str) -> bool:
    for m in DATE_RANGE_RE.finditer(text):
        d1, m1, d2, m2 = (int(g) for g in m.groups())
        if is_valid_day_month(d1, m1) and is_valid_day_month(d2, m2):
            return True
    return False


def is_weekly_schedule(text: str) -> bool:
    text = text or ""
    return bool(
        WEEK_PHRASE_RE.search(text)
        or SCHEDULE_FOR_WEEK_RE.search(text)
        or has_date_range(text)
        or count_weekdays(text) >= 2
        or len(PAREN_DATE_RE.findall(text)) >= 2
    )


def classify_message(text: str) -> MessageKind:
    """
    Weekly schedule if any structural weekly signal is present, otherwise a
    single-session candidate when the date gate passes, otherwise unparseable.
    """
    if is_weekly_schedule(text):
        return MessageKind.WEEKLY
    if contains_training_date(text or ""):
        return MessageKind.SINGLE
    return MessageKind.UNPARSEABLE
