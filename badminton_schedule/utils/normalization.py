"""
Locale-aware normalization helpers for Russian training posts.

Everything here is pure: no I/O, no module state beyond compiled patterns.
Date-aware helpers take an optional ``today`` so callers and tests can pin
the reference date.
"""

import re
from calendar import monthrange
from datetime import date, timedelta
from typing import Any, List, Optional


# Latin skill letters and their Cyrillic look-alikes
LEVEL_LETTERS = "A-FАВСДЕФ"
CYRILLIC_TO_LATIN = str.maketrans({
    "А": "A",
    "В": "B",
    "С": "C",
    "Д": "D",
    "Е": "E",
    "Ф": "F",
})

DAY_NAMES = {
    "понедельник": 0,
    "вторник": 1,
    "среда": 2,
    "четверг": 3,
    "пятница": 4,
    "суббота": 5,
    "воскресенье": 6,
}

NOT_LETTER_BEFORE = r"(?<![A-Za-zА-Яа-яЁё])"
NOT_LETTER_AFTER = r"(?![A-Za-zА-Яа-яЁё])"
# One or two level letters standing alone, e.g. "с", "CD"; never part of a word
LEVEL_TOKEN_RE = re.compile(
    rf"{NOT_LETTER_BEFORE}[{LEVEL_LETTERS}]{{1,2}}{NOT_LETTER_AFTER}", re.IGNORECASE
)
LEVEL_SEPARATOR_RE = re.compile(rf"{NOT_LETTER_BEFORE}([A-F])\s*[-–—/]\s*([A-F]){NOT_LETTER_AFTER}")
TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
CLOCK_PREFIX_RE = re.compile(r"\s*(\d{1,2}[:.]\d{2})(?!\d)")
DATE_TOKEN_RE = re.compile(r"(?<![\d.:,])(\d{1,2})\.(\d{1,2})(?:\.(\d{4}|\d{2}))?(?![\d:]|[.,]\d)")
DATE_RANGE_RE = re.compile(
    r"(?<![\d.:,])(\d{1,2})\.(\d{1,2})\s*[-–—]\s*(\d{1,2})\.(\d{1,2})(?![\d:]|[.,]\d)"
)
# A dotted token that opens or closes a clock-time range, e.g. "19.05-20.35"
TIME_RANGE_AFTER_RE = re.compile(r"^\s*[-–—]\s*\d{1,2}[:.]\d{2}")
TIME_RANGE_BEFORE_RE = re.compile(r"\d{1,2}[:.]\d{2}\s*[-–—]\s*$")


def normalize_level(level: str) -> str:
    """
    Normalize a letter level: standalone level letters are upper-cased with
    Cyrillic look-alikes mapped to Latin, and any dash or slash between two
    letters collapses to a single "-". Other words are left as written, so
    normalizing an already normalized level changes nothing.

    Examples:
        "с - д" -> "C-D", "E/F" -> "E-F", "Д" -> "D", "d и выше" -> "D и выше"
    """
    normalized = LEVEL_TOKEN_RE.sub(lambda m: m.group(0).upper().translate(CYRILLIC_TO_LATIN), level)
    normalized = LEVEL_SEPARATOR_RE.sub(r"\1-\2", normalized)
    return normalized.strip()


def normalize_time_token(token: str) -> Optional[str]:
    """Turn "9.30" / "09:30" into "09:30"; None when the token is not a clock time."""
    m = re.fullmatch(r"\s*(\d{1,2})[:.](\d{2})\s*", token or "")
    if not m:
        return None
    return f"{int(m.group(1)):02d}:{m.group(2)}"


def parse_clock(value: Any) -> Optional[str]:
    """HH:MM from the start of a foreign value such as "19:00:00" or "9.30"."""
    m = CLOCK_PREFIX_RE.match(str(value or ""))
    return normalize_time_token(m.group(1)) if m else None


def as_text(value: Any) -> Optional[str]:
    """
    Text form of a scalar JSON value: numbers become strings, blanks and
    nested objects become None.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value.strip() or None
    return None


def is_valid_time(value: Optional[str]) -> bool:
    """
    Check a HH:MM time of day.

    None is valid (the field is absent); otherwise hours must be 0-23 and
    minutes 0-59.
    """
    if value is None:
        return True
    m = TIME_RE.match(value)
    if not m:
        return False
    hours, minutes = int(m.group(1)), int(m.group(2))
    return 0 <= hours <= 23 and 0 <= minutes <= 59


def is_valid_day_month(day: int, month: int) -> bool:
    return 1 <= day <= 31 and 1 <= month <= 12


def contains_training_date(text: str) -> bool:
    """
    Gate for single-session candidates: True when the text has at least one
    DD.MM token with day 1-31 and month 1-12.
    """
    for m in re.finditer(r"(\d{1,2})\.(\d{1,2})", text or ""):
        if is_valid_day_month(int(m.group(1)), int(m.group(2))):
            return True
    return False


def resolve_year(month: int, today: Optional[date] = None) -> int:
    """
    Infer the year of a DD.MM date.

    A month more than one month before the current one belongs to next year,
    which covers schedules for January posted in late December.
    """
    today = today or date.today()
    if month < today.month - 1:
        return today.year + 1
    return today.year


def expand_year(year_token: Optional[str], month: int, today: Optional[date] = None) -> int:
    if not year_token:
        return resolve_year(month, today)
    if len(year_token) == 2:
        return 2000 + int(year_token)
    return int(year_token)


def _is_time_like(text: str, start: int, end: int) -> bool:
    return bool(TIME_RANGE_AFTER_RE.match(text[end:]) or TIME_RANGE_BEFORE_RE.search(text[:start]))


def strip_date_tokens(text: str) -> str:
    """
    Remove date ranges and date tokens so a later time search cannot read
    "08.12" as 08:12.

    Dotted tokens that are part of a clock-time range ("19.00-20.30") and
    tokens that are not valid day/month pairs are left alone.
    """
    if not text:
        return ""

    def drop_range(m: re.Match) -> str:
        d1, m1, d2, m2 = (int(g) for g in m.groups())
        if is_valid_day_month(d1, m1) and is_valid_day_month(d2, m2):
            return " "
        return m.group(0)

    stripped = DATE_RANGE_RE.sub(drop_range, text)

    parts = []
    last = 0
    for m in DATE_TOKEN_RE.finditer(stripped):
        day, month = int(m.group(1)), int(m.group(2))
        if not is_valid_day_month(day, month):
            continue
        if not m.group(3) and _is_time_like(stripped, m.start(), m.end()):
            continue
        parts.append(stripped[last:m.start()])
        parts.append(" ")
        last = m.end()
    parts.append(stripped[last:])
    return "".join(parts)


def get_next_days(days: int, today: Optional[date] = None) -> List[str]:
    """ISO dates for the next ``days`` days, today included."""
    start = today or date.today()
    return [(start + timedelta(days=i)).isoformat() for i in range(days)]


def get_dates_for_day_in_month(day_name: str, year: int, month: int) -> List[str]:
    """
    Every date in a month that falls on the given Russian weekday.

    Unknown day names yield an empty list.
    """
    weekday = DAY_NAMES.get((day_name or "").strip().lower())
    if weekday is None:
        return []

    _, days_in_month = monthrange(year, month)
    return [
        date(year, month, d).isoformat()
        for d in range(1, days_in_month + 1)
        if date(year, month, d).weekday() == weekday
    ]


def current_and_next_month(today: Optional[date] = None) -> List[tuple]:
    """(year, month) pairs for the current and the following month."""
    today = today or date.today()
    if today.month == 12:
        return [(today.year, 12), (today.year + 1, 1)]
    return [(today.year, today.month), (today.year, today.month + 1)]


def add_minutes_to_time(time_str: str, minutes: int) -> str:
    """Add minutes to a HH:MM time, wrapping past midnight."""
    hours, mins = (int(p) for p in time_str.split(":")[:2])
    total = hours * 60 + mins + minutes
    return f"{(total // 60) % 24:02d}:{total % 60:02d}"


def non_empty_lines(text: str) -> List[str]:
    return [ln.strip() for ln in (text or "").splitlines() if ln.strip()]
