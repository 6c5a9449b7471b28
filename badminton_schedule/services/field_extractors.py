#!/usr/bin/env python3
"""
Field extractors for free-text training posts.

Each field has an ordered list of candidate rules. A rule takes the text and
returns a value or None; the first rule with a structural match wins, so the
order of each ``*_CANDIDATES`` list is the precedence of that field.
Extractors never raise on malformed text.
"""

from __future__ import annotations

import logging
import re
from datetime import date
from typing import Callable, List, Optional, Sequence, Tuple, TypeVar

from ..models.training import LevelTag, Location, LocationMatch, TrainingType
from ..utils.normalization import (
    LEVEL_LETTERS,
    expand_year,
    is_valid_day_month,
    is_valid_time,
    non_empty_lines,
    normalize_level,
    normalize_time_token,
    strip_date_tokens,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
Rule = Callable[[str], Optional[T]]
TimeRange = Tuple[Optional[str], Optional[str]]

L = LEVEL_LETTERS
DASH = r"[-–—]"
CLOCK = r"(\d{1,2}[:.]\d{2})"
NOT_CYR = r"(?![а-яё])"
LEVEL_KEYWORD = r"(?<![А-Яа-яЁёA-Za-z])(?i:уров(?:ень|ня)|level|ур\.?)"


def first_match(rules: Sequence[Rule], text: str) -> Optional[T]:
    """Evaluate rules in order and return the first non-None result."""
    for rule in rules:
        value = rule(text)
        if value is not None:
            return value
    return None


# ---------------------------------------------------------------------------
# Date
# ---------------------------------------------------------------------------

DATE_RE = re.compile(r"(?<![\d.:,])(\d{1,2})\.(\d{1,2})(?:\.(\d{4}|\d{2}))?(?![\d:]|[.,]\d)")


def extract_date(text: str, today: Optional[date] = None) -> Optional[str]:
    """
    First valid DD.MM or DD.MM.YYYY date as an ISO string.

    Two-digit years expand to 20YY; a missing year is inferred from the
    current month.
    """
    for m in DATE_RE.finditer(text or ""):
        day, month = int(m.group(1)), int(m.group(2))
        if not is_valid_day_month(day, month):
            continue
        year = expand_year(m.group(3), month, today)
        try:
            return date(year, month, day).isoformat()
        except ValueError:
            continue
    return None


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------

LABELLED_RANGE_RE = re.compile(rf"(?i:время)\s*:?\s*{CLOCK}\s*{DASH}\s*{CLOCK}")
CLOCK_RANGE_RE = re.compile(rf"{CLOCK}\s*(?:{DASH}|до)\s*{CLOCK}")
FROM_TO_HOURS_RE = re.compile(r"(?<![а-яёa-z])[сc]\s*(\d{1,2})\s*до\s*(\d{1,2})(?![\d:.])", re.IGNORECASE)
FROM_DASH_HOURS_RE = re.compile(rf"(?<![а-яёa-z])[сc]\s*(\d{{1,2}})\s*{DASH}\s*(\d{{1,2}})(?![\d:.])", re.IGNORECASE)
HOURS_TO_RE = re.compile(r"(?<![\d:.])(\d{1,2})\s*до\s*(\d{1,2})(?![\d:.])", re.IGNORECASE)
BARE_CLOCK_RE = re.compile(r"(?<![\d:.])(\d{1,2})[:.](\d{2})(?![\d:.])")


def _hour(token: str) -> str:
    return f"{int(token):02d}:00"


def _labelled_range(text: str) -> Optional[TimeRange]:
    m = LABELLED_RANGE_RE.search(text)
    return (normalize_time_token(m.group(1)), normalize_time_token(m.group(2))) if m else None


def _clock_range(text: str) -> Optional[TimeRange]:
    m = CLOCK_RANGE_RE.search(text)
    return (normalize_time_token(m.group(1)), normalize_time_token(m.group(2))) if m else None


def _from_to_hours(text: str) -> Optional[TimeRange]:
    m = FROM_TO_HOURS_RE.search(text)
    return (_hour(m.group(1)), _hour(m.group(2))) if m else None


def _from_dash_hours(text: str) -> Optional[TimeRange]:
    m = FROM_DASH_HOURS_RE.search(text)
    return (_hour(m.group(1)), _hour(m.group(2))) if m else None


def _hours_to(text: str) -> Optional[TimeRange]:
    m = HOURS_TO_RE.search(text)
    return (_hour(m.group(1)), _hour(m.group(2))) if m else None


def _bare_clocks(text: str) -> Optional[TimeRange]:
    tokens = [f"{int(h):02d}:{mm}" for h, mm in BARE_CLOCK_RE.findall(text)]
    if not tokens:
        return None
    return (tokens[0], tokens[1] if len(tokens) > 1 else None)


TIME_CANDIDATES: List[Rule] = [
    _labelled_range,
    _clock_range,
    _from_to_hours,
    _from_dash_hours,
    _hours_to,
    _bare_clocks,
]


def extract_time(text: str) -> TimeRange:
    """
    Start and end time of a session.

    Date tokens are stripped first. The first rule that matches decides the
    result; an out-of-range start or end becomes None rather than falling
    through to a weaker rule.
    """
    found = first_match(TIME_CANDIDATES, strip_date_tokens(text or ""))
    if found is None:
        return None, None
    start, end = found
    if not is_valid_time(start):
        logger.debug("Discarding invalid start time %s", start)
        start = None
    if not is_valid_time(end):
        logger.debug("Discarding invalid end time %s", end)
        end = None
    return start, end


# ---------------------------------------------------------------------------
# Level
# ---------------------------------------------------------------------------

NUMERIC = r"([1-5][.,][05])"
NUMERIC_RANGE_RE = re.compile(rf"(?<![\d.,]){NUMERIC}\s*[-–—/]\s*{NUMERIC}(?![\d])")
NUMERIC_LEVEL_RE = re.compile(rf"(?<![\d.,]){NUMERIC}(?![\d]|[.,]\d)")
LETTER_AND_ABOVE_RE = re.compile(
    rf"(?:{LEVEL_KEYWORD}\s*:?\s*)?(?<![A-Za-zА-Яа-яЁё])([{L}{L.lower()}])\s*(?:(?i:и\s*выше)|\+)"
)
KEYWORD_LETTER_RE = re.compile(
    rf"{LEVEL_KEYWORD}\s*:?\s*([{L}{L.lower()}](?:\s*[-–—/]\s*[{L}{L.lower()}])?)(?![A-Za-zА-Яа-яЁё])"
)
ADJOINING_PAIR_RE = re.compile(rf"(?<![A-Za-zА-Яа-яЁё])([{L}]{{2}})(?![A-Za-zА-Яа-яЁё])")
# "ВС" is Sunday, not a Cyrillic B-C
WEEKDAY_ABBREVIATIONS = {"ПН", "ВТ", "СР", "ЧТ", "ПТ", "СБ", "ВС"}
SEPARATED_PAIR_RE = re.compile(rf"(?<![A-Za-zА-Яа-яЁё])([{L}])\s*[-–—/]\s*([{L}])(?![A-Za-zА-Яа-яЁё])")
ALL_LEVELS_RE = re.compile(r"все\s*уровни|all\s*levels", re.IGNORECASE)
ANY_LEVEL_RE = re.compile(r"(?<![а-яё])любо(?:й|го)(?![а-яё])|\bany\b", re.IGNORECASE)
NOVICE_LETTERS_RE = re.compile(
    rf"(?i:новичк[иа]?|начинающ[а-яё]*)\s*([{L}](?:\s*[-–—/]\s*[{L}])?)(?![A-Za-zА-Яа-яЁё])"
)
NAMED_TIERS = [
    (re.compile(r"(?<![а-яё])старт(?![а-яё])", re.IGNORECASE), LevelTag.START),
    (re.compile(r"(?<![а-яё])комфорт(?![а-яё])", re.IGNORECASE), LevelTag.COMFORT),
    (re.compile(r"(?<![а-яё])прайм(?![а-яё])", re.IGNORECASE), LevelTag.PRIME),
    (re.compile(r"(?<![а-яё])смешанн(?:ая|ый)(?![а-яё])", re.IGNORECASE), LevelTag.MIXED),
]
DESCRIPTIVE_LEVELS = [
    (re.compile(r"начин|beginner|новичк", re.IGNORECASE), LevelTag.BEGINNER),
    (re.compile(r"средн|intermediate|middle", re.IGNORECASE), LevelTag.INTERMEDIATE),
    (re.compile(r"продвин|advanced|профи", re.IGNORECASE), LevelTag.ADVANCED),
]


def _numeric_range(text: str) -> Optional[str]:
    m = NUMERIC_RANGE_RE.search(text)
    if not m:
        return None
    return f"{m.group(1).replace(',', '.')}-{m.group(2).replace(',', '.')}"


def _numeric_level(text: str) -> Optional[str]:
    m = NUMERIC_LEVEL_RE.search(text)
    return m.group(1).replace(",", ".") if m else None


def _letter_and_above(text: str) -> Optional[str]:
    m = LETTER_AND_ABOVE_RE.search(text)
    return f"{normalize_level(m.group(1))} и выше" if m else None


def keyword_letter_level(text: str) -> Optional[str]:
    """Letter level or letter range after "уровень"/"level"/"ур."."""
    m = KEYWORD_LETTER_RE.search(text)
    return normalize_level(m.group(1)) if m else None


def _adjoining_pair(text: str) -> Optional[str]:
    for m in ADJOINING_PAIR_RE.finditer(text):
        if m.group(1) in WEEKDAY_ABBREVIATIONS:
            continue
        letters = normalize_level(m.group(1))
        return f"{letters[0]}-{letters[1]}"
    return None


def _separated_pair(text: str) -> Optional[str]:
    m = SEPARATED_PAIR_RE.search(text)
    return normalize_level(f"{m.group(1)}-{m.group(2)}") if m else None


def _all_levels(text: str) -> Optional[str]:
    return LevelTag.ALL_LEVELS.value if ALL_LEVELS_RE.search(text) else None


def _any_level(text: str) -> Optional[str]:
    return LevelTag.ANY.value if ANY_LEVEL_RE.search(text) else None


def _named_tier(text: str) -> Optional[str]:
    for pattern, tag in NAMED_TIERS:
        if pattern.search(text):
            return tag.value
    return None


def _novice_letters(text: str) -> Optional[str]:
    m = NOVICE_LETTERS_RE.search(text)
    return f"{normalize_level(m.group(1))} (новички)" if m else None


def _descriptive_level(text: str) -> Optional[str]:
    for pattern, tag in DESCRIPTIVE_LEVELS:
        if pattern.search(text):
            return tag.value
    return None


LEVEL_CANDIDATES: List[Rule] = [
    _numeric_range,
    _numeric_level,
    _letter_and_above,
    keyword_letter_level,
    _adjoining_pair,
    _separated_pair,
    _all_levels,
    _any_level,
    _named_tier,
    _novice_letters,
    _descriptive_level,
]


def extract_level(text: str) -> Optional[str]:
    """Skill level, numeric before letter before descriptive."""
    return first_match(LEVEL_CANDIDATES, text or "")


# ---------------------------------------------------------------------------
# Type
# ---------------------------------------------------------------------------

# Most specific first: a compound type must not be caught by a substring of itself
TYPE_RULES = [
    (re.compile(r"мини[\s-]?игров", re.IGNORECASE), TrainingType.MINI_GAME),
    (re.compile(r"мини[\s-]?групп", re.IGNORECASE), TrainingType.MINI_GROUP),
    (re.compile(r"детск|дети\s+(?:до|от|\d)", re.IGNORECASE), TrainingType.KIDS),
    (re.compile(rf"группов|(?<![а-яё-])группа{NOT_CYR}", re.IGNORECASE), TrainingType.GROUP),
    (re.compile(rf"игров|(?<![а-яё-])игра{NOT_CYR}", re.IGNORECASE), TrainingType.GAME),
    (re.compile(r"техник", re.IGNORECASE), TrainingType.TECHNIQUE),
    (re.compile(r"турнир|командник|микстер", re.IGNORECASE), TrainingType.TOURNAMENT),
    (re.compile(r"индивидуальн|персональн", re.IGNORECASE), TrainingType.INDIVIDUAL),
]


def extract_type(text: str) -> Optional[str]:
    """Canonical training type, or None when nothing matches."""
    for pattern, training_type in TYPE_RULES:
        if pattern.search(text or ""):
            return training_type.value
    return None


# ---------------------------------------------------------------------------
# Coach
# ---------------------------------------------------------------------------

NAME = r"[А-ЯЁA-Z][а-яёa-z]+"
LABELLED_COACH_RE = re.compile(
    rf"(?i:тренер|coach|ведущ(?:ий|ая))\s*:?[ \t]*({NAME}(?:[ \t]+{NAME})?)"
)
PIPE_ROW_COACH_RE = re.compile(
    rf"\d{{1,2}}\.\d{{1,2}}\s*\|\s*\d{{1,2}}[:.]\d{{2}}\s*{DASH}\s*\d{{1,2}}[:.]\d{{2}}\s*\|\s*({NAME})"
)


def _labelled_coach(text: str) -> Optional[str]:
    m = LABELLED_COACH_RE.search(text)
    return m.group(1) if m else None


def _pipe_row_coach(text: str) -> Optional[str]:
    m = PIPE_ROW_COACH_RE.search(text)
    return m.group(1) if m else None


COACH_CANDIDATES: List[Rule] = [_labelled_coach, _pipe_row_coach]


def extract_coach(text: str) -> Optional[str]:
    return first_match(COACH_CANDIDATES, text or "")


# ---------------------------------------------------------------------------
# Location
# ---------------------------------------------------------------------------

def match_known_location(text: str, locations: Sequence[Location]) -> Optional[LocationMatch]:
    """Directory lookup: canonical names first, then aliases."""
    text_lower = (text or "").lower()
    if not text_lower:
        return None

    for loc in locations:
        if loc.name and loc.name.lower() in text_lower:
            logger.debug("Found location by name: %s", loc.name)
            return LocationMatch(name=loc.display_name(), location_id=loc.id)

    for loc in locations:
        for alias in loc.aliases:
            if alias and alias.lower() in text_lower:
                logger.debug("Found location by alias %r: %s", alias, loc.name)
                return LocationMatch(name=loc.display_name(), location_id=loc.id)

    return None


def extract_location(text: str, locations: Sequence[Location]) -> Optional[LocationMatch]:
    """
    Location of a single-session post.

    Falls back to the second line when it carries a parenthesized address.
    """
    found = match_known_location(text, locations)
    if found:
        return found

    lines = non_empty_lines(text)
    if len(lines) > 1 and re.search(r"\(.+\)", lines[1]):
        return LocationMatch(name=lines[1], location_id="")
    return None


def lookup_location(name: Optional[str], locations: Sequence[Location]) -> Optional[LocationMatch]:
    """Resolve a bare location name, keeping unknown names as they are."""
    if not name or not name.strip():
        return None
    return match_known_location(name, locations) or LocationMatch(name=name.strip(), location_id="")


# ---------------------------------------------------------------------------
# Capacity
# ---------------------------------------------------------------------------

PEOPLE_RE = re.compile(r"(\d+)\s*чел", re.IGNORECASE)
SEATS_AFTER_NUMBER_RE = re.compile(r"(\d+)\s*мест", re.IGNORECASE)
SEATS_BEFORE_NUMBER_RE = re.compile(r"(?:количество\s+)?мест[ао]?\s*:\s*(\d+)", re.IGNORECASE)


def _max_of(pattern: re.Pattern) -> Rule:
    def rule(text: str) -> Optional[int]:
        numbers = [int(n) for n in pattern.findall(text)]
        return max(numbers) if numbers else None
    return rule


SPOTS_CANDIDATES: List[Rule] = [
    _max_of(PEOPLE_RE),
    _max_of(SEATS_AFTER_NUMBER_RE),
    _max_of(SEATS_BEFORE_NUMBER_RE),
]


def extract_spots(text: str) -> Optional[int]:
    """
    Total capacity. Within the first rule that matches, the largest number
    wins: posts often mention remaining seats before the total.
    """
    return first_match(SPOTS_CANDIDATES, text or "")


# ---------------------------------------------------------------------------
# Price
# ---------------------------------------------------------------------------

PRICE_RE = re.compile(r"(\d+)\s*(?:руб|₽|rub|р\.|р(?![а-яё]))", re.IGNORECASE)
PRICE_REVERSED_RE = re.compile(r"(?:₽|руб\.?|rub)\s*(\d+)", re.IGNORECASE)


def extract_price(text: str) -> Optional[int]:
    m = PRICE_RE.search(text or "") or PRICE_REVERSED_RE.search(text or "")
    return int(m.group(1)) if m else None


# ---------------------------------------------------------------------------
# Signup URL
# ---------------------------------------------------------------------------

LABELLED_URL_RE = re.compile(r"(?i:запись)\s*:\s*(https?://\S+)")
TELEGRAM_URL_RE = re.compile(r"(https?://t\.me/\S+)", re.IGNORECASE)


def extract_signup_url(text: str) -> Optional[str]:
    m = LABELLED_URL_RE.search(text or "") or TELEGRAM_URL_RE.search(text or "")
    return m.group(1).rstrip(".,)") if m else None
