"""
Normalization adapters converting structured foreign payloads into Training drafts.

Booking platform: "activity" calendar entries map 1:1; "record" rows (client
bookings) are grouped into one session per (date, time, service, staff).

External APIs and webhooks: each item is first reduced to an
ExternalTrainingItem (alias fallbacks live only in that step), then mapped.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..models.channel import ChannelConfig
from ..models.training import ExternalTrainingItem, LevelTag, Training, TrainingType, canonical_type
from ..utils.normalization import LEVEL_LETTERS, add_minutes_to_time, as_text, normalize_level, parse_clock

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Shared title heuristics (substring checks only)
# ---------------------------------------------------------------------------

TITLE_TYPE_RULES: List[Tuple[re.Pattern, TrainingType]] = [
    (re.compile(r"мини[\s-]?игров", re.IGNORECASE), TrainingType.MINI_GAME),
    (re.compile(r"мини[\s-]?групп", re.IGNORECASE), TrainingType.MINI_GROUP),
    (re.compile(r"детск|дети", re.IGNORECASE), TrainingType.KIDS),
    (re.compile(r"игров|игра", re.IGNORECASE), TrainingType.GAME),
    (re.compile(r"групп|новички|начинающ", re.IGNORECASE), TrainingType.GROUP),
    (re.compile(r"техник", re.IGNORECASE), TrainingType.TECHNIQUE),
    (re.compile(r"турнир|командник", re.IGNORECASE), TrainingType.TOURNAMENT),
    (re.compile(r"индивид|персонал", re.IGNORECASE), TrainingType.INDIVIDUAL),
]

TYPE_CODES = {
    "GAME": TrainingType.GAME,
    "GAMING": TrainingType.GAME,
    "GROUP": TrainingType.GROUP,
    "BEGINNER": TrainingType.GROUP,
    "MINI_GROUP": TrainingType.MINI_GROUP,
    "MINI": TrainingType.MINI_GROUP,
    "KIDS": TrainingType.KIDS,
    "CHILDREN": TrainingType.KIDS,
    "TECHNIQUE": TrainingType.TECHNIQUE,
    "TECH": TrainingType.TECHNIQUE,
    "TOURNAMENT": TrainingType.TOURNAMENT,
}

LETTER = rf"[{LEVEL_LETTERS}]"
TITLE_LEVEL_PAIR_RE = re.compile(
    rf"(?<![A-Za-zА-Яа-яЁё])({LETTER})\s*[-–—/]\s*({LETTER})(?![A-Za-zА-Яа-яЁё])", re.IGNORECASE
)
TITLE_LEVEL_SINGLE_RE = re.compile(rf"уровень\s+({LETTER})(?![A-Za-zА-Яа-яЁё])", re.IGNORECASE)


def type_from_title(title: Optional[str]) -> Optional[str]:
    """Training type from a service/session title, None when nothing matches."""
    for pattern, training_type in TITLE_TYPE_RULES:
        if title and pattern.search(title):
            return training_type.value
    return None


def type_from_code(code: Optional[str]) -> Optional[str]:
    """Training type from a machine code such as GAME or MINI_GROUP."""
    if not code:
        return None
    training_type = TYPE_CODES.get(code.strip().upper())
    return training_type.value if training_type else None


def level_from_title(title: Optional[str], code: Optional[str] = None) -> Optional[str]:
    """Level from a title: letter pair, "уровень X", then descriptive keywords."""
    if title:
        m = TITLE_LEVEL_PAIR_RE.search(title)
        if m:
            return normalize_level(f"{m.group(1)}-{m.group(2)}")
        m = TITLE_LEVEL_SINGLE_RE.search(title)
        if m:
            return normalize_level(m.group(1))

        lowered = title.lower()
        if "новички" in lowered or "начинающ" in lowered:
            return LevelTag.BEGINNER.value
        if "продвинут" in lowered:
            return LevelTag.ADVANCED.value
        if "любой уровень" in lowered or "все уровни" in lowered:
            return LevelTag.ANY.value

    if code and code.strip().upper() == "BEGINNER":
        return LevelTag.BEGINNER.value
    return None


def _to_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _split_datetime(value: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Split "2025-03-10 19:00:00" or "2025-03-10T19:00:00+03:00" into ("2025-03-10", "19:00")."""
    if not value or len(value) < 16:
        return None, None
    return value[:10], value[11:16]


def _signup_url(channel: Optional[ChannelConfig], training_type: Optional[str], explicit: Optional[str] = None) -> Optional[str]:
    if channel:
        return channel.signup_url_for(training_type, explicit)
    return explicit


# ---------------------------------------------------------------------------
# Booking platform
# ---------------------------------------------------------------------------

def map_booking_activity(
    activity: Dict[str, Any],
    company_id: str,
    channel: ChannelConfig,
    location: Optional[str] = None,
) -> Optional[Training]:
    """
    Map one booking-platform activity (a scheduled group session).

    Expected input: {"id", "date": "YYYY-MM-DD HH:MM:SS", "length": seconds,
    "capacity", "records_count", "service": {"id", "title", "price_min"},
    "staff": {"id", "name"}}
    """
    training_date, time_start = _split_datetime(activity.get("date") or activity.get("datetime"))
    if not training_date or not time_start:
        logger.debug("Booking activity %s has no date/time, skipped", activity.get("id"))
        return None

    service = activity.get("service") or {}
    staff = activity.get("staff") or {}
    title = service.get("title") or activity.get("title")

    length = _to_int(activity.get("length") or service.get("duration"))
    time_end = add_minutes_to_time(time_start, length // 60) if length else None

    training_type = type_from_title(title) or TrainingType.GROUP.value
    capacity = _to_int(activity.get("capacity"))
    booked = _to_int(activity.get("records_count"))

    return Training(
        channel_id=channel.id,
        date=training_date,
        time_start=time_start,
        time_end=time_end,
        type=training_type,
        level=level_from_title(title),
        coach=staff.get("name") or channel.default_coach,
        location=location,
        price=_to_int(service.get("price_min") or activity.get("price")),
        spots=capacity,
        spots_available=capacity - booked if capacity is not None and booked is not None else None,
        signup_url=_signup_url(channel, training_type),
        title=title or "Тренировка",
        description=title,
        raw_text=json.dumps(activity, ensure_ascii=False, default=str),
        message_id=f"source:{company_id}:activity:{activity.get('id')}",
    )


def group_booking_records(records: Iterable[Dict[str, Any]]) -> Dict[Tuple[str, str, str, str], List[Dict[str, Any]]]:
    """
    Group booking records into sessions keyed by (date, time, service id, staff id).

    Records without a date/time or without a service are dropped.
    """
    groups: Dict[Tuple[str, str, str, str], List[Dict[str, Any]]] = OrderedDict()
    for record in records:
        training_date, time_start = _split_datetime(record.get("datetime") or record.get("date"))
        services = record.get("services") or []
        if not training_date or not time_start or not services:
            continue
        staff = record.get("staff") or {}
        key = (training_date, time_start, str(services[0].get("id")), str(staff.get("id") or record.get("staff_id") or ""))
        groups.setdefault(key, []).append(record)
    return groups


def map_booking_record_group(
    key: Tuple[str, str, str, str],
    records: List[Dict[str, Any]],
    company_id: str,
    channel: ChannelConfig,
    location: Optional[str] = None,
) -> Training:
    """Map one group of booking records (same date, time, service and staff)."""
    training_date, time_start, service_id, staff_id = key
    first = records[0]
    service = (first.get("services") or [{}])[0]
    staff = first.get("staff") or {}
    title = service.get("title")

    length = _to_int(first.get("seance_length") or first.get("length"))
    time_end = add_minutes_to_time(time_start, length // 60) if length else None
    training_type = type_from_title(title) or TrainingType.GROUP.value

    foreign_id = f"{training_date}T{time_start}:{service_id}"
    if staff_id:
        foreign_id = f"{foreign_id}:{staff_id}"

    return Training(
        channel_id=channel.id,
        date=training_date,
        time_start=time_start,
        time_end=time_end,
        type=training_type,
        level=level_from_title(title),
        coach=staff.get("name") or channel.default_coach,
        location=location,
        price=_to_int(service.get("cost") or service.get("price_min")),
        signup_url=_signup_url(channel, training_type),
        title=title or "Тренировка",
        description=f"{title} ({len(records)} записей)" if title else None,
        raw_text=json.dumps(records, ensure_ascii=False, default=str),
        message_id=f"source:{company_id}:record:{foreign_id}",
    )


# ---------------------------------------------------------------------------
# External APIs and webhooks
# ---------------------------------------------------------------------------

def extract_items(payload: Any, keys: Tuple[str, ...] = ("trainings", "data")) -> List[Dict[str, Any]]:
    """Items of a payload given as a bare list or as an object wrapping one."""
    if isinstance(payload, list):
        items = payload
    elif isinstance(payload, dict):
        items = next((payload[k] for k in keys if isinstance(payload.get(k), list)), [])
    else:
        items = []
    return [item for item in items if isinstance(item, dict)]


def _first(item: Dict[str, Any], *names: str) -> Any:
    for name in names:
        value = item.get(name)
        if value is not None and value != "":
            return value
    return None


def _first_text(item: Dict[str, Any], *names: str) -> Optional[str]:
    return as_text(_first(item, *names))


def normalize_external_item(item: Dict[str, Any]) -> ExternalTrainingItem:
    """
    Collapse field-name aliases of a foreign item into one canonical record.

    Scalar values are coerced to text ("level": 2.5 becomes "2.5"); nested
    objects in text fields are dropped.
    """
    return ExternalTrainingItem(
        id=_first_text(item, "id", "session_id", "external_id"),
        date=_first_text(item, "date", "training_date"),
        time_start=_first_text(item, "time_start", "timeStart", "start_time"),
        time_end=_first_text(item, "time_end", "timeEnd", "end_time"),
        type=_first_text(item, "type", "training_type"),
        type_code=_first_text(item, "training_type_code", "type_code"),
        level=_first_text(item, "level"),
        coach=_first_text(item, "coach", "trainer"),
        location=_first_text(item, "location", "address"),
        location_id=_first_text(item, "location_id"),
        price=_to_int(_first(item, "price")),
        spots=_to_int(_first(item, "spots", "capacity")),
        spots_available=_to_int(_first(item, "spots_available", "available_spots")),
        signup_url=_first_text(item, "signup_url", "booking_url"),
        title=_first_text(item, "title", "name"),
        description=_first_text(item, "description"),
        raw=item,
    )


def external_message_id(
    ext: ExternalTrainingItem,
    channel_id: str,
    mode: str = "poll",
    batch_token: Optional[str] = None,
) -> str:
    """
    Idempotency key of an external item.

    Webhook keys are stable across deliveries (foreign id, else date+time+title,
    else date+time). Polling keys without a foreign id carry the per-item batch
    token, after the title when there is one, because the whole future range
    is replaced on every sync and two id-less cohorts may share a title.
    """
    prefix = f"extapi:{channel_id[:8]}"
    time_start = ext.time_start or ""

    if mode == "webhook":
        if ext.id:
            return f"{prefix}:{ext.id}"
        if ext.title:
            return f"{prefix}:{ext.date}_{time_start}_{ext.title}"
        return f"{prefix}:{ext.date}_{time_start}"

    suffix = ext.id or "_".join(p for p in (ext.title, batch_token or uuid.uuid4().hex[:8]) if p)
    return f"{prefix}:{ext.date}_{time_start}_{suffix}"


def map_external_item(
    item: Dict[str, Any],
    channel: ChannelConfig,
    mode: str = "poll",
    batch_token: Optional[str] = None,
) -> Optional[Training]:
    """
    Map one external API/webhook item to a Training.

    Type and level heuristics run only when the item does not carry them.
    Items without a date or a usable start time are skipped.
    """
    ext = normalize_external_item(item)
    if not ext.date:
        logger.debug("External item %s has no date, skipped", ext.id)
        return None

    time_start = parse_clock(ext.time_start)
    if not time_start:
        logger.debug("External item %s has no start time, skipped", ext.id)
        return None
    ext.time_start = time_start
    time_end = parse_clock(ext.time_end)

    training_type = canonical_type(ext.type) or type_from_code(ext.type_code) or type_from_title(ext.title)
    level = ext.level or level_from_title(ext.title, ext.type_code)

    return Training(
        channel_id=channel.id,
        date=str(ext.date)[:10],
        time_start=time_start,
        time_end=time_end,
        type=training_type,
        level=level,
        coach=ext.coach or channel.default_coach,
        location=ext.location,
        location_id=ext.location_id,
        price=ext.price,
        spots=ext.spots,
        spots_available=ext.spots_available,
        signup_url=_signup_url(channel, training_type, ext.signup_url),
        title=ext.title,
        description=ext.description,
        raw_text=json.dumps(item, ensure_ascii=False, default=str),
        message_id=external_message_id(ext, channel.id, mode=mode, batch_token=batch_token),
    )


def map_external_items(payload: Any, channel: ChannelConfig, mode: str = "poll") -> List[Training]:
    """Map every item of a payload; one batch token is shared by the whole poll."""
    batch_token = uuid.uuid4().hex[:8] if mode == "poll" else None
    trainings = []
    for index, item in enumerate(extract_items(payload)):
        token = f"{batch_token}-{index}" if batch_token else None
        training = map_external_item(item, channel, mode=mode, batch_token=token)
        if training:
            trainings.append(training)
    return trainings


def handle_webhook_payload(payload: Any, channel: ChannelConfig) -> List[Training]:
    """
    Drafts for a webhook delivery.

    Re-delivering the same payload yields the same message ids, so the
    storage upsert updates price and capacity in place.
    """
    trainings = map_external_items(payload, channel, mode="webhook")
    logger.info("Webhook for %s: %d trainings mapped", channel.name, len(trainings))
    return trainings
