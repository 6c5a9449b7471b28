#!/usr/bin/env python3
"""
Unified data model for badminton trainings across all channels and sources.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field


class TrainingType(str, Enum):
    """Canonical training categories."""
    GAME = "игровая"
    GROUP = "групповая"
    MINI_GROUP = "мини-группа"
    MINI_GAME = "мини-игровая"
    KIDS = "детская группа"
    TECHNIQUE = "техника"
    TOURNAMENT = "турнир"
    INDIVIDUAL = "индивидуальная"


# Types that use the "game" permanent signup link and the game price default
GAME_TYPES = {TrainingType.GAME.value, TrainingType.MINI_GAME.value}

# Types that fall under the "group" price default
GROUP_TYPES = {
    TrainingType.GROUP.value,
    TrainingType.MINI_GROUP.value,
    TrainingType.KIDS.value,
    TrainingType.TECHNIQUE.value,
}


class LevelTag(str, Enum):
    """Constant descriptive levels. Letter and numeric levels stay free-form."""
    ALL_LEVELS = "Все уровни"
    ANY = "Любой"
    BEGINNER = "Начинающий"
    INTERMEDIATE = "Средний"
    ADVANCED = "Продвинутый"
    START = "Старт"
    COMFORT = "Комфорт"
    PRIME = "Прайм"
    MIXED = "Смешанная"


class Training(BaseModel):
    """
    Normalized training session across all sources.

    This provides a common schema for sessions from:
    - Telegram channel text posts (single and weekly schedules)
    - Telegram channel schedule images (via the vision service)
    - Booking platform activities and records
    - External JSON APIs and webhooks
    """

    # Ownership
    channel_id: str = Field(..., description="Owning channel/source id")

    # Temporal data
    date: Optional[str] = Field(None, description="ISO calendar date (YYYY-MM-DD)")
    time_start: Optional[str] = Field(None, description="Local start time HH:MM")
    time_end: Optional[str] = Field(None, description="Local end time HH:MM")

    # Classification
    type: Optional[str] = Field(None, description="Training type, canonical tag or free-form")
    level: Optional[str] = Field(None, description="Skill level (letter range, numeric range or descriptive)")
    coach: Optional[str] = Field(None, description="Coach name")

    # Location details
    location: Optional[str] = Field(None, description="Display location text")
    location_id: Optional[str] = Field(None, description="Reference into the location directory")

    # Booking details
    price: Optional[int] = Field(None, description="Price in roubles")
    spots: Optional[int] = Field(None, description="Total slots")
    spots_available: Optional[int] = Field(None, description="Free slots, when the source reports them")
    signup_url: Optional[str] = Field(None, description="Signup URL")

    # Text
    title: Optional[str] = Field(None, description="Title")
    description: Optional[str] = Field(None, description="Description")

    # Metadata
    message_id: str = Field(..., description="Source-scoped idempotency key")
    raw_text: str = Field("", description="Verbatim source payload")

    def upsert_key(self) -> Tuple[str, Optional[str], Optional[str], str]:
        """Uniqueness key used by the storage upsert."""
        return (self.channel_id, self.date, self.time_start, self.message_id)

    def has_required_fields(self) -> bool:
        """Storage requires both a date and a start time."""
        return bool(self.date) and bool(self.time_start)

    def to_row(self) -> Dict[str, Any]:
        """Convert to dictionary for Supabase upsert."""
        row = self.model_dump()
        row["location_id"] = self.location_id or None
        return row

    class Config:
        json_schema_extra = {
            "example": {
                "channel_id": "3f1c2a9e-0000-4000-8000-000000000001",
                "date": "2025-03-15",
                "time_start": "19:00",
                "time_end": "20:30",
                "type": "групповая",
                "level": "C-D",
                "coach": "Иванов",
                "location": "СК Юность (ул. Ленина, 1)",
                "location_id": "5b0e0000-0000-4000-8000-000000000002",
                "price": 500,
                "spots": 10,
                "signup_url": "https://t.me/badminton_signup",
                "title": "Групповая тренировка",
                "message_id": "1234",
                "raw_text": "Групповая тренировка\n15.03\n...",
            }
        }


class Location(BaseModel):
    """Location directory entry. Read-only for the parsers."""
    id: str
    name: str
    address: Optional[str] = None
    aliases: List[str] = Field(default_factory=list)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Location":
        """Create a Location from a database row (aliases may be null)."""
        return cls(
            id=str(row.get("id", "")),
            name=row.get("name", ""),
            address=row.get("address"),
            aliases=row.get("aliases") or [],
        )

    def display_name(self) -> str:
        return f"{self.name} ({self.address})" if self.address else self.name


class LocationMatch(BaseModel):
    """Result of a location lookup."""
    name: str
    location_id: str = ""


class ImageScheduleEntry(BaseModel):
    """One weekly recurring session read off a schedule image."""
    type: Optional[str] = Field(None, description="Тип тренировки")
    level: Optional[str] = Field(None, description="Уровень как в оригинале")
    coach: Optional[str] = Field(None, description="Тренер")
    day: Optional[str] = Field(None, description="День недели на русском")
    time_start: Optional[str] = Field(None, description="Время начала HH:MM")
    time_end: Optional[str] = Field(None, description="Время окончания HH:MM")


class ImageScheduleResult(BaseModel):
    """Structured output of the vision service for one image."""
    location: Optional[str] = Field(None, description="Название локации из заголовка")
    trainings: List[ImageScheduleEntry] = Field(default_factory=list)


class ExternalTrainingItem(BaseModel):
    """Canonical intermediate record for external API and webhook items."""
    id: Optional[str] = None
    date: Optional[str] = None
    time_start: Optional[str] = None
    time_end: Optional[str] = None
    type: Optional[str] = None
    type_code: Optional[str] = None
    level: Optional[str] = None
    coach: Optional[str] = None
    location: Optional[str] = None
    location_id: Optional[str] = None
    price: Optional[int] = None
    spots: Optional[int] = None
    spots_available: Optional[int] = None
    signup_url: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)


def canonical_type(value: Optional[str]) -> Optional[str]:
    """
    Map a free-form type to its canonical tag, keeping unknown values as-is.

    Canonical values map to themselves, so this is idempotent.
    """
    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned:
        return None

    # Imported lazily: the extractor module imports this one
    from ..services.field_extractors import extract_type

    return extract_type(cleaned) or cleaned
