"""Channel (source) configuration and per-run result types."""

from enum import Enum
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field

from .training import GAME_TYPES


class ParseMode(str, Enum):
    """Ingestion mode of a channel."""
    TEXT = "text"
    IMAGES = "images"
    BOOKING = "booking"
    EXTERNAL_API = "external_api"


class BookingConfig(BaseModel):
    """Booking platform credentials for one company."""
    company_id: str
    user_token: Optional[str] = None


class ExternalApiConfig(BaseModel):
    """Polling settings for an external JSON API."""
    endpoint_url: str
    api_key: str
    days_ahead: int = 14
    header_name: str = "x-api-key"


class ChannelConfig(BaseModel):
    """A configured upstream source of training listings."""
    id: str
    name: str
    username: Optional[str] = None
    parse_mode: ParseMode = ParseMode.TEXT
    is_active: bool = True
    default_coach: Optional[str] = None
    permanent_signup_url_game: Optional[str] = None
    permanent_signup_url_group: Optional[str] = None
    booking_config: Optional[BookingConfig] = None
    external_api_config: Optional[ExternalApiConfig] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ChannelConfig":
        """Create a ChannelConfig from a `channels` table row."""
        mode_val = row.get("parse_mode") or ""
        if mode_val == "yclients":
            mode_val = ParseMode.BOOKING.value
        if mode_val not in {m.value for m in ParseMode}:
            mode_val = ParseMode.IMAGES.value if row.get("parse_images") else ParseMode.TEXT.value

        booking = row.get("booking_config") or row.get("yclients_config")
        external = row.get("external_api_config")

        return cls(
            id=str(row.get("id", "")),
            name=row.get("name", ""),
            username=row.get("username"),
            parse_mode=ParseMode(mode_val),
            is_active=row.get("is_active", True),
            default_coach=row.get("default_coach"),
            permanent_signup_url_game=row.get("permanent_signup_url_game"),
            permanent_signup_url_group=row.get("permanent_signup_url_group"),
            booking_config=BookingConfig(**booking) if booking else None,
            external_api_config=ExternalApiConfig(**external) if external else None,
        )

    def signup_url_for(self, training_type: Optional[str], explicit: Optional[str] = None) -> Optional[str]:
        """
        Resolve a signup URL: an explicit one wins, then the permanent link
        for the session kind (game vs group).
        """
        if explicit:
            return explicit
        if training_type in GAME_TYPES:
            return self.permanent_signup_url_game
        return self.permanent_signup_url_group


class SourceSyncResult(BaseModel):
    """Outcome of ingesting one channel in one run."""
    channel_id: str
    channel_name: str
    success: bool = False
    parsed: int = 0
    added: int = 0
    skipped: int = 0
    from_cache: int = 0
    error: Optional[str] = Field(None, description="Failure message for operators")
