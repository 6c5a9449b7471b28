"""External services and parsers."""

from .booking_client import BookingPlatformClient
from .external_api_client import ExternalApiClient
from .image_schedule import ScheduleImageAnalyzer
from .supabase_service import TrainingStore
from .telegram_service import TelegramChannelScraper

__all__ = [
    "BookingPlatformClient",
    "ExternalApiClient",
    "ScheduleImageAnalyzer",
    "TrainingStore",
    "TelegramChannelScraper",
]
