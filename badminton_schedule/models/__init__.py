"""Data models."""

from .training import (
    TrainingType,
    LevelTag,
    Training,
    Location,
    LocationMatch,
    ImageScheduleEntry,
    ImageScheduleResult,
    ExternalTrainingItem,
    canonical_type,
)
from .channel import (
    ParseMode,
    BookingConfig,
    ExternalApiConfig,
    ChannelConfig,
    SourceSyncResult,
)

__all__ = [
    "TrainingType",
    "LevelTag",
    "Training",
    "Location",
    "LocationMatch",
    "ImageScheduleEntry",
    "ImageScheduleResult",
    "ExternalTrainingItem",
    "canonical_type",
    "ParseMode",
    "BookingConfig",
    "ExternalApiConfig",
    "ChannelConfig",
    "SourceSyncResult",
]
