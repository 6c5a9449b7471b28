"""Supabase integration for the training schedule, channel and location tables."""

import logging
import os
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from dotenv import load_dotenv
from supabase import Client, create_client

from ..errors import StorageError
from ..models.channel import ChannelConfig
from ..models.training import Location, Training

logger = logging.getLogger(__name__)

TRAININGS_TABLE = "trainings"
CHANNELS_TABLE = "channels"
LOCATIONS_TABLE = "locations"
PROCESSED_IMAGES_TABLE = "processed_images"

UPSERT_CONFLICT = "channel_id,date,time_start,message_id"
BATCH_SIZE = 50


class TrainingStore:
    """Service for reading configuration and writing trainings to Supabase."""

    def __init__(self, url: Optional[str] = None, key: Optional[str] = None, client: Optional[Client] = None):
        """
        Initialize the store.

        Args:
            url: Supabase project URL (defaults to env var SUPABASE_URL)
            key: Supabase service role key (defaults to env var SUPABASE_KEY)
            client: Pre-built client; url and key are then ignored
        """
        if client is not None:
            self.client = client
            return

        load_dotenv()

        self.url = url or os.getenv("SUPABASE_URL")
        self.key = key or os.getenv("SUPABASE_KEY")

        if not self.url or not self.key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set")

        self.client: Client = create_client(self.url, self.key)

    # ------------------------------------------------------------------
    # Directory and configuration
    # ------------------------------------------------------------------

    def get_locations(self) -> List[Location]:
        """
        Load the location directory.

        A failed read is logged and yields an empty directory, so parsing
        still runs with raw location names.
        """
        try:
            result = self.client.table(LOCATIONS_TABLE).select("*").execute()
        except Exception as e:
            logger.error("Error fetching locations: %s", e)
            return []
        locations = [Location.from_row(row) for row in result.data or []]
        logger.info("Loaded %d locations from database", len(locations))
        return locations

    def get_active_channels(self, channel_id: Optional[str] = None) -> List[ChannelConfig]:
        """
        Active channels, optionally narrowed to one id.

        Raises:
            StorageError: if the channel list cannot be read
        """
        try:
            query = self.client.table(CHANNELS_TABLE).select("*").eq("is_active", True)
            if channel_id:
                query = query.eq("id", channel_id)
            result = query.execute()
        except Exception as e:
            raise StorageError(f"Error fetching channels: {e}") from e
        return [ChannelConfig.from_row(row) for row in result.data or []]

    # ------------------------------------------------------------------
    # Trainings
    # ------------------------------------------------------------------

    def upsert_trainings(self, trainings: Sequence[Training]) -> int:
        """
        Upsert trainings keyed by (channel_id, date, time_start, message_id).

        Conflicting rows are updated in place, so a re-seen key refreshes
        price and capacity. Failed batches are logged and not counted.

        Returns:
            Number of rows written
        """
        # One row per key: a batch may not touch the same row twice
        unique = {t.upsert_key(): t for t in trainings}
        rows = [t.to_row() for t in unique.values()]
        written = 0
        for start in range(0, len(rows), BATCH_SIZE):
            batch = rows[start:start + BATCH_SIZE]
            try:
                result = (
                    self.client.table(TRAININGS_TABLE)
                    .upsert(batch, on_conflict=UPSERT_CONFLICT, ignore_duplicates=False)
                    .execute()
                )
            except Exception as e:
                logger.error("Batch upsert error (%d rows): %s", len(batch), e)
                continue
            written += len(result.data) if result.data else len(batch)
        return written

    def delete_future_external(self, channel_id: str, today: Optional[date] = None) -> None:
        """Delete a channel's polled external rows dated today or later."""
        today = today or date.today()
        try:
            (
                self.client.table(TRAININGS_TABLE)
                .delete()
                .eq("channel_id", channel_id)
                .gte("date", today.isoformat())
                .like("message_id", "extapi:%")
                .execute()
            )
        except Exception as e:
            logger.error("Error deleting old external trainings for %s: %s", channel_id, e)

    # ------------------------------------------------------------------
    # Processed image cache
    # ------------------------------------------------------------------

    def is_image_processed(self, channel_id: str, message_id: str, image_url: Optional[str] = None) -> bool:
        """True when the image of this post was already analysed."""
        try:
            query = (
                self.client.table(PROCESSED_IMAGES_TABLE)
                .select("id, trainings_count")
                .eq("channel_id", channel_id)
                .eq("message_id", message_id)
            )
            if image_url:
                query = query.eq("image_url", image_url)
            result = query.execute()
        except Exception as e:
            logger.error("Error checking processed image %s: %s", message_id, e)
            return False
        return bool(result.data)

    def mark_image_processed(self, channel_id: str, message_id: str, image_url: str, trainings_count: int) -> None:
        """Record an analysed image, including ones that yielded nothing."""
        row: Dict[str, Any] = {
            "channel_id": channel_id,
            "message_id": message_id,
            "image_url": image_url,
            "trainings_count": trainings_count,
        }
        try:
            self.client.table(PROCESSED_IMAGES_TABLE).insert(row).execute()
        except Exception as e:
            logger.error("Error saving processed image record %s: %s", message_id, e)
