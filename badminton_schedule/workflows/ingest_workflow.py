"""
Ingestion workflow: fetch every active channel, parse, and upsert trainings.

Channels are independent. A failing channel yields a failed
SourceSyncResult and never stops the others.
"""

import logging
import random
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from ..errors import IntegrationError
from ..models.channel import ChannelConfig, ParseMode, SourceSyncResult
from ..models.training import Location, Training
from ..services.booking_client import BookingPlatformClient
from ..services.external_api_client import ExternalApiClient
from ..services.image_schedule import ScheduleImageAnalyzer, map_image_schedule
from ..services.message_classifier import MessageKind, classify_message
from ..services.source_normalizers import (
    group_booking_records,
    map_booking_activity,
    map_booking_record_group,
    map_external_items,
)
from ..services.supabase_service import TrainingStore
from ..services.telegram_service import TelegramChannelScraper
from ..services.text_parser import parse_single_session
from ..services.weekly_parser import parse_weekly_schedule
from ..utils.normalization import get_next_days

logger = logging.getLogger(__name__)

T = TypeVar("T")

BOOKING_DAYS_AHEAD = 14


def call_with_retries(
    func: Callable[..., T],
    *args: Any,
    attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any,
) -> T:
    """
    Call ``func`` and retry on IntegrationError with exponential backoff and jitter.

    The last IntegrationError is re-raised once attempts are exhausted.
    """
    for attempt in range(attempts):
        try:
            return func(*args, **kwargs)
        except IntegrationError as e:
            if attempt + 1 >= attempts:
                raise
            delay = min(base_delay * (2 ** attempt), max_delay)
            delay += random.uniform(0, delay * 0.1)
            logger.warning("Attempt %d/%d failed: %s. Retrying in %.1fs", attempt + 1, attempts, e, delay)
            sleep(delay)
    raise IntegrationError("No attempts made")


@dataclass
class IngestionServices:
    """Collaborators of a run. Clients a run never needs may stay None."""
    store: TrainingStore
    scraper: Optional[TelegramChannelScraper] = None
    analyzer: Optional[ScheduleImageAnalyzer] = None
    booking_client: Optional[BookingPlatformClient] = None
    external_client: Optional[ExternalApiClient] = None
    retry_attempts: int = 3


def parse_message(
    text: str,
    message_id: str,
    channel: ChannelConfig,
    locations: Sequence[Location] = (),
    today: Optional[date] = None,
) -> List[Training]:
    """Classify one post and return its storable drafts (date and start time set)."""
    kind = classify_message(text)
    if kind == MessageKind.WEEKLY:
        drafts = parse_weekly_schedule(text, message_id, channel.id, locations, channel=channel, today=today)
    elif kind == MessageKind.SINGLE:
        training = parse_single_session(text, message_id, channel.id, locations, channel=channel, today=today)
        drafts = [training] if training else []
    else:
        drafts = []

    storable = [t for t in drafts if t.has_required_fields()]
    if len(storable) < len(drafts):
        logger.info("Message %s: dropped %d drafts without date or start time", message_id, len(drafts) - len(storable))
    return storable


def _require(client: Optional[T], name: str) -> T:
    if client is None:
        raise ValueError(f"{name} is not configured")
    return client


def _require_username(channel: ChannelConfig) -> str:
    if not channel.username:
        raise ValueError(f"Channel {channel.name}: no username")
    return channel.username


def _ingest_text(channel, services, locations, today, result) -> List[Training]:
    scraper = _require(services.scraper, "Telegram scraper")
    posts = call_with_retries(scraper.fetch_posts, _require_username(channel), attempts=services.retry_attempts)

    trainings = []
    for post in posts:
        if classify_message(post.text) == MessageKind.UNPARSEABLE:
            continue
        result.parsed += 1
        drafts = parse_message(post.text, post.message_id, channel, locations, today=today)
        if not drafts:
            result.skipped += 1
        trainings.extend(drafts)
    return trainings


def _ingest_images(channel, services, locations, today, result) -> List[Training]:
    scraper = _require(services.scraper, "Telegram scraper")
    analyzer = _require(services.analyzer, "Image analyzer")
    images = call_with_retries(scraper.fetch_images, _require_username(channel), today=today, attempts=services.retry_attempts)

    trainings = []
    per_post = Counter()
    for image in images:
        n = per_post[image.message_id]
        per_post[image.message_id] += 1
        draft_id = image.message_id if n == 0 else f"{image.message_id}.{n}"
        result.parsed += 1

        if services.store.is_image_processed(channel.id, image.message_id, image.image_url):
            logger.info("Image %s already processed, skipping analysis", draft_id)
            result.from_cache += 1
            continue

        try:
            schedule = call_with_retries(analyzer.analyze, image.image_url, attempts=services.retry_attempts)
        except IntegrationError as e:
            logger.error("Image %s: %s", draft_id, e)
            result.skipped += 1
            continue

        drafts = map_image_schedule(schedule, draft_id, channel.id, locations, channel=channel, today=today,
                                    raw_text=schedule.model_dump_json())
        if not drafts:
            result.skipped += 1
        trainings.extend(drafts)
        services.store.mark_image_processed(channel.id, image.message_id, image.image_url, len(drafts))
    return trainings


def _ingest_booking(channel, services, locations, today, result) -> List[Training]:
    client = _require(services.booking_client, "Booking client")
    config = channel.booking_config
    if not config:
        raise ValueError(f"Channel {channel.name}: no booking config")

    days = get_next_days(BOOKING_DAYS_AHEAD, today)
    date_from, date_to = days[0], days[-1]
    attempts = services.retry_attempts

    try:
        address = call_with_retries(client.fetch_company_address, config.company_id, config.user_token, attempts=attempts)
    except IntegrationError as e:
        logger.info("Could not fetch company info, continuing without address: %s", e)
        address = None

    activities = call_with_retries(client.fetch_activities, config.company_id, date_from, date_to,
                                   config.user_token, attempts=attempts)
    trainings = [
        t for t in (map_booking_activity(a, config.company_id, channel, address) for a in activities) if t
    ]

    if not trainings and config.user_token:
        logger.info("No activities for %s, trying records", channel.name)
        records = call_with_retries(client.fetch_records, config.company_id, date_from, date_to,
                                    config.user_token, attempts=attempts)
        trainings = [
            map_booking_record_group(key, group, config.company_id, channel, address)
            for key, group in group_booking_records(records).items()
        ]

    result.parsed += len(trainings)
    return trainings


def _ingest_external(channel, services, locations, today, result) -> List[Training]:
    client = _require(services.external_client, "External API client")
    config = channel.external_api_config
    if not config or not config.endpoint_url or not config.api_key:
        raise ValueError(f"Channel {channel.name}: no external API config")

    payload = call_with_retries(client.fetch_items, config, attempts=services.retry_attempts)
    trainings = map_external_items(payload, channel, mode="poll")
    result.parsed += len(trainings)

    # Polling replaces the whole future range of this source
    if trainings:
        services.store.delete_future_external(channel.id, today=today)
    return trainings


INGESTERS = {
    ParseMode.TEXT: _ingest_text,
    ParseMode.IMAGES: _ingest_images,
    ParseMode.BOOKING: _ingest_booking,
    ParseMode.EXTERNAL_API: _ingest_external,
}


def ingest_channel(
    channel: ChannelConfig,
    services: IngestionServices,
    locations: Sequence[Location] = (),
    today: Optional[date] = None,
) -> SourceSyncResult:
    """
    Ingest one channel according to its parse mode.

    Integration and configuration failures are reported in the result,
    never raised.
    """
    result = SourceSyncResult(channel_id=channel.id, channel_name=channel.name)
    logger.info("=== Processing channel: %s (mode: %s) ===", channel.name, channel.parse_mode.value)

    try:
        trainings = INGESTERS[channel.parse_mode](channel, services, locations, today, result)
    except (IntegrationError, ValueError) as e:
        logger.error("Channel %s failed: %s", channel.name, e)
        result.error = str(e)
        return result

    storable = [t for t in trainings if t.has_required_fields()]
    result.skipped += len(trainings) - len(storable)
    written = services.store.upsert_trainings(storable)
    result.added = written
    result.skipped += len(storable) - written
    result.success = True

    logger.info("Channel %s: parsed=%d added=%d skipped=%d cached=%d",
                channel.name, result.parsed, result.added, result.skipped, result.from_cache)
    return result


def run_ingestion(
    services: IngestionServices,
    channels: Optional[List[ChannelConfig]] = None,
    channel_id: Optional[str] = None,
    parallel: bool = True,
    max_workers: int = 4,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Ingest all active channels (or the given ones) and aggregate results.

    The location directory is loaded once and shared read-only by every
    channel.

    Returns:
        Dict with per-channel results and totals
    """
    if channels is None:
        channels = services.store.get_active_channels(channel_id)
    locations = services.store.get_locations()

    logger.info("Processing %d channels", len(channels))
    results: List[SourceSyncResult] = []

    if parallel and len(channels) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {
                executor.submit(ingest_channel, channel, services, locations, today): channel
                for channel in channels
            }
            for future in as_completed(futures):
                try:
                    results.append(future.result())
                except Exception as e:
                    channel = futures[future]
                    logger.exception("Unexpected error in channel %s", channel.name)
                    results.append(SourceSyncResult(
                        channel_id=channel.id,
                        channel_name=channel.name,
                        error=str(e),
                    ))
    else:
        for channel in channels:
            results.append(ingest_channel(channel, services, locations, today))

    results.sort(key=lambda r: r.channel_name)
    return {
        "summary": {
            "ran_at": datetime.now().isoformat(timespec="seconds"),
            "channels": {
                "total": len(results),
                "successful": sum(1 for r in results if r.success),
                "failed": sum(1 for r in results if not r.success),
            },
            "totals": {
                "parsed": sum(r.parsed for r in results),
                "added": sum(r.added for r in results),
                "skipped": sum(r.skipped for r in results),
                "from_cache": sum(r.from_cache for r in results),
            },
        },
        "results": [r.model_dump() for r in results],
    }


def print_summary(data: Dict[str, Any]) -> None:
    """Print a human-readable summary of a run."""
    summary = data["summary"]
    channels = summary["channels"]
    totals = summary["totals"]

    print(f"\n{'='*70}")
    print("INGESTION SUMMARY")
    print(f"{'='*70}")
    print(f"Ran at: {summary['ran_at']}")
    print()
    print(f"Channels: {channels['successful']}/{channels['total']} successful")
    print()

    for result in data["results"]:
        status = "✓" if result["success"] else "✗"
        counts = f"{result['added']} added, {result['skipped']} skipped, {result['from_cache']} cached"
        print(f"  {status} {result['channel_name']:<30} {counts}")

    print()
    print("Totals:")
    print(f"  Messages/images processed: {totals['parsed']}")
    print(f"  Added/updated: {totals['added']}")
    print(f"  From cache: {totals['from_cache']}")
    print(f"  Skipped/errors: {totals['skipped']}")

    errors = [r for r in data["results"] if r["error"]]
    if errors:
        print()
        print("Errors:")
        for result in errors:
            print(f"  ✗ {result['channel_name']}: {result['error']}")
    print(f"{'='*70}\n")
