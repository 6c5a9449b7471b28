#!/usr/bin/env python3
"""
Main entry point for the badminton training schedule aggregator.

Usage:
    python main.py ingest                         # Ingest all active channels
    python main.py ingest --channel-id <uuid>     # Ingest one channel
    python main.py ingest --sequential            # One channel at a time
    python main.py parse post.txt                 # Parse a saved post offline
    python main.py parse post.txt --bot           # Parse a saved bot post offline
    python main.py webhook payload.json --channel-id <uuid>
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from badminton_schedule.errors import StorageError
from badminton_schedule.models import ChannelConfig
from badminton_schedule.services.booking_client import BookingPlatformClient
from badminton_schedule.services.bot_post_parser import parse_bot_post
from badminton_schedule.services.external_api_client import ExternalApiClient
from badminton_schedule.services.image_schedule import ScheduleImageAnalyzer
from badminton_schedule.services.source_normalizers import handle_webhook_payload
from badminton_schedule.services.supabase_service import TrainingStore
from badminton_schedule.services.telegram_service import TelegramChannelScraper
from badminton_schedule.workflows.ingest_workflow import (
    IngestionServices,
    parse_message,
    print_summary,
    run_ingestion,
)

logger = logging.getLogger(__name__)


def build_services(store: TrainingStore) -> IngestionServices:
    """Wire the clients whose credentials are configured."""
    services = IngestionServices(
        store=store,
        scraper=TelegramChannelScraper(),
        external_client=ExternalApiClient(),
    )
    if os.getenv("GEMINI_API_KEY"):
        services.analyzer = ScheduleImageAnalyzer()
    else:
        logger.warning("GEMINI_API_KEY not set, image channels will fail")
    if os.getenv("BOOKING_PARTNER_TOKEN"):
        services.booking_client = BookingPlatformClient()
    else:
        logger.warning("BOOKING_PARTNER_TOKEN not set, booking channels will fail")
    return services


def cmd_ingest(args: argparse.Namespace) -> int:
    try:
        store = TrainingStore()
        data = run_ingestion(
            build_services(store),
            channel_id=args.channel_id,
            parallel=not args.sequential,
            max_workers=args.max_workers,
        )
    except (StorageError, ValueError) as e:
        print(f"Error during ingestion: {e}", file=sys.stderr)
        return 1

    print_summary(data)
    return 0 if data["summary"]["channels"]["failed"] == 0 else 2


def cmd_parse(args: argparse.Namespace) -> int:
    text = Path(args.file).read_text(encoding="utf-8")
    channel = ChannelConfig(id=args.channel_id, name="offline")

    if args.bot:
        training = parse_bot_post(text, args.message_id, channel.id, channel=channel)
        trainings = [training] if training else []
    else:
        trainings = parse_message(text, args.message_id, channel)

    print(json.dumps([t.model_dump(exclude={"raw_text"}) for t in trainings], ensure_ascii=False, indent=2))
    return 0 if trainings else 1


def cmd_webhook(args: argparse.Namespace) -> int:
    payload = json.loads(Path(args.file).read_text(encoding="utf-8"))
    try:
        store = TrainingStore()
        channels = store.get_active_channels(args.channel_id)
    except (StorageError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not channels:
        print(f"Error: channel {args.channel_id} not found or inactive", file=sys.stderr)
        return 1

    trainings = handle_webhook_payload(payload, channels[0])
    written = store.upsert_trainings(trainings)
    print(f"Webhook: upserted {written}/{len(trainings)} trainings for {channels[0].name}")
    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Aggregate badminton training schedules into one normalized table"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest = subparsers.add_parser("ingest", help="Ingest active channels")
    ingest.add_argument("--channel-id", default=None, help="Only ingest this channel")
    ingest.add_argument("--sequential", action="store_true", help="Process channels one at a time")
    ingest.add_argument("--max-workers", type=int, default=4, help="Maximum parallel workers (default: 4)")
    ingest.set_defaults(func=cmd_ingest)

    parse = subparsers.add_parser("parse", help="Parse a saved message and print the drafts as JSON")
    parse.add_argument("file", help="File with the message text")
    parse.add_argument("--message-id", default="local", help="Message id used in draft keys")
    parse.add_argument("--channel-id", default="local", help="Channel id used in drafts")
    parse.add_argument("--bot", action="store_true", help="Parse as a bot post (JSON or labelled card)")
    parse.set_defaults(func=cmd_parse)

    webhook = subparsers.add_parser("webhook", help="Upsert a saved webhook payload for a channel")
    webhook.add_argument("file", help="JSON payload file")
    webhook.add_argument("--channel-id", required=True, help="Receiving channel")
    webhook.set_defaults(func=cmd_webhook)

    args = parser.parse_args()

    load_dotenv()
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
