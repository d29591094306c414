#!/usr/bin/env python3
"""Dailies: content classification and daily political digest.

This CLI tool stores captured web content, classifies it with AI providers
(with retry and failover), analyzes US politics items for bias, quality and
loaded language, and produces one clustered digest per day.

Commands:
    capture     Store captured items from a JSON file
    process     Classify and analyze pending items
    digest      Generate the digest for a date
    schedule    Generate a digest every day at DIGEST_TIME
    status      Show configuration and database statistics
    recent      Display recently analyzed political items
    override    Set an item's category by hand

Examples:
    python main.py capture --file items.json
    python main.py process --limit 50
    python main.py digest --date 2024-05-01 --force
    python main.py schedule
    python main.py recent --hours 48
    python main.py override 42 Technology

Environment:
    GEMINI_API_KEY / OPENAI_API_KEY / ANTHROPIC_API_KEY: At least one required
    See config.py for all configuration options
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import date, datetime, timezone
from pathlib import Path

from config import Config
from database import Database
from observability.logging import setup_logging

logger = logging.getLogger(__name__)


def _load_items(path: Path) -> list:
    """Read capture records from a JSON list (or a single object)."""
    from models.content import ContentItem

    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = [data]
    return [ContentItem.model_validate(entry) for entry in data]


def cmd_capture(args: argparse.Namespace, config: Config) -> int:
    """Store captured items.

    Args:
        args: Parsed command line arguments
        config: Application configuration

    Returns:
        Exit code (0 for success)
    """
    from errors import DuplicateContent

    try:
        items = _load_items(Path(args.file))
    except (OSError, ValueError) as e:
        print(f"Cannot read {args.file}: {e}", file=sys.stderr)
        return 1

    created = duplicates = 0
    with Database(config.db_path) as db:
        for item in items:
            try:
                stored = db.add_content(item)
                created += 1
                logger.info("Captured | id=%d title=%s", stored.id, stored.title[:60])
            except DuplicateContent as e:
                duplicates += 1
                logger.info("Duplicate capture ignored | existing_id=%d", e.existing_id)

    print(json.dumps({"captured": created, "duplicates": duplicates}))
    return 0


def cmd_process(args: argparse.Namespace, config: Config) -> int:
    """Classify and analyze pending items.

    Args:
        args: Parsed command line arguments
        config: Application configuration

    Returns:
        Exit code (0 for success)
    """
    from embeddings import get_embeddings
    from pipeline import ContentPipeline

    async def run() -> dict:
        pipeline = ContentPipeline(
            config, embedder=get_embeddings(config.embedding_model, config.embedding_batch_size)
        )
        try:
            stats = await pipeline.run_once(limit=args.limit or None)
            return stats.to_dict()
        finally:
            pipeline.close()

    try:
        stats = asyncio.run(run())
        logger.info("Run complete | stats=%s", json.dumps(stats))
        print(json.dumps(stats, indent=2))
        return 0
    except KeyboardInterrupt:
        logger.info("Stopped by user (Ctrl+C)")
        return 130  # Standard exit code for SIGINT
    except Exception as e:
        logger.error("Processing failed | error=%s type=%s", e, type(e).__name__, exc_info=True)
        return 1


def cmd_digest(args: argparse.Namespace, config: Config) -> int:
    """Generate the digest for one date."""
    from errors import DigestAlreadyExists
    from scheduler import generate_digest

    try:
        for_date = date.fromisoformat(args.date) if args.date else datetime.now(timezone.utc).date()
    except ValueError:
        print(f"Invalid --date '{args.date}' (expected YYYY-MM-DD)", file=sys.stderr)
        return 1

    try:
        record = asyncio.run(generate_digest(config, for_date, override=args.force))
    except DigestAlreadyExists as e:
        print(f"{e} (use --force to regenerate)", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("Stopped by user (Ctrl+C)")
        return 130

    print(
        f"Digest {record.digest_date}: items={record.content_items_count} "
        f"political={record.political_items_count} sections={len(record.clusters)}"
    )
    return 0


def cmd_schedule(args: argparse.Namespace, config: Config) -> int:
    """Run the daily digest loop until interrupted."""
    from scheduler import DigestScheduler

    async def run() -> None:
        with Database(config.db_path) as db:
            await DigestScheduler(config, db).run_forever()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Stopped by user (Ctrl+C)")
        return 130
    return 0


def cmd_status(args: argparse.Namespace, config: Config) -> int:
    """Display configuration and database statistics.

    Args:
        args: Parsed command line arguments
        config: Application configuration

    Returns:
        Exit code (0 for success)
    """
    with Database(config.db_path) as db:
        db_stats = db.stats(config.flagged_category)
        digests = db.recent_digests(limit=3)

    status = {
        "config": {
            "primary_provider": config.primary_provider,
            "fallback_order": config.fallback_order,
            "confidence_threshold": config.confidence_threshold,
            "flagged_category": config.flagged_category,
            "digest_time": config.digest_time,
            "digest_window_hours": config.digest_window_hours,
            "enable_logfire": config.enable_logfire,
        },
        "database": {
            "path": str(config.db_path),
            **db_stats,
        },
        "recent_digests": [
            {
                "date": d.digest_date.isoformat(),
                "political_items": d.political_items_count,
                "delivered": d.delivered_at is not None,
            }
            for d in digests
        ],
    }

    print(json.dumps(status, indent=2))
    return 0


def cmd_recent(args: argparse.Namespace, config: Config) -> int:
    """Display recently analyzed political items.

    Args:
        args: Parsed command line arguments
        config: Application configuration

    Returns:
        Exit code (0 for success)
    """
    with Database(config.db_path) as db:
        items = db.recent(hours=args.hours, category=config.flagged_category)

    if not items:
        print(f"No analyzed political items in the last {args.hours} hours.")
        return 0

    print(f"\n=== Political Items (last {args.hours} hours) ===\n")

    for item in items:
        captured = datetime.fromtimestamp(item["captured_at"], timezone.utc)

        print(f"📰 {item['title']}")
        print(f"   Captured: {captured.strftime('%Y-%m-%d %H:%M')} UTC")
        print(f"   Source: {item['url']}")
        print(f"   Bias: {item['bias_label']}  Quality: {item['quality_score']}/10")

        if item.get("executive_summary"):
            summary = item["executive_summary"]
            if len(summary) > 200:
                summary = summary[:200] + "..."
            print(f"   Summary: {summary}")

        print()

    return 0


def cmd_override(args: argparse.Namespace, config: Config) -> int:
    """Set an item's category by hand; the classifier will skip it."""
    from models.classification import resolve_category

    category = resolve_category(args.category)
    if category is None:
        print(f"Unknown category '{args.category}'", file=sys.stderr)
        return 1

    with Database(config.db_path) as db:
        if db.get_content(args.id) is None:
            print(f"No content item with id {args.id}", file=sys.stderr)
            return 1
        item = db.override_category(args.id, category.value, config.flagged_category)

    print(f"Item {item.id}: {item.category} ({item.status.value}, manual)")
    return 0


def main() -> int:
    """Main entry point.

    Returns:
        Exit code
    """
    parser = argparse.ArgumentParser(
        description="Dailies: content classification and daily political digest",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # capture command
    capture_parser = subparsers.add_parser("capture", help="Store captured items")
    capture_parser.add_argument(
        "--file",
        required=True,
        help="JSON file with a list of {url, title, raw_content, captured_at}",
    )

    # process command
    process_parser = subparsers.add_parser("process", help="Classify and analyze pending items")
    process_parser.add_argument(
        "--limit",
        type=int,
        default=0,
        help="Max items to process (0 = all pending)",
    )

    # digest command
    digest_parser = subparsers.add_parser("digest", help="Generate the digest for a date")
    digest_parser.add_argument(
        "--date",
        help="Digest date YYYY-MM-DD (default: today, UTC)",
    )
    digest_parser.add_argument(
        "--force",
        action="store_true",
        help="Replace an existing digest for the date",
    )

    # schedule command
    subparsers.add_parser("schedule", help="Generate a digest daily at DIGEST_TIME")

    # status command
    subparsers.add_parser("status", help="Show configuration and statistics")

    # recent command
    recent_parser = subparsers.add_parser("recent", help="Show recent political items")
    recent_parser.add_argument(
        "--hours",
        type=int,
        default=24,
        help="Look back N hours (default: 24)",
    )

    # override command
    override_parser = subparsers.add_parser("override", help="Set an item's category by hand")
    override_parser.add_argument("id", type=int, help="Content item id")
    override_parser.add_argument("category", help="Category name, e.g. US_Politics_News")

    args = parser.parse_args()

    # Load configuration
    config = Config.load()

    # Setup logging
    setup_logging(config, verbose=args.verbose)

    # Validate configuration for commands that need it
    if args.command in ("process", "digest", "schedule"):
        error = config.validate()
        if error:
            print(f"Configuration error: {error}", file=sys.stderr)
            return 1

    # Route to command handler
    commands = {
        "capture": cmd_capture,
        "process": cmd_process,
        "digest": cmd_digest,
        "schedule": cmd_schedule,
        "status": cmd_status,
        "recent": cmd_recent,
        "override": cmd_override,
    }

    if args.command in commands:
        try:
            return commands[args.command](args, config)
        except Exception as e:
            logger.error("Command failed | cmd=%s error=%s", args.command, e, exc_info=True)
            print(f"Error: {e}", file=sys.stderr)
            return 1
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
