"""Digest delivery.

This module hands a stored digest to its readers:
- Markdown digest saved to disk
- Webhook POST notification
- JSONL delivery log

All delivery methods are async and fail gracefully (errors are logged and
reported as False). A failed delivery never invalidates the stored digest.

Output Formats:
    Markdown: Rendered digest, one file per date
    Webhook: JSON payload for integration with external systems (email, TTS)
    JSONL: One JSON object per line for log aggregation
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path

import aiohttp

from config import Config
from models.digest import DigestRecord

logger = logging.getLogger(__name__)


def digest_filename(record: DigestRecord) -> str:
    return f"{record.digest_date.isoformat()}_digest.md"


def _payload(record: DigestRecord) -> dict:
    return {
        "type": "daily_digest",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "digest_date": record.digest_date.isoformat(),
        "window_start": record.window_start.isoformat(),
        "window_end": record.window_end.isoformat(),
        "content_items_count": record.content_items_count,
        "political_items_count": record.political_items_count,
        "clusters": [
            {"label": c.label, "importance": round(c.importance, 4), "members": c.member_ids}
            for c in record.clusters
        ],
        "digest_markdown": record.digest_markdown,
    }


async def save_digest_report(record: DigestRecord, reports_dir: Path) -> Path | None:
    """Save the digest markdown file."""
    try:
        reports_dir.mkdir(parents=True, exist_ok=True)
        filepath = reports_dir / digest_filename(record)
        filepath.write_text(record.digest_markdown, encoding="utf-8")
        logger.info("Digest saved | file=%s", filepath.name)
        return filepath
    except Exception as e:
        logger.error("Digest save failed: %s", e, exc_info=True)
        return None


async def send_webhook(record: DigestRecord, url: str) -> bool:
    """Send the digest via webhook POST."""
    if not url:
        return True

    try:
        async with aiohttp.ClientSession() as session:
            async with session.post(
                url, json=_payload(record), timeout=aiohttp.ClientTimeout(total=10)
            ) as resp:
                if resp.status < 300:
                    logger.debug("Webhook sent | date=%s", record.digest_date)
                    return True
                logger.warning("Webhook failed | status=%d date=%s", resp.status, record.digest_date)
                return False
    except asyncio.TimeoutError:
        logger.warning("Webhook timeout | url=%s date=%s", url[:50], record.digest_date)
        return False
    except Exception as e:
        logger.error("Webhook error: %s (%s)", e, type(e).__name__, exc_info=True)
        return False


async def append_alerts_file(record: DigestRecord, filepath: str) -> bool:
    """Append a delivery line to the JSONL file."""
    if not filepath:
        return True

    entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "digest_date": record.digest_date.isoformat(),
        "content_items_count": record.content_items_count,
        "political_items_count": record.political_items_count,
        "labels": [c.label for c in record.clusters],
    }

    try:
        path = Path(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)

        # Warn if file is getting large (> 100MB)
        if path.exists():
            size_mb = path.stat().st_size / (1024 * 1024)
            if size_mb > 100:
                logger.warning("Alerts file large | size=%.1fMB path=%s", size_mb, filepath)

        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        return True
    except Exception as e:
        logger.error("Alerts file error: %s (%s)", e, type(e).__name__, exc_info=True)
        return False


async def deliver_digest(record: DigestRecord, config: Config) -> bool:
    """Run every configured delivery step for a digest.

    Returns:
        True if all configured steps succeeded
    """
    report_path = await save_digest_report(record, config.reports_dir)
    webhook_ok = await send_webhook(record, config.webhook_url)
    alerts_ok = await append_alerts_file(record, config.alerts_file)

    ok = report_path is not None and webhook_ok and alerts_ok
    logger.info(
        "Digest delivery | date=%s ok=%s report=%s webhook=%s alerts=%s",
        record.digest_date,
        ok,
        report_path is not None,
        webhook_ok,
        alerts_ok,
    )
    return ok
