"""Daily digest generation and scheduling.

Generation for one date:
    1. SNAPSHOT: Completed flagged items with analyses in the window
    2. EMBED: Compute and store vectors for items that have none
    3. CLUSTER: Group by embedding similarity
    4. RANK: Score clusters by quality, freshness and engagement
    5. ASSEMBLE: Diverse top clusters rendered to markdown
    6. PERSIST: One DigestRecord per date
    7. DELIVER: Background hand-off; failure is only logged

The window for a date ends at DIGEST_TIME (UTC) on that date and reaches back
DIGEST_WINDOW_HOURS, so consecutive digests never share an item.
"""

import asyncio
import logging
import time
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Awaitable, Callable

import numpy as np

from clustering import TopicClusteringEngine
from config import Config
from database import Database
from digest import DigestAssembler
from embeddings import Embedder, embedding_text, get_embeddings
from errors import DigestAlreadyExists
from models.digest import AnalyzedItem, DigestRecord
from notifications import deliver_digest
from observability.logging import clear_context, set_run_context
from observability.tracing import trace_operation
from ranking import ImportanceRanker

logger = logging.getLogger(__name__)

DeliverFunc = Callable[[DigestRecord, Config], Awaitable[bool]]


def digest_window(for_date: date, config: Config) -> tuple[datetime, datetime]:
    """Content window [start, end) for a digest date."""
    end = datetime.combine(for_date, config.digest_clock, tzinfo=timezone.utc)
    return end - timedelta(hours=config.digest_window_hours), end


def next_run_at(now: datetime, config: Config) -> datetime:
    """Next DIGEST_TIME strictly after now."""
    candidate = datetime.combine(now.date(), config.digest_clock, tzinfo=timezone.utc)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


class DigestScheduler:
    """Produces, stores and hands off one digest per date.

    Generation for a given date is mutually exclusive: a second call while
    one is running, or after one has been stored, raises DigestAlreadyExists
    unless override is set.

    Example:
        >>> scheduler = DigestScheduler(config, db)
        >>> record = await scheduler.generate_digest(date(2024, 5, 1))
    """

    def __init__(
        self,
        config: Config,
        db: Database,
        embedder: Embedder | None = None,
        deliver: DeliverFunc = deliver_digest,
        clusterer: TopicClusteringEngine | None = None,
        ranker: ImportanceRanker | None = None,
        assembler: DigestAssembler | None = None,
    ):
        self.config = config
        self.db = db
        self._embedder = embedder
        self.deliver = deliver
        self.clusterer = clusterer or TopicClusteringEngine.from_config(config)
        self.ranker = ranker or ImportanceRanker.from_config(config)
        self.assembler = assembler or DigestAssembler.from_config(config, ranker=self.ranker)
        self._locks: dict[date, asyncio.Lock] = {}
        self._delivery_tasks: set[asyncio.Task] = set()

    @property
    def embedder(self) -> Embedder:
        if self._embedder is None:
            self._embedder = get_embeddings(self.config.embedding_model, self.config.embedding_batch_size)
        return self._embedder

    async def _snapshot(self, start: datetime, end: datetime) -> tuple[AnalyzedItem, ...]:
        """Read analyzed items once and attach their vectors."""
        rows = self.db.fetch_analyzed_window(start, end, self.config.flagged_category)
        if not rows:
            return ()

        vectors = self.db.get_embeddings([item.id for item, _ in rows])
        missing = [(item, analysis) for item, analysis in rows if item.id not in vectors]
        if missing:
            texts = [embedding_text(item.title, analysis.executive_summary) for item, analysis in missing]
            encoded = await asyncio.to_thread(self.embedder.encode_batch, texts)
            for (item, _), vector in zip(missing, encoded):
                vector = np.asarray(vector, dtype=np.float32)
                self.db.save_embedding(item.id, vector, commit=False)
                vectors[item.id] = vector
            self.db.commit()
            logger.info("Embeddings computed | count=%d", len(missing))

        return tuple(
            AnalyzedItem(
                item=item,
                analysis=analysis,
                embedding=tuple(float(x) for x in vectors[item.id]),
            )
            for item, analysis in rows
        )

    async def generate_digest(self, for_date: date, override: bool = False) -> DigestRecord:
        """Generate, store and hand off the digest for a date.

        Args:
            for_date: Digest date
            override: Replace an existing digest for the date

        Returns:
            Stored DigestRecord

        Raises:
            DigestAlreadyExists: Generation for the date is running, or a
                digest exists and override is False
            DigestPersistenceError: The digest could not be stored
        """
        if for_date in self._locks:
            raise DigestAlreadyExists(for_date)

        # Entries live only while generation for the date is running
        lock = self._locks[for_date] = asyncio.Lock()
        try:
            async with lock:
                if not override and self.db.get_digest(for_date) is not None:
                    raise DigestAlreadyExists(for_date)

                set_run_context(uuid.uuid4().hex[:8])
                try:
                    record = await self._generate(for_date, override)
                finally:
                    clear_context()
        finally:
            del self._locks[for_date]

        self._schedule_delivery(record)
        return record

    async def _generate(self, for_date: date, override: bool) -> DigestRecord:
        start_time = time.time()
        window_start, window_end = digest_window(for_date, self.config)
        logger.info("Digest started | date=%s window=%s..%s", for_date, window_start.isoformat(), window_end.isoformat())

        with trace_operation("generate_digest", {"date": for_date.isoformat()}) as span:
            items = await self._snapshot(window_start, window_end)
            items_by_id = {m.id: m for m in items}

            clusters = self.clusterer.cluster(items)
            ranked = self.ranker.rank_clusters(clusters, items_by_id, window_end)
            document = self.assembler.assemble(
                for_date,
                window_start,
                window_end,
                ranked,
                items_by_id,
                content_items_count=self.db.count_window(window_start, window_end),
            )

            record = DigestRecord.from_document(document, generation_duration=time.time() - start_time)
            stored = self.db.save_digest(record, replace=override)
            span["clusters"] = len(stored.clusters)
            span["political_items"] = stored.political_items_count

        logger.info(
            "Digest complete | date=%s items=%d analyzed=%d clusters=%d sections=%d duration=%.1fs",
            for_date,
            stored.content_items_count,
            len(items),
            len(clusters),
            len(stored.clusters),
            stored.generation_duration,
        )
        return stored

    def _schedule_delivery(self, record: DigestRecord) -> None:
        task = asyncio.create_task(self._deliver(record))
        self._delivery_tasks.add(task)
        task.add_done_callback(self._delivery_tasks.discard)

    async def _deliver(self, record: DigestRecord) -> None:
        try:
            delivered = await self.deliver(record, self.config)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Digest delivery error | date=%s: %s", record.digest_date, e, exc_info=True)
            return

        if delivered:
            self.db.mark_digest_delivered(record.digest_date)
        else:
            logger.warning("Digest delivery incomplete | date=%s", record.digest_date)

    async def wait_for_deliveries(self) -> None:
        """Wait for background deliveries started so far."""
        if self._delivery_tasks:
            await asyncio.gather(*list(self._delivery_tasks), return_exceptions=True)

    async def run_forever(self) -> None:
        """Generate a digest at DIGEST_TIME every day until cancelled."""
        logger.info(
            "Scheduler started | digest_time=%s window=%dh",
            self.config.digest_time,
            self.config.digest_window_hours,
        )
        while True:
            now = datetime.now(timezone.utc)
            run_at = next_run_at(now, self.config)
            wait = (run_at - now).total_seconds()
            logger.info("Next digest | at=%s in=%.0fs", run_at.isoformat(), wait)

            try:
                await asyncio.sleep(wait)
                await self.generate_digest(run_at.date())
            except asyncio.CancelledError:
                logger.info("Scheduler cancelled")
                await self.wait_for_deliveries()
                raise
            except DigestAlreadyExists as e:
                logger.info("Digest skipped | %s", e)
            except Exception as e:
                logger.error("Digest run failed: %s", e, exc_info=True)


async def generate_digest(config: Config, for_date: date, override: bool = False) -> DigestRecord:
    """Generate one digest with a fresh store and wait for its delivery.

    Convenience wrapper for CLI usage.
    """
    db = Database(config.db_path)
    try:
        scheduler = DigestScheduler(config, db)
        record = await scheduler.generate_digest(for_date, override=override)
        await scheduler.wait_for_deliveries()
        return record
    finally:
        db.close()
