"""Database operations for the Dailies pipeline.

This module provides SQLite-based storage for captured content, the
classification log, political analyses, embeddings and daily digests.

Database Schema:
    content_items table:
        - id (INTEGER, PK): Item identifier
        - content_hash (TEXT, UNIQUE): SHA-256 dedup key
        - url, title, raw_content, source_domain (TEXT)
        - captured_at (INTEGER): Capture time (Unix epoch, UTC)
        - category (TEXT): Assigned category (NULL until classified)
        - status (TEXT): pending | processing | completed | failed | manual_review
        - confidence (REAL): Classifier confidence
        - manual_override (INTEGER): 0/1, human-fixed category
        - processed_at (INTEGER): Last classification time

    classification_results table (append-only):
        - One row per classification attempt, kept for audit

    political_analysis table:
        - content_id (INTEGER, PK): One analysis per item (upsert)
        - loaded_language, key_points (TEXT): JSON lists, see schema_version

    content_embeddings table:
        - content_id (INTEGER, PK)
        - embedding (BLOB): float32 vector

    general_summaries table:
        - content_id (INTEGER, PK): One summary per non-flagged item (upsert)
        - keywords (TEXT): JSON list of strings

    daily_digests table:
        - digest_date (TEXT, UNIQUE): One digest per date
        - clusters (TEXT): JSON list of cluster summaries, see schema_version
        - delivered_at (INTEGER): Written only by the delivery step

Features:
    - WAL mode for concurrent read/write access
    - Automatic schema migration for new columns
    - Status monotonicity enforced on every status write
    - Context manager support for auto-cleanup
"""

import json
import logging
import sqlite3
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

import numpy as np

from errors import DigestAlreadyExists, DigestPersistenceError, DuplicateContent
from models.analysis import LoadedPhrase, PoliticalAnalysis
from models.classification import ClassificationResult
from models.content import ContentItem, ProcessingStatus
from models.digest import ClusterSummary, DigestRecord
from models.general import GeneralSummary

logger = logging.getLogger(__name__)


def _to_epoch(value: datetime | None) -> int | None:
    """Convert a datetime to Unix epoch seconds; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


def _from_epoch(value: int | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value, timezone.utc)


def _embedding_to_blob(embedding: np.ndarray) -> bytes:
    """Convert numpy embedding to SQLite BLOB."""
    return np.asarray(embedding, dtype=np.float32).tobytes()


def _blob_to_embedding(blob: bytes) -> np.ndarray:
    """Convert SQLite BLOB to numpy embedding."""
    return np.frombuffer(blob, dtype=np.float32)


class Database:
    """SQLite store for the classification and digest pipeline.

    Example:
        >>> with Database("dailies.db") as db:
        ...     item = db.add_content(ContentItem(url="https://...", title="..."))
        ...     db.transition_status(item.id, ProcessingStatus.PROCESSING)
    """

    SCHEMA = """
    -- Captured content: one row per unique capture
    CREATE TABLE IF NOT EXISTS content_items (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        content_hash TEXT NOT NULL UNIQUE,  -- SHA-256 dedup key
        url TEXT NOT NULL,
        title TEXT NOT NULL,
        raw_content TEXT NOT NULL DEFAULT '',  -- Never updated after insert
        source_domain TEXT NOT NULL DEFAULT '',
        captured_at INTEGER NOT NULL,       -- Unix epoch (UTC)
        category TEXT,
        status TEXT NOT NULL DEFAULT 'pending',
        confidence REAL,
        manual_override INTEGER NOT NULL DEFAULT 0,
        processed_at INTEGER
    );

    CREATE INDEX IF NOT EXISTS idx_content_captured ON content_items(captured_at);
    CREATE INDEX IF NOT EXISTS idx_content_status ON content_items(status);
    CREATE INDEX IF NOT EXISTS idx_content_category_captured ON content_items(category, captured_at);

    -- Append-only classification log
    CREATE TABLE IF NOT EXISTS classification_results (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        content_id INTEGER NOT NULL REFERENCES content_items(id),
        category TEXT,
        confidence REAL NOT NULL DEFAULT 0,
        provider TEXT NOT NULL,
        raw_response TEXT NOT NULL DEFAULT '',
        status TEXT NOT NULL,
        classified_at INTEGER NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_classification_content ON classification_results(content_id);

    -- One analysis per flagged item
    CREATE TABLE IF NOT EXISTS political_analysis (
        content_id INTEGER PRIMARY KEY REFERENCES content_items(id),
        bias_score REAL NOT NULL,
        bias_confidence REAL NOT NULL,
        bias_label TEXT NOT NULL,
        quality_score INTEGER NOT NULL,
        credibility_score REAL NOT NULL,
        loaded_language TEXT NOT NULL DEFAULT '[]',  -- JSON list of phrases
        language_intensity TEXT NOT NULL DEFAULT 'minimal',
        language_score REAL NOT NULL DEFAULT 0,
        executive_summary TEXT NOT NULL DEFAULT '',
        detailed_summary TEXT NOT NULL DEFAULT '',
        key_points TEXT NOT NULL DEFAULT '[]',       -- JSON list of strings
        implications TEXT NOT NULL DEFAULT '',
        model_used TEXT NOT NULL DEFAULT '',
        schema_version INTEGER NOT NULL DEFAULT 1,
        analyzed_at INTEGER NOT NULL
    );

    -- Embedding vectors for clustering
    CREATE TABLE IF NOT EXISTS content_embeddings (
        content_id INTEGER PRIMARY KEY REFERENCES content_items(id),
        embedding BLOB NOT NULL
    );

    -- Extractive summary for non-flagged items
    CREATE TABLE IF NOT EXISTS general_summaries (
        content_id INTEGER PRIMARY KEY REFERENCES content_items(id),
        summary TEXT NOT NULL DEFAULT '',
        keywords TEXT NOT NULL DEFAULT '[]',  -- JSON list of strings
        word_count INTEGER NOT NULL DEFAULT 0,
        reading_time_minutes INTEGER NOT NULL DEFAULT 0,
        content_type TEXT NOT NULL DEFAULT 'article',
        processor_version TEXT NOT NULL DEFAULT '',
        processed_at INTEGER NOT NULL
    );

    -- One digest per date
    CREATE TABLE IF NOT EXISTS daily_digests (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        digest_date TEXT NOT NULL UNIQUE,   -- YYYY-MM-DD
        window_start INTEGER NOT NULL,
        window_end INTEGER NOT NULL,
        content_items_count INTEGER NOT NULL DEFAULT 0,
        political_items_count INTEGER NOT NULL DEFAULT 0,
        clusters TEXT NOT NULL DEFAULT '[]',  -- JSON list of cluster summaries
        digest_markdown TEXT NOT NULL DEFAULT '',
        generation_duration REAL NOT NULL DEFAULT 0,
        schema_version INTEGER NOT NULL DEFAULT 1,
        created_at INTEGER NOT NULL,
        delivered_at INTEGER
    );
    """

    path: Path
    conn: sqlite3.Connection

    def __init__(self, path: Path | str):
        """Initialize database connection.

        Creates the database file if it doesn't exist and sets up
        the schema. Uses WAL mode for better concurrent access.

        Args:
            path: Path to SQLite database file
        """
        self.path = Path(path)
        self.conn = sqlite3.connect(str(self.path))
        self.conn.row_factory = sqlite3.Row  # Enable dict-like row access

        # WAL mode allows concurrent readers during writes
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA foreign_keys=ON")
        self._init_schema()
        logger.debug("Database initialized | path=%s", self.path)

    def _init_schema(self) -> None:
        """Create tables and indexes if they don't exist.

        Also runs any pending migrations for schema evolution.
        """
        self.conn.executescript(self.SCHEMA)
        self.conn.commit()
        self._migrate()

    def _migrate(self) -> None:
        """Run schema migrations for backwards compatibility.

        Adds columns that were added in later versions without
        requiring a database rebuild.
        """
        cursor = self.conn.execute("PRAGMA table_info(political_analysis)")
        columns = {row["name"] for row in cursor.fetchall()}

        # Migration: language intensity added after the first schema version
        if "language_score" not in columns:
            self.conn.execute("ALTER TABLE political_analysis ADD COLUMN language_score REAL NOT NULL DEFAULT 0")
            self.conn.commit()
            logger.info("Database migrated | added column=language_score")

    # === Content items ===

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> ContentItem:
        return ContentItem(
            id=row["id"],
            url=row["url"],
            title=row["title"],
            raw_content=row["raw_content"],
            source_domain=row["source_domain"],
            captured_at=_from_epoch(row["captured_at"]),
            content_hash=row["content_hash"],
            category=row["category"],
            status=ProcessingStatus(row["status"]),
            confidence=row["confidence"],
            manual_override=bool(row["manual_override"]),
            processed_at=_from_epoch(row["processed_at"]),
        )

    def add_content(self, item: ContentItem, commit: bool = True) -> ContentItem:
        """Insert a captured item.

        Args:
            item: Item to store (its id is ignored)
            commit: Whether to commit immediately (False for batch operations)

        Returns:
            Stored item with its id

        Raises:
            DuplicateContent: If an item with the same content hash exists
        """
        try:
            cursor = self.conn.execute(
                """
                INSERT INTO content_items
                (content_hash, url, title, raw_content, source_domain, captured_at,
                 category, status, confidence, manual_override, processed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    item.content_hash,
                    item.url,
                    item.title,
                    item.raw_content,
                    item.source_domain,
                    _to_epoch(item.captured_at),
                    item.category,
                    item.status.value,
                    item.confidence,
                    int(item.manual_override),
                    _to_epoch(item.processed_at),
                ),
            )
        except sqlite3.IntegrityError:
            existing = self.find_by_hash(item.content_hash)
            raise DuplicateContent(item.content_hash, existing.id if existing else -1)
        if commit:
            self.conn.commit()
        logger.debug("Content saved | id=%d hash=%s", cursor.lastrowid, item.content_hash[:12])
        return item.model_copy(update={"id": cursor.lastrowid})

    def get_content(self, content_id: int) -> ContentItem | None:
        """Get an item by id, or None if not found."""
        row = self.conn.execute("SELECT * FROM content_items WHERE id = ?", (content_id,)).fetchone()
        return self._row_to_item(row) if row else None

    def find_by_hash(self, content_hash: str) -> ContentItem | None:
        """Get an item by content hash, or None if not found."""
        row = self.conn.execute(
            "SELECT * FROM content_items WHERE content_hash = ?", (content_hash,)
        ).fetchone()
        return self._row_to_item(row) if row else None

    def transition_status(self, content_id: int, target: ProcessingStatus, commit: bool = True) -> ContentItem:
        """Move an item to a new status.

        Raises:
            KeyError: If the item does not exist
            InvalidStatusTransition: If the change is not allowed
        """
        item = self.get_content(content_id)
        if item is None:
            raise KeyError(f"Content item {content_id} not found")
        updated = item.transition(target)
        self.conn.execute(
            "UPDATE content_items SET status = ? WHERE id = ?",
            (target.value, content_id),
        )
        if commit:
            self.conn.commit()
        return updated

    def update_classification(
        self,
        content_id: int,
        status: ProcessingStatus,
        category: str | None,
        confidence: float | None,
        processed_at: datetime | None = None,
        commit: bool = True,
    ) -> ContentItem:
        """Record the outcome of a classification on the item row.

        raw_content is never written here.

        Raises:
            KeyError: If the item does not exist
            InvalidStatusTransition: If the change is not allowed
        """
        item = self.get_content(content_id)
        if item is None:
            raise KeyError(f"Content item {content_id} not found")
        item.transition(status)
        processed_at = processed_at or datetime.now(timezone.utc)
        self.conn.execute(
            """
            UPDATE content_items
            SET status = ?, category = ?, confidence = ?, processed_at = ?
            WHERE id = ?
            """,
            (status.value, category, confidence, _to_epoch(processed_at), content_id),
        )
        if commit:
            self.conn.commit()
        return item.model_copy(update={
            "status": status,
            "category": category,
            "confidence": confidence,
            "processed_at": _from_epoch(_to_epoch(processed_at)),
        })

    def override_category(self, content_id: int, category: str, flagged_category: str) -> ContentItem:
        """Apply a human category decision.

        The item is marked completed with full confidence and is never
        re-classified automatically afterwards. Derived rows that no longer
        match the category are removed in the same transaction: analysis and
        embedding when the item leaves the flagged category, the general
        summary when it enters it. The next processing run fills in whichever
        is now missing.

        Raises:
            KeyError: If the item does not exist
        """
        item = self.get_content(content_id)
        if item is None:
            raise KeyError(f"Content item {content_id} not found")
        now = datetime.now(timezone.utc)
        try:
            self.conn.execute(
                """
                UPDATE content_items
                SET category = ?, status = ?, confidence = 1.0, manual_override = 1, processed_at = ?
                WHERE id = ?
                """,
                (category, ProcessingStatus.COMPLETED.value, _to_epoch(now), content_id),
            )
            if category == flagged_category:
                self.conn.execute("DELETE FROM general_summaries WHERE content_id = ?", (content_id,))
            else:
                self.conn.execute("DELETE FROM political_analysis WHERE content_id = ?", (content_id,))
                self.conn.execute("DELETE FROM content_embeddings WHERE content_id = ?", (content_id,))
            self.conn.commit()
        except sqlite3.Error:
            self.conn.rollback()
            raise
        logger.info("Category overridden | id=%d category=%s previous=%s", content_id, category, item.category)
        return self.get_content(content_id)

    def _select_items(self, query: str, params: tuple, limit: int | None) -> list[ContentItem]:
        if limit is not None:
            query += " LIMIT ?"
            params = (*params, limit)
        return [self._row_to_item(row) for row in self.conn.execute(query, params).fetchall()]

    def pending_items(self, limit: int | None = None) -> list[ContentItem]:
        """Items waiting for classification, oldest first.

        Includes items left in 'processing' by an interrupted run. Items with
        a manual override are excluded.
        """
        query = """
            SELECT * FROM content_items
            WHERE status IN ('pending', 'processing') AND manual_override = 0
            ORDER BY captured_at, id
        """
        return self._select_items(query, (), limit)

    def unanalyzed_flagged(self, flagged_category: str, limit: int | None = None) -> list[ContentItem]:
        """Completed flagged items with no analysis row, oldest first.

        These are items whose analysis exhausted every provider, or items a
        human moved into the flagged category.
        """
        query = """
            SELECT c.* FROM content_items c
            LEFT JOIN political_analysis a ON a.content_id = c.id
            WHERE c.status = 'completed' AND c.category = ? AND a.content_id IS NULL
            ORDER BY c.captured_at, c.id
        """
        return self._select_items(query, (flagged_category,), limit)

    def unsummarized_general(self, flagged_category: str, limit: int | None = None) -> list[ContentItem]:
        """Completed non-flagged items with no general summary, oldest first."""
        query = """
            SELECT c.* FROM content_items c
            LEFT JOIN general_summaries g ON g.content_id = c.id
            WHERE c.status = 'completed' AND c.category IS NOT NULL AND c.category != ?
              AND g.content_id IS NULL
            ORDER BY c.captured_at, c.id
        """
        return self._select_items(query, (flagged_category,), limit)

    def fetch_window(
        self,
        start: datetime,
        end: datetime,
        category: str | None = None,
        status: ProcessingStatus | None = None,
    ) -> list[ContentItem]:
        """Items captured in [start, end), optionally filtered, ordered by id."""
        query = "SELECT * FROM content_items WHERE captured_at >= ? AND captured_at < ?"
        params: list[Any] = [_to_epoch(start), _to_epoch(end)]
        if category is not None:
            query += " AND category = ?"
            params.append(category)
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY id"
        return [self._row_to_item(row) for row in self.conn.execute(query, params).fetchall()]

    def count_window(self, start: datetime, end: datetime) -> int:
        """Number of items captured in [start, end)."""
        row = self.conn.execute(
            "SELECT COUNT(*) AS total FROM content_items WHERE captured_at >= ? AND captured_at < ?",
            (_to_epoch(start), _to_epoch(end)),
        ).fetchone()
        return row["total"] or 0

    def fetch_analyzed_window(
        self,
        start: datetime,
        end: datetime,
        category: str,
    ) -> list[tuple[ContentItem, PoliticalAnalysis]]:
        """Completed items of a category with their analysis, in one consistent read."""
        cursor = self.conn.execute(
            """
            SELECT c.*, a.*
            FROM content_items c
            JOIN political_analysis a ON a.content_id = c.id
            WHERE c.captured_at >= ? AND c.captured_at < ?
              AND c.category = ? AND c.status = 'completed'
            ORDER BY c.id
            """,
            (_to_epoch(start), _to_epoch(end), category),
        )
        # Column names of the two tables do not overlap
        return [(self._row_to_item(row), self._row_to_analysis(row)) for row in cursor.fetchall()]

    # === Classification log ===

    def append_classification(self, result: ClassificationResult, commit: bool = True) -> None:
        """Append one attempt to the classification log."""
        self.conn.execute(
            """
            INSERT INTO classification_results
            (content_id, category, confidence, provider, raw_response, status, classified_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                result.content_id,
                result.category.value if result.category else None,
                result.confidence,
                result.provider,
                result.raw_response,
                result.status.value,
                _to_epoch(result.classified_at),
            ),
        )
        if commit:
            self.conn.commit()

    def classification_history(self, content_id: int) -> list[ClassificationResult]:
        """All classification attempts for an item, oldest first."""
        cursor = self.conn.execute(
            "SELECT * FROM classification_results WHERE content_id = ? ORDER BY id",
            (content_id,),
        )
        return [
            ClassificationResult(
                content_id=row["content_id"],
                category=row["category"],
                confidence=row["confidence"],
                provider=row["provider"],
                raw_response=row["raw_response"],
                status=ProcessingStatus(row["status"]),
                classified_at=_from_epoch(row["classified_at"]),
            )
            for row in cursor.fetchall()
        ]

    # === Political analysis ===

    def upsert_analysis(self, analysis: PoliticalAnalysis, commit: bool = True) -> None:
        """Insert or overwrite the analysis for an item."""
        self.conn.execute(
            """
            INSERT INTO political_analysis
            (content_id, bias_score, bias_confidence, bias_label, quality_score, credibility_score,
             loaded_language, language_intensity, language_score, executive_summary,
             detailed_summary, key_points, implications, model_used, schema_version, analyzed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(content_id) DO UPDATE SET
                bias_score = excluded.bias_score,
                bias_confidence = excluded.bias_confidence,
                bias_label = excluded.bias_label,
                quality_score = excluded.quality_score,
                credibility_score = excluded.credibility_score,
                loaded_language = excluded.loaded_language,
                language_intensity = excluded.language_intensity,
                language_score = excluded.language_score,
                executive_summary = excluded.executive_summary,
                detailed_summary = excluded.detailed_summary,
                key_points = excluded.key_points,
                implications = excluded.implications,
                model_used = excluded.model_used,
                schema_version = excluded.schema_version,
                analyzed_at = excluded.analyzed_at
            """,
            (
                analysis.content_id,
                analysis.bias_score,
                analysis.bias_confidence,
                analysis.bias_label.value,
                analysis.quality_score,
                analysis.credibility_score,
                json.dumps([p.model_dump() for p in analysis.loaded_language], ensure_ascii=False),
                analysis.language_intensity,
                analysis.language_score,
                analysis.executive_summary,
                analysis.detailed_summary,
                json.dumps(analysis.key_points, ensure_ascii=False),
                analysis.implications,
                analysis.model_used,
                analysis.schema_version,
                _to_epoch(analysis.analyzed_at),
            ),
        )
        if commit:
            self.conn.commit()
        logger.debug("Analysis saved | content_id=%d", analysis.content_id)

    @staticmethod
    def _row_to_analysis(row: sqlite3.Row) -> PoliticalAnalysis:
        return PoliticalAnalysis(
            content_id=row["content_id"],
            bias_score=row["bias_score"],
            bias_confidence=row["bias_confidence"],
            bias_label=row["bias_label"],
            quality_score=row["quality_score"],
            credibility_score=row["credibility_score"],
            loaded_language=[LoadedPhrase.model_validate(p) for p in json.loads(row["loaded_language"])],
            language_intensity=row["language_intensity"],
            language_score=row["language_score"],
            executive_summary=row["executive_summary"],
            detailed_summary=row["detailed_summary"],
            key_points=json.loads(row["key_points"]),
            implications=row["implications"],
            model_used=row["model_used"],
            schema_version=row["schema_version"],
            analyzed_at=_from_epoch(row["analyzed_at"]),
        )

    def get_analysis(self, content_id: int) -> PoliticalAnalysis | None:
        """Get the analysis for an item, or None if not analyzed."""
        row = self.conn.execute(
            "SELECT * FROM political_analysis WHERE content_id = ?", (content_id,)
        ).fetchone()
        return self._row_to_analysis(row) if row else None

    def count_analyses(self, content_id: int) -> int:
        row = self.conn.execute(
            "SELECT COUNT(*) AS total FROM political_analysis WHERE content_id = ?", (content_id,)
        ).fetchone()
        return row["total"]

    # === General summaries ===

    def upsert_general_summary(self, summary: GeneralSummary, commit: bool = True) -> None:
        """Insert or overwrite the general summary for an item."""
        self.conn.execute(
            """
            INSERT INTO general_summaries
            (content_id, summary, keywords, word_count, reading_time_minutes,
             content_type, processor_version, processed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(content_id) DO UPDATE SET
                summary = excluded.summary,
                keywords = excluded.keywords,
                word_count = excluded.word_count,
                reading_time_minutes = excluded.reading_time_minutes,
                content_type = excluded.content_type,
                processor_version = excluded.processor_version,
                processed_at = excluded.processed_at
            """,
            (
                summary.content_id,
                summary.summary,
                json.dumps(summary.keywords, ensure_ascii=False),
                summary.word_count,
                summary.reading_time_minutes,
                summary.content_type,
                summary.processor_version,
                _to_epoch(summary.processed_at),
            ),
        )
        if commit:
            self.conn.commit()
        logger.debug("General summary saved | content_id=%d", summary.content_id)

    def get_general_summary(self, content_id: int) -> GeneralSummary | None:
        row = self.conn.execute(
            "SELECT * FROM general_summaries WHERE content_id = ?", (content_id,)
        ).fetchone()
        if row is None:
            return None
        return GeneralSummary(
            content_id=row["content_id"],
            summary=row["summary"],
            keywords=json.loads(row["keywords"]),
            word_count=row["word_count"],
            reading_time_minutes=row["reading_time_minutes"],
            content_type=row["content_type"],
            processor_version=row["processor_version"],
            processed_at=_from_epoch(row["processed_at"]),
        )

    # === Embeddings ===

    def save_embedding(self, content_id: int, embedding: np.ndarray, commit: bool = True) -> None:
        """Save the embedding vector for an item.

        Args:
            content_id: Item id (must exist in content_items)
            embedding: 1-D numpy array
            commit: Whether to commit immediately
        """
        self.conn.execute(
            "INSERT OR REPLACE INTO content_embeddings (content_id, embedding) VALUES (?, ?)",
            (content_id, _embedding_to_blob(embedding)),
        )
        if commit:
            self.conn.commit()
        logger.debug("Embedding saved | content_id=%d dim=%d", content_id, len(embedding))

    def get_embeddings(self, content_ids: list[int]) -> dict[int, np.ndarray]:
        """Stored embeddings for the given items (missing ids are absent)."""
        if not content_ids:
            return {}
        placeholders = ",".join("?" * len(content_ids))
        cursor = self.conn.execute(
            f"SELECT content_id, embedding FROM content_embeddings WHERE content_id IN ({placeholders})",
            list(content_ids),
        )
        return {row["content_id"]: _blob_to_embedding(row["embedding"]) for row in cursor.fetchall()}

    # === Digests ===

    @staticmethod
    def _row_to_digest(row: sqlite3.Row) -> DigestRecord:
        return DigestRecord(
            id=row["id"],
            digest_date=date.fromisoformat(row["digest_date"]),
            window_start=_from_epoch(row["window_start"]),
            window_end=_from_epoch(row["window_end"]),
            content_items_count=row["content_items_count"],
            political_items_count=row["political_items_count"],
            clusters=[ClusterSummary.model_validate(c) for c in json.loads(row["clusters"])],
            digest_markdown=row["digest_markdown"],
            generation_duration=row["generation_duration"],
            schema_version=row["schema_version"],
            created_at=_from_epoch(row["created_at"]),
            delivered_at=_from_epoch(row["delivered_at"]),
        )

    def get_digest(self, digest_date: date) -> DigestRecord | None:
        """Get the digest for a date, or None if none exists."""
        row = self.conn.execute(
            "SELECT * FROM daily_digests WHERE digest_date = ?", (digest_date.isoformat(),)
        ).fetchone()
        return self._row_to_digest(row) if row else None

    def count_digests(self, digest_date: date) -> int:
        row = self.conn.execute(
            "SELECT COUNT(*) AS total FROM daily_digests WHERE digest_date = ?",
            (digest_date.isoformat(),),
        ).fetchone()
        return row["total"]

    def save_digest(self, record: DigestRecord, replace: bool = False) -> DigestRecord:
        """Persist a digest.

        Args:
            record: Digest to store
            replace: Overwrite an existing digest for the same date

        Returns:
            Stored record with its id

        Raises:
            DigestAlreadyExists: If a digest for the date exists and replace is False
            DigestPersistenceError: If the write fails for any other reason
        """
        clusters_json = json.dumps([c.model_dump(mode="json") for c in record.clusters], ensure_ascii=False)
        try:
            if replace:
                self.conn.execute(
                    "DELETE FROM daily_digests WHERE digest_date = ?", (record.digest_date.isoformat(),)
                )
            cursor = self.conn.execute(
                """
                INSERT INTO daily_digests
                (digest_date, window_start, window_end, content_items_count, political_items_count,
                 clusters, digest_markdown, generation_duration, schema_version, created_at, delivered_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, NULL)
                """,
                (
                    record.digest_date.isoformat(),
                    _to_epoch(record.window_start),
                    _to_epoch(record.window_end),
                    record.content_items_count,
                    record.political_items_count,
                    clusters_json,
                    record.digest_markdown,
                    record.generation_duration,
                    record.schema_version,
                    _to_epoch(record.created_at),
                ),
            )
            self.conn.commit()
        except sqlite3.IntegrityError as e:
            self.conn.rollback()
            raise DigestAlreadyExists(record.digest_date) from e
        except sqlite3.Error as e:
            self.conn.rollback()
            raise DigestPersistenceError(f"Failed to save digest for {record.digest_date}: {e}") from e
        logger.info("Digest saved | date=%s id=%d", record.digest_date, cursor.lastrowid)
        return record.model_copy(update={"id": cursor.lastrowid, "delivered_at": None})

    def mark_digest_delivered(self, digest_date: date, delivered_at: datetime | None = None) -> None:
        """Record that a digest was delivered."""
        delivered_at = delivered_at or datetime.now(timezone.utc)
        self.conn.execute(
            "UPDATE daily_digests SET delivered_at = ? WHERE digest_date = ?",
            (_to_epoch(delivered_at), digest_date.isoformat()),
        )
        self.conn.commit()

    def recent_digests(self, limit: int = 7) -> list[DigestRecord]:
        cursor = self.conn.execute(
            "SELECT * FROM daily_digests ORDER BY digest_date DESC LIMIT ?", (limit,)
        )
        return [self._row_to_digest(row) for row in cursor.fetchall()]

    # === Maintenance ===

    def commit(self) -> None:
        """Commit pending changes."""
        self.conn.commit()

    def recent(self, hours: int, category: str) -> list[dict[str, Any]]:
        """Analyzed items of a category captured in the last N hours.

        Args:
            hours: Number of hours to look back
            category: Category to list (usually the flagged one)

        Returns:
            List of records as dictionaries, newest first
        """
        cutoff = _to_epoch(datetime.now(timezone.utc)) - hours * 3600
        cursor = self.conn.execute(
            """
            SELECT c.id, c.title, c.url, c.captured_at, c.status,
                   a.bias_label, a.quality_score, a.executive_summary
            FROM content_items c
            JOIN political_analysis a ON a.content_id = c.id
            WHERE c.category = ? AND c.captured_at >= ?
            ORDER BY c.captured_at DESC
            """,
            (category, cutoff),
        )
        return [dict(row) for row in cursor.fetchall()]

    def stats(self, flagged_category: str | None = None) -> dict[str, int]:
        """Get database statistics.

        Args:
            flagged_category: When given, also count completed flagged items
                still waiting for an analysis

        Returns:
            Dictionary with item counts per status plus analysis, summary, embedding and digest counts
        """
        counts = {status.value: 0 for status in ProcessingStatus}
        for row in self.conn.execute("SELECT status, COUNT(*) AS n FROM content_items GROUP BY status"):
            counts[row["status"]] = row["n"]
        counts["total"] = sum(counts.values())

        for key, table in (
            ("analyzed", "political_analysis"),
            ("summarized", "general_summaries"),
            ("embedded", "content_embeddings"),
            ("digests", "daily_digests"),
            ("classification_attempts", "classification_results"),
        ):
            counts[key] = self.conn.execute(f"SELECT COUNT(*) AS n FROM {table}").fetchone()["n"]
        if flagged_category is not None:
            counts["awaiting_analysis"] = self.conn.execute(
                """
                SELECT COUNT(*) AS n FROM content_items c
                LEFT JOIN political_analysis a ON a.content_id = c.id
                WHERE c.status = 'completed' AND c.category = ? AND a.content_id IS NULL
                """,
                (flagged_category,),
            ).fetchone()["n"]
        return counts

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()

    def __enter__(self) -> "Database":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
