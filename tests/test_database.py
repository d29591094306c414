"""
Database Tests
==============

Storage contract of the SQLite store:

1. Content hash uniqueness (duplicate captures are rejected)
2. Status monotonicity on every status write
3. Window queries and the analyzed-items snapshot
4. Embedding storage
5. One digest per date
6. Follow-up queries, override cleanup and general summaries
"""

from datetime import date, datetime, timedelta, timezone

import numpy as np
import pytest

from database import Database
from errors import DigestAlreadyExists, DuplicateContent, InvalidStatusTransition
from models.analysis import BiasLabel, PoliticalAnalysis
from models.content import ProcessingStatus
from models.digest import ClusterSummary, DigestMember, DigestRecord
from models.general import GeneralSummary

from tests.conftest import analysis_result, store_classified


def make_record(day: date, **overrides) -> DigestRecord:
    values = {
        "digest_date": day,
        "window_start": datetime(2024, 4, 30, 7, 0, tzinfo=timezone.utc),
        "window_end": datetime(2024, 5, 1, 7, 0, tzinfo=timezone.utc),
        "content_items_count": 3,
        "political_items_count": 1,
        "clusters": [
            ClusterSummary(
                cluster_id=0,
                label="Budget vote",
                representative_id=1,
                importance=0.5,
                members=[DigestMember(content_id=1, title="Budget", url="https://x.com/1",
                                      quality_score=8, bias_label="center")],
            )
        ],
        "digest_markdown": "# Daily Digest",
    }
    values.update(overrides)
    return DigestRecord(**values)


# ============================================================================
# TEST: CONTENT ITEMS
# ============================================================================

class TestContentItems:
    """Insert, dedup and lookup."""

    def test_add_assigns_id(self, db, make_item):
        stored = db.add_content(make_item(title="Budget deal"))

        assert stored.id is not None
        fetched = db.get_content(stored.id)
        assert fetched.title == "Budget deal"
        assert fetched.status == ProcessingStatus.PENDING
        assert fetched.source_domain == "example.com"

    def test_duplicate_hash_is_rejected(self, db, make_item, now):
        first = db.add_content(make_item(title="Same", url="https://example.com/a", raw_content="Body"))
        again = make_item(title="Same", url="https://EXAMPLE.com/a/", raw_content="Body",
                          captured_at=now)

        with pytest.raises(DuplicateContent) as exc_info:
            db.add_content(again)

        assert exc_info.value.existing_id == first.id
        assert db.stats()["total"] == 1

    def test_captured_at_round_trips_as_utc(self, db, make_item):
        when = datetime(2024, 5, 1, 3, 15, tzinfo=timezone.utc)
        stored = db.add_content(make_item(captured_at=when))

        assert db.get_content(stored.id).captured_at == when

    def test_pending_items_oldest_first(self, db, make_item, now):
        late = db.add_content(make_item(captured_at=now))
        early = db.add_content(make_item(captured_at=now - timedelta(hours=5)))

        assert [i.id for i in db.pending_items()] == [early.id, late.id]
        assert len(db.pending_items(limit=1)) == 1

    def test_interrupted_items_are_pending(self, db, make_item):
        item = db.add_content(make_item())
        db.transition_status(item.id, ProcessingStatus.PROCESSING)

        assert [i.id for i in db.pending_items()] == [item.id]


# ============================================================================
# TEST: STATUS MONOTONICITY
# ============================================================================

class TestStatusWrites:
    """Status never moves backwards in storage."""

    def test_completed_cannot_return_to_pending(self, db, make_item):
        item = store_classified(db, make_item())

        with pytest.raises(InvalidStatusTransition):
            db.transition_status(item.id, ProcessingStatus.PENDING)
        assert db.get_content(item.id).status == ProcessingStatus.COMPLETED

    def test_pending_cannot_jump_to_completed(self, db, make_item):
        item = db.add_content(make_item())

        with pytest.raises(InvalidStatusTransition):
            db.update_classification(item.id, ProcessingStatus.COMPLETED, "General", 0.9)

    def test_unknown_item(self, db):
        with pytest.raises(KeyError):
            db.transition_status(999, ProcessingStatus.PROCESSING)


# ============================================================================
# TEST: WINDOWS
# ============================================================================

class TestWindows:
    """Half-open [start, end) capture windows."""

    def test_window_bounds(self, db, make_item):
        start = datetime(2024, 4, 30, 7, 0, tzinfo=timezone.utc)
        end = start + timedelta(hours=24)
        at_start = db.add_content(make_item(captured_at=start))
        db.add_content(make_item(captured_at=end))
        db.add_content(make_item(captured_at=start - timedelta(seconds=1)))

        items = db.fetch_window(start, end)

        assert [i.id for i in items] == [at_start.id]
        assert db.count_window(start, end) == 1

    def test_analyzed_window_joins_analysis(self, db, make_item, now):
        flagged = store_classified(db, make_item())
        unanalyzed = store_classified(db, make_item())
        store_classified(db, make_item(), category_name="Sports")
        result = analysis_result(quality_score=8)
        db.upsert_analysis(PoliticalAnalysis(
            content_id=flagged.id,
            bias_score=result.bias_score,
            bias_confidence=result.bias_confidence,
            bias_label=BiasLabel.CENTER,
            quality_score=result.quality_score,
            credibility_score=result.credibility_score,
            executive_summary=result.executive_summary,
        ))

        rows = db.fetch_analyzed_window(now - timedelta(hours=24), now, "US_Politics_News")

        assert [(item.id, analysis.quality_score) for item, analysis in rows] == [(flagged.id, 8)]
        assert unanalyzed.id not in [item.id for item, _ in rows]


# ============================================================================
# TEST: FOLLOW-UP WORK AND OVERRIDES
# ============================================================================

FLAGGED = "US_Politics_News"


def save_analysis(db, content_id: int) -> None:
    db.upsert_analysis(PoliticalAnalysis(
        content_id=content_id,
        bias_score=0.0,
        bias_confidence=0.8,
        bias_label=BiasLabel.CENTER,
        quality_score=7,
        credibility_score=8.0,
        executive_summary="Lawmakers debated the budget.",
    ))


class TestFollowUps:
    """Completed items missing an analysis or summary, and human overrides."""

    def test_unanalyzed_flagged(self, db, make_item):
        waiting = store_classified(db, make_item())
        done = store_classified(db, make_item())
        save_analysis(db, done.id)
        store_classified(db, make_item(), category_name="Technology")
        db.add_content(make_item())

        assert [i.id for i in db.unanalyzed_flagged(FLAGGED)] == [waiting.id]
        assert db.stats(FLAGGED)["awaiting_analysis"] == 1
        assert "awaiting_analysis" not in db.stats()

    def test_unsummarized_general(self, db, make_item):
        store_classified(db, make_item())
        tech = store_classified(db, make_item(), category_name="Technology")
        sports = store_classified(db, make_item(), category_name="Sports")
        db.upsert_general_summary(GeneralSummary(content_id=sports.id, summary="Match report."))

        assert [i.id for i in db.unsummarized_general(FLAGGED)] == [tech.id]
        assert db.unsummarized_general(FLAGGED, limit=0) == []

    def test_override_out_of_flagged_removes_analysis(self, db, make_item):
        item = store_classified(db, make_item())
        save_analysis(db, item.id)
        db.save_embedding(item.id, np.array([1.0, 0.0]))

        updated = db.override_category(item.id, "Technology", FLAGGED)

        assert updated.category == "Technology"
        assert updated.manual_override
        assert db.get_analysis(item.id) is None
        assert db.get_embeddings([item.id]) == {}
        assert [i.id for i in db.unsummarized_general(FLAGGED)] == [item.id]

    def test_override_into_flagged_awaits_analysis(self, db, make_item):
        item = store_classified(db, make_item(), category_name="Technology")
        db.upsert_general_summary(GeneralSummary(content_id=item.id, summary="Gadget news."))

        db.override_category(item.id, FLAGGED, FLAGGED)

        assert db.get_general_summary(item.id) is None
        assert [i.id for i in db.unanalyzed_flagged(FLAGGED)] == [item.id]

    def test_override_unknown_item(self, db):
        with pytest.raises(KeyError):
            db.override_category(999, "Sports", FLAGGED)

    def test_general_summary_round_trip(self, db, make_item):
        item = store_classified(db, make_item(), category_name="Sports")
        db.upsert_general_summary(GeneralSummary(
            content_id=item.id, summary="First.", keywords=["match", "league"], word_count=500, reading_time_minutes=2,
        ))
        db.upsert_general_summary(GeneralSummary(content_id=item.id, summary="Second.", keywords=["final"]))

        stored = db.get_general_summary(item.id)
        assert stored.summary == "Second."
        assert stored.keywords == ["final"]
        assert db.stats()["summarized"] == 1


# ============================================================================
# TEST: EMBEDDINGS
# ============================================================================

class TestEmbeddings:
    """Vectors stored as float32 blobs."""

    def test_save_and_load(self, db, make_item):
        item = db.add_content(make_item())
        db.save_embedding(item.id, np.array([0.1, 0.2, 0.3]))

        vectors = db.get_embeddings([item.id, 12345])

        assert list(vectors) == [item.id]
        np.testing.assert_allclose(vectors[item.id], [0.1, 0.2, 0.3], rtol=1e-6)

    def test_empty_request(self, db):
        assert db.get_embeddings([]) == {}


# ============================================================================
# TEST: DIGESTS
# ============================================================================

class TestDigests:
    """At most one digest per date."""

    def test_save_and_get(self, db):
        day = date(2024, 5, 1)
        stored = db.save_digest(make_record(day))

        fetched = db.get_digest(day)
        assert fetched.id == stored.id
        assert fetched.clusters[0].label == "Budget vote"
        assert fetched.clusters[0].member_ids == [1]
        assert fetched.delivered_at is None

    def test_second_digest_for_date_is_rejected(self, db):
        day = date(2024, 5, 1)
        db.save_digest(make_record(day))

        with pytest.raises(DigestAlreadyExists):
            db.save_digest(make_record(day, content_items_count=99))

        assert db.count_digests(day) == 1
        assert db.get_digest(day).content_items_count == 3

    def test_replace_overwrites(self, db):
        day = date(2024, 5, 1)
        db.save_digest(make_record(day))
        db.save_digest(make_record(day, content_items_count=99), replace=True)

        assert db.count_digests(day) == 1
        assert db.get_digest(day).content_items_count == 99

    def test_mark_delivered(self, db):
        day = date(2024, 5, 1)
        db.save_digest(make_record(day))
        db.mark_digest_delivered(day)

        assert db.get_digest(day).delivered_at is not None


# ============================================================================
# TEST: MAINTENANCE
# ============================================================================

class TestMaintenance:
    """Stats and context manager."""

    def test_stats_counts_by_status(self, db, make_item):
        db.add_content(make_item())
        store_classified(db, make_item())

        stats = db.stats()

        assert stats["total"] == 2
        assert stats["pending"] == 1
        assert stats["completed"] == 1
        assert stats["digests"] == 0

    def test_context_manager_closes(self, tmp_path):
        with Database(tmp_path / "ctx.db") as db:
            db.stats()
        with pytest.raises(Exception):
            db.conn.execute("SELECT 1")
