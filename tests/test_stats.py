"""Tests for card and review statistics."""

from datetime import timedelta

import pytest

from backend.config import utcnow
from backend.models.review_log import ReviewLog
from backend.srs.fsrs import Rating, State
from backend.srs.stats import card_stats, review_stats
from backend.srs.stores import CardStore


def log_entry(card_id: int, rating: Rating, reviewed_at) -> ReviewLog:
    return ReviewLog(
        card_id=card_id,
        rating=int(rating),
        state=int(State.REVIEW),
        due=reviewed_at + timedelta(days=3),
        stability=5.0,
        difficulty=5.0,
        elapsed_days=2,
        scheduled_days=3,
        stability_before=4.0,
        difficulty_before=5.0,
        reviewed_at=reviewed_at,
    )


class TestCardStats:
    @pytest.mark.asyncio
    async def test_counts_by_status(self, db, make_card) -> None:
        await make_card(State.NEW)
        await make_card(State.NEW)
        await make_card(State.LEARNING, stability=1.0, difficulty=5.0)
        await make_card(State.RELEARNING, stability=1.0, difficulty=5.0)
        await make_card(State.REVIEW, stability=5.0, difficulty=5.0)
        await make_card(State.REVIEW, stability=40.0, difficulty=3.0)

        stats = await card_stats(CardStore(db), known_stability_days=21.0)
        assert (stats.new, stats.learning, stats.review, stats.known) == (2, 2, 1, 1)
        assert stats.total == 6

    @pytest.mark.asyncio
    async def test_empty(self, db) -> None:
        stats = await card_stats(CardStore(db))
        assert stats.total == 0


class TestReviewStats:
    @pytest.mark.asyncio
    async def test_retention_and_streak(self, db, make_card) -> None:
        card = await make_card(State.REVIEW, stability=5.0, difficulty=5.0)
        now = utcnow()
        db.add_all(
            [
                log_entry(card.id, Rating.GOOD, now),
                log_entry(card.id, Rating.AGAIN, now - timedelta(days=1)),
                log_entry(card.id, Rating.HARD, now - timedelta(days=2)),
                log_entry(card.id, Rating.GOOD, now - timedelta(days=60)),
            ]
        )
        await db.commit()

        stats = await review_stats(db, now)
        assert stats.total_reviews == 4
        assert stats.average_retention == pytest.approx(0.667)
        assert stats.streak_days == 3

    @pytest.mark.asyncio
    async def test_streak_broken_without_today(self, db, make_card) -> None:
        card = await make_card(State.REVIEW, stability=5.0, difficulty=5.0)
        now = utcnow()
        db.add(log_entry(card.id, Rating.GOOD, now - timedelta(days=2)))
        await db.commit()

        stats = await review_stats(db, now)
        assert stats.streak_days == 0

    @pytest.mark.asyncio
    async def test_no_reviews(self, db) -> None:
        stats = await review_stats(db)
        assert stats.total_reviews == 0
        assert stats.average_retention is None
        assert stats.streak_days == 0
