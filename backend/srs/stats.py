"""Aggregate statistics over cards and the review log."""

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import and_, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import settings, utcnow
from backend.models.review_log import ReviewLog
from backend.srs.fsrs import Rating, State
from backend.srs.stores import CardStore, storage_errors


@dataclass
class CardStats:
    """Card counts by learning status."""

    new: int = 0
    learning: int = 0
    review: int = 0
    known: int = 0

    @property
    def total(self) -> int:
        return self.new + self.learning + self.review + self.known


@dataclass
class ReviewStats:
    total_reviews: int
    average_retention: float | None  # Share of reviews in the last 30 days rated >= Hard
    streak_days: int


async def card_stats(
    cards: CardStore,
    known_stability_days: float = settings.known_stability_days,
) -> CardStats:
    """Count cards by status.

    A Review card counts as known once its stability reaches
    ``known_stability_days``.
    """
    stats = CardStats()
    for card in await cards.all():
        if card.state == State.NEW:
            stats.new += 1
        elif card.state in (State.LEARNING, State.RELEARNING):
            stats.learning += 1
        elif card.stability >= known_stability_days:
            stats.known += 1
        else:
            stats.review += 1
    return stats


async def review_stats(db: AsyncSession, now: datetime | None = None) -> ReviewStats:
    now = now or utcnow()
    recent_cutoff = now - timedelta(days=30)

    async with storage_errors(db, "review stats"):
        total_reviews = (await db.execute(select(func.count(ReviewLog.id)))).scalar() or 0
        recent_total = (
            await db.execute(
                select(func.count(ReviewLog.id)).where(ReviewLog.reviewed_at >= recent_cutoff)
            )
        ).scalar() or 0
        recent_pass = (
            await db.execute(
                select(func.count(ReviewLog.id)).where(
                    and_(
                        ReviewLog.reviewed_at >= recent_cutoff,
                        ReviewLog.rating > int(Rating.AGAIN),
                    )
                )
            )
        ).scalar() or 0
        streak = await _calculate_streak(db, now)

    average_retention = recent_pass / recent_total if recent_total > 0 else None
    return ReviewStats(
        total_reviews=total_reviews,
        average_retention=round(average_retention, 3) if average_retention is not None else None,
        streak_days=streak,
    )


async def _calculate_streak(db: AsyncSession, now: datetime) -> int:
    """Calculate the number of consecutive days with at least one review."""
    stmt = select(distinct(func.date(ReviewLog.reviewed_at))).order_by(
        func.date(ReviewLog.reviewed_at).desc()
    )
    result = await db.execute(stmt)
    dates = [row[0] for row in result.all()]

    if not dates:
        return 0

    today = now.date()
    streak = 0

    for i, review_date in enumerate(dates):
        expected = today - timedelta(days=i)
        if str(review_date) == str(expected):
            streak += 1
        else:
            break

    return streak
