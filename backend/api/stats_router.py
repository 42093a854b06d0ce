"""API routes for card statistics and dashboard data."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.schemas import LearnerStatsResponse
from backend.config import settings, utcnow
from backend.database import get_session
from backend.srs.queue import DueSetResolver
from backend.srs.stats import card_stats, review_stats
from backend.srs.stores import CardStore

router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("", response_model=LearnerStatsResponse)
async def get_stats(db: AsyncSession = Depends(get_session)) -> LearnerStatsResponse:
    """Get overall card and review statistics."""
    now = utcnow()
    cards = CardStore(db)

    counts = await card_stats(cards)
    due = await DueSetResolver(cards).due_cards(settings.due_limit, now)
    reviews = await review_stats(db, now)

    return LearnerStatsResponse(
        total_cards=counts.total,
        cards_new=counts.new,
        cards_learning=counts.learning,
        cards_review=counts.review,
        cards_known=counts.known,
        cards_due=len(due),
        average_retention=reviews.average_retention,
        streak_days=reviews.streak_days,
        total_reviews=reviews.total_reviews,
    )
