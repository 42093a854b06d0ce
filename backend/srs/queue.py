"""Queue management for SRS study sessions.

Resolves the due set and the new-card backlog, and fills a session budget
with reviews first so the review backlog is never starved by new material.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from backend.config import utcnow
from backend.models.card import Card
from backend.srs.fsrs import State
from backend.srs.stores import CardStore

logger = logging.getLogger(__name__)


class DueSetResolver:
    """Answers which cards are due for review and which are waiting to be introduced."""

    def __init__(self, cards: CardStore) -> None:
        self.cards = cards

    async def due_cards(self, limit: int, now: datetime | None = None) -> list[Card]:
        """Return cards due at ``now``, most overdue first.

        New cards are never part of the due set: they are waiting for
        introduction, not review.
        """
        if limit <= 0:
            return []
        now = now or utcnow()
        due = [card for card in await self.cards.query_due(now) if card.state != State.NEW]
        due.sort(key=lambda card: (card.due, card.id))
        return due[:limit]

    async def new_cards(self, limit: int) -> list[Card]:
        """Return New cards in introduction (id) order."""
        if limit <= 0:
            return []
        return await self.cards.query_by_state(State.NEW, limit=limit)


@dataclass
class ReviewQueue:
    """A prepared queue of cards for a study session."""

    due_cards: list[Card] = field(default_factory=list)
    new_cards: list[Card] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.due_cards) + len(self.new_cards)

    def ordered(self) -> list[Card]:
        """Return the session order: every due review, then the new cards."""
        return [*self.due_cards, *self.new_cards]


async def build_queue(
    resolver: DueSetResolver,
    max_cards: int,
    now: datetime | None = None,
) -> ReviewQueue:
    """Build a review queue within a per-session card budget.

    Due reviews take the budget first; new cards only fill what remains.

    Args:
        resolver: Source of due and new cards.
        max_cards: Maximum number of cards in the session.
        now: Current time (defaults to utcnow).

    Returns:
        A ReviewQueue with due and new cards.
    """
    now = now or utcnow()

    due_cards = await resolver.due_cards(max_cards, now)
    new_budget = max(0, max_cards - len(due_cards))
    new_cards = await resolver.new_cards(new_budget)

    queue = ReviewQueue(due_cards=due_cards, new_cards=new_cards)

    logger.info(
        "Built queue: %d due + %d new = %d total (budget %d)",
        len(due_cards),
        len(new_cards),
        queue.total,
        max_cards,
    )
    return queue
