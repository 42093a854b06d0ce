"""Async SQLAlchemy stores for cards, review logs, sessions, lessons and content.

Each store wraps a database session. SQLAlchemy failures are rolled back and
re-raised as StorageError so callers can retry the operation: grading is a
pure function of (card, rating, now), so a retry recomputes the same result.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import and_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import utcnow
from backend.models.card import Card
from backend.models.content_item import ContentItem
from backend.models.lesson_progress import LessonProgress
from backend.models.review_log import ReviewLog
from backend.models.study_session import StudySession
from backend.srs.fsrs import CardState, Rating, State

logger = logging.getLogger(__name__)

CARD_TYPES = ("recognition", "recall")


class StorageError(Exception):
    """A read or write against the database failed. Safe to retry."""


@asynccontextmanager
async def storage_errors(db: AsyncSession, action: str) -> AsyncIterator[None]:
    """Roll back and convert SQLAlchemy errors raised inside the block."""
    try:
        yield
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Storage failure during %s: %s", action, exc)
        raise StorageError(f"{action} failed") from exc


def to_state(card: Card) -> CardState:
    """Extract the scheduling fields of a stored card."""
    return CardState(
        due=card.due,
        stability=card.stability,
        difficulty=card.difficulty,
        elapsed_days=card.elapsed_days,
        scheduled_days=card.scheduled_days,
        learning_steps=card.learning_steps,
        reps=card.reps,
        lapses=card.lapses,
        state=State(card.state),
        last_review=card.last_review,
    )


def apply_state(card: Card, state: CardState) -> Card:
    """Copy a scheduling result back onto a stored card."""
    card.due = state.due
    card.stability = state.stability
    card.difficulty = state.difficulty
    card.elapsed_days = state.elapsed_days
    card.scheduled_days = state.scheduled_days
    card.learning_steps = state.learning_steps
    card.reps = state.reps
    card.lapses = state.lapses
    card.state = int(state.state)
    card.last_review = state.last_review
    return card


def review_log_entry(
    card_id: int,
    rating: Rating,
    before: CardState,
    after: CardState,
    reviewed_at: datetime,
) -> ReviewLog:
    """Build the log row for one grading event."""
    return ReviewLog(
        card_id=card_id,
        rating=int(rating),
        state=int(before.state),
        due=after.due,
        stability=after.stability,
        difficulty=after.difficulty,
        elapsed_days=after.elapsed_days,
        scheduled_days=after.scheduled_days,
        stability_before=before.stability,
        difficulty_before=before.difficulty,
        reviewed_at=reviewed_at,
    )


class CardStore:
    """Keyed storage for cards, queryable by due date and state."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, card_id: int) -> Card | None:
        async with storage_errors(self.db, "card get"):
            return await self.db.get(Card, card_id)

    async def put(self, card: Card, commit: bool = True) -> Card:
        async with storage_errors(self.db, "card put"):
            self.db.add(card)
            if commit:
                await self.db.commit()
            else:
                await self.db.flush()
        return card

    async def bulk_put(self, cards: list[Card]) -> list[Card]:
        async with storage_errors(self.db, "card bulk put"):
            self.db.add_all(cards)
            await self.db.commit()
        return cards

    async def query_due(self, now: datetime) -> list[Card]:
        """Return every card whose due date has passed, oldest first."""
        stmt = select(Card).where(Card.due <= now).order_by(Card.due.asc(), Card.id.asc())
        async with storage_errors(self.db, "due query"):
            result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def query_by_state(self, state: State, limit: int | None = None) -> list[Card]:
        """Return cards in the given state in introduction (id) order."""
        stmt = select(Card).where(Card.state == int(state)).order_by(Card.id.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        async with storage_errors(self.db, "state query"):
            result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def all(self) -> list[Card]:
        async with storage_errors(self.db, "card scan"):
            result = await self.db.execute(select(Card).order_by(Card.id.asc()))
        return list(result.scalars().all())

    async def exists_for_item(self, item_type: str, item_id: int) -> bool:
        """Return True if any card has been created for the content item."""
        stmt = (
            select(Card.id)
            .where(and_(Card.item_type == item_type, Card.item_id == item_id))
            .limit(1)
        )
        async with storage_errors(self.db, "card lookup"):
            result = await self.db.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def ensure_cards_for_item(
        self,
        item_type: str,
        item_id: int,
        now: datetime | None = None,
    ) -> list[Card]:
        """Create the recognition and recall cards for an item if missing.

        Returns the cards that were created (empty when both already exist).
        """
        now = now or utcnow()
        stmt = select(Card.card_type).where(
            and_(Card.item_type == item_type, Card.item_id == item_id)
        )
        async with storage_errors(self.db, "card lookup"):
            existing = set((await self.db.execute(stmt)).scalars().all())

        created = [
            Card(
                item_id=item_id,
                item_type=item_type,
                card_type=card_type,
                state=int(State.NEW),
                due=now,
                stability=0.0,
                difficulty=0.0,
                elapsed_days=0,
                scheduled_days=0,
                learning_steps=0,
                reps=0,
                lapses=0,
            )
            for card_type in CARD_TYPES
            if card_type not in existing
        ]
        if created:
            await self.bulk_put(created)
            logger.info("Created %d cards for %s %d", len(created), item_type, item_id)
        return created


class ReviewLogSink:
    """Append-only sink for grading events."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def append(self, entry: ReviewLog) -> ReviewLog:
        async with storage_errors(self.db, "review log append"):
            self.db.add(entry)
            await self.db.commit()
        return entry


class SessionStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def create(self, session: StudySession) -> StudySession:
        async with storage_errors(self.db, "session create"):
            self.db.add(session)
            await self.db.commit()
            await self.db.refresh(session)
        return session

    async def update(self, session: StudySession) -> StudySession:
        async with storage_errors(self.db, "session update"):
            await self.db.merge(session)
            await self.db.commit()
        return session

    async def get(self, session_id: int) -> StudySession | None:
        async with storage_errors(self.db, "session get"):
            return await self.db.get(StudySession, session_id)


class LessonProgressStore:
    """Lesson progress rows keyed by lesson id, written with single upserts."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, lesson_id: str) -> LessonProgress | None:
        stmt = (
            select(LessonProgress)
            .where(LessonProgress.lesson_id == lesson_id)
            .execution_options(populate_existing=True)
        )
        async with storage_errors(self.db, "lesson progress get"):
            result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def all(self) -> list[LessonProgress]:
        stmt = select(LessonProgress).execution_options(populate_existing=True)
        async with storage_errors(self.db, "lesson progress scan"):
            result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def update(self, lesson_id: str, **patch: Any) -> LessonProgress | None:
        """Insert the row with defaults or apply the patch to an existing row.

        An empty patch only inserts a missing row and never modifies an
        existing one.
        """
        now = utcnow()
        values = {
            "lesson_id": lesson_id,
            "status": "locked",
            "radicals_done": [],
            "characters_done": [],
            "completed_at": None,
            "created_at": now,
            "updated_at": now,
            **patch,
        }
        stmt = self._insert()(LessonProgress).values(**values)
        if patch:
            stmt = stmt.on_conflict_do_update(
                index_elements=[LessonProgress.lesson_id],
                set_={**patch, "updated_at": now},
            )
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=[LessonProgress.lesson_id])

        async with storage_errors(self.db, "lesson progress upsert"):
            await self.db.execute(stmt)
            await self.db.commit()
        return await self.get(lesson_id)

    def _insert(self):
        if self.db.get_bind().dialect.name == "postgresql":
            return postgresql.insert
        return sqlite.insert


class ContentLookup:
    """Read access to radicals and characters owned by the content store."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, item_type: str, item_id: int) -> ContentItem | None:
        async with storage_errors(self.db, "content get"):
            item = await self.db.get(ContentItem, item_id)
        if item is None or item.item_type != item_type:
            return None
        return item

    async def find_by_char(self, item_type: str, char: str) -> ContentItem | None:
        stmt = select(ContentItem).where(
            and_(ContentItem.item_type == item_type, ContentItem.char == char)
        )
        async with storage_errors(self.db, "content lookup"):
            result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def add(
        self,
        item_type: str,
        char: str,
        pinyin: str = "",
        meaning: str = "",
    ) -> ContentItem:
        item = ContentItem(item_type=item_type, char=char, pinyin=pinyin, meaning=meaning)
        async with storage_errors(self.db, "content add"):
            self.db.add(item)
            await self.db.commit()
            await self.db.refresh(item)
        return item
