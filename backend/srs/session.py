"""Study session orchestrator.

Plans how many reviews and new cards fit in a session, runs the time-boxed
session lifecycle with its countdown, and coordinates the SRS engine,
card persistence and review logging for each graded card.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from backend.config import Settings, settings, utcnow
from backend.models.card import Card
from backend.models.study_session import StudySession
from backend.srs.fsrs import FSRS, CardState, Rating, SchedulerConfig, State
from backend.srs.queue import DueSetResolver, ReviewQueue, build_queue
from backend.srs.stores import (
    CardStore,
    ReviewLogSink,
    SessionStore,
    StorageError,
    apply_state,
    review_log_entry,
    to_state,
)

logger = logging.getLogger(__name__)

PHASE_ORDER = ("review", "new", "practice", "summary")


def next_phase(current: str) -> str:
    """Return the phase after ``current``; unknown or final phases go to summary."""
    if current not in PHASE_ORDER:
        return "summary"
    idx = PHASE_ORDER.index(current)
    return PHASE_ORDER[min(idx + 1, len(PHASE_ORDER) - 1)]


def elapsed_seconds(start_time: datetime, now: datetime, end_time: datetime | None = None) -> int:
    """Return whole seconds since the session started (frozen once it ended)."""
    end = end_time or now
    return max(0, int((end - start_time).total_seconds()))


def remaining_seconds(
    start_time: datetime,
    session_minutes: float,
    now: datetime,
    end_time: datetime | None = None,
) -> int:
    """Return whole seconds left in the session's time budget."""
    total = int(session_minutes * 60)
    return max(0, total - elapsed_seconds(start_time, now, end_time))


@dataclass
class SessionPlan:
    """How a session budget is split between reviews and new items."""

    review_count: int
    new_count: int
    total_cards: int


@dataclass
class SessionCard:
    """A card presented during a session, with its scheduling state."""

    card: Card
    card_state: CardState

    @property
    def is_new(self) -> bool:
        return self.card_state.state == State.NEW


@dataclass
class SessionStats:
    """Counters for an active study session."""

    cards_reviewed: int = 0
    new_items_learned: int = 0
    again: int = 0

    @property
    def passed(self) -> int:
        return self.cards_reviewed - self.again


class SessionTimer:
    """Countdown that drives a session to summary when its time runs out.

    The timer ticks once per ``interval`` seconds on the running event loop.
    It stops on its own at zero; ``stop()`` cancels it early and is safe to
    call any number of times.
    """

    def __init__(
        self,
        session: ReviewSession,
        clock: Callable[[], datetime] = utcnow,
        interval: float = 1.0,
    ) -> None:
        self.session = session
        self.clock = clock
        self.interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self.stop()
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> bool:
        """Cancel the countdown. Returns True only if it was still running."""
        if not self.running:
            return False
        self._task.cancel()
        self._task = None
        return True

    async def _run(self) -> None:
        while self.session.tick(self.clock()) > 0:
            await asyncio.sleep(self.interval)


@dataclass
class ReviewSession:
    """Manages an active study session.

    The due and new cards are snapshotted when the session starts; cards that
    become due mid-session wait for the next session.
    """

    record: StudySession
    queue: ReviewQueue
    fsrs: FSRS
    cards: CardStore
    logs: ReviewLogSink
    sessions: SessionStore
    started_at: datetime
    session_minutes: float = settings.session_minutes
    phase: str = "review"
    stats: SessionStats = field(default_factory=SessionStats)
    timer: SessionTimer | None = None
    ended_at: datetime | None = None
    _card_index: int = 0
    _cards: list[Card] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Initialize the card list from the queue."""
        self._cards = self.queue.ordered()

    @property
    def session_id(self) -> int:
        return self.record.id

    @property
    def remaining(self) -> int:
        """Return the number of cards left to review."""
        return max(0, len(self._cards) - self._card_index)

    @property
    def is_active(self) -> bool:
        return self.phase != "summary"

    @property
    def is_complete(self) -> bool:
        """Return True if all cards have been reviewed or the session is over."""
        return not self.is_active or self._card_index >= len(self._cards)

    @property
    def current_card(self) -> Card | None:
        """Return the current card or None if the session is complete."""
        if self.is_complete:
            return None
        return self._cards[self._card_index]

    def get_next(self) -> SessionCard | None:
        """Get the next card to present, or None once the session is complete."""
        card = self.current_card
        if card is None:
            return None
        state = to_state(card)
        if state.state == State.NEW and self.phase == "review":
            self.phase = "new"
        return SessionCard(card=card, card_state=state)

    def time_remaining(self, now: datetime | None = None) -> int:
        return remaining_seconds(
            self.started_at, self.session_minutes, now or utcnow(), self.ended_at
        )

    def elapsed(self, now: datetime | None = None) -> int:
        return elapsed_seconds(self.started_at, now or utcnow(), self.ended_at)

    def tick(self, now: datetime | None = None) -> int:
        """Recompute the remaining time, forcing the summary phase at zero."""
        remaining = self.time_remaining(now)
        if remaining <= 0 and self.phase != "summary":
            self.phase = "summary"
            logger.info("Session %s ran out of time", self.session_id)
        return remaining

    def next_phase(self) -> str:
        """Advance to the next phase. Phases are advisory and never gate grading."""
        self.phase = next_phase(self.phase)
        return self.phase

    def start_timer(
        self,
        clock: Callable[[], datetime] = utcnow,
        interval: float | None = None,
    ) -> SessionTimer:
        self.stop_timer()
        self.timer = SessionTimer(
            self,
            clock=clock,
            interval=interval if interval is not None else settings.timer_tick_seconds,
        )
        self.timer.start()
        return self.timer

    def stop_timer(self) -> bool:
        if self.timer is None:
            return False
        return self.timer.stop()

    async def grade(
        self,
        card: Card,
        rating: Rating,
        now: datetime | None = None,
    ) -> CardState:
        """Grade a card, persist it, log the review and update the counters.

        Args:
            card: The card being reviewed.
            rating: The learner's rating.
            now: When the review happened (defaults to now).

        Returns:
            The card's new scheduling state.
        """
        now = now or utcnow()
        card_id = card.id
        before = to_state(card)
        after = self.fsrs.grade(before, rating, now)

        await self._persist(card, card_id, rating, before, after, now)
        logger.debug(
            "Card %d graded %s: %s -> %s, due %s",
            card_id,
            rating.name,
            before.state.name,
            after.state.name,
            after.due.isoformat(),
        )

        if self._card_index < len(self._cards) and self._cards[self._card_index] is card:
            self._card_index += 1
        if rating == Rating.AGAIN:
            self.stats.again += 1

        await self.record_review(is_new=before.state == State.NEW)
        return after

    @retry(
        retry=retry_if_exception_type(StorageError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, max=2),
        reraise=True,
    )
    async def _persist(
        self,
        card: Card,
        card_id: int,
        rating: Rating,
        before: CardState,
        after: CardState,
        now: datetime,
    ) -> None:
        apply_state(card, after)
        await self.cards.put(card, commit=False)
        await self.logs.append(review_log_entry(card_id, rating, before, after, now))

    async def record_review(self, is_new: bool) -> StudySession:
        """Count one reviewed card (and one introduced item if it was new)."""
        self.stats.cards_reviewed += 1
        if is_new:
            self.stats.new_items_learned += 1
        return await self._save()

    async def end(self, now: datetime | None = None) -> StudySession:
        """Finish the session: stop the countdown and persist the final counters."""
        self.stop_timer()
        if self.ended_at is None:
            self.ended_at = now or utcnow()
        self.phase = "summary"
        record = await self._save()
        logger.info(
            "Ended session %s: %d reviewed, %d new",
            self.session_id,
            self.stats.cards_reviewed,
            self.stats.new_items_learned,
        )
        return record

    async def _save(self) -> StudySession:
        self.record.cards_reviewed = self.stats.cards_reviewed
        self.record.new_items_learned = self.stats.new_items_learned
        self.record.phase = self.phase
        self.record.end_time = self.ended_at
        return await self.sessions.update(self.record)


class SessionPlanner:
    """Allocates session budgets and starts study sessions."""

    def __init__(
        self,
        db: AsyncSession,
        fsrs: FSRS | None = None,
        config: Settings = settings,
    ) -> None:
        self.config = config
        self.fsrs = fsrs or FSRS(SchedulerConfig.from_settings(config))
        self.cards = CardStore(db)
        self.logs = ReviewLogSink(db)
        self.sessions = SessionStore(db)
        self.resolver = DueSetResolver(self.cards)

    async def plan(self, max_cards: int | None = None, now: datetime | None = None) -> SessionPlan:
        """Split the card budget: due reviews first, new cards fill the rest."""
        max_cards = self.config.cards_per_session if max_cards is None else max_cards
        queue = await build_queue(self.resolver, max_cards, now)
        return SessionPlan(
            review_count=len(queue.due_cards),
            new_count=len(queue.new_cards),
            total_cards=queue.total,
        )

    async def start_session(
        self,
        max_cards: int | None = None,
        session_minutes: float | None = None,
        now: datetime | None = None,
        start_timer: bool = True,
    ) -> ReviewSession:
        """Start a new study session.

        Args:
            max_cards: Per-session card cap (defaults to settings).
            session_minutes: Session length (defaults to settings).
            now: Session start time (defaults to now).
            start_timer: Start the countdown on the running event loop.

        Returns:
            A ReviewSession ready for use.
        """
        now = now or utcnow()
        max_cards = self.config.cards_per_session if max_cards is None else max_cards
        minutes = self.config.session_minutes if session_minutes is None else session_minutes

        queue = await build_queue(self.resolver, max_cards, now)
        record = await self.sessions.create(
            StudySession(start_time=now, cards_reviewed=0, new_items_learned=0, phase="review")
        )

        session = ReviewSession(
            record=record,
            queue=queue,
            fsrs=self.fsrs,
            cards=self.cards,
            logs=self.logs,
            sessions=self.sessions,
            started_at=now,
            session_minutes=minutes,
        )
        if start_timer:
            session.start_timer()

        logger.info(
            "Started session %d: %d due + %d new cards, %s minutes",
            record.id,
            len(queue.due_cards),
            len(queue.new_cards),
            minutes,
        )
        return session
