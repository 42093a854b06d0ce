"""FSRS (Free Spaced Repetition Scheduler) algorithm implementation.

An FSRS-6 scheduler with short-term learning steps for the HanziFlow system.
Reference: https://github.com/open-spaced-repetition/fsrs4anki

Key concepts:
- Stability (S): The number of days after which retention drops to 90%.
- Difficulty (D): A value between 1 and 10 representing inherent item difficulty.
- Retrievability (R): The probability of recall at a given time since last review.
- Rating: 1=Again, 2=Hard, 3=Good, 4=Easy
- State: 0=New, 1=Learning, 2=Review, 3=Relearning

Cards in Learning and Relearning move through short sub-day steps (minutes)
before graduating to Review, where intervals are whole days derived from
stability and the target retention.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import IntEnum

from backend.config import Settings, settings


class Rating(IntEnum):
    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4


class State(IntEnum):
    NEW = 0
    LEARNING = 1
    REVIEW = 2
    RELEARNING = 3


# FSRS-6 default parameters
# w[0..3]: initial stability for ratings Again/Hard/Good/Easy on first review
# w[4..5]: initial difficulty and its rating sensitivity
# w[6]: difficulty update step
# w[7]: difficulty mean reversion weight
# w[8..10]: stability increase after a successful review
# w[11..14]: stability after a lapse
# w[15..16]: hard penalty / easy bonus
# w[17..19]: short-term (same-day) stability
# w[20]: forgetting curve decay
DEFAULT_WEIGHTS: tuple[float, ...] = (
    0.212,
    1.2931,
    2.3065,
    8.2956,
    6.4133,
    0.8334,
    3.0194,
    0.001,
    1.8722,
    0.1666,
    0.796,
    1.4835,
    0.0614,
    0.2629,
    1.6483,
    0.6014,
    1.8729,
    0.5425,
    0.0912,
    0.0658,
    0.1542,
)

# Bounds
MIN_DIFFICULTY = 1.0
MAX_DIFFICULTY = 10.0
MIN_STABILITY = 0.001


@dataclass(frozen=True)
class SchedulerConfig:
    """Fixed configuration for an FSRS scheduler."""

    target_retention: float = 0.92
    maximum_interval: int = 365  # days
    enable_short_term: bool = True
    learning_steps: tuple[timedelta, ...] = (timedelta(minutes=1), timedelta(minutes=10))
    relearning_steps: tuple[timedelta, ...] = (timedelta(minutes=10),)
    weights: tuple[float, ...] = DEFAULT_WEIGHTS

    @classmethod
    def from_settings(cls, config: Settings = settings) -> SchedulerConfig:
        """Build a scheduler configuration from application settings."""
        return cls(
            target_retention=config.target_retention,
            maximum_interval=config.maximum_interval,
            enable_short_term=config.enable_short_term,
            learning_steps=tuple(timedelta(minutes=m) for m in config.learning_steps_minutes),
            relearning_steps=tuple(timedelta(minutes=m) for m in config.relearning_steps_minutes),
        )


@dataclass
class CardState:
    """The SRS state of a card."""

    due: datetime
    stability: float = 0.0  # Days until retention = 90%
    difficulty: float = 0.0  # 1-10 once graded, 0 while New
    elapsed_days: int = 0  # Days between the previous review and this one
    scheduled_days: int = 0  # Interval chosen at the last review (0 for sub-day steps)
    learning_steps: int = 0  # Short steps completed in the current (re)learning phase
    reps: int = 0
    lapses: int = 0  # Times forgotten while in Review
    state: State = State.NEW
    last_review: datetime | None = None

    @classmethod
    def new(cls, now: datetime) -> CardState:
        """Create the state of a card that has never been graded."""
        return cls(due=now)


@dataclass
class ReviewPreview:
    """The outcome of every possible rating for a card, without applying any."""

    retrievability: float
    outcomes: dict[Rating, CardState] = field(default_factory=dict)


class FSRS:
    """Free Spaced Repetition Scheduler."""

    def __init__(self, config: SchedulerConfig | None = None) -> None:
        """Initialize FSRS with an optional custom configuration."""
        self.config = config or SchedulerConfig()
        self.w = self.config.weights
        self._decay = -self.w[20]
        self._factor = 0.9 ** (1 / self._decay) - 1

    @property
    def target_retention(self) -> float:
        return self.config.target_retention

    def grade(self, card: CardState, rating: Rating, now: datetime) -> CardState:
        """Apply a rating to a card and return its updated state.

        The input card is not modified. The caller persists the returned
        state and appends a review log entry.

        Args:
            card: Current card state.
            rating: Review rating (Again, Hard, Good, Easy).
            now: When the review happened.

        Returns:
            The card state after the review.
        """
        elapsed_days = self._elapsed_days(card, now)
        stability = self._next_stability(card, rating, elapsed_days)
        if self._is_unscheduled(card):
            difficulty = self._initial_difficulty(rating)
        else:
            difficulty = self._next_difficulty(card.difficulty, rating)

        updated = replace(
            card,
            stability=stability,
            difficulty=difficulty,
            elapsed_days=elapsed_days,
            reps=card.reps + 1,
            last_review=now,
        )

        if card.state == State.REVIEW:
            return self._schedule_review(card, updated, rating, elapsed_days, now)
        return self._schedule_learning(card, updated, rating, now)

    def preview(self, card: CardState, now: datetime) -> ReviewPreview:
        """Return the state each rating would produce, plus current retrievability."""
        return ReviewPreview(
            retrievability=self.retrievability(card, now),
            outcomes={rating: self.grade(card, rating, now) for rating in Rating},
        )

    def retrievability(self, card: CardState, now: datetime) -> float:
        """Return the probability that the card is recalled at ``now``.

        New cards have no memory yet, so their retrievability is 0.
        """
        if self._is_unscheduled(card) or card.last_review is None:
            return 0.0
        elapsed = max(0.0, (now - card.last_review).total_seconds() / 86400)
        return self._retrievability(elapsed, card.stability)

    # --- State machine ---

    def _schedule_learning(
        self,
        card: CardState,
        updated: CardState,
        rating: Rating,
        now: datetime,
    ) -> CardState:
        """Schedule a New, Learning or Relearning card through its short steps."""
        steps = self._steps_for(card.state)
        step = 0 if card.state == State.NEW else card.learning_steps
        phase = State.LEARNING if card.state == State.NEW else card.state

        if not steps or (step >= len(steps) and rating != Rating.AGAIN):
            return self._graduate(updated, now)

        if rating == Rating.AGAIN:
            # A fresh card starts at step 0; a repeated failure counts as a step
            next_step = 0 if card.state == State.NEW else step + 1
            return self._step(updated, phase, next_step, steps[0], now)

        if rating == Rating.HARD:
            if step == 0 and len(steps) == 1:
                delay = steps[0] * 1.5
            elif step == 0:
                delay = (steps[0] + steps[1]) / 2
            else:
                delay = steps[step]
            return self._step(updated, phase, step, delay, now)

        if rating == Rating.GOOD and step + 1 < len(steps):
            return self._step(updated, phase, step + 1, steps[step + 1], now)

        return self._graduate(updated, now)

    def _schedule_review(
        self,
        card: CardState,
        updated: CardState,
        rating: Rating,
        elapsed_days: int,
        now: datetime,
    ) -> CardState:
        """Schedule a card that was in Review when graded."""
        if rating == Rating.AGAIN:
            updated.lapses = card.lapses + 1
            steps = self._steps_for(State.RELEARNING)
            if steps:
                return self._step(updated, State.RELEARNING, 0, steps[0], now)
            return self._graduate(updated, now)

        intervals = self._ordered_intervals(card, elapsed_days)
        days = intervals[rating]
        updated.state = State.REVIEW
        updated.learning_steps = 0
        updated.scheduled_days = days
        updated.due = now + timedelta(days=days)
        return updated

    def _step(
        self,
        updated: CardState,
        phase: State,
        step: int,
        delay: timedelta,
        now: datetime,
    ) -> CardState:
        updated.state = phase
        updated.learning_steps = step
        updated.scheduled_days = 0
        updated.due = now + delay
        return updated

    def _graduate(self, updated: CardState, now: datetime) -> CardState:
        days = self._next_interval(updated.stability)
        updated.state = State.REVIEW
        updated.learning_steps = 0
        updated.scheduled_days = days
        updated.due = now + timedelta(days=days)
        return updated

    def _ordered_intervals(self, card: CardState, elapsed_days: int) -> dict[Rating, int]:
        """Compute Hard/Good/Easy intervals so that Hard < Good < Easy before the cap."""
        hard = self._next_interval(self._next_stability(card, Rating.HARD, elapsed_days))
        good = self._next_interval(self._next_stability(card, Rating.GOOD, elapsed_days))
        easy = self._next_interval(self._next_stability(card, Rating.EASY, elapsed_days))
        hard = min(hard, good)
        good = max(good, hard + 1)
        easy = max(easy, good + 1)
        cap = self.config.maximum_interval
        return {
            Rating.HARD: min(hard, cap),
            Rating.GOOD: min(good, cap),
            Rating.EASY: min(easy, cap),
        }

    def _steps_for(self, state: State) -> tuple[timedelta, ...]:
        if not self.config.enable_short_term:
            return ()
        if state == State.RELEARNING:
            return self.config.relearning_steps
        return self.config.learning_steps

    # --- Memory model ---

    @staticmethod
    def _is_unscheduled(card: CardState) -> bool:
        return card.state == State.NEW or card.stability <= 0 or card.difficulty <= 0

    @staticmethod
    def _elapsed_days(card: CardState, now: datetime) -> int:
        """Whole days since the last review, clamped to zero on clock skew."""
        if card.last_review is None:
            return 0
        return max(0, (now - card.last_review).days)

    def _next_stability(self, card: CardState, rating: Rating, elapsed_days: int) -> float:
        if self._is_unscheduled(card):
            stability = self._initial_stability(rating)
        # Review cards always take the long-term update, even on the same day
        elif (
            self.config.enable_short_term
            and elapsed_days < 1
            and card.state != State.REVIEW
        ):
            stability = self._short_term_stability(card.stability, rating)
        else:
            r = self._retrievability(elapsed_days, card.stability)
            if rating == Rating.AGAIN:
                stability = self._stability_after_fail(card.stability, card.difficulty, r)
            else:
                stability = self._stability_after_success(
                    card.stability, card.difficulty, r, rating
                )
        return max(MIN_STABILITY, stability)

    def _initial_stability(self, rating: Rating) -> float:
        return max(MIN_STABILITY, self.w[rating - 1])

    def _initial_difficulty(self, rating: Rating, clamp: bool = True) -> float:
        """Calculate initial difficulty from first rating.

        D0 = w4 - e^(w5 * (rating - 1)) + 1
        """
        d = self.w[4] - math.exp(self.w[5] * (rating - 1)) + 1
        if not clamp:
            return d
        return max(MIN_DIFFICULTY, min(MAX_DIFFICULTY, d))

    def _next_difficulty(self, current_d: float, rating: Rating) -> float:
        """Update difficulty with linear damping and mean reversion.

        The step shrinks as difficulty approaches 10, and the result is pulled
        slightly toward the initial difficulty of an Easy first review.
        """
        delta = -self.w[6] * (rating - 3)
        damped = current_d + delta * (10 - current_d) / 9
        target = self._initial_difficulty(Rating.EASY, clamp=False)
        new_d = self.w[7] * target + (1 - self.w[7]) * damped
        return max(MIN_DIFFICULTY, min(MAX_DIFFICULTY, new_d))

    def _retrievability(self, elapsed_days: float, stability: float) -> float:
        """Calculate the probability of recall given elapsed time and stability.

        Uses the power forgetting curve: R = (1 + F * t/S)^(-decay),
        where F is chosen so that R = 0.9 when t = S.
        """
        if stability <= 0:
            return 0.0
        return (1 + self._factor * elapsed_days / stability) ** self._decay

    def _next_interval(self, stability: float) -> int:
        """Convert stability to an interval in days for the target retention.

        Solving target_retention = R(interval, S) for the interval:
        interval = S / F * (target_retention^(1/-decay) - 1)
        """
        interval = stability / self._factor * (self.target_retention ** (1 / self._decay) - 1)
        return int(min(max(round(interval), 1), self.config.maximum_interval))

    def _short_term_stability(self, stability: float, rating: Rating) -> float:
        """Calculate stability after a same-day review.

        S' = S * e^(w17 * (rating - 3 + w18)) * S^(-w19), never shrinking for Good/Easy.
        """
        increase = math.exp(self.w[17] * (rating - 3 + self.w[18])) * stability ** -self.w[19]
        if rating >= Rating.GOOD:
            increase = max(increase, 1.0)
        return stability * increase

    def _stability_after_success(
        self,
        stability: float,
        difficulty: float,
        retrievability: float,
        rating: Rating,
    ) -> float:
        """Calculate new stability after a successful review (rating >= 2).

        S' = S * (1 + e^(w8) * (11 - D) * S^(-w9) * (e^(w10*(1-R)) - 1) * penalty * bonus)
        """
        hard_penalty = self.w[15] if rating == Rating.HARD else 1.0
        easy_bonus = self.w[16] if rating == Rating.EASY else 1.0
        factor = (
            math.exp(self.w[8])
            * (11 - difficulty)
            * stability ** (-self.w[9])
            * (math.exp(self.w[10] * (1 - retrievability)) - 1)
            * hard_penalty
            * easy_bonus
        )
        return stability * (1 + factor)

    def _stability_after_fail(
        self,
        stability: float,
        difficulty: float,
        retrievability: float,
    ) -> float:
        """Calculate new stability after a lapse (rating = 1).

        S' = w11 * D^(-w12) * ((S+1)^w13 - 1) * e^(w14*(1-R))
        """
        long_term = (
            self.w[11]
            * difficulty ** (-self.w[12])
            * ((stability + 1) ** self.w[13] - 1)
            * math.exp(self.w[14] * (1 - retrievability))
        )
        # Forgetting should never leave a card more stable than a same-day lapse would
        short_term = stability / math.exp(self.w[17] * self.w[18])
        return min(long_term, short_term)
