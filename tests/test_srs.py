"""Tests for the SRS engine: FSRS memory model and card state machine."""

from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from backend.srs.fsrs import (
    FSRS,
    MAX_DIFFICULTY,
    MIN_DIFFICULTY,
    CardState,
    Rating,
    SchedulerConfig,
    State,
)

NOW = datetime(2025, 3, 1, 9, 0, 0)


def review_card(stability: float = 10.0, difficulty: float = 5.0, days_ago: int = 15) -> CardState:
    last = NOW - timedelta(days=days_ago)
    return CardState(
        due=last + timedelta(days=round(stability)),
        stability=stability,
        difficulty=difficulty,
        scheduled_days=round(stability),
        reps=3,
        state=State.REVIEW,
        last_review=last,
    )


# --- First review ---


class TestNewCard:
    def setup_method(self) -> None:
        self.fsrs = FSRS()
        self.card = CardState.new(NOW)

    def test_good_enters_learning(self) -> None:
        result = self.fsrs.grade(self.card, Rating.GOOD, NOW)
        assert result.state == State.LEARNING
        assert result.due == NOW + timedelta(minutes=10)
        assert result.learning_steps == 1
        assert result.reps == 1
        assert result.lapses == 0
        assert result.last_review == NOW

    def test_again_restarts_steps(self) -> None:
        result = self.fsrs.grade(self.card, Rating.AGAIN, NOW)
        assert result.state == State.LEARNING
        assert result.learning_steps == 0
        assert result.due == NOW + timedelta(minutes=1)
        assert result.lapses == 0

    def test_hard_waits_between_first_two_steps(self) -> None:
        result = self.fsrs.grade(self.card, Rating.HARD, NOW)
        assert result.state == State.LEARNING
        assert result.due == NOW + timedelta(minutes=5, seconds=30)

    def test_easy_graduates(self) -> None:
        result = self.fsrs.grade(self.card, Rating.EASY, NOW)
        assert result.state == State.REVIEW
        assert result.scheduled_days >= 1
        assert result.due == NOW + timedelta(days=result.scheduled_days)

    def test_initial_stability_follows_rating(self) -> None:
        stabilities = [self.fsrs.grade(self.card, r, NOW).stability for r in Rating]
        assert stabilities == sorted(stabilities)
        assert stabilities[2] == pytest.approx(2.3065)

    def test_initial_difficulty_falls_with_rating(self) -> None:
        difficulties = [self.fsrs.grade(self.card, r, NOW).difficulty for r in Rating]
        assert difficulties == sorted(difficulties, reverse=True)
        assert all(MIN_DIFFICULTY <= d <= MAX_DIFFICULTY for d in difficulties)

    def test_grade_does_not_modify_input(self) -> None:
        before = replace(self.card)
        self.fsrs.grade(self.card, Rating.GOOD, NOW)
        assert self.card == before


# --- Learning / relearning steps ---


class TestLearningSteps:
    def setup_method(self) -> None:
        self.fsrs = FSRS()

    def test_good_through_all_steps_graduates(self) -> None:
        card = self.fsrs.grade(CardState.new(NOW), Rating.GOOD, NOW)
        later = card.due
        card = self.fsrs.grade(card, Rating.GOOD, later)
        assert card.state == State.REVIEW
        assert card.learning_steps == 0
        assert card.scheduled_days >= 1

    def test_again_in_learning_counts_step(self) -> None:
        card = self.fsrs.grade(CardState.new(NOW), Rating.GOOD, NOW)
        assert card.learning_steps == 1
        card = self.fsrs.grade(card, Rating.AGAIN, card.due)
        assert card.state == State.LEARNING
        assert card.learning_steps == 2
        assert card.due == card.last_review + timedelta(minutes=1)
        assert card.lapses == 0

    def test_past_last_step_graduates_on_hard(self) -> None:
        card = CardState(
            due=NOW,
            stability=2.3,
            difficulty=5.0,
            learning_steps=2,
            reps=2,
            state=State.LEARNING,
            last_review=NOW - timedelta(minutes=10),
        )
        result = self.fsrs.grade(card, Rating.HARD, NOW)
        assert result.state == State.REVIEW

    def test_hard_at_later_step_repeats_it(self) -> None:
        card = self.fsrs.grade(CardState.new(NOW), Rating.GOOD, NOW)
        result = self.fsrs.grade(card, Rating.HARD, card.due)
        assert result.state == State.LEARNING
        assert result.learning_steps == 1
        assert result.due == card.due + timedelta(minutes=10)

    def test_relearning_good_graduates(self) -> None:
        lapsed = self.fsrs.grade(review_card(), Rating.AGAIN, NOW)
        assert lapsed.state == State.RELEARNING
        result = self.fsrs.grade(lapsed, Rating.GOOD, lapsed.due)
        assert result.state == State.REVIEW
        assert result.lapses == 1

    def test_relearning_hard_single_step(self) -> None:
        lapsed = self.fsrs.grade(review_card(), Rating.AGAIN, NOW)
        result = self.fsrs.grade(lapsed, Rating.HARD, lapsed.due)
        assert result.state == State.RELEARNING
        assert result.due == lapsed.due + timedelta(minutes=15)


# --- Review ---


class TestReview:
    def setup_method(self) -> None:
        self.fsrs = FSRS()

    def test_again_lapses_into_relearning(self) -> None:
        card = review_card(stability=10.0, days_ago=15)
        result = self.fsrs.grade(card, Rating.AGAIN, NOW)
        assert result.state == State.RELEARNING
        assert result.lapses == card.lapses + 1
        assert result.learning_steps == 0
        assert result.scheduled_days == 0
        assert NOW < result.due <= NOW + timedelta(minutes=10)
        assert result.stability < card.stability

    def test_good_increases_stability(self) -> None:
        card = review_card(stability=10.0, days_ago=10)
        result = self.fsrs.grade(card, Rating.GOOD, NOW)
        assert result.state == State.REVIEW
        assert result.stability > card.stability
        assert result.elapsed_days == 10

    def test_intervals_ordered_by_rating(self) -> None:
        card = review_card(stability=10.0, days_ago=10)
        hard = self.fsrs.grade(card, Rating.HARD, NOW).scheduled_days
        good = self.fsrs.grade(card, Rating.GOOD, NOW).scheduled_days
        easy = self.fsrs.grade(card, Rating.EASY, NOW).scheduled_days
        assert 1 <= hard < good < easy

    def test_interval_capped_at_maximum(self) -> None:
        fsrs = FSRS(SchedulerConfig(maximum_interval=30))
        card = review_card(stability=500.0, days_ago=400)
        for rating in (Rating.HARD, Rating.GOOD, Rating.EASY):
            result = fsrs.grade(card, rating, NOW)
            assert 1 <= result.scheduled_days <= 30

    def test_difficulty_stays_bounded(self) -> None:
        card = review_card()
        now = NOW
        for _ in range(20):
            card = self.fsrs.grade(card, Rating.AGAIN, now)
            now = card.due
            assert MIN_DIFFICULTY <= card.difficulty <= MAX_DIFFICULTY

        card = review_card()
        now = NOW
        for _ in range(20):
            card = self.fsrs.grade(card, Rating.EASY, now)
            now = card.due
            assert MIN_DIFFICULTY <= card.difficulty <= MAX_DIFFICULTY

    def test_same_day_review_keeps_stability(self) -> None:
        last = NOW - timedelta(hours=2)
        card = replace(review_card(stability=10.0), last_review=last)
        for rating in (Rating.HARD, Rating.GOOD, Rating.EASY):
            result = self.fsrs.grade(card, rating, NOW)
            assert result.state == State.REVIEW
            assert result.stability >= card.stability

    def test_hard_grows_least(self) -> None:
        card = review_card(stability=10.0, days_ago=10)
        hard = self.fsrs.grade(card, Rating.HARD, NOW).stability
        good = self.fsrs.grade(card, Rating.GOOD, NOW).stability
        easy = self.fsrs.grade(card, Rating.EASY, NOW).stability
        assert card.stability < hard < good < easy

    def test_clock_skew_clamps_elapsed_days(self) -> None:
        card = replace(review_card(), last_review=NOW + timedelta(days=2))
        result = self.fsrs.grade(card, Rating.GOOD, NOW)
        assert result.elapsed_days == 0
        assert result.stability > 0
        assert result.due > NOW

    def test_very_overdue_review(self) -> None:
        card = review_card(stability=3.0, days_ago=3650)
        result = self.fsrs.grade(card, Rating.GOOD, NOW)
        assert result.stability > 0
        assert result.due > NOW


# --- Short-term disabled ---


class TestWithoutShortTerm:
    def setup_method(self) -> None:
        self.fsrs = FSRS(SchedulerConfig(enable_short_term=False))

    def test_new_card_goes_straight_to_review(self) -> None:
        for rating in Rating:
            result = self.fsrs.grade(CardState.new(NOW), rating, NOW)
            assert result.state == State.REVIEW
            assert result.scheduled_days >= 1

    def test_lapse_stays_in_review(self) -> None:
        result = self.fsrs.grade(review_card(), Rating.AGAIN, NOW)
        assert result.state == State.REVIEW
        assert result.lapses == 1
        assert result.scheduled_days >= 1


# --- Retrievability and preview ---


class TestRetrievability:
    def setup_method(self) -> None:
        self.fsrs = FSRS()

    def test_new_card_has_none(self) -> None:
        assert self.fsrs.retrievability(CardState.new(NOW), NOW) == 0.0

    def test_ninety_percent_at_stability(self) -> None:
        card = review_card(stability=10.0, days_ago=10)
        assert self.fsrs.retrievability(card, NOW) == pytest.approx(0.9)

    def test_decays_over_time(self) -> None:
        card = review_card(stability=10.0, days_ago=0)
        r1 = self.fsrs.retrievability(card, NOW + timedelta(days=5))
        r2 = self.fsrs.retrievability(card, NOW + timedelta(days=20))
        assert 0 < r2 < r1 < 1

    def test_higher_retention_shortens_intervals(self) -> None:
        card = review_card(stability=10.0, days_ago=10)
        relaxed = FSRS(SchedulerConfig(target_retention=0.8)).grade(card, Rating.GOOD, NOW)
        strict = FSRS(SchedulerConfig(target_retention=0.95)).grade(card, Rating.GOOD, NOW)
        assert relaxed.scheduled_days > strict.scheduled_days

    def test_preview_covers_every_rating(self) -> None:
        card = review_card()
        preview = self.fsrs.preview(card, NOW)
        assert set(preview.outcomes) == set(Rating)
        assert preview.outcomes[Rating.AGAIN].state == State.RELEARNING
        assert preview.outcomes[Rating.GOOD] == self.fsrs.grade(card, Rating.GOOD, NOW)
        assert 0 < preview.retrievability < 1
        assert card == review_card()
