"""Pydantic schemas for API request/response models."""

from datetime import datetime

from pydantic import BaseModel

from backend.srs.fsrs import Rating

# --- Session ---


class SessionPlanResponse(BaseModel):
    """How the next session's budget splits between reviews and new items."""

    review_count: int
    new_count: int
    total_cards: int


class SessionStartRequest(BaseModel):
    max_cards: int | None = None
    session_minutes: float | None = None


class SessionStartResponse(BaseModel):
    """Response when starting a new study session."""

    session_id: int
    total_cards: int
    due_cards: int
    new_cards: int
    phase: str
    time_remaining: int  # seconds


class CardResponse(BaseModel):
    """Response containing the next card to review."""

    card_id: int
    item_id: int
    item_type: str
    card_type: str
    state: str
    card_reps: int
    card_lapses: int
    is_new: bool
    next_due: dict[str, datetime]  # Due date each rating would produce
    remaining: int
    phase: str
    time_remaining: int


class GradeRequest(BaseModel):
    """Request to grade the current card."""

    card_id: int
    rating: Rating  # 1=Again, 2=Hard, 3=Good, 4=Easy


class GradeResponse(BaseModel):
    """Response after grading a card with its new schedule."""

    state: str
    next_due: datetime
    scheduled_days: int
    stability: float
    difficulty: float
    remaining: int
    session_complete: bool
    phase: str


class SessionStatsResponse(BaseModel):
    """Statistics for a study session."""

    session_id: int
    cards_reviewed: int
    new_items_learned: int
    again: int
    phase: str
    elapsed_seconds: int
    time_remaining: int
    ended_at: datetime | None = None


# --- Stats ---


class LearnerStatsResponse(BaseModel):
    """Overall card and review statistics."""

    total_cards: int
    cards_new: int
    cards_learning: int
    cards_review: int
    cards_known: int  # Review cards with stability >= the known threshold
    cards_due: int
    average_retention: float | None
    streak_days: int
    total_reviews: int


# --- Lessons ---


class LessonResponse(BaseModel):
    lesson_id: str
    title: str
    status: str
    radicals: list[str]
    characters: list[str]
    radicals_done: list[str]
    characters_done: list[str]
    completed_at: datetime | None = None


class ItemDoneRequest(BaseModel):
    char: str
    item_type: str  # radical, character
