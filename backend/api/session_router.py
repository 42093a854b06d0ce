"""API routes for study sessions."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.schemas import (
    CardResponse,
    GradeRequest,
    GradeResponse,
    SessionPlanResponse,
    SessionStartRequest,
    SessionStartResponse,
    SessionStatsResponse,
)
from backend.config import utcnow
from backend.database import async_session, get_session
from backend.srs.session import ReviewSession, SessionPlanner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/session", tags=["session"])

# In-memory session store (single local learner); each active session owns a db session
_active_sessions: dict[int, tuple[ReviewSession, AsyncSession]] = {}


def _get_active(session_id: int) -> ReviewSession:
    entry = _active_sessions.get(session_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Session not found")
    return entry[0]


async def _close(session_id: int) -> ReviewSession:
    """End a session, drop it from the store and release its db session."""
    review_session, db = _active_sessions.pop(session_id)
    try:
        await review_session.end()
    finally:
        await db.close()
    return review_session


async def _finished(session_id: int) -> HTTPException:
    logger.info("Session %d is complete, closing it", session_id)
    await _close(session_id)
    return HTTPException(status_code=410, detail="Session is complete")


def _stats_response(review_session: ReviewSession) -> SessionStatsResponse:
    s = review_session.stats
    return SessionStatsResponse(
        session_id=review_session.session_id,
        cards_reviewed=s.cards_reviewed,
        new_items_learned=s.new_items_learned,
        again=s.again,
        phase=review_session.phase,
        elapsed_seconds=review_session.elapsed(),
        time_remaining=review_session.time_remaining(),
        ended_at=review_session.ended_at,
    )


@router.get("/plan", response_model=SessionPlanResponse)
async def session_plan(
    max_cards: int | None = None,
    db: AsyncSession = Depends(get_session),
) -> SessionPlanResponse:
    """Preview how the next session's budget would be split."""
    plan = await SessionPlanner(db).plan(max_cards)
    return SessionPlanResponse(
        review_count=plan.review_count,
        new_count=plan.new_count,
        total_cards=plan.total_cards,
    )


@router.post("/start", response_model=SessionStartResponse)
async def session_start(request: SessionStartRequest | None = None) -> SessionStartResponse:
    """Start a new study session and its countdown."""
    request = request or SessionStartRequest()
    db = async_session()
    try:
        review_session = await SessionPlanner(db).start_session(
            max_cards=request.max_cards,
            session_minutes=request.session_minutes,
        )
    except Exception:
        await db.close()
        raise

    if review_session.queue.total == 0:
        await review_session.end()
        await db.close()
        raise HTTPException(status_code=404, detail="No cards available for review")

    _active_sessions[review_session.session_id] = (review_session, db)

    return SessionStartResponse(
        session_id=review_session.session_id,
        total_cards=review_session.queue.total,
        due_cards=len(review_session.queue.due_cards),
        new_cards=len(review_session.queue.new_cards),
        phase=review_session.phase,
        time_remaining=review_session.time_remaining(),
    )


@router.get("/next/{session_id}", response_model=CardResponse)
async def session_next(session_id: int) -> CardResponse:
    """Get the next card in the session."""
    review_session = _get_active(session_id)
    review_session.tick()

    session_card = review_session.get_next()
    if session_card is None:
        raise await _finished(session_id)

    card = session_card.card
    preview = review_session.fsrs.preview(session_card.card_state, utcnow())
    return CardResponse(
        card_id=card.id,
        item_id=card.item_id,
        item_type=card.item_type,
        card_type=card.card_type,
        state=session_card.card_state.state.name.lower(),
        card_reps=card.reps,
        card_lapses=card.lapses,
        is_new=session_card.is_new,
        next_due={rating.name.lower(): state.due for rating, state in preview.outcomes.items()},
        remaining=review_session.remaining,
        phase=review_session.phase,
        time_remaining=review_session.time_remaining(),
    )


@router.post("/grade/{session_id}", response_model=GradeResponse)
async def session_grade(session_id: int, request: GradeRequest) -> GradeResponse:
    """Grade the current card."""
    review_session = _get_active(session_id)
    review_session.tick()

    session_card = review_session.get_next()
    if session_card is None:
        raise await _finished(session_id)

    if session_card.card.id != request.card_id:
        raise HTTPException(status_code=400, detail="Card ID mismatch")

    new_state = await review_session.grade(session_card.card, request.rating)

    return GradeResponse(
        state=new_state.state.name.lower(),
        next_due=new_state.due,
        scheduled_days=new_state.scheduled_days,
        stability=new_state.stability,
        difficulty=new_state.difficulty,
        remaining=review_session.remaining,
        session_complete=review_session.is_complete,
        phase=review_session.phase,
    )


@router.post("/phase/{session_id}", response_model=SessionStatsResponse)
async def session_next_phase(session_id: int) -> SessionStatsResponse:
    """Advance the session to its next phase."""
    review_session = _get_active(session_id)
    review_session.next_phase()
    return _stats_response(review_session)


@router.post("/end/{session_id}", response_model=SessionStatsResponse)
async def session_end(session_id: int) -> SessionStatsResponse:
    """End the session and persist its final counters."""
    _get_active(session_id)
    review_session = await _close(session_id)
    return _stats_response(review_session)


@router.get("/stats/{session_id}", response_model=SessionStatsResponse)
async def session_stats(session_id: int) -> SessionStatsResponse:
    """Get stats for the current session."""
    review_session = _get_active(session_id)
    review_session.tick()
    return _stats_response(review_session)
