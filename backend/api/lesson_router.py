"""API routes for lesson progress along the learning path."""

from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.schemas import ItemDoneRequest, LessonResponse
from backend.database import get_session
from backend.srs.lessons import LearningPath, LessonProgressTracker, LessonStatus

router = APIRouter(prefix="/api/lessons", tags=["lessons"])


@lru_cache(maxsize=1)
def get_learning_path() -> LearningPath:
    return LearningPath.load()


def get_tracker(
    db: AsyncSession = Depends(get_session),
    path: LearningPath = Depends(get_learning_path),
) -> LessonProgressTracker:
    return LessonProgressTracker(db, path)


def _lesson_response(status: LessonStatus) -> LessonResponse:
    return LessonResponse(
        lesson_id=status.lesson.id,
        title=status.lesson.title,
        status=status.status,
        radicals=list(status.lesson.radicals),
        characters=list(status.lesson.characters),
        radicals_done=status.radicals_done,
        characters_done=status.characters_done,
        completed_at=status.completed_at,
    )


async def _lesson_or_404(tracker: LessonProgressTracker, lesson_id: str) -> LessonResponse:
    for status in await tracker.overview():
        if status.lesson.id == lesson_id:
            return _lesson_response(status)
    raise HTTPException(status_code=404, detail="Lesson not found")


@router.get("", response_model=list[LessonResponse])
async def list_lessons(
    tracker: LessonProgressTracker = Depends(get_tracker),
) -> list[LessonResponse]:
    """List every lesson with its progress."""
    await tracker.ensure_progress()
    return [_lesson_response(status) for status in await tracker.overview()]


@router.post("/{lesson_id}/start", response_model=LessonResponse)
async def start_lesson(
    lesson_id: str,
    tracker: LessonProgressTracker = Depends(get_tracker),
) -> LessonResponse:
    await tracker.start_lesson(lesson_id)
    return await _lesson_or_404(tracker, lesson_id)


@router.post("/{lesson_id}/items", response_model=LessonResponse)
async def introduce_item(
    lesson_id: str,
    request: ItemDoneRequest,
    tracker: LessonProgressTracker = Depends(get_tracker),
) -> LessonResponse:
    """Introduce an item: create its cards and mark it done in the lesson."""
    await tracker.introduce_item(lesson_id, request.char, request.item_type)
    return await _lesson_or_404(tracker, lesson_id)


@router.post("/{lesson_id}/complete", response_model=LessonResponse)
async def complete_lesson(
    lesson_id: str,
    tracker: LessonProgressTracker = Depends(get_tracker),
) -> LessonResponse:
    await tracker.complete_lesson(lesson_id)
    return await _lesson_or_404(tracker, lesson_id)


@router.post("/{lesson_id}/restart", response_model=LessonResponse)
async def restart_lesson(
    lesson_id: str,
    tracker: LessonProgressTracker = Depends(get_tracker),
) -> LessonResponse:
    await tracker.restart_lesson(lesson_id)
    return await _lesson_or_404(tracker, lesson_id)
