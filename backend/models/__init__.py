"""SQLAlchemy ORM models for the HanziFlow database."""

from backend.models.base import Base
from backend.models.card import Card
from backend.models.content_item import ContentItem
from backend.models.lesson_progress import LessonProgress
from backend.models.review_log import ReviewLog
from backend.models.study_session import StudySession

__all__ = ["Base", "Card", "ContentItem", "LessonProgress", "ReviewLog", "StudySession"]
