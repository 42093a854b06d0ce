"""Lesson progress tracking along the static learning path.

Lessons bundle radicals and characters that are introduced together before
they enter the scheduler. Finishing every item of a lesson completes it and
unlocks the next lesson. Lesson definitions are static content that may lag
behind stored progress, so calls naming an unknown lesson are logged no-ops.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import settings, utcnow
from backend.models.card import Card
from backend.models.lesson_progress import LessonProgress
from backend.srs.stores import CardStore, ContentLookup, LessonProgressStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LessonDef:
    id: str
    title: str
    radicals: tuple[str, ...] = ()
    characters: tuple[str, ...] = ()

    @property
    def items(self) -> list[tuple[str, str]]:
        """Return (item_type, char) pairs in presentation order."""
        return [("radical", c) for c in self.radicals] + [("character", c) for c in self.characters]


@dataclass(frozen=True)
class StageDef:
    id: str
    title: str
    lessons: tuple[LessonDef, ...] = ()


@dataclass(frozen=True)
class LearningPath:
    """Ordered stages of lessons, flattened into a single lesson sequence."""

    stages: tuple[StageDef, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LearningPath:
        return cls(
            stages=tuple(
                StageDef(
                    id=str(stage["id"]),
                    title=stage.get("title", ""),
                    lessons=tuple(
                        LessonDef(
                            id=str(lesson["id"]),
                            title=lesson.get("title", ""),
                            radicals=tuple(lesson.get("radicals", [])),
                            characters=tuple(lesson.get("characters", [])),
                        )
                        for lesson in stage.get("lessons", [])
                    ),
                )
                for stage in data.get("stages", [])
            )
        )

    @classmethod
    def load(cls, path: str | Path | None = None) -> LearningPath:
        path = Path(path or settings.learning_path_file)
        with path.open(encoding="utf-8") as f:
            return cls.from_dict(json.load(f))

    @property
    def lessons(self) -> list[LessonDef]:
        return [lesson for stage in self.stages for lesson in stage.lessons]

    def get(self, lesson_id: str) -> LessonDef | None:
        return next((lesson for lesson in self.lessons if lesson.id == lesson_id), None)

    def next_after(self, lesson_id: str) -> LessonDef | None:
        lessons = self.lessons
        for i, lesson in enumerate(lessons[:-1]):
            if lesson.id == lesson_id:
                return lessons[i + 1]
        return None


@dataclass
class LessonStatus:
    """A lesson definition merged with its stored progress."""

    lesson: LessonDef
    status: str
    radicals_done: list[str]
    characters_done: list[str]
    completed_at: datetime | None = None

    @property
    def items_done(self) -> int:
        return len(self.radicals_done) + len(self.characters_done)

    @property
    def total_items(self) -> int:
        return len(self.lesson.radicals) + len(self.lesson.characters)


class LessonProgressTracker:
    """Advances lesson status as items are introduced into the scheduler."""

    def __init__(self, db: AsyncSession, path: LearningPath) -> None:
        self.path = path
        self.progress = LessonProgressStore(db)
        self.cards = CardStore(db)
        self.content = ContentLookup(db)

    async def ensure_progress(self) -> None:
        """Create missing progress rows: the first lesson available, the rest locked."""
        for i, lesson in enumerate(self.path.lessons):
            if await self.progress.get(lesson.id) is None:
                await self.progress.update(lesson.id, status="available" if i == 0 else "locked")

    async def start_lesson(self, lesson_id: str) -> LessonProgress | None:
        """Move a lesson to in_progress unless it is already in progress or completed."""
        if self._lesson(lesson_id) is None:
            return None
        row = await self.progress.get(lesson_id)
        if row is not None and row.status in ("in_progress", "completed"):
            return row
        logger.info("Starting lesson %s", lesson_id)
        return await self.progress.update(lesson_id, status="in_progress")

    async def mark_item_done(
        self,
        lesson_id: str,
        char: str,
        item_type: str,
    ) -> LessonProgress | None:
        """Record that an item of the lesson has been introduced.

        Marking the same item twice has no effect. Once every item of the
        lesson is done, the lesson is completed.
        """
        lesson = self._lesson(lesson_id)
        if lesson is None or not self._has_item(lesson, char, item_type):
            return None

        row = await self.progress.get(lesson_id)
        radicals = list(row.radicals_done) if row else []
        characters = list(row.characters_done) if row else []
        done = radicals if item_type == "radical" else characters
        if char not in done:
            done.append(char)
            row = await self.progress.update(
                lesson_id, radicals_done=radicals, characters_done=characters
            )

        if row is not None and row.status != "completed" and self._all_done(lesson, row):
            return await self.complete_lesson(lesson_id)
        return row

    async def complete_lesson(
        self,
        lesson_id: str,
        now: datetime | None = None,
    ) -> LessonProgress | None:
        """Mark a lesson completed and unlock the next one if it is still locked."""
        if self._lesson(lesson_id) is None:
            return None
        row = await self.progress.update(
            lesson_id, status="completed", completed_at=now or utcnow()
        )
        logger.info("Completed lesson %s", lesson_id)

        following = self.path.next_after(lesson_id)
        if following is not None:
            next_row = await self.progress.get(following.id)
            if next_row is None or next_row.status == "locked":
                await self.progress.update(following.id, status="available")
                logger.info("Unlocked lesson %s", following.id)
        return row

    async def restart_lesson(self, lesson_id: str) -> LessonProgress | None:
        """Reset a lesson's items so it can be redone. Later lessons stay unlocked."""
        if self._lesson(lesson_id) is None:
            return None
        logger.info("Restarting lesson %s", lesson_id)
        return await self.progress.update(
            lesson_id,
            status="in_progress",
            radicals_done=[],
            characters_done=[],
            completed_at=None,
        )

    async def introduce_item(
        self,
        lesson_id: str,
        char: str,
        item_type: str,
        now: datetime | None = None,
    ) -> list[Card]:
        """Create the item's cards if it has none yet, then mark it done.

        Returns the newly created cards.
        """
        lesson = self._lesson(lesson_id)
        if lesson is None or not self._has_item(lesson, char, item_type):
            return []
        item = await self.content.find_by_char(item_type, char)
        if item is None:
            logger.warning("No %s %r in content store, skipping", item_type, char)
            return []

        created = await self.cards.ensure_cards_for_item(item_type, item.id, now)
        await self.mark_item_done(lesson_id, char, item_type)
        return created

    async def sync_from_cards(self, lesson_id: str) -> LessonProgress | None:
        """Mark lesson items done that already have cards in the scheduler."""
        lesson = self._lesson(lesson_id)
        if lesson is None:
            return None
        row = None
        for item_type, char in lesson.items:
            item = await self.content.find_by_char(item_type, char)
            if item is not None and await self.cards.exists_for_item(item_type, item.id):
                row = await self.mark_item_done(lesson_id, char, item_type)
        return row or await self.progress.get(lesson_id)

    async def overview(self) -> list[LessonStatus]:
        rows = {row.lesson_id: row for row in await self.progress.all()}
        statuses = []
        for lesson in self.path.lessons:
            row = rows.get(lesson.id)
            statuses.append(
                LessonStatus(
                    lesson=lesson,
                    status=row.status if row else "locked",
                    radicals_done=list(row.radicals_done) if row else [],
                    characters_done=list(row.characters_done) if row else [],
                    completed_at=row.completed_at if row else None,
                )
            )
        return statuses

    async def current_lesson(self) -> LessonDef | None:
        """Return the lesson in progress, else the first available one."""
        statuses = await self.overview()
        for wanted in ("in_progress", "available"):
            for status in statuses:
                if status.status == wanted:
                    return status.lesson
        return None

    def _lesson(self, lesson_id: str) -> LessonDef | None:
        lesson = self.path.get(lesson_id)
        if lesson is None:
            logger.warning("Unknown lesson %s, ignoring", lesson_id)
        return lesson

    @staticmethod
    def _has_item(lesson: LessonDef, char: str, item_type: str) -> bool:
        if (item_type, char) in lesson.items:
            return True
        logger.warning("%s %r is not part of lesson %s, ignoring", item_type, char, lesson.id)
        return False

    @staticmethod
    def _all_done(lesson: LessonDef, row: LessonProgress) -> bool:
        return set(lesson.radicals) <= set(row.radicals_done) and set(
            lesson.characters
        ) <= set(row.characters_done)
