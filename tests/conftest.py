"""Shared fixtures: an isolated database for the app and in-memory sessions for units."""

import os
import tempfile
from pathlib import Path

# Must be set before backend.config is imported anywhere
_TEST_DIR = Path(tempfile.mkdtemp(prefix="hanzi_flow_tests_"))
os.environ["HANZI_FLOW_DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR / 'test.db'}"

from collections.abc import AsyncIterator, Awaitable, Callable  # noqa: E402
from datetime import datetime  # noqa: E402

import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from backend.config import utcnow  # noqa: E402
from backend.database import engine  # noqa: E402
from backend.models import Base, Card  # noqa: E402
from backend.srs.fsrs import State  # noqa: E402


@pytest_asyncio.fixture
async def db() -> AsyncIterator[AsyncSession]:
    """A fresh in-memory database per test."""
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    maker = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with maker() as session:
        yield session

    await test_engine.dispose()


@pytest_asyncio.fixture
async def app_db() -> AsyncIterator[None]:
    """Empty tables on the application's own engine."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest_asyncio.fixture
async def make_card(db: AsyncSession) -> Callable[..., Awaitable[Card]]:
    """Factory that inserts a card with the given scheduling fields."""
    counter = {"item_id": 0}

    async def _make(
        state: State = State.NEW,
        due: datetime | None = None,
        stability: float = 0.0,
        difficulty: float = 0.0,
        last_review: datetime | None = None,
        item_type: str = "character",
    ) -> Card:
        counter["item_id"] += 1
        card = Card(
            item_id=counter["item_id"],
            item_type=item_type,
            card_type="recognition",
            state=int(state),
            due=due or utcnow(),
            stability=stability,
            difficulty=difficulty,
            elapsed_days=0,
            scheduled_days=0,
            learning_steps=0,
            reps=0 if state == State.NEW else 1,
            lapses=0,
            last_review=last_review,
        )
        db.add(card)
        await db.commit()
        return card

    return _make
