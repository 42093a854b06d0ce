from datetime import UTC, datetime
from pathlib import Path

from pydantic_settings import BaseSettings


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    Replaces the deprecated ``datetime.utcnow()`` while keeping datetimes
    naive so they stay compatible with SQLite (which doesn't store tz info).
    """
    return datetime.now(UTC).replace(tzinfo=None)


class Settings(BaseSettings):
    app_name: str = "HanziFlow"
    database_url: str = f"sqlite+aiosqlite:///{Path(__file__).resolve().parent.parent / 'data' / 'hanzi_flow.db'}"
    learning_path_file: str = str(Path(__file__).resolve().parent / "data" / "learning_path.json")
    # Characters are visual, so retention is set a bit above the FSRS default
    target_retention: float = 0.92
    maximum_interval: int = 365  # days
    enable_short_term: bool = True
    learning_steps_minutes: list[float] = [1, 10]
    relearning_steps_minutes: list[float] = [10]
    cards_per_session: int = 20
    session_minutes: int = 30
    due_limit: int = 50
    new_limit: int = 10
    timer_tick_seconds: float = 1.0
    known_stability_days: float = 21.0
    debug: bool = False

    model_config = {"env_prefix": "HANZI_FLOW_", "env_file": ".env"}


settings = Settings()
