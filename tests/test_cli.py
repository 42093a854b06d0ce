"""Tests for CLI commands (non-interactive paths)."""

import argparse

import pytest

from hanzi_flow.__main__ import cmd_add, cmd_due, cmd_learn, cmd_lessons, cmd_stats, ensure_db


@pytest.mark.asyncio
async def test_ensure_db(app_db) -> None:
    """Database tables can be created."""
    await ensure_db()


@pytest.mark.asyncio
async def test_add_creates_cards_once(app_db, capsys) -> None:
    args = argparse.Namespace(item_type="radical", char="口", pinyin="kǒu", meaning="mouth")
    await cmd_add(args)
    assert "2 cards ready to learn" in capsys.readouterr().out

    await cmd_add(args)
    assert "already has cards" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_due_and_stats(app_db, capsys) -> None:
    await cmd_add(argparse.Namespace(item_type="character", char="日", pinyin="rì", meaning="sun"))
    capsys.readouterr()

    await cmd_due(argparse.Namespace())
    assert "0 cards due, 2 new cards" in capsys.readouterr().out

    await cmd_stats(argparse.Namespace())
    out = capsys.readouterr().out
    assert "Total cards:" in out
    assert "New (unseen):" in out


@pytest.mark.asyncio
async def test_learn_and_lessons(app_db, capsys) -> None:
    await cmd_learn(argparse.Namespace(lesson_id="lesson-1", path=None))
    out = capsys.readouterr().out
    assert "人 (radical): 2 new cards" in out
    assert "Lesson lesson-1: completed" in out

    await cmd_lessons(argparse.Namespace(path=None))
    out = capsys.readouterr().out
    assert "lesson-1" in out
    assert "completed" in out
    assert "available" in out


@pytest.mark.asyncio
async def test_learn_unknown_lesson(app_db, capsys) -> None:
    await cmd_learn(argparse.Namespace(lesson_id="lesson-99", path=None))
    assert "Unknown lesson lesson-99" in capsys.readouterr().out
