"""CLI interface for HanziFlow.

Usage:
    python -m hanzi_flow review                  Start a timed study session
    python -m hanzi_flow due                     Show how many cards are due
    python -m hanzi_flow stats                   Show your statistics
    python -m hanzi_flow add radical 口 -p kǒu    Add an item and its cards
    python -m hanzi_flow lessons                 Show lesson progress
    python -m hanzi_flow learn lesson-1          Introduce a lesson's items
"""

import argparse
import asyncio
import logging

from backend.config import settings, utcnow
from backend.database import async_session, init_db
from backend.srs.fsrs import Rating
from backend.srs.lessons import LearningPath, LessonProgressTracker
from backend.srs.queue import DueSetResolver
from backend.srs.session import SessionPlanner
from backend.srs.stats import card_stats, review_stats
from backend.srs.stores import CardStore, ContentLookup


async def ensure_db() -> None:
    """Create tables if they don't exist."""
    await init_db()


async def cmd_review(args: argparse.Namespace) -> None:
    """Run an interactive study session."""
    await ensure_db()

    async with async_session() as db:
        planner = SessionPlanner(db)
        content = ContentLookup(db)
        session = await planner.start_session(
            max_cards=args.max_cards,
            session_minutes=args.minutes,
        )

        if session.queue.total == 0:
            await session.end()
            print("\nNo cards due for review. You're all caught up!")
            return

        print("\n  Study Session")
        print(
            f"  {len(session.queue.due_cards)} due + {len(session.queue.new_cards)} new"
            f" = {session.queue.total} cards, {session.session_minutes:g} minutes\n"
        )
        print("  Ratings: 1=Again  2=Hard  3=Good  4=Easy")
        print("  Type 'q' to quit\n")

        try:
            while (session_card := session.get_next()) is not None:
                card = session_card.card
                item = await content.get(card.item_type, card.item_id)
                label = f"  [{session.stats.cards_reviewed + 1}/{session.queue.total}]"
                if session_card.is_new:
                    label += " (NEW)"
                print(label)

                char = item.char if item else f"#{card.item_id}"
                if card.card_type == "recall" and item and item.meaning:
                    print(f"  Write the {card.item_type} for: {item.meaning}")
                else:
                    print(f"  {char}")

                # Countdown runs in the background while waiting for input
                rate_input = (await asyncio.to_thread(input, "  Rate [1-4]: ")).strip()
                if rate_input.lower() == "q":
                    print("\n  Session ended early.")
                    break
                if rate_input not in {"1", "2", "3", "4"}:
                    print("  Please enter 1, 2, 3 or 4.")
                    continue

                if item:
                    print(f"  {item.char}  {item.pinyin or ''}  {item.meaning or ''}")
                state = await session.grade(card, Rating(int(rate_input)))
                if state.scheduled_days:
                    print(f"  Next review in {state.scheduled_days} days\n")
                else:
                    minutes = (state.due - utcnow()).total_seconds() / 60
                    print(f"  Next review in {max(1, round(minutes))} min\n")

            if not session.is_active:
                print("\n  Time is up!")
        finally:
            record = await session.end()

    print("\n  Session Complete!")
    print(f"  Reviewed: {record.cards_reviewed}  New: {record.new_items_learned}\n")


async def cmd_due(args: argparse.Namespace) -> None:
    """Show how many cards are due."""
    await ensure_db()

    async with async_session() as db:
        planner = SessionPlanner(db)
        plan = await planner.plan()

    print(
        f"  {plan.review_count} cards due, {plan.new_count} new cards"
        f" for the next session of {settings.cards_per_session}"
    )


async def cmd_stats(args: argparse.Namespace) -> None:
    """Show card and review statistics."""
    await ensure_db()
    now = utcnow()

    async with async_session() as db:
        cards = CardStore(db)
        counts = await card_stats(cards)
        due = await DueSetResolver(cards).due_cards(settings.due_limit, now)
        reviews = await review_stats(db, now)

    retention = f"{reviews.average_retention:.0%}" if reviews.average_retention is not None else "-"
    print("\n  HanziFlow Statistics")
    print(f"  {'Total cards:':<20} {counts.total}")
    print(f"  {'Due now:':<20} {len(due)}")
    print(f"  {'New (unseen):':<20} {counts.new}")
    print(f"  {'Learning:':<20} {counts.learning}")
    print(f"  {'Review:':<20} {counts.review}")
    print(f"  {'Known:':<20} {counts.known}")
    print(f"  {'Total reviews:':<20} {reviews.total_reviews}")
    print(f"  {'Retention (30d):':<20} {retention}")
    print(f"  {'Streak:':<20} {reviews.streak_days} days")
    print()


async def cmd_add(args: argparse.Namespace) -> None:
    """Add a content item and create its cards."""
    await ensure_db()

    async with async_session() as db:
        content = ContentLookup(db)
        item = await content.find_by_char(args.item_type, args.char)
        if item is None:
            item = await content.add(args.item_type, args.char, args.pinyin, args.meaning)
        created = await CardStore(db).ensure_cards_for_item(args.item_type, item.id)

    if created:
        print(f"  Added {args.item_type} {args.char} ({len(created)} cards ready to learn)")
    else:
        print(f"  '{args.char}' already has cards (id={item.id}).")


async def cmd_lessons(args: argparse.Namespace) -> None:
    """Show lesson progress along the learning path."""
    await ensure_db()

    async with async_session() as db:
        tracker = LessonProgressTracker(db, LearningPath.load(args.path))
        await tracker.ensure_progress()
        statuses = await tracker.overview()

    print()
    for status in statuses:
        print(
            f"  {status.lesson.id:<12} {status.status:<12}"
            f" {status.items_done}/{status.total_items}  {status.lesson.title}"
        )
    print()


async def cmd_learn(args: argparse.Namespace) -> None:
    """Introduce every item of a lesson into the scheduler."""
    await ensure_db()

    async with async_session() as db:
        tracker = LessonProgressTracker(db, LearningPath.load(args.path))
        await tracker.ensure_progress()
        lesson = tracker.path.get(args.lesson_id)
        if lesson is None:
            print(f"  Unknown lesson {args.lesson_id}")
            return

        content = ContentLookup(db)
        await tracker.start_lesson(lesson.id)
        for item_type, char in lesson.items:
            if await content.find_by_char(item_type, char) is None:
                await content.add(item_type, char)
            created = await tracker.introduce_item(lesson.id, char, item_type)
            print(f"  {char} ({item_type}): {len(created)} new cards")

        row = await tracker.progress.get(lesson.id)

    print(f"\n  Lesson {lesson.id}: {row.status if row else 'locked'}\n")


def main() -> None:
    """Entry point for the HanziFlow CLI application."""
    parser = argparse.ArgumentParser(
        prog="hanzi_flow",
        description="HanziFlow spaced repetition for Chinese radicals and characters",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # review
    review_parser = subparsers.add_parser("review", help="Start a timed study session")
    review_parser.add_argument(
        "--max-cards", type=int, default=settings.cards_per_session, help="Max cards per session"
    )
    review_parser.add_argument(
        "--minutes", type=float, default=settings.session_minutes, help="Session length in minutes"
    )

    # due
    subparsers.add_parser("due", help="Show cards due for review")

    # stats
    subparsers.add_parser("stats", help="Show your statistics")

    # add
    add_parser = subparsers.add_parser("add", help="Add a radical or character")
    add_parser.add_argument("item_type", choices=["radical", "character"])
    add_parser.add_argument("char", help="The radical or character")
    add_parser.add_argument("-p", "--pinyin", default="", help="Pinyin")
    add_parser.add_argument("-m", "--meaning", default="", help="Meaning")

    # lessons
    lessons_parser = subparsers.add_parser("lessons", help="Show lesson progress")
    lessons_parser.add_argument("--path", default=None, help="Learning path JSON file")

    # learn
    learn_parser = subparsers.add_parser("learn", help="Introduce a lesson's items")
    learn_parser.add_argument("lesson_id", help="Lesson id from the learning path")
    learn_parser.add_argument("--path", default=None, help="Learning path JSON file")

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    if not args.command:
        parser.print_help()
        return

    cmd_map = {
        "review": cmd_review,
        "due": cmd_due,
        "stats": cmd_stats,
        "add": cmd_add,
        "lessons": cmd_lessons,
        "learn": cmd_learn,
    }

    asyncio.run(cmd_map[args.command](args))


if __name__ == "__main__":
    main()
