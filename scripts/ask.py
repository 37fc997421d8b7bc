"""
CLI entry point: ask one question through the full pipeline.
"""

import asyncio
import argparse
import json
from pathlib import Path

from faithqa.core.models import Question, QuestionContext
from faithqa.core.pipeline import create_pipeline
from faithqa.shared.config import settings
from faithqa.shared.exceptions import InvalidInputError, OverloadedError
from faithqa.shared.logging import setup_logging


async def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="faithqa question answering")
    parser.add_argument("question", help="Question text")
    parser.add_argument("--user-id", default="cli-user", help="User identifier")
    parser.add_argument("--session-id", default="cli-session", help="Session identifier")
    parser.add_argument("--lang", default=None, help="Language hint (en, am, ti, om)")
    parser.add_argument("--lesson-id", default=None)
    parser.add_argument("--course-id", default=None)
    parser.add_argument("--chapter-id", default=None)
    parser.add_argument(
        "--db-path",
        type=Path,
        default=Path(settings.db_path),
        help="SQLite database path"
    )

    args = parser.parse_args()

    setup_logging()

    pipeline = create_pipeline(db_path=args.db_path)
    question = Question(
        text=args.question,
        user_id=args.user_id,
        session_id=args.session_id,
        lang_hint=args.lang,
        ctx=QuestionContext(
            lesson_id=args.lesson_id,
            course_id=args.course_id,
            chapter_id=args.chapter_id,
        ),
    )

    try:
        bundle = await pipeline.ask(question)
    except InvalidInputError as e:
        print(f"Invalid question: {e}")
        raise SystemExit(2)
    except OverloadedError as e:
        print(f"Service busy, retry in {e.retry_after_seconds}s")
        raise SystemExit(3)

    print(json.dumps(bundle.model_dump(mode="json"), ensure_ascii=False, indent=2))


if __name__ == "__main__":
    asyncio.run(main())
