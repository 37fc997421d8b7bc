"""
CLI entry point for the retention sweep.
"""

import asyncio
import argparse
from datetime import timedelta
from pathlib import Path

from faithqa.memory.store import PersistenceStore, utc_now
from faithqa.shared.config import settings
from faithqa.shared.logging import setup_logging


async def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="faithqa retention sweep")
    parser.add_argument(
        "--days",
        type=int,
        default=settings.privacy.conversation_retention_days,
        help="Delete rows older than this many days"
    )
    parser.add_argument(
        "--db-path",
        type=Path,
        default=Path(settings.db_path),
        help="SQLite database path"
    )

    args = parser.parse_args()

    setup_logging()

    store = PersistenceStore(args.db_path)
    cutoff = utc_now() - timedelta(days=args.days)
    counts = await asyncio.to_thread(store.sweep, cutoff)

    print("\n" + "=" * 50)
    print("Retention Sweep Summary")
    print("=" * 50)
    print(f"Cutoff: {cutoff.isoformat()}")
    for table, deleted in counts.items():
        print(f"{table}: {deleted} rows deleted")
    print("=" * 50)


if __name__ == "__main__":
    asyncio.run(main())
