"""Create (or reset) the leaderboard schema on the configured database."""
from __future__ import annotations

import argparse
import asyncio
import sys

from kgr_leaderboard.core.settings import get_settings
from kgr_leaderboard.db.session import build_engine, create_tables, drop_tables


async def ensure_schema(*, drop: bool = False, url: str | None = None) -> None:
    """Create missing tables, optionally dropping existing ones first."""
    settings = get_settings()
    if url:
        settings.database_url = url
    engine = build_engine(settings)
    try:
        if drop:
            await drop_tables(engine)
            print("[ensure_db] dropped all tables")
        await create_tables(engine)
        print("[ensure_db] schema is up to date")
    finally:
        await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Ensure or reset the leaderboard schema")
    parser.add_argument(
        "--drop-tables",
        action="store_true",
        help="Drop every table before recreating the schema.",
    )
    parser.add_argument(
        "--url",
        default=None,
        help="Override database URL (defaults to DATABASE_URL)",
    )
    args = parser.parse_args()

    try:
        asyncio.run(ensure_schema(drop=args.drop_tables, url=args.url))
    except Exception as exc:
        print(f"[ensure_db] ERROR: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
