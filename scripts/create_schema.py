"""Create the payroll run engine tables.

Usage:
    python scripts/create_schema.py
    python scripts/create_schema.py --database-url postgresql+asyncpg://...

Existing tables are left untouched.
"""

from __future__ import annotations

import argparse
import asyncio

from payrun_engine.config import get_settings
from payrun_engine.database import create_schema, get_engine
from payrun_engine.models import Base


async def run(database_url: str) -> None:
    """Create all ORM tables in the target database."""
    target = database_url.split("@")[1] if "@" in database_url else database_url
    print(f"Target database: {target}")

    engine = get_engine(database_url)
    try:
        await create_schema(engine)
    finally:
        await engine.dispose()

    print(f"Schema ready ({len(Base.metadata.tables)} tables)")


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Create payroll run engine tables")
    parser.add_argument(
        "--database-url",
        type=str,
        default=get_settings().database_url,
        help="Database URL (default: from settings)",
    )
    args = parser.parse_args()

    asyncio.run(run(args.database_url))


if __name__ == "__main__":
    main()
