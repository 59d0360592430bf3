#!/usr/bin/env python3
"""
Backfill player fields added after the first release.

Rows written before avatar generation existed (or by older tools) can have
NULL status, generation_status or regenerate_requested. This sets:
  status               -> active
  generation_status    -> pending
  regenerate_requested -> false

Idempotent: only NULL columns are touched, so re-running changes nothing.

Usage:
  python scripts/migrate_player_fields.py           # dry-run (counts only)
  python scripts/migrate_player_fields.py --apply   # write changes
"""

import argparse
import asyncio
import logging
import os
import sys

# Add parent to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import func, select, update

from app.database import close_db, get_session_with_retry, init_db
from app.models import GenerationStatus, Player, PlayerStatus

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

BACKFILL_DEFAULTS = (
    ("status", PlayerStatus.ACTIVE.value),
    ("generation_status", GenerationStatus.PENDING.value),
    ("regenerate_requested", False),
)


async def backfill_player_fields(session, apply: bool) -> dict:
    """Count (and with ``apply`` fix) NULL columns.

    Returns:
        Mapping of column name -> number of rows missing it
    """
    missing = {}
    for name, default in BACKFILL_DEFAULTS:
        column = getattr(Player, name)
        result = await session.execute(
            select(func.count()).select_from(Player).where(column.is_(None))
        )
        missing[name] = result.scalar_one()

        if apply and missing[name]:
            await session.execute(
                update(Player).where(column.is_(None)).values({name: default})
            )

    if apply:
        await session.commit()
    return missing


async def main(apply: bool):
    await init_db()
    try:
        async with get_session_with_retry() as session:
            total = (await session.execute(select(func.count()).select_from(Player))).scalar_one()
            missing = await backfill_player_fields(session, apply)
    finally:
        await close_db()

    logger.info(f"Players scanned: {total}")
    for name, count in missing.items():
        logger.info(f"  {name}: {count} missing")

    if not any(missing.values()):
        logger.info("No updates needed. All players already have the required fields.")
    elif apply:
        logger.info("Migration complete.")
    else:
        logger.info("Dry-run only. Re-run with --apply to write changes.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Backfill player status/generation fields")
    parser.add_argument("--apply", action="store_true", help="Write changes (default: dry-run)")
    args = parser.parse_args()
    asyncio.run(main(args.apply))
