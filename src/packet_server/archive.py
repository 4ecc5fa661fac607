"""Job archival CLI — ``packetgen-archive``.

Connects to the database and deletes finished generation jobs
(completed, escalated, superseded) older than a threshold.  Rendered
packets are kept.  Intended for cron jobs or one-off maintenance.

Examples::

    # Archive finished jobs older than 30 days (default)
    packetgen-archive

    # Archive everything finished more than a week ago
    packetgen-archive --days 7
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from datetime import datetime, timedelta, timezone

logger = logging.getLogger(__name__)


async def run_archive(*, days: int = int(os.getenv("DEFAULT_ARCHIVE_DAYS", "30"))) -> int:
    """Delete terminal jobs finished more than *days* ago; return the count."""
    # Lazy imports to avoid loading DB machinery at module import time
    from packet_db.engine import dispose_engine
    from packet_db.repository import SqlJobStore

    store = SqlJobStore()
    cutoff = datetime.now(timezone.utc) - timedelta(days=days)
    try:
        affected = await store.archive_terminal(older_than=cutoff)
        logger.info("Archive complete: affected_rows=%d, days=%d", affected, days)
        return affected
    finally:
        await dispose_engine()


def cli() -> None:
    """Console-script entry point: ``packetgen-archive``."""
    parser = argparse.ArgumentParser(
        prog="packetgen-archive",
        description="Delete finished packet generation jobs from the database.",
    )
    parser.add_argument(
        "--days",
        type=int,
        default=int(os.getenv("DEFAULT_ARCHIVE_DAYS", "30")),
        help=(
            "Age threshold in days (default: $DEFAULT_ARCHIVE_DAYS or 30). "
            "0 archives every finished job."
        ),
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    affected = asyncio.run(run_archive(days=args.days))

    print(f"Archived jobs: {affected}")
    sys.exit(0)
