"""Deliver one batch of queued messages. Intended to run from cron."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from contextlib import suppress

from core.db import database
from core.services.message_service import MessageService


logger = logging.getLogger("core.scripts.process_message_queue")


# Access SessionLocal dynamically so test fixtures that rebind the
# sessionmaker are respected.
SessionLocal = lambda: database.SessionLocal()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Send pending email, SMS and inbox messages")
    parser.add_argument(
        "--batch-size",
        type=int,
        default=100,
        help="Maximum number of messages to deliver (default: 100)",
    )
    parser.add_argument(
        "--stats",
        action="store_true",
        help="Print queue statistics without delivering anything",
    )
    return parser.parse_args(argv)


def run(batch_size: int, stats_only: bool = False) -> int:
    database._ensure_sqlite_schema()
    session = SessionLocal()
    try:
        service = MessageService(session)
        if stats_only:
            stats = service.queue_stats()
            print(" ".join(f"{key}={value}" for key, value in stats.items()))
            return 0

        started = time.perf_counter()
        result = asyncio.run(service.process_message_queue(batch_size=batch_size))
        duration = time.perf_counter() - started
        print(
            f"Processed {result['processed']} messages "
            f"(failed: {result['failed']}, skipped: {result['skipped']})."
        )
        logger.info(
            "queue_cli_run_finished processed=%d failed=%d skipped=%d duration_seconds=%.3f",
            result["processed"], result["failed"], result["skipped"], duration,
        )
        return 1 if result["failed"] and not result["processed"] else 0
    finally:
        with suppress(Exception):
            session.close()


def main(argv: list[str] | None = None) -> int:
    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    args = parse_args(argv)
    return run(batch_size=args.batch_size, stats_only=args.stats)


if __name__ == "__main__":  # pragma: no cover - manual execution path
    sys.exit(main())
