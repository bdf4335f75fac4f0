#!/usr/bin/env python3
"""Run the brand transaction sync once, outside the scheduler.

Intended usage: manual catch-up after a provider outage, or a cron entry on
hosts where the API process runs with the scheduler disabled.

Example:
    python tooling/scripts/run_transaction_sync.py --trigger cron
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Execute one transaction sync run")
    parser.add_argument(
        "--trigger",
        default="cli",
        help="Label recorded on the sync run to describe the invocation source.",
    )
    return parser.parse_args()


async def _run(trigger: str) -> dict[str, Any]:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "apps" / "api" / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from engagecore_api.core.logging import configure_logging  # type: ignore import-position
    from engagecore_api.core.settings import settings  # type: ignore import-position
    from engagecore_api.db.session import async_session  # type: ignore import-position
    from engagecore_api.jobs.transaction_sync import run_transaction_sync  # type: ignore import-position

    configure_logging(service_name="engagecore-sync-cli", environment=settings.environment, version="cli")
    return await run_transaction_sync(session_factory=async_session, trigger=trigger)


def main() -> int:
    args = parse_args()
    summary = asyncio.run(_run(args.trigger))
    print(json.dumps(summary, indent=2, default=str))
    if summary["status"] != "completed":
        logger.error("Transaction sync run failed", error=summary.get("error"))
        return 1
    logger.success(
        "Transaction sync run completed",
        processed=summary["processed"],
        errors=summary["errors"],
        brands_processed=summary["brands_processed"],
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
