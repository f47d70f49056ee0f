#!/usr/bin/env python3
"""
Expire Scope of Appointment records whose signing link has lapsed.

Expiry already happens lazily whenever an agent reads a record; this sweep
brings the stored status up to date for records nobody has looked at.
Safe to run repeatedly (e.g. from cron).

Usage:
  python scripts/expire_overdue.py               # Expire up to 500 records
  python scripts/expire_overdue.py --limit 2000
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from audit.soa_audit_logger import SOAAuditLogger  # noqa: E402
from config.database import get_database_settings  # noqa: E402
from config.settings import get_settings  # noqa: E402
from database.async_engine import close_database, get_async_session_factory  # noqa: E402
from database.unit_of_work import UnitOfWorkFactory  # noqa: E402
from services.logging_config import configure_logging  # noqa: E402
from services.soa.lifecycle import LifecycleManager  # noqa: E402


async def run(limit: int) -> int:
    uow_factory = UnitOfWorkFactory(get_async_session_factory(get_database_settings()))
    lifecycle = LifecycleManager(SOAAuditLogger(uow_factory))
    try:
        return await lifecycle.expire_overdue(uow_factory, limit=limit)
    finally:
        await close_database()


def main() -> int:
    parser = argparse.ArgumentParser(description="Expire lapsed SOA signing links")
    parser.add_argument("--limit", type=int, default=500, help="Maximum records per run")
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(level=settings.log_level, json_output=settings.log_json)

    expired = asyncio.run(run(args.limit))
    print(f"Expired {expired} record(s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
