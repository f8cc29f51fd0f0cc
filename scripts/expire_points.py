#!/usr/bin/env python3
"""
Batch point expiration.

Runs expiration once for every ACTIVE tenant and prints a JSON summary.
Meant for cron; the HTTP route POST /v1/internal/points/expire does the same.

Usage:
    python scripts/expire_points.py
    python scripts/expire_points.py --tenant company-123
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from app.db.session import close_engines, get_write_session_factory  # noqa: E402
from app.observability import get_logger, setup_logging  # noqa: E402
from app.services.expiration import ExpirationJob  # noqa: E402

logger = get_logger("expire_points")


async def run(tenant_id: str | None) -> int:
    """Run expiration and print the summary. Returns the process exit code."""
    job = ExpirationJob(get_write_session_factory())
    try:
        if tenant_id:
            expired = await job.expire_tenant(tenant_id)
            print(json.dumps({"tenant_id": tenant_id, "expired": expired}))
            return 0

        result = await job.expire_all()
        print(
            json.dumps(
                {
                    "processed": result.processed,
                    "failed": result.failed,
                    "results": [
                        {"tenant_id": item.tenant_id, "expired": item.expired}
                        for item in result.results
                    ],
                },
                indent=2,
            )
        )
        return 1 if result.failed else 0
    finally:
        await close_engines()


def main() -> None:
    parser = argparse.ArgumentParser(description="Expire time-expired points")
    parser.add_argument("--tenant", help="Only expire this tenant (status is not checked)")
    args = parser.parse_args()

    setup_logging()
    logger.info("expire_points_started", tenant_id=args.tenant)
    sys.exit(asyncio.run(run(args.tenant)))


if __name__ == "__main__":
    main()
