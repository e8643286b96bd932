from __future__ import annotations

import argparse
import sys

from app.core.logger import logger
from app.db.database import init_db
from app.services.historical_import_service import STATUS_FAILED, historical_import_service


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Backfill historical judgments")
    sub = parser.add_subparsers(dest="mode", required=True)

    batch = sub.add_parser("batch", help="Re-list changed judgments in batches")
    batch.add_argument("--batch-size", type=int, default=50)
    batch.add_argument("--max-batches", type=int, default=20)
    batch.add_argument("--delay", type=float, default=3.0, help="Seconds between batches")
    batch.add_argument("--request-delay", type=float, default=0.1, help="Seconds between judgments")
    batch.add_argument("--force", action="store_true", help="Ignore the registry service window")
    batch.add_argument("--refresh", action="store_true", help="Re-fetch judgments already stored")

    company = sub.add_parser("company", help="Import judgments found by a company name search")
    company.add_argument("company_name")
    company.add_argument("--max-records", type=int, default=100)
    company.add_argument("--delay", type=float, default=2.0, help="Seconds between judgments")
    company.add_argument("--force", action="store_true", help="Ignore the registry service window")
    company.add_argument("--refresh", action="store_true", help="Re-fetch judgments already stored")

    args = parser.parse_args(argv)
    init_db()

    if args.mode == "batch":
        stats = historical_import_service.import_batches(
            batch_size=args.batch_size,
            max_batches=args.max_batches,
            batch_delay=args.delay,
            request_delay=args.request_delay,
            force=args.force,
            refresh=args.refresh,
        )
    else:
        stats = historical_import_service.import_by_company(
            args.company_name,
            max_records=args.max_records,
            delay=args.delay,
            force=args.force,
            refresh=args.refresh,
        )

    summary = stats.as_dict()
    logger.info("Historical import job finished: %s", summary)
    print(summary)
    return 1 if stats.status == STATUS_FAILED else 0


if __name__ == "__main__":
    sys.exit(main())
