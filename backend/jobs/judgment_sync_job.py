from __future__ import annotations

import argparse
import sys

from app.core.logger import logger
from app.db.database import init_db
from app.db.models import SyncTriggerSource
from app.services.judgment_sync_service import OUTCOME_FAILED, judgment_sync_service
from app.services.scheduler import judgment_sync_scheduler


def run_once(force: bool = False) -> dict:
    outcome = judgment_sync_service.run_sync(force=force, trigger_source=SyncTriggerSource.cli)
    summary = outcome.as_dict()
    logger.info("Judgment sync job finished: %s", summary)
    return summary


def run_scheduler() -> None:
    try:
        judgment_sync_scheduler.start(kind="blocking")
    except (KeyboardInterrupt, SystemExit):
        judgment_sync_scheduler.shutdown()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Judicial judgment sync")
    sub = parser.add_subparsers(dest="command", required=True)

    run_cmd = sub.add_parser("run", help="Run one sync now")
    run_cmd.add_argument("--force", action="store_true", help="Ignore the registry service window")

    sub.add_parser("schedule", help="Run the nightly cron schedule in the foreground")

    args = parser.parse_args(argv)
    init_db()

    if args.command == "schedule":
        run_scheduler()
        return 0

    summary = run_once(force=args.force)
    print(summary)
    return 1 if summary["status"] == OUTCOME_FAILED else 0


if __name__ == "__main__":
    sys.exit(main())
