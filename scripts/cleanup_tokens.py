"""
Housekeeping: purge used/expired password reset tokens and trim the
activity log to ACTIVITY_LOG_MAX_ROWS. Safe to run from cron.

Usage:
  python scripts/cleanup_tokens.py [--dry-run]
"""
import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv  # noqa: E402

from app.impgeo.accounts import cleanup_reset_tokens  # noqa: E402
from app.impgeo.audit import trim_events  # noqa: E402
from app.impgeo.config import load_config  # noqa: E402
from scripts._db_utils import resolve_database_url, script_session  # noqa: E402


def run_cleanup(*, database_url: str | None = None, max_rows: int | None = None, dry_run: bool = False) -> dict:
    config = load_config()
    limit = max_rows if max_rows is not None else int(config["ACTIVITY_LOG_MAX_ROWS"])
    with script_session(resolve_database_url(database_url)) as s:
        tokens = cleanup_reset_tokens(s)
        events = trim_events(s, limit)
        if dry_run:
            s.rollback()
    return {"tokens_deleted": tokens, "events_trimmed": events, "dry_run": dry_run}


def main() -> None:
    load_dotenv()
    parser = argparse.ArgumentParser(description="Purge stale reset tokens and trim the activity log.")
    parser.add_argument("--dry-run", action="store_true", help="Report counts without deleting")
    parser.add_argument("--max-rows", type=int, default=None, help="Activity log rows to keep")
    args = parser.parse_args()

    result = run_cleanup(max_rows=args.max_rows, dry_run=args.dry_run)
    prefix = "[dry-run] " if result["dry_run"] else ""
    print(f"{prefix}Reset tokens deleted: {result['tokens_deleted']}", flush=True)
    print(f"{prefix}Activity log rows trimmed: {result['events_trimmed']}", flush=True)


if __name__ == "__main__":
    main()
