"""
Print row counts and scan status totals for the configured database.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sqlalchemy import func, select

from mediscan.config import get_settings
from mediscan.db import PostgresDbClient, ScanRow


logger = logging.getLogger(__name__)


def status_counts(db: PostgresDbClient) -> Dict[str, int]:
    with db.Session() as session:
        stmt = select(ScanRow.status, func.count()).group_by(ScanRow.status)
        return {status: count for status, count in session.execute(stmt).all()}


def main() -> int:
    parser = argparse.ArgumentParser(description="Show MediScan database stats")
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy URL (defaults to DATABASE_URL from the environment)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the stats as JSON",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    database_url = args.database_url or get_settings().database_url
    if not database_url:
        logger.error("No database URL configured; set DATABASE_URL or pass --database-url")
        return 1

    db = PostgresDbClient(database_url)
    stats = {"rows": db.count_rows(), "scan_status": status_counts(db)}
    if args.json:
        print(json.dumps(stats, indent=2))
        return 0

    for table, count in stats["rows"].items():
        print(f"{table}: {count}")
    for status, count in sorted(stats["scan_status"].items()):
        print(f"scans[{status}]: {count}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
