"""
Create the MediScan tables (auth_users, user_profiles, scans) on the configured
database. Safe to run repeatedly; existing tables are left alone.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from mediscan.config import get_settings
from mediscan.db import PostgresDbClient


logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Create MediScan database tables")
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy URL (defaults to DATABASE_URL from the environment)",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    database_url = args.database_url or get_settings().database_url
    if not database_url:
        logger.error("No database URL configured; set DATABASE_URL or pass --database-url")
        return 1

    db = PostgresDbClient(database_url)
    for table, count in db.count_rows().items():
        logger.info("Table %s ready (%d rows)", table, count)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
