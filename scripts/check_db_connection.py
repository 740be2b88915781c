"""
Check that the relational database configured in DATABASE_URL is reachable.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from storage_backend.config import get_settings
from storage_backend.errors import StorageError
from storage_backend.relational import RelationalProvider

logger = logging.getLogger("check_db_connection")


def main() -> int:
    parser = argparse.ArgumentParser(description="Probe the relational database")
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="Override DATABASE_URL",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    settings = get_settings()
    url = args.database_url or settings.database_url
    try:
        provider = RelationalProvider(url)
        provider.initialize()
    except StorageError as exc:
        logger.error("Database check failed: %s", exc)
        return 1
    provider.dispose()
    logger.info("Database connection OK")
    return 0


if __name__ == "__main__":
    sys.exit(main())
