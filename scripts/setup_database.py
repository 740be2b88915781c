"""
Create the reference tables (products, settings) in the configured database.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sqlalchemy.exc import SQLAlchemyError

from storage_backend.config import get_settings
from storage_backend.errors import StorageError
from storage_backend.relational import RelationalProvider
from storage_backend.schema import Base, create_schema

logger = logging.getLogger("setup_database")


def main() -> int:
    parser = argparse.ArgumentParser(description="Create storage tables")
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="Override DATABASE_URL",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    settings = get_settings()
    try:
        provider = RelationalProvider(args.database_url or settings.database_url)
        provider.initialize()
    except StorageError as exc:
        logger.error("Cannot reach the database: %s", exc)
        return 1
    try:
        create_schema(provider.engine)
    except SQLAlchemyError as exc:
        logger.error("Schema creation failed: %s", exc)
        return 1
    finally:
        provider.dispose()
    logger.info("Tables ready: %s", ", ".join(sorted(Base.metadata.tables)))
    return 0


if __name__ == "__main__":
    sys.exit(main())
