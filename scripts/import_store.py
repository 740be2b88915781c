"""
Import a JSON array file into one store, replacing records with matching ids.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from storage_backend.bootstrap import StorageContext
from storage_backend.config import get_settings
from storage_backend.errors import StorageError

logger = logging.getLogger("import_store")


def main() -> int:
    parser = argparse.ArgumentParser(description="Import a JSON file into a store")
    parser.add_argument("store", help="Store (table) name")
    parser.add_argument("path", help="Path to a JSON array of records")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    context = StorageContext(get_settings())
    try:
        service = context.get_service()
        service.import_from_file(args.store, args.path)
    except (StorageError, FileNotFoundError) as exc:
        logger.error("Import failed: %s", exc)
        return 1
    logger.info("Imported %s into %s", args.path, args.store)
    return 0


if __name__ == "__main__":
    sys.exit(main())
