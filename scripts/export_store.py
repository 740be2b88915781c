"""
Export one store to a JSON file under EXPORTS_DIR.
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

logger = logging.getLogger("export_store")


def main() -> int:
    parser = argparse.ArgumentParser(description="Export a store to JSON")
    parser.add_argument("store", help="Store (table) name")
    parser.add_argument(
        "-o",
        "--output",
        type=str,
        default=None,
        help="File name inside EXPORTS_DIR (default: <store>.json)",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    context = StorageContext(get_settings())
    try:
        service = context.get_service()
        result = service.export_to_file(args.store, args.output or f"{args.store}.json")
    except StorageError as exc:
        logger.error("Export failed: %s", exc)
        return 1
    logger.info("Export written: %s", result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
