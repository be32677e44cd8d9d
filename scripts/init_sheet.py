#!/usr/bin/env python3
"""
Initialize the Requisition Sheet

Creates the SQLite sheet with the configured header row and checks that
both stages' decision columns resolve.

Usage:
    # Initialize from the default config
    python scripts/init_sheet.py

    # Custom config / database path
    python scripts/init_sheet.py --config /etc/reqapprove/workflow.yaml --db /var/lib/reqapprove/sheet.db

    # Drop and recreate (WARNING: destroys data)
    python scripts/init_sheet.py --drop-existing --confirm
"""

import argparse
import sys
from pathlib import Path

from reqapprove.datastore import HeaderIndex, RowStoreAdapter, SQLitePropertyStore, SQLiteSheet
from reqapprove.errors import HeaderNotFound
from reqapprove.utils.config_loader import WorkflowConfig


def parse_args():
    parser = argparse.ArgumentParser(description="Initialize the requisition sheet")
    parser.add_argument("--config", default="config/workflow.yaml", help="Workflow YAML config")
    parser.add_argument("--db", help="Override db_path from the config")
    parser.add_argument("--drop-existing", action="store_true", help="Delete the existing database first")
    parser.add_argument("--confirm", action="store_true", help="Required with --drop-existing")
    return parser.parse_args()


def main():
    args = parse_args()

    if args.drop_existing and not args.confirm:
        print("✗ --drop-existing requires --confirm")
        return 1

    config = WorkflowConfig.from_file(args.config)
    db_path = Path(args.db or config.db_path)

    if args.drop_existing and db_path.exists():
        print(f"⚠️  Dropping existing database {db_path}...")
        db_path.unlink()

    print(f"Initializing sheet: {db_path}")
    sheet = SQLiteSheet(str(db_path), headers=config.headers)
    SQLitePropertyStore(str(db_path))

    headers = sheet.get_headers()
    rows = RowStoreAdapter(sheet, HeaderIndex.from_headers(headers))
    try:
        rows.validate_schema()
    except HeaderNotFound as exc:
        print(f"✗ {exc}")
        return 1

    print(f"✓ {len(headers)} columns:")
    for position, name in enumerate(headers):
        print(f"  {position:>2}  {name}")
    print(f"✓ {len(sheet.row_ids())} existing rows")
    return 0


if __name__ == "__main__":
    sys.exit(main())
