"""Seed the category registry (and optionally a sample roster).

Usage:
    python scripts/seed_registries.py [--db PATH] [--sample-roster]
"""

import argparse
from pathlib import Path

import sys
sys.path.append(str(Path(__file__).resolve().parents[1]))

from category_registry import CategoryRegistry
from core.config import get_config
from roster_registry import RosterRegistry, seed_sample_data
from storage import init_invoice_db


def main() -> None:
    parser = argparse.ArgumentParser(description="Create tables and seed default categories")
    parser.add_argument("--db", type=Path, help="SQLite database (default: RECON_DB_PATH)")
    parser.add_argument("--sample-roster", action="store_true", help="Also seed sample horses")
    args = parser.parse_args()

    db_path = args.db or get_config().db_path

    init_invoice_db(db_path)
    categories = CategoryRegistry(db_path)
    counts = categories.seed_defaults()
    print(f"Categories: {counts['created']} created, {counts['skipped']} already present")

    if args.sample_roster:
        roster_counts = seed_sample_data(db_path)
        print(f"Roster: {roster_counts['created']} created, {roster_counts['skipped']} already present")

    print("\nRoster:")
    for entity in RosterRegistry(db_path).list():
        retired = f" (retired {entity.retired_on})" if entity.retired_on else ""
        print(f"  [{entity.status.value}] {entity.name}{retired}")


if __name__ == "__main__":
    main()
