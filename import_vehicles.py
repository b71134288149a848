#!/usr/bin/env python3
"""
Import fleet vehicles from CSV.

Usage:
    python import_vehicles.py --file data/vehicles.csv
    python import_vehicles.py --file data/vehicles.csv --inactive-missing
"""

import argparse
import asyncio
import csv
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from trackersync.db import close_db, get_active_vehicles, get_db, upsert_vehicle


async def run(filepath: str, inactive_missing: bool) -> tuple[int, int]:
    path = Path(filepath)
    if not path.exists():
        print(f"Error: file not found: {path}")
        return 0, 0
    await get_db()
    created = updated = 0
    seen: set[str] = set()
    try:
        with open(path, newline="", encoding="utf-8") as f:
            reader = csv.DictReader(f)
            for row in reader:
                vehicle_id = (row.get("vehicle_id") or row.get("id") or "").strip()
                plate = (row.get("plate_number") or row.get("plate") or "").strip()
                if not vehicle_id or not plate:
                    print(f"  skip (missing id/plate) {row}")
                    continue
                seen.add(vehicle_id)
                if await upsert_vehicle(vehicle_id, plate):
                    created += 1
                    print(f"  + {vehicle_id} {plate}")
                else:
                    updated += 1
        if inactive_missing:
            for v in await get_active_vehicles():
                if v["id"] not in seen:
                    await upsert_vehicle(v["id"], v["plate_number"], is_active=False)
                    print(f"  - {v['id']} {v['plate_number']} (inactive)")
    finally:
        await close_db()
    return created, updated


def main():
    parser = argparse.ArgumentParser(description="Import fleet vehicles from CSV")
    parser.add_argument("--file", required=True, help="Path to CSV (vehicle_id, plate_number)")
    parser.add_argument(
        "--inactive-missing", action="store_true", help="Deactivate vehicles that are not in the file"
    )
    args = parser.parse_args()
    created, updated = asyncio.run(run(args.file, args.inactive_missing))
    print(f"Imported {created} new vehicles, updated {updated}.")


if __name__ == "__main__":
    main()
