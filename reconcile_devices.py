#!/usr/bin/env python3
"""
Run one tracker-to-vehicle reconciliation batch from the command line.

Usage:
    python reconcile_devices.py --auto
    python reconcile_devices.py --file devices.csv
    python reconcile_devices.py --file devices.csv --json

CSV columns: plate, tracker_id, latitude, longitude, address
"""

import argparse
import asyncio
import csv
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from trackersync.db import close_db
from trackersync.errors import ManualInputError, TrackerSyncError
from trackersync.ingestion import get_feed
from trackersync.services.mapping_repository import SQLiteMappingRepository
from trackersync.services.reconciler import Reconciler
from trackersync.services.summary import format_summary_report


def _float_or_none(value: str | None, field: str, line: int) -> float | None:
    value = (value or "").strip()
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        raise ManualInputError(f"Line {line}: {field} is not a number: {value!r}", index=line - 2) from None


def read_devices(filepath: str) -> list[dict]:
    """Read manual entries from CSV. Raises ManualInputError on a malformed coordinate."""
    with open(filepath, newline="", encoding="utf-8") as f:
        return [
            {
                "plate": (row.get("plate") or "").strip() or None,
                "tracker_id": (row.get("tracker_id") or row.get("trackerId") or "").strip() or None,
                "latitude": _float_or_none(row.get("latitude"), "latitude", line),
                "longitude": _float_or_none(row.get("longitude"), "longitude", line),
                "address": (row.get("address") or "").strip() or None,
            }
            for line, row in enumerate(csv.DictReader(f), start=2)
        ]


async def run(args) -> int:
    reconciler = Reconciler(SQLiteMappingRepository())
    try:
        if args.auto:
            summary = await reconciler.run_auto(get_feed())
        else:
            summary = await reconciler.run_manual(read_devices(args.file))
    except TrackerSyncError as e:
        print(f"Sync failed: {e}", file=sys.stderr)
        return 1
    finally:
        await close_db()

    if args.json:
        print(json.dumps(summary.model_dump(mode="json", by_alias=True), ensure_ascii=False, indent=2))
    else:
        print(format_summary_report(summary))
    return 0


def main():
    parser = argparse.ArgumentParser(description="Reconcile tracker devices with fleet vehicles")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--auto", action="store_true", help="Discover devices from the tracking portal")
    source.add_argument("--file", help="CSV of operator-supplied devices (manual mode)")
    parser.add_argument("--json", action="store_true", help="Print the summary as JSON")
    args = parser.parse_args()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
