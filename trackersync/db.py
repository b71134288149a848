"""
SQLite database layer for TrackerSync.

Stores:
- vehicles: fleet vehicles eligible for matching (owned by the fleet system,
  read-only to reconciliation apart from the tracker_id pointer)
- device_vehicle_mappings: device<->vehicle links; superseded rows are closed,
  never deleted, so re-links stay auditable
- vehicle_location: last-known location per vehicle, keyed by event time

Uses aiosqlite for async SQLite access. The database file lives at
data/trackersync.db by default and is auto-created on first startup.
"""

import asyncio
import logging
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite

from trackersync.config import settings

logger = logging.getLogger(__name__)

DB_PATH: Path = settings.database_path

_db: aiosqlite.Connection | None = None


async def get_db() -> aiosqlite.Connection:
    """Get or create the database connection."""
    global _db
    if _db is None:
        DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        _db = await aiosqlite.connect(str(DB_PATH))
        _db.row_factory = aiosqlite.Row
        await _db.execute("PRAGMA journal_mode=WAL")
        await _db.execute("PRAGMA foreign_keys=ON")
        await _init_tables(_db)
        logger.info(f"SQLite database initialized at {DB_PATH}")
    return _db


async def close_db():
    """Close the database connection."""
    global _db
    if _db:
        await _db.close()
        _db = None
        logger.info("SQLite database connection closed")


async def _init_tables(db: aiosqlite.Connection):
    """Create tables if they don't exist."""
    await db.executescript("""
        CREATE TABLE IF NOT EXISTS vehicles (
            id TEXT PRIMARY KEY,
            plate_number TEXT NOT NULL,
            tracker_id TEXT,
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE UNIQUE INDEX IF NOT EXISTS idx_vehicles_active_plate
            ON vehicles(plate_number) WHERE is_active = 1;

        CREATE TABLE IF NOT EXISTS device_vehicle_mappings (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            tracker_id TEXT NOT NULL,
            vehicle_id TEXT NOT NULL REFERENCES vehicles(id),
            plate_number TEXT,
            link_method TEXT NOT NULL CHECK (link_method IN ('auto', 'manual')),
            linked_at TEXT NOT NULL,
            closed_at TEXT
        );

        CREATE UNIQUE INDEX IF NOT EXISTS idx_mappings_open_tracker
            ON device_vehicle_mappings(tracker_id) WHERE closed_at IS NULL;
        CREATE UNIQUE INDEX IF NOT EXISTS idx_mappings_open_vehicle
            ON device_vehicle_mappings(vehicle_id) WHERE closed_at IS NULL;
        CREATE INDEX IF NOT EXISTS idx_mappings_tracker
            ON device_vehicle_mappings(tracker_id);

        CREATE TABLE IF NOT EXISTS vehicle_location (
            vehicle_id TEXT PRIMARY KEY REFERENCES vehicles(id),
            latitude REAL NOT NULL,
            longitude REAL NOT NULL,
            address TEXT,
            is_tracked INTEGER NOT NULL DEFAULT 1,
            observed_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
    """)
    await db.commit()


def _utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _now() -> str:
    return datetime.now(UTC).isoformat()


async def _rollback(db: aiosqlite.Connection):
    """Roll back the pending transaction, even while the caller is being cancelled."""
    await asyncio.shield(db.rollback())


# ─── Vehicles ────────────────────────────────────────────────────────


async def upsert_vehicle(vehicle_id: str, plate_number: str, is_active: bool = True) -> bool:
    """Insert or update a fleet vehicle. Returns True if a new row was created."""
    db = await get_db()
    cursor = await db.execute("SELECT id FROM vehicles WHERE id = ?", (vehicle_id,))
    existing = await cursor.fetchone()
    await db.execute(
        """INSERT INTO vehicles (id, plate_number, is_active, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?)
           ON CONFLICT(id) DO UPDATE SET plate_number=excluded.plate_number,
               is_active=excluded.is_active, updated_at=excluded.updated_at""",
        (vehicle_id, plate_number, int(is_active), _now(), _now()),
    )
    await db.commit()
    return existing is None


async def get_active_vehicles() -> list[dict]:
    """All active vehicles, ordered by id."""
    db = await get_db()
    cursor = await db.execute(
        "SELECT id, plate_number, tracker_id FROM vehicles WHERE is_active = 1 ORDER BY id"
    )
    rows = await cursor.fetchall()
    return [dict(row) for row in rows]


async def get_vehicle(vehicle_id: str) -> dict | None:
    db = await get_db()
    cursor = await db.execute("SELECT * FROM vehicles WHERE id = ?", (vehicle_id,))
    row = await cursor.fetchone()
    return dict(row) if row else None


# ─── Device/Vehicle Mappings ─────────────────────────────────────────


async def get_open_mapping_for_tracker(tracker_id: str) -> dict | None:
    db = await get_db()
    cursor = await db.execute(
        "SELECT * FROM device_vehicle_mappings WHERE tracker_id = ? AND closed_at IS NULL",
        (tracker_id,),
    )
    row = await cursor.fetchone()
    return dict(row) if row else None


async def get_open_mapping_for_vehicle(vehicle_id: str) -> dict | None:
    db = await get_db()
    cursor = await db.execute(
        "SELECT * FROM device_vehicle_mappings WHERE vehicle_id = ? AND closed_at IS NULL",
        (vehicle_id,),
    )
    row = await cursor.fetchone()
    return dict(row) if row else None


async def link_tracker_to_vehicle(tracker_id: str, vehicle_id: str, link_method: str) -> dict:
    """
    Open a mapping between tracker_id and vehicle_id.

    Idempotent: an already-open identical mapping is left untouched.
    Any open mapping on either side is closed first, and the vehicles'
    tracker_id pointers are moved accordingly. Runs in one transaction.

    Returns {"created": bool, "vehicle_updated": bool, "closed": [mapping ids]}.
    """
    db = await get_db()
    current = await get_open_mapping_for_tracker(tracker_id)
    if current and current["vehicle_id"] == vehicle_id:
        return {"created": False, "vehicle_updated": False, "closed": []}

    vehicle = await get_vehicle(vehicle_id)
    if vehicle is None:
        raise LookupError(f"Unknown vehicle_id: {vehicle_id}")

    now = _now()
    closed: list[int] = []
    try:
        # close whatever holds either side of the new link
        for stale in (current, await get_open_mapping_for_vehicle(vehicle_id)):
            if stale is None or stale["id"] in closed:
                continue
            await db.execute(
                "UPDATE device_vehicle_mappings SET closed_at = ? WHERE id = ?",
                (now, stale["id"]),
            )
            await db.execute(
                "UPDATE vehicles SET tracker_id = NULL, updated_at = ? WHERE id = ? AND tracker_id = ?",
                (now, stale["vehicle_id"], stale["tracker_id"]),
            )
            closed.append(stale["id"])

        await db.execute(
            """INSERT INTO device_vehicle_mappings
               (tracker_id, vehicle_id, plate_number, link_method, linked_at, closed_at)
               VALUES (?, ?, ?, ?, ?, NULL)""",
            (tracker_id, vehicle_id, vehicle["plate_number"], link_method, now),
        )
        cursor = await db.execute(
            """UPDATE vehicles SET tracker_id = ?, updated_at = ?
               WHERE id = ? AND (tracker_id IS NULL OR tracker_id != ?)""",
            (tracker_id, now, vehicle_id, tracker_id),
        )
        vehicle_updated = cursor.rowcount > 0
        await asyncio.shield(db.commit())
    except BaseException:
        # also on cancellation (timeouts), or the next commit on the shared
        # connection would persist a half-applied link
        await _rollback(db)
        raise

    if closed:
        logger.info(f"Tracker {tracker_id} -> vehicle {vehicle_id}: superseded mapping(s) {closed}")
    return {"created": True, "vehicle_updated": vehicle_updated, "closed": closed}


async def get_open_mappings(limit: int = 500) -> list[dict]:
    """Currently open mappings, most recent first."""
    db = await get_db()
    cursor = await db.execute(
        """SELECT * FROM device_vehicle_mappings WHERE closed_at IS NULL
           ORDER BY linked_at DESC, id DESC LIMIT ?""",
        (limit,),
    )
    rows = await cursor.fetchall()
    return [dict(row) for row in rows]


async def get_mapping_history(tracker_id: str) -> list[dict]:
    """Every mapping ever opened for a tracker, oldest first."""
    db = await get_db()
    cursor = await db.execute(
        "SELECT * FROM device_vehicle_mappings WHERE tracker_id = ? ORDER BY id ASC",
        (tracker_id,),
    )
    rows = await cursor.fetchall()
    return [dict(row) for row in rows]


# ─── Vehicle Location ────────────────────────────────────────────────


async def get_vehicle_location(vehicle_id: str) -> dict | None:
    db = await get_db()
    cursor = await db.execute("SELECT * FROM vehicle_location WHERE vehicle_id = ?", (vehicle_id,))
    row = await cursor.fetchone()
    return dict(row) if row else None


async def record_vehicle_location(
    vehicle_id: str,
    latitude: float,
    longitude: float,
    address: str | None,
    observed_at: datetime,
) -> bool:
    """
    Store a location unless a newer observation is already stored.

    Last writer wins by event time: an observed_at older than the stored
    one is ignored. Returns True when the row was written.
    """
    db = await get_db()
    observed = _utc(observed_at)
    stored = await get_vehicle_location(vehicle_id)
    if stored and datetime.fromisoformat(stored["observed_at"]) > observed:
        logger.debug(f"Ignoring stale location for vehicle {vehicle_id} observed at {observed.isoformat()}")
        return False

    try:
        await db.execute(
            """INSERT INTO vehicle_location
               (vehicle_id, latitude, longitude, address, is_tracked, observed_at, updated_at)
               VALUES (?, ?, ?, ?, 1, ?, ?)
               ON CONFLICT(vehicle_id) DO UPDATE SET latitude=excluded.latitude,
                   longitude=excluded.longitude, address=excluded.address, is_tracked=1,
                   observed_at=excluded.observed_at, updated_at=excluded.updated_at""",
            (vehicle_id, latitude, longitude, address, observed.isoformat(), _now()),
        )
        await asyncio.shield(db.commit())
    except BaseException:
        await _rollback(db)
        raise
    return True
