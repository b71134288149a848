"""
Device/vehicle mapping and location endpoints.

Read-only views over what reconciliation runs have written: the open
mappings, the full (superseded included) history of one tracker, and a
vehicle's last-known location.
"""

from fastapi import APIRouter, HTTPException, Query

from trackersync.db import get_mapping_history, get_open_mappings, get_vehicle_location

router = APIRouter(tags=["mappings"])


@router.get("/mappings")
async def open_mappings(limit: int = Query(500, ge=1, le=5000)):
    """Currently active device/vehicle mappings."""
    mappings = await get_open_mappings(limit)
    return {"mappings": mappings, "count": len(mappings)}


@router.get("/mappings/{tracker_id}/history")
async def mapping_history(tracker_id: str):
    """Every mapping a tracker has had, oldest first."""
    history = await get_mapping_history(tracker_id)
    return {"tracker_id": tracker_id, "history": history, "count": len(history)}


@router.get("/vehicles/{vehicle_id}/location")
async def vehicle_location(vehicle_id: str):
    """Last-known location of a vehicle."""
    location = await get_vehicle_location(vehicle_id)
    if location is None:
        raise HTTPException(status_code=404, detail=f"No location recorded for vehicle {vehicle_id}")
    return location
