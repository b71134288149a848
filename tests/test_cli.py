"""Tests for the command-line import and reconcile scripts."""

import argparse

import pytest

import import_vehicles
import reconcile_devices
from trackersync.db import get_active_vehicles, get_vehicle
from trackersync.errors import ManualInputError
from trackersync.services.reconciler import validate_manual_entries


def test_read_devices_csv(tmp_path):
    path = tmp_path / "devices.csv"
    path.write_text(
        "plate,tracker_id,latitude,longitude,address\n"
        "أ ب ج-123,TRK001,24.7,46.6,Riyadh\n"
        "XDR 4521,,,,\n",
        encoding="utf-8",
    )
    rows = reconcile_devices.read_devices(str(path))

    assert rows[0] == {
        "plate": "أ ب ج-123",
        "tracker_id": "TRK001",
        "latitude": 24.7,
        "longitude": 46.6,
        "address": "Riyadh",
    }
    assert rows[1]["tracker_id"] is None
    pending = validate_manual_entries(rows)
    assert pending[0].complete and not pending[1].complete


@pytest.mark.asyncio
async def test_import_vehicles(tmp_path, temp_db):
    path = tmp_path / "vehicles.csv"
    path.write_text("vehicle_id,plate_number\nv-001,ABJ123\nv-002,XDR 4521\n,NOPLATE\n", encoding="utf-8")
    assert await import_vehicles.run(str(path), inactive_missing=False) == (2, 0)

    path.write_text("id,plate\nv-001,ABJ 123\n", encoding="utf-8")
    assert await import_vehicles.run(str(path), inactive_missing=True) == (0, 1)

    active = await get_active_vehicles()
    assert [v["id"] for v in active] == ["v-001"]
    assert (await get_vehicle("v-002"))["is_active"] == 0


def test_read_devices_rejects_bad_coordinate(tmp_path):
    path = tmp_path / "devices.csv"
    path.write_text(
        "plate,tracker_id,latitude,longitude\nABJ123,TRK001,24.7,46.6\nXDR 4521,TRK002,north,46.6\n",
        encoding="utf-8",
    )
    with pytest.raises(ManualInputError, match="Line 3: latitude is not a number") as exc:
        reconcile_devices.read_devices(str(path))
    assert exc.value.index == 1


@pytest.mark.asyncio
async def test_reconcile_cli_reports_bad_csv(tmp_path, temp_db, capsys):
    path = tmp_path / "devices.csv"
    path.write_text("plate,tracker_id,latitude,longitude\nABJ123,TRK001,24.7,east\n", encoding="utf-8")
    args = argparse.Namespace(auto=False, file=str(path), json=False)

    assert await reconcile_devices.run(args) == 1
    assert "Sync failed: Line 2: longitude is not a number" in capsys.readouterr().err
