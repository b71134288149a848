"""
Reconciliation API endpoints.

POST /sync runs one batch in auto mode (devices discovered from the
tracking feed) or manual mode (operator-supplied device/plate pairs).
Suggestions are applied by re-submitting the chosen plate as a manual entry.
"""

import logging
from typing import Literal

from fastapi import APIRouter, HTTPException, Query

from trackersync.errors import FeedError, ManualInputError, RunInProgressError, TrackerSyncError
from trackersync.ingestion import get_feed
from trackersync.schemas.sync import SyncRequest, SyncResponse
from trackersync.services.mapping_repository import SQLiteMappingRepository
from trackersync.services.reconciler import Reconciler
from trackersync.services.summary import format_summary_report

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])


def get_reconciler() -> Reconciler:
    return Reconciler(SQLiteMappingRepository())


@router.get("/health")
async def sync_health():
    """Liveness check for the sync endpoint."""
    return {"ok": True}


@router.post("", response_model=SyncResponse, response_model_by_alias=True)
async def run_sync(
    request: SyncRequest,
    format: Literal["json", "text"] = Query("json", description="'text' adds a copyable report"),
):
    """Run one reconciliation batch and return its summary."""
    reconciler = get_reconciler()
    try:
        if request.mode == "manual":
            summary = await reconciler.run_manual(request.devices)
        else:
            feed = get_feed()
            if feed is None:
                raise FeedError("No device feed configured")
            summary = await reconciler.run_auto(feed)
    except ManualInputError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except FeedError as e:
        logger.warning(f"Auto sync failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    except RunInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except TrackerSyncError as e:
        logger.error(f"Sync failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    report = format_summary_report(summary) if format == "text" else None
    return SyncResponse(success=True, summary=summary, report=report)
