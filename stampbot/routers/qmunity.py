"""Public queue dashboard API."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from starlette.concurrency import run_in_threadpool

from stampbot.config import get_settings
from stampbot.schemas.qmunity import QueueSnapshot
from stampbot.services.qmunity_service import build_queue_snapshot
from stampbot.services.record_store import RecordStore, get_record_store

router = APIRouter(tags=["qmunity"])

DEFAULT_LOCATION = "home-affairs"


@router.get("/qmunity", response_model=QueueSnapshot)
async def queue_snapshot(
    location: str = Query(default=DEFAULT_LOCATION),
    store: RecordStore = Depends(get_record_store),
):
    snapshot = await run_in_threadpool(
        build_queue_snapshot, store, location.strip().lower(), get_settings().timezone_offset_hours
    )
    if snapshot is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Location not found")
    return snapshot
