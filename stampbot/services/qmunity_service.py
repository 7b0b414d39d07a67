"""Community queue reporting: locations, check-ins and the dashboard snapshot."""

from datetime import datetime, timedelta
from typing import Optional

from stampbot.logging_config import get_logger
from stampbot.schemas.qmunity import QueueIssue, QueueLocation, QueueSnapshot
from stampbot.services.record_store import RecordStore, gte, lt
from stampbot.services.time_utils import format_time_ago, local_day_bounds, utcnow

logger = get_logger("qmunity_service")

SPEEDS = ("QUICKLY", "MODERATELY", "SLOW")
RECENT_ISSUES_LIMIT = 10


def list_locations(store: RecordStore) -> list[dict]:
    return store.select(
        "qmunity_locations", {"is_active": True}, columns="id,slug,name,max_capacity", order_by="name"
    )


def get_location(store: RecordStore, slug: str) -> Optional[dict]:
    return store.get_one(
        "qmunity_locations", {"slug": slug, "is_active": True}, columns="id,slug,name,max_capacity"
    )


def count_checkins(store: RecordStore, customer_id: str) -> int:
    return len(store.select("qmunity_checkins", {"wa_from": customer_id}, columns="id"))


def build_queue_snapshot(
    store: RecordStore,
    slug: str,
    offset_hours: float,
    now: Optional[datetime] = None,
) -> Optional[QueueSnapshot]:
    """Today's aggregates for one location, or None if it is unknown or inactive."""
    now = now or utcnow()
    location = get_location(store, slug)
    if not location:
        return None

    day_start, day_end = local_day_bounds(offset_hours, now)
    today = {"location_id": location["id"], "created_at": [gte(day_start), lt(day_end)]}

    checkins = store.select(
        "qmunity_checkins", today, columns="id,wa_from,queue_number,created_at", order_by="created_at.desc"
    )
    speed_reports = store.select("qmunity_speed_reports", today, columns="id,speed,created_at")
    issues = store.select(
        "qmunity_issues",
        {"location_id": location["id"], "created_at": gte(now - timedelta(hours=24))},
        columns="id,message,created_at",
        order_by="created_at.desc",
        limit=RECENT_ISSUES_LIMIT,
    )

    latest_queue_number = checkins[0]["queue_number"] if checkins else None
    latest_capacity_pct = None
    if latest_queue_number is not None and location["max_capacity"]:
        latest_capacity_pct = round(latest_queue_number / location["max_capacity"] * 100)

    speed_today = {speed: 0 for speed in SPEEDS}
    for report in speed_reports:
        if report["speed"] in speed_today:
            speed_today[report["speed"]] += 1

    return QueueSnapshot(
        location=QueueLocation(slug=location["slug"], name=location["name"], max_capacity=location["max_capacity"]),
        latest_capacity_pct=latest_capacity_pct,
        latest_queue_number=latest_queue_number,
        checkins_today=len(checkins),
        unique_checkins_today=len({c["wa_from"] for c in checkins}),
        speed_today=speed_today,
        recent_issues=[
            QueueIssue(message=i["message"], created_at=i["created_at"], time_ago=format_time_ago(i["created_at"], now))
            for i in issues
        ],
        fetched_at=now.isoformat(),
    )
