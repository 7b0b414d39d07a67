from typing import Optional

from pydantic import BaseModel


class QueueLocation(BaseModel):
    slug: str
    name: str
    max_capacity: int


class QueueIssue(BaseModel):
    message: str
    created_at: str
    time_ago: str


class QueueSnapshot(BaseModel):
    location: QueueLocation
    latest_capacity_pct: Optional[int] = None
    latest_queue_number: Optional[int] = None
    checkins_today: int
    unique_checkins_today: int
    speed_today: dict[str, int]
    recent_issues: list[QueueIssue]
    fetched_at: str
