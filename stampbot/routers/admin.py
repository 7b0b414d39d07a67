"""Admin API: inspect and reset a customer's conversation, prune the dedup set."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from pydantic import BaseModel

from stampbot.config import get_settings
from stampbot.services.customer_service import CustomerService
from stampbot.services.gamification import GamificationService
from stampbot.services.idempotency_service import IdempotencyGuard
from stampbot.services.record_store import RecordStore, get_record_store
from stampbot.services.state_service import ConversationStateStore

router = APIRouter(prefix="/admin", tags=["admin"])

STREAK_KINDS = ("visit", "budget", "on_track")


# === SCHEMAS ===


class StreakView(BaseModel):
    current: int
    longest: int
    last_activity_date: Optional[str] = None


class CustomerStateResponse(BaseModel):
    customer_id: str
    active_flow: Optional[str] = None
    step: int
    data: dict
    version: int
    number_of_visits: int
    streaks: dict[str, StreakView]


class ResetResponse(BaseModel):
    success: bool
    streaks_removed: int


class PruneResponse(BaseModel):
    removed: int
    older_than_days: int


def require_admin_token(x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token")) -> None:
    expected = get_settings().admin_token
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="ADMIN_TOKEN not configured",
        )
    if not x_admin_token or x_admin_token != expected:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token")


# === ENDPOINTS ===


@router.get(
    "/customers/{customer_id}/state",
    response_model=CustomerStateResponse,
    dependencies=[Depends(require_admin_token)],
)
def get_customer_state(customer_id: str, store: RecordStore = Depends(get_record_store)):
    customer = CustomerService(store).get_customer(customer_id)
    if not customer:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")

    state = ConversationStateStore(store).get_state(customer_id)
    gamification = GamificationService(store)
    streaks = {}
    for kind in STREAK_KINDS:
        streak = gamification.get_streak(customer_id, kind)
        streaks[kind] = StreakView(
            current=streak.current,
            longest=streak.longest,
            last_activity_date=streak.last_activity_date.isoformat() if streak.last_activity_date else None,
        )

    return CustomerStateResponse(
        customer_id=customer_id,
        active_flow=state.active_flow,
        step=state.step,
        data=state.data,
        version=state.version,
        number_of_visits=int(customer.get("number_of_visits") or 0),
        streaks=streaks,
    )


@router.post(
    "/customers/{customer_id}/reset",
    response_model=ResetResponse,
    dependencies=[Depends(require_admin_token)],
)
def reset_customer(customer_id: str, store: RecordStore = Depends(get_record_store)):
    """Clear the conversation, the stamp card and every streak. Badges stay."""
    ConversationStateStore(store).force_clear(customer_id)
    CustomerService(store).reset_visits(customer_id)
    removed = GamificationService(store).reset_streaks(customer_id)
    return ResetResponse(success=True, streaks_removed=removed)


@router.post(
    "/processed-messages/prune",
    response_model=PruneResponse,
    dependencies=[Depends(require_admin_token)],
)
def prune_processed_messages(
    older_than_days: Optional[int] = Query(default=None, ge=1),
    store: RecordStore = Depends(get_record_store),
):
    days = older_than_days or get_settings().processed_retention_days
    removed = IdempotencyGuard(store).prune(days)
    return PruneResponse(removed=removed, older_than_days=days)
