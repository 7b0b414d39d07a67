"""Streaks, on-track pacing, milestones and badges.

The module-level functions are pure: they take the previous state and a date
and return the next state (or None for "no change"), so they can be replayed
against historical data. GamificationService persists their results.
"""

import calendar
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Iterable, Optional

from stampbot.logging_config import get_logger
from stampbot.services.actions import SendText
from stampbot.services.record_store import RecordStore
from stampbot.services.state_machine import StaleStateError
from stampbot.services.time_utils import parse_date, utcnow

logger = get_logger("gamification")

STREAKS_TABLE = "streaks"
SAVE_ATTEMPTS = 3
BADGES_TABLE = "badges"


@dataclass(frozen=True)
class StreakState:
    current: int = 0
    longest: int = 0
    last_activity_date: Optional[date] = None
    milestones_notified: frozenset = field(default_factory=frozenset)


@dataclass(frozen=True)
class BadgeRule:
    metric: str
    threshold: float
    code: str
    title: str


BADGE_RULES: tuple[BadgeRule, ...] = (
    BadgeRule("visits", 1, "first_stamp", "First Stamp"),
    BadgeRule("visits", 10, "full_card", "Full Card"),
    BadgeRule("visit_streak", 5, "on_fire", "On Fire"),
    BadgeRule("expenses_logged", 1, "first_expense", "First Expense"),
    BadgeRule("expenses_logged", 10, "budget_regular", "Budget Regular"),
    BadgeRule("budget_streak", 7, "budget_week", "Seven-Day Logger"),
    BadgeRule("on_track_streak", 7, "on_track_week", "On Track All Week"),
    BadgeRule("incidents_reported", 1, "community_watch", "Community Watch"),
    BadgeRule("queue_checkins", 1, "queue_helper", "Queue Helper"),
    BadgeRule("queue_checkins", 5, "queue_regular", "Queue Regular"),
    BadgeRule("reflections", 1, "first_reflection", "First Reflection"),
    BadgeRule("reflections", 4, "reflective_month", "Reflective Month"),
)

STREAK_MILESTONES = {
    "visit": (2, 5),
    "budget": (3, 7),
}


def update_streak(state: StreakState, today: date) -> Optional[StreakState]:
    """Apply one qualifying activity on `today`. None means the streak is unchanged."""
    last = state.last_activity_date
    notified = state.milestones_notified

    if last is None:
        current = 1
        notified = frozenset()
    elif today <= last:
        return None
    elif (today - last).days == 1:
        current = state.current + 1
    else:
        current = 1
        notified = frozenset()  # a new run re-arms its milestones

    return StreakState(
        current=current,
        longest=max(state.longest, current),
        last_activity_date=today,
        milestones_notified=notified,
    )


def claim_milestones(state: StreakState, thresholds: Iterable[int]) -> tuple[list[int], StreakState]:
    """Thresholds reached and not yet notified, plus the state with them flagged."""
    due = [t for t in sorted(set(thresholds)) if state.current >= t and t not in state.milestones_notified]
    if not due:
        return [], state
    return due, replace(state, milestones_notified=state.milestones_notified | frozenset(due))


def ideal_spend(budget: float, today: date) -> float:
    days_in_month = calendar.monthrange(today.year, today.month)[1]
    return budget * today.day / days_in_month


def is_on_track(spent: float, budget: float, today: date) -> bool:
    if budget <= 0:
        return False
    return spent <= ideal_spend(budget, today) + 1e-9


def update_on_track(state: StreakState, today: date, on_track: bool) -> Optional[StreakState]:
    """Pacing streak: day-adjacency when on track, back to 0 the moment spend is over pace."""
    if not on_track:
        nxt = replace(state, current=0, last_activity_date=today, milestones_notified=frozenset())
        return None if nxt == state else nxt
    if state.last_activity_date == today and state.current == 0:
        # Already broken today; at most one transition per day.
        return None
    return update_streak(state, today)


def eligible_badges(metrics: dict, owned: Iterable[str]) -> list[BadgeRule]:
    owned = set(owned)
    return [
        rule
        for rule in BADGE_RULES
        if rule.code not in owned and float(metrics.get(rule.metric) or 0) >= rule.threshold
    ]


@dataclass
class StreakOutcome:
    state: StreakState
    changed: bool = False
    milestones: list[int] = field(default_factory=list)


def badge_actions(badges: list[BadgeRule]) -> list[SendText]:
    if not badges:
        return []
    titles = ", ".join(f"*{badge.title}*" for badge in badges)
    noun = "Badge" if len(badges) == 1 else "Badges"
    return [SendText(f"🏅 {noun} unlocked: {titles}")]


MILESTONE_MESSAGES = {
    ("visit", 2): "Wow, you're on a *2-day streak* 🙌\n\nHit a *5-day streak* to unlock surprise bonuses.",
    ("visit", 5): (
        "🔥 *5-day streak unlocked!*\n\nIn a real system, we'd trigger:\n"
        "- double stamps,\n- a secret menu item,\n- or a personalised thank-you message."
    ),
    ("budget", 3): "📒 *3 days* of logging in a row. Keep it going!",
    ("budget", 7): "🏆 *A full week* of logging your spending. Impressive!",
}


def milestone_actions(kind: str, milestones: list[int]) -> list[SendText]:
    return [
        SendText(MILESTONE_MESSAGES.get((kind, m), f"🔥 *{m}-day {kind} streak!*"))
        for m in milestones
    ]


class GamificationService:
    def __init__(self, store: RecordStore):
        self.store = store

    def _load(self, customer_id: str, kind: str) -> tuple[StreakState, int]:
        row = self.store.get_one(STREAKS_TABLE, {"customer_id": customer_id, "kind": kind})
        if not row:
            return StreakState(), 0
        state = StreakState(
            current=int(row.get("current_streak") or 0),
            longest=int(row.get("longest_streak") or 0),
            last_activity_date=parse_date(row.get("last_activity_date")),
            milestones_notified=frozenset(int(m) for m in (row.get("milestones_notified") or [])),
        )
        return state, int(row.get("version") or 0)

    def _save(self, customer_id: str, kind: str, state: StreakState, version: int) -> None:
        row = {
            "current_streak": state.current,
            "longest_streak": state.longest,
            "last_activity_date": state.last_activity_date,
            "milestones_notified": sorted(state.milestones_notified),
            "version": version + 1,
            "updated_at": utcnow(),
        }
        if version == 0:
            written = self.store.insert_if_absent(
                STREAKS_TABLE, {"customer_id": customer_id, "kind": kind, **row}, conflict=["customer_id", "kind"]
            )
        else:
            written = self.store.update(
                STREAKS_TABLE, {"customer_id": customer_id, "kind": kind, "version": version}, row
            ) > 0
        if not written:
            raise StaleStateError(f"{customer_id}:{kind}", version)

    def get_streak(self, customer_id: str, kind: str) -> StreakState:
        return self._load(customer_id, kind)[0]

    def _apply(self, customer_id: str, kind: str, step) -> tuple[StreakState, Optional[StreakState], list[int]]:
        """Load, compute and compare-and-swap, re-reading on a lost race."""
        attempt = 0
        while True:
            attempt += 1
            state, version = self._load(customer_id, kind)
            nxt, milestones = step(state)
            if nxt is None:
                return state, None, []
            try:
                self._save(customer_id, kind, nxt, version)
            except StaleStateError:
                if attempt >= SAVE_ATTEMPTS:
                    raise
                logger.warning(f"Streak write conflict for {customer_id}:{kind}, re-reading")
                continue
            return state, nxt, milestones

    def record_activity(self, customer_id: str, kind: str, today: date) -> StreakOutcome:
        """Count a qualifying activity; milestone flags are persisted before anyone is told."""

        def step(state: StreakState):
            nxt = update_streak(state, today)
            if nxt is None:
                return None, []
            milestones, nxt = claim_milestones(nxt, STREAK_MILESTONES.get(kind, ()))
            return nxt, milestones

        state, nxt, milestones = self._apply(customer_id, kind, step)
        if nxt is None:
            return StreakOutcome(state=state)
        logger.info(
            "Streak updated",
            extra={"context": {"customer_id": customer_id, "kind": kind, "streak": nxt.current, "milestones": milestones}},
        )
        return StreakOutcome(state=nxt, changed=True, milestones=milestones)

    def record_on_track(self, customer_id: str, today: date, on_track: bool) -> StreakOutcome:
        state, nxt, _ = self._apply(customer_id, "on_track", lambda s: (update_on_track(s, today, on_track), []))
        if nxt is None:
            return StreakOutcome(state=state)
        return StreakOutcome(state=nxt, changed=True)

    def reset_streaks(self, customer_id: str, kind: Optional[str] = None) -> int:
        filters = {"customer_id": customer_id}
        if kind:
            filters["kind"] = kind
        return self.store.delete(STREAKS_TABLE, filters)

    def owned_badges(self, customer_id: str) -> set[str]:
        rows = self.store.select(BADGES_TABLE, {"customer_id": customer_id}, columns="badge_code")
        return {row["badge_code"] for row in rows}

    def award_badges(self, customer_id: str, metrics: dict) -> list[BadgeRule]:
        """Grant every newly crossed badge. Only badges inserted by this call are returned."""
        awarded = []
        for rule in eligible_badges(metrics, self.owned_badges(customer_id)):
            created = self.store.insert_if_absent(
                BADGES_TABLE,
                {"customer_id": customer_id, "badge_code": rule.code, "awarded_at": utcnow()},
                conflict=["customer_id", "badge_code"],
            )
            if created:
                awarded.append(rule)
        if awarded:
            logger.info(
                "Badges awarded",
                extra={"context": {"customer_id": customer_id, "badges": [b.code for b in awarded]}},
            )
        return awarded
