"""Global commands that interrupt any flow, and the default help reply."""

from typing import Optional

from stampbot.flows.base import FlowContext
from stampbot.services.actions import Action, SendText

CANCEL_COMMANDS = ("CANCEL", "STOP")
RESTART_COMMANDS = ("RESTART",)
STATUS_COMMANDS = ("STATUS",)

FLOW_LABELS = {
    "signup": "sign-up",
    "demo": "stamp card demo",
    "menu": "feature menu",
    "meeting": "meeting booking",
    "incident": "incident report",
    "queue": "queue report",
    "budget": "budget tracker",
    "voice_log": "voice journal",
}


def help_actions(name: Optional[str] = None) -> list[Action]:
    greeting = f"👋 Hi {name}!" if name else "👋 Welcome to the WhatsApp stamp card demo."
    return [
        SendText(
            f"""{greeting}

Type *CONNECT* to see options, *DEMO* to start, or *STAMP* after a visit.

More to try:
• *BUDGET* / *SPEND* / *BALANCE*: track your spending
• *REPORT*: report an incident
• *QUEUE*: share how long the queue is
• *JOURNAL*: send a weekly voice reflection
• *EDU*: product videos

Send *CANCEL* at any time to stop what you're doing."""
        )
    ]


def reset_stamp_card(ctx: FlowContext) -> None:
    """Zero the visit counter and visit streak. Badges are permanent and stay."""
    ctx.services.customers.reset_visits(ctx.customer_id)
    ctx.services.gamification.reset_streaks(ctx.customer_id, "visit")


def _cancel(ctx: FlowContext) -> list[Action]:
    if ctx.state.is_idle:
        return [SendText("Nothing to cancel. Send *HELP* to see what you can do.")]
    ctx.finish()
    return [SendText("Cancelled 👍 Send *HELP* to see what you can do.")]


def _restart(ctx: FlowContext) -> list[Action]:
    ctx.finish()
    ctx.on_commit(lambda: reset_stamp_card(ctx))
    return [SendText("Fresh start ✨ Your stamp card and streak are back to zero.")] + help_actions(
        ctx.event.sender_name
    )


def _status(ctx: FlowContext) -> list[Action]:
    customer = ctx.services.customers.get_customer(ctx.customer_id) or {}
    streak = ctx.services.gamification.get_streak(ctx.customer_id, "visit")
    if ctx.state.is_idle:
        position = "You're not in the middle of anything."
    else:
        label = FLOW_LABELS.get(ctx.state.active_flow, ctx.state.active_flow)
        position = f"You're in the *{label}* (step {ctx.state.step})."
    return [
        SendText(
            f"""{position}

☕ Stamps: *{int(customer.get("number_of_visits") or 0)}*
🔥 Visit streak: *{streak.current}* (best {streak.longest})"""
        )
    ]


def handle_interrupt(ctx: FlowContext, token: str) -> Optional[list[Action]]:
    """Answer an interrupt command, or None when token is not one."""
    if token in CANCEL_COMMANDS:
        return _cancel(ctx)
    if token in RESTART_COMMANDS:
        return _restart(ctx)
    if token in STATUS_COMMANDS:
        return _status(ctx)
    return None
