"""Qmunity: crowd-sourced queue reports for a location."""

from stampbot.flows.base import FlowContext, FlowHandler, normalize_token
from stampbot.logging_config import get_logger
from stampbot.services import qmunity_service
from stampbot.services.actions import MAX_LIST_ROWS, ListRow, ListSection, SendButtons, SendList, SendText, buttons
from stampbot.services.gamification import badge_actions
from stampbot.services.time_utils import utcnow

logger = get_logger("flows.queue")

LOCATION, NUMBER, SPEED, ISSUE = 1, 2, 3, 4
MAX_ROW_TITLE = 24
MAX_ISSUE_CHARS = 500

SPEED_REPLIES = {
    "qspeed_quickly": "QUICKLY",
    "qspeed_moderately": "MODERATELY",
    "qspeed_slow": "SLOW",
}


class QueueFlow(FlowHandler):
    name = "queue"
    entry_commands = ("QUEUE", "QMUNITY")
    reply_prefixes = ("qloc_", "qspeed_")
    reply_steps = {LOCATION: "location", SPEED: "speed"}
    text_steps = {NUMBER: "queue_number", ISSUE: "issue"}

    def start(self, ctx: FlowContext, command: str):
        locations = qmunity_service.list_locations(ctx.store)[:MAX_LIST_ROWS]
        if not locations:
            return [SendText("There are no active queues to report on right now. Please check back later.")]

        ctx.go(self.name, LOCATION)
        rows = tuple(ListRow(f"qloc_{loc['slug']}", loc["name"][:MAX_ROW_TITLE]) for loc in locations)
        return [SendList("🕒 Which queue are you in?", (ListSection("Locations", rows),), "Locations")]

    def location(self, ctx: FlowContext, reply_id: str):
        if not reply_id.startswith("qloc_"):
            return None
        location = qmunity_service.get_location(ctx.store, reply_id[len("qloc_"):])
        if location is None:
            return [SendText("That location is no longer available. Send *QUEUE* to pick another.")]

        ctx.advance(
            NUMBER,
            location_id=location["id"],
            slug=location["slug"],
            location_name=location["name"],
            max_capacity=location["max_capacity"],
        )
        return [SendText(f"📍 *{location['name']}*\n\nWhat number are you in the queue? (1-{location['max_capacity']})")]

    def queue_number(self, ctx: FlowContext, text: str):
        capacity = int(ctx.state.data.get("max_capacity") or 0)
        raw = (text or "").strip().lstrip("#")
        if not raw.isdigit() or not 1 <= int(raw) <= capacity:
            return [SendText(f"Please send your place in the queue as a number from 1 to {capacity}.")]

        ctx.advance(SPEED, queue_number=int(raw))
        ctx.on_commit(lambda: self._check_in(ctx, int(raw)))
        return [
            SendButtons(
                "Thanks! How fast is the queue moving?",
                buttons(("qspeed_quickly", "Quickly"), ("qspeed_moderately", "Moderately"), ("qspeed_slow", "Slow")),
            )
        ]

    def _check_in(self, ctx: FlowContext, queue_number: int) -> None:
        self._report(ctx, "qmunity_checkins", queue_number=queue_number)
        logger.info(
            "Queue check-in",
            extra={"context": {"customer_id": ctx.customer_id, "location": ctx.state.data.get("slug")}},
        )

    def _report(self, ctx: FlowContext, table: str, **fields) -> None:
        ctx.store.insert(
            table,
            {"location_id": ctx.state.data["location_id"], "wa_from": ctx.customer_id, **fields, "created_at": utcnow()},
        )

    def speed(self, ctx: FlowContext, reply_id: str):
        speed = SPEED_REPLIES.get(reply_id)
        if speed is None:
            return None
        ctx.advance(ISSUE, speed=speed)
        ctx.on_commit(lambda: self._report(ctx, "qmunity_speed_reports", speed=speed))
        return [SendText("Any issues at the queue we should know about? Send a short message, or reply *SKIP*.")]

    def issue(self, ctx: FlowContext, text: str):
        message = (text or "").strip()
        if not message:
            return [SendText("Send a short message about the issue, or reply *SKIP*.")]
        ctx.finish()
        if normalize_token(message) != "SKIP":
            ctx.on_commit(lambda: self._report(ctx, "qmunity_issues", message=message[:MAX_ISSUE_CHARS]))
        ctx.on_commit(lambda: self._thank(ctx))
        return []

    def _thank(self, ctx: FlowContext):
        checkins = qmunity_service.count_checkins(ctx.store, ctx.customer_id)
        badges = ctx.services.gamification.award_badges(ctx.customer_id, {"queue_checkins": checkins})
        dashboard = f"{ctx.settings.public_base_url.rstrip('/')}/qmunity?location={ctx.state.data.get('slug')}"
        return [
            SendText(f"🙏 Thanks for helping your community! Live queue info:\n{dashboard}")
        ] + badge_actions(badges)
