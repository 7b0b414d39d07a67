from stampbot.flows.base import FlowContext, FlowHandler, is_valid_email
from stampbot.logging_config import get_logger
from stampbot.services.actions import SendButtons, SendText, buttons
from stampbot.services.time_utils import utcnow

logger = get_logger("flows.meeting")

SERVICES = {
    "meeting_loyalty": "Meta Loyalty Systems",
    "meeting_digital": "Digital Products & Automations",
    "meeting_strategy": "Strategic & Financial Advisory",
}
START_REPLIES = ("connect_meeting", "book_meeting")


class MeetingFlow(FlowHandler):
    name = "meeting"
    entry_commands = ("MEETING",)
    reply_prefixes = ("meeting_",) + START_REPLIES
    reply_steps = {1: "service_choice"}
    text_steps = {2: "email"}

    def start(self, ctx: FlowContext, command: str):
        ctx.go(self.name, 1)
        return [
            SendButtons(
                "Which bespoke service are you most interested in?",
                buttons(
                    ("meeting_loyalty", "Meta Loyalty Systems"),
                    ("meeting_digital", "Digital Products"),
                    ("meeting_strategy", "Strategic Advisory"),
                ),
            )
        ]

    def handle_global_reply(self, ctx: FlowContext, reply_id: str):
        if reply_id in START_REPLIES:
            return self.start(ctx, reply_id)
        return None

    def service_choice(self, ctx: FlowContext, reply_id: str):
        service = SERVICES.get(reply_id)
        if service is None:
            return None
        ctx.advance(2, service=service)
        return [SendText(f"Great, let's set up a meeting about *{service}*.\n\nWhat's the best email to reach you on?")]

    def email(self, ctx: FlowContext, text: str):
        email = (text or "").strip()
        if not is_valid_email(email):
            return [SendText("That doesn't look like an email address. Please send one like *name@business.co.za*.")]

        service = ctx.state.data.get("service") or SERVICES["meeting_loyalty"]
        ctx.finish()
        ctx.on_commit(lambda: self._save_request(ctx, service, email.lower()))
        return [SendText(f"Thanks! Pick a time that suits you here:\n\n{ctx.settings.calendly_url}")]

    def _save_request(self, ctx: FlowContext, service: str, email: str) -> None:
        ctx.store.insert(
            "meeting_requests",
            {
                "customer_id": ctx.customer_id,
                "service": service,
                "email": email,
                "status": "link_sent",
                "created_at": utcnow(),
            },
        )
        logger.info("Meeting requested", extra={"context": {"customer_id": ctx.customer_id, "service": service}})
