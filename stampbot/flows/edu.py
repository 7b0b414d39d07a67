from stampbot.flows.base import FlowContext, FlowHandler
from stampbot.services.actions import SendButtons, SendText, buttons


class EduFlow(FlowHandler):
    """Product videos. Stateless."""

    name = "edu"
    entry_commands = ("EDU",)
    reply_prefixes = ("edu_",)

    def start(self, ctx: FlowContext, command: str):
        settings = ctx.settings
        return [
            SendText(
                "🎓 *Meta Loyalty Systems: Product Videos*\n\n"
                f"1️⃣ Overview: {settings.edu_yt_url}\n"
                f"2️⃣ Stamp card & gamification: {settings.edu_yt2_url}\n\n"
                "(Short videos showing how the system works from both the customer and owner side.)"
            ),
            SendButtons(
                "Want a link on its own?",
                buttons(("edu_overview", "Overview"), ("edu_stamp", "Stamp card")),
            ),
        ]

    def handle_global_reply(self, ctx: FlowContext, reply_id: str):
        if reply_id == "edu_overview":
            return [SendText(f"Overview video:\n{ctx.settings.edu_yt_url}")]
        if reply_id == "edu_stamp":
            return [SendText(f"Stamp card & gamification:\n{ctx.settings.edu_yt2_url}")]
        return None
