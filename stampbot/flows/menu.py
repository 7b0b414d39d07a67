from stampbot.flows.base import FlowContext, FlowHandler, normalize_token
from stampbot.flows.demo import STREAK_INTRO
from stampbot.services.actions import SendButtons, SendText, buttons

MORE_MENU = 1


class MenuFlow(FlowHandler):
    """CONNECT menu and the post-demo "more features" menu."""

    name = "menu"
    entry_commands = ("CONNECT",)
    reply_prefixes = ("more_",)
    text_steps = {MORE_MENU: "more_choice"}

    def start(self, ctx: FlowContext, command: str):
        name = ctx.event.sender_name
        body = (
            f"Hi{' ' + name if name else ''} 👋\n\n"
            "*The Potential Company* helps \"good\" businesses grow via:\n\n"
            "1️⃣ Meta-powered loyalty systems (WhatsApp/Instagram)\n"
            "2️⃣ Digital products & automations\n"
            "3️⃣ Strategic & financial advisory\n\n"
            "Would you like to book a *meeting* or *try a demo*?"
        )
        return [SendButtons(body, buttons(("connect_meeting", "MEETING"), ("connect_demo", "DEMO")))]

    def more_menu(self, ctx: FlowContext):
        ctx.go(self.name, MORE_MENU)
        return [
            SendButtons(
                "Want to try more features? Pick an option:\n\n"
                "🔥 Reply *STREAK* to test gamification.\n\n"
                "📊 Reply *DASH* to see the manager dashboard.",
                buttons(("more_streak", "STREAK"), ("more_dash", "DASH")),
            )
        ]

    def streak(self, ctx: FlowContext):
        ctx.go("demo", STREAK_INTRO)
        return [
            SendText(
                "We'll now simulate consecutive visits and show how streak rewards work.\n\n"
                "Type *STREAK* to begin."
            )
        ]

    def dashboard(self, ctx: FlowContext):
        if not ctx.state.is_idle:
            ctx.finish()
        return [
            SendText(
                "📊 Here's a simple *demo dashboard* that could connect to your loyalty system:\n\n"
                f"{ctx.settings.dashboard_url}"
            )
        ]

    def more_choice(self, ctx: FlowContext, text: str):
        token = normalize_token(text)
        if token == "STREAK":
            return self.streak(ctx)
        if token == "DASH":
            return self.dashboard(ctx)
        return None

    def handle_global_reply(self, ctx: FlowContext, reply_id: str):
        if reply_id == "more_features":
            return self.more_menu(ctx)
        if reply_id == "more_streak":
            return self.streak(ctx)
        if reply_id == "more_dash":
            return self.dashboard(ctx)
        return None
