from stampbot.flows.base import FlowContext, FlowHandler
from stampbot.flows.commands import reset_stamp_card
from stampbot.flows.demo import STAMPING
from stampbot.logging_config import get_logger
from stampbot.services.actions import SendButtons, SendImage, SendText, buttons
from stampbot.services.customer_service import build_card_url
from stampbot.services.time_utils import utcnow

logger = get_logger("flows.signup")

DRINKS = {
    "drink_matcha": "matcha",
    "drink_americano": "americano",
    "drink_cappuccino": "cappuccino",
}
MAX_BUSINESS_NAME = 120

BUSINESS_NAME, DRINK = 1, 2


class SignupFlow(FlowHandler):
    """Capture the prospect's business and hero drink, then hand over to the stamp demo."""

    name = "signup"
    entry_commands = ("SIGNUP", "SIGN UP")
    reply_prefixes = ("drink_",)
    text_steps = {BUSINESS_NAME: "business_name"}
    reply_steps = {DRINK: "drink_choice"}

    def start(self, ctx: FlowContext, command: str):
        ctx.go(self.name, BUSINESS_NAME)
        ctx.on_commit(lambda: reset_stamp_card(ctx))
        greeting_name = ctx.event.sender_name or "there"
        return [
            SendText(
                f"Awesome {greeting_name}! Let's capture a few details so we can tailor the demo.\n\n"
                "First up: *What's the name of your business?*"
            )
        ]

    def business_name(self, ctx: FlowContext, text: str):
        business = (text or "").strip()[:MAX_BUSINESS_NAME]
        if not business:
            return [SendText("Please send the name of your business.")]

        ctx.advance(DRINK, business_name=business)
        ctx.on_commit(lambda: self._save_lead(ctx, business))
        return [
            SendButtons(
                f"Nice, *{business}* sounds great.\n\nWhich drink best matches your hero product?",
                buttons(
                    ("drink_matcha", "Matcha"),
                    ("drink_americano", "Americano"),
                    ("drink_cappuccino", "Cappuccino"),
                ),
            )
        ]

    def _save_lead(self, ctx: FlowContext, business: str) -> None:
        ctx.store.upsert(
            "signup_leads",
            {"customer_id": ctx.customer_id, "business_name": business, "created_at": utcnow()},
            conflict=["customer_id"],
        )
        logger.info("Signup lead captured", extra={"context": {"customer_id": ctx.customer_id}})

    def drink_choice(self, ctx: FlowContext, reply_id: str):
        drink = DRINKS.get(reply_id)
        if drink is None:
            return None

        ctx.go("demo", STAMPING)
        ctx.on_commit(lambda: ctx.services.customers.set_preferred_drink(ctx.customer_id, drink))
        return [
            SendText("Nice choice 😎 Here's your digital stamp card:"),
            SendImage(build_card_url(ctx.settings.card_base_url, 0)),
            SendText(
                "From here, we track when your customers \"stamp\" their card via real orders.\n\n"
                "To continue the demo, type *STAMP* after your 'purchase' ☕️"
            ),
        ]
