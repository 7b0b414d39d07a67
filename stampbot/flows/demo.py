"""Stamp card demo: fill a card, then simulate a streak of daily visits."""

from datetime import timedelta

from stampbot.flows.base import FlowContext, FlowHandler, normalize_token
from stampbot.flows.commands import reset_stamp_card
from stampbot.services.actions import SendButtons, SendImage, SendText, buttons
from stampbot.services.customer_service import STAMP_CARD_SIZE, build_card_url
from stampbot.services.gamification import badge_actions, milestone_actions, update_streak

DEMO_STREAK_TARGET = 5

STAMPING = 1
STREAK_INTRO = 2
STREAKING = 3

STREAK_INTRO_TEXT = (
    "Let's test streak gamification 🔥\n\n"
    "A streak means visiting multiple days in a row.\n\n"
    "Send *STAMP* to make another \"purchase\"."
)


class DemoFlow(FlowHandler):
    name = "demo"
    entry_commands = ("DEMO",)
    reply_prefixes = ("connect_demo",)
    text_steps = {STAMPING: "stamp", STREAK_INTRO: "streak_intro", STREAKING: "streak_stamp"}

    def start(self, ctx: FlowContext, command: str):
        ctx.go(self.name, STAMPING)
        ctx.on_commit(lambda: reset_stamp_card(ctx))
        return [
            SendText(
                "👋 Welcome to the WhatsApp stamp card demo.\n\n"
                "We'll simulate a simple coffee shop:\n"
                "- Each visit = 1 stamp\n"
                "- 10 stamps = 1 free coffee\n\n"
                "Type *STAMP* after each \"visit\" to see your card fill up."
            ),
            SendImage(build_card_url(ctx.settings.card_base_url, 0)),
        ]

    def handle_global_reply(self, ctx: FlowContext, reply_id: str):
        if reply_id == "connect_demo":
            return self.start(ctx, "DEMO")
        return None

    def _award(self, ctx: FlowContext, visits: int, streak: int):
        return badge_actions(
            ctx.services.gamification.award_badges(ctx.customer_id, {"visits": visits, "visit_streak": streak})
        )

    def stamp(self, ctx: FlowContext, text: str):
        if normalize_token(text) != "STAMP":
            return None

        customer = ctx.services.customers.get_customer(ctx.customer_id) or {}
        if int(customer.get("number_of_visits") or 0) + 1 >= STAMP_CARD_SIZE:
            ctx.advance(STREAK_INTRO)
        ctx.on_commit(lambda: self._stamped(ctx))
        return []

    def _stamped(self, ctx: FlowContext):
        visits = ctx.services.customers.record_visit(ctx.customer_id)
        outcome = ctx.services.gamification.record_activity(ctx.customer_id, "visit", ctx.today())

        actions = [SendImage(build_card_url(ctx.settings.card_base_url, visits))]
        if visits < STAMP_CARD_SIZE:
            actions.append(
                SendText(f"Nice, you've now got *{visits}* stamp(s).\n\nType *STAMP* again after the next visit.")
            )
        else:
            actions.append(
                SendText(
                    "🎁 You've reached *10 stamps*! In a real system, this would unlock a free coffee or reward.\n\n"
                    "Now let's test streak-based rewards. Type *STREAK* to continue."
                )
            )
        actions += milestone_actions("visit", outcome.milestones)
        actions += self._award(ctx, visits, outcome.state.current)
        return actions

    def streak_intro(self, ctx: FlowContext, text: str):
        if normalize_token(text) != "STREAK":
            return None
        ctx.advance(STREAKING)
        return [SendText(STREAK_INTRO_TEXT)]

    def streak_stamp(self, ctx: FlowContext, text: str):
        """Each STAMP counts as a visit on the next calendar day so the streak can grow in one sitting."""
        if normalize_token(text) != "STAMP":
            return None

        gamification = ctx.services.gamification
        today = ctx.today()
        streak_before = gamification.get_streak(ctx.customer_id, "visit")
        last = streak_before.last_activity_date
        visit_day = max(today, last + timedelta(days=1)) if last else today
        predicted = update_streak(streak_before, visit_day) or streak_before
        if predicted.current >= DEMO_STREAK_TARGET:
            ctx.finish()
        ctx.on_commit(lambda: self._streak_stamped(ctx, visit_day))
        return []

    def _streak_stamped(self, ctx: FlowContext, visit_day):
        visits = ctx.services.customers.record_visit(ctx.customer_id, simulated=True)
        outcome = ctx.services.gamification.record_activity(ctx.customer_id, "visit", visit_day)
        streak = outcome.state.current

        actions = [SendImage(build_card_url(ctx.settings.card_base_url, visits))]
        if outcome.milestones:
            actions += milestone_actions("visit", outcome.milestones)
        else:
            actions.append(SendText(f"Streak recorded. You're now on *{streak} consecutive visits*."))
        actions += self._award(ctx, visits, streak)

        if streak >= DEMO_STREAK_TARGET:
            actions.append(
                SendButtons(
                    "🎉 *Demo complete.*\n\n"
                    f"Here's the link to share the demo:\nhttps://wa.me/{ctx.customer_id}?text=DEMO\n\n"
                    "What would you like to do next?",
                    buttons(("more_features", "MORE"), ("book_meeting", "MEETING")),
                )
            )
        return actions
