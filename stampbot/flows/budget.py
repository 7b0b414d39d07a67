"""Monthly budget tracker: set a budget, log expenses, check the balance."""

from datetime import date

from stampbot.flows.base import FlowContext, FlowHandler, format_rand, parse_amount
from stampbot.logging_config import get_logger
from stampbot.services.actions import ListRow, ListSection, SendList, SendText
from stampbot.services.gamification import badge_actions, ideal_spend, is_on_track, milestone_actions
from stampbot.services.record_store import RecordStore, gte, lt
from stampbot.services.time_utils import month_key, utcnow

logger = get_logger("flows.budget")

AMOUNT, CATEGORY = 1, 2
MODE_SET = "set"
MODE_SPEND = "spend"

CATEGORIES = {
    "budget_cat_food": "Food",
    "budget_cat_groceries": "Groceries",
    "budget_cat_transport": "Transport",
    "budget_cat_bills": "Bills",
    "budget_cat_fun": "Entertainment",
    "budget_cat_other": "Other",
}


def _month_bounds(day: date) -> tuple[date, date]:
    start = day.replace(day=1)
    end = date(start.year + 1, 1, 1) if start.month == 12 else date(start.year, start.month + 1, 1)
    return start, end


def get_month_budget(store: RecordStore, customer_id: str, day: date) -> float:
    row = store.get_one("budgets", {"customer_id": customer_id, "month": month_key(day)}, columns="amount")
    return float(row["amount"]) if row else 0.0


def get_month_spend(store: RecordStore, customer_id: str, day: date) -> float:
    start, end = _month_bounds(day)
    rows = store.select(
        "expenses", {"customer_id": customer_id, "spent_on": [gte(start), lt(end)]}, columns="amount"
    )
    return round(sum(float(row["amount"]) for row in rows), 2)


def balance_text(budget: float, spent: float, today: date) -> str:
    if budget <= 0:
        return f"You've spent *{format_rand(spent)}* this month.\n\nSend *BUDGET* to set a monthly budget."
    remaining = budget - spent
    pace = "✅ You're on track." if is_on_track(spent, budget, today) else "⚠️ You're spending faster than planned."
    return (
        f"📊 *{today.strftime('%B')} budget*\n\n"
        f"Budget: {format_rand(budget)}\n"
        f"Spent: {format_rand(spent)}\n"
        f"Remaining: {format_rand(remaining)}\n"
        f"Ideal spend by today: {format_rand(ideal_spend(budget, today))}\n\n"
        f"{pace}"
    )


class BudgetFlow(FlowHandler):
    name = "budget"
    entry_commands = ("BUDGET", "SPEND", "LOG", "BALANCE")
    reply_prefixes = ("budget_cat_",)
    text_steps = {AMOUNT: "amount", CATEGORY: "category_text"}
    reply_steps = {CATEGORY: "category"}

    def start(self, ctx: FlowContext, command: str):
        if command == "BALANCE":
            today = ctx.today()
            budget = get_month_budget(ctx.store, ctx.customer_id, today)
            spent = get_month_spend(ctx.store, ctx.customer_id, today)
            return [SendText(balance_text(budget, spent, today))]
        if command == "BUDGET":
            ctx.go(self.name, AMOUNT, {"mode": MODE_SET})
            return [SendText("💰 What's your budget for this month? Send an amount, e.g. *R 5000*.")]
        ctx.go(self.name, AMOUNT, {"mode": MODE_SPEND})
        return [SendText("🧾 How much did you spend? Send an amount, e.g. *R 120*.")]

    def amount(self, ctx: FlowContext, text: str):
        amount = parse_amount(text)
        if amount is None:
            return [SendText("Please send a valid amount greater than zero, e.g. *R 120* or *1 200*.")]

        if ctx.state.data.get("mode") == MODE_SET:
            today = ctx.today()
            ctx.finish()
            ctx.on_commit(lambda: self._save_budget(ctx, amount, today))
            return [
                SendText(
                    f"Budget set: *{format_rand(amount)}* for {today.strftime('%B')} 👍\n\n"
                    "Send *SPEND* whenever you buy something."
                )
            ]

        ctx.advance(CATEGORY, amount=amount)
        return [self._category_list(amount)]

    def _save_budget(self, ctx: FlowContext, amount: float, today: date) -> None:
        ctx.store.upsert(
            "budgets",
            {"customer_id": ctx.customer_id, "month": month_key(today), "amount": amount, "created_at": utcnow()},
            conflict=["customer_id", "month"],
        )

    def _category_list(self, amount: float) -> SendList:
        rows = tuple(ListRow(reply_id, title) for reply_id, title in CATEGORIES.items())
        return SendList(f"What was the {format_rand(amount)} for?", (ListSection("Categories", rows),), "Categories")

    def category_text(self, ctx: FlowContext, text: str):
        return [SendText("Please pick a category from the list."), self._category_list(ctx.state.data["amount"])]

    def category(self, ctx: FlowContext, reply_id: str):
        category = CATEGORIES.get(reply_id)
        if category is None:
            return None

        amount = float(ctx.state.data["amount"])
        ctx.finish()
        ctx.on_commit(lambda: self._log_expense(ctx, amount, category))
        return []

    def _log_expense(self, ctx: FlowContext, amount: float, category: str):
        customer_id = ctx.customer_id
        today = ctx.today()
        gamification = ctx.services.gamification

        ctx.store.insert(
            "expenses",
            {
                "customer_id": customer_id,
                "amount": amount,
                "category": category,
                "spent_on": today,
                "created_at": utcnow(),
            },
        )
        logger.info("Expense logged", extra={"context": {"customer_id": customer_id, "category": category}})

        streak = gamification.record_activity(customer_id, "budget", today)
        budget = get_month_budget(ctx.store, customer_id, today)
        spent = get_month_spend(ctx.store, customer_id, today)
        on_track = gamification.get_streak(customer_id, "on_track")
        if budget > 0:
            on_track = gamification.record_on_track(customer_id, today, is_on_track(spent, budget, today)).state

        logged = len(ctx.store.select("expenses", {"customer_id": customer_id}, columns="id"))
        badges = gamification.award_badges(
            customer_id,
            {
                "expenses_logged": logged,
                "budget_streak": streak.state.current,
                "on_track_streak": on_track.current,
            },
        )

        actions = [
            SendText(f"Logged *{format_rand(amount)}* on {category}. 🔥 Logging streak: {streak.state.current} day(s)."),
            SendText(balance_text(budget, spent, today)),
        ]
        return actions + milestone_actions("budget", streak.milestones) + badge_actions(badges)
