import threading
from unittest.mock import patch

import pytest
from conftest import CUSTOMER, make_event

from stampbot.flows.base import FlowHandler
from stampbot.flows.budget import BudgetFlow
from stampbot.flows.demo import DemoFlow
from stampbot.schemas.webhook import MediaInfo
from stampbot.services.actions import SendButtons, SendText
from stampbot.services.dispatcher import Dispatcher
from stampbot.services.state_service import ConversationStateStore


def current_state(store):
    return ConversationStateStore(store).get_state(CUSTOMER)


class RacingFlow(FlowHandler):
    """Loses the state write race a fixed number of times."""

    name = "race"
    entry_commands = ("RACE",)

    def __init__(self, store, races: int):
        self.store = store
        self.races = races
        self.calls = 0

    def start(self, ctx, command):
        self.calls += 1
        if self.calls <= self.races:
            ConversationStateStore(self.store).force_clear(ctx.customer_id)
        ctx.go(self.name, 1)
        return [SendText(f"attempt {self.calls}")]


class RacingBudgetFlow(BudgetFlow):
    """Another invocation moves the customer on between this one's read and its commit, once."""

    def __init__(self, store):
        self.store = store
        self.raced = False

    def category(self, ctx, reply_id):
        actions = super().category(ctx, reply_id)
        if not self.raced:
            self.raced = True
            ConversationStateStore(self.store).force_clear(ctx.customer_id)
        return actions


class RacingDemoFlow(DemoFlow):
    def __init__(self, store):
        self.store = store
        self.raced = False

    def streak_stamp(self, ctx, text):
        actions = super().streak_stamp(ctx, text)
        if not self.raced:
            self.raced = True
            states = ConversationStateStore(self.store)
            states.set_state(states.get_state(ctx.customer_id), "demo", 3, {})
        return actions


class ExplodingFlow(FlowHandler):
    name = "boom"
    entry_commands = ("BOOM",)

    def start(self, ctx, command):
        raise RuntimeError("handler bug")


class TestIdempotentDispatch:
    def test_redelivery_has_no_effect(self, dispatcher, gateway, store):
        event = make_event("MEETING", message_id="wamid.same")

        first = dispatcher.process(event)
        sent_after_first = len(gateway.sent)
        state_after_first = current_state(store)
        second = dispatcher.process(event)

        assert first.status == "ok"
        assert second.status == "duplicate"
        assert len(gateway.sent) == sent_after_first
        assert current_state(store) == state_after_first

    def test_customer_is_created_and_touched(self, send, store):
        send("HELP", sender_name="Thandi")

        customer = store.get_one("customers", {"customer_id": CUSTOMER})
        assert customer["wa_name"] == "Thandi"
        assert customer["number_of_visits"] == 0


class TestThreeStepScenario:
    def test_meeting_booking_start_to_finish(self, send, gateway, store):
        send("MEETING")
        assert current_state(store).is_at("meeting", 1)
        assert isinstance(gateway.actions[0], SendButtons)

        send(reply_id="meeting_digital")
        assert current_state(store).is_at("meeting", 2)
        assert len(gateway.sent) == 1
        assert "email" in gateway.texts()[0]

        send("sam@shop.co.za")
        assert current_state(store).is_idle
        assert len(gateway.sent) == 1
        assert "https://calendly.test/demo" in gateway.texts()[0]

        request = store.get_one("meeting_requests", {"customer_id": CUSTOMER})
        assert request["service"] == "Digital Products & Automations"
        assert request["email"] == "sam@shop.co.za"


class TestRoutingPrecedence:
    def test_active_flow_wins_over_entry_keyword(self, send, store):
        send("SIGNUP")
        send("DEMO")

        assert current_state(store).is_at("signup", 2)
        lead = store.get_one("signup_leads", {"customer_id": CUSTOMER})
        assert lead["business_name"] == "DEMO"

    @pytest.mark.parametrize("command", ["CANCEL", "stop", " Cancel "])
    def test_interrupts_win_over_active_flow(self, send, store, gateway, command):
        send("SIGNUP")
        send(command)

        assert current_state(store).is_idle
        assert "Cancelled" in gateway.texts()[0]

    def test_status_does_not_change_state(self, send, store, gateway):
        send("REPORT")
        before = current_state(store)

        send("STATUS")

        assert current_state(store) == before
        assert "incident report" in gateway.texts()[0]

    def test_unhandled_text_falls_through_to_entry_commands(self, send, store):
        send("DEMO")
        send("BUDGET")

        state = current_state(store)
        assert state.is_at("budget", 1)
        assert state.data == {"mode": "set"}

    def test_entry_command_clears_stale_state_for_stateless_flows(self, send, store, gateway):
        send("DEMO")
        send("EDU")

        assert current_state(store).is_idle
        assert "Product Videos" in gateway.texts()[0]

    def test_unknown_text_gets_help(self, send, gateway, store):
        send("hello there")

        assert "CONNECT" in gateway.texts()[0]
        assert current_state(store).is_idle

    def test_unclaimed_reply_is_a_no_op(self, send, gateway, store):
        outcome = send(reply_id="something_else")

        assert outcome.status == "ok"
        assert gateway.sent == []
        assert current_state(store).is_idle

    def test_unclaimed_media_gets_help(self, send, gateway):
        send(media=MediaInfo(kind="image", media_id="m1", mime_type="image/jpeg"))

        assert "CONNECT" in gateway.texts()[0]

    def test_help_mid_flow_is_flow_input(self, send, store):
        send("SIGNUP")
        send("help")

        assert current_state(store).is_at("signup", 2)
        assert store.get_one("signup_leads", {"customer_id": CUSTOMER})["business_name"] == "help"

    def test_registration_order_decides_media_owner(self, send, store, gateway):
        send("JOURNAL")
        gateway.media["m2"] = (b"jpeg", "image/jpeg")

        send(media=MediaInfo(kind="image", media_id="m2", mime_type="image/jpeg"))

        # Only audio belongs to the journal; an image falls back to help.
        assert current_state(store).is_at("voice_log", 1)
        assert "CONNECT" in gateway.texts()[0]


class TestConflictHandling:
    def test_retries_from_fresh_read_and_sends_only_winning_attempt(self, services, store, gateway):
        racing = RacingFlow(store, races=1)
        dispatcher = Dispatcher(services, handlers=[racing])

        outcome = dispatcher.process(make_event("RACE"))

        assert outcome.status == "ok"
        assert outcome.attempts == 2
        assert gateway.texts() == ["attempt 2"]
        assert current_state(store).is_at("race", 1)

    def test_gives_up_without_sending_after_max_attempts(self, services, store, gateway):
        racing = RacingFlow(store, races=10)
        dispatcher = Dispatcher(services, handlers=[racing])

        outcome = dispatcher.process(make_event("RACE"))

        assert outcome.status == "conflict"
        assert racing.calls == 3
        assert gateway.sent == []


    def test_losing_attempt_leaves_no_domain_writes(self, dispatcher, services, store, gateway):
        dispatcher.process(make_event("SPEND"))
        dispatcher.process(make_event("120"))
        gateway.reset()

        racing = Dispatcher(services, handlers=[RacingBudgetFlow(store)])
        outcome = racing.process(make_event(reply_id="budget_cat_food"))

        # The retry reads the idle state the other invocation left, where the reply means nothing.
        assert outcome.status == "ok"
        assert outcome.attempts == 2
        assert store.select("expenses", {"customer_id": CUSTOMER}) == []
        assert store.get_one("streaks", {"customer_id": CUSTOMER, "kind": "budget"}) is None
        assert store.select("badges", {"customer_id": CUSTOMER}) == []
        assert gateway.sent == []

    def test_milestone_is_announced_once_across_a_conflict(self, services, store, gateway):
        states = ConversationStateStore(store)
        states.set_state(states.get_state(CUSTOMER), "demo", 3)
        racing = Dispatcher(services, handlers=[RacingDemoFlow(store)])

        racing.process(make_event("STAMP"))
        first = list(gateway.texts())
        gateway.reset()
        racing.process(make_event("STAMP"))

        assert len(store.select("visits", {"customer_id": CUSTOMER})) == 2
        assert not any("2-day streak" in text for text in first)
        assert sum("2-day streak" in text for text in gateway.texts()) == 1
        streak = store.get_one("streaks", {"customer_id": CUSTOMER, "kind": "visit"})
        assert streak["current_streak"] == 2

    def test_cancelled_dispatch_commits_nothing(self, dispatcher, store, gateway):
        cancelled = threading.Event()
        cancelled.set()

        outcome = dispatcher.process(make_event("SPEND"), cancelled=cancelled)

        assert outcome.status == "cancelled"
        assert current_state(store).is_idle
        assert gateway.sent == []


class TestFailureCapture:
    @patch("stampbot.services.dispatcher.alert_error")
    def test_handler_exception_is_captured_and_alerted(self, mock_alert, services, store, gateway):
        dispatcher = Dispatcher(services, handlers=[ExplodingFlow()])

        outcome = dispatcher.process(make_event("BOOM"))

        assert outcome.status == "error"
        assert "handler bug" in outcome.error
        assert gateway.sent == []
        mock_alert.assert_called_once()
        assert current_state(store).is_idle


class TestFlowHandlerContract:
    def test_handler_without_start_cannot_be_registered(self):
        class Incomplete(FlowHandler):
            name = "incomplete"

        with pytest.raises(TypeError):
            Incomplete()
