import pytest

from stampbot.services.state_machine import (
    IDLE_STEP,
    ConversationState,
    InvalidTransitionError,
    StaleStateError,
    transition,
)
from stampbot.services.state_service import ConversationStateStore


class TestConversationState:
    def test_missing_row_is_idle_at_version_zero(self):
        state = ConversationState.from_row("2782", None)
        assert state.is_idle
        assert state.step == IDLE_STEP
        assert state.version == 0
        assert state.data == {}

    def test_from_row(self):
        state = ConversationState.from_row(
            "2782", {"active_flow": "budget", "step": "2", "data": {"amount": 120.0}, "version": 4}
        )
        assert state.is_at("budget", 2)
        assert state.data == {"amount": 120.0}
        assert state.version == 4


class TestTransition:
    def test_bumps_version(self):
        nxt = transition(ConversationState("2782"), "signup", 1)
        assert nxt.is_at("signup", 1)
        assert nxt.version == 1

    def test_idle_clears_data(self):
        current = ConversationState("2782", "budget", 2, {"amount": 50}, 3)
        nxt = transition(current, None, IDLE_STEP, {"amount": 50})
        assert nxt.is_idle
        assert nxt.data == {}

    def test_idle_with_step_is_invalid(self):
        with pytest.raises(InvalidTransitionError):
            transition(ConversationState("2782"), None, 2)


class TestConversationStateStore:
    def test_get_state_for_new_customer(self, store):
        assert ConversationStateStore(store).get_state("2782").is_idle

    def test_set_then_get_returns_last_write(self, store):
        states = ConversationStateStore(store)
        first = states.set_state(states.get_state("2782"), "queue", 1)
        states.set_state(first, "queue", 2, {"location_id": 7})

        state = states.get_state("2782")
        assert state.is_at("queue", 2)
        assert state.data == {"location_id": 7}
        assert state.version == 2

    def test_stale_write_is_rejected(self, store):
        states = ConversationStateStore(store)
        base = states.set_state(states.get_state("2782"), "meeting", 1)

        states.set_state(base, "meeting", 2, {"service": "Digital"})
        with pytest.raises(StaleStateError):
            states.set_state(base, "incident", 1)

        assert states.get_state("2782").is_at("meeting", 2)

    def test_concurrent_first_writes_only_one_wins(self, store):
        states = ConversationStateStore(store)
        fresh = states.get_state("2782")

        states.set_state(fresh, "budget", 1)
        with pytest.raises(StaleStateError):
            states.set_state(fresh, "signup", 1)

    def test_clear_state(self, store):
        states = ConversationStateStore(store)
        current = states.set_state(states.get_state("2782"), "incident", 3, {"reference": "a1b2c3"})

        states.clear_state(current)

        assert states.get_state("2782").is_idle

    def test_force_clear_invalidates_in_flight_writers(self, store):
        states = ConversationStateStore(store)
        current = states.set_state(states.get_state("2782"), "voice_log", 1)

        states.force_clear("2782")

        assert states.get_state("2782").is_idle
        with pytest.raises(StaleStateError):
            states.set_state(current, "voice_log", 1)
