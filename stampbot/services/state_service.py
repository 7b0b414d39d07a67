from typing import Optional

from stampbot.logging_config import get_logger
from stampbot.services.record_store import RecordStore
from stampbot.services.state_machine import IDLE_STEP, ConversationState, StaleStateError, transition
from stampbot.services.time_utils import utcnow

logger = get_logger("state_service")

TABLE = "conversation_states"


class ConversationStateStore:
    """Per-customer (active_flow, step, data) slot with compare-and-swap writes."""

    def __init__(self, store: RecordStore):
        self.store = store

    def get_state(self, customer_id: str) -> ConversationState:
        row = self.store.get_one(TABLE, {"customer_id": customer_id})
        return ConversationState.from_row(customer_id, row)

    def set_state(
        self,
        current: ConversationState,
        flow: Optional[str],
        step: int,
        data: Optional[dict] = None,
    ) -> ConversationState:
        """Write the next state iff nobody else wrote since current was read."""
        nxt = transition(current, flow, step, data)
        row = {
            "customer_id": current.customer_id,
            "active_flow": nxt.active_flow,
            "step": nxt.step,
            "data": nxt.data,
            "version": nxt.version,
            "updated_at": utcnow(),
        }

        if current.version == 0:
            written = self.store.insert_if_absent(TABLE, row, conflict=["customer_id"])
        else:
            patch = {key: value for key, value in row.items() if key != "customer_id"}
            written = self.store.update(
                TABLE,
                {"customer_id": current.customer_id, "version": current.version},
                patch,
            ) > 0

        if not written:
            logger.warning(
                "State CAS conflict",
                extra={"context": {"customer_id": current.customer_id, "expected_version": current.version}},
            )
            raise StaleStateError(current.customer_id, current.version)

        logger.debug(
            f"State {current.active_flow}:{current.step} -> {nxt.active_flow}:{nxt.step} for {current.customer_id}"
        )
        return nxt

    def clear_state(self, current: ConversationState) -> ConversationState:
        return self.set_state(current, None, IDLE_STEP, None)

    def force_clear(self, customer_id: str) -> None:
        """Unconditional reset for explicit reset paths; bumps the version so in-flight writers lose."""
        current = self.get_state(customer_id)
        self.store.upsert(
            TABLE,
            {
                "customer_id": customer_id,
                "active_flow": None,
                "step": IDLE_STEP,
                "data": {},
                "version": current.version + 1,
                "updated_at": utcnow(),
            },
            conflict=["customer_id"],
        )
