from stampbot.services.idempotency_service import IdempotencyGuard, build_inbound_message_id
from stampbot.services.result import Result
from stampbot.services.state_machine import (
    IDLE_STEP,
    ConversationState,
    InvalidTransitionError,
    StaleStateError,
    transition,
)
from stampbot.services.state_service import ConversationStateStore

__all__ = [
    "IDLE_STEP",
    "ConversationState",
    "ConversationStateStore",
    "IdempotencyGuard",
    "InvalidTransitionError",
    "Result",
    "StaleStateError",
    "build_inbound_message_id",
    "transition",
]
