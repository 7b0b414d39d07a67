from dataclasses import dataclass, field, replace
from typing import Any, Optional

IDLE_STEP = 0


class InvalidTransitionError(Exception):
    def __init__(self, flow: Optional[str], step: int):
        self.flow = flow
        self.step = step
        super().__init__(f"Invalid transition: {flow or 'idle'} -> step {step}")


class StaleStateError(Exception):
    """A conditional write lost the race against another invocation."""

    def __init__(self, key: str, expected_version: int):
        self.key = key
        self.expected_version = expected_version
        super().__init__(f"Stale write for {key}: expected version {expected_version}")


@dataclass(frozen=True)
class ConversationState:
    """The single per-customer slot shared by every flow.

    step is only ever the position within active_flow; anything a flow needs to
    carry between steps lives in data.
    """

    customer_id: str
    active_flow: Optional[str] = None
    step: int = IDLE_STEP
    data: dict[str, Any] = field(default_factory=dict)
    version: int = 0  # 0 = no row stored yet

    @property
    def is_idle(self) -> bool:
        return self.active_flow is None

    def is_at(self, flow: str, step: int) -> bool:
        return self.active_flow == flow and self.step == step

    @classmethod
    def from_row(cls, customer_id: str, row: Optional[dict]) -> "ConversationState":
        if not row:
            return cls(customer_id=customer_id)
        return cls(
            customer_id=customer_id,
            active_flow=row.get("active_flow"),
            step=int(row.get("step") or 0),
            data=dict(row.get("data") or {}),
            version=int(row.get("version") or 0),
        )


def transition(
    current: ConversationState,
    flow: Optional[str],
    step: int,
    data: Optional[dict] = None,
) -> ConversationState:
    """Next state after a write; version always moves forward by one."""
    if flow is None and step != IDLE_STEP:
        raise InvalidTransitionError(flow, step)
    if flow is not None and step < 0:
        raise InvalidTransitionError(flow, step)
    return replace(
        current,
        active_flow=flow,
        step=step,
        data=dict(data or {}) if flow is not None else {},
        version=current.version + 1,
    )
