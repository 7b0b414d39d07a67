"""Flow handler framework shared by every conversational feature.

A handler reads the inbound event through a FlowContext, records at most one
state transition on the context and returns the ordered list of outbound
actions. Domain writes are registered with on_commit: the dispatcher runs them
only after the transition has been committed, so an attempt that loses the
state race leaves no rows behind.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

from stampbot.config import Settings
from stampbot.schemas.webhook import InboundEvent, MediaInfo
from stampbot.services.actions import Action
from stampbot.services.customer_service import CustomerService
from stampbot.services.gamification import GamificationService
from stampbot.services.llm import LLMProvider
from stampbot.services.record_store import RecordStore
from stampbot.services.state_machine import IDLE_STEP, ConversationState
from stampbot.services.time_utils import local_today
from stampbot.services.whatsapp_service import WhatsAppService

MAX_AMOUNT = 1_000_000
_AMOUNT_RE = re.compile(r"^\d+(\.\d{1,2})?$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$")

# Deferred domain write; returns the actions that report its outcome.
Effect = Callable[[], Optional[list[Action]]]


@dataclass
class FlowServices:
    """Collaborators available to handlers for one invocation."""

    settings: Settings
    store: RecordStore
    gateway: WhatsAppService
    customers: CustomerService
    gamification: GamificationService
    llm: Optional[LLMProvider] = None


@dataclass(frozen=True)
class PendingTransition:
    flow: Optional[str]
    step: int
    data: dict


class FlowContext:
    def __init__(self, services: FlowServices, event: InboundEvent, state: ConversationState):
        self.services = services
        self.event = event
        self.state = state
        self.pending: Optional[PendingTransition] = None
        self.effects: list[Effect] = []

    @property
    def customer_id(self) -> str:
        return self.event.sender

    @property
    def store(self) -> RecordStore:
        return self.services.store

    @property
    def settings(self) -> Settings:
        return self.services.settings

    @property
    def data(self) -> dict:
        """Payload as it will be after the pending transition."""
        if self.pending is not None:
            return self.pending.data
        return self.state.data

    def today(self) -> date:
        return local_today(self.settings.timezone_offset_hours)

    def go(self, flow: str, step: int, data: Optional[dict] = None) -> None:
        """Enter a flow at a step with a fresh payload."""
        self.pending = PendingTransition(flow, step, dict(data or {}))

    def advance(self, step: int, **data) -> None:
        """Move within the current flow, merging into its payload."""
        flow = self.pending.flow if self.pending is not None else self.state.active_flow
        if flow is None:
            raise ValueError("advance() needs an active flow; use go()")
        self.pending = PendingTransition(flow, step, {**self.data, **data})

    def finish(self) -> None:
        self.pending = PendingTransition(None, IDLE_STEP, {})

    def on_commit(self, effect: Effect) -> None:
        """Queue a domain write. Its actions are sent after the handler's own, in queue order."""
        self.effects.append(effect)

    def run_effects(self) -> list[Action]:
        actions: list[Action] = []
        for effect in self.effects:
            actions += effect() or []
        return actions


class FlowHandler(ABC):
    """Base class for flows. Subclasses declare steps; unknown steps are not handled.

    Step handlers return a list of actions, or None to let routing continue.
    """

    name: str = ""
    entry_commands: tuple[str, ...] = ()
    reply_prefixes: tuple[str, ...] = ()
    text_steps: dict[int, str] = {}
    reply_steps: dict[int, str] = {}
    media_steps: dict[int, str] = {}

    def owns_state(self, state: ConversationState) -> bool:
        return state.active_flow == self.name

    def owns_reply(self, state: ConversationState, reply_id: str) -> bool:
        return any(reply_id.startswith(prefix) for prefix in self.reply_prefixes)

    def owns_media(self, ctx: FlowContext, media: MediaInfo) -> bool:
        return self.owns_state(ctx.state) and ctx.state.step in self.media_steps

    @abstractmethod
    def start(self, ctx: FlowContext, command: str) -> list[Action]:
        """Enter the flow from an entry command."""

    def handle_text(self, ctx: FlowContext, text: str) -> Optional[list[Action]]:
        method = self.text_steps.get(ctx.state.step)
        if method is None:
            return None
        return getattr(self, method)(ctx, text)

    def handle_interactive(self, ctx: FlowContext, reply_id: str) -> Optional[list[Action]]:
        method = self.reply_steps.get(ctx.state.step) if self.owns_state(ctx.state) else None
        if method is not None:
            actions = getattr(self, method)(ctx, reply_id)
            if actions is not None:
                return actions
        return self.handle_global_reply(ctx, reply_id)

    def handle_global_reply(self, ctx: FlowContext, reply_id: str) -> Optional[list[Action]]:
        """Replies accepted regardless of the current state (menus, entry buttons)."""
        return None

    def handle_media(self, ctx: FlowContext, media: MediaInfo) -> Optional[list[Action]]:
        method = self.media_steps.get(ctx.state.step)
        if method is None:
            return None
        return getattr(self, method)(ctx, media)


def normalize_token(text: Optional[str]) -> str:
    return " ".join((text or "").split()).upper()


def parse_amount(text: Optional[str]) -> Optional[float]:
    """Accepts "R 120", "120.50", "1,200" and "1 200". None for anything not positive."""
    cleaned = (text or "").strip().upper()
    if cleaned.startswith("R"):
        cleaned = cleaned[1:]
    cleaned = cleaned.replace(",", "").replace(" ", "")
    if not _AMOUNT_RE.match(cleaned):
        return None
    amount = float(cleaned)
    if amount <= 0 or amount > MAX_AMOUNT:
        return None
    return round(amount, 2)


def is_valid_email(text: Optional[str]) -> bool:
    return bool(_EMAIL_RE.match((text or "").strip()))


def format_rand(amount: float) -> str:
    return f"R{amount:,.2f}"
