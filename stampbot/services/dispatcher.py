"""Routes one inbound event to a flow handler and commits the resulting transition.

Per event: claim the message id, make sure the customer exists, then read the
state, route, and compare-and-swap the transition. A lost race discards the
attempt, whose domain writes were only queued, and starts over from a fresh
read. Once the transition is committed the queued writes run in order and the
actions are sent.
"""

import threading
from dataclasses import dataclass, field
from typing import Optional

from stampbot.config import Settings
from stampbot.flows import FlowContext, FlowHandler, FlowServices, default_handlers
from stampbot.flows.base import normalize_token
from stampbot.flows.commands import handle_interrupt, help_actions
from stampbot.logging_config import LoggerAdapter, get_logger
from stampbot.schemas.webhook import InboundEvent
from stampbot.services.actions import Action
from stampbot.services.alert_service import alert_error, alert_warning
from stampbot.services.customer_service import CustomerService
from stampbot.services.gamification import GamificationService
from stampbot.services.idempotency_service import IdempotencyGuard
from stampbot.services.journal_service import build_llm_provider
from stampbot.services.record_store import RecordStore
from stampbot.services.state_machine import ConversationState, StaleStateError
from stampbot.services.state_service import ConversationStateStore
from stampbot.services.whatsapp_service import WhatsAppService

logger = get_logger("dispatcher")

MAX_ATTEMPTS = 3
MEDIA_KINDS = ("audio", "image")


@dataclass
class DispatchOutcome:
    status: str  # ok | duplicate | conflict | cancelled | error
    handled_by: Optional[str] = None
    actions: list[Action] = field(default_factory=list)
    attempts: int = 0
    error: Optional[str] = None


def build_flow_services(settings: Settings, store: RecordStore, gateway: Optional[WhatsAppService] = None) -> FlowServices:
    return FlowServices(
        settings=settings,
        store=store,
        gateway=gateway or WhatsAppService.from_settings(settings),
        customers=CustomerService(store),
        gamification=GamificationService(store),
        llm=build_llm_provider(settings),
    )


class Dispatcher:
    def __init__(
        self,
        services: FlowServices,
        handlers: Optional[list[FlowHandler]] = None,
        max_attempts: int = MAX_ATTEMPTS,
    ):
        self.services = services
        self.handlers = handlers if handlers is not None else default_handlers()
        self.max_attempts = max_attempts
        self.guard = IdempotencyGuard(services.store)
        self.states = ConversationStateStore(services.store)

    def _handler_for(self, state: ConversationState) -> Optional[FlowHandler]:
        if state.is_idle:
            return None
        for handler in self.handlers:
            if handler.owns_state(state):
                return handler
        return None

    def route(self, ctx: FlowContext) -> tuple[list[Action], Optional[str]]:
        """Pick the handler for the event. Returns its actions and name (None when nothing claimed it)."""
        event = ctx.event

        if event.kind in MEDIA_KINDS:
            for handler in self.handlers:
                if handler.owns_media(ctx, event.media):
                    actions = handler.handle_media(ctx, event.media)
                    if actions is not None:
                        return actions, handler.name
            return help_actions(event.sender_name), None

        if event.kind == "interactive":
            if event.reply_id:
                for handler in self.handlers:
                    if handler.owns_reply(ctx.state, event.reply_id):
                        actions = handler.handle_interactive(ctx, event.reply_id)
                        if actions is not None:
                            return actions, handler.name
            logger.info("Unclaimed reply", extra={"context": {"reply_id": event.reply_id}})
            return [], None

        if event.kind != "text":
            return help_actions(event.sender_name), None

        token = normalize_token(event.text)
        actions = handle_interrupt(ctx, token)
        if actions is not None:
            return actions, "commands"

        # An active flow wins over entry keywords.
        active = self._handler_for(ctx.state)
        if active is not None:
            actions = active.handle_text(ctx, event.text or "")
            if actions is not None:
                return actions, active.name

        for handler in self.handlers:
            if token in handler.entry_commands:
                if not ctx.state.is_idle:
                    ctx.finish()
                return handler.start(ctx, token), handler.name

        return help_actions(event.sender_name), None

    def _commit(self, ctx: FlowContext) -> ConversationState:
        state = ctx.state
        pending = ctx.pending
        if pending is None:
            if not ctx.effects:
                return state
            # Queued writes still need the slot, even when the position does not move.
            return self.states.set_state(state, state.active_flow, state.step, state.data)
        if pending.flow is None and state.is_idle and not ctx.effects:
            return state
        return self.states.set_state(state, pending.flow, pending.step, pending.data)

    def process(self, event: InboundEvent, cancelled: Optional[threading.Event] = None) -> DispatchOutcome:
        """Never raises; failures are logged, alerted and reported in the outcome.

        Setting `cancelled` stops the attempt before its transition is committed.
        A committed transition always runs its queued writes and sends.
        """
        log_context = {"message_id": event.message_id, "customer_id": event.sender, "kind": event.kind}
        log = LoggerAdapter(logger, log_context)

        if not self.guard.claim(event.message_id):
            return DispatchOutcome(status="duplicate")

        try:
            self.services.customers.ensure_customer(event.sender, event.sender_name)

            for attempt in range(1, self.max_attempts + 1):
                ctx = FlowContext(self.services, event, self.states.get_state(event.sender))
                try:
                    actions, handled_by = self.route(ctx)
                    if cancelled is not None and cancelled.is_set():
                        log.warning("Dispatch cancelled before commit")
                        return DispatchOutcome(status="cancelled", attempts=attempt)
                    state = self._commit(ctx)
                except StaleStateError as e:
                    log.warning(f"Stale write, retrying ({attempt}/{self.max_attempts})", context={"key": e.key})
                    continue
                break
            else:
                alert_warning("Dispatch gave up after write conflicts", log_context)
                return DispatchOutcome(status="conflict", attempts=self.max_attempts)

            actions = actions + ctx.run_effects()
            log.info(
                "Dispatched",
                context={
                    "handled_by": handled_by,
                    "flow": state.active_flow,
                    "step": state.step,
                    "actions": len(actions),
                    "attempt": attempt,
                },
            )
            self.services.gateway.execute(event.sender, actions)
        except Exception as e:
            log.error(f"Dispatch failed: {e}", exc_info=True)
            alert_error("Dispatch failed", {**log_context, "error": str(e)})
            return DispatchOutcome(status="error", error=str(e))

        return DispatchOutcome(status="ok", handled_by=handled_by, actions=actions, attempts=attempt)
