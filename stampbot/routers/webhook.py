import asyncio
import threading
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from stampbot.config import Settings, get_settings
from stampbot.logging_config import get_logger
from stampbot.schemas.webhook import InboundEvent, WebhookPayload, WebhookResponse, extract_event
from stampbot.services.dispatcher import DispatchOutcome, Dispatcher, build_flow_services
from stampbot.services.record_store import RecordStore, get_record_store_factory
from stampbot.services.whatsapp_service import WhatsAppService, get_whatsapp_service

logger = get_logger("webhook")

router = APIRouter()


@router.get("/webhook")
async def verify_webhook(
    mode: Optional[str] = Query(default=None, alias="hub.mode"),
    token: Optional[str] = Query(default=None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(default=None, alias="hub.challenge"),
):
    """Subscription handshake from the WhatsApp Cloud API."""
    if mode == "subscribe" and token == get_settings().verify_token:
        return PlainTextResponse(challenge or "")
    logger.warning(f"Webhook verification rejected: mode={mode}")
    return PlainTextResponse("forbidden", status_code=403)


def _dispatch(
    event: InboundEvent,
    settings: Settings,
    store_factory: Callable[[], RecordStore],
    gateway: WhatsAppService,
    cancelled: threading.Event,
) -> DispatchOutcome:
    """Runs in the threadpool; owns its store so a timed-out request cannot close it underneath."""
    store = store_factory()
    try:
        return Dispatcher(build_flow_services(settings, store, gateway)).process(event, cancelled=cancelled)
    finally:
        store.close()


@router.post("/webhook", response_model=WebhookResponse)
async def handle_webhook(
    request: Request,
    store_factory: Callable[[], RecordStore] = Depends(get_record_store_factory),
    gateway: WhatsAppService = Depends(get_whatsapp_service),
):
    """Always acknowledges with 200; the provider retries anything else."""
    try:
        payload = WebhookPayload.model_validate(await request.json())
    except (ValueError, ValidationError) as e:
        logger.warning(f"Unparseable webhook body: {e}")
        return WebhookResponse(success=True, message="ignored")

    event = extract_event(payload)
    if event is None:
        return WebhookResponse(success=True, message="ignored")

    settings = get_settings()
    cancelled = threading.Event()
    try:
        outcome = await asyncio.wait_for(
            run_in_threadpool(_dispatch, event, settings, store_factory, gateway, cancelled),
            timeout=settings.processing_deadline_seconds,
        )
    except asyncio.TimeoutError:
        cancelled.set()
        logger.error(
            "Webhook processing exceeded deadline, cancelling",
            extra={"context": {"message_id": event.message_id, "deadline": settings.processing_deadline_seconds}},
        )
        return WebhookResponse(success=True, message="ok")

    if outcome.status == "duplicate":
        return WebhookResponse(success=True, message="duplicate")
    return WebhookResponse(success=True, message="ok")
