from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from stampbot.services.idempotency_service import build_inbound_message_id

MEDIA_KINDS = ("audio", "image")


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class TextBody(_Lenient):
    body: str = ""


class ReplyRef(_Lenient):
    id: str
    title: Optional[str] = None


class Interactive(_Lenient):
    type: Optional[str] = None
    button_reply: Optional[ReplyRef] = None
    list_reply: Optional[ReplyRef] = None


class MediaRef(_Lenient):
    id: str
    mime_type: Optional[str] = None
    caption: Optional[str] = None
    voice: Optional[bool] = None


class WhatsAppMessage(_Lenient):
    id: Optional[str] = None
    from_: str = Field(alias="from")
    timestamp: Optional[str] = None
    type: str = "text"
    text: Optional[TextBody] = None
    interactive: Optional[Interactive] = None
    audio: Optional[MediaRef] = None
    image: Optional[MediaRef] = None


class Profile(_Lenient):
    name: Optional[str] = None


class Contact(_Lenient):
    wa_id: Optional[str] = None
    profile: Optional[Profile] = None


class ChangeValue(_Lenient):
    messaging_product: Optional[str] = None
    contacts: list[Contact] = Field(default_factory=list)
    messages: list[WhatsAppMessage] = Field(default_factory=list)


class Change(_Lenient):
    field: Optional[str] = None
    value: ChangeValue = Field(default_factory=ChangeValue)


class Entry(_Lenient):
    id: Optional[str] = None
    changes: list[Change] = Field(default_factory=list)


class WebhookPayload(_Lenient):
    object: Optional[str] = None
    entry: list[Entry] = Field(default_factory=list)


class WebhookResponse(BaseModel):
    success: bool
    message: str


@dataclass(frozen=True)
class MediaInfo:
    kind: str  # audio | image
    media_id: str
    mime_type: Optional[str] = None
    caption: Optional[str] = None


@dataclass(frozen=True)
class InboundEvent:
    """One customer message, normalized from the provider envelope."""

    message_id: str
    sender: str
    sender_name: Optional[str]
    kind: str  # text | interactive | audio | image | unsupported
    text: Optional[str] = None
    reply_id: Optional[str] = None
    media: Optional[MediaInfo] = None
    timestamp: Optional[str] = None


def extract_event(payload: WebhookPayload) -> Optional[InboundEvent]:
    """First message of the first change, or None for status callbacks and empty deliveries."""
    if not payload.entry or not payload.entry[0].changes:
        return None
    value = payload.entry[0].changes[0].value
    if not value.messages:
        return None

    message = value.messages[0]
    sender_name = None
    if value.contacts and value.contacts[0].profile:
        sender_name = value.contacts[0].profile.name

    text = message.text.body if message.text else None
    reply_id = None
    media = None
    kind = message.type

    if kind == "interactive" and message.interactive:
        reply = message.interactive.button_reply or message.interactive.list_reply
        reply_id = reply.id if reply else None
    elif kind in MEDIA_KINDS:
        ref = getattr(message, kind)
        if ref is not None:
            media = MediaInfo(kind=kind, media_id=ref.id, mime_type=ref.mime_type, caption=ref.caption)
    elif kind != "text":
        kind = "unsupported"

    if kind in MEDIA_KINDS and media is None:
        kind = "unsupported"

    return InboundEvent(
        message_id=build_inbound_message_id(message.id, message.from_, message.timestamp, text),
        sender=message.from_,
        sender_name=sender_name,
        kind=kind,
        text=text,
        reply_id=reply_id,
        media=media,
        timestamp=message.timestamp,
    )
