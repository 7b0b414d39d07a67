from stampbot.schemas.qmunity import QueueSnapshot
from stampbot.schemas.webhook import InboundEvent, MediaInfo, WebhookPayload, WebhookResponse, extract_event

__all__ = ["InboundEvent", "MediaInfo", "QueueSnapshot", "WebhookPayload", "WebhookResponse", "extract_event"]
