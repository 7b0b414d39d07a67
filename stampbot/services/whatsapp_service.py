from typing import Optional

import httpx

from stampbot.config import ConfigurationError, Settings, get_settings
from stampbot.logging_config import get_logger
from stampbot.services.actions import Action, SendButtons, SendImage, SendList, SendText
from stampbot.services.alert_service import alert_error
from stampbot.services.result import Result

logger = get_logger("whatsapp_service")

GRAPH_URL = "https://graph.facebook.com/{version}"


def build_payload(to: str, action: Action) -> dict:
    """Translate an outbound action into a Cloud API message payload."""
    payload = {"messaging_product": "whatsapp", "to": to}

    if isinstance(action, SendText):
        payload["type"] = "text"
        payload["text"] = {"body": action.body}
    elif isinstance(action, SendImage):
        image = {"link": action.link}
        if action.caption:
            image["caption"] = action.caption
        payload["type"] = "image"
        payload["image"] = image
    elif isinstance(action, SendButtons):
        payload["type"] = "interactive"
        payload["interactive"] = {
            "type": "button",
            "body": {"text": action.body},
            "action": {
                "buttons": [{"type": "reply", "reply": {"id": b.id, "title": b.title}} for b in action.buttons]
            },
        }
    elif isinstance(action, SendList):
        sections = []
        for section in action.sections:
            rows = []
            for row in section.rows:
                item = {"id": row.id, "title": row.title}
                if row.description:
                    item["description"] = row.description
                rows.append(item)
            sections.append({"title": section.title, "rows": rows})
        payload["type"] = "interactive"
        payload["interactive"] = {
            "type": "list",
            "body": {"text": action.body},
            "action": {"button": action.button, "sections": sections},
        }
    else:
        raise TypeError(f"Unsupported action: {type(action).__name__}")

    return payload


class WhatsAppService:
    """Messaging gateway for the WhatsApp Cloud API."""

    def __init__(
        self,
        token: Optional[str],
        phone_number_id: Optional[str],
        api_version: str = "v23.0",
        timeout_seconds: float = 10.0,
        media_max_bytes: int = 16 * 1024 * 1024,
    ):
        self.token = token
        self.phone_number_id = phone_number_id
        self.base_url = GRAPH_URL.format(version=api_version)
        self.timeout_seconds = timeout_seconds
        self.media_max_bytes = media_max_bytes

    @classmethod
    def from_settings(cls, settings: Settings) -> "WhatsAppService":
        return cls(
            settings.whatsapp_token,
            settings.whatsapp_phone_id,
            api_version=settings.whatsapp_api_version,
            timeout_seconds=settings.http_timeout_seconds,
            media_max_bytes=settings.media_download_max_bytes,
        )

    def _require_config(self) -> None:
        if not self.token or not self.phone_number_id:
            raise ConfigurationError("Missing WHATSAPP_TOKEN or WHATSAPP_PHONE_ID")

    def _auth_headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"}

    def send(self, to: str, action: Action) -> Result[str]:
        """Send one message. Failures are logged and reported, never retried."""
        self._require_config()
        payload = build_payload(to, action)
        url = f"{self.base_url}/{self.phone_number_id}/messages"
        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.post(url, json=payload, headers=self._auth_headers())
        except httpx.HTTPError as e:
            logger.error(f"[WA SEND] transport error to={to}: {e}")
            alert_error("WhatsApp send failed", {"to": to, "type": payload["type"], "error": str(e)})
            return Result.from_exception(e, "send_transport_error")

        if response.status_code != 200:
            logger.error(f"[WA SEND] error status={response.status_code} to={to} body={response.text[:200]}")
            alert_error("WhatsApp send failed", {"to": to, "type": payload["type"], "status": response.status_code})
            return Result.failure(response.text[:200], "send_rejected")

        logger.info(f"[WA SEND] ok to={to} type={payload['type']}")
        message_id = None
        try:
            message_id = (response.json().get("messages") or [{}])[0].get("id")
        except ValueError:
            pass
        return Result.success(message_id)

    def execute(self, to: str, actions: list[Action]) -> list[Result[str]]:
        """Send actions strictly in list order; one failure does not stop the rest."""
        return [self.send(to, action) for action in actions]

    def download_media(self, media_id: str) -> Result[tuple[bytes, str]]:
        """Resolve a media id to its bytes and mime type."""
        self._require_config()
        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                meta = client.get(f"{self.base_url}/{media_id}", headers=self._auth_headers())
                if meta.status_code != 200:
                    logger.warning(f"[WA MEDIA] lookup failed media_id={media_id} status={meta.status_code}")
                    return Result.failure(f"media lookup returned {meta.status_code}", "media_lookup_failed")
                info = meta.json()
                declared_size = int(info.get("file_size") or 0)
                if declared_size > self.media_max_bytes:
                    return Result.failure(f"media too large: {declared_size} bytes", "media_too_large")

                response = client.get(info["url"], headers=self._auth_headers())
                if response.status_code != 200:
                    logger.warning(f"[WA MEDIA] download failed media_id={media_id} status={response.status_code}")
                    return Result.failure(f"media download returned {response.status_code}", "media_download_failed")
                if len(response.content) > self.media_max_bytes:
                    return Result.failure("media too large", "media_too_large")
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error(f"[WA MEDIA] error media_id={media_id}: {e}")
            return Result.from_exception(e, "media_download_failed")

        mime = info.get("mime_type") or response.headers.get("content-type") or "application/octet-stream"
        return Result.success((response.content, mime))


def get_whatsapp_service() -> WhatsAppService:
    return WhatsAppService.from_settings(get_settings())
