import mimetypes
import uuid
from typing import Optional

from stampbot.flows.base import FlowContext, FlowHandler, normalize_token
from stampbot.logging_config import get_logger
from stampbot.schemas.webhook import MediaInfo
from stampbot.services.actions import ListRow, ListSection, SendList, SendText
from stampbot.services.gamification import badge_actions
from stampbot.services.record_store import RecordStoreError
from stampbot.services.time_utils import utcnow

logger = get_logger("flows.incident")

TABLE = "incident_reports"
MIN_DESCRIPTION_CHARS = 10
MAX_DESCRIPTION_CHARS = 1000

CATEGORIES = {
    "incident_cat_safety": "Safety",
    "incident_cat_crime": "Crime",
    "incident_cat_infrastructure": "Infrastructure",
    "incident_cat_service": "Service delivery",
    "incident_cat_other": "Other",
}

CATEGORY, DESCRIPTION, PHOTO = 1, 2, 3


class IncidentFlow(FlowHandler):
    name = "incident"
    entry_commands = ("INCIDENT", "REPORT")
    reply_prefixes = ("incident_cat_",)
    text_steps = {CATEGORY: "category_text", DESCRIPTION: "description", PHOTO: "skip_photo"}
    reply_steps = {CATEGORY: "category"}
    media_steps = {PHOTO: "photo"}

    def start(self, ctx: FlowContext, command: str):
        ctx.go(self.name, CATEGORY)
        return [self._category_list()]

    def _category_list(self) -> SendList:
        rows = tuple(ListRow(reply_id, title) for reply_id, title in CATEGORIES.items())
        return SendList("🚨 What kind of incident are you reporting?", (ListSection("Categories", rows),), "Choose")

    def category(self, ctx: FlowContext, reply_id: str):
        category = CATEGORIES.get(reply_id)
        if category is None:
            return None
        ctx.advance(DESCRIPTION, category=category)
        return [SendText(f"*{category}* noted. Please describe what happened, where and when.")]

    def category_text(self, ctx: FlowContext, text: str):
        return [SendText("Please pick a category from the list."), self._category_list()]

    def description(self, ctx: FlowContext, text: str):
        description = (text or "").strip()
        if len(description) < MIN_DESCRIPTION_CHARS:
            return [SendText("Please add a little more detail (at least 10 characters).")]

        reference = uuid.uuid4().hex[:12]
        row = {
            "reference": reference,
            "customer_id": ctx.customer_id,
            "category": ctx.state.data.get("category") or "Other",
            "description": description[:MAX_DESCRIPTION_CHARS],
            "status": "awaiting_media",
            "created_at": utcnow(),
        }
        ctx.advance(PHOTO, reference=reference)
        ctx.on_commit(lambda: self._open_report(ctx, row))
        return [SendText("Thanks. If you have a photo, send it now. Otherwise reply *SKIP*.")]

    def _open_report(self, ctx: FlowContext, row: dict) -> None:
        ctx.store.insert(TABLE, row)
        logger.info("Incident opened", extra={"context": {"customer_id": ctx.customer_id, "reference": row["reference"]}})

    def skip_photo(self, ctx: FlowContext, text: str):
        if normalize_token(text) != "SKIP":
            return [SendText("Send a photo of the incident, or reply *SKIP* to submit without one.")]
        reference = ctx.state.data.get("reference")
        ctx.finish()
        ctx.on_commit(lambda: self._submit(ctx, reference, photo_url=None))
        return []

    def owns_media(self, ctx: FlowContext, media: MediaInfo) -> bool:
        if media.kind != "image":
            return False
        if self.owns_state(ctx.state):
            return ctx.state.step == PHOTO
        return ctx.state.is_idle and self._awaiting_report(ctx) is not None

    def handle_media(self, ctx: FlowContext, media: MediaInfo) -> Optional[list]:
        if self.owns_state(ctx.state):
            return super().handle_media(ctx, media)
        report = self._awaiting_report(ctx)
        if report is None:
            return None
        return self._attach(ctx, report["reference"], media)

    def photo(self, ctx: FlowContext, media: MediaInfo):
        return self._attach(ctx, ctx.state.data.get("reference"), media)

    def _awaiting_report(self, ctx: FlowContext) -> Optional[dict]:
        return ctx.store.get_one(
            TABLE, {"customer_id": ctx.customer_id, "status": "awaiting_media"}, columns="reference,status"
        )

    def _attach(self, ctx: FlowContext, reference: Optional[str], media: MediaInfo):
        downloaded = ctx.services.gateway.download_media(media.media_id)
        if not downloaded.ok:
            return [SendText("Sorry, we couldn't fetch that photo. Please try sending it again, or reply *SKIP*.")]

        if not ctx.state.is_idle:
            ctx.finish()
        content, mime_type = downloaded.value
        ctx.on_commit(lambda: self._upload_and_submit(ctx, reference, content, mime_type))
        return []

    def _upload_and_submit(self, ctx: FlowContext, reference: Optional[str], content: bytes, mime_type: str):
        extension = mimetypes.guess_extension(mime_type.split(";")[0].strip()) or ".jpg"
        try:
            photo_url = ctx.store.upload(
                ctx.settings.media_bucket,
                f"incidents/{ctx.customer_id}/{reference}{extension}",
                content,
                mime_type,
            )
        except RecordStoreError as e:
            logger.warning(f"Incident photo upload failed: {e}", extra={"context": {"reference": reference}})
            # Stays awaiting_media, so a photo sent later can still be attached.
            return [SendText("Sorry, we couldn't save that photo. Please send it again in a moment.")]
        return self._submit(ctx, reference, photo_url=photo_url)

    def _submit(self, ctx: FlowContext, reference: Optional[str], photo_url: Optional[str]):
        patch = {"status": "submitted", "updated_at": utcnow()}
        if photo_url:
            patch["photo_url"] = photo_url
        submitted = reference is not None and ctx.store.update(
            TABLE, {"reference": reference, "status": "awaiting_media"}, patch
        )
        if not submitted:
            # A concurrent photo or SKIP got there first.
            logger.info("Incident already submitted", extra={"context": {"reference": reference}})
            return []
        logger.info("Incident submitted", extra={"context": {"customer_id": ctx.customer_id, "reference": reference}})

        reported = len(ctx.store.select(TABLE, {"customer_id": ctx.customer_id, "status": "submitted"}, columns="id"))
        badges = ctx.services.gamification.award_badges(ctx.customer_id, {"incidents_reported": reported})
        return [SendText("✅ Your report has been submitted. Thank you for looking out for your community.")] + (
            badge_actions(badges)
        )
