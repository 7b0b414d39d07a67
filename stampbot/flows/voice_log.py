"""Weekly voice journal: transcribe a voice note and keep it as a reflection."""

from stampbot.flows.base import FlowContext, FlowHandler
from stampbot.logging_config import get_logger
from stampbot.schemas.webhook import MediaInfo
from stampbot.services.actions import SendText
from stampbot.services.alert_service import alert_error
from stampbot.services.gamification import badge_actions
from stampbot.services.journal_service import guess_filename, structure_reflection, transcribe_voice_note
from stampbot.services.record_store import RecordStoreError
from stampbot.services.time_utils import utcnow, week_start

logger = get_logger("flows.voice_log")

AWAITING_AUDIO = 1
TABLE = "weekly_reflections"


class VoiceLogFlow(FlowHandler):
    name = "voice_log"
    entry_commands = ("JOURNAL", "VOICE")
    text_steps = {AWAITING_AUDIO: "remind"}
    media_steps = {AWAITING_AUDIO: "voice_note"}

    def start(self, ctx: FlowContext, command: str):
        ctx.go(self.name, AWAITING_AUDIO)
        return [
            SendText(
                "🎙️ *Weekly reflection*\n\n"
                "Send a voice note about your week: what went well, what was hard, what's next."
            )
        ]

    def owns_media(self, ctx: FlowContext, media: MediaInfo) -> bool:
        return media.kind == "audio" and super().owns_media(ctx, media)

    def remind(self, ctx: FlowContext, text: str):
        return [SendText("I'm listening for a *voice note*. Hold the mic button and tell me about your week.")]

    def voice_note(self, ctx: FlowContext, media: MediaInfo):
        downloaded = ctx.services.gateway.download_media(media.media_id)
        if not downloaded.ok:
            logger.warning(f"Voice note download failed: {downloaded.error}")
            return [SendText("Sorry, I couldn't get that voice note. Please send it again.")]
        audio, mime_type = downloaded.value

        transcribed = transcribe_voice_note(ctx.services.llm, audio, mime_type)
        if not transcribed.ok:
            logger.warning(
                "Voice note transcription failed",
                extra={"context": {"customer_id": ctx.customer_id, "code": transcribed.error_code}},
            )
            return [SendText("Sorry, I couldn't make out that voice note. Please try recording it again.")]

        transcript = transcribed.value
        reflection = structure_reflection(ctx.services.llm, transcript)
        row = {
            "customer_id": ctx.customer_id,
            "week_start": week_start(ctx.today()),
            "transcript": transcript,
            "summary": reflection["summary"],
            "highlights": reflection["highlights"],
            "mood": reflection["mood"],
        }
        ctx.finish()
        ctx.on_commit(lambda: self._save(ctx, row, media, audio, mime_type))
        return []

    def _save(self, ctx: FlowContext, row: dict, media: MediaInfo, audio: bytes, mime_type: str):
        row = {**row, "audio_url": self._store_audio(ctx, media, audio, mime_type), "created_at": utcnow()}
        try:
            ctx.store.insert(TABLE, row)
        except RecordStoreError as e:
            self._dead_letter(ctx, row, e)
            return [
                SendText(
                    "Sorry, I heard you but couldn't save your reflection just now. "
                    "It's been kept safe and we'll add it for you. No need to resend."
                )
            ]

        count = len(ctx.store.select(TABLE, {"customer_id": ctx.customer_id}, columns="id"))
        badges = ctx.services.gamification.award_badges(ctx.customer_id, {"reflections": count})
        highlights = "\n".join(f"• {item}" for item in row["highlights"])
        body = f"📝 *Saved.* Here's your week in a nutshell:\n\n{row['summary']}"
        if highlights:
            body += f"\n\n{highlights}"
        return [SendText(body)] + badge_actions(badges)

    def _store_audio(self, ctx: FlowContext, media: MediaInfo, audio: bytes, mime_type: str):
        path = f"voice/{ctx.customer_id}/{media.media_id}-{guess_filename(mime_type)}"
        try:
            return ctx.store.upload(ctx.settings.media_bucket, path, audio, mime_type)
        except RecordStoreError as e:
            logger.warning(f"Voice note upload failed, keeping transcript only: {e}")
            return None

    def _dead_letter(self, ctx: FlowContext, row: dict, error: Exception) -> None:
        logger.error(
            f"Reflection insert failed: {error}",
            extra={"context": {"customer_id": ctx.customer_id}},
        )
        try:
            ctx.store.insert(
                "dead_letters",
                {
                    "customer_id": ctx.customer_id,
                    "source": self.name,
                    "payload": {**row, "week_start": row["week_start"].isoformat(), "created_at": row["created_at"].isoformat()},
                    "error": str(error)[:500],
                    "created_at": utcnow(),
                },
            )
        except RecordStoreError as e:
            logger.error(f"Dead letter insert failed: {e}", extra={"context": {"customer_id": ctx.customer_id}})
            alert_error("Reflection lost", {"customer_id": ctx.customer_id, "error": str(e)})
