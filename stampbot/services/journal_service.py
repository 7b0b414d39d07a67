"""Voice-journal helpers: transcription and structuring of weekly reflections."""

import json
import mimetypes
from typing import Optional

import httpx

from stampbot.config import Settings
from stampbot.logging_config import get_logger
from stampbot.services.llm import LLMProvider, OpenAIProvider
from stampbot.services.result import Result

logger = get_logger("journal_service")

TRANSCRIPTION_MAX_ATTEMPTS = 2
MIN_TRANSCRIPT_CHARS = 3
MAX_TRANSCRIPT_CHARS = 6000

STRUCTURE_PROMPT = (
    "You turn a spoken weekly reflection into JSON with keys: "
    '"summary" (max 2 sentences), "highlights" (list of up to 3 short strings), '
    '"mood" (one of: great, good, okay, low). Reply with JSON only.'
)

MOODS = {"great", "good", "okay", "low"}


def build_llm_provider(settings: Settings) -> Optional[LLMProvider]:
    if not settings.openai_api_key:
        return None
    return OpenAIProvider(
        settings.openai_api_key,
        default_model=settings.openai_model,
        transcription_model=settings.transcription_model,
        timeout_seconds=transcription_timeout(settings),
    )


def transcription_timeout(settings: Settings) -> float:
    """Per-attempt timeout. All attempts plus one slot for download and structuring fit the deadline."""
    budget = settings.processing_deadline_seconds / (TRANSCRIPTION_MAX_ATTEMPTS + 1)
    return min(settings.transcription_timeout_seconds, budget)


def guess_filename(mime_type: Optional[str]) -> str:
    base_mime = (mime_type or "").split(";")[0].strip()
    extension = mimetypes.guess_extension(base_mime) or ".ogg"
    return f"voice{extension}"


def transcribe_voice_note(provider: Optional[LLMProvider], audio: bytes, mime_type: Optional[str]) -> Result[str]:
    """Bounded attempts; only timeouts are retried."""
    if provider is None:
        return Result.failure("transcription not configured", "missing_openai_key")

    last_error: Result[str] = Result.failure("no attempt made", "transcription_error")
    for attempt in range(1, TRANSCRIPTION_MAX_ATTEMPTS + 1):
        try:
            transcript = provider.transcribe_audio(
                audio_bytes=audio, filename=guess_filename(mime_type), mime_type=mime_type
            )
        except httpx.TimeoutException as e:
            logger.warning(f"Transcription timed out (attempt {attempt}/{TRANSCRIPTION_MAX_ATTEMPTS})")
            last_error = Result.from_exception(e, "transcription_timeout")
            continue
        except Exception as e:
            logger.error(f"Transcription failed: {e}")
            return Result.from_exception(e, "transcription_error")

        transcript = (transcript or "").strip()
        if len(transcript) < MIN_TRANSCRIPT_CHARS:
            return Result.failure("transcript empty", "transcript_empty")
        return Result.success(transcript[:MAX_TRANSCRIPT_CHARS])

    return last_error


def _fallback_structure(transcript: str) -> dict:
    summary = transcript if len(transcript) <= 200 else transcript[:197].rstrip() + "..."
    return {"summary": summary, "highlights": [], "mood": None}


def structure_reflection(provider: Optional[LLMProvider], transcript: str) -> dict:
    """Best effort; falls back to a trimmed transcript when the LLM is unavailable."""
    if provider is None:
        return _fallback_structure(transcript)
    try:
        response = provider.generate(
            [
                {"role": "system", "content": STRUCTURE_PROMPT},
                {"role": "user", "content": transcript},
            ],
            json_mode=True,
        )
        data = json.loads(response.content or "{}")
    except Exception as e:
        logger.warning(f"Reflection structuring failed, using fallback: {e}")
        return _fallback_structure(transcript)

    if not isinstance(data, dict):
        logger.warning(f"Reflection structuring returned {type(data).__name__}, using fallback")
        return _fallback_structure(transcript)

    raw_highlights = data.get("highlights")
    if not isinstance(raw_highlights, list):
        raw_highlights = []
    highlights = [str(item)[:120] for item in raw_highlights if str(item).strip()][:3]
    mood = str(data.get("mood") or "").lower()
    return {
        "summary": str(data.get("summary") or "").strip() or _fallback_structure(transcript)["summary"],
        "highlights": highlights,
        "mood": mood if mood in MOODS else None,
    }
