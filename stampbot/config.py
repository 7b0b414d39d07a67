from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(RuntimeError):
    """Required credentials for an external service are missing."""


class Settings(BaseSettings):
    # Record store: Supabase REST when configured, otherwise a direct database.
    supabase_url: Optional[str] = None
    supabase_service_role_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("supabase_service_role_key", "supabase_key"),
    )
    database_url: str = "sqlite:///./stampbot.db"

    # WhatsApp Cloud API
    whatsapp_token: Optional[str] = None
    whatsapp_phone_id: Optional[str] = None
    whatsapp_api_version: str = "v23.0"
    verify_token: str = Field(
        default="myverifytoken",
        validation_alias=AliasChoices("verify_token", "whatsapp_verify_token"),
    )

    # Branding and link overrides
    card_base_url: str = "https://tpc-demo-dashboard.pages.dev"
    dashboard_url: str = "https://tpc-demo-dashboard.pages.dev/demo-dashboard"
    calendly_url: str = "https://calendly.com/thepotentialcompany/meta-loyalty-demo"
    edu_yt_url: str = "https://youtu.be/nX5SfBdnHHU"
    edu_yt2_url: str = "https://youtu.be/px87QNYduwI"

    # Africa/Johannesburg
    timezone_offset_hours: float = 2.0

    http_timeout_seconds: float = 10.0
    transcription_timeout_seconds: float = 20.0
    media_download_max_bytes: int = 16 * 1024 * 1024
    processing_deadline_seconds: float = 25.0
    processed_retention_days: int = 30

    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    transcription_model: str = "whisper-1"

    media_bucket: str = "wa-media"
    media_storage_dir: str = "./media"
    public_base_url: str = "http://localhost:8000"

    alert_bot_token: Optional[str] = None
    alert_chat_id: Optional[str] = None
    admin_token: Optional[str] = None

    debug: bool = False

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def uses_supabase(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)


@lru_cache
def get_settings() -> Settings:
    return Settings()
