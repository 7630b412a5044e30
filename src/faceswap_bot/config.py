"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    telegram_bot_token: str
    supabase_url: str
    supabase_service_key: str
    admin_token: str
    telegram_allowed_user_ids: str | None = None
    magic_hour_api_key: str
    magic_hour_base_url: str = "https://api.magichour.ai"
    tenor_api_key: str
    tenor_client_key: str = "telegram-face-swap-bot"
    tenor_base_url: str = "https://tenor.googleapis.com/v2"
    environment: str = _ENVIRONMENT

    search_page_size: int = 9
    search_result_limit: int = 50
    search_session_ttl_seconds: int = 600
    swap_session_ttl_seconds: int = 300
    session_sweep_interval_seconds: int = 600
    inline_upload_window_seconds: int = 120
    face_save_window_seconds: int = 300
    poll_interval_seconds: float = 5.0
    image_poll_max_attempts: int = 60
    media_poll_max_attempts: int = 120
    max_saved_faces: int = 3
    max_upload_bytes: int = 25 * 1024 * 1024
    dedup_ttl_seconds: int = 60
    faceswap_hourly_limit: int = 5
    faceswap_burst_limit: int = 3
    faceswap_burst_window_seconds: int = 600
    gifsearch_hourly_limit: int = 10
    default_gif_duration: int = 20
    min_gif_duration: int = 1
    max_gif_duration: int = 30
    private_prompts: bool = True

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_allowed_user_ids(raw: str | None) -> set[int] | None:
    """Parse allowed Telegram user IDs from env."""
    if raw is None:
        return None
    cleaned = raw.strip()
    if cleaned in {"", "*"}:
        return None
    ids: set[int] = set()
    for chunk in cleaned.split(","):
        value = chunk.strip()
        if not value:
            continue
        if value.isdigit():
            ids.add(int(value))
    return ids or None
