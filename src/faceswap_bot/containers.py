"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta

from supabase import create_client

from faceswap_bot.adapters.magic_hour_client import HttpxMagicHourClient
from faceswap_bot.adapters.media_client import HttpxMediaClient
from faceswap_bot.adapters.supabase_face_repository import SupabaseFaceRepository
from faceswap_bot.adapters.supabase_preferences_repository import (
    SupabasePreferencesRepository,
)
from faceswap_bot.adapters.supabase_rate_limit_repository import (
    SupabaseRateLimitRepository,
)
from faceswap_bot.adapters.supabase_swap_history_repository import (
    SupabaseSwapHistoryRepository,
)
from faceswap_bot.adapters.telegram_client import (
    HttpxTelegramClient,
    TelegramClient,
)
from faceswap_bot.adapters.tenor_client import HttpxTenorClient
from faceswap_bot.config import Settings
from faceswap_bot.services.cache import InMemoryCache
from faceswap_bot.services.clock import SystemClock
from faceswap_bot.services.commands import AccountCommands
from faceswap_bot.services.faces import FaceService
from faceswap_bot.services.history import HistoryService
from faceswap_bot.services.input_collector import UploadCollector
from faceswap_bot.services.orchestrator import OrchestratorConfig, SessionOrchestrator
from faceswap_bot.services.polling import RetryPolicy
from faceswap_bot.services.preferences import PreferencesService
from faceswap_bot.services.rate_limits import RateLimiter, default_rules
from faceswap_bot.services.session_store import InMemorySessionStore


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    telegram_client: TelegramClient
    rate_limiter: RateLimiter
    face_service: FaceService
    preferences_service: PreferencesService
    history_service: HistoryService
    account_commands: AccountCommands
    orchestrator: SessionOrchestrator
    close_resources: Callable[[], Awaitable[None]]


def orchestrator_config(settings: Settings) -> OrchestratorConfig:
    """Translate settings into orchestrator tunables."""
    return OrchestratorConfig(
        page_size=settings.search_page_size,
        search_limit=settings.search_result_limit,
        inline_upload_window_seconds=settings.inline_upload_window_seconds,
        face_save_window_seconds=settings.face_save_window_seconds,
        image_poll_policy=RetryPolicy(
            max_attempts=settings.image_poll_max_attempts,
            delay_seconds=settings.poll_interval_seconds,
        ),
        media_poll_policy=RetryPolicy(
            max_attempts=settings.media_poll_max_attempts,
            delay_seconds=settings.poll_interval_seconds,
        ),
        max_upload_bytes=settings.max_upload_bytes,
        dedup_ttl_seconds=settings.dedup_ttl_seconds,
        private_prompts=settings.private_prompts,
    )


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    clock = SystemClock()
    face_repository = SupabaseFaceRepository(supabase_client)
    preferences_repository = SupabasePreferencesRepository(supabase_client)
    history_repository = SupabaseSwapHistoryRepository(supabase_client)
    rate_limit_repository = SupabaseRateLimitRepository(supabase_client)

    rate_limiter = RateLimiter(
        repository=rate_limit_repository,
        rules=default_rules(
            faceswap_hourly=resolved_settings.faceswap_hourly_limit,
            faceswap_burst=resolved_settings.faceswap_burst_limit,
            faceswap_burst_window_seconds=resolved_settings.faceswap_burst_window_seconds,
            gifsearch_hourly=resolved_settings.gifsearch_hourly_limit,
        ),
        clock=clock,
    )
    face_service = FaceService(face_repository, max_faces=resolved_settings.max_saved_faces)
    preferences_service = PreferencesService(
        preferences_repository,
        default_max_duration=resolved_settings.default_gif_duration,
        min_duration=resolved_settings.min_gif_duration,
        max_duration=resolved_settings.max_gif_duration,
    )
    history_service = HistoryService(history_repository, clock=clock)

    telegram_client = HttpxTelegramClient.create(resolved_settings.telegram_bot_token)
    media_client = HttpxMediaClient.create(
        resolved_settings.telegram_bot_token, resolved_settings.max_upload_bytes
    )
    tenor_client = HttpxTenorClient.create(
        api_key=resolved_settings.tenor_api_key,
        client_key=resolved_settings.tenor_client_key,
        base_url=resolved_settings.tenor_base_url,
    )
    magic_hour_client = HttpxMagicHourClient.create(
        api_key=resolved_settings.magic_hour_api_key,
        base_url=resolved_settings.magic_hour_base_url,
    )

    session_store = InMemorySessionStore(
        clock=clock,
        search_ttl=timedelta(seconds=resolved_settings.search_session_ttl_seconds),
        swap_ttl=timedelta(seconds=resolved_settings.swap_session_ttl_seconds),
    )
    orchestrator = SessionOrchestrator(
        store=session_store,
        rate_limiter=rate_limiter,
        faces=face_service,
        preferences=preferences_service,
        history=history_service,
        swap_client=magic_hour_client,
        gif_client=tenor_client,
        telegram=telegram_client,
        media=media_client,
        collector=UploadCollector(),
        seen=InMemoryCache(clock=clock),
        clock=clock,
        config=orchestrator_config(resolved_settings),
    )
    account_commands = AccountCommands(
        faces=face_service,
        preferences=preferences_service,
        history=history_service,
        rate_limiter=rate_limiter,
        telegram_client=telegram_client,
    )

    async def close_resources() -> None:
        await orchestrator.shutdown()
        await telegram_client.close()
        await media_client.close()
        await tenor_client.close()
        await magic_hour_client.close()

    return AppContainer(
        settings=resolved_settings,
        telegram_client=telegram_client,
        rate_limiter=rate_limiter,
        face_service=face_service,
        preferences_service=preferences_service,
        history_service=history_service,
        account_commands=account_commands,
        orchestrator=orchestrator,
        close_resources=close_resources,
    )
