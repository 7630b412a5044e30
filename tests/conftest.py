"""Shared test fixtures."""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import pytest

from faceswap_bot.adapters.media_client import MediaClient
from faceswap_bot.adapters.telegram_client import TelegramClient
from faceswap_bot.config import Settings
from faceswap_bot.containers import AppContainer, orchestrator_config
from faceswap_bot.domain.faces import SavedFace, SwapRecord, UserPreferences
from faceswap_bot.domain.media import (
    DeliveredMedia,
    GifResult,
    GifSearchPage,
    JobState,
    JobStatus,
    MediaKind,
    MediaRef,
)
from faceswap_bot.services.cache import InMemoryCache
from faceswap_bot.services.commands import AccountCommands
from faceswap_bot.services.faces import FaceRepository, FaceService
from faceswap_bot.services.history import HistoryService, SwapHistoryRepository
from faceswap_bot.services.input_collector import UploadCollector
from faceswap_bot.services.orchestrator import SessionOrchestrator
from faceswap_bot.services.polling import FaceSwapClient, GifSearchClient
from faceswap_bot.services.preferences import PreferencesRepository, PreferencesService
from faceswap_bot.services.rate_limits import RateLimiter, RateLimitRepository, default_rules
from faceswap_bot.services.session_store import InMemorySessionStore

GIF_BYTES = b"GIF89a-fake-gif"
JPEG_BYTES = b"\xff\xd8\xff-fake-jpeg"


@dataclass
class FakeClock:
    """Deterministic clock; sleeping advances time instantly."""

    current: datetime = field(default_factory=lambda: datetime(2026, 1, 1, 12, tzinfo=UTC))
    slept: list[float] = field(default_factory=list)

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)

    async def sleep(self, seconds: float) -> None:
        self.slept.append(seconds)
        self.advance(seconds)
        await asyncio.sleep(0)


@dataclass
class InMemoryFaceRepository(FaceRepository):
    """In-memory saved face repository for tests."""

    faces: dict[UUID, SavedFace] = field(default_factory=dict)
    clock: FakeClock = field(default_factory=FakeClock)

    def add(self, owner_id: int, name: str, usage_count: int = 0) -> SavedFace:
        face = SavedFace(
            id=uuid4(),
            owner_id=owner_id,
            name=name,
            storage_path=f"api-assets/{name.lower()}.jpg",
            thumbnail_ref=None,
            usage_count=usage_count,
            created_at=self.clock.now(),
        )
        self.faces[face.id] = face
        return face

    def list_faces(self, owner_id: int) -> list[SavedFace]:
        owned = [face for face in self.faces.values() if face.owner_id == owner_id]
        return sorted(owned, key=lambda face: -face.usage_count)

    def get_face(self, face_id: UUID) -> SavedFace | None:
        return self.faces.get(face_id)

    def count_faces(self, owner_id: int) -> int:
        return len(self.list_faces(owner_id))

    def create_face(
        self,
        owner_id: int,
        name: str,
        storage_path: str,
        thumbnail_ref: str | None,
    ) -> SavedFace:
        face = SavedFace(
            id=uuid4(),
            owner_id=owner_id,
            name=name,
            storage_path=storage_path,
            thumbnail_ref=thumbnail_ref,
            usage_count=0,
            created_at=self.clock.now(),
        )
        self.faces[face.id] = face
        return face

    def delete_face(self, face_id: UUID, owner_id: int) -> bool:
        face = self.faces.get(face_id)
        if face is None or face.owner_id != owner_id:
            return False
        del self.faces[face_id]
        return True

    def increment_usage(self, face_id: UUID) -> None:
        face = self.faces[face_id]
        self.faces[face_id] = SavedFace(
            id=face.id,
            owner_id=face.owner_id,
            name=face.name,
            storage_path=face.storage_path,
            thumbnail_ref=face.thumbnail_ref,
            usage_count=face.usage_count + 1,
            created_at=face.created_at,
        )


@dataclass
class InMemoryPreferencesRepository(PreferencesRepository):
    """In-memory preferences repository for tests."""

    preferences: dict[int, UserPreferences] = field(default_factory=dict)

    def get_preferences(self, user_id: int) -> UserPreferences | None:
        return self.preferences.get(user_id)

    def save_preferences(self, preferences: UserPreferences) -> None:
        self.preferences[preferences.user_id] = preferences


@dataclass
class InMemorySwapHistoryRepository(SwapHistoryRepository):
    """In-memory swap history for tests."""

    records: list[SwapRecord] = field(default_factory=list)

    def add_record(self, record: SwapRecord) -> None:
        self.records.append(record)

    def list_records(self) -> list[SwapRecord]:
        return list(self.records)


@dataclass
class InMemoryRateLimitRepository(RateLimitRepository):
    """In-memory rate limit windows; can be told to fail reads."""

    windows: dict[tuple[int, str], list[datetime]] = field(default_factory=dict)
    fail_reads: bool = False

    def get_timestamps(self, user_id: int, action: str) -> list[datetime]:
        if self.fail_reads:
            raise RuntimeError("storage unavailable")
        return list(self.windows.get((user_id, action), []))

    def save_timestamps(
        self, user_id: int, action: str, timestamps: list[datetime]
    ) -> None:
        self.windows[(user_id, action)] = list(timestamps)

    def clear(self, user_id: int) -> None:
        for key in [key for key in self.windows if key[0] == user_id]:
            del self.windows[key]


@dataclass
class FakeTelegramClient(TelegramClient):
    """Fake Telegram client that records everything it is asked to send."""

    messages: list[tuple[int, str]] = field(default_factory=list)
    markups: list[dict | None] = field(default_factory=list)
    edits: list[tuple[int, int, str, dict | None]] = field(default_factory=list)
    callbacks: list[tuple[str, str | None, bool]] = field(default_factory=list)
    media: list[tuple[int, DeliveredMedia, str | None, int | None]] = field(
        default_factory=list
    )
    unreachable_chats: set[int] = field(default_factory=set)
    commands: list[dict[str, str]] | None = None
    menu_button: dict[str, object] | None = None
    next_message_id: int = 1000

    async def send_message(
        self, chat_id: int, text: str, reply_markup: dict | None = None
    ) -> int | None:
        if chat_id in self.unreachable_chats:
            raise RuntimeError("Forbidden: bot can't initiate conversation with a user")
        self.messages.append((chat_id, text))
        self.markups.append(reply_markup)
        self.next_message_id += 1
        return self.next_message_id

    async def edit_message_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        reply_markup: dict | None = None,
    ) -> None:
        self.edits.append((chat_id, message_id, text, reply_markup))

    async def answer_callback_query(
        self, callback_query_id: str, text: str | None = None, show_alert: bool = False
    ) -> None:
        self.callbacks.append((callback_query_id, text, show_alert))

    async def send_media(
        self,
        chat_id: int,
        media: DeliveredMedia,
        caption: str | None = None,
        reply_to_message_id: int | None = None,
    ) -> None:
        self.media.append((chat_id, media, caption, reply_to_message_id))

    async def set_my_commands(self, commands: list[dict[str, str]]) -> None:
        self.commands = commands

    async def set_chat_menu_button(
        self, menu_button: dict[str, object] | None = None
    ) -> None:
        self.menu_button = menu_button

    def all_texts(self) -> list[str]:
        return [text for _, text in self.messages] + [edit[2] for edit in self.edits]


@dataclass
class FakeGifSearchClient(GifSearchClient):
    """Fake GIF search returning a fixed result list."""

    results: list[GifResult] = field(default_factory=lambda: make_gif_results(20))
    queries: list[str] = field(default_factory=list)
    error: Exception | None = None

    async def search(
        self, query: str, limit: int, cursor: str | None = None
    ) -> GifSearchPage:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return GifSearchPage(results=self.results[:limit], next_cursor=None)


@dataclass
class FakeFaceSwapClient(FaceSwapClient):
    """Fake face swap provider with scripted job statuses."""

    statuses: list[JobStatus] = field(
        default_factory=lambda: [
            JobStatus(state=JobState.PENDING),
            JobStatus(
                state=JobState.COMPLETE,
                result_url="https://cdn.example.com/result.gif",
                credits_charged=5,
            ),
        ]
    )
    staged: list[tuple[bytes, str]] = field(default_factory=list)
    image_jobs: list[tuple[str, str]] = field(default_factory=list)
    media_jobs: list[tuple[str, str, int]] = field(default_factory=list)
    status_calls: int = 0

    async def stage_asset(self, content: bytes, extension: str) -> str:
        self.staged.append((content, extension))
        return f"api-assets/staged-{len(self.staged)}.{extension}"

    async def submit_image_job(self, source_path: str, target_path: str) -> str:
        self.image_jobs.append((source_path, target_path))
        return "job-image-1"

    async def submit_media_job(
        self, source_path: str, target_path: str, max_duration_seconds: int
    ) -> str:
        self.media_jobs.append((source_path, target_path, max_duration_seconds))
        return "job-media-1"

    async def get_job_status(self, job_id: str, kind: MediaKind) -> JobStatus:
        self.status_calls += 1
        if len(self.statuses) > 1:
            return self.statuses.pop(0)
        return self.statuses[0]


@dataclass
class FakeMediaClient(MediaClient):
    """Fake media downloads keyed by locator."""

    content: dict[str, bytes] = field(default_factory=dict)
    default: bytes = GIF_BYTES
    fetched: list[MediaRef] = field(default_factory=list)
    downloaded: list[str] = field(default_factory=list)

    async def fetch(self, ref: MediaRef) -> bytes:
        self.fetched.append(ref)
        return self.content.get(ref.locator, self.default)

    async def download(self, url: str) -> bytes:
        self.downloaded.append(url)
        return self.content.get(url, self.default)


def make_gif_results(count: int) -> list[GifResult]:
    return [
        GifResult(
            id=f"gif-{index}",
            title=f"Funny {index}",
            url=f"https://media.tenor.com/gif-{index}/full.gif",
            preview_url=f"https://media.tenor.com/gif-{index}/tiny.gif",
        )
        for index in range(count)
    ]


async def settle(rounds: int = 10) -> None:
    """Let spawned background tasks run up to their next real wait."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        telegram_bot_token="test-token",
        supabase_url="https://example.supabase.co",
        supabase_service_key="test.service.key",
        admin_token="admin-token",
        magic_hour_api_key="magic-key",
        tenor_api_key="tenor-key",
        environment="test",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def telegram_client() -> FakeTelegramClient:
    return FakeTelegramClient()


@pytest.fixture
def face_repository(clock: FakeClock) -> InMemoryFaceRepository:
    return InMemoryFaceRepository(clock=clock)


@pytest.fixture
def preferences_repository() -> InMemoryPreferencesRepository:
    return InMemoryPreferencesRepository()


@pytest.fixture
def history_repository() -> InMemorySwapHistoryRepository:
    return InMemorySwapHistoryRepository()


@pytest.fixture
def rate_limit_repository() -> InMemoryRateLimitRepository:
    return InMemoryRateLimitRepository()


@pytest.fixture
def gif_client() -> FakeGifSearchClient:
    return FakeGifSearchClient()


@pytest.fixture
def swap_client() -> FakeFaceSwapClient:
    return FakeFaceSwapClient()


@pytest.fixture
def media_client() -> FakeMediaClient:
    return FakeMediaClient()


@pytest.fixture
def rate_limiter(
    rate_limit_repository: InMemoryRateLimitRepository, clock: FakeClock
) -> RateLimiter:
    return RateLimiter(repository=rate_limit_repository, rules=default_rules(), clock=clock)


@pytest.fixture
def face_service(face_repository: InMemoryFaceRepository) -> FaceService:
    return FaceService(face_repository, max_faces=3)


@pytest.fixture
def preferences_service(
    preferences_repository: InMemoryPreferencesRepository,
) -> PreferencesService:
    return PreferencesService(preferences_repository)


@pytest.fixture
def history_service(
    history_repository: InMemorySwapHistoryRepository, clock: FakeClock
) -> HistoryService:
    return HistoryService(history_repository, clock=clock)


@pytest.fixture
def session_store(clock: FakeClock) -> InMemorySessionStore:
    return InMemorySessionStore(clock=clock)


@pytest.fixture
def orchestrator(  # noqa: PLR0913
    settings: Settings,
    session_store: InMemorySessionStore,
    rate_limiter: RateLimiter,
    face_service: FaceService,
    preferences_service: PreferencesService,
    history_service: HistoryService,
    swap_client: FakeFaceSwapClient,
    gif_client: FakeGifSearchClient,
    telegram_client: FakeTelegramClient,
    media_client: FakeMediaClient,
    clock: FakeClock,
) -> SessionOrchestrator:
    return SessionOrchestrator(
        store=session_store,
        rate_limiter=rate_limiter,
        faces=face_service,
        preferences=preferences_service,
        history=history_service,
        swap_client=swap_client,
        gif_client=gif_client,
        telegram=telegram_client,
        media=media_client,
        collector=UploadCollector(),
        seen=InMemoryCache(clock=clock),
        clock=clock,
        config=orchestrator_config(settings),
    )


@pytest.fixture
def container(  # noqa: PLR0913
    settings: Settings,
    telegram_client: FakeTelegramClient,
    rate_limiter: RateLimiter,
    face_service: FaceService,
    preferences_service: PreferencesService,
    history_service: HistoryService,
    orchestrator: SessionOrchestrator,
) -> AppContainer:
    account_commands = AccountCommands(
        faces=face_service,
        preferences=preferences_service,
        history=history_service,
        rate_limiter=rate_limiter,
        telegram_client=telegram_client,
    )

    async def close_resources() -> None:
        await orchestrator.shutdown()

    return AppContainer(
        settings=settings,
        telegram_client=telegram_client,
        rate_limiter=rate_limiter,
        face_service=face_service,
        preferences_service=preferences_service,
        history_service=history_service,
        account_commands=account_commands,
        orchestrator=orchestrator,
        close_resources=close_resources,
    )
