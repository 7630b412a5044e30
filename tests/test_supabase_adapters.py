"""Tests for Supabase adapter implementations."""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from uuid import uuid4

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
from faceswap_bot.domain.faces import SwapRecord, UserPreferences


@dataclass
class FakeResponse:
    data: list[dict[str, object]] | None


@dataclass
class FakeTable:
    name: str
    response_queue: dict[str, list[list[dict[str, object]]]] = field(
        default_factory=lambda: {
            "select": [],
            "insert": [],
            "update": [],
            "upsert": [],
            "delete": [],
        }
    )
    payloads: list[tuple[str, object]] = field(default_factory=list)
    filters: list[tuple[str, object]] = field(default_factory=list)
    on_conflict: str | None = None

    def queue(self, action: str, data: list[dict[str, object]]) -> None:
        self.response_queue[action].append(data)

    def select(self, *_args) -> "FakeTable":
        self._action = "select"
        return self

    def insert(self, payload) -> "FakeTable":  # type: ignore[no-untyped-def]
        self._action = "insert"
        self.payloads.append(("insert", payload))
        return self

    def update(self, payload) -> "FakeTable":  # type: ignore[no-untyped-def]
        self._action = "update"
        self.payloads.append(("update", payload))
        return self

    def upsert(self, payload, on_conflict: str = "") -> "FakeTable":  # type: ignore[no-untyped-def]
        self._action = "upsert"
        self.payloads.append(("upsert", payload))
        self.on_conflict = on_conflict
        return self

    def delete(self) -> "FakeTable":
        self._action = "delete"
        self.payloads.append(("delete", None))
        return self

    def eq(self, column: str, value) -> "FakeTable":  # type: ignore[no-untyped-def]
        self.filters.append((column, value))
        return self

    def limit(self, _count: int) -> "FakeTable":
        return self

    def order(self, _column: str, desc: bool = False) -> "FakeTable":
        return self

    def execute(self) -> FakeResponse:
        action = getattr(self, "_action", "select")
        queue = self.response_queue.get(action, [])
        data = queue.pop(0) if queue else []
        return FakeResponse(data=data)


@dataclass
class FakeSupabaseClient:
    tables: dict[str, FakeTable] = field(default_factory=dict)

    def table(self, name: str) -> FakeTable:
        if name not in self.tables:
            self.tables[name] = FakeTable(name=name)
        return self.tables[name]


def _face_row(face_id: str, usage_count: int = 0) -> dict[str, object]:
    return {
        "id": face_id,
        "user_id": 42,
        "name": "Me",
        "storage_path": "api-assets/me.jpg",
        "thumbnail_url": None,
        "usage_count": usage_count,
        "created_at": "2026-01-01T12:00:00+00:00",
    }


def test_supabase_face_repository_create_and_fetch() -> None:
    client = FakeSupabaseClient()
    table = client.table("saved_faces")
    face_id = str(uuid4())
    table.queue("insert", [_face_row(face_id)])
    table.queue("select", [_face_row(face_id, usage_count=2)])

    repository = SupabaseFaceRepository(client)
    created = repository.create_face(42, "Me", "api-assets/me.jpg", None)
    fetched = repository.get_face(created.id)

    assert str(created.id) == face_id
    assert created.created_at == datetime(2026, 1, 1, 12, tzinfo=UTC)
    assert fetched is not None
    assert fetched.usage_count == 2
    action, payload = table.payloads[0]
    assert action == "insert"
    assert isinstance(payload, dict)
    assert payload["user_id"] == 42
    assert payload["storage_path"] == "api-assets/me.jpg"


def test_supabase_face_repository_list_and_count() -> None:
    client = FakeSupabaseClient()
    table = client.table("saved_faces")
    table.queue("select", [_face_row(str(uuid4())), _face_row(str(uuid4()))])
    table.queue("select", [{"id": "a"}, {"id": "b"}, {"id": "c"}])

    repository = SupabaseFaceRepository(client)

    assert len(repository.list_faces(42)) == 2
    assert repository.count_faces(42) == 3
    assert repository.get_face(uuid4()) is None


def test_supabase_face_repository_delete_is_scoped_to_owner() -> None:
    client = FakeSupabaseClient()
    table = client.table("saved_faces")
    face_id = uuid4()
    table.queue("delete", [_face_row(str(face_id))])

    repository = SupabaseFaceRepository(client)

    assert repository.delete_face(face_id, 42)
    assert table.filters == [("id", str(face_id)), ("user_id", 42)]
    assert not repository.delete_face(face_id, 42)


def test_supabase_face_repository_increment_usage() -> None:
    client = FakeSupabaseClient()
    table = client.table("saved_faces")
    table.queue("select", [{"usage_count": 4}])

    SupabaseFaceRepository(client).increment_usage(uuid4())

    assert table.payloads == [("update", {"usage_count": 5})]


def test_supabase_preferences_repository() -> None:
    client = FakeSupabaseClient()
    table = client.table("user_preferences")
    face_id = uuid4()
    table.queue(
        "select",
        [
            {
                "user_id": 42,
                "default_face_id": str(face_id),
                "auto_save_faces": True,
                "max_gif_duration": 12,
            }
        ],
    )

    repository = SupabasePreferencesRepository(client)
    preferences = repository.get_preferences(42)

    assert preferences == UserPreferences(
        user_id=42, default_face_id=face_id, auto_save_faces=True, max_gif_duration=12
    )
    assert repository.get_preferences(43) is None

    repository.save_preferences(UserPreferences(user_id=42))
    action, payload = table.payloads[-1]
    assert action == "upsert"
    assert isinstance(payload, dict)
    assert payload["default_face_id"] is None
    assert payload["max_gif_duration"] == 20
    assert table.on_conflict == "user_id"


def test_supabase_swap_history_repository() -> None:
    client = FakeSupabaseClient()
    table = client.table("swap_history")
    created_at = datetime(2026, 1, 1, 12, tzinfo=UTC)
    table.queue(
        "select",
        [
            {
                "user_id": 7,
                "swap_type": "gif",
                "credits_used": None,
                "created_at": created_at.isoformat(),
            }
        ],
    )

    repository = SupabaseSwapHistoryRepository(client)
    repository.add_record(SwapRecord(7, "image", 3, created_at))
    records = repository.list_records()

    assert table.payloads[0] == (
        "insert",
        {
            "user_id": 7,
            "swap_type": "image",
            "credits_used": 3,
            "created_at": "2026-01-01T12:00:00+00:00",
        },
    )
    assert records == [SwapRecord(7, "gif", 0, created_at)]


def test_supabase_rate_limit_repository() -> None:
    client = FakeSupabaseClient()
    table = client.table("rate_limits")
    now = datetime(2026, 1, 1, 12, tzinfo=UTC)
    earlier = now - timedelta(minutes=5)
    table.queue("select", [{"timestamps": [earlier.isoformat(), now.isoformat()]}])

    repository = SupabaseRateLimitRepository(client)

    assert repository.get_timestamps(42, "faceswap") == [earlier, now]
    assert table.filters == [("user_id", 42), ("action_type", "faceswap")]
    assert repository.get_timestamps(42, "gifsearch") == []

    repository.save_timestamps(42, "faceswap", [now])
    action, payload = table.payloads[0]
    assert action == "upsert"
    assert isinstance(payload, dict)
    assert payload["timestamps"] == [now.isoformat()]
    assert table.on_conflict == "user_id,action_type"

    repository.clear(42)
    assert table.payloads[-1] == ("delete", None)
