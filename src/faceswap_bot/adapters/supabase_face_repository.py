"""Supabase implementation for saved faces."""

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from supabase import Client

from faceswap_bot.domain.faces import SavedFace
from faceswap_bot.services.faces import FaceRepository


@dataclass
class SupabaseFaceRepository(FaceRepository):
    """Supabase-backed repository for saved faces."""

    client: Client

    def list_faces(self, owner_id: int) -> list[SavedFace]:
        """Return the owner's faces, most used first."""
        response = (
            self.client.table("saved_faces")
            .select("*")
            .eq("user_id", owner_id)
            .order("usage_count", desc=True)
            .order("created_at", desc=True)
            .execute()
        )
        return [_parse_face(row) for row in response.data or []]

    def get_face(self, face_id: UUID) -> SavedFace | None:
        """Return a face by id, if present."""
        response = (
            self.client.table("saved_faces")
            .select("*")
            .eq("id", str(face_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_face(response.data[0])

    def count_faces(self, owner_id: int) -> int:
        """Return how many faces the owner has saved."""
        response = (
            self.client.table("saved_faces")
            .select("id")
            .eq("user_id", owner_id)
            .execute()
        )
        return len(response.data or [])

    def create_face(
        self,
        owner_id: int,
        name: str,
        storage_path: str,
        thumbnail_ref: str | None,
    ) -> SavedFace:
        """Create a saved face and return it."""
        response = (
            self.client.table("saved_faces")
            .insert(
                {
                    "user_id": owner_id,
                    "name": name,
                    "storage_path": storage_path,
                    "thumbnail_url": thumbnail_ref,
                    "usage_count": 0,
                    "created_at": datetime.now(tz=UTC).isoformat(),
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create saved face")
        return _parse_face(response.data[0])

    def delete_face(self, face_id: UUID, owner_id: int) -> bool:
        """Delete an owned face; return True when a row was removed."""
        response = (
            self.client.table("saved_faces")
            .delete()
            .eq("id", str(face_id))
            .eq("user_id", owner_id)
            .execute()
        )
        return bool(response.data)

    def increment_usage(self, face_id: UUID) -> None:
        """Bump a face's usage counter."""
        response = (
            self.client.table("saved_faces")
            .select("usage_count")
            .eq("id", str(face_id))
            .limit(1)
            .execute()
        )
        current = 0
        if response.data:
            current = int(response.data[0].get("usage_count", 0))
        self.client.table("saved_faces").update({"usage_count": current + 1}).eq(
            "id", str(face_id)
        ).execute()


def _parse_face(row: dict[str, object]) -> SavedFace:
    """Parse a saved face row into a domain model."""
    created_raw = row.get("created_at")
    created_at = (
        datetime.fromisoformat(created_raw)
        if isinstance(created_raw, str) and created_raw
        else datetime.now(tz=UTC)
    )
    return SavedFace(
        id=UUID(str(row["id"])),
        owner_id=int(row["user_id"]),
        name=str(row.get("name", "")),
        storage_path=str(row.get("storage_path", "")),
        thumbnail_ref=row.get("thumbnail_url"),
        usage_count=int(row.get("usage_count", 0)),
        created_at=created_at,
    )
