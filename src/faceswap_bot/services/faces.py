"""Saved face management."""

import logging
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from faceswap_bot.domain.errors import FaceLimitError, OwnershipError, UserInputError
from faceswap_bot.domain.faces import SavedFace

logger = logging.getLogger(__name__)

MAX_FACE_NAME_LENGTH = 50


class FaceRepository(Protocol):
    """Persistence interface for saved faces."""

    def list_faces(self, owner_id: int) -> list[SavedFace]:
        """Return the owner's faces, most used first."""

    def get_face(self, face_id: UUID) -> SavedFace | None:
        """Return a face by id, if present."""

    def count_faces(self, owner_id: int) -> int:
        """Return how many faces the owner has saved."""

    def create_face(
        self,
        owner_id: int,
        name: str,
        storage_path: str,
        thumbnail_ref: str | None,
    ) -> SavedFace:
        """Create a saved face and return it."""

    def delete_face(self, face_id: UUID, owner_id: int) -> bool:
        """Delete an owned face; return True when a row was removed."""

    def increment_usage(self, face_id: UUID) -> None:
        """Bump a face's usage counter."""


@dataclass
class FaceService:
    """Rules around saving, using and deleting faces."""

    repository: FaceRepository
    max_faces: int = 3

    def list_faces(self, owner_id: int) -> list[SavedFace]:
        """Return the owner's saved faces."""
        return self.repository.list_faces(owner_id)

    def has_free_slot(self, owner_id: int) -> bool:
        """Return True when the owner may save another face."""
        return self.repository.count_faces(owner_id) < self.max_faces

    def ensure_slot_available(self, owner_id: int) -> None:
        """Raise FaceLimitError when the owner is at the limit."""
        if not self.has_free_slot(owner_id):
            raise FaceLimitError(self.max_faces)

    def save_face(
        self,
        owner_id: int,
        name: str,
        storage_path: str,
        thumbnail_ref: str | None = None,
    ) -> SavedFace:
        """Save a face after checking the per-user limit."""
        cleaned = name.strip()[:MAX_FACE_NAME_LENGTH]
        if not cleaned:
            raise UserInputError("Please give your face a name.")
        self.ensure_slot_available(owner_id)
        face = self.repository.create_face(
            owner_id=owner_id,
            name=cleaned,
            storage_path=storage_path,
            thumbnail_ref=thumbnail_ref,
        )
        logger.info("Saved face", extra={"owner_id": owner_id, "face_id": str(face.id)})
        return face

    def get_owned_face(self, face_id: UUID, owner_id: int) -> SavedFace:
        """Return a face that exists and belongs to the owner."""
        face = self.repository.get_face(face_id)
        if face is None:
            raise UserInputError("That face no longer exists. Pick another one.")
        if face.owner_id != owner_id:
            raise OwnershipError("That face belongs to someone else.")
        return face

    def delete_face(self, face_id: UUID, owner_id: int) -> SavedFace:
        """Delete an owned face and return what was deleted."""
        face = self.get_owned_face(face_id, owner_id)
        if not self.repository.delete_face(face_id, owner_id):
            raise UserInputError("That face no longer exists.")
        logger.info("Deleted face", extra={"owner_id": owner_id, "face_id": str(face_id)})
        return face

    def mark_used(self, face_id: UUID) -> None:
        """Record one use of a face."""
        self.repository.increment_usage(face_id)


def parse_face_id(raw: str) -> UUID:
    """Parse a face id typed by a user."""
    try:
        return UUID(raw.strip())
    except ValueError as exc:
        raise UserInputError(
            "That doesn't look like a face ID. Use /myfaces to see yours."
        ) from exc
