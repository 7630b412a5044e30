"""Supabase repository for swap history."""

from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from faceswap_bot.domain.faces import SwapRecord
from faceswap_bot.services.history import SwapHistoryRepository


@dataclass
class SupabaseSwapHistoryRepository(SwapHistoryRepository):
    """Supabase implementation for swap history."""

    client: Client

    def add_record(self, record: SwapRecord) -> None:
        """Append a history row."""
        self.client.table("swap_history").insert(
            {
                "user_id": record.user_id,
                "swap_type": record.swap_type,
                "credits_used": record.credits_used,
                "created_at": record.created_at.isoformat(),
            }
        ).execute()

    def list_records(self) -> list[SwapRecord]:
        """Return all history rows."""
        response = (
            self.client.table("swap_history")
            .select("user_id, swap_type, credits_used, created_at")
            .execute()
        )
        records = []
        for row in response.data or []:
            created_raw = row.get("created_at")
            records.append(
                SwapRecord(
                    user_id=int(row["user_id"]),
                    swap_type=str(row.get("swap_type", "")),
                    credits_used=int(row.get("credits_used") or 0),
                    created_at=(
                        datetime.fromisoformat(created_raw)
                        if isinstance(created_raw, str) and created_raw
                        else datetime.now(tz=UTC)
                    ),
                )
            )
        return records
