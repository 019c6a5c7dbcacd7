from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

from src.domain.models import (
    EnrichmentLogEntry,
    EnrichmentStats,
    PlayerRecord,
    TransferRecord,
)

# Schnittstellen zwischen Pipeline, Services und Persistenz


@runtime_checkable
class PlayerEnricher(Protocol):
    """Liefert einen angereicherten Spieler oder wirft ``EnrichmentError``."""

    async def enrich(self, player_id: int, season: Optional[int] = None) -> PlayerRecord: ...


class EnrichmentStore(Protocol):
    """Database Service, wie ihn Pipeline und Cache konsumieren."""

    async def get_transfers_for_enrichment(
        self, season: int, after_id: Optional[str] = None, limit: Optional[int] = None
    ) -> list[TransferRecord]: ...

    async def get_transfer(self, transfer_id: str) -> Optional[TransferRecord]: ...

    async def update_transfer_enrichment(self, transfer_id: str, fields: dict) -> None: ...

    async def upsert_player(self, record: PlayerRecord) -> None: ...

    async def insert_enrichment_log(self, entry: EnrichmentLogEntry) -> None: ...

    async def get_latest_log_entries(self, season: int) -> dict[str, EnrichmentLogEntry]: ...

    async def get_failed_enrichments(
        self,
        *,
        season: Optional[int] = None,
        min_retry_count: int = 0,
        max_retry_count: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> list[EnrichmentLogEntry]: ...

    async def get_enrichment_stats(self, season: Optional[int] = None) -> EnrichmentStats: ...

    async def load_player_cache(
        self, now: datetime, limit: int
    ) -> list[tuple[PlayerRecord, datetime]]: ...

    async def save_player_cache(
        self, entries: list[tuple[PlayerRecord, datetime, datetime]]
    ) -> None: ...
