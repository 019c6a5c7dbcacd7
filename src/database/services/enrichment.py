"""
Database service for the enrichment pipeline: transfers, players, the
enrichment log and the persisted player cache.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime
from typing import Any, Optional

from src.common.term_mapper import UNKNOWN_NATIONALITY
from src.domain.models import (
    EnrichmentLogEntry,
    EnrichmentStats,
    PlayerRecord,
    TransferRecord,
)

from ..manager import DatabaseManager

_TRANSFER_COLUMNS = "id, player_id, season, position, age, nationality, player_photo_url"
_LOG_COLUMNS = "transfer_id, player_id, status, error, retry_count, timestamp"

_NOT_ENRICHED = (
    "(position IS NULL OR age IS NULL OR nationality IS NULL "
    f"OR nationality = '{UNKNOWN_NATIONALITY}')"
)

# Neuester Log-Eintrag pro Transfer bestimmt dessen Enrichment-Zustand
_LATEST_LOGS = (
    f"SELECT DISTINCT ON (l.transfer_id) {', '.join('l.' + c for c in _LOG_COLUMNS.split(', '))} "
    "FROM enrichment_logs l JOIN transfers t ON t.id = l.transfer_id "
    "{where} "
    "ORDER BY l.transfer_id, l.timestamp DESC"
)


class EnrichmentRepository:
    """asyncpg-basierter Database Service der Enrichment Pipeline"""

    def __init__(self, db: DatabaseManager):
        self.db = db

    # --- Transfers ---

    async def get_transfers_for_enrichment(
        self, season: int, after_id: Optional[str] = None, limit: Optional[int] = None
    ) -> list[TransferRecord]:
        """Nicht angereicherte Transfers einer Saison, aufsteigend nach ID."""
        rows = await self.db.execute_query(
            f"SELECT {_TRANSFER_COLUMNS} FROM transfers "
            f"WHERE season = $1 AND {_NOT_ENRICHED} "
            "AND ($2::text IS NULL OR id > $2::text) "
            "ORDER BY id LIMIT $3::int",
            season,
            after_id,
            limit,
        )
        return [TransferRecord(**row) for row in rows]

    async def get_transfer(self, transfer_id: str) -> Optional[TransferRecord]:
        rows = await self.db.query("transfers", {"id": transfer_id}, limit=1)
        if not rows:
            return None
        return TransferRecord(**{k: rows[0].get(k) for k in _TRANSFER_COLUMNS.split(", ")})

    async def update_transfer_enrichment(self, transfer_id: str, fields: dict[str, Any]) -> None:
        await self.db.execute(
            "UPDATE transfers SET position = $2, age = $3, nationality = $4, "
            "player_photo_url = $5, updated_at = NOW() WHERE id = $1",
            transfer_id,
            fields.get("position"),
            fields.get("age"),
            fields.get("nationality"),
            fields.get("player_photo_url"),
        )

    # --- Spieler ---

    async def upsert_player(self, record: PlayerRecord) -> None:
        await self.db.upsert("players", record.model_dump(), ["player_id"])

    # --- Enrichment Log ---

    async def insert_enrichment_log(self, entry: EnrichmentLogEntry) -> None:
        await self.db.execute(
            f"INSERT INTO enrichment_logs (id, {_LOG_COLUMNS}) VALUES ($1, $2, $3, $4, $5, $6, $7)",
            uuid.uuid4(),
            entry.transfer_id,
            entry.player_id,
            entry.status.value,
            entry.error,
            entry.retry_count,
            entry.timestamp,
        )

    async def get_latest_log_entries(self, season: int) -> dict[str, EnrichmentLogEntry]:
        rows = await self.db.execute_query(
            _LATEST_LOGS.format(where="WHERE t.season = $1"), season
        )
        return {row["transfer_id"]: EnrichmentLogEntry(**row) for row in rows}

    async def get_failed_enrichments(
        self,
        *,
        season: Optional[int] = None,
        min_retry_count: int = 0,
        max_retry_count: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> list[EnrichmentLogEntry]:
        """Transfers, deren neuester Log-Eintrag fehlgeschlagen ist, neueste zuerst.

        ``max_retry_count`` ist exklusiv: Einträge mit ``retry_count >= max``
        gelten als ausgeschöpft.
        """
        args: list[Any] = []
        where = ""
        if season is not None:
            args.append(season)
            where = f"WHERE t.season = ${len(args)}"
        args.append(min_retry_count)
        sql = (
            f"WITH latest AS ({_LATEST_LOGS.format(where=where)}) "
            f"SELECT {_LOG_COLUMNS} FROM latest "
            f"WHERE status = 'failed' AND retry_count >= ${len(args)}"
        )
        if max_retry_count is not None:
            args.append(max_retry_count)
            sql += f" AND retry_count < ${len(args)}"
        sql += " ORDER BY timestamp DESC"
        if limit is not None:
            args.append(limit)
            sql += f" LIMIT ${len(args)}"
        rows = await self.db.execute_query(sql, *args)
        return [EnrichmentLogEntry(**row) for row in rows]

    async def get_enrichment_stats(self, season: Optional[int] = None) -> EnrichmentStats:
        where, args = ("WHERE season = $1", [season]) if season is not None else ("", [])
        counts = await self.db.execute_fetchrow(
            "SELECT COUNT(*) AS total, "
            f"COUNT(*) FILTER (WHERE NOT {_NOT_ENRICHED}) AS enriched "
            f"FROM transfers {where}",
            *args,
        ) or {"total": 0, "enriched": 0}
        failed = await self.get_failed_enrichments(season=season)
        total = counts["total"] or 0
        enriched = counts["enriched"] or 0
        return EnrichmentStats(
            total_transfers=total,
            enriched_transfers=enriched,
            enrichment_rate=(enriched / total) if total else 0.0,
            failed_enrichments=len(failed),
        )

    # --- Spieler-Cache ---

    async def load_player_cache(
        self, now: datetime, limit: int
    ) -> list[tuple[PlayerRecord, datetime]]:
        rows = await self.db.execute_query(
            "SELECT data, cached_at FROM player_cache WHERE expires_at > $1 "
            "ORDER BY cached_at DESC LIMIT $2",
            now,
            limit,
        )
        entries = []
        for row in rows:
            data = row["data"]
            if isinstance(data, str):
                data = json.loads(data)
            entries.append((PlayerRecord.model_validate(data), row["cached_at"]))
        return entries

    async def save_player_cache(
        self, entries: list[tuple[PlayerRecord, datetime, datetime]]
    ) -> None:
        rows = [
            {
                "player_id": record.player_id,
                "data": record.model_dump_json(),
                "cached_at": cached_at,
                "expires_at": expires_at,
            }
            for record, cached_at, expires_at in entries
        ]
        await self.db.bulk_upsert("player_cache", rows, ["player_id"])
