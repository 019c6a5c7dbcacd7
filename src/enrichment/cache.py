"""
Spieler-Cache

In-Process Cache für angereicherte Spieler. Wird zu Beginn eines Laufs aus
``player_cache`` geladen und am Ende gesammelt zurückgeschrieben. Ein Treffer
löst niemals einen API-Call aus.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from src.domain.contracts import EnrichmentStore, PlayerEnricher
from src.domain.models import CacheStats, PlayerRecord, utcnow
from src.monitoring.metrics import EnrichmentMetrics


@dataclass
class _CacheEntry:
    record: PlayerRecord
    cached_at: datetime


class PlayerCache:
    def __init__(
        self,
        ttl: timedelta = timedelta(days=7),
        max_entries: int = 10000,
        *,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[int, _CacheEntry] = {}
        # neu hinzugefügte Einträge bis zum nächsten persist(); überlebt Eviction
        self._pending: dict[int, _CacheEntry] = {}
        self.hits = 0
        self.misses = 0
        self.logger = logging.getLogger("enrichment.cache")

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, player_id: int) -> bool:
        entry = self._entries.get(player_id)
        return entry is not None and not self._is_expired(entry)

    def _is_expired(self, entry: _CacheEntry, now: Optional[datetime] = None) -> bool:
        return (now or self._clock()) - entry.cached_at > self.ttl

    def get(self, player_id: int) -> Optional[PlayerRecord]:
        entry = self._entries.get(player_id)
        if entry is None:
            self.misses += 1
            return None
        if self._is_expired(entry):
            del self._entries[player_id]
            self.misses += 1
            return None
        self.hits += 1
        return entry.record

    def set(
        self,
        record: PlayerRecord,
        *,
        cached_at: Optional[datetime] = None,
        pending: bool = True,
    ) -> None:
        if record.player_id not in self._entries and len(self._entries) >= self.max_entries:
            self._evict_oldest()
        entry = _CacheEntry(record=record, cached_at=cached_at or self._clock())
        self._entries[record.player_id] = entry
        if pending:
            self._pending[record.player_id] = entry

    def _evict_oldest(self) -> None:
        oldest = min(self._entries, key=lambda pid: self._entries[pid].cached_at)
        del self._entries[oldest]

    def clear_expired(self) -> int:
        now = self._clock()
        expired = [pid for pid, e in self._entries.items() if self._is_expired(e, now)]
        for pid in expired:
            del self._entries[pid]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()
        self._pending.clear()
        self.hits = 0
        self.misses = 0

    def counters(self) -> tuple[int, int]:
        return self.hits, self.misses

    def get_stats(self, since: tuple[int, int] = (0, 0)) -> CacheStats:
        """Stand des Caches; Treffer und Fehlschläge zählen ab dem ``since``-Snapshot."""
        now = self._clock()
        hits, misses = self.hits - since[0], self.misses - since[1]
        lookups = hits + misses
        return CacheStats(
            size=len(self._entries),
            hits=hits,
            misses=misses,
            hit_rate=round(hits / lookups, 3) if lookups else 0.0,
            expired=sum(1 for e in self._entries.values() if self._is_expired(e, now)),
            pending=len(self._pending),
        )

    async def load(self, store: EnrichmentStore, limit: int = 5000) -> int:
        """Lädt nicht abgelaufene Einträge; geladene Einträge gelten nicht als pending."""
        rows = await store.load_player_cache(self._clock(), limit)
        for record, cached_at in rows:
            self.set(record, cached_at=cached_at, pending=False)
        return len(rows)

    async def persist(self, store: EnrichmentStore) -> int:
        if not self._pending:
            return 0
        entries = [
            (e.record, e.cached_at, e.cached_at + self.ttl) for e in self._pending.values()
        ]
        await store.save_player_cache(entries)
        self._pending.clear()
        return len(entries)


class CachedPlayerEnrichmentService:
    """Cache-Fassade vor dem PlayerEnrichmentService."""

    def __init__(
        self,
        player_service: PlayerEnricher,
        store: EnrichmentStore,
        cache: Optional[PlayerCache] = None,
        *,
        load_limit: int = 5000,
        metrics: Optional[EnrichmentMetrics] = None,
    ):
        self.player_service = player_service
        self.store = store
        self.cache = cache or PlayerCache()
        self.load_limit = load_limit
        self.metrics = metrics
        self.logger = logging.getLogger("enrichment.cache")

    async def initialize_cache(self) -> int:
        """Lädt den Cache; ein Fehler startet den Lauf mit leerem Cache."""
        try:
            loaded = await self.cache.load(self.store, self.load_limit)
        except Exception:
            self.logger.warning("Failed to load player cache, starting empty", exc_info=True)
            return 0
        self.logger.info(f"Loaded {loaded} cached players")
        return loaded

    async def enrich(self, player_id: int, season: Optional[int] = None) -> PlayerRecord:
        cached = self.cache.get(player_id)
        if self.metrics is not None:
            self.metrics.record_cache_lookup(cached is not None)
        if cached is not None:
            return cached
        record = await self.player_service.enrich(player_id, season)
        self.cache.set(record)
        return record

    async def persist_cache(self) -> int:
        persisted = await self.cache.persist(self.store)
        if persisted:
            self.logger.info(f"Persisted {persisted} player cache entries")
        return persisted

    def get_cache_stats(self, since: tuple[int, int] = (0, 0)) -> CacheStats:
        return self.cache.get_stats(since)

    def clear_cache(self) -> None:
        self.cache.clear()

    def clear_expired_cache(self) -> int:
        removed = self.cache.clear_expired()
        if removed:
            self.logger.info(f"Removed {removed} expired player cache entries")
        return removed
