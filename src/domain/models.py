"""
Domain models for the transfer enrichment pipeline using Pydantic.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from src.common.term_mapper import UNKNOWN_NATIONALITY, map_nationality, map_position


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EnrichmentStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


# --- Transfers & Spieler ---

class TransferRecord(BaseModel):
    """Transfer-Zeile, wie sie die Pipeline liest (nur Enrichment-relevante Felder)."""

    id: str
    player_id: Optional[int] = None
    season: int
    position: Optional[str] = None
    age: Optional[int] = None
    nationality: Optional[str] = None
    player_photo_url: Optional[str] = None

    @property
    def is_enriched(self) -> bool:
        return bool(
            self.position
            and self.age is not None
            and self.nationality
            and self.nationality != UNKNOWN_NATIONALITY
        )


class PlayerRecord(BaseModel):
    player_id: int
    name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    age: Optional[int] = None
    birth_date: Optional[date] = None
    birth_place: Optional[str] = None
    birth_country: Optional[str] = None
    nationality: Optional[str] = None
    height: Optional[str] = None
    weight: Optional[str] = None
    injured: bool = False
    photo_url: Optional[str] = None
    position: Optional[str] = None

    @field_validator("birth_date", mode="before")
    @classmethod
    def _empty_date_is_none(cls, v: Any) -> Any:
        if v in ("", None):
            return None
        return v

    @classmethod
    def from_api_payload(cls, payload: dict[str, Any]) -> "PlayerRecord":
        """Map one ``response[]`` item of ``GET /players`` ({player, statistics})."""
        player = payload.get("player") or {}
        birth = player.get("birth") or {}
        statistics = payload.get("statistics") or []
        positions = [((s or {}).get("games") or {}).get("position") for s in statistics]
        return cls(
            player_id=player["id"],
            name=player.get("name"),
            first_name=player.get("firstname"),
            last_name=player.get("lastname"),
            age=player.get("age") or None,
            birth_date=birth.get("date"),
            birth_place=birth.get("place"),
            birth_country=birth.get("country"),
            nationality=player.get("nationality"),
            height=player.get("height"),
            weight=player.get("weight"),
            injured=bool(player.get("injured")),
            photo_url=player.get("photo"),
            position=map_position(positions),
        )

    def age_on(self, today: date) -> Optional[int]:
        """API-Alter oder aus dem Geburtsdatum berechnet."""
        if self.age:
            return self.age
        if self.birth_date is None:
            return None
        age = today.year - self.birth_date.year
        if (today.month, today.day) < (self.birth_date.month, self.birth_date.day):
            age -= 1
        return age

    def transfer_fields(self, today: Optional[date] = None) -> dict[str, Any]:
        """Abgeleitete Enrichment-Felder für die Transfer-Zeile."""
        today = today or date.today()
        return {
            "position": self.position,
            "age": self.age_on(today),
            "nationality": map_nationality(self.nationality),
            "player_photo_url": self.photo_url,
        }


# --- Enrichment Log ---

class EnrichmentLogEntry(BaseModel):
    transfer_id: str
    player_id: Optional[int] = None
    status: EnrichmentStatus
    error: Optional[str] = None
    retry_count: int = 0
    timestamp: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _error_iff_failed(self) -> "EnrichmentLogEntry":
        if self.status == EnrichmentStatus.FAILED and not self.error:
            raise ValueError("failed entries require an error message")
        if self.status == EnrichmentStatus.SUCCESS and self.error:
            raise ValueError("successful entries must not carry an error")
        return self

    @property
    def failed(self) -> bool:
        return self.status == EnrichmentStatus.FAILED


class FailedEnrichment(BaseModel):
    transfer_id: str
    player_id: Optional[int] = None
    error: str
    timestamp: datetime
    retry_count: int = 0

    @classmethod
    def from_log_entry(cls, entry: EnrichmentLogEntry) -> "FailedEnrichment":
        return cls(
            transfer_id=entry.transfer_id,
            player_id=entry.player_id,
            error=entry.error or "",
            timestamp=entry.timestamp,
            retry_count=entry.retry_count,
        )


# --- Fortschritt & Statistiken ---

class PipelineProgress(BaseModel):
    total: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    last_processed_id: Optional[str] = None
    start_time: datetime = Field(default_factory=utcnow)
    duration_seconds: Optional[float] = None
    errors: list[FailedEnrichment] = Field(default_factory=list)

    def finish(self, now: Optional[datetime] = None) -> "PipelineProgress":
        now = now or utcnow()
        self.duration_seconds = round((now - self.start_time).total_seconds(), 3)
        return self


class EnrichmentStats(BaseModel):
    total_transfers: int = 0
    enriched_transfers: int = 0
    enrichment_rate: float = 0.0
    failed_enrichments: int = 0

    @property
    def enrichment_rate_percent(self) -> float:
        return round(self.enrichment_rate * 100, 1)


class CacheStats(BaseModel):
    size: int = 0
    hits: int = 0
    misses: int = 0
    hit_rate: float = 0.0
    expired: int = 0
    pending: int = 0


class RateLimiterStats(BaseModel):
    requests_this_hour: int
    max_requests_per_hour: int
    hourly_utilization: float
    hour_progress: float
    delay_between_requests: float


class QuotaStats(BaseModel):
    calls_remaining: int
    daily_limit: int
    reset_time: datetime
    emergency_mode: bool
