"""
Fehler-Taxonomie der Enrichment Pipeline.

Per-Record Fehler erben von ``EnrichmentError`` und werden von der Pipeline
protokolliert, ohne den Lauf abzubrechen. Alles andere (z.B. Datenbank nicht
erreichbar) gilt als Run-Level Fehler.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from src.core.config import ConfigurationError

QUOTA_EXCEEDED_MESSAGE = "Rate limit exceeded - using cached data"


class FetchOutcome(str, Enum):
    """Klassifikation einer einzelnen HTTP-Antwort im API Client."""

    OK = "ok"
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"

    @classmethod
    def from_status(cls, status: int) -> "FetchOutcome":
        if 200 <= status < 300:
            return cls.OK
        if status == 429:
            return cls.RATE_LIMITED
        return cls.FAILED


class ApiRequestError(Exception):
    """Terminaler HTTP- oder Netzwerkfehler nach Ausschöpfen der Retries."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class EnrichmentError(Exception):
    """Enrichment eines einzelnen Spielers ist fehlgeschlagen."""

    def __init__(self, message: str, player_id: Optional[int] = None):
        super().__init__(message)
        self.player_id = player_id


class PlayerNotFoundError(EnrichmentError):
    def __init__(self, player_id: int):
        super().__init__(f"No player data found for ID: {player_id}", player_id=player_id)


class QuotaExceededError(EnrichmentError):
    def __init__(self, player_id: Optional[int] = None):
        super().__init__(QUOTA_EXCEEDED_MESSAGE, player_id=player_id)


__all__ = [
    "ApiRequestError",
    "ConfigurationError",
    "EnrichmentError",
    "FetchOutcome",
    "PlayerNotFoundError",
    "QUOTA_EXCEEDED_MESSAGE",
    "QuotaExceededError",
]
