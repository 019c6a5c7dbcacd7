"""
Player Enrichment Service
Holt Spielerdaten über den API-Football Client und mappt sie auf PlayerRecord
"""

import logging
from typing import Optional

from pydantic import ValidationError

from src.data_collection.collectors.api_football import ApiFootballClient
from src.domain.errors import (
    ApiRequestError,
    EnrichmentError,
    PlayerNotFoundError,
    QuotaExceededError,
)
from src.domain.models import PlayerRecord


class PlayerEnrichmentService:
    """Enrichment eines einzelnen Spielers.

    Rate Limit und Tageskontingent setzt der Client pro HTTP-Versuch durch.
    """

    def __init__(self, client: ApiFootballClient):
        self.client = client
        self.logger = logging.getLogger("enrichment.player_service")

    async def fetch_player_details(self, player_id: int, season: Optional[int] = None) -> dict:
        """Rohes ``{player, statistics}`` Objekt; wirft EnrichmentError bei Fehlern."""
        try:
            payload = await self.client.get_player(player_id, season)
        except QuotaExceededError as e:
            if e.player_id is None:
                e.player_id = player_id
            raise
        except ApiRequestError as e:
            raise EnrichmentError(str(e), player_id=player_id) from e

        if not payload:
            raise PlayerNotFoundError(player_id)
        return payload

    async def enrich(self, player_id: int, season: Optional[int] = None) -> PlayerRecord:
        payload = await self.fetch_player_details(player_id, season)
        try:
            record = PlayerRecord.from_api_payload(payload)
        except (AttributeError, KeyError, TypeError, ValidationError) as e:
            raise EnrichmentError(
                f"Malformed player payload for ID {player_id}: {e}", player_id=player_id
            ) from e
        self.logger.debug(f"Enriched player {player_id} ({record.name})")
        return record
