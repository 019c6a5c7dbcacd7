"""
Database Module
SQLAlchemy Schema und Database Manager
"""

from .manager import DatabaseManager
from .schema import Base, EnrichmentLog, Player, PlayerCacheEntry, Transfer

__all__ = [
    "DatabaseManager",
    "Base",
    "Transfer",
    "Player",
    "EnrichmentLog",
    "PlayerCacheEntry",
]
