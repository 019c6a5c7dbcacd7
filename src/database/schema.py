"""
Database Schema
SQLAlchemy Models für Transfers, Spieler, Enrichment-Log und Spieler-Cache
"""

import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class Transfer(Base):
    """Transfer-Zeile; die Pipeline schreibt nur die Enrichment-Spalten."""

    __tablename__ = "transfers"

    id = Column(String(64), primary_key=True)
    player_id = Column(Integer, index=True)
    player_name = Column(String(200))
    season = Column(Integer, nullable=False, index=True)
    from_team = Column(String(200))
    to_team = Column(String(200))
    transfer_date = Column(Date)
    transfer_type = Column(String(50))

    # Enrichment-Felder
    position = Column(String(20))
    age = Column(Integer)
    nationality = Column(String(3))
    player_photo_url = Column(Text)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Player(Base):
    __tablename__ = "players"

    player_id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(200))
    first_name = Column(String(100))
    last_name = Column(String(100))
    age = Column(Integer)
    birth_date = Column(Date)
    birth_place = Column(String(200))
    birth_country = Column(String(100))
    nationality = Column(String(100))
    height = Column(String(20))
    weight = Column(String(20))
    injured = Column(Boolean, default=False)
    photo_url = Column(Text)
    position = Column(String(20))
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class EnrichmentLog(Base):
    """Append-only Audit-Trail, eine Zeile pro Enrichment-Versuch."""

    __tablename__ = "enrichment_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    transfer_id = Column(String(64), nullable=False)
    player_id = Column(Integer)
    status = Column(String(10), nullable=False)  # success | failed
    error = Column(Text)
    retry_count = Column(Integer, nullable=False, default=0)
    timestamp = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (Index("ix_enrichment_logs_transfer_ts", "transfer_id", "timestamp"),)


class PlayerCacheEntry(Base):
    __tablename__ = "player_cache"

    player_id = Column(Integer, primary_key=True, autoincrement=False)
    data = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)
    cached_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
