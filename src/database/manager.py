"""
Database Manager
AsyncPG Pool für Pipeline-Zugriffe, SQLAlchemy Engine für Schema-Verwaltung
"""

import logging
import re
from contextlib import asynccontextmanager
from typing import Any, Optional, Sequence

import asyncpg
from sqlalchemy import create_engine, text
from sqlalchemy.pool import QueuePool

from src.core.config import Settings, settings as default_settings
from src.database.schema import Base

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _ident(name: str) -> str:
    """Validiert Tabellen-/Spaltennamen, die in SQL interpoliert werden."""
    if not _IDENTIFIER_RE.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name


class DatabaseManager:
    """Datenbankverwaltung mit AsyncPG (Laufzeit) und SQLAlchemy (DDL)"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self.engine = None
        self.pool = None  # AsyncPG Pool
        self.logger = logging.getLogger(__name__)

    def initialize_sync(self):
        """Initialisiert die synchrone SQLAlchemy Engine (psycopg2)"""
        database_url = self.settings.database_url
        if "+asyncpg" in database_url:
            database_url = database_url.replace("+asyncpg", "+psycopg2")
        try:
            self.engine = create_engine(database_url, poolclass=QueuePool, pool_size=2)
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            self.logger.info("Sync database engine initialized (SQLAlchemy)")
        except Exception as e:
            self.logger.error(f"Failed to initialize sync database: {e}")
            self.engine = None
            raise

    async def initialize_async(self):
        """Initialisiert asynchronen asyncpg Pool auf Basis von DATABASE_URL"""
        dsn = self.settings.database_url.replace("+asyncpg", "")
        try:
            self.pool = await asyncpg.create_pool(
                dsn=dsn,
                min_size=self.settings.database_pool_min_size,
                max_size=self.settings.database_pool_max_size,
                command_timeout=self.settings.database_command_timeout,
            )
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            self.logger.info("Async database pool initialized (asyncpg)")
        except Exception as e:
            self.logger.error(f"Failed to initialize async database pool: {e}")
            self.pool = None
            raise

    @asynccontextmanager
    async def get_async_connection(self):
        """Context Manager für AsyncPG Verbindungen"""
        if not self.pool:
            raise RuntimeError("Async database pool not initialized")

        async with self.pool.acquire() as connection:
            yield connection

    async def execute_query(self, query: str, *args) -> list[dict]:
        """Führt eine Abfrage aus und gibt Ergebnisse zurück"""
        async with self.get_async_connection() as conn:
            result = await conn.fetch(query, *args)
            return [dict(row) for row in result]

    async def execute_fetchrow(self, query: str, *args) -> Optional[dict]:
        async with self.get_async_connection() as conn:
            row = await conn.fetchrow(query, *args)
            return dict(row) if row is not None else None

    async def execute(self, query: str, *args) -> str:
        async with self.get_async_connection() as conn:
            return await conn.execute(query, *args)

    async def execute_many(self, query: str, data: Sequence[Sequence[Any]]):
        """Führt mehrere Operationen in einer Transaktion aus"""
        async with self.get_async_connection() as conn:
            async with conn.transaction():
                await conn.executemany(query, data)

    @staticmethod
    def _upsert_sql(table: str, columns: list[str], conflict_key: Sequence[str]) -> str:
        placeholders = ", ".join(f"${i + 1}" for i in range(len(columns)))
        keys = [_ident(k) for k in conflict_key]
        updates = [c for c in columns if c not in keys]
        if updates:
            action = "DO UPDATE SET " + ", ".join(f"{c} = EXCLUDED.{c}" for c in updates)
        else:
            action = "DO NOTHING"
        return (
            f"INSERT INTO {_ident(table)} ({', '.join(columns)}) "
            f"VALUES ({placeholders}) "
            f"ON CONFLICT ({', '.join(keys)}) {action}"
        )

    async def upsert(self, table: str, record: dict[str, Any], conflict_key: Sequence[str]):
        """Insert oder Update einer Zeile anhand des Konfliktschlüssels"""
        columns = [_ident(c) for c in record]
        await self.execute(self._upsert_sql(table, columns, conflict_key), *record.values())

    async def bulk_upsert(
        self, table: str, data: list[dict[str, Any]], conflict_key: Sequence[str]
    ) -> int:
        """Bulk Upsert; alle Zeilen müssen dieselben Spalten haben"""
        if not data:
            return 0
        columns = [_ident(c) for c in data[0]]
        values = [[row[c] for c in columns] for row in data]
        await self.execute_many(self._upsert_sql(table, columns, conflict_key), values)
        self.logger.info(f"Bulk upserted {len(data)} records into {table}")
        return len(data)

    async def query(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
        *,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        """Einfache Gleichheits-Filter Abfrage (``col = value`` bzw. ``IS NULL``)"""
        clauses, args = [], []
        for column, value in (filters or {}).items():
            if value is None:
                clauses.append(f"{_ident(column)} IS NULL")
            else:
                args.append(value)
                clauses.append(f"{_ident(column)} = ${len(args)}")
        sql = f"SELECT * FROM {_ident(table)}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        if order_by:
            sql += f" ORDER BY {_ident(order_by)}"
        if limit is not None:
            args.append(limit)
            sql += f" LIMIT ${len(args)}"
        return await self.execute_query(sql, *args)

    def create_tables(self):
        """Erstellt alle Tabellen"""
        if not self.engine:
            raise RuntimeError("Sync database not initialized")

        Base.metadata.create_all(bind=self.engine)
        self.logger.info("Database tables created")

    async def health_check(self) -> dict[str, Any]:
        """Führt einen Gesundheitscheck der Datenbank durch"""
        try:
            async with self.get_async_connection() as conn:
                result = await conn.fetchval("SELECT 1")
            return {
                "async_pool": "healthy" if result == 1 else "unhealthy",
                "pool_size": self.pool.get_size() if self.pool else 0,
                "pool_idle": self.pool.get_idle_size() if self.pool else 0,
            }
        except (RuntimeError, asyncpg.PostgresError, OSError) as e:
            self.logger.error(f"Database health check failed: {e}")
            return {"async_pool": "unhealthy", "error": str(e)}

    async def close(self):
        """Schließt alle Datenbankverbindungen"""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("Async database pool closed")

        if self.engine:
            self.engine.dispose()
            self.engine = None
