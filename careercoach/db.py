from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from datetime import datetime, timezone
from typing import Any

try:
    import psycopg2  # type: ignore
    from psycopg2.extras import RealDictCursor  # type: ignore
except Exception:  # pragma: no cover - optional dependency at runtime
    psycopg2 = None
    RealDictCursor = None

from .config import Settings, normalize_database_url

logger = logging.getLogger("careercoach.db")

DB_ERRORS: tuple[type[Exception], ...] = (sqlite3.Error,)
if psycopg2 is not None:
    DB_ERRORS = DB_ERRORS + (psycopg2.Error,)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def now_utc_iso() -> str:
    return now_utc().isoformat()


def dump_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), sort_keys=True)


def load_json(raw: Any, default: Any) -> Any:
    if raw in (None, ""):
        return default
    if isinstance(raw, (list, dict)):
        return raw
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Discarding unreadable JSON column value.")
        return default


class DBCursor:
    def __init__(self, raw_cursor: Any, backend: str):
        self._raw_cursor = raw_cursor
        self._backend = backend

    def execute(self, query: str, params: Any = None) -> "DBCursor":
        converted_query, converted_params = adapt_query_for_backend(self._backend, query, params)
        if converted_params is None:
            self._raw_cursor.execute(converted_query)
        else:
            self._raw_cursor.execute(converted_query, converted_params)
        return self

    def fetchone(self) -> Any:
        return self._raw_cursor.fetchone()

    def fetchall(self) -> list[Any]:
        return self._raw_cursor.fetchall()

    @property
    def rowcount(self) -> int:
        return int(getattr(self._raw_cursor, "rowcount", 0))

    @property
    def lastrowid(self) -> Any:
        return getattr(self._raw_cursor, "lastrowid", None)


class DBConnection:
    def __init__(self, raw_connection: Any, backend: str):
        self._raw_connection = raw_connection
        self.backend = backend

    def cursor(self) -> DBCursor:
        if self.backend == "postgres":
            if RealDictCursor is None:
                raise RuntimeError("RealDictCursor unavailable while DATABASE_URL is configured.")
            return DBCursor(self._raw_connection.cursor(cursor_factory=RealDictCursor), self.backend)
        return DBCursor(self._raw_connection.cursor(), self.backend)

    def execute(self, query: str, params: Any = None) -> DBCursor:
        cursor = self.cursor()
        cursor.execute(query, params)
        return cursor

    def commit(self) -> None:
        self._raw_connection.commit()

    def rollback(self) -> None:
        self._raw_connection.rollback()

    def close(self) -> None:
        self._raw_connection.close()

    def __enter__(self) -> "DBConnection":
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()


def adapt_query_for_backend(backend: str, query: str, params: Any = None) -> tuple[str, Any]:
    if backend != "postgres" or params is None:
        return query, params
    converted_query = query.replace("?", "%s")
    if isinstance(params, list):
        return converted_query, tuple(params)
    return converted_query, params


class Database:
    """Connection factory for the sqlite or postgres store.

    One connection is opened per operation. Writers take ``lock`` so that
    read-modify-write sequences inside this process never interleave.
    """

    def __init__(self, database_url: str = "", sqlite_path: str = ""):
        self.database_url = normalize_database_url(database_url)
        self.backend = "postgres" if self.database_url.startswith("postgresql://") else "sqlite"
        self.sqlite_path = sqlite_path
        self.lock = threading.Lock()
        if self.backend == "postgres":
            if psycopg2 is None or RealDictCursor is None:
                logger.error("DATABASE_URL is set but psycopg2 is unavailable. Install psycopg2-binary.")
            logger.info("Using external Postgres database.")
        else:
            logger.info("Using sqlite database path: %s", self.sqlite_path)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(database_url=settings.database_url, sqlite_path=settings.db_path)

    def connect(self) -> DBConnection:
        if self.backend == "postgres":
            if psycopg2 is None:
                raise RuntimeError("DATABASE_URL is configured but psycopg2 is not installed.")
            return DBConnection(psycopg2.connect(self.database_url, connect_timeout=10), self.backend)
        db_dir = os.path.dirname(self.sqlite_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)
        raw_connection = sqlite3.connect(self.sqlite_path, timeout=15, check_same_thread=False)
        raw_connection.row_factory = sqlite3.Row
        return DBConnection(raw_connection, self.backend)

    def row_lock_clause(self) -> str:
        return " FOR UPDATE" if self.backend == "postgres" else ""

    def init_schema(self) -> None:
        with self.lock:
            connection = self.connect()
            try:
                cursor = connection.cursor()
                if self.backend == "postgres":
                    id_column = "id BIGSERIAL PRIMARY KEY"
                    fk_type = "BIGINT"
                    real_type = "DOUBLE PRECISION"
                else:
                    id_column = "id INTEGER PRIMARY KEY AUTOINCREMENT"
                    fk_type = "INTEGER"
                    real_type = "REAL"
                cursor.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS users (
                        {id_column},
                        external_id TEXT NOT NULL UNIQUE,
                        email TEXT NOT NULL DEFAULT '',
                        full_name TEXT NOT NULL DEFAULT '',
                        industry TEXT,
                        experience INTEGER NOT NULL DEFAULT 0,
                        bio TEXT,
                        skills_json TEXT NOT NULL DEFAULT '[]',
                        bookmarks_json TEXT NOT NULL DEFAULT '[]',
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
                cursor.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS industry_insights (
                        {id_column},
                        industry TEXT NOT NULL UNIQUE,
                        payload_json TEXT NOT NULL,
                        growth_rate {real_type} NOT NULL,
                        demand_level TEXT NOT NULL,
                        market_outlook TEXT NOT NULL,
                        last_updated TEXT NOT NULL,
                        next_update TEXT NOT NULL
                    )
                    """
                )
                cursor.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS assessments (
                        {id_column},
                        user_id {fk_type} NOT NULL REFERENCES users (id),
                        quiz_score {real_type} NOT NULL,
                        questions_json TEXT NOT NULL,
                        category TEXT NOT NULL,
                        difficulty TEXT NOT NULL,
                        time_spent INTEGER,
                        improvement_tip TEXT,
                        created_at TEXT NOT NULL
                    )
                    """
                )
                cursor.execute("CREATE INDEX IF NOT EXISTS idx_assessments_user_time ON assessments (user_id, created_at)")
                connection.commit()
            finally:
                connection.close()


def begin_write_transaction(connection: DBConnection, cursor: DBCursor) -> None:
    if connection.backend == "postgres":
        cursor.execute("BEGIN")
        return
    cursor.execute("BEGIN IMMEDIATE")


def inserted_row_id(connection: DBConnection, cursor: DBCursor) -> int:
    raw_id = cursor.lastrowid
    if raw_id not in (None, "", 0):
        return int(raw_id)
    if connection.backend == "postgres":
        row = connection.execute("SELECT LASTVAL() AS id").fetchone()
        if row:
            row_id = row["id"]
            if row_id is not None:
                return int(row_id)
    raise RuntimeError("Unable to determine inserted row id for the current transaction.")
