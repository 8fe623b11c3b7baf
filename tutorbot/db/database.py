"""Database access supporting both SQLite (aiosqlite) and PostgreSQL (asyncpg).

Backend is selected via the DATABASE_URL setting:
  - starts with "postgresql://" → asyncpg
  - absent / empty             → aiosqlite (uses DATABASE_PATH)

The PostgreSQL wrapper presents the small part of the aiosqlite interface the
store uses:
  - ? placeholders → $1, $2, … (positional)
  - cursor.rowcount for UPDATE/DELETE
  - Row access by column name (dict-like)
"""

import re
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import date, datetime
from pathlib import Path

from alembic import command
from alembic.config import Config

from tutorbot.config import settings

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _is_postgres() -> bool:
    return settings.database_url.startswith("postgresql://")


# ── SQLite ────────────────────────────────────────────────────────────

async def _connect_sqlite(path: str | None = None):
    import aiosqlite
    db = await aiosqlite.connect(path or settings.database_path)
    db.row_factory = aiosqlite.Row
    return db


# ── PostgreSQL wrapper ────────────────────────────────────────────────

_pg_pool = None


async def _get_pg_pool():
    global _pg_pool
    if _pg_pool is None:
        import asyncpg
        _pg_pool = await asyncpg.create_pool(
            settings.database_url,
            min_size=2,
            max_size=10,
        )
    return _pg_pool


def _sqlite_compat(value):
    """Timestamps come back as ISO strings, as they do from SQLite."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class PgRow:
    """asyncpg Record with sqlite3.Row-style access; keys() + __getitem__ enable dict(row)."""

    __slots__ = ("_record",)

    def __init__(self, record):
        self._record = record

    def __getitem__(self, key):
        return _sqlite_compat(self._record[key])

    def keys(self):
        return self._record.keys()


# Replace ? with $1, $2, … while skipping ?s inside quoted string literals
_PARAM_RE = re.compile(r"'[^']*'|(\?)")


def _convert_placeholders(sql: str) -> str:
    counter = [0]

    def _replacer(match):
        if match.group(1) is None:
            return match.group(0)
        counter[0] += 1
        return f"${counter[0]}"

    return _PARAM_RE.sub(_replacer, sql)


def _rowcount_from_status(status: str) -> int:
    """asyncpg returns command tags like 'UPDATE 1' or 'INSERT 0 1'."""
    tail = status.rsplit(" ", 1)[-1] if status else ""
    return int(tail) if tail.isdigit() else -1


class PgCursor:
    __slots__ = ("_rows", "_idx", "rowcount")

    def __init__(self, rows=None, rowcount: int = -1):
        self._rows = rows or []
        self._idx = 0
        self.rowcount = rowcount

    async def fetchone(self):
        if self._idx < len(self._rows):
            row = self._rows[self._idx]
            self._idx += 1
            return PgRow(row)
        return None

    async def fetchall(self):
        remaining = self._rows[self._idx:]
        self._idx = len(self._rows)
        return [PgRow(r) for r in remaining]


class PgConnection:
    """Wraps an asyncpg connection behind an aiosqlite-compatible interface."""

    def __init__(self, conn):
        self._conn = conn

    async def execute(self, sql: str, params=None):
        pg_sql = _convert_placeholders(sql)
        args = tuple(params) if params else ()
        stripped = pg_sql.lstrip().upper()
        if stripped.startswith("SELECT") or "RETURNING" in stripped:
            rows = await self._conn.fetch(pg_sql, *args)
            return PgCursor(rows=rows, rowcount=len(rows))
        status = await self._conn.execute(pg_sql, *args)
        return PgCursor(rowcount=_rowcount_from_status(status))

    def transaction(self):
        return self._conn.transaction()

    async def commit(self):
        # Statements outside transaction() autocommit
        pass

    async def rollback(self):
        pass

    async def close(self):
        # Pool release is handled by get_db()
        pass


# ── Public API ────────────────────────────────────────────────────────

@asynccontextmanager
async def transaction(db):
    """Run the enclosed statements atomically on either backend."""
    if isinstance(db, PgConnection):
        async with db.transaction():
            yield db
        return
    try:
        yield db
    except BaseException:
        await db.rollback()
        raise
    else:
        await db.commit()


async def get_db() -> AsyncGenerator:
    """FastAPI dependency that yields a database connection and closes it after the request."""
    if _is_postgres():
        pool = await _get_pg_pool()
        conn = await pool.acquire()
        try:
            yield PgConnection(conn)
        finally:
            await pool.release(conn)
    else:
        db = await _connect_sqlite()
        try:
            yield db
        finally:
            await db.close()


def _run_alembic_upgrade():
    """Run Alembic migrations to head (synchronous — called once at startup)."""
    alembic_cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(PROJECT_ROOT / "migrations"))

    if _is_postgres():
        alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)
    else:
        alembic_cfg.set_main_option("sqlalchemy.url", f"sqlite:///{settings.database_path}")

    command.upgrade(alembic_cfg, "head")


async def init_db():
    if _is_postgres():
        logger.info("Using PostgreSQL backend: %s", settings.database_url.split("@")[-1])
    else:
        # Ensure parent directory exists (for Docker volume mounts)
        Path(settings.database_path).parent.mkdir(parents=True, exist_ok=True)
        logger.info("Using SQLite backend: %s", settings.database_path)

    # Alembic handles all schema creation and migrations
    _run_alembic_upgrade()


async def close_db():
    """Shutdown hook — close the connection pool if using PostgreSQL."""
    global _pg_pool
    if _pg_pool is not None:
        await _pg_pool.close()
        _pg_pool = None
