"""
sessions.py - Store queries for learner sessions and the interaction log

Provides insert/fetch/update functions for:
- learner_sessions  (one row per WhatsApp sender, compare-and-set on version)
- interactions      (append-only log of graded answers)

Functions take the connection as first argument and work on both backends
(aiosqlite connection or database.PgConnection).
"""

import functools
import logging
from enum import Enum
from typing import Optional, List

import aiosqlite
import asyncpg

from tutorbot.db.database import transaction
from tutorbot.errors import ConcurrentUpdateError, StoreError
from tutorbot.models.session import InteractionRecord, LearnerSession, SessionDelta

logger = logging.getLogger(__name__)

_DRIVER_ERRORS = (aiosqlite.Error, asyncpg.PostgresError, asyncpg.InterfaceError)


def _store_call(func):
    """Re-raise backend driver errors as StoreError."""
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except _DRIVER_ERRORS as e:
            raise StoreError(f"{func.__name__} failed: {e}") from e
    return wrapper

# Columns a SessionDelta may write
_MUTABLE_COLUMNS = (
    "mode",
    "lesson_id",
    "pending_quiz_id",
    "pending_task_id",
    "conversation_mode",
    "replies_today",
)

ALLOWED_SCORES = (0.0, 0.5, 1.0)


def _to_db(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return int(value)
    return value


def _row_to_session(row) -> LearnerSession:
    return LearnerSession.model_validate(dict(row))


# ══════════════════════════════════════════════════════════════════════════════
# LEARNER SESSIONS
# ══════════════════════════════════════════════════════════════════════════════

@_store_call
async def get_session(db, phone: str) -> Optional[LearnerSession]:
    cursor = await db.execute(
        """SELECT phone, mode, lesson_id, pending_quiz_id, pending_task_id,
                  conversation_mode, replies_today, version, created_at, updated_at
           FROM learner_sessions WHERE phone = ?""",
        (phone,)
    )
    row = await cursor.fetchone()
    if not row:
        return None
    return _row_to_session(row)


@_store_call
async def get_or_create_session(db, phone: str, lesson_id: str, mode: str = "BILINGÜE") -> LearnerSession:
    """Fetch the learner's session, creating it with defaults on first contact."""
    session = await get_session(db, phone)
    if session is not None:
        return session

    # A concurrent first message may insert the same phone; the loser does nothing
    await db.execute(
        """INSERT INTO learner_sessions (phone, mode, lesson_id)
           VALUES (?, ?, ?)
           ON CONFLICT (phone) DO NOTHING""",
        (phone, _to_db(mode), lesson_id)
    )
    await db.commit()
    logger.info("Created session for %s at lesson %s", phone, lesson_id)
    return await get_session(db, phone)


@_store_call
async def update_session(db, phone: str, expected_version: int, delta: SessionDelta) -> None:
    """Write the delta only if nobody else updated the row since it was read.

    Does not commit; call inside transaction() or commit afterwards.
    Raises ConcurrentUpdateError when the version moved on.
    """
    changes = {k: v for k, v in delta.changes().items() if k in _MUTABLE_COLUMNS}
    assignments = [f"{col} = ?" for col in changes]
    assignments += ["version = version + 1", "updated_at = CURRENT_TIMESTAMP"]
    params = [_to_db(v) for v in changes.values()] + [phone, expected_version]

    cursor = await db.execute(
        f"UPDATE learner_sessions SET {', '.join(assignments)} WHERE phone = ? AND version = ?",
        params
    )
    if cursor.rowcount == 0:
        raise ConcurrentUpdateError(phone, expected_version)


@_store_call
async def all_sessions(db) -> List[LearnerSession]:
    cursor = await db.execute(
        """SELECT phone, mode, lesson_id, pending_quiz_id, pending_task_id,
                  conversation_mode, replies_today, version, created_at, updated_at
           FROM learner_sessions ORDER BY id"""
    )
    rows = await cursor.fetchall()
    return [_row_to_session(r) for r in rows]


# ══════════════════════════════════════════════════════════════════════════════
# INTERACTIONS
# ══════════════════════════════════════════════════════════════════════════════

@_store_call
async def append_interaction(db, record: InteractionRecord) -> None:
    """Append one graded answer. Does not commit."""
    if record.score not in ALLOWED_SCORES:
        raise ValueError(f"Score must be one of {ALLOWED_SCORES}, got {record.score}")
    await db.execute(
        """INSERT INTO interactions
           (session_id, prompt_id, learner_answer_text, analysis_text, score)
           VALUES (?, ?, ?, ?, ?)""",
        (
            record.session_id,
            record.prompt_id,
            record.learner_answer_text,
            record.analysis_text,
            record.score,
        )
    )


@_store_call
async def average_score(db, phone: str) -> Optional[float]:
    """Mean of every logged score for the learner, or None if nothing was graded."""
    cursor = await db.execute(
        "SELECT AVG(score) AS avg_score, COUNT(*) AS n FROM interactions WHERE session_id = ?",
        (phone,)
    )
    row = await cursor.fetchone()
    if not row or not row["n"]:
        return None
    return float(row["avg_score"])


@_store_call
async def get_interactions(db, phone: str) -> List[InteractionRecord]:
    cursor = await db.execute(
        """SELECT session_id, prompt_id, learner_answer_text, analysis_text, score, created_at
           FROM interactions WHERE session_id = ? ORDER BY id""",
        (phone,)
    )
    rows = await cursor.fetchall()
    return [InteractionRecord.model_validate(dict(r)) for r in rows]


# ══════════════════════════════════════════════════════════════════════════════
# TURNS
# ══════════════════════════════════════════════════════════════════════════════

@_store_call
async def apply_turn(
    db,
    session: LearnerSession,
    delta: SessionDelta,
    interaction: Optional[InteractionRecord] = None,
) -> LearnerSession:
    """Persist one turn's delta and interaction record atomically.

    Returns the session as it now stands. Nothing is written when the turn
    produced neither a delta nor a record.
    """
    if delta.is_empty() and interaction is None:
        return session

    async with transaction(db):
        if not delta.is_empty():
            await update_session(db, session.phone, session.version, delta)
        if interaction is not None:
            await append_interaction(db, interaction)

    updated = delta.apply_to(session)
    if not delta.is_empty():
        updated = updated.model_copy(update={"version": session.version + 1})
    return updated
