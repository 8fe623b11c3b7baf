"""create_sessions_and_interactions

Learner sessions keyed by WhatsApp sender, and the append-only log of
graded answers.

Revision ID: 3b9d2c41e7a0
Revises:
Create Date: 2026-10-16

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "3b9d2c41e7a0"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    dialect = op.get_bind().dialect.name
    pk = "SERIAL PRIMARY KEY" if dialect == "postgresql" else "INTEGER PRIMARY KEY AUTOINCREMENT"
    op.execute(sa.text(f"""
        CREATE TABLE IF NOT EXISTS learner_sessions (
            id {pk},
            phone TEXT NOT NULL UNIQUE,
            mode TEXT NOT NULL DEFAULT 'BILINGÜE',
            lesson_id TEXT NOT NULL,
            pending_quiz_id TEXT,
            pending_task_id TEXT,
            conversation_mode INTEGER NOT NULL DEFAULT 0,
            replies_today INTEGER NOT NULL DEFAULT 0,
            version INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """))
    op.execute(sa.text(f"""
        CREATE TABLE IF NOT EXISTS interactions (
            id {pk},
            session_id TEXT NOT NULL,
            prompt_id TEXT NOT NULL,
            learner_answer_text TEXT NOT NULL,
            analysis_text TEXT NOT NULL,
            score REAL NOT NULL CHECK (score IN (0, 0.5, 1)),
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """))
    op.execute(sa.text(
        "CREATE INDEX IF NOT EXISTS idx_interactions_session "
        "ON interactions(session_id)"
    ))


def downgrade() -> None:
    op.execute(sa.text("DROP TABLE IF EXISTS interactions"))
    op.execute(sa.text("DROP TABLE IF EXISTS learner_sessions"))
