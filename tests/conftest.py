import os
import random

# Settings are read at import time; give the required keys test values first
os.environ.setdefault("API_KEY", "test-key")
os.environ.setdefault("ENV", "dev")
os.environ.setdefault("CRON_SECRET", "")

import pytest

from tutorbot.models.content import Playbook
from tutorbot.models.session import LearnerSession
from tutorbot.services.answer_evaluator import AnswerEvaluator
from tutorbot.services.content_index import ContentIndex
from tutorbot.services.conversation_limiter import ConversationLimiter
from tutorbot.services.tutor_engine import TutorEngine

# Same tables as migrations/versions/3b9d2c41e7a0, SQLite flavour
SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS learner_sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
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
);

CREATE TABLE IF NOT EXISTS interactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL,
    prompt_id TEXT NOT NULL,
    learner_answer_text TEXT NOT NULL,
    analysis_text TEXT NOT NULL,
    score REAL NOT NULL CHECK (score IN (0, 0.5, 1)),
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""

WEEK1 = {
    "lesson_plans": [
        {"id": "L01", "warmup": "O01", "quiz": ["Q01"], "task": "T01", "reflection": "R01"},
        {"id": "L02", "warmup": "O02", "quiz": "Q02", "task": "T02"},
    ],
    "openers": [
        {"id": "O01", "es": "¿Cómo te llamas?", "en": "What's your name?"},
    ],
    "quizzes": [
        {"id": "Q01", "prompt": "Traduce: I am a teacher.", "answer": "Soy profesor", "expected_language": "es"},
        {"id": "Q02", "prompt": "Completa: Yo ___ (tener) dos hermanos.", "answer": "tengo"},
    ],
    "tasks": [
        {"id": "T01", "es": "Preséntate en tres frases.", "en": "Introduce yourself in three sentences.",
         "expected_output": "Three sentences in Spanish"},
    ],
    "reflections": [
        {"id": "R01", "es": "¿Qué aprendiste hoy?", "en": "What did you learn today?"},
    ],
}

WEEK2 = {
    "lesson_plans": [
        {"id": "L03", "quiz": "Q03", "task": "T02"},
    ],
    "quizzes": [
        {"id": "Q03", "prompt": "Translate: Me gusta el café.", "expected_language": "en"},
    ],
    "tasks": [
        {"id": "T02", "es": "Describe tu rutina.", "en": "Describe your routine.",
         "expected_output": "A paragraph with reflexive verbs"},
    ],
}


class FakeOracle:
    """Stands in for ai_client.complete; records calls, returns or raises what it is told."""

    def __init__(self, reply="[CORRECTO] ¡Muy bien!\nEN: Well done!", error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    async def __call__(self, system_instruction, user_content, max_tokens):
        self.calls.append((system_instruction, user_content, max_tokens))
        if self.error is not None:
            raise self.error
        return self.reply


def build_content(seed: int = 7) -> ContentIndex:
    return ContentIndex(
        [Playbook.model_validate(WEEK1), Playbook.model_validate(WEEK2)],
        rng=random.Random(seed),
    )


def make_session(**overrides) -> LearnerSession:
    fields = {"phone": "whatsapp:+34600000001", "lesson_id": "L01"}
    fields.update(overrides)
    return LearnerSession(**fields)


async def open_test_db(path):
    import aiosqlite

    db = await aiosqlite.connect(str(path))
    db.row_factory = aiosqlite.Row
    await db.executescript(SCHEMA_SQL)
    await db.commit()
    return db


def build_engine(grading_oracle=None, chat_oracle=None, cap: int = 8, seed: int = 7) -> TutorEngine:
    return TutorEngine(
        build_content(seed),
        evaluator=AnswerEvaluator(grading_oracle or FakeOracle(), max_tokens=200),
        limiter=ConversationLimiter(cap=cap),
        chat_oracle=chat_oracle or FakeOracle(reply="¡Qué bien! ¿Y tú?"),
    )


@pytest.fixture
def content():
    return build_content()


@pytest.fixture
def db_path(tmp_path):
    """Provide a temporary SQLite database path for tests."""
    return tmp_path / "test_tutorbot.db"
