"""
conversation_service.py - Storage-facing orchestration around the tutor engine

Provides:
- handle_inbound(db, engine, messenger, identity, text) - Run one learner message
  end to end, reply included
- broadcast_starter(db, messenger, slot) - Push the slot's conversation starter
  to every learner and open their chat window
- get_engine() - Process-wide TutorEngine built from the configured playbooks
"""

import logging
from pathlib import Path
from typing import Optional

from tutorbot.config import settings
from tutorbot.db import sessions as store
from tutorbot.db.database import PROJECT_ROOT
from tutorbot.errors import InvalidSlotError, StoreError
from tutorbot.services.bilingual import bilingual
from tutorbot.services.content_index import load_content_index
from tutorbot.services.conversation_limiter import ConversationLimiter
from tutorbot.services.messenger import Messenger
from tutorbot.services.session_locks import learner_lock
from tutorbot.services.tutor_engine import TutorEngine

logger = logging.getLogger(__name__)

STARTERS = {
    "morning": {
        "es": "¿Qué desayunaste hoy? 🌞",
        "en": "What did you have for breakfast today? 🌞",
    },
    "noon": {
        "es": "Háblame de tu familia 👨‍👩‍👧",
        "en": "Tell me about your family 👨‍👩‍👧",
    },
    "evening": {
        "es": "¿Te gusta ver películas? 🎬",
        "en": "Do you like watching movies? 🎬",
    },
}

_engine: Optional[TutorEngine] = None


def get_engine() -> TutorEngine:
    """Load the playbooks once and build the engine on first use."""
    global _engine
    if _engine is None:
        content_dir = Path(settings.content_dir)
        if not content_dir.is_absolute():
            content_dir = PROJECT_ROOT / content_dir
        _engine = TutorEngine(load_content_index(content_dir))
    return _engine


# Delta fields that make the learner's next message count as an answer
_PENDING_FIELDS = ("pending_quiz_id", "pending_task_id")


def _opens_pending(delta) -> bool:
    changes = delta.changes()
    return any(changes.get(field) is not None for field in _PENDING_FIELDS)


async def _deliver(messenger: Messenger, identity: str, lines: list[str]) -> bool:
    if not lines:
        return True
    try:
        await messenger.send(identity, lines)
    except Exception:
        logger.exception("Reply to %s could not be delivered", identity)
        return False
    return True


async def handle_inbound(db, engine: TutorEngine, messenger: Messenger, identity: str, text: str) -> list[str]:
    """Process one inbound message, persist the turn and send the reply.

    Returns the lines the turn produced, or [] when a quiz/task prompt could
    not be delivered and the turn was dropped. Store errors (including a lost
    compare-and-set) propagate; in that case nothing from this turn has been
    written.
    """
    async with learner_lock(identity):
        defaults = engine.new_session_defaults()
        session = await store.get_or_create_session(
            db, identity, defaults["lesson_id"], defaults["mode"].value
        )

        async def score_lookup():
            return await store.average_score(db, identity)

        outcome = await engine.step(session, text, score_lookup)

        if _opens_pending(outcome.delta):
            # A prompt only becomes pending once the learner actually has it
            if not await _deliver(messenger, identity, outcome.messages):
                logger.warning("Dropped %s turn for %s, prompt not delivered", outcome.intent.value, identity)
                return []
            await store.apply_turn(db, session, outcome.delta, outcome.interaction)
        else:
            await store.apply_turn(db, session, outcome.delta, outcome.interaction)
            await _deliver(messenger, identity, outcome.messages)

    logger.info(
        "Turn for %s: %s (%d lines%s)",
        identity,
        outcome.intent.value,
        len(outcome.messages),
        f", score {outcome.interaction.score}" if outcome.interaction else "",
    )
    return outcome.messages


async def broadcast_starter(db, messenger: Messenger, slot: str) -> int:
    """Send the slot's starter to every known learner and open their chat window.

    Returns how many learners received it and had their window opened.
    Unknown slots raise InvalidSlotError before anything is sent.
    """
    starter = STARTERS.get(slot)
    if starter is None:
        raise InvalidSlotError(slot)

    sent = 0
    for session in await store.all_sessions(db):
        if not await _deliver(messenger, session.phone, bilingual(starter["es"], starter["en"], session.mode)):
            continue

        try:
            async with learner_lock(session.phone):
                # Re-read: the learner may have written since all_sessions()
                current = await store.get_session(db, session.phone)
                await store.apply_turn(db, current, ConversationLimiter.enable_window())
        except StoreError:
            logger.exception("Could not open the %s window for %s", slot, session.phone)
            continue
        sent += 1

    logger.info("Broadcast %s starter to %d learners", slot, sent)
    return sent
