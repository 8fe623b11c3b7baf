"""
command_classifier.py - Map an inbound message to exactly one intent

Checks run top to bottom and the first match wins, so their order in
classify() is the precedence between commands and pending answers.
"""

import re

from tutorbot.models.session import Intent, IntentKind, LearnerSession, Mode
from tutorbot.services.content_index import ContentIndex


def _command(word: str) -> re.Pattern:
    return re.compile(rf"^{word}$", re.IGNORECASE)


WARMUP_RE = _command("WARMUP")
QUIZ_RE = _command("QUIZ")
TASK_RE = _command("TASK")
REFLECT_RE = _command("REFLECT")
RESET_RE = _command("RESET")
SCORE_RE = _command("SCORE")


def classify(session: LearnerSession, text: str, content: ContentIndex) -> Intent:
    """Total, priority-ordered classification of one message."""
    text = (text or "").strip()

    if session.conversation_mode:
        return Intent(kind=IntentKind.FREE_CHAT)

    mode = Mode.from_keyword(text)
    if mode is not None:
        return Intent(kind=IntentKind.SET_MODE, mode=mode)

    if content.find_lesson(session.lesson_id) is None:
        return Intent(kind=IntentKind.LESSON_MISSING)

    if WARMUP_RE.match(text):
        return Intent(kind=IntentKind.SHOW_WARMUP)

    if QUIZ_RE.match(text):
        return Intent(kind=IntentKind.START_QUIZ)
    if session.pending_quiz_id:
        return Intent(kind=IntentKind.ANSWER_QUIZ)

    if TASK_RE.match(text):
        return Intent(kind=IntentKind.START_TASK)
    if session.pending_task_id:
        return Intent(kind=IntentKind.ANSWER_TASK)

    if REFLECT_RE.match(text):
        return Intent(kind=IntentKind.SHOW_REFLECTION)
    if RESET_RE.match(text):
        return Intent(kind=IntentKind.RESET_CONVERSATION_WINDOW)
    if SCORE_RE.match(text):
        return Intent(kind=IntentKind.QUERY_SCORE)

    return Intent(kind=IntentKind.HELP)
