"""Daily free-chat window: how many oracle replies a learner gets once a window opens."""

from enum import Enum

from tutorbot.config import settings
from tutorbot.models.session import LearnerSession, SessionDelta


class Admission(str, Enum):
    INERT = "inert"        # window closed, commands are classified normally
    CONTINUE = "continue"  # reply, then count it
    CLOSE = "close"        # cap reached, say goodbye and close the window


class ConversationLimiter:
    def __init__(self, cap: int | None = None):
        self.cap = cap if cap is not None else settings.conversation_reply_cap

    def admit(self, session: LearnerSession) -> Admission:
        if not session.conversation_mode:
            return Admission.INERT
        if session.replies_today >= self.cap:
            return Admission.CLOSE
        return Admission.CONTINUE

    @staticmethod
    def close_delta() -> SessionDelta:
        return SessionDelta(conversation_mode=False, replies_today=0)

    @staticmethod
    def count_reply_delta(session: LearnerSession) -> SessionDelta:
        return SessionDelta(replies_today=session.replies_today + 1)

    @staticmethod
    def enable_window() -> SessionDelta:
        """Open a fresh window regardless of the current state."""
        return SessionDelta(conversation_mode=True, replies_today=0)
