from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional


class Mode(str, Enum):
    """Output-language policy. Values are the keywords learners type."""
    SPANISH = "ES"
    ENGLISH = "EN"
    BILINGUAL = "BILINGÜE"

    @classmethod
    def from_keyword(cls, text: str) -> Optional["Mode"]:
        """Case-insensitive keyword match; BILINGUE is accepted for BILINGÜE."""
        word = text.strip().upper()
        if word == "BILINGUE":
            word = "BILINGÜE"
        try:
            return cls(word)
        except ValueError:
            return None


class LearnerSession(BaseModel):
    phone: str
    mode: Mode = Mode.BILINGUAL
    lesson_id: str
    pending_quiz_id: Optional[str] = None
    pending_task_id: Optional[str] = None
    conversation_mode: bool = False
    replies_today: int = 0
    version: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class SessionDelta(BaseModel):
    """Fields to change on a session. Only explicitly set fields are written."""
    mode: Optional[Mode] = None
    lesson_id: Optional[str] = None
    pending_quiz_id: Optional[str] = None
    pending_task_id: Optional[str] = None
    conversation_mode: Optional[bool] = None
    replies_today: Optional[int] = None

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)

    def is_empty(self) -> bool:
        return not self.model_fields_set

    def apply_to(self, session: LearnerSession) -> LearnerSession:
        return session.model_copy(update=self.changes())


class Evaluation(BaseModel):
    analysis_text: str
    score: float


class InteractionRecord(BaseModel):
    session_id: str
    prompt_id: str
    learner_answer_text: str
    analysis_text: str
    score: float
    created_at: Optional[str] = None


class IntentKind(str, Enum):
    FREE_CHAT = "free_chat"
    SET_MODE = "set_mode"
    LESSON_MISSING = "lesson_missing"
    SHOW_WARMUP = "show_warmup"
    START_QUIZ = "start_quiz"
    ANSWER_QUIZ = "answer_quiz"
    START_TASK = "start_task"
    ANSWER_TASK = "answer_task"
    SHOW_REFLECTION = "show_reflection"
    RESET_CONVERSATION_WINDOW = "reset_conversation_window"
    QUERY_SCORE = "query_score"
    HELP = "help"


class Intent(BaseModel):
    model_config = {"frozen": True}

    kind: IntentKind
    # Only set for SET_MODE
    mode: Optional[Mode] = None


class TurnOutcome(BaseModel):
    """What one inbound message resolved to."""
    intent: IntentKind
    delta: SessionDelta = Field(default_factory=SessionDelta)
    messages: list[str] = []
    interaction: Optional[InteractionRecord] = None
