"""
tutor_engine.py - Session state machine

One call to TutorEngine.step() handles one inbound message: it classifies the
text, consults content, the grader or the chat window as the intent requires,
and returns the outbound lines plus the session delta (and, for graded
answers, the interaction record). It performs no storage I/O itself; the
caller persists the outcome.
"""

import functools
import logging
from typing import Awaitable, Callable, Optional

from tutorbot.errors import ContentNotFoundError
from tutorbot.models.session import (
    Intent,
    IntentKind,
    InteractionRecord,
    LearnerSession,
    Mode,
    SessionDelta,
    TurnOutcome,
)
from tutorbot.services import ai_client
from tutorbot.services.answer_evaluator import AnswerEvaluator, Oracle
from tutorbot.services.bilingual import bilingual
from tutorbot.services.command_classifier import classify
from tutorbot.services.content_index import ContentIndex
from tutorbot.services.conversation_limiter import Admission, ConversationLimiter
from tutorbot.services.prompts import load_prompt

logger = logging.getLogger(__name__)

ScoreLookup = Callable[[], Awaitable[Optional[float]]]

HELP_ES = "Comandos: WARMUP, QUIZ, TASK, REFLECT, RESET, SCORE, ES, EN, BILINGÜE."
HELP_EN = "Commands: WARMUP, QUIZ, TASK, REFLECT, RESET, SCORE, ES, EN, BILINGÜE."

FAREWELL_ES = "¡Gracias por charlar hoy! Seguimos mañana. 👋"
FAREWELL_EN = "Thanks for chatting today! Let's continue tomorrow. 👋"

RESET_ES = "Conversación reiniciada. ¡Escríbeme lo que quieras!"
RESET_EN = "Conversation restarted. Write me anything!"

NO_SCORE_ES = "Todavía no tienes respuestas registradas. Prueba QUIZ o TASK."
NO_SCORE_EN = "No recorded answers yet. Try QUIZ or TASK."


class TutorEngine:
    def __init__(
        self,
        content: ContentIndex,
        evaluator: AnswerEvaluator | None = None,
        limiter: ConversationLimiter | None = None,
        chat_oracle: Oracle | None = None,
        chat_max_tokens: int = 300,
    ):
        self.content = content
        self.evaluator = evaluator or AnswerEvaluator()
        self.limiter = limiter or ConversationLimiter()
        self._chat_oracle = chat_oracle or functools.partial(ai_client.complete, use_case="chat")
        self._chat_max_tokens = chat_max_tokens

        self._handlers = {
            IntentKind.FREE_CHAT: self._free_chat,
            IntentKind.SET_MODE: self._set_mode,
            IntentKind.LESSON_MISSING: self._lesson_missing,
            IntentKind.SHOW_WARMUP: self._show_warmup,
            IntentKind.START_QUIZ: self._start_quiz,
            IntentKind.ANSWER_QUIZ: self._answer_quiz,
            IntentKind.START_TASK: self._start_task,
            IntentKind.ANSWER_TASK: self._answer_task,
            IntentKind.SHOW_REFLECTION: self._show_reflection,
            IntentKind.RESET_CONVERSATION_WINDOW: self._reset_window,
            IntentKind.QUERY_SCORE: self._query_score,
            IntentKind.HELP: self._help,
        }

    def new_session_defaults(self) -> dict:
        return {"mode": Mode.BILINGUAL, "lesson_id": self.content.first_lesson_id()}

    async def step(self, session: LearnerSession, text: str, score_lookup: ScoreLookup) -> TurnOutcome:
        text = (text or "").strip()
        intent = classify(session, text, self.content)
        logger.debug("Session %s: %r -> %s", session.phone, text[:40], intent.kind.value)
        handler = self._handlers[intent.kind]
        return await handler(session, text, intent, score_lookup)

    # ── Settings & help ──────────────────────────────────────────────

    async def _set_mode(self, session, text, intent: Intent, score_lookup) -> TurnOutcome:
        mode = intent.mode
        return TurnOutcome(
            intent=intent.kind,
            delta=SessionDelta(mode=mode),
            messages=bilingual(f"Modo actualizado: {mode.value}.", f"Mode updated: {mode.value}.", mode),
        )

    async def _lesson_missing(self, session, text, intent: Intent, score_lookup) -> TurnOutcome:
        logger.warning("Session %s points at unknown lesson %r", session.phone, session.lesson_id)
        return TurnOutcome(
            intent=intent.kind,
            messages=bilingual(
                f"No encuentro tu lección actual ({session.lesson_id}). Avisa a tu profesor, por favor.",
                f"I can't find your current lesson ({session.lesson_id}). Please let your teacher know.",
                session.mode,
            ),
        )

    async def _help(self, session, text, intent: Intent, score_lookup) -> TurnOutcome:
        return TurnOutcome(intent=intent.kind, messages=bilingual(HELP_ES, HELP_EN, session.mode))

    # ── Lesson content ───────────────────────────────────────────────

    async def _show_warmup(self, session, text, intent: Intent, score_lookup) -> TurnOutcome:
        lesson = self.content.find_lesson(session.lesson_id)
        opener = self.content.opener_of(lesson)
        if opener is None:
            return TurnOutcome(intent=intent.kind)
        return TurnOutcome(intent=intent.kind, messages=bilingual(opener.es, opener.en, session.mode))

    async def _show_reflection(self, session, text, intent: Intent, score_lookup) -> TurnOutcome:
        lesson = self.content.find_lesson(session.lesson_id)
        reflection = self.content.reflection_of(lesson)
        if reflection is None:
            return TurnOutcome(intent=intent.kind)
        return TurnOutcome(intent=intent.kind, messages=bilingual(reflection.es, reflection.en, session.mode))

    # ── Quizzes ──────────────────────────────────────────────────────

    async def _start_quiz(self, session, text, intent: Intent, score_lookup) -> TurnOutcome:
        quiz = self.content.random_quiz()
        if quiz is None:
            return self._not_found(session, intent, "quiz")
        # Quiz prompts go out as authored, whatever the mode
        return TurnOutcome(
            intent=intent.kind,
            delta=SessionDelta(pending_quiz_id=quiz.id),
            messages=[quiz.prompt],
        )

    async def _answer_quiz(self, session, text, intent: Intent, score_lookup) -> TurnOutcome:
        try:
            quiz = self.content.require_quiz(session.pending_quiz_id)
        except ContentNotFoundError as e:
            logger.warning("%s, clearing pending quiz for %s", e, session.phone)
            return self._not_found(session, intent, e.kind, SessionDelta(pending_quiz_id=None))

        evaluation = await self.evaluator.evaluate(text, quiz.prompt, quiz.expected_language)
        return TurnOutcome(
            intent=intent.kind,
            delta=SessionDelta(pending_quiz_id=None),
            messages=[evaluation.analysis_text],
            interaction=InteractionRecord(
                session_id=session.phone,
                prompt_id=quiz.id,
                learner_answer_text=text,
                analysis_text=evaluation.analysis_text,
                score=evaluation.score,
            ),
        )

    # ── Tasks ────────────────────────────────────────────────────────

    async def _start_task(self, session, text, intent: Intent, score_lookup) -> TurnOutcome:
        task = self.content.random_task()
        if task is None:
            return self._not_found(session, intent, "task")
        return TurnOutcome(
            intent=intent.kind,
            delta=SessionDelta(pending_task_id=task.id),
            messages=bilingual(task.prompt_es, task.prompt_en, session.mode),
        )

    async def _answer_task(self, session, text, intent: Intent, score_lookup) -> TurnOutcome:
        try:
            task = self.content.require_task(session.pending_task_id)
        except ContentNotFoundError as e:
            logger.warning("%s, clearing pending task for %s", e, session.phone)
            return self._not_found(session, intent, e.kind, SessionDelta(pending_task_id=None))

        evaluation = await self.evaluator.evaluate(text, task.prompt_es, task.expected_output)
        next_lesson = self.content.next_lesson_id(session.lesson_id)

        messages = [evaluation.analysis_text]
        if next_lesson != session.lesson_id:
            messages.extend(bilingual(
                f"Avanzamos a la lección {next_lesson}.",
                f"Moving on to lesson {next_lesson}.",
                session.mode,
            ))

        return TurnOutcome(
            intent=intent.kind,
            delta=SessionDelta(pending_task_id=None, lesson_id=next_lesson),
            messages=messages,
            interaction=InteractionRecord(
                session_id=session.phone,
                prompt_id=task.id,
                learner_answer_text=text,
                analysis_text=evaluation.analysis_text,
                score=evaluation.score,
            ),
        )

    # ── Score ────────────────────────────────────────────────────────

    async def _query_score(self, session, text, intent: Intent, score_lookup: ScoreLookup) -> TurnOutcome:
        average = await score_lookup()
        if average is None:
            messages = bilingual(NO_SCORE_ES, NO_SCORE_EN, session.mode)
        else:
            pct = f"{average * 100:.1f}"
            messages = bilingual(
                f"Tu puntuación media: {pct}%",
                f"Your average score: {pct}%",
                session.mode,
            )
        return TurnOutcome(intent=intent.kind, messages=messages)

    # ── Conversation window ──────────────────────────────────────────

    async def _reset_window(self, session, text, intent: Intent, score_lookup) -> TurnOutcome:
        return TurnOutcome(
            intent=intent.kind,
            delta=self.limiter.enable_window(),
            messages=bilingual(RESET_ES, RESET_EN, session.mode),
        )

    async def _free_chat(self, session, text, intent: Intent, score_lookup) -> TurnOutcome:
        if self.limiter.admit(session) == Admission.CLOSE:
            logger.info("Session %s reached %d replies, closing window", session.phone, self.limiter.cap)
            return TurnOutcome(
                intent=intent.kind,
                delta=self.limiter.close_delta(),
                messages=bilingual(FAREWELL_ES, FAREWELL_EN, session.mode),
            )

        prompt = load_prompt("free_chat")
        system = prompt["system_prompt"].format(language_rule=prompt["language_rules"][session.mode.value])
        try:
            reply = await self._chat_oracle(system, text, self._chat_max_tokens)
        except Exception as e:
            logger.error("Free chat reply failed for %s: %s", session.phone, e)
            reply = None

        if reply and reply.strip():
            messages = [reply.strip()]
        else:
            messages = bilingual(prompt["apology"]["es"], prompt["apology"]["en"], session.mode)

        return TurnOutcome(
            intent=intent.kind,
            delta=self.limiter.count_reply_delta(session),
            messages=messages,
        )

    # ── Helpers ──────────────────────────────────────────────────────

    def _not_found(
        self,
        session: LearnerSession,
        intent: Intent,
        kind: str,
        delta: SessionDelta | None = None,
    ) -> TurnOutcome:
        return TurnOutcome(
            intent=intent.kind,
            delta=delta if delta is not None else SessionDelta(),
            messages=bilingual(
                f"No encontré contenido de tipo {kind} ahora mismo. Inténtalo más tarde.",
                f"I couldn't find any {kind} content right now. Please try again later.",
                session.mode,
            ),
        )
