"""Tests for the session state machine, one inbound message at a time."""

import asyncio

from conftest import FakeOracle, build_engine, make_session
from tutorbot.models.session import IntentKind, Mode
from tutorbot.services.tutor_engine import HELP_EN, HELP_ES, NO_SCORE_EN, NO_SCORE_ES


def _scores(value):
    async def lookup():
        return value
    return lookup


def step(engine, session, text, average=None):
    return asyncio.run(engine.step(session, text, _scores(average)))


class TestModeAndHelp:

    def test_set_mode_confirms_in_new_mode(self):
        outcome = step(build_engine(), make_session(), "en")
        assert outcome.delta.changes() == {"mode": Mode.ENGLISH}
        assert outcome.messages == ["Mode updated: EN."]

    def test_set_bilingual_confirms_both_lines(self):
        outcome = step(build_engine(), make_session(mode=Mode.SPANISH), "bilingue")
        assert outcome.delta.changes() == {"mode": Mode.BILINGUAL}
        assert outcome.messages == ["Modo actualizado: BILINGÜE.", "Mode updated: BILINGÜE."]

    def test_unknown_text_gets_help(self):
        outcome = step(build_engine(), make_session(), "banana")
        assert outcome.intent == IntentKind.HELP
        assert outcome.messages == [HELP_ES, HELP_EN]
        assert outcome.delta.is_empty()
        assert outcome.interaction is None

    def test_help_respects_mode(self):
        outcome = step(build_engine(), make_session(mode=Mode.SPANISH), "banana")
        assert outcome.messages == [HELP_ES]

    def test_lesson_missing(self):
        outcome = step(build_engine(), make_session(lesson_id="L99"), "QUIZ")
        assert outcome.intent == IntentKind.LESSON_MISSING
        assert outcome.delta.is_empty()
        assert len(outcome.messages) == 2
        assert "L99" in outcome.messages[0]


class TestQuiz:

    def test_start_quiz_sets_pending_and_sends_raw_prompt(self):
        engine = build_engine()
        outcome = step(engine, make_session(mode=Mode.ENGLISH), "QUIZ")

        quiz_id = outcome.delta.changes()["pending_quiz_id"]
        quiz = engine.content.quiz_by_id(quiz_id)
        assert outcome.messages == [quiz.prompt]

    def test_answer_quiz_grades_logs_and_clears(self):
        grader = FakeOracle(reply="[PARCIAL] Casi: 'Soy profesor'.")
        engine = build_engine(grading_oracle=grader)

        outcome = step(engine, make_session(pending_quiz_id="Q01"), "Yo es profesor")

        assert outcome.intent == IntentKind.ANSWER_QUIZ
        assert outcome.delta.changes() == {"pending_quiz_id": None}
        assert outcome.messages == ["[PARCIAL] Casi: 'Soy profesor'."]
        assert outcome.interaction.prompt_id == "Q01"
        assert outcome.interaction.score == 0.5
        assert outcome.interaction.learner_answer_text == "Yo es profesor"
        assert "Traduce: I am a teacher." in grader.calls[0][1]

    def test_answer_quiz_with_oracle_down_still_logs(self):
        engine = build_engine(grading_oracle=FakeOracle(error=TimeoutError()))

        outcome = step(engine, make_session(pending_quiz_id="Q01"), "Soy profesor")

        assert outcome.delta.changes() == {"pending_quiz_id": None}
        assert outcome.interaction is not None
        assert outcome.interaction.score == 0.0
        assert outcome.messages == [engine.evaluator.apology()]

    def test_vanished_pending_quiz_is_cleared_without_log(self):
        outcome = step(build_engine(), make_session(pending_quiz_id="Q404"), "respuesta")
        assert outcome.delta.changes() == {"pending_quiz_id": None}
        assert outcome.interaction is None
        assert outcome.messages


class TestTask:

    def test_task_scenario(self):
        grader = FakeOracle(reply="[CORRECTO] ¡Excelente!")
        engine = build_engine(grading_oracle=grader)
        session = make_session()

        started = step(engine, session, "TASK")
        task_id = started.delta.changes()["pending_task_id"]
        task = engine.content.task_by_id(task_id)
        assert started.messages == [task.prompt_es, task.prompt_en]

        session = started.delta.apply_to(session)
        answered = step(engine, session, "Me llamo Ana. Vivo en Madrid. Soy médica.")

        assert answered.delta.changes() == {"pending_task_id": None, "lesson_id": "L02"}
        assert answered.interaction.prompt_id == task_id
        assert answered.interaction.score in (0.0, 0.5, 1.0)
        assert answered.messages[0] == "[CORRECTO] ¡Excelente!"
        assert answered.messages[1:] == ["Avanzamos a la lección L02.", "Moving on to lesson L02."]
        assert task.expected_output in grader.calls[0][1]

    def test_task_on_last_lesson_stalls(self):
        engine = build_engine()
        outcome = step(engine, make_session(lesson_id="L03", pending_task_id="T02"), "Me levanto a las 7.")
        assert outcome.delta.changes() == {"pending_task_id": None, "lesson_id": "L03"}
        assert len(outcome.messages) == 1


class TestLessonText:

    def test_reflection(self):
        outcome = step(build_engine(), make_session(mode=Mode.ENGLISH), "REFLECT")
        assert outcome.messages == ["What did you learn today?"]

    def test_reflection_absent_sends_nothing(self):
        outcome = step(build_engine(), make_session(lesson_id="L02"), "REFLECT")
        assert outcome.messages == []
        assert outcome.delta.is_empty()

    def test_warmup(self):
        outcome = step(build_engine(), make_session(), "warmup")
        assert outcome.messages == ["¿Cómo te llamas?", "What's your name?"]


class TestScoreAndReset:

    def test_no_answers_yet(self):
        outcome = step(build_engine(), make_session(), "SCORE", average=None)
        assert outcome.messages == [NO_SCORE_ES, NO_SCORE_EN]

    def test_percentage_one_decimal(self):
        outcome = step(build_engine(), make_session(), "SCORE", average=2 / 3)
        assert outcome.messages == ["Tu puntuación media: 66.7%", "Your average score: 66.7%"]

    def test_score_is_idempotent(self):
        engine = build_engine()
        first = step(engine, make_session(), "SCORE", average=0.75)
        second = step(engine, make_session(), "SCORE", average=0.75)
        assert first.messages == second.messages
        assert first.delta.is_empty()

    def test_reset_opens_window(self):
        outcome = step(build_engine(), make_session(replies_today=5), "RESET")
        assert outcome.delta.changes() == {"conversation_mode": True, "replies_today": 0}
        assert len(outcome.messages) == 2

    def test_free_chat_instruction_follows_mode(self):
        chat = FakeOracle(reply="Sure!")
        engine = build_engine(chat_oracle=chat)
        step(engine, make_session(mode=Mode.ENGLISH, conversation_mode=True), "Hi")
        assert "Reply only in English." in chat.calls[0][0]
        assert chat.calls[0][1] == "Hi"
