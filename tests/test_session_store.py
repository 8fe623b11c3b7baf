"""Tests for the session store against a temporary SQLite database."""

import asyncio

import aiosqlite
import pytest

from conftest import open_test_db
from tutorbot.db import sessions as store
from tutorbot.errors import ConcurrentUpdateError, StoreError
from tutorbot.models.session import InteractionRecord, Mode, SessionDelta

PHONE = "whatsapp:+34600000001"


def _record(score, prompt_id="Q01"):
    return InteractionRecord(
        session_id=PHONE,
        prompt_id=prompt_id,
        learner_answer_text="respuesta",
        analysis_text="[CORRECTO] bien",
        score=score,
    )


class TestSessions:

    def test_get_or_create_defaults(self, db_path):
        async def scenario():
            db = await open_test_db(db_path)
            try:
                created = await store.get_or_create_session(db, PHONE, "L01")
                again = await store.get_or_create_session(db, PHONE, "L02")
                return created, again, await store.all_sessions(db)
            finally:
                await db.close()

        created, again, everyone = asyncio.run(scenario())

        assert created.mode == Mode.BILINGUAL
        assert created.lesson_id == "L01"
        assert created.pending_quiz_id is None and created.pending_task_id is None
        assert created.conversation_mode is False and created.replies_today == 0
        assert created.version == 0
        assert again.lesson_id == "L01"
        assert [s.phone for s in everyone] == [PHONE]

    def test_apply_turn_writes_delta_and_bumps_version(self, db_path):
        async def scenario():
            db = await open_test_db(db_path)
            try:
                session = await store.get_or_create_session(db, PHONE, "L01")
                delta = SessionDelta(mode=Mode.ENGLISH, pending_task_id="T01", conversation_mode=True)
                returned = await store.apply_turn(db, session, delta)
                return returned, await store.get_session(db, PHONE)
            finally:
                await db.close()

        returned, stored = asyncio.run(scenario())

        assert stored.mode == Mode.ENGLISH
        assert stored.pending_task_id == "T01"
        assert stored.conversation_mode is True
        assert stored.version == 1
        assert returned.version == stored.version
        assert returned.mode == stored.mode

    def test_explicit_none_clears_pending(self, db_path):
        async def scenario():
            db = await open_test_db(db_path)
            try:
                session = await store.get_or_create_session(db, PHONE, "L01")
                session = await store.apply_turn(db, session, SessionDelta(pending_quiz_id="Q01"))
                await store.apply_turn(db, session, SessionDelta(pending_quiz_id=None), _record(1.0))
                return await store.get_session(db, PHONE), await store.get_interactions(db, PHONE)
            finally:
                await db.close()

        stored, log = asyncio.run(scenario())

        assert stored.pending_quiz_id is None
        assert len(log) == 1 and log[0].prompt_id == "Q01"

    def test_stale_version_rejected_and_nothing_written(self, db_path):
        async def scenario():
            db = await open_test_db(db_path)
            try:
                snapshot = await store.get_or_create_session(db, PHONE, "L01")
                snapshot = await store.apply_turn(db, snapshot, SessionDelta(pending_quiz_id="Q01"))

                # Two turns raced from the same snapshot; the first one wins
                await store.apply_turn(db, snapshot, SessionDelta(pending_quiz_id=None), _record(1.0))
                with pytest.raises(ConcurrentUpdateError):
                    await store.apply_turn(db, snapshot, SessionDelta(pending_quiz_id=None), _record(0.0, "Q02"))

                return await store.get_interactions(db, PHONE)
            finally:
                await db.close()

        log = asyncio.run(scenario())

        assert [r.prompt_id for r in log] == ["Q01"]

    def test_empty_turn_writes_nothing(self, db_path):
        async def scenario():
            db = await open_test_db(db_path)
            try:
                session = await store.get_or_create_session(db, PHONE, "L01")
                await store.apply_turn(db, session, SessionDelta())
                return await store.get_session(db, PHONE)
            finally:
                await db.close()

        assert asyncio.run(scenario()).version == 0


class TestInteractions:

    def test_average_none_without_rows(self, db_path):
        async def scenario():
            db = await open_test_db(db_path)
            try:
                return await store.average_score(db, PHONE)
            finally:
                await db.close()

        assert asyncio.run(scenario()) is None

    def test_average_is_mean_of_log(self, db_path):
        async def scenario():
            db = await open_test_db(db_path)
            try:
                for score in (1.0, 0.5, 0.0, 1.0):
                    await store.append_interaction(db, _record(score))
                await db.commit()
                await store.append_interaction(db, InteractionRecord(
                    session_id="whatsapp:+1555", prompt_id="Q01",
                    learner_answer_text="x", analysis_text="y", score=0.0,
                ))
                await db.commit()
                return await store.average_score(db, PHONE)
            finally:
                await db.close()

        assert asyncio.run(scenario()) == pytest.approx(0.625)

    def test_score_outside_fixed_set_rejected(self, db_path):
        async def scenario():
            db = await open_test_db(db_path)
            try:
                await store.append_interaction(db, _record(0.7))
            finally:
                await db.close()

        with pytest.raises(ValueError):
            asyncio.run(scenario())


class TestDriverErrors:

    def test_driver_error_surfaces_as_store_error(self, tmp_path):
        async def scenario():
            # No schema: every query fails inside aiosqlite
            db = await aiosqlite.connect(str(tmp_path / "empty.db"))
            db.row_factory = aiosqlite.Row
            try:
                await store.get_or_create_session(db, PHONE, "L01")
            finally:
                await db.close()

        with pytest.raises(StoreError) as exc:
            asyncio.run(scenario())
        assert isinstance(exc.value.__cause__, aiosqlite.OperationalError)

    def test_lost_compare_and_set_is_a_store_error(self):
        assert issubclass(ConcurrentUpdateError, StoreError)
