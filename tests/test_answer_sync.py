import asyncio
from unittest.mock import AsyncMock

import pytest

from core.exceptions import QuizApiError, QuizApiUnavailable
from factories import T0, make_api
from models.session import AttemptSession
from services.answer_sync import AnswerSynchronizer, SaveOutcome


def make_session(**fields) -> AttemptSession:
    data = {"attempt_id": "A1", "content_id": "Q1", "question_order": ["q1", "q2", "q3"], "start_time": T0}
    data.update(fields)
    return AttemptSession(**data)


def saved_calls(api):
    """(question, answer, flag, is_update) for every save_answer call"""
    return [
        (c.args[0].id_question, c.args[0].answer, c.args[0].flag, c.kwargs["is_update"])
        for c in api.save_answer.await_args_list
    ]


@pytest.mark.asyncio
async def test_first_write_creates_later_writes_update():
    api = make_api()
    session = make_session()
    on_saved = AsyncMock()
    sync = AnswerSynchronizer(api, lambda: session, on_saved=on_saved)

    assert await sync.record_answer(session, "q1", "a") == SaveOutcome.SAVED
    assert await sync.record_answer(session, "q1", "b", flag=True) == SaveOutcome.SAVED
    assert await sync.record_answer(session, "q2", "c") == SaveOutcome.SAVED

    assert saved_calls(api) == [
        ("q1", "a", False, False),
        ("q1", "b", True, True),
        ("q2", "c", False, False),
    ]
    assert session.answer_map == {"q1": "b", "q2": "c"}
    assert session.answered_flags == {"q1": True, "q2": True}
    assert session.unsure_flags == {"q1": True, "q2": False}
    assert on_saved.await_count == 3


@pytest.mark.asyncio
async def test_update_is_chosen_from_restored_flags():
    api = make_api()
    session = make_session(answer_map={"q2": "a"}, answered_flags={"q2": True})
    sync = AnswerSynchronizer(api, lambda: session)

    await sync.record_answer(session, "q2", "b")
    assert saved_calls(api) == [("q2", "b", False, True)]


@pytest.mark.asyncio
async def test_failed_write_keeps_answer_locally():
    api = make_api()
    api.save_answer.side_effect = QuizApiUnavailable("timeout")
    session = make_session()
    on_failed = AsyncMock()
    sync = AnswerSynchronizer(api, lambda: session, on_failed=on_failed)

    assert await sync.record_answer(session, "q1", "a") == SaveOutcome.FAILED
    assert session.answer_map == {"q1": "a"}
    assert session.is_answered("q1") is False
    assert sync.failed == {"q1": "A1"}
    on_failed.assert_awaited_once_with(session, "q1")

    api.save_answer.side_effect = None
    assert await sync.retry_failed(session) == 0
    assert sync.failed == {}
    assert session.is_answered("q1") is True
    # never confirmed, so the retry is still a create
    assert saved_calls(api)[-1] == ("q1", "a", False, False)


@pytest.mark.asyncio
async def test_retry_counts_writes_that_still_fail():
    api = make_api()
    api.save_answer.side_effect = QuizApiError("boom", status_code=500)
    session = make_session()
    sync = AnswerSynchronizer(api, lambda: session)

    await sync.record_answer(session, "q1", "a")
    await sync.record_answer(session, "q3", "c")
    assert await sync.retry_failed(session) == 2


@pytest.mark.asyncio
async def test_retry_replays_unconfirmed_answers_after_restore():
    api = make_api()
    session = make_session(answer_map={"q1": "a", "q2": "b"}, answered_flags={"q1": True})
    sync = AnswerSynchronizer(api, lambda: session)

    assert await sync.retry_failed(session) == 0
    assert saved_calls(api) == [("q2", "b", False, False)]


@pytest.mark.asyncio
async def test_superseded_write_is_skipped():
    api = make_api()
    gate = asyncio.Event()
    first_call = True

    async def slow_first_save(payload, is_update=False):
        nonlocal first_call
        if first_call:
            first_call = False
            await gate.wait()

    api.save_answer.side_effect = slow_first_save
    session = make_session()
    sync = AnswerSynchronizer(api, lambda: session)

    first = asyncio.create_task(sync.record_answer(session, "q1", "a"))
    await asyncio.sleep(0)
    second = asyncio.create_task(sync.record_answer(session, "q1", "b"))
    third = asyncio.create_task(sync.record_answer(session, "q1", "c"))
    await asyncio.sleep(0)
    assert sync.has_pending() is True

    gate.set()
    outcomes = await asyncio.gather(first, second, third)

    assert outcomes == [SaveOutcome.SAVED, SaveOutcome.SUPERSEDED, SaveOutcome.SAVED]
    assert saved_calls(api) == [("q1", "a", False, False), ("q1", "c", False, True)]
    assert session.answer_map["q1"] == "c"


@pytest.mark.asyncio
async def test_write_for_replaced_attempt_is_discarded():
    api = make_api()
    old = make_session(attempt_id="A1")
    live = make_session(attempt_id="A2")
    sync = AnswerSynchronizer(api, lambda: live)

    assert await sync.record_answer(old, "q1", "a") == SaveOutcome.STALE
    api.save_answer.assert_not_awaited()
    assert live.answer_map == {}


@pytest.mark.asyncio
async def test_unknown_question_is_rejected():
    session = make_session()
    sync = AnswerSynchronizer(make_api(), lambda: session)
    with pytest.raises(ValueError):
        await sync.record_answer(session, "q9", "a")


@pytest.mark.asyncio
async def test_drain_waits_for_write_in_flight():
    api = make_api()
    gate = asyncio.Event()

    async def held_save(payload, is_update=False):
        await gate.wait()

    api.save_answer.side_effect = held_save
    session = make_session()
    sync = AnswerSynchronizer(api, lambda: session)

    write = asyncio.create_task(sync.record_answer(session, "q2", "b", flag=True))
    await asyncio.sleep(0)
    assert session.unsure_flags["q2"] is True
    assert session.is_answered("q2") is False

    drained = asyncio.create_task(sync.drain())
    await asyncio.sleep(0)
    assert drained.done() is False

    gate.set()
    await drained
    assert sync.has_pending() is False
    assert write.done() is True
    assert session.is_answered("q2") is True
