from unittest.mock import AsyncMock

import pytest
from pydantic import ValidationError
from redis.exceptions import ConnectionError as RedisConnectionError

from factories import T0
from models.session import AttemptSession
from services.session_store import RedisStorage, SessionStore


def make_session(**fields) -> AttemptSession:
    data = {
        "attempt_id": "A1",
        "content_id": "Q1",
        "question_order": ["q1", "q2", "q3"],
        "start_time": T0,
        "duration_limit_minutes": 10,
    }
    data.update(fields)
    return AttemptSession(**data)


@pytest.mark.asyncio
async def test_save_and_load_keeps_progress(store):
    session = make_session(
        answer_map={"q1": "b", "q3": "Jakarta"},
        answered_flags={"q1": True},
        unsure_flags={"q3": True},
        current_index=2,
    )
    assert await store.save(session) is True

    loaded = await store.load("Q1")
    assert loaded is not None
    assert loaded.attempt_id == "A1"
    assert loaded.current_index == 2
    assert loaded.answer_map == {"q1": "b", "q3": "Jakarta"}
    assert loaded.answered_flags == {"q1": True}
    assert loaded.unsure_flags == {"q3": True}
    assert loaded.start_time == T0
    assert loaded.duration_limit_minutes == 10


@pytest.mark.asyncio
async def test_key_is_namespaced_per_learner(store, storage):
    await store.save(make_session())
    assert store.key("Q1") == "42:quiz_session_Q1"
    assert "42:quiz_session_Q1" in storage.data


@pytest.mark.asyncio
async def test_load_missing_returns_none(store):
    assert await store.load("nothing-here") is None


@pytest.mark.asyncio
async def test_corrupt_entry_is_treated_as_missing(store, storage):
    storage.data[store.key("Q1")] = "{not json"
    assert await store.load("Q1") is None

    # answers for questions outside the order break the session invariants
    storage.data[store.key("Q1")] = make_session().model_dump_json(by_alias=True).replace(
        '"answerMap":{}', '"answerMap":{"q9":"a"}'
    )
    assert await store.load("Q1") is None


@pytest.mark.asyncio
async def test_clear_is_idempotent(store):
    await store.save(make_session())
    await store.clear("Q1")
    await store.clear("Q1")
    assert await store.load("Q1") is None


@pytest.mark.asyncio
async def test_storage_errors_are_not_raised():
    storage = AsyncMock()
    storage.set.side_effect = RedisConnectionError("redis down")
    storage.get.side_effect = RedisConnectionError("redis down")
    storage.delete.side_effect = RedisConnectionError("redis down")
    store = SessionStore(storage)

    assert await store.save(make_session()) is False
    assert await store.load("Q1") is None
    await store.clear("Q1")


@pytest.mark.asyncio
async def test_redis_storage_sets_ttl():
    redis = AsyncMock()
    storage = RedisStorage(redis, ttl_seconds=120)
    await storage.set("k", "v")
    redis.set.assert_awaited_once_with("k", "v", ex=120)

    storage = RedisStorage(redis, ttl_seconds=0)
    await storage.set("k", "v")
    redis.set.assert_awaited_with("k", "v", ex=None)


def test_session_rejects_answers_outside_question_order():
    with pytest.raises(ValidationError):
        make_session(answer_map={"q9": "a"})


def test_session_clamps_current_index():
    assert make_session(current_index=10).current_index == 2
    assert make_session(current_index=-3).current_index == 0
    assert make_session(duration_limit_minutes=0).duration_limit_minutes is None
