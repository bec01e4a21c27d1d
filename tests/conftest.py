"""
Pytest configuration and fixtures for the quiz player tests.
"""
import sys
import os
import pytest

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Configure pytest-asyncio
pytest_plugins = ('pytest_asyncio',)

from factories import FakeClock, attempt_detail, make_api, quiz_definition  # noqa: E402
from services.session_store import MemoryStorage, SessionStore  # noqa: E402


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage):
    return SessionStore(storage, namespace="42")


@pytest.fixture
def api():
    """AsyncMock quiz API with a 3-question, 10-minute quiz and empty history"""
    return make_api()


@pytest.fixture
def timed_quiz():
    return quiz_definition(duration=10)


@pytest.fixture
def graded_record():
    """Review record with one correct, one wrong and one unanswered question"""
    return attempt_detail(
        question_order=["q1", "q2", "q3"],
        question_text=["2 + 2 = ?", "Ibu kota Indonesia?", "Matahari terbit dari timur"],
        question_type=["MULTIPLE_CHOICE", "SHORT_ANSWER", "TRUE_FALSE"],
        options_text=[["3", "4", "5"], None, ["Benar", "Salah"]],
        options_code=[["a", "b", "c"], None, ["T", "F"]],
        key_answer=["b", "Jakarta", "T"],
        answer=["b", "  bandung ", ""],
        flag=[False, True, None],
        raw_score=[10, 0, 0],
        question_score=[10, 10, 10],
        status="GRADED",
        total_score=33.3,
        is_passed=False,
    )
