"""Shared fixtures for the CodeSage test suite."""

import asyncio
import random
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

# Ensure the project root is on sys.path so the 'codesage' package resolves
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


# ---------------------------------------------------------------------------
# Bare object factory: skip __init__ for WebSocketSession
# ---------------------------------------------------------------------------

def make_bare_ws_session(*, session=None, coach=None):
    """Create a WebSocketSession with __new__ (skip __init__).

    The registry is an AsyncMock and the coach factory hands out a demo-mode
    coach unless *coach* is given. Callers add more attributes as needed.
    """
    from codesage.coach import InterviewCoach
    from codesage.ws_handler import WebSocketSession

    ws_session = WebSocketSession.__new__(WebSocketSession)
    ws_session.ws = AsyncMock()
    ws_session.registry = AsyncMock()
    ws_session.coach_factory = lambda: coach or InterviewCoach(None, rng=random.Random(0))
    ws_session.session = session
    ws_session._ws_alive = True
    ws_session._chat_lock = asyncio.Lock()
    return ws_session


def make_fake_llm(reply: str = "Tell me more about your approach.") -> MagicMock:
    """A stand-in for CoachLLM: ``complete`` and ``shutdown`` are AsyncMocks."""
    llm = MagicMock()
    llm.complete = AsyncMock(return_value=reply)
    llm.shutdown = AsyncMock()
    return llm


@pytest.fixture
def sample_problem():
    """A standalone problem that is not part of the shipped catalog."""
    from codesage.problems import CodingProblem

    return CodingProblem.model_validate({
        "id": "test-add",
        "order": 99,
        "title": "Test Add",
        "description": "Return the sum of a and b.",
        "initial_code": "def add(a, b):\n    pass",
        "difficulty": "Easy",
        "expected_complexity": {"time": "O(1)", "space": "O(1)"},
        "hints": ["Think about the + operator."],
        "test_cases": [{"input": "a = 1, b = 2", "output": "3"}],
        "category": "Math",
    })


@pytest.fixture
def first_catalog_problem():
    from codesage.problems import first_problem

    return first_problem()


@pytest.fixture
def fake_llm():
    return make_fake_llm()


@pytest.fixture
def demo_coach():
    from codesage.coach import InterviewCoach

    return InterviewCoach(None, rng=random.Random(0))


@pytest.fixture
def llm_coach(fake_llm):
    from codesage.coach import InterviewCoach

    return InterviewCoach(fake_llm, rng=random.Random(0))


class FakeClock:
    """Monotonic clock the tests can move forward by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def app(fake_llm):
    """The FastAPI app with a fresh session registry and no real model.

    WebSocket sessions get demo-mode coaches; the shared complexity coach is
    backed by ``fake_llm``.
    """
    from codesage.coach import InterviewCoach
    from codesage.session_registry import SessionRegistry

    with patch("codesage.server.session_registry", SessionRegistry()), \
         patch("codesage.server.make_coach", side_effect=lambda: InterviewCoach(None, rng=random.Random(0))), \
         patch("codesage.server._complexity_coach", InterviewCoach(fake_llm)):
        from codesage.server import app as fastapi_app
        yield fastapi_app


@pytest.fixture
async def client(app):
    """Async HTTP client for testing REST endpoints."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac
