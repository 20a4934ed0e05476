"""Tests for WebSocket protocol -- message validation, session flow, and handlers.

Patterns used here:
- Bare object factory (make_bare_ws_session): skip __init__
- Message filtering via call list: filter ws.send_json calls by type
- Real SessionRegistry with a fake clock for resume tests
"""

import pytest
from starlette.testclient import TestClient

from codesage.coach import InterviewCoach
from codesage.interview import InterviewSession, Phase
from codesage.session_registry import SessionRegistry

from tests.conftest import make_bare_ws_session, make_fake_llm
from tests.test_analyzer import HASH_SET


# ---------------------------------------------------------------------------
# Message filtering helper
# ---------------------------------------------------------------------------

def filter_ws_messages(ws_mock, msg_type: str) -> list[dict]:
    """Extract all messages of a given type sent through a mock WebSocket.

    Uses call_args_list to inspect every call to ws.send_json() and returns
    only those whose ``type`` field matches *msg_type*.
    """
    return [
        c[0][0]
        for c in ws_mock.send_json.call_args_list
        if isinstance(c[0][0], dict) and c[0][0].get("type") == msg_type
    ]


def sent_types(ws_mock) -> list[str]:
    return [c[0][0].get("type") for c in ws_mock.send_json.call_args_list]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def ws_app(app):
    """Wrap the FastAPI app in a synchronous TestClient for WebSocket tests."""
    return TestClient(app, raise_server_exceptions=False)


def _start(ws, problem_id=None) -> dict:
    msg = {"type": "start_session"}
    if problem_id:
        msg["problem_id"] = problem_id
    ws.send_json(msg)
    started = ws.receive_json()
    assert started["type"] == "session_started"
    greeting = ws.receive_json()
    assert greeting["type"] == "assistant_message"
    return started


# ---------------------------------------------------------------------------
# Message validation
# ---------------------------------------------------------------------------

class TestWsMessageValidation:

    def test_unknown_message_type_returns_error(self, ws_app):
        with ws_app.websocket_connect("/ws/chat") as ws:
            ws.send_json({"type": "totally_unknown_type"})
            resp = ws.receive_json()
            assert resp["type"] == "error"
            assert "Unknown message type" in resp["content"]

    def test_missing_message_type_returns_error(self, ws_app):
        with ws_app.websocket_connect("/ws/chat") as ws:
            ws.send_json({"content": "no type field"})
            resp = ws.receive_json()
            assert resp["type"] == "error"
            assert "Missing message type" in resp["content"]

    def test_malformed_json_returns_error(self, ws_app):
        with ws_app.websocket_connect("/ws/chat") as ws:
            ws.send_text("this is not json {{{")
            resp = ws.receive_json()
            assert resp["type"] == "error"
            assert "Invalid message format" in resp["content"]

    def test_non_object_json_returns_error(self, ws_app):
        with ws_app.websocket_connect("/ws/chat") as ws:
            ws.send_text("[1, 2, 3]")
            resp = ws.receive_json()
            assert resp["type"] == "error"

    def test_actions_need_a_session(self, ws_app):
        with ws_app.websocket_connect("/ws/chat") as ws:
            ws.send_json({"type": "run_code", "code": "x = 1"})
            resp = ws.receive_json()
            assert resp["type"] == "error"
            assert resp["code"] == "NO_ACTIVE_SESSION"


# ---------------------------------------------------------------------------
# Session start
# ---------------------------------------------------------------------------

class TestWsStartSession:

    def test_start_session_defaults_to_first_problem(self, ws_app):
        with ws_app.websocket_connect("/ws/chat") as ws:
            started = _start(ws)
            assert started["problem"]["id"] == "find-duplicates"
            assert started["phase"] == "initial"
            assert started["demo_mode"] is True
            assert len(started["session_id"]) == 32

    def test_start_session_with_problem_id(self, ws_app):
        with ws_app.websocket_connect("/ws/chat") as ws:
            started = _start(ws, "two-sum")
            assert started["problem"]["title"] == "Two Sum"

    def test_start_session_with_unknown_problem(self, ws_app):
        with ws_app.websocket_connect("/ws/chat") as ws:
            ws.send_json({"type": "start_session", "problem_id": "nonexistent-xyz"})
            resp = ws.receive_json()
            assert resp["type"] == "error"
            assert resp["code"] == "PROBLEM_NOT_FOUND"

    @pytest.mark.parametrize("problem_id", [["two-sum"], {"id": "two-sum"}, 7])
    def test_start_session_with_non_string_problem_id(self, ws_app, problem_id):
        with ws_app.websocket_connect("/ws/chat") as ws:
            ws.send_json({"type": "start_session", "problem_id": problem_id})
            resp = ws.receive_json()
            assert resp["type"] == "error"
            assert resp["code"] == "INVALID_REQUEST"

    def test_restart_replaces_session(self, ws_app, app):
        from codesage import server

        with ws_app.websocket_connect("/ws/chat") as ws:
            first = _start(ws)
            second = _start(ws)
            assert first["session_id"] != second["session_id"]
            assert len(server.session_registry) == 1


# ---------------------------------------------------------------------------
# Interview flow
# ---------------------------------------------------------------------------

class TestWsInterviewFlow:

    def test_chat_message_gets_reply(self, ws_app):
        with ws_app.websocket_connect("/ws/chat") as ws:
            _start(ws)
            ws.send_json({"type": "message", "content": "Should I use a hash set?"})
            resp = ws.receive_json()
            assert resp["type"] == "assistant_message"
            assert resp["message"]["sender"] == "assistant"

    def test_empty_chat_message_rejected(self, ws_app):
        with ws_app.websocket_connect("/ws/chat") as ws:
            _start(ws)
            ws.send_json({"type": "message", "content": "   "})
            resp = ws.receive_json()
            assert resp["type"] == "error"
            assert resp["code"] == "EMPTY_MESSAGE"

    def test_run_code_sends_feedback_phase_and_metrics(self, ws_app):
        with ws_app.websocket_connect("/ws/chat") as ws:
            _start(ws)
            ws.send_json({"type": "run_code", "code": HASH_SET})
            feedback = ws.receive_json()
            phase = ws.receive_json()
            metrics = ws.receive_json()
            assert feedback["type"] == "assistant_message"
            assert phase == {"type": "phase_changed", "phase": "coding"}
            assert metrics["type"] == "metrics"
            assert metrics["metrics"]["complexity"] == "O(n)"

    def test_submit_before_run_is_rejected(self, ws_app):
        with ws_app.websocket_connect("/ws/chat") as ws:
            _start(ws)
            ws.send_json({"type": "submit", "code": HASH_SET})
            resp = ws.receive_json()
            assert resp["type"] == "error"
            assert resp["code"] == "NOT_RUN"

    def test_oversized_code_rejected(self, ws_app):
        with ws_app.websocket_connect("/ws/chat") as ws:
            _start(ws)
            ws.send_json({"type": "run_code", "code": "x" * 60_000})
            resp = ws.receive_json()
            assert resp["type"] == "error"
            assert resp["code"] == "INVALID_REQUEST"

    def test_submit_then_next_problem(self, ws_app):
        with ws_app.websocket_connect("/ws/chat") as ws:
            _start(ws)
            ws.send_json({"type": "run_code", "code": HASH_SET})
            for _ in range(3):
                ws.receive_json()

            ws.send_json({"type": "submit"})
            assert ws.receive_json()["type"] == "assistant_message"
            assert ws.receive_json() == {"type": "phase_changed", "phase": "submitted"}

            ws.send_json({"type": "next_problem"})
            changed = ws.receive_json()
            assert changed["type"] == "problem_changed"
            assert changed["problem"]["id"] == "two-sum"
            assert ws.receive_json()["type"] == "assistant_message"
            assert ws.receive_json() == {"type": "phase_changed", "phase": "initial"}

    def test_complete_before_last_problem_rejected(self, ws_app):
        with ws_app.websocket_connect("/ws/chat") as ws:
            _start(ws)
            ws.send_json({"type": "complete_interview"})
            resp = ws.receive_json()
            assert resp["type"] == "error"
            assert resp["code"] == "NOT_COMPLETED"

    def test_full_interview_on_last_problem(self, ws_app):
        code = "def merge(intervals):\n    return sorted(intervals)"
        with ws_app.websocket_connect("/ws/chat") as ws:
            _start(ws, "merge-intervals")
            ws.send_json({"type": "run_code", "code": code})
            for _ in range(3):
                ws.receive_json()
            ws.send_json({"type": "submit"})
            ws.receive_json()
            ws.receive_json()

            ws.send_json({"type": "next_problem"})
            assert ws.receive_json() == {"type": "phase_changed", "phase": "completed"}

            ws.send_json({"type": "complete_interview"})
            assert ws.receive_json()["type"] == "assistant_message"
            done = ws.receive_json()
            assert done["type"] == "interview_completed"
            assert done["summary"]["problems_completed"] == 1


# ---------------------------------------------------------------------------
# Resume
# ---------------------------------------------------------------------------

class TestWsResume:

    def test_resume_with_invalid_id(self, ws_app):
        with ws_app.websocket_connect("/ws/chat") as ws:
            ws.send_json({"type": "resume_session", "session_id": "../etc"})
            resp = ws.receive_json()
            assert resp["type"] == "error"
            assert resp["code"] == "INVALID_REQUEST"

    def test_resume_active_session_not_allowed(self, ws_app):
        with ws_app.websocket_connect("/ws/chat") as ws:
            started = _start(ws)
            ws.send_json({"type": "resume_session", "session_id": started["session_id"]})
            resp = ws.receive_json()
            assert resp["type"] == "error"
            assert resp["code"] == "SESSION_NOT_FOUND"


# ---------------------------------------------------------------------------
# Bare object factory: unit-test handler methods directly
# ---------------------------------------------------------------------------

class TestBareSessionHandlers:
    """Use make_bare_ws_session() to test handler methods in isolation.

    The registry is an AsyncMock unless a test swaps in a real one.
    """

    @pytest.mark.asyncio
    async def test_handle_start_session_registers(self):
        ws_session = make_bare_ws_session()

        await ws_session.handle_start_session({"problem_id": "two-sum"})

        assert ws_session.session.problem.id == "two-sum"
        ws_session.registry.register.assert_awaited_once_with(ws_session.session)
        assert sent_types(ws_session.ws) == ["session_started", "assistant_message"]

    @pytest.mark.asyncio
    async def test_handle_end_session_removes(self, first_catalog_problem, demo_coach):
        session = InterviewSession(first_catalog_problem, demo_coach)
        ws_session = make_bare_ws_session(session=session)

        await ws_session.handle_end_session({})

        assert ws_session.session is None
        ws_session.registry.remove.assert_awaited_once_with(session.session_id)

    @pytest.mark.asyncio
    async def test_cleanup_parks_session(self, first_catalog_problem, demo_coach):
        session = InterviewSession(first_catalog_problem, demo_coach)
        ws_session = make_bare_ws_session(session=session)

        await ws_session.cleanup()

        ws_session.registry.park.assert_awaited_once_with(session.session_id)
        assert ws_session.session is None

    @pytest.mark.asyncio
    async def test_hint_request_marks_message(self, first_catalog_problem, demo_coach):
        session = InterviewSession(first_catalog_problem, demo_coach)
        ws_session = make_bare_ws_session(session=session)

        await ws_session.handle_request_hint({})

        (reply,) = filter_ws_messages(ws_session.ws, "assistant_message")
        assert reply["message"]["is_hint"] is True
        assert session.hints_used == 1

    @pytest.mark.asyncio
    async def test_guidance_phase_after_repeated_runs(self, first_catalog_problem, demo_coach):
        session = InterviewSession(first_catalog_problem, demo_coach)
        ws_session = make_bare_ws_session(session=session)

        for _ in range(4):
            await ws_session.handle_run_code({"code": HASH_SET})

        phases = [m["phase"] for m in filter_ws_messages(ws_session.ws, "phase_changed")]
        assert phases == ["coding", "guidance"]
        assert len(filter_ws_messages(ws_session.ws, "metrics")) == 4

    @pytest.mark.asyncio
    async def test_analyze_complexity_sends_report(self, first_catalog_problem, demo_coach):
        session = InterviewSession(first_catalog_problem, demo_coach)
        ws_session = make_bare_ws_session(session=session)

        await ws_session.handle_analyze_complexity({"code": HASH_SET})

        (reply,) = filter_ws_messages(ws_session.ws, "assistant_message")
        assert reply["content"].startswith("🔍")
        assert session.phase is Phase.INITIAL

    @pytest.mark.asyncio
    async def test_send_after_disconnect_is_dropped(self):
        ws_session = make_bare_ws_session()
        ws_session.ws.send_json.side_effect = RuntimeError("closed")

        assert await ws_session.safe_send({"type": "error"}) is False
        assert await ws_session.safe_send({"type": "error"}) is False
        assert ws_session.ws.send_json.await_count == 1

    @pytest.mark.asyncio
    async def test_resume_parked_session(self, first_catalog_problem, demo_coach, clock):
        registry = SessionRegistry(ttl_seconds=300, clock=clock)
        session = InterviewSession(first_catalog_problem, demo_coach, clock=clock)
        await registry.register(session)
        await registry.park(session.session_id)

        ws_session = make_bare_ws_session()
        ws_session.registry = registry
        await ws_session.handle_resume_session({"session_id": session.session_id})

        assert ws_session.session is session
        (resumed,) = filter_ws_messages(ws_session.ws, "session_resumed")
        assert resumed["summary"]["problem_id"] == "find-duplicates"

    @pytest.mark.asyncio
    async def test_resume_expired_session(self, first_catalog_problem, clock):
        registry = SessionRegistry(ttl_seconds=300, clock=clock)
        llm = make_fake_llm()
        session = InterviewSession(first_catalog_problem, InterviewCoach(llm), clock=clock)
        await registry.register(session)
        await registry.park(session.session_id)
        clock.advance(301)

        ws_session = make_bare_ws_session()
        ws_session.registry = registry
        await ws_session.handle_resume_session({"session_id": session.session_id})

        assert ws_session.session is None
        (error,) = filter_ws_messages(ws_session.ws, "error")
        assert error["code"] == "SESSION_NOT_FOUND"
