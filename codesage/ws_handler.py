"""WebSocket chat handler: one practice interview per connection.

The main entry point is ``websocket_chat()``, which is mounted as
``/ws/chat`` by server.py.
"""

import asyncio
import json
import logging
from typing import Callable

from fastapi import WebSocket, WebSocketDisconnect

from .coach import InterviewCoach
from .interview import InterviewSession, InterviewStateError, Message
from .problems import first_problem, get_problem
from .session_registry import SessionRegistry, is_valid_session_id
from .ws_constants import (
    MSG_START_SESSION,
    MSG_MESSAGE,
    MSG_RUN_CODE,
    MSG_SUBMIT,
    MSG_REQUEST_HINT,
    MSG_REQUEST_GUIDANCE,
    MSG_ANALYZE_COMPLEXITY,
    MSG_NEXT_PROBLEM,
    MSG_COMPLETE_INTERVIEW,
    MSG_RESUME_SESSION,
    MSG_END_SESSION,
    MSG_SESSION_STARTED,
    MSG_SESSION_RESUMED,
    MSG_ASSISTANT_MESSAGE,
    MSG_METRICS,
    MSG_PHASE_CHANGED,
    MSG_PROBLEM_CHANGED,
    MSG_INTERVIEW_COMPLETED,
    MSG_ERROR,
    ERR_NO_ACTIVE_SESSION,
    ERR_PROBLEM_NOT_FOUND,
    ERR_SESSION_NOT_FOUND,
    ERR_INVALID_REQUEST,
)

logger = logging.getLogger(__name__)

MAX_CODE_LENGTH = 50_000  # characters
MAX_MESSAGE_LENGTH = 5_000  # characters


class WebSocketSession:
    """Holds all mutable state for a single WebSocket connection.

    Each message type is handled by a ``handle_<type>`` method, keeping the
    main loop thin and each handler focused on one concern.
    """

    def __init__(
        self,
        websocket: WebSocket,
        *,
        registry: SessionRegistry,
        coach_factory: Callable[[], InterviewCoach],
    ):
        self.ws = websocket
        self.registry = registry
        self.coach_factory = coach_factory

        # Per-connection mutable state
        self.session: InterviewSession | None = None
        self._ws_alive = True
        self._chat_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def safe_send(self, data: dict) -> bool:
        """Send JSON to client, return False if disconnected."""
        if not self._ws_alive:
            return False
        try:
            await self.ws.send_json(data)
            return True
        except (WebSocketDisconnect, RuntimeError):
            self._ws_alive = False
            return False

    async def send_error(self, content: str, code: str | None = None) -> None:
        payload = {"type": MSG_ERROR, "content": content}
        if code:
            payload["code"] = code
        await self.safe_send(payload)

    async def send_assistant(self, message: Message) -> None:
        await self.safe_send({
            "type": MSG_ASSISTANT_MESSAGE,
            "content": message.text,
            "message": message.to_dict(),
        })

    def _problem_payload(self) -> dict:
        return self.session.problem.model_dump(mode="json")

    async def _read_code(self, msg: dict) -> tuple[bool, str | None]:
        code = msg.get("code")
        if code is None:
            return True, None
        if not isinstance(code, str) or len(code) > MAX_CODE_LENGTH:
            logger.warning("Rejected code payload from client")
            await self.send_error("Invalid code payload.", ERR_INVALID_REQUEST)
            return False, None
        return True, code

    async def _release_session(self) -> None:
        if self.session is not None:
            await self.registry.remove(self.session.session_id)
            self.session = None

    async def _require_session(self) -> bool:
        if self.session is None:
            await self.send_error("No active session. Start a session first.", ERR_NO_ACTIVE_SESSION)
            return False
        return True

    async def _perform(self, action, *args) -> Message | None:
        """Run a session operation and push the resulting state changes to the client."""
        session = self.session
        phase_before = session.phase
        problem_before = session.problem.id
        try:
            async with self._chat_lock:
                reply = await action(*args)
        except InterviewStateError as exc:
            await self.send_error(str(exc), exc.code)
            return None

        if session.problem.id != problem_before:
            await self.safe_send({"type": MSG_PROBLEM_CHANGED, "problem": self._problem_payload()})
        if reply is not None:
            await self.send_assistant(reply)
        if session.phase != phase_before:
            await self.safe_send({"type": MSG_PHASE_CHANGED, "phase": session.phase.value})
        return reply

    # ------------------------------------------------------------------
    # Message handlers
    # ------------------------------------------------------------------

    async def handle_start_session(self, msg: dict) -> None:
        problem_id = msg.get("problem_id")
        if problem_id is not None and not isinstance(problem_id, str):
            await self.send_error("Invalid problem_id.", ERR_INVALID_REQUEST)
            return
        problem = get_problem(problem_id) if problem_id else first_problem()
        if problem is None:
            await self.send_error("Problem not found", ERR_PROBLEM_NOT_FOUND)
            return

        # Clean up previous session
        await self._release_session()

        self.session = InterviewSession(problem, self.coach_factory())
        await self.registry.register(self.session)
        await self.safe_send({
            "type": MSG_SESSION_STARTED,
            "session_id": self.session.session_id,
            "problem": self._problem_payload(),
            "phase": self.session.phase.value,
            "demo_mode": self.session.coach.demo_mode,
        })

        async with self._chat_lock:
            greeting = await self.session.start()
        await self.send_assistant(greeting)

    async def handle_message(self, msg: dict) -> None:
        content = msg.get("content", "")
        if not isinstance(content, str) or len(content) > MAX_MESSAGE_LENGTH:
            await self.send_error("Invalid message content.", ERR_INVALID_REQUEST)
            return
        ok, code = await self._read_code(msg)
        if not ok or not await self._require_session():
            return
        await self._perform(self.session.send_message, content, code)

    async def _handle_code_action(self, msg: dict, action_name: str) -> Message | None:
        ok, code = await self._read_code(msg)
        if not ok or not await self._require_session():
            return None
        return await self._perform(getattr(self.session, action_name), code)

    async def handle_run_code(self, msg: dict) -> None:
        reply = await self._handle_code_action(msg, "run_code")
        if reply is not None:
            await self.safe_send({"type": MSG_METRICS, "metrics": self.session.metrics.to_dict()})

    async def handle_submit(self, msg: dict) -> None:
        await self._handle_code_action(msg, "submit")

    async def handle_request_hint(self, msg: dict) -> None:
        await self._handle_code_action(msg, "request_hint")

    async def handle_request_guidance(self, msg: dict) -> None:
        await self._handle_code_action(msg, "request_guidance")

    async def handle_analyze_complexity(self, msg: dict) -> None:
        await self._handle_code_action(msg, "analyze_complexity")

    async def handle_next_problem(self, msg: dict) -> None:
        if not await self._require_session():
            return
        await self._perform(self.session.next_problem)

    async def handle_complete_interview(self, msg: dict) -> None:
        if not await self._require_session():
            return
        reply = await self._perform(self.session.complete)
        if reply is not None:
            await self.safe_send({"type": MSG_INTERVIEW_COMPLETED, "summary": self.session.summary()})

    async def handle_resume_session(self, msg: dict) -> None:
        resume_sid = msg.get("session_id")
        if not resume_sid or not is_valid_session_id(resume_sid):
            await self.send_error("Invalid session ID for resume.", ERR_INVALID_REQUEST)
            return

        session = await self.registry.reclaim(resume_sid)
        if session is None:
            await self.send_error("Session not found.", ERR_SESSION_NOT_FOUND)
            return

        # Drop whatever this connection had before
        if self.session is not None and self.session.session_id != resume_sid:
            await self._release_session()
        self.session = session

        await self.safe_send({
            "type": MSG_SESSION_RESUMED,
            "session_id": resume_sid,
            "problem": self._problem_payload(),
            "summary": session.summary(),
        })
        logger.info("Resumed session %s", resume_sid)

    async def handle_end_session(self, msg: dict) -> None:
        await self._release_session()

    # ------------------------------------------------------------------
    # Main loop & cleanup
    # ------------------------------------------------------------------

    # Dispatch table: message type -> handler method name
    _HANDLERS = {
        MSG_START_SESSION: "handle_start_session",
        MSG_MESSAGE: "handle_message",
        MSG_RUN_CODE: "handle_run_code",
        MSG_SUBMIT: "handle_submit",
        MSG_REQUEST_HINT: "handle_request_hint",
        MSG_REQUEST_GUIDANCE: "handle_request_guidance",
        MSG_ANALYZE_COMPLEXITY: "handle_analyze_complexity",
        MSG_NEXT_PROBLEM: "handle_next_problem",
        MSG_COMPLETE_INTERVIEW: "handle_complete_interview",
        MSG_RESUME_SESSION: "handle_resume_session",
        MSG_END_SESSION: "handle_end_session",
    }

    async def run(self) -> None:
        """Main message loop: dispatches to handler methods."""
        try:
            while True:
                data = await self.ws.receive_text()

                try:
                    msg = json.loads(data)
                except (json.JSONDecodeError, ValueError) as e:
                    logger.warning("Malformed JSON from client: %s", e)
                    await self.ws.send_json({"type": MSG_ERROR, "content": "Invalid message format."})
                    continue

                if not isinstance(msg, dict):
                    await self.ws.send_json({"type": MSG_ERROR, "content": "Invalid message format."})
                    continue

                msg_type = msg.get("type")
                if not msg_type:
                    await self.ws.send_json({"type": MSG_ERROR, "content": "Missing message type."})
                    continue

                handler_name = self._HANDLERS.get(msg_type)
                if not handler_name:
                    await self.ws.send_json({"type": MSG_ERROR, "content": f"Unknown message type: {msg_type}"})
                    continue

                try:
                    await getattr(self, handler_name)(msg)
                except Exception:
                    logger.exception("Unexpected error handling message type=%s", msg_type)
                    await self.safe_send({"type": MSG_ERROR, "content": "An internal error occurred."})
        except (WebSocketDisconnect, RuntimeError):
            pass

    async def cleanup(self) -> None:
        """Park the session on disconnect so the client can resume it."""
        if self.session is None:
            return
        try:
            await self.registry.park(self.session.session_id)
        except Exception:
            logger.exception("Failed to park session, removing it")
            await self.registry.remove(self.session.session_id)
        self.session = None


# ------------------------------------------------------------------
# FastAPI endpoint: this is what server.py mounts at /ws/chat
# ------------------------------------------------------------------

async def websocket_chat(
    websocket: WebSocket,
    *,
    registry: SessionRegistry,
    coach_factory: Callable[[], InterviewCoach],
) -> None:
    """WebSocket endpoint handler for /ws/chat."""
    await websocket.accept()
    session = WebSocketSession(websocket, registry=registry, coach_factory=coach_factory)
    try:
        await session.run()
    finally:
        await session.cleanup()
