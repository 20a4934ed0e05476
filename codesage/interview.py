"""Per-candidate practice session: transcript, phase, counters and timing.

One ``InterviewSession`` lives for one WebSocket conversation (plus a short
reconnect window in the registry). Nothing here is persisted.
"""

import logging
import random
import time
from dataclasses import dataclass, field, asdict
from enum import Enum
from uuid import uuid4

from . import problems as catalog
from .analyzer import analyze_code
from .coach import MAX_HINT_LEVEL, InterviewCoach, detect_message_type
from .metrics import Metrics, estimate_metrics
from .problems import CodingProblem

logger = logging.getLogger(__name__)

GUIDANCE_AFTER_RUNS = 3

EMPTY_CODE_MESSAGE = (
    "Please write some code first, then I can analyze its time and space complexity! 📝"
)


class Phase(str, Enum):
    INITIAL = "initial"
    CODING = "coding"
    GUIDANCE = "guidance"
    SUBMITTED = "submitted"
    COMPLETED = "completed"


class Sender(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class InterviewStateError(Exception):
    """An action that the current session state does not allow."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code


@dataclass
class Message:
    sender: Sender
    text: str
    is_hint: bool = False
    is_question: bool = False
    id: str = field(default_factory=lambda: uuid4().hex)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["sender"] = self.sender.value
        return data


def format_elapsed(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}:{secs:02d}"


def rate_performance(elapsed_seconds: float, efficiency: int) -> str:
    if elapsed_seconds < 900 and efficiency > 80:
        return "Excellent"
    if elapsed_seconds < 1800 and efficiency > 60:
        return "Good"
    if elapsed_seconds < 2700:
        return "Average"
    return "Needs Improvement"


class InterviewSession:
    def __init__(
        self,
        problem: CodingProblem,
        coach: InterviewCoach,
        *,
        clock=time.monotonic,
        rng: random.Random | None = None,
    ):
        self.session_id = uuid4().hex
        self.coach = coach
        self._clock = clock
        self._rng = rng
        self.started_at = clock()

        self.messages: list[Message] = []
        self.hints_used = 0
        self.questions_asked = 0
        self.code_submissions = 0
        self.problems_completed = 0
        self.complexity_history: list[str] = []
        self.phase = Phase.INITIAL

        self._reset_for(problem)

    def _reset_for(self, problem: CodingProblem):
        self.problem = problem
        self.code = problem.initial_code
        self.is_first_run = True
        self.has_started_coding = False
        self.run_count = 0
        self.problem_started_at = self._clock()
        self.metrics = Metrics()
        self.phase = Phase.INITIAL

    # ------------------------------------------------------------------
    # Transcript helpers
    # ------------------------------------------------------------------

    def _add(self, sender: Sender, text: str, **flags) -> Message:
        msg = Message(sender=sender, text=text, **flags)
        self.messages.append(msg)
        return msg

    def _assistant(self, text: str, **flags) -> Message:
        return self._add(Sender.ASSISTANT, text, **flags)

    def history(self) -> list[dict]:
        return [{"role": m.sender.value, "content": m.text} for m in self.messages]

    def _problem_context(self) -> str:
        return f"{self.problem.title}: {self.problem.description}"

    def _update_code(self, code: str | None):
        if code is not None:
            self.code = code

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def start(self) -> Message:
        """Greet the candidate for the current problem."""
        logger.info("Session %s greeting for problem %s", self.session_id, self.problem.id)
        return self._assistant(await self.coach.initial_greeting(self.problem))

    async def send_message(self, text: str, code: str | None = None) -> Message:
        text = text.strip()
        if not text:
            raise InterviewStateError("EMPTY_MESSAGE", "Message text is empty")
        self._update_code(code)

        kind = detect_message_type(text)
        if kind.is_hint_request:
            self.hints_used += 1
        if kind.is_question_asked:
            self.questions_asked += 1

        # History for the prompt excludes the message being answered.
        history = self.history()
        self._add(Sender.USER, text, is_question=kind.is_question_asked)
        reply = await self.coach.interview_response(
            text, self.code, self._problem_context(), history,
        )
        return self._assistant(reply, is_hint=kind.is_hint_request)

    async def run_code(self, code: str | None = None) -> Message:
        """Estimate metrics for the code and get interviewer feedback on it."""
        if self.phase == Phase.COMPLETED:
            raise InterviewStateError("INTERVIEW_COMPLETED", "The interview is already complete")
        self._update_code(code)

        self.code_submissions += 1
        self.run_count += 1
        self.has_started_coding = True

        analysis = analyze_code(self.code)
        self.metrics = estimate_metrics(self.code, self._rng)
        self.complexity_history.append(self.metrics.complexity)

        first = self.is_first_run
        reply = await self.coach.code_execution_response(
            self.code, self.problem.title, first, analysis,
        )
        self.is_first_run = False

        if self.phase != Phase.SUBMITTED:
            if first:
                self.phase = Phase.CODING
            elif self.run_count > GUIDANCE_AFTER_RUNS:
                self.phase = Phase.GUIDANCE
        return self._assistant(reply)

    async def submit(self, code: str | None = None) -> Message:
        if self.phase == Phase.COMPLETED:
            raise InterviewStateError("INTERVIEW_COMPLETED", "The interview is already complete")
        if self.phase == Phase.SUBMITTED:
            raise InterviewStateError("ALREADY_SUBMITTED", "This problem was already submitted")
        if not self.has_started_coding:
            raise InterviewStateError("NOT_RUN", "Run your code at least once before submitting")

        self._update_code(code)
        self.code_submissions += 1
        self.problems_completed += 1
        self.phase = Phase.SUBMITTED
        logger.info("Session %s submitted %s", self.session_id, self.problem.id)
        return self._assistant(
            await self.coach.code_execution_response(self.code, self.problem.title, False),
        )

    async def request_hint(self, code: str | None = None) -> Message:
        self._update_code(code)
        self.hints_used += 1
        level = min(self.hints_used, MAX_HINT_LEVEL)
        text = await self.coach.progressive_hint(self.problem.title, self.code, level)
        return self._assistant(text, is_hint=True)

    async def request_guidance(self, code: str | None = None) -> Message:
        self._update_code(code)
        minutes = int((self._clock() - self.problem_started_at) // 60)
        text = await self.coach.guidance_response(
            self.problem.title, self.code, minutes, max(self.run_count, 1),
        )
        return self._assistant(text)

    async def analyze_complexity(self, code: str | None = None) -> Message:
        self._update_code(code)
        if not self.code.strip():
            return self._assistant(EMPTY_CODE_MESSAGE)
        report = await self.coach.analyze_complexity(self.code)
        return self._assistant(report.to_markdown())

    async def next_problem(self) -> Message | None:
        """Advance to the next catalog problem.

        Returns the greeting for the new problem, or None when the session was
        already on the last problem and is now complete.
        """
        if self.phase != Phase.SUBMITTED:
            raise InterviewStateError("NOT_SUBMITTED", "Submit the current problem first")

        nxt = catalog.get_next_problem(self.problem.id)
        if nxt is None:
            self.phase = Phase.COMPLETED
            logger.info("Session %s finished the catalog", self.session_id)
            return None

        self._reset_for(nxt)
        return await self.start()

    async def complete(self) -> Message:
        if self.phase != Phase.COMPLETED:
            raise InterviewStateError("NOT_COMPLETED", "Finish the last problem first")
        text = await self.coach.closing_interaction(
            self.problems_completed,
            format_elapsed(self.elapsed_seconds),
            self.performance(),
        )
        return self._assistant(text)

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    @property
    def elapsed_seconds(self) -> float:
        return self._clock() - self.started_at

    def efficiency(self) -> int:
        if self.code_submissions == 0:
            return 0
        return max(0, 100 - self.hints_used * 10 - self.questions_asked * 5)

    def performance(self) -> str:
        return rate_performance(self.elapsed_seconds, self.efficiency())

    def summary(self) -> dict:
        return {
            "session_id": self.session_id,
            "problem_id": self.problem.id,
            "problem_title": self.problem.title,
            "phase": self.phase.value,
            "code": self.code,
            "is_first_run": self.is_first_run,
            "has_started_coding": self.has_started_coding,
            "hints_used": self.hints_used,
            "questions_asked": self.questions_asked,
            "code_submissions": self.code_submissions,
            "problems_completed": self.problems_completed,
            "complexity_history": list(self.complexity_history),
            "elapsed_seconds": int(self.elapsed_seconds),
            "efficiency": self.efficiency(),
            "performance": self.performance(),
            "metrics": self.metrics.to_dict(),
            "messages": [m.to_dict() for m in self.messages],
        }
