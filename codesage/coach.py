import json
import logging
import random
import re
from dataclasses import dataclass, asdict

from . import config
from .analyzer import Approach, CodeAnalysis, detect_approach
from .llm import CoachLLM, CoachUnavailableError
from .problems import CodingProblem

logger = logging.getLogger(__name__)

HISTORY_WINDOW = 4  # transcript entries quoted back to the model
MAX_HINT_LEVEL = 3

# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

GREETING_PROMPT = """A candidate just started working on "{problem_title}".

Problem: {problem_description}

Give a warm greeting that welcomes them, mentions this is a common interview question, \
encourages them to think aloud and sets a supportive tone. Sound like a senior engineer \
mentoring a colleague. 2-3 sentences."""

EXECUTION_PROMPT = """The candidate just {run_kind} for "{problem_title}".

CODE SUBMITTED:
{code}
{analysis_section}
Give immediate interviewer feedback:
1. Start with encouragement.
2. Comment on the approach without spoiling it. If it is brute force or uses nested loops, \
point out the O(n²) cost on large inputs. If it is efficient, say so.
3. Guide with a question, never with the answer.
4. Relate it to a real-world scenario when it fits.
Be conversational, as if sitting next to them. 2-3 sentences."""

GUIDANCE_PROMPT = """The candidate has been working on "{problem_title}" for {minutes_spent} minutes \
and this is attempt {attempt_count}.

CURRENT CODE:
{code}

They seem stuck. Acknowledge the effort, point at what they might be missing without \
spoiling it, and ask one leading question that offers a different perspective. 2-3 sentences."""

HINT_PROMPT = """Give a level {level} hint ({level_focus}) for "{problem_title}".

CURRENT CODE:
{code}

- Level 1: conceptual guidance, problem understanding
- Level 2: data structure suggestions, general approach
- Level 3: more specific algorithmic direction, but no direct answers

Keep it encouraging and interview-appropriate. Never give the full solution."""

CLOSING_PROMPT = """The candidate completed {problems_solved} problems in {total_time} with \
{performance} performance.

Close the session: congratulate them, highlight strengths, mention areas for improvement if \
any, encourage continued practice and end on a motivating note. 3-4 sentences."""

COMPLEXITY_PROMPT = """Analyze this code for time and space complexity. Be precise and educational:

```
{code}
```

Reply with JSON only:
{{
  "timeComplexity": "O(...)",
  "spaceComplexity": "O(...)",
  "explanation": "Brief explanation of the complexity analysis",
  "suggestions": ["suggestion 1", "suggestion 2", "suggestion 3"]
}}"""

INTERVIEW_PROMPT = """PROBLEM CONTEXT: {problem_context}

CURRENT CODE:
```
{code}
```

CONVERSATION HISTORY:
{history}

CANDIDATE'S MESSAGE: {message}

Respond as a supportive but challenging technical interviewer: encouraging but honest, focused \
on the problem-solving approach, hints that guide thinking rather than answers, follow-up \
questions, and time/space complexity when relevant. 2-3 sentences, emojis sparingly.
If they ask for hints, give progressive guidance. If they ask about complexity, analyze their \
current approach. If they are stuck, ask about their thought process."""

HINT_LEVEL_FOCUS = {
    1: "think about the problem conceptually first",
    2: "consider what data structures might help",
    3: "focus on the algorithm approach",
}

# ---------------------------------------------------------------------------
# Fallback copy
# ---------------------------------------------------------------------------

GREETING_FALLBACK = (
    "👋 Welcome! Let's tackle \"{problem_title}\" together. This is a popular interview question, "
    "so take your time and think aloud as you work through it - that's exactly what "
    "interviewers love to see!"
)

GUIDANCE_FALLBACK = (
    "I can see you're working hard on this! Sometimes it helps to step back and think about "
    "the problem differently. What's the core challenge we're trying to solve here?"
)

HINT_FALLBACKS = {
    1: "Let's think about this step by step. What exactly are we trying to find or achieve?",
    2: "Consider what data structure would help you keep track of elements efficiently.",
    3: "Think about whether you need to compare every element with every other element, "
       "or if there's a smarter way.",
}
HINT_FALLBACK_DEFAULT = "Keep thinking - you're on the right track!"

CLOSING_FALLBACK = (
    "🎉 Great work completing {problems_solved} problems! You showed solid problem-solving "
    "skills and good coding practices. Keep practicing these patterns - you're on the right "
    "track for your next interview!"
)

CHAT_UNAVAILABLE_FALLBACK = (
    "🤖 I'm having trouble with my AI model right now. Let me help you the traditional way - "
    "what specific part of this problem are you struggling with?"
)
CHAT_ERROR_FALLBACK = (
    "I'm having trouble connecting right now. Can you tell me more about your approach to "
    "this problem?"
)

# Per approach: (first run, later runs). None for later runs means the generic pool.
_EXECUTION_FEEDBACK = {
    Approach.EMPTY: (
        "Great! I see you're starting to code. Talk me through your approach - what's your "
        "initial strategy for solving this?",
        "I'm ready when you are! What are you thinking for the next step?",
    ),
    Approach.NESTED_LOOPS: (
        "Good work! Your logic is solid and this will definitely work. I notice this uses "
        "nested loops though - O(n²) complexity. For a million-element array, that's a "
        "trillion operations. What if we needed to process real-time user data?",
        "I see you're refining the nested loop approach. For applications processing large "
        "datasets, this O(n²) complexity could become a bottleneck. What data structure might "
        "help us track elements more efficiently?",
    ),
    Approach.HASHING: (
        "Excellent thinking! Using a hash-based approach shows great algorithmic intuition. "
        "This gives us O(1) average lookup time. How does this change our overall time "
        "complexity?",
        "Perfect! This hash-based solution is much more efficient - O(n) time complexity. "
        "This is exactly what we'd want in a production system. Can you walk me through how "
        "this handles edge cases?",
    ),
    Approach.SORTING: (
        "Interesting approach! Sorting first is a valid strategy. What's the time complexity "
        "when we factor in the sort operation? Are there any trade-offs we should consider?",
    ) * 2,
    Approach.COMPREHENSION: (
        "Nice! I like the functional programming approach - very clean and readable. This is "
        "definitely more Pythonic. What's the space complexity of this solution?",
    ) * 2,
    Approach.CONDITIONAL: (
        "Good start! I can see you're thinking through the logic flow. Tell me more about your "
        "approach - what conditions are you checking for?",
        "I like how you're handling the different cases. Are there any edge cases we should "
        "consider? What happens with empty inputs?",
    ),
    Approach.OTHER: (
        "Great! I can see you're getting started. Walk me through your thinking - what's your "
        "game plan for tackling this problem?",
        None,
    ),
}

ENCOURAGING_RESPONSES = (
    "Good progress! I can see you're thinking systematically about this. What's your next step?",
    "Nice work! Tell me about the approach you're taking - I'd love to understand your thought "
    "process.",
    "Solid start! How are you planning to handle the core logic here?",
    "I like where this is going! What's your strategy for optimizing this solution?",
    "Excellent! You're building this step by step. What data structures are you considering?",
)

# Scripted chat replies used when no model is configured. Checked in order.
_SCRIPTED_REPLIES = (
    (("nested", "loop"),
     "📊 I notice you're considering nested loops - that's a logical first approach!\n\n"
     "⚠️ This gives us O(n²) complexity. For large data (1M+ elements), that could mean "
     "billions of operations.\n\n"
     "💡 In real interviews, showing awareness of scalability signals senior-level thinking. "
     "Can you think of a data structure that offers O(1) lookup time?"),
    (("hash", "set"),
     "🎉 Excellent choice! Hash sets fit this problem really well.\n\n"
     "📈 O(1) average lookup × O(n) iteration = O(n) total.\n\n"
     "🔧 Sketch it out: start with an empty set, walk the input once, and decide what to do "
     "when an element is already there. How would you handle the result?"),
    (("complexity", "time"),
     "📊 Great question - this shows algorithmic maturity.\n\n"
     "⏱️ Nested loops: O(n²), works but doesn't scale. Hash-based: O(n). Sorting first: "
     "O(n log n).\n\n"
     "💾 The hash-based approach costs O(n) extra space, usually a reasonable trade-off. "
     "Always discuss both time and space in interviews!"),
    (("hint", "help"),
     "💡 Progressive hints:\n\n"
     "🔍 Level 1: What data structure allows instant membership checking?\n\n"
     "📚 Level 2: Think about Python's `set()`.\n\n"
     "🚀 Level 3: Iterate once, check existence, then decide whether to record a result or "
     "start tracking the element.\n\n"
     "💪 Asking for hints shows engagement, not weakness!"),
    (("done", "finished"),
     "🎉 Nice! Before we wrap up, walk me through your solution once more.\n\n"
     "✅ Does it handle edge cases like empty input?\n"
     "📊 What are the time and space complexities?\n\n"
     "🎯 Ready for a follow-up question about memory optimization?"),
)

SCRIPTED_DEFAULT_REPLIES = (
    "💭 Thoughtful approach! How do you evaluate the efficiency of your current solution?",
    "🎯 You're progressing well! How would your solution perform with millions of elements?",
    "🔍 Interesting direction! Have you considered edge cases? Testing boundary conditions "
    "separates good developers from great ones.",
    "📊 Good analytical thinking! What's the time complexity here? Interviewers love it when "
    "candidates bring up Big O on their own.",
    "💡 Solid reasoning! What improvements can we explore?",
    "🚀 Nice logic flow! What data structures offer constant-time lookup?",
)

_HINT_KEYWORDS = ("hint", "help", "stuck", "clue", "guidance", "tip")
_COMPLEXITY_KEYWORDS = ("complexity", "time", "space", "big o", "efficiency", "optimize")
_QUESTION_MARKERS = ("?", "how", "why", "what")

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


@dataclass
class MessageType:
    is_hint_request: bool
    is_complexity_question: bool
    is_question_asked: bool


@dataclass
class ComplexityReport:
    time_complexity: str
    space_complexity: str
    explanation: str
    suggestions: list[str]

    def to_dict(self) -> dict:
        return asdict(self)

    def to_markdown(self) -> str:
        tips = "\n".join(f"{i}. {tip}" for i, tip in enumerate(self.suggestions, start=1))
        return (
            "🔍 **Code Complexity Analysis**\n\n"
            f"⏱️ **Time Complexity:** {self.time_complexity}\n"
            f"💾 **Space Complexity:** {self.space_complexity}\n\n"
            f"📝 **Analysis:** {self.explanation}\n\n"
            f"💡 **Optimization Tips:**\n{tips}"
        )


DEMO_COMPLEXITY_REPORT = ComplexityReport(
    "O(n)", "O(1)", "Analysis not available in demo mode", ["Enable the AI coach for full analysis"],
)
UNPARSEABLE_COMPLEXITY_REPORT = ComplexityReport(
    "O(?)", "O(?)", "Unable to analyze complexity automatically.",
    ["Review your algorithm", "Consider edge cases", "Think about optimization"],
)
UNAVAILABLE_COMPLEXITY_REPORT = ComplexityReport(
    "O(?)", "O(?)",
    "AI analysis temporarily unavailable. Try manual analysis: count your loops and recursive calls.",
    ["Look for nested loops (O(n²))", "Single loops are usually O(n)", "Consider your data structure usage"],
)
FAILED_COMPLEXITY_REPORT = ComplexityReport(
    "O(?)", "O(?)", "Error occurred during analysis.",
    ["Check your code syntax", "Try running the code first", "Consider the algorithm's steps manually"],
)


def detect_message_type(message: str) -> MessageType:
    lowered = message.lower()
    return MessageType(
        is_hint_request=any(k in lowered for k in _HINT_KEYWORDS),
        is_complexity_question=any(k in lowered for k in _COMPLEXITY_KEYWORDS),
        # Case-sensitive: a capitalised "How" does not match.
        is_question_asked=any(m in message for m in _QUESTION_MARKERS),
    )


def parse_complexity_reply(text: str) -> ComplexityReport | None:
    """Pull the first ``{...}`` object out of a model reply."""
    match = _JSON_OBJECT_RE.search(text)
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    suggestions = data.get("suggestions") or []
    if not isinstance(suggestions, list):
        suggestions = [str(suggestions)]
    return ComplexityReport(
        time_complexity=str(data.get("timeComplexity", "O(?)")),
        space_complexity=str(data.get("spaceComplexity", "O(?)")),
        explanation=str(data.get("explanation", "")),
        suggestions=[str(s) for s in suggestions],
    )


def format_history(history: list[dict]) -> str:
    return "\n".join(
        f"{entry.get('role', 'unknown')}: {entry.get('content', '')}"
        for entry in history[-HISTORY_WINDOW:]
    )


class InterviewCoach:
    """Formats coach prompts, calls the model, and falls back to canned copy.

    With ``llm=None`` the coach is in demo mode and never calls out.
    """

    def __init__(self, llm: CoachLLM | None = None, rng: random.Random | None = None):
        self.llm = llm
        self.rng = rng or random.Random()

    @property
    def demo_mode(self) -> bool:
        return self.llm is None

    async def _ask(self, prompt: str, what: str) -> str | None:
        """Return the model reply, or None when the caller should fall back."""
        if self.llm is None:
            return None
        try:
            reply = await self.llm.complete(prompt)
        except CoachUnavailableError:
            logger.warning("Coach model unavailable for %s", what)
            raise
        except Exception:
            logger.exception("Error getting %s", what)
            return None
        reply = reply.strip()
        if not reply:
            logger.warning("Empty reply for %s", what)
            return None
        return reply

    async def _ask_or(self, prompt: str, what: str, fallback: str) -> str:
        try:
            reply = await self._ask(prompt, what)
        except CoachUnavailableError:
            return fallback
        return reply if reply is not None else fallback

    # ------------------------------------------------------------------

    async def initial_greeting(self, problem: CodingProblem) -> str:
        prompt = GREETING_PROMPT.format(
            problem_title=problem.title,
            problem_description=problem.description,
        )
        return await self._ask_or(
            prompt, "initial greeting", GREETING_FALLBACK.format(problem_title=problem.title),
        )

    def fallback_execution_response(self, code: str, is_first_run: bool) -> str:
        first, later = _EXECUTION_FEEDBACK[detect_approach(code)]
        if is_first_run:
            return first
        return later if later is not None else self.rng.choice(ENCOURAGING_RESPONSES)

    async def code_execution_response(
        self,
        code: str,
        problem_title: str,
        is_first_run: bool = False,
        analysis: CodeAnalysis | None = None,
    ) -> str:
        analysis_section = ""
        if analysis is not None:
            analysis_section = f"\nEXECUTION RESULT: {json.dumps(analysis.to_dict())}\n"
        prompt = EXECUTION_PROMPT.format(
            run_kind="ran their first solution" if is_first_run else "executed updated code",
            problem_title=problem_title,
            code=code,
            analysis_section=analysis_section,
        )
        return await self._ask_or(
            prompt, "code execution response", self.fallback_execution_response(code, is_first_run),
        )

    async def guidance_response(
        self, problem_title: str, code: str, minutes_spent: int, attempt_count: int,
    ) -> str:
        prompt = GUIDANCE_PROMPT.format(
            problem_title=problem_title,
            minutes_spent=minutes_spent,
            attempt_count=attempt_count,
            code=code,
        )
        return await self._ask_or(prompt, "guidance response", GUIDANCE_FALLBACK)

    async def progressive_hint(self, problem_title: str, code: str, level: int) -> str:
        fallback = HINT_FALLBACKS.get(level, HINT_FALLBACK_DEFAULT)
        if level not in HINT_LEVEL_FOCUS:
            return fallback
        prompt = HINT_PROMPT.format(
            level=level,
            level_focus=HINT_LEVEL_FOCUS[level],
            problem_title=problem_title,
            code=code,
        )
        return await self._ask_or(prompt, "progressive hint", fallback)

    async def closing_interaction(self, problems_solved: int, total_time: str, performance: str) -> str:
        prompt = CLOSING_PROMPT.format(
            problems_solved=problems_solved,
            total_time=total_time,
            performance=performance,
        )
        return await self._ask_or(
            prompt, "closing interaction", CLOSING_FALLBACK.format(problems_solved=problems_solved),
        )

    async def analyze_complexity(self, code: str) -> ComplexityReport:
        if self.demo_mode:
            return DEMO_COMPLEXITY_REPORT
        try:
            reply = await self._ask(COMPLEXITY_PROMPT.format(code=code), "complexity analysis")
        except CoachUnavailableError:
            return UNAVAILABLE_COMPLEXITY_REPORT
        if reply is None:
            return FAILED_COMPLEXITY_REPORT
        report = parse_complexity_reply(reply)
        if report is None:
            logger.warning("Complexity reply had no parseable JSON object")
            return UNPARSEABLE_COMPLEXITY_REPORT
        return report

    def scripted_reply(self, message: str) -> str:
        lowered = message.lower()
        for keywords, reply in _SCRIPTED_REPLIES:
            if any(k in lowered for k in keywords):
                return reply
        return self.rng.choice(SCRIPTED_DEFAULT_REPLIES)

    async def interview_response(
        self,
        message: str,
        code: str,
        problem_context: str,
        history: list[dict],
    ) -> str:
        if self.demo_mode:
            return self.scripted_reply(message)
        prompt = INTERVIEW_PROMPT.format(
            problem_context=problem_context,
            code=code,
            history=format_history(history),
            message=message,
        )
        try:
            reply = await self._ask(prompt, "interview response")
        except CoachUnavailableError:
            return CHAT_UNAVAILABLE_FALLBACK
        return reply if reply is not None else CHAT_ERROR_FALLBACK


def make_coach() -> InterviewCoach:
    """Build a coach for a new session, scripted when demo mode is on."""
    if config.DEMO_MODE:
        return InterviewCoach(None)
    return InterviewCoach(CoachLLM())
