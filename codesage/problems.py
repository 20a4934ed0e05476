import json
import logging
import random
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

PROBLEMS_DIR = Path(__file__).parent / "problems"


class Difficulty(str, Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"


# Badge colour shown next to the problem title.
DIFFICULTY_BADGES = {
    Difficulty.EASY: "green",
    Difficulty.MEDIUM: "yellow",
    Difficulty.HARD: "red",
}


class ExpectedComplexity(BaseModel):
    model_config = ConfigDict(frozen=True)

    time: str
    space: str


class ExampleCase(BaseModel):
    model_config = ConfigDict(frozen=True)

    input: str
    output: str
    explanation: str | None = None


class CodingProblem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    order: int
    title: str
    description: str
    initial_code: str
    difficulty: Difficulty
    expected_complexity: ExpectedComplexity
    hints: tuple[str, ...] = ()
    test_cases: tuple[ExampleCase, ...] = ()
    category: str
    interview_context: str = ""


# ---------------------------------------------------------------------------
# Catalog loading
# ---------------------------------------------------------------------------

def _load_problems() -> dict[str, CodingProblem]:
    loaded = []
    for f in PROBLEMS_DIR.glob("*.json"):
        try:
            loaded.append(CodingProblem.model_validate(json.loads(f.read_text(encoding="utf-8"))))
        except (json.JSONDecodeError, ValidationError) as exc:
            logger.warning("Skipping %s: %s", f.name, exc)
    loaded.sort(key=lambda p: (p.order, p.id))
    return {p.id: p for p in loaded}


PROBLEMS = _load_problems()


def get_problem(problem_id: str) -> CodingProblem | None:
    return PROBLEMS.get(problem_id)


def list_problems() -> list[dict]:
    return [
        {
            "id": p.id,
            "title": p.title,
            "difficulty": p.difficulty.value,
            "category": p.category,
            "badge": difficulty_badge(p.difficulty),
        }
        for p in PROBLEMS.values()
    ]


def first_problem() -> CodingProblem | None:
    return next(iter(PROBLEMS.values()), None)


def get_next_problem(current_id: str) -> CodingProblem | None:
    """Return the problem after ``current_id`` in catalog order.

    None when the id is unknown or already the last entry.
    """
    ids = list(PROBLEMS)
    try:
        index = ids.index(current_id)
    except ValueError:
        return None
    if index >= len(ids) - 1:
        return None
    return PROBLEMS[ids[index + 1]]


def is_last_problem(problem_id: str) -> bool:
    ids = list(PROBLEMS)
    return bool(ids) and ids[-1] == problem_id


def get_random_problem(difficulty: str = None, category: str = None) -> CodingProblem | None:
    candidates = list(PROBLEMS.values())
    if difficulty:
        candidates = [p for p in candidates if p.difficulty.value.lower() == difficulty.lower()]
    if category:
        candidates = [p for p in candidates if p.category == category]
    return random.choice(candidates) if candidates else None


def difficulty_badge(difficulty: Difficulty | str) -> str:
    try:
        return DIFFICULTY_BADGES[Difficulty(difficulty)]
    except ValueError:
        return "gray"
