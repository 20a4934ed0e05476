"""Heuristic code analysis over raw source text.

Nothing here parses or runs the submitted code. Every signal is a substring
or regex match, so the labels are approximations meant for display and for
steering the coach, not a correctness check.
"""

import re
from dataclasses import dataclass, asdict
from enum import Enum

O_CONSTANT = "O(1)"
O_LOG = "O(log n)"
O_LINEAR = "O(n)"
O_LINEARITHMIC = "O(n log n)"
O_QUADRATIC = "O(n²)"
O_CUBIC = "O(n³)"
O_EXPONENTIAL = "O(2^n)"
O_UNKNOWN = "O(?)"

COMPLEXITY_LABELS = (
    O_CONSTANT, O_LOG, O_LINEAR, O_LINEARITHMIC,
    O_QUADRATIC, O_CUBIC, O_EXPONENTIAL, O_UNKNOWN,
)

# How far below a loop header we look for an inner loop.
_NESTED_WINDOW = 10
_TRIPLE_NESTED_WINDOW = 15

_HASH_SET_TOKENS = ("set(", "hashset")
_HASH_MAP_TOKENS = ("dict(", "{}", "hashmap", "map(")
_SORT_TOKENS = ("sort(", "sorted(")
_LINEAR_SEARCH_TOKENS = ("in arr", "in array", "in nums", ".find(", ".index(", "linear")
_BINARY_SEARCH_TOKENS = ("binary", "bisect", "log")

_DEF_RE = re.compile(r"def\s+(\w+)")
_FOR_HEADER_RE = re.compile(r"for.*:")
_COMPREHENSION_RE = re.compile(r"\[.*for.*in.*\]")
_GOOD_NAMES_RE = re.compile(r"\b(seen|duplicates|result|arr|nums|count|freq)\b")

_COMPLEXITY_BONUS = {
    O_CONSTANT: 30,
    O_LOG: 25,
    O_LINEAR: 20,
    O_LINEARITHMIC: 15,
    O_QUADRATIC: 5,
    O_CUBIC: -5,
    O_EXPONENTIAL: -10,
}
_UNKNOWN_COMPLEXITY_PENALTY = -15


class Approach(str, Enum):
    EMPTY = "empty"
    NESTED_LOOPS = "nested_loops"
    HASHING = "hashing"
    SORTING = "sorting"
    COMPREHENSION = "comprehension"
    CONDITIONAL = "conditional"
    OTHER = "other"


@dataclass
class CodeAnalysis:
    complexity: str
    code_lines: int
    has_comments: bool
    has_error_handling: bool
    has_function_def: bool
    has_return_statement: bool
    has_loops: bool
    has_conditionals: bool
    is_nested_loop: bool
    has_hash_map: bool
    has_sorting: bool
    is_empty: bool
    is_complete: bool

    def to_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Time complexity
# ---------------------------------------------------------------------------

def _is_loop(line: str) -> bool:
    return "for " in line or "while " in line


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip())


def _loop_depth(lines: list[str], i: int) -> int:
    """Nesting depth (0, 1 or 2) of loops found below the loop on line ``i``."""
    base = _indent(lines[i])
    inner = [
        j for j in range(i + 1, min(i + _NESTED_WINDOW, len(lines)))
        if _is_loop(lines[j].strip().lower()) and _indent(lines[j]) > base
    ]
    if not inner:
        return 0
    for j in inner:
        for k in range(j + 1, min(i + _TRIPLE_NESTED_WINDOW, len(lines))):
            if _is_loop(lines[k].strip().lower()) and _indent(lines[k]) > _indent(lines[j]):
                return 2
    return 1


def analyze_time_complexity(code: str) -> str:
    """Guess a Big-O label for ``code`` from loop nesting and keyword hints."""
    if not code.strip():
        return O_UNKNOWN

    normalized = code.lower()
    lines = code.split("\n")

    max_depth = 0
    has_loop = False
    has_recursion = False
    has_hash_set = False
    has_hash_map = False
    has_sorting = False
    has_linear_search = False
    has_binary_search = False

    for i, raw in enumerate(lines):
        line = raw.strip().lower()

        if _is_loop(line):
            has_loop = True
            max_depth = max(max_depth, _loop_depth(lines, i))

        if any(tok in line for tok in _HASH_SET_TOKENS):
            has_hash_set = True
        if any(tok in line for tok in _HASH_MAP_TOKENS):
            has_hash_map = True
        if any(tok in line for tok in _SORT_TOKENS):
            has_sorting = True
        if any(tok in line for tok in _LINEAR_SEARCH_TOKENS):
            has_linear_search = True
        if any(tok in line for tok in _BINARY_SEARCH_TOKENS):
            has_binary_search = True

        if not has_recursion:
            match = _DEF_RE.search(line)
            if match:
                call = match.group(1) + "("
                has_recursion = any(call in later.lower() for later in lines[i + 1:])

    hashing = has_hash_set or has_hash_map

    if has_recursion:
        if max_depth >= 2:
            return O_EXPONENTIAL
        if max_depth == 1:
            return O_QUADRATIC
        if has_binary_search or "/2" in normalized:
            return O_LOG
        return O_LINEAR

    if max_depth >= 2:
        return O_CUBIC
    if max_depth == 1:
        return O_QUADRATIC

    if has_sorting and not hashing:
        return O_LINEARITHMIC

    if has_loop:
        return O_LINEAR

    if has_binary_search:
        return O_LOG

    if hashing:
        if has_linear_search:
            return O_LINEAR
        if "lookup" in normalized or "get(" in normalized:
            return O_CONSTANT
        return O_LINEAR

    if len(lines) <= 3 and "return" in normalized:
        return O_CONSTANT

    return O_UNKNOWN


# ---------------------------------------------------------------------------
# Feature flags and scoring
# ---------------------------------------------------------------------------

def _count_code_lines(code: str) -> int:
    return sum(1 for line in code.split("\n") if line.strip())


def _has_comments(code: str) -> bool:
    return "#" in code or "//" in code or '"""' in code


def _has_error_handling(code: str) -> bool:
    return any(tok in code for tok in ("try", "except", "if not", "if len"))


def analyze_code(code: str) -> CodeAnalysis:
    code_lines = _count_code_lines(code)
    has_return = "return" in code
    has_loops = "for" in code or "while" in code
    return CodeAnalysis(
        complexity=analyze_time_complexity(code),
        code_lines=code_lines,
        has_comments=_has_comments(code),
        has_error_handling=_has_error_handling(code),
        has_function_def="def " in code,
        has_return_statement=has_return,
        has_loops=has_loops,
        has_conditionals="if " in code,
        is_nested_loop=len(_FOR_HEADER_RE.findall(code)) >= 2,
        has_hash_map="{}" in code or "dict" in code or "set(" in code,
        has_sorting="sort" in code,
        is_empty=len(code.strip()) < 10,
        is_complete=has_return and has_loops and code_lines > 3,
    )


def score_quality(code: str, complexity: str | None = None) -> int:
    """Score ``code`` from 0 to 100 on structure, naming and efficiency."""
    if complexity is None:
        complexity = analyze_time_complexity(code)

    code_lines = _count_code_lines(code)
    has_docstring = '"""' in code or "'''" in code
    has_type_hints = ":" in code and ("List" in code or "int" in code or "str" in code)

    quality = 30

    if 5 <= code_lines <= 20:
        quality += 15
    elif code_lines > 20:
        quality += 5
    else:
        quality += 10

    if _has_comments(code) or has_docstring:
        quality += 15
    if _GOOD_NAMES_RE.search(code):
        quality += 15
    if _has_error_handling(code):
        quality += 10
    if "def " in code:
        quality += 10
    if has_type_hints:
        quality += 5
    if "return" in code:
        quality += 5

    quality += _COMPLEXITY_BONUS.get(complexity, _UNKNOWN_COMPLEXITY_PENALTY)

    if "set(" in code or "dict(" in code:
        quality += 10
    if "enumerate" in code or "zip" in code:
        quality += 5
    if "list comprehension" in code or _COMPREHENSION_RE.search(code):
        quality += 5

    return min(100, max(0, round(quality)))


def quality_band(score: int) -> str:
    if score >= 80:
        return "good"
    if score >= 60:
        return "fair"
    return "poor"


def complexity_rating(label: str) -> str:
    if label in (O_CONSTANT, O_LOG):
        return "efficient"
    if label == O_LINEAR:
        return "linear"
    if label == O_LINEARITHMIC:
        return "moderate"
    if label in (O_QUADRATIC, O_CUBIC, O_EXPONENTIAL):
        return "slow"
    return "unknown"


def detect_approach(code: str) -> Approach:
    """Classify the overall strategy of ``code`` for coach feedback."""
    if len(code.strip()) < 10:
        return Approach.EMPTY
    lowered = code.lower()
    if ("for i" in lowered and "for j" in lowered) or len(_FOR_HEADER_RE.findall(lowered)) >= 2:
        return Approach.NESTED_LOOPS
    if any(tok in lowered for tok in ("set(", "{}", "seen", "dict", "hashmap", "hashtable")):
        return Approach.HASHING
    if "sort" in lowered:
        return Approach.SORTING
    if "[" in lowered and "for" in lowered and "in" in lowered:
        return Approach.COMPREHENSION
    if "if" in lowered and "return" in lowered:
        return Approach.CONDITIONAL
    return Approach.OTHER
