"""Display metrics for a "run": simulated timings derived from the complexity label."""

import random
from dataclasses import dataclass, asdict

from .analyzer import (
    O_CONSTANT,
    O_CUBIC,
    O_EXPONENTIAL,
    O_LINEAR,
    O_LINEARITHMIC,
    O_LOG,
    O_QUADRATIC,
    O_UNKNOWN,
    analyze_time_complexity,
    complexity_rating,
    quality_band,
    score_quality,
)

# label -> (floor ms, random span ms)
_EXEC_TIME_BANDS = {
    O_CONSTANT: (1, 2),
    O_LINEAR: (5, 10),
    O_LINEARITHMIC: (15, 15),
    O_QUADRATIC: (50, 50),
    O_CUBIC: (200, 100),
    O_EXPONENTIAL: (1000, 1000),
}

# label -> (floor MB, random span MB)
_MEMORY_BANDS = {
    O_CONSTANT: (0, 5),
    O_LOG: (5, 10),
    O_LINEAR: (20, 25),
    O_QUADRATIC: (50, 40),
}
_DEFAULT_MEMORY_BAND = (15, 20)
_BASE_MEMORY_MB = 8


@dataclass
class Metrics:
    execution_time_ms: float = 0.0
    memory_usage_mb: float = 0.0
    complexity: str = O_UNKNOWN
    code_quality: int = 0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["quality_band"] = quality_band(self.code_quality) if self.code_quality > 0 else None
        data["complexity_rating"] = complexity_rating(self.complexity)
        return data


def _estimate_memory(code: str, complexity: str, factor: float) -> float:
    memory = _BASE_MEMORY_MB
    if "set(" in code or "dict(" in code:
        memory += 32  # hash table
    if "[]" in code or "list(" in code:
        memory += 24
    if "result" in code or "duplicates" in code:
        memory += 16
    floor, span = _MEMORY_BANDS.get(complexity, _DEFAULT_MEMORY_BAND)
    return memory + floor + factor * span


def estimate_metrics(code: str, rng: random.Random | None = None) -> Metrics:
    """Recompute the metrics panel for ``code``.

    A single random factor per call jitters time and memory together.
    """
    if not code.strip():
        return Metrics()

    factor = (rng or random).random()
    complexity = analyze_time_complexity(code)

    floor, span = _EXEC_TIME_BANDS.get(complexity, (0, 0))
    execution_time = floor + factor * span

    return Metrics(
        execution_time_ms=execution_time,
        memory_usage_mb=round(_estimate_memory(code, complexity, factor), 2),
        complexity=complexity,
        code_quality=score_quality(code, complexity),
    )
