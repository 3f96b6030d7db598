from __future__ import annotations

from collections.abc import Sequence

from ..config import Selection
from ..logging import get_logger
from .types import NO_MATCH


def postprocess(
    scores: Sequence[float], selection: Selection = "exact", threshold: float = 0.5
) -> int:
    """Map per-class scores to a digit, or NO_MATCH.

    ``exact`` returns the first index whose score equals 1.0 exactly; a top
    score of 0.999998 therefore yields NO_MATCH. ``argmax`` returns the
    highest-scoring index (lowest index on ties) when it reaches ``threshold``.
    """
    logger = get_logger()
    for i, value in enumerate(scores):
        logger.debug("class_score index=%d score=%s", i, value)
    if selection == "exact":
        return _first_exact_one(scores)
    if selection == "argmax":
        return _argmax_at_least(scores, threshold)
    raise ValueError(f"unknown selection: {selection}")


def _first_exact_one(scores: Sequence[float]) -> int:
    for i, value in enumerate(scores):
        if value == 1.0:
            return i
    return NO_MATCH


def _argmax_at_least(scores: Sequence[float], threshold: float) -> int:
    if not scores:
        return NO_MATCH
    top_idx = 0
    best = scores[0]
    for i in range(1, len(scores)):
        if scores[i] > best:
            best = scores[i]
            top_idx = i
    return top_idx if best >= threshold else NO_MATCH
