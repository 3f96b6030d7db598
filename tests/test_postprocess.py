from __future__ import annotations

import pytest

from digits_detector.inference.postprocess import postprocess
from digits_detector.inference.types import NO_MATCH


def test_exact_one_selects_index() -> None:
    assert postprocess([0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0]) == 3


def test_no_exact_one_returns_sentinel() -> None:
    assert postprocess([0.1] * 10) == NO_MATCH == -1


def test_exact_ignores_near_one() -> None:
    scores = [0.0] * 10
    scores[8] = 0.999998
    assert postprocess(scores) == -1


def test_exact_returns_first_match() -> None:
    scores = [0.0] * 10
    scores[2] = 1.0
    scores[6] = 1.0
    assert postprocess(scores, "exact") == 2


def test_argmax_with_threshold() -> None:
    scores = [0.01] * 10
    scores[8] = 0.999998
    assert postprocess(scores, "argmax", threshold=0.9) == 8
    assert postprocess([0.1] * 10, "argmax", threshold=0.5) == -1
    # Ties resolve to the lowest index
    assert postprocess([0.5, 0.5] + [0.0] * 8, "argmax", threshold=0.5) == 0


def test_argmax_empty_scores() -> None:
    assert postprocess([], "argmax") == -1


def test_unknown_selection_raises() -> None:
    with pytest.raises(ValueError):
        postprocess([1.0], "vote")  # type: ignore[arg-type]
