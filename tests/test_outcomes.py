"""Tests for the outcome bucket tally."""
from __future__ import annotations

import pytest

from herocycle.models import Bucket
from herocycle.services.outcomes import compute_bucket, decide_bucket, tally_weights


@pytest.mark.parametrize(
    "counts, expected",
    [
        ((2, 2, 0), Bucket.B),
        ((1, 1, 1), Bucket.A),
        ((0, 0, 3), Bucket.C),
        ((0, 3, 3), Bucket.B),
        ((3, 0, 0), Bucket.A),
        ((0, 0, 0), Bucket.A),
        ((1, 2, 0), Bucket.B),
        ((1, 0, 2), Bucket.C),
        ((2, 0, 2), Bucket.A),
        ((0, 1, 2), Bucket.C),
    ],
)
def test_decide_bucket_tie_breaks(counts, expected):
    assert decide_bucket(*counts) is expected


def test_decide_bucket_is_deterministic():
    results = {decide_bucket(1, 2, 2) for _ in range(10)}
    assert results == {Bucket.B}


def test_tally_ignores_answers_without_weight():
    weights = {"x": Bucket.A, "y": Bucket.B}
    counts = tally_weights(["y", "nope", "y", ""], weights)
    assert counts == {Bucket.A: 0, Bucket.B: 2, Bucket.C: 0}


def test_compute_bucket_uses_weights_across_questions():
    weights = {"1a": Bucket.A, "1b": Bucket.B, "2a": Bucket.A, "2b": Bucket.C}
    # One vote each for b and c: b only needs to tie c.
    assert compute_bucket(["1b", "2b"], weights) is Bucket.B
    assert compute_bucket(["1a", "2b"], weights) is Bucket.A
    assert compute_bucket(["unknown"], weights) is Bucket.A
