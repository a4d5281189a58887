"""Outcome tallying for mission submissions."""

from __future__ import annotations

from typing import Dict, Iterable, Mapping

from ..models import Bucket


def tally_weights(answers: Iterable[str], weights: Mapping[str, Bucket]) -> Dict[Bucket, int]:
    """Count how many answers fall into each bucket.

    Answers without a known weight do not count towards any bucket.
    """

    counts = {bucket: 0 for bucket in Bucket}
    for option_id in answers:
        weight = weights.get(option_id)
        if weight is not None:
            counts[weight] += 1
    return counts


def decide_bucket(count_a: int, count_b: int, count_c: int) -> Bucket:
    """Pick the winning bucket from weight counts.

    ``a`` is the default. ``b`` must beat ``a`` and at least tie ``c``;
    ``c`` must strictly beat both.
    """

    if count_b > count_a and count_b >= count_c:
        return Bucket.B
    if count_c > count_a and count_c > count_b:
        return Bucket.C
    return Bucket.A


def compute_bucket(answers: Iterable[str], weights: Mapping[str, Bucket]) -> Bucket:
    counts = tally_weights(answers, weights)
    return decide_bucket(counts[Bucket.A], counts[Bucket.B], counts[Bucket.C])


__all__ = ["tally_weights", "decide_bucket", "compute_bucket"]
