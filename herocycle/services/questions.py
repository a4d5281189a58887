"""Question grouping helpers."""

from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, List, Mapping, Tuple

from ..models import Bucket, Option, Question

logger = logging.getLogger(__name__)


def _question_sort_key(number: str, first_seen: int) -> Tuple[int, float, int]:
    try:
        value = float(number)
    except ValueError:
        return (1, 0.0, first_seen)
    if not math.isfinite(value):
        return (1, 0.0, first_seen)
    return (0, value, first_seen)


def _option_from_record(record: Mapping[str, str]) -> Option:
    raw_weight = record.get("option_weight", "")
    try:
        weight = Bucket.parse(raw_weight)
    except ValueError:
        logger.warning(
            "Option %s has unknown weight %r; it will not count towards any outcome",
            record.get("option_id"),
            raw_weight,
        )
        weight = None
    return Option(
        option_id=str(record.get("option_id", "")).strip(),
        text=record.get("option_text", "") or "",
        flavor=record.get("option_flavor", "") or "",
        image=record.get("option_image", "") or "",
        weight=weight,
    )


def group_questions(rows: Iterable[Mapping[str, str]]) -> List[Question]:
    """Group per-option rows into questions.

    Questions are ordered by numeric question number ("10" after "2");
    options keep the order in which their rows were encountered. The question
    text repeated on every row is taken from the first row of each question.
    """

    grouped: Dict[str, Question] = {}
    first_seen: Dict[str, int] = {}
    for record in rows:
        number = str(record.get("question_num", "")).strip()
        question = grouped.get(number)
        if question is None:
            question = Question(number=number, text=record.get("question_text", "") or "")
            grouped[number] = question
            first_seen[number] = len(first_seen)
        question.options.append(_option_from_record(record))
    ordered = sorted(grouped, key=lambda number: _question_sort_key(number, first_seen[number]))
    return [grouped[number] for number in ordered]


def public_questions(questions: Iterable[Question]) -> List[Dict[str, object]]:
    """Player facing payload for grouped questions, without option weights."""

    return [
        {
            "question_num": question.number,
            "question_text": question.text,
            "options": [option.public_payload() for option in question.options],
        }
        for question in questions
    ]


def option_weights(questions: Iterable[Question]) -> Dict[str, Bucket]:
    """Map option ids to their weight; unweighted options are left out."""

    weights: Dict[str, Bucket] = {}
    for question in questions:
        for option in question.options:
            if option.weight is not None and option.option_id not in weights:
                weights[option.option_id] = option.weight
    return weights


__all__ = ["group_questions", "public_questions", "option_weights"]
