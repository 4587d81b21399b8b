"""Automatic grading of an exam attempt.

``grade`` is the only scoring entry point. The sync gateway calls it on
every result write and nothing else computes scores, so previews and
stored results can never disagree.
"""

import math
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional

from examsync.schemas import Exam, Question, QuestionType
from examsync.services.answer_codec import (
    AnswerDecodeError,
    canonical_choice_set,
    decode_matching,
    decode_true_false,
)


@dataclass(frozen=True)
class GradeResult:
    score: int
    correct_count: int
    # every question, ESSAY and INFO included (reporting only)
    total_questions: int
    # denominator of the score: questions that are neither ESSAY nor INFO
    scorable: int


def _normalize(text: str) -> str:
    # trimmed, lower-cased, inner whitespace runs collapsed to one space
    return " ".join(text.split()).lower()


def _check_text(question: Question, answer: str) -> bool:
    if not question.correct_answer:
        return False
    return _normalize(answer) == _normalize(question.correct_answer)


def _check_complex_choice(question: Question, answer: str) -> bool:
    if not question.correct_answer:
        return False
    return canonical_choice_set(answer) == canonical_choice_set(question.correct_answer)


def _check_true_false(question: Question, answer: str) -> bool:
    rows = question.true_false_rows
    if not rows:
        return False
    values = decode_true_false(answer)
    if len(values) != len(rows):
        return False
    return all(value is row.answer for value, row in zip(values, rows))


def _check_matching(question: Question, answer: str) -> bool:
    pairs = question.matching_pairs
    if not pairs:
        return False
    chosen = decode_matching(answer)
    return all(chosen.get(index) == pair.right for index, pair in enumerate(pairs))


_CHECKERS: Dict[QuestionType, Callable[[Question, str], bool]] = {
    QuestionType.MULTIPLE_CHOICE: _check_text,
    QuestionType.FILL_IN_THE_BLANK: _check_text,
    QuestionType.COMPLEX_MULTIPLE_CHOICE: _check_complex_choice,
    QuestionType.TRUE_FALSE: _check_true_false,
    QuestionType.MATCHING: _check_matching,
}


def is_correct(question: Question, answer: Optional[str]) -> bool:
    """Return True when ``answer`` earns full credit for ``question``.

    Missing, blank or malformed answers are simply wrong; this never raises
    for bad student input.
    """
    if not isinstance(answer, str) or answer == "":
        return False
    checker = _CHECKERS.get(question.question_type)
    if checker is None:
        return False
    try:
        return checker(question, answer)
    except AnswerDecodeError:
        return False


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def grade(exam: Exam, answers: Optional[Mapping[str, str]]) -> GradeResult:
    """Score ``answers`` (question id -> encoded answer) against ``exam``."""
    answers = answers or {}
    correct = 0
    scorable = 0
    for question in exam.questions:
        if not question.is_scorable:
            continue
        scorable += 1
        if is_correct(question, answers.get(question.id)):
            correct += 1

    score = _round_half_up(correct / scorable * 100) if scorable else 0
    return GradeResult(
        score=score,
        correct_count=correct,
        total_questions=len(exam.questions),
        scorable=scorable,
    )
