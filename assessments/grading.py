# examdesk_platform/assessments/grading.py
"""
Answer grading.

Answers arrive loosely typed from the client. They are parsed once into an
``AnswerValue`` and from then on graded without any type sniffing. Grading
never raises for bad input: anything that cannot be resolved to one of the
question's options is scored as "no answer" and reported through
``GradeOutcome.issue`` so callers can log it.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional, Sequence, Union

DEFAULT_NEGATIVE_MARKING = Decimal('0.25')
ZERO = Decimal('0')
HUNDRED = Decimal('100')
TWO_PLACES = Decimal('0.01')

GRADE_BREAKPOINTS = (
    (Decimal('90'), 'A+'),
    (Decimal('80'), 'A'),
    (Decimal('70'), 'B+'),
    (Decimal('60'), 'B'),
    (Decimal('50'), 'C'),
    (Decimal('40'), 'D'),
)
FAILING_GRADE = 'F'

ISSUE_MALFORMED = 'malformed'
ISSUE_INDEX_OUT_OF_RANGE = 'index_out_of_range'
ISSUE_UNKNOWN_OPTION = 'unknown_option'


# --- Answer values ---

@dataclass(frozen=True)
class IndexAnswer:
    index: int


@dataclass(frozen=True)
class OptionIdAnswer:
    option_id: str


@dataclass(frozen=True)
class TextAnswer:
    text: str


@dataclass(frozen=True)
class EmptyAnswer:
    malformed: bool = False


AnswerValue = Union[IndexAnswer, OptionIdAnswer, TextAnswer, EmptyAnswer]


def parse_answer(payload: Any) -> AnswerValue:
    """
    Turn ``{"selectedOption": ..., "answerText": ...}`` into an AnswerValue.

    ``answerText`` wins when both are present. A string ``selectedOption`` is
    an option identity; an integer (or integral float) is a presented index.
    """
    if payload is None:
        return EmptyAnswer()
    if not isinstance(payload, dict):
        return EmptyAnswer(malformed=True)

    text = payload.get('answerText')
    if text is not None:
        if not isinstance(text, str):
            return EmptyAnswer(malformed=True)
        if not text.strip():
            return EmptyAnswer()
        return TextAnswer(text)

    selected = payload.get('selectedOption')
    if selected is None:
        return EmptyAnswer()
    if isinstance(selected, bool):
        return EmptyAnswer(malformed=True)
    if isinstance(selected, int):
        return IndexAnswer(selected)
    if isinstance(selected, float):
        if selected.is_integer():
            return IndexAnswer(int(selected))
        return EmptyAnswer(malformed=True)
    if isinstance(selected, str):
        if not selected.strip():
            return EmptyAnswer()
        return OptionIdAnswer(selected.strip())
    return EmptyAnswer(malformed=True)


def storage_fields(answer: AnswerValue) -> dict:
    """Column values for ExamAnswer.selected_option / answer_text."""
    if isinstance(answer, IndexAnswer):
        return {'selected_option': answer.index, 'answer_text': None}
    if isinstance(answer, OptionIdAnswer):
        return {'selected_option': None, 'answer_text': answer.option_id}
    if isinstance(answer, TextAnswer):
        return {'selected_option': None, 'answer_text': answer.text}
    return {'selected_option': None, 'answer_text': None}


def is_supplied(answer: AnswerValue) -> bool:
    return not isinstance(answer, EmptyAnswer)


# --- Grading ---

@dataclass(frozen=True)
class GradeOutcome:
    is_correct: bool
    marks_obtained: Decimal
    resolved_option_id: Optional[Any]
    issue: Optional[str] = None
    # An explicit choice was made, even one naming no presented option
    answered: bool = False


def resolve_negative_marking_rate(value) -> Decimal:
    """Unset means the default rate; an explicit 0 disables the penalty."""
    if value is None:
        return DEFAULT_NEGATIVE_MARKING
    return Decimal(str(value))


def resolve_selection(answer: AnswerValue, presented_options: Sequence):
    """
    Map an answer onto one of the presented options. Returns (selection, issue).

    An identity or text that names no presented option is still a selection
    (the raw identity comes back with ``unknown_option``); a bad index or a
    malformed payload is no selection at all.
    """
    if isinstance(answer, EmptyAnswer):
        return None, (ISSUE_MALFORMED if answer.malformed else None)

    if isinstance(answer, IndexAnswer):
        if 0 <= answer.index < len(presented_options):
            return presented_options[answer.index].id, None
        return None, ISSUE_INDEX_OUT_OF_RANGE

    identity = answer.option_id if isinstance(answer, OptionIdAnswer) else answer.text
    for option in presented_options:
        if str(option.id) == identity.strip():
            return option.id, None
    return identity.strip(), ISSUE_UNKNOWN_OPTION


def grade_answer(
    question_marks,
    correct_option_id,
    presented_options: Sequence,
    answer: AnswerValue,
    negative_marking_rate: Decimal = DEFAULT_NEGATIVE_MARKING,
) -> GradeOutcome:
    """
    Score one answer against the authoritative correct option.

    Correct scores ``question_marks``. Any other selection costs
    ``negative_marking_rate``, including an identity that matches no
    presented option. No answer, a bad index or a malformed payload scores 0.
    """
    selection, issue = resolve_selection(answer, presented_options)
    answered = selection is not None

    is_correct = (
        answered
        and correct_option_id is not None
        and str(selection) == str(correct_option_id)
    )
    if is_correct:
        marks = Decimal(question_marks)
    elif answered:
        marks = -Decimal(negative_marking_rate)
    else:
        marks = ZERO

    # Only a presented option is kept as the resolved id
    resolved = None if issue == ISSUE_UNKNOWN_OPTION else selection
    return GradeOutcome(
        is_correct=is_correct,
        marks_obtained=marks,
        resolved_option_id=resolved,
        issue=issue,
        answered=answered,
    )


# --- Aggregates ---

def compute_percentage(obtained_marks, total_marks) -> Decimal:
    total = Decimal(total_marks or 0)
    if total <= 0:
        return ZERO
    return Decimal(obtained_marks) * HUNDRED / total


def round_percentage(percentage: Decimal) -> Decimal:
    return Decimal(percentage).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def compute_grade(percentage) -> str:
    percentage = Decimal(str(percentage))
    for threshold, grade in GRADE_BREAKPOINTS:
        if percentage >= threshold:
            return grade
    return FAILING_GRADE


def evaluate_status(percentage, passing_percentage) -> str:
    # Inclusive: hitting the pass mark exactly is a pass
    if Decimal(str(percentage)) >= Decimal(str(passing_percentage or 0)):
        return 'pass'
    return 'fail'
