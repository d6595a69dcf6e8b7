"""
Grading engine.

Pure functions that turn a (question, submitted answer) pair into a verdict.
Nothing here touches the database; callers load questions and persist the
results.

A raw answer from the API is first parsed into one of the tagged answer
types below, chosen by the question's type, so a shape mismatch (a list
for a single-choice question, "maybe" for a true/false one) is rejected
before any grading happens.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, FrozenSet, Iterable, List, Mapping, Optional, Union

from src.domain.errors import NotFoundError, RequestValidationError, UnsupportedQuestionTypeError
from src.domain.models.db_models import AttemptAnswer, Question, QuestionType

TRUE_FALSE_VALUES = ("True", "False")


@dataclass(frozen=True)
class SingleAnswer:
    kind: ClassVar[str] = QuestionType.SINGLE.value
    option_id: str

    def stored_value(self):
        return self.option_id


@dataclass(frozen=True)
class MultipleAnswer:
    kind: ClassVar[str] = QuestionType.MULTIPLE.value
    option_ids: FrozenSet[str]

    def stored_value(self):
        return sorted(self.option_ids)


@dataclass(frozen=True)
class TrueFalseAnswer:
    kind: ClassVar[str] = QuestionType.TRUE_FALSE.value
    value: str

    def stored_value(self):
        return self.value


@dataclass(frozen=True)
class TextAnswer:
    kind: ClassVar[str] = QuestionType.TEXT.value
    text: str

    def stored_value(self):
        return self.text


Answer = Union[SingleAnswer, MultipleAnswer, TrueFalseAnswer, TextAnswer]


@dataclass(frozen=True)
class SubmittedAnswer:
    """A raw answer as it arrives from a client, before validation."""
    question_id: str
    selected_answer: Any = None


@dataclass(frozen=True)
class GradeResult:
    question_id: str
    answer: Answer
    is_correct: bool
    points_earned: int

    def to_attempt_answer(self, answered_at: Optional[datetime] = None) -> AttemptAnswer:
        return AttemptAnswer(
            question_id=self.question_id,
            selected_answer=self.answer.stored_value(),
            is_correct=self.is_correct,
            points_earned=self.points_earned,
            answered_at=answered_at or datetime.now(timezone.utc),
        )


def _question_type(question: Question) -> QuestionType:
    try:
        return QuestionType(question.type)
    except ValueError:
        raise UnsupportedQuestionTypeError(
            f"Question type '{question.type}' is not supported",
            details={"questionId": question.id, "type": question.type},
        ) from None


def _invalid(question: Question, message: str) -> RequestValidationError:
    return RequestValidationError(message, details={"questionId": question.id, "type": question.type})


def parse_answer(question: Question, raw: Any) -> Answer:
    """Validate a raw submitted answer against the question's type."""
    qtype = _question_type(question)

    if qtype == QuestionType.SINGLE:
        if not isinstance(raw, str) or not raw:
            raise _invalid(question, "A single-choice answer must be one option id")
        return SingleAnswer(option_id=raw)

    if qtype == QuestionType.MULTIPLE:
        if not isinstance(raw, (list, tuple)) or not all(isinstance(item, str) for item in raw):
            raise _invalid(question, "A multiple-choice answer must be a list of option ids")
        return MultipleAnswer(option_ids=frozenset(raw))

    if qtype == QuestionType.TRUE_FALSE:
        if isinstance(raw, bool):
            return TrueFalseAnswer(value="True" if raw else "False")
        if isinstance(raw, str) and raw in TRUE_FALSE_VALUES:
            return TrueFalseAnswer(value=raw)
        raise _invalid(question, "A true/false answer must be 'True' or 'False'")

    # QuestionType.TEXT
    if not isinstance(raw, str):
        raise _invalid(question, "A text answer must be a string")
    return TextAnswer(text=raw)


def _single_correct_option(question: Question):
    correct = question.correct_options()
    if len(correct) != 1:
        raise _invalid(question, f"Question must have exactly one correct option, found {len(correct)}")
    return correct[0]


def _normalize_text(value: str) -> str:
    return value.strip().casefold()


def is_answer_correct(question: Question, answer: Answer) -> bool:
    if isinstance(answer, SingleAnswer):
        return answer.option_id == _single_correct_option(question).id

    if isinstance(answer, MultipleAnswer):
        correct_ids = {option.id for option in question.correct_options()}
        if not correct_ids:
            raise _invalid(question, "Question has no correct option")
        # Exact set equality, no partial credit
        return answer.option_ids == correct_ids

    if isinstance(answer, TrueFalseAnswer):
        return answer.value == _single_correct_option(question).text.strip()

    return _normalize_text(answer.text) == _normalize_text(_single_correct_option(question).text)


def grade(question: Question, raw: Any) -> GradeResult:
    """Grade one submitted answer. Points are all or nothing."""
    answer = parse_answer(question, raw)
    correct = is_answer_correct(question, answer)
    return GradeResult(
        question_id=question.id,
        answer=answer,
        is_correct=correct,
        points_earned=question.points if correct else 0,
    )


def grade_submission(questions: Mapping[str, Question], submitted: Iterable[Any]) -> List[GradeResult]:
    """
    Grade a batch of ``{question_id, selected_answer}`` payloads.

    Either every answer grades cleanly or an error is raised and nothing
    is returned, so callers never persist half a submission.
    """
    results: List[GradeResult] = []
    seen: Dict[str, bool] = {}
    for item in submitted:
        question_id = item.question_id
        if question_id in seen:
            raise RequestValidationError(
                "Each question may only be answered once per submission",
                details={"questionId": question_id},
            )
        seen[question_id] = True
        question = questions.get(question_id)
        if question is None:
            raise NotFoundError(
                "Question not found in this quiz",
                details={"questionId": question_id},
            )
        results.append(grade(question, item.selected_answer))
    return results


def max_score(questions: Iterable[Question]) -> int:
    return sum(question.points for question in questions)


def percentage(score: float, max_score_value: float) -> float:
    if max_score_value <= 0:
        return 0.0
    return score / max_score_value * 100


def is_passed(percentage_value: float, pass_score: float) -> bool:
    return percentage_value >= pass_score
