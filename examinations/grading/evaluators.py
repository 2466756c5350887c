"""
Per-type answer evaluators.

Each class handles exactly one ``Question.QuestionType``. Scoring is
all-or-nothing: a correct answer earns the resolved point value, anything
else earns zero.
"""
from typing import Any, Optional

from examinations.models import Question
from .base import AnswerEvaluator
from .legacy import resolve_option_text
from .normalize import normalize_answer, as_identifier_list


class MultipleChoiceEvaluator(AnswerEvaluator):
    """
    Compare selected option ids with the correct ids as sorted lists.

    Selection order never matters. A subset, a superset, or a repeated id
    is wrong. When the id comparison fails, legacy answers that carry
    option text are resolved to ids and compared again.
    """
    question_type = Question.QuestionType.MULTIPLE_CHOICE

    def is_correct(self, response: Any, question, allow_text_fallback: bool = True) -> Optional[bool]:
        correct = sorted(as_identifier_list(question.correct_answer))
        if not correct:
            return False

        if sorted(as_identifier_list(response)) == correct:
            return True

        if not allow_text_fallback:
            return False

        resolved = resolve_option_text(response, question.options)
        return resolved is not None and sorted(resolved) == correct


class TextMatchEvaluator(AnswerEvaluator):
    """Case- and whitespace-insensitive equality."""

    def is_correct(self, response: Any, question, allow_text_fallback: bool = True) -> Optional[bool]:
        return normalize_answer(response) == normalize_answer(question.correct_answer)


class TrueFalseEvaluator(TextMatchEvaluator):
    question_type = Question.QuestionType.TRUE_FALSE


class FillBlankEvaluator(TextMatchEvaluator):
    question_type = Question.QuestionType.FILL_BLANK


class ManualGradingEvaluator(AnswerEvaluator):
    """Never auto-graded; the result layer flags these for a human grader."""

    def is_correct(self, response: Any, question, allow_text_fallback: bool = True) -> Optional[bool]:
        return None


class EssayEvaluator(ManualGradingEvaluator):
    question_type = Question.QuestionType.ESSAY


class MatchingEvaluator(ManualGradingEvaluator):
    question_type = Question.QuestionType.MATCHING


class UnknownTypeEvaluator(AnswerEvaluator):
    """Fail safe for types missing from the registry: never silently pass."""

    def is_correct(self, response: Any, question, allow_text_fallback: bool = True) -> Optional[bool]:
        return False
