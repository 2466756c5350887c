from typing import Any, Optional

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from examinations.models import Question
from .base import AnswerEvaluator, Evaluation
from .evaluators import (
    MultipleChoiceEvaluator, TrueFalseEvaluator, FillBlankEvaluator,
    EssayEvaluator, MatchingEvaluator, UnknownTypeEvaluator
)

EVALUATORS = {
    evaluator.question_type: evaluator
    for evaluator in (
        MultipleChoiceEvaluator(),
        TrueFalseEvaluator(),
        FillBlankEvaluator(),
        EssayEvaluator(),
        MatchingEvaluator(),
    )
}

_missing = set(Question.QuestionType.values) - set(EVALUATORS)
if _missing:
    raise ImproperlyConfigured(f"No answer evaluator registered for: {', '.join(sorted(_missing))}")

_UNKNOWN = UnknownTypeEvaluator()


def get_evaluator(question_type: str) -> AnswerEvaluator:
    return EVALUATORS.get(question_type, _UNKNOWN)


def legacy_text_fallback_enabled() -> bool:
    return settings.EXAM_ENGINE.get('ALLOW_LEGACY_OPTION_TEXT', True)


def evaluate(response: Any, question, points: Optional[int] = None, allow_text_fallback: bool = True) -> Evaluation:
    """
    Evaluate ``response`` against ``question``.

    ``points`` is the resolved point value for the exam the question is
    asked in; it falls back to the question's own value, then to 1.
    """
    if points is None:
        points = getattr(question, 'points', None) or 1
    points = max(0, int(points))
    evaluator = get_evaluator(question.question_type)
    return evaluator.evaluate(response, question, points, allow_text_fallback=allow_text_fallback)
