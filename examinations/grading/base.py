from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class Evaluation:
    is_correct: Optional[bool]
    points_earned: int

    @property
    def needs_manual_grading(self) -> bool:
        return self.is_correct is None


class AnswerEvaluator(ABC):
    """One evaluator per question type; see ``grading.factory.EVALUATORS``."""

    question_type: str = ''

    def evaluate(self, response: Any, question, points: int, allow_text_fallback: bool = True) -> Evaluation:
        is_correct = self.is_correct(response, question, allow_text_fallback=allow_text_fallback)
        return Evaluation(
            is_correct=is_correct,
            points_earned=points if is_correct else 0
        )

    @abstractmethod
    def is_correct(self, response: Any, question, allow_text_fallback: bool = True) -> Optional[bool]:
        pass
