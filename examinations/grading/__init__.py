from .base import AnswerEvaluator, Evaluation
from .normalize import normalize_answer
from .factory import evaluate, get_evaluator, legacy_text_fallback_enabled

__all__ = [
    'AnswerEvaluator', 'Evaluation', 'normalize_answer',
    'evaluate', 'get_evaluator', 'legacy_text_fallback_enabled'
]
