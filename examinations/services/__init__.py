from .base import ErrorType
from .sessions import ExamSessionService, get_session_service
from .results import ResultCalculationService, get_result_service
from .analytics import ExamAnalytics

__all__ = [
    'ErrorType',
    'ExamSessionService', 'get_session_service',
    'ResultCalculationService', 'get_result_service',
    'ExamAnalytics',
]
