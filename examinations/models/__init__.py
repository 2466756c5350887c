from .exam import Exam, ExamQuestion
from .question import Question
from .session import ExamSession
from .response import QuestionResponse
from .result import ExamResult, ImmutableResultError
from .audit import AuditLog

__all__ = [
    'Exam', 'ExamQuestion', 'Question', 'ExamSession',
    'QuestionResponse', 'ExamResult', 'ImmutableResultError',
    'AuditLog'
]
