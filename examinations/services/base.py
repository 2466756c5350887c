"""
Structured outcomes shared by the exam services.

Business failures (missing session, wrong status, duplicate start, malformed
payload) are returned as values carrying an ``ErrorType``. Only
infrastructure failures (``django.db.DatabaseError``) are raised.
"""
import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from django.utils import timezone


class ErrorType(str, Enum):
    NOT_FOUND = 'not_found'
    INVALID_STATE = 'invalid_state'
    CONFLICT = 'conflict'
    VALIDATION_FAILURE = 'validation_failure'


@dataclass
class ServiceOutcome:
    success: bool = True
    error: Optional[str] = None
    error_type: Optional[ErrorType] = None

    @classmethod
    def failure(cls, error_type: ErrorType, error: str, **kwargs):
        return cls(success=False, error=error, error_type=error_type, **kwargs)


@dataclass
class SessionOutcome(ServiceOutcome):
    session: Any = None
    questions: Optional[list] = None
    responses: Optional[list] = None
    result: Any = None


@dataclass
class ResponseOutcome(ServiceOutcome):
    response: Any = None
    is_correct: Optional[bool] = None
    points_earned: int = 0


@dataclass
class ItemError:
    question_id: Any
    error: str


@dataclass
class BatchOutcome(ServiceOutcome):
    processed: int = 0
    failed: int = 0
    duplicates: int = 0
    errors: List[ItemError] = field(default_factory=list)


@dataclass
class AutoSaveOutcome(ServiceOutcome):
    saved: List[Any] = field(default_factory=list)
    skipped: List[Any] = field(default_factory=list)
    errors: List[ItemError] = field(default_factory=list)
    next_auto_save: int = 30


@dataclass
class ProgressOutcome(ServiceOutcome):
    total_questions: int = 0
    answered_questions: int = 0
    time_elapsed: int = 0
    time_remaining: Optional[int] = None
    completion_percentage: float = 0.0


@dataclass
class ResultOutcome(ServiceOutcome):
    result: Any = None
    created: bool = False


@dataclass
class Page:
    items: list
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        if not self.limit:
            return 0
        return (self.total + self.limit - 1) // self.limit


def paginate(queryset, page: int = 1, limit: int = 20) -> Page:
    page = max(1, int(page or 1))
    limit = max(1, min(int(limit or 20), 100))
    offset = (page - 1) * limit
    return Page(
        items=list(queryset[offset:offset + limit]),
        total=queryset.count(),
        page=page,
        limit=limit
    )


def ordering_for(sort_by: Optional[str], sort_order: str, allowed: Dict[str, str], default: str) -> str:
    """Translate a whitelisted sort field into an ``order_by`` expression."""
    column = allowed.get(sort_by or '', allowed[default])
    return f"-{column}" if (sort_order or 'desc').lower() == 'desc' else column


def client_clock(timestamp: Any) -> datetime.datetime:
    """
    Convert a client supplied logical timestamp to an aware datetime.

    Accepts epoch milliseconds or a datetime. A missing timestamp means now.
    """
    if timestamp is None:
        return timezone.now()
    if isinstance(timestamp, datetime.datetime):
        if timezone.is_naive(timestamp):
            return timezone.make_aware(timestamp, datetime.timezone.utc)
        return timestamp
    if isinstance(timestamp, bool):
        raise ValueError("Invalid timestamp")
    return datetime.datetime.fromtimestamp(float(timestamp) / 1000, tz=datetime.timezone.utc)
