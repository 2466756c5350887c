"""
Exam Session Lifecycle Service.

Owns the attempt state machine::

    active <-> paused
    active -> completed (-> grading while manual grading is pending)
    active | paused -> terminated

Every status change is a conditional update on the expected prior status, so
a losing concurrent writer sees zero affected rows instead of overwriting a
newer state. No in-process locks are held; uniqueness is left to database
constraints.
"""
import json
import logging
from typing import Any, Dict, Iterable, Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from examinations.grading import evaluate, legacy_text_fallback_enabled
from examinations.models import Exam, ExamSession, QuestionResponse, ExamResult
from .base import (
    AutoSaveOutcome, BatchOutcome, ErrorType, ItemError, ProgressOutcome,
    ResponseOutcome, SessionOutcome, client_clock, ordering_for, paginate
)
from .integrity import validate_answer_fingerprint
from .results import ResultCalculationService

logger = logging.getLogger(__name__)

EXAM_NOT_AVAILABLE = 'Exam not found or not active'
ACTIVE_SESSION_EXISTS = 'You already have an active session for this exam'
SESSION_NOT_ACTIVE = 'Session not found or not active'
SESSION_NOT_FOUND = 'Session not found'
QUESTION_NOT_FOUND = 'Question not found'
STALE_WRITE = 'Conflict detected - server has newer data'
INVALID_TIME_SPENT = 'Invalid time_spent'
DEFAULT_TERMINATION_NOTE = 'Session terminated'

SESSION_SORT_FIELDS = {
    'started_at': 'started_at',
    'completed_at': 'completed_at',
    'status': 'status',
}


def _question_id(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _valid_time_spent(value) -> bool:
    if value is None:
        return True
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _same_payload(stored: Any, incoming: Any) -> bool:
    return json.dumps(stored, sort_keys=True, default=str) == json.dumps(incoming, sort_keys=True, default=str)


class ExamSessionService:
    """
    Runs exam attempts against one database alias.

    ``result_service`` is called when a session completes; it defaults to a
    ``ResultCalculationService`` on the same alias.
    """

    def __init__(self, using='default', result_service=None):
        self.using = using
        self.result_service = result_service or ResultCalculationService(using=using)

    def _sessions(self):
        return ExamSession.objects.using(self.using)

    def _responses(self):
        return QuestionResponse.objects.using(self.using)

    def _load_session(self, session_id) -> Optional[ExamSession]:
        return self._sessions().select_related('exam', 'user').filter(id=session_id).first()

    def _require_status(self, session_id, outcome_cls, *statuses):
        session = self._load_session(session_id)
        if session is None:
            return None, outcome_cls.failure(ErrorType.NOT_FOUND, SESSION_NOT_ACTIVE)
        if session.status not in statuses:
            return None, outcome_cls.failure(ErrorType.INVALID_STATE, SESSION_NOT_ACTIVE)
        return session, None

    def _exam_links(self, session) -> Dict[int, Any]:
        """Question id -> ExamQuestion, in presentation order."""
        return {link.question_id: link for link in session.exam.get_ordered_questions()}

    def _existing_result(self, session):
        return ExamResult.objects.using(self.using).filter(session_id=session.id).first()

    def _evaluate(self, link, response):
        return evaluate(
            response, link.question, link.resolved_points,
            allow_text_fallback=legacy_text_fallback_enabled()
        )

    def _response_fields(self, evaluation, response, updated_at, time_spent=None):
        fields = {
            'response': response,
            'is_correct': evaluation.is_correct,
            'points_earned': evaluation.points_earned,
            'updated_at': updated_at,
        }
        if time_spent is not None:
            fields['time_spent'] = time_spent
        return fields

    def _save_response(self, session, question_id, fields, last_write_wins=False) -> bool:
        """
        Upsert the (session, question) response row.

        With ``last_write_wins`` an existing row is only overwritten when its
        ``updated_at`` is older than the incoming one. Returns False when a
        newer stored row won. An IntegrityError that is not an insert race
        propagates.
        """
        existing = self._responses().filter(session=session, question_id=question_id)
        target = existing.filter(updated_at__lt=fields['updated_at']) if last_write_wins else existing

        if target.update(attempts=F('attempts') + 1, **fields):
            return True
        if existing.exists():
            return False

        try:
            with transaction.atomic(using=self.using):
                self._responses().create(
                    session=session,
                    question_id=question_id,
                    user_id=session.user_id,
                    **fields
                )
        except IntegrityError:
            if not existing.exists():
                # Constraint violation on the row itself, not a racing insert.
                raise
            return bool(target.update(attempts=F('attempts') + 1, **fields))
        return True

    def start_session(self, user, exam_id) -> SessionOutcome:
        """
        Start an attempt for ``user`` on an active exam.

        Returns the new session and its ordered ExamQuestion list. A user can
        hold only one active or paused session per exam.
        """
        exam = Exam.objects.using(self.using).filter(id=exam_id, status=Exam.Status.ACTIVE).first()
        if exam is None:
            return SessionOutcome.failure(ErrorType.NOT_FOUND, EXAM_NOT_AVAILABLE)

        open_sessions = self._sessions().filter(
            user=user, exam=exam, status__in=ExamSession.OPEN_STATUSES
        )
        if open_sessions.exists():
            return SessionOutcome.failure(ErrorType.CONFLICT, ACTIVE_SESSION_EXISTS)

        try:
            with transaction.atomic(using=self.using):
                session = self._sessions().create(
                    user=user,
                    exam=exam,
                    status=ExamSession.Status.ACTIVE,
                    started_at=timezone.now(),
                    time_limit=exam.time_limit_seconds
                )
        except IntegrityError:
            logger.info("Concurrent start rejected for user %s on exam %s", user.pk, exam.id)
            return SessionOutcome.failure(ErrorType.CONFLICT, ACTIVE_SESSION_EXISTS)

        logger.info("Session %s started by user %s on exam %s", session.id, user.pk, exam.id)
        return SessionOutcome(session=session, questions=list(exam.get_ordered_questions()))

    def get_session(self, session_id) -> SessionOutcome:
        session = self._load_session(session_id)
        if session is None:
            return SessionOutcome.failure(ErrorType.NOT_FOUND, SESSION_NOT_FOUND)
        return SessionOutcome(
            session=session,
            questions=list(session.exam.get_ordered_questions()),
            responses=list(self._responses().filter(session=session).order_by('id')),
            result=self._existing_result(session)
        )

    def submit_response(self, session_id, question_id, response, time_spent=None) -> ResponseOutcome:
        """
        Evaluate and store one answer.

        Resubmitting updates the stored row in place, so retries are harmless.
        """
        session, failure = self._require_status(session_id, ResponseOutcome, ExamSession.Status.ACTIVE)
        if failure:
            return failure

        if time_spent is not None and time_spent < 0:
            return ResponseOutcome.failure(ErrorType.VALIDATION_FAILURE, 'time_spent cannot be negative')

        links = self._exam_links(session)
        question_id = _question_id(question_id)
        link = links.get(question_id)
        if link is None:
            return ResponseOutcome.failure(ErrorType.NOT_FOUND, QUESTION_NOT_FOUND)

        evaluation = self._evaluate(link, response)
        self._save_response(
            session, question_id,
            self._response_fields(evaluation, response, timezone.now(), time_spent)
        )

        self._sessions().filter(id=session.id, status=ExamSession.Status.ACTIVE).update(
            current_question_index=list(links).index(question_id)
        )

        return ResponseOutcome(
            response=self._responses().get(session=session, question_id=question_id),
            is_correct=evaluation.is_correct,
            points_earned=evaluation.points_earned
        )

    def submit_batch(self, session_id, responses: Iterable[dict], fingerprint: Optional[str] = None) -> BatchOutcome:
        """
        Store many answers at once with per-item success or failure.

        An item whose ``timestamp`` (epoch milliseconds) is not newer than the
        stored ``updated_at`` is counted as a duplicate and skipped.
        """
        session, failure = self._require_status(session_id, BatchOutcome, ExamSession.Status.ACTIVE)
        if failure:
            return failure

        responses = list(responses or [])
        if fingerprint:
            answers = {
                item.get('question_id'): item.get('response')
                for item in responses if isinstance(item, dict)
            }
            if not validate_answer_fingerprint(answers, fingerprint):
                logger.warning("Answer fingerprint mismatch for session %s", session.id)
                return BatchOutcome.failure(ErrorType.VALIDATION_FAILURE, 'Answer fingerprint mismatch')

        outcome = BatchOutcome()
        links = self._exam_links(session)
        pending = {}

        for item in responses:
            if not isinstance(item, dict):
                outcome.failed += 1
                outcome.errors.append(ItemError(None, 'Malformed response item'))
                continue

            raw_id = item.get('question_id')
            question_id = _question_id(raw_id)
            if question_id not in links:
                outcome.failed += 1
                outcome.errors.append(ItemError(raw_id, QUESTION_NOT_FOUND))
                continue

            try:
                updated_at = client_clock(item.get('timestamp'))
            except (TypeError, ValueError, OverflowError, OSError):
                outcome.failed += 1
                outcome.errors.append(ItemError(raw_id, 'Invalid timestamp'))
                continue

            if not _valid_time_spent(item.get('time_spent')):
                outcome.failed += 1
                outcome.errors.append(ItemError(raw_id, INVALID_TIME_SPENT))
                continue

            previous = pending.get(question_id)
            if previous is not None:
                outcome.duplicates += 1
                if updated_at <= previous[0]:
                    continue
            pending[question_id] = (updated_at, item)

        stored = {
            row.question_id: row
            for row in self._responses().filter(session=session, question_id__in=list(pending))
        }

        new_rows = []
        for question_id, (updated_at, item) in pending.items():
            existing = stored.get(question_id)
            if existing is not None and updated_at <= existing.updated_at:
                outcome.duplicates += 1
                continue

            link = links[question_id]
            evaluation = self._evaluate(link, item.get('response'))
            fields = self._response_fields(evaluation, item.get('response'), updated_at, item.get('time_spent'))

            if existing is None:
                new_rows.append((question_id, fields))
            elif self._save_response(session, question_id, fields, last_write_wins=True):
                outcome.processed += 1
            else:
                outcome.duplicates += 1

        if new_rows:
            try:
                with transaction.atomic(using=self.using):
                    self._responses().bulk_create([
                        QuestionResponse(session=session, question_id=question_id, user_id=session.user_id, **fields)
                        for question_id, fields in new_rows
                    ])
                outcome.processed += len(new_rows)
            except IntegrityError:
                logger.info("Batch insert collided for session %s; falling back to row upserts", session.id)
                for question_id, fields in new_rows:
                    if self._save_response(session, question_id, fields, last_write_wins=True):
                        outcome.processed += 1
                    else:
                        outcome.duplicates += 1

        outcome.success = outcome.failed == 0
        if not outcome.success:
            outcome.error = f'{outcome.failed} response(s) could not be saved'
            outcome.error_type = ErrorType.VALIDATION_FAILURE
        return outcome

    def auto_save(self, session_id, responses: Iterable[dict]) -> AutoSaveOutcome:
        """
        Periodic background save.

        Identical payloads are skipped. A stored row that is newer than the
        client's copy and different from it wins: the item is skipped and
        reported as a conflict.
        """
        session, failure = self._require_status(session_id, AutoSaveOutcome, ExamSession.Status.ACTIVE)
        if failure:
            return failure

        responses = list(responses or [])
        outcome = AutoSaveOutcome()
        links = self._exam_links(session)
        stored = {
            row.question_id: row
            for row in self._responses().filter(session=session, question_id__in=list(links))
        }

        for item in responses:
            if not isinstance(item, dict):
                outcome.errors.append(ItemError(None, 'Malformed response item'))
                continue

            raw_id = item.get('question_id')
            question_id = _question_id(raw_id)
            link = links.get(question_id)
            if link is None:
                outcome.errors.append(ItemError(raw_id, QUESTION_NOT_FOUND))
                continue

            try:
                updated_at = client_clock(item.get('timestamp'))
            except (TypeError, ValueError, OverflowError, OSError):
                outcome.errors.append(ItemError(raw_id, 'Invalid timestamp'))
                continue

            if not _valid_time_spent(item.get('time_spent')):
                outcome.errors.append(ItemError(raw_id, INVALID_TIME_SPENT))
                continue

            existing = stored.get(question_id)
            if existing is not None and _same_payload(existing.response, item.get('response')):
                outcome.skipped.append(question_id)
                continue

            if existing is not None and existing.updated_at > updated_at:
                outcome.skipped.append(question_id)
                outcome.errors.append(ItemError(question_id, STALE_WRITE))
                continue

            evaluation = self._evaluate(link, item.get('response'))
            fields = self._response_fields(evaluation, item.get('response'), updated_at, item.get('time_spent'))
            if self._save_response(session, question_id, fields, last_write_wins=True):
                outcome.saved.append(question_id)
            else:
                outcome.skipped.append(question_id)
                outcome.errors.append(ItemError(question_id, STALE_WRITE))

        attempted = len(responses)
        error_count = len(outcome.errors)
        ratio = (attempted - error_count) / attempted if attempted else 1.0
        fast, normal, slow = settings.EXAM_ENGINE.get('AUTOSAVE_INTERVALS', (30, 45, 60))
        if ratio >= 0.8:
            outcome.next_auto_save = fast
        elif ratio >= 0.5:
            outcome.next_auto_save = normal
        else:
            outcome.next_auto_save = slow

        outcome.success = attempted == 0 or error_count < attempted * 0.5
        if not outcome.success:
            outcome.error = f'{error_count} of {attempted} item(s) failed to save'
            outcome.error_type = ErrorType.CONFLICT
        return outcome

    def _transition(self, session_id, from_statuses, to_status, action, **changes) -> SessionOutcome:
        updated = self._sessions().filter(id=session_id, status__in=from_statuses).update(
            status=to_status, **changes
        )
        session = self._load_session(session_id)
        if session is None:
            return SessionOutcome.failure(ErrorType.NOT_FOUND, SESSION_NOT_FOUND)
        if not updated:
            return SessionOutcome.failure(
                ErrorType.INVALID_STATE,
                f'Cannot {action} session with status: {session.status}',
                session=session
            )
        logger.info("Session %s %s", session.id, to_status)
        return SessionOutcome(session=session)

    def pause_session(self, session_id) -> SessionOutcome:
        return self._transition(
            session_id, [ExamSession.Status.ACTIVE], ExamSession.Status.PAUSED, 'pause'
        )

    def resume_session(self, session_id) -> SessionOutcome:
        return self._transition(
            session_id, [ExamSession.Status.PAUSED], ExamSession.Status.ACTIVE, 'resume'
        )

    def terminate_session(self, session_id, reason=None) -> SessionOutcome:
        return self._transition(
            session_id, ExamSession.OPEN_STATUSES, ExamSession.Status.TERMINATED, 'terminate',
            completed_at=timezone.now(),
            notes=reason or DEFAULT_TERMINATION_NOTE
        )

    def complete_session(self, session_id) -> SessionOutcome:
        """
        Complete an active session and calculate its result.

        Completing an already completed session returns it unchanged with its
        result. A failure while calculating the result is logged and does not
        fail completion.
        """
        session = self._load_session(session_id)
        if session is None:
            return SessionOutcome.failure(ErrorType.NOT_FOUND, SESSION_NOT_FOUND)

        if session.status in ExamSession.FINISHED_STATUSES:
            return SessionOutcome(session=session, result=self._existing_result(session))

        if session.status != ExamSession.Status.ACTIVE:
            return SessionOutcome.failure(
                ErrorType.INVALID_STATE,
                f'Cannot complete session with status: {session.status}',
                session=session
            )

        updated = self._sessions().filter(id=session.id, status=ExamSession.Status.ACTIVE).update(
            status=ExamSession.Status.COMPLETED,
            completed_at=timezone.now()
        )
        if not updated:
            session = self._load_session(session.id)
            if session.status in ExamSession.FINISHED_STATUSES:
                return SessionOutcome(session=session, result=self._existing_result(session))
            return SessionOutcome.failure(
                ErrorType.INVALID_STATE,
                f'Cannot complete session with status: {session.status}',
                session=session
            )

        result = None
        # Grading errors never fail completion; the result can be recalculated later.
        try:
            with transaction.atomic(using=self.using):
                calculation = self.result_service.calculate(session.id)
            if calculation.success:
                result = calculation.result
            else:
                logger.warning("Result not calculated for session %s: %s", session.id, calculation.error)
        except Exception:
            logger.exception("Result calculation failed for completed session %s", session.id)

        logger.info("Session %s completed", session.id)
        return SessionOutcome(session=self._load_session(session.id), result=result)

    def get_progress(self, session_id) -> ProgressOutcome:
        session = self._load_session(session_id)
        if session is None:
            return ProgressOutcome.failure(ErrorType.NOT_FOUND, SESSION_NOT_FOUND)

        total = session.exam.get_question_count()
        answered = self._responses().filter(session=session).count()
        return ProgressOutcome(
            total_questions=total,
            answered_questions=answered,
            time_elapsed=session.time_elapsed,
            time_remaining=session.time_remaining,
            completion_percentage=round(answered / total * 100, 2) if total else 0.0
        )

    def filter_sessions(self, filters=None, queryset=None):
        filters = filters or {}
        queryset = queryset if queryset is not None else self._sessions()
        queryset = queryset.select_related('exam', 'user')

        if filters.get('exam_id'):
            queryset = queryset.filter(exam_id=filters['exam_id'])
        if filters.get('user_id'):
            queryset = queryset.filter(user_id=filters['user_id'])
        if filters.get('status'):
            queryset = queryset.filter(status=filters['status'])
        if filters.get('started_after'):
            queryset = queryset.filter(started_at__gte=filters['started_after'])
        if filters.get('started_before'):
            queryset = queryset.filter(started_at__lte=filters['started_before'])
        return queryset

    def list_sessions(self, filters=None, page=1, limit=20, sort_by='started_at', sort_order='desc'):
        queryset = self.filter_sessions(filters).order_by(
            ordering_for(sort_by, sort_order, SESSION_SORT_FIELDS, 'started_at'), '-id'
        )
        return paginate(queryset, page, limit)


def get_session_service(using='default', result_service=None) -> ExamSessionService:
    return ExamSessionService(using=using, result_service=result_service)
