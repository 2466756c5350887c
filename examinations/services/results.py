"""
Result Calculation Service.

Turns the responses of a finished session into one immutable ExamResult.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP

from django.db import IntegrityError, transaction
from django.utils import timezone

from examinations.grading import evaluate, legacy_text_fallback_enabled
from examinations.models import ExamSession, QuestionResponse, ExamResult
from .base import ErrorType, ResultOutcome, ordering_for, paginate

logger = logging.getLogger(__name__)

RESULT_SORT_FIELDS = {
    'submitted_at': 'submitted_at',
    'percentage': 'percentage',
    'total_score': 'total_score',
    'time_spent': 'time_spent',
}

TWO_PLACES = Decimal('0.01')


def compute_percentage(total_score, max_possible_score) -> Decimal:
    total_score = Decimal(total_score)
    max_possible_score = Decimal(max_possible_score)
    if max_possible_score <= 0:
        return Decimal('0.00')
    return (total_score / max_possible_score * 100).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


class ResultCalculationService:
    def __init__(self, using='default'):
        self.using = using

    def _results(self):
        return ExamResult.objects.using(self.using)

    def _existing(self, session_id):
        return self._results().select_related('exam', 'user').filter(session_id=session_id).first()

    def calculate(self, session_id) -> ResultOutcome:
        """
        Calculate and store the result for a completed session.

        Calling this again for the same session returns the stored result.
        Responses whose question is no longer part of the exam are skipped
        and logged.
        """
        session = (
            ExamSession.objects.using(self.using)
            .select_related('exam', 'user')
            .filter(id=session_id)
            .first()
        )
        if session is None:
            return ResultOutcome.failure(ErrorType.NOT_FOUND, 'Session not found')

        if session.status not in ExamSession.FINISHED_STATUSES:
            return ResultOutcome.failure(
                ErrorType.INVALID_STATE,
                f'Cannot calculate results for session with status: {session.status}'
            )

        existing = self._existing(session.id)
        if existing:
            return ResultOutcome(result=existing, created=False)

        exam = session.exam
        links = {link.question_id: link for link in exam.get_ordered_questions()}
        allow_text_fallback = legacy_text_fallback_enabled()

        total_score = 0
        max_possible_score = 0
        correct_answers = 0
        total_questions = 0
        requires_manual_grading = False

        responses = QuestionResponse.objects.using(self.using).filter(session=session).order_by('id')
        for response in responses:
            link = links.get(response.question_id)
            if link is None:
                logger.warning(
                    "Skipping response %s in session %s: question %s is not part of exam %s",
                    response.id, session.id, response.question_id, exam.id
                )
                continue

            points = link.resolved_points
            total_questions += 1
            max_possible_score += points

            if link.question.requires_manual_grading:
                requires_manual_grading = True

            evaluation = evaluate(
                response.response, link.question, points,
                allow_text_fallback=allow_text_fallback
            )
            if evaluation.is_correct:
                total_score += evaluation.points_earned
                correct_answers += 1

        percentage = compute_percentage(total_score, max_possible_score)
        time_spent = session.time_elapsed if session.completed_at else 0

        try:
            with transaction.atomic(using=self.using):
                result = self._results().create(
                    session=session,
                    user=session.user,
                    exam=exam,
                    total_score=Decimal(total_score),
                    max_possible_score=Decimal(max_possible_score),
                    percentage=percentage,
                    passed=percentage >= Decimal(exam.passing_score),
                    correct_answers=correct_answers,
                    total_questions=total_questions,
                    time_spent=time_spent,
                    requires_manual_grading=requires_manual_grading,
                    submitted_at=session.completed_at or timezone.now()
                )
        except IntegrityError:
            logger.info("Result for session %s was stored by a concurrent completion", session.id)
            existing = self._existing(session.id)
            if existing is None:
                raise
            return ResultOutcome(result=existing, created=False)

        if requires_manual_grading:
            ExamSession.objects.using(self.using).filter(
                id=session.id, status=ExamSession.Status.COMPLETED
            ).update(status=ExamSession.Status.GRADING)

        logger.info(
            "Result %s stored for session %s: %s/%s (%s%%)",
            result.id, session.id, total_score, max_possible_score, percentage
        )
        return ResultOutcome(result=result, created=True)

    def get_result(self, result_id) -> ResultOutcome:
        result = self._results().select_related('exam', 'user', 'session').filter(id=result_id).first()
        if result is None:
            return ResultOutcome.failure(ErrorType.NOT_FOUND, 'Result not found')
        return ResultOutcome(result=result)

    def filter_results(self, filters=None, queryset=None):
        filters = filters or {}
        queryset = queryset if queryset is not None else self._results()
        queryset = queryset.select_related('exam', 'user')

        if filters.get('exam_id'):
            queryset = queryset.filter(exam_id=filters['exam_id'])
        if filters.get('user_id'):
            queryset = queryset.filter(user_id=filters['user_id'])
        if filters.get('session_id'):
            queryset = queryset.filter(session_id=filters['session_id'])
        if filters.get('min_score') is not None:
            queryset = queryset.filter(percentage__gte=filters['min_score'])
        if filters.get('max_score') is not None:
            queryset = queryset.filter(percentage__lte=filters['max_score'])
        if filters.get('submitted_after'):
            queryset = queryset.filter(submitted_at__gte=filters['submitted_after'])
        if filters.get('submitted_before'):
            queryset = queryset.filter(submitted_at__lte=filters['submitted_before'])
        return queryset

    def get_results(self, filters=None, page=1, limit=20, sort_by='submitted_at', sort_order='desc'):
        queryset = self.filter_results(filters).order_by(
            ordering_for(sort_by, sort_order, RESULT_SORT_FIELDS, 'submitted_at'), '-id'
        )
        return paginate(queryset, page, limit)

    def get_user_history(self, user_id, exam_id=None):
        queryset = self._results().select_related('exam').filter(user_id=user_id)
        if exam_id:
            queryset = queryset.filter(exam_id=exam_id)
        return list(queryset.order_by('-submitted_at', '-id'))

    def record_manual_grade(self, result_id, total_score, graded_by=None, grader_notes='') -> ResultOutcome:
        """
        Record the score of a manual grading pass.

        Grading fields are written exactly once; a second attempt is a
        conflict. The stored percentage and pass flag are recomputed from the
        new score.
        """
        result = self._results().select_related('exam').filter(id=result_id).first()
        if result is None:
            return ResultOutcome.failure(ErrorType.NOT_FOUND, 'Result not found')

        if result.is_graded:
            return ResultOutcome.failure(ErrorType.CONFLICT, 'Result has already been graded', result=result)

        total_score = Decimal(str(total_score))
        if total_score < 0 or total_score > result.max_possible_score:
            return ResultOutcome.failure(
                ErrorType.VALIDATION_FAILURE,
                f'Score must be between 0 and {result.max_possible_score}',
                result=result
            )

        percentage = compute_percentage(total_score, result.max_possible_score)
        updated = self._results().filter(id=result.id, graded_at__isnull=True).update(
            total_score=total_score,
            percentage=percentage,
            passed=percentage >= Decimal(result.exam.passing_score),
            requires_manual_grading=False,
            graded_at=timezone.now(),
            graded_by=graded_by,
            grader_notes=grader_notes or ''
        )
        result = self._results().select_related('exam', 'user').get(id=result.id)
        if not updated:
            return ResultOutcome.failure(ErrorType.CONFLICT, 'Result has already been graded', result=result)

        ExamSession.objects.using(self.using).filter(
            id=result.session_id, status=ExamSession.Status.GRADING
        ).update(status=ExamSession.Status.COMPLETED)

        logger.info("Manual grade recorded for result %s by %s", result.id, graded_by)
        return ResultOutcome(result=result)


def get_result_service(using='default') -> ResultCalculationService:
    return ResultCalculationService(using=using)
