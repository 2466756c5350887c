"""
Exam Analytics Service.
Summary statistics across the results of one exam.
"""
import logging

import numpy as np
from django.conf import settings
from django.db.models import Avg, Count, Q

from examinations.models import ExamSession, ExamResult, QuestionResponse

logger = logging.getLogger(__name__)

SCORE_BUCKETS = (
    ('0-20', 20),
    ('21-40', 40),
    ('41-60', 60),
    ('61-80', 80),
    ('81-100', 100),
)


class ExamAnalytics:
    def __init__(self, exam_id, pass_threshold=None, using='default'):
        self.exam_id = exam_id
        self.using = using
        if pass_threshold is None:
            pass_threshold = settings.EXAM_ENGINE.get('ANALYTICS_PASS_THRESHOLD', 60)
        self.pass_threshold = float(pass_threshold)

    def get_analytics(self):
        """
        Aggregate results for the exam.

        Before any result exists the attempt counts and timing come from
        finished sessions and every score metric is zero.
        """
        total_attempts = ExamSession.objects.using(self.using).filter(exam_id=self.exam_id).count()
        results = ExamResult.objects.using(self.using).filter(exam_id=self.exam_id)

        rows = list(results.values_list('percentage', 'time_spent'))
        if not rows:
            return self._session_fallback(total_attempts)

        scores = np.array([float(percentage) for percentage, _ in rows])
        times = np.array([time_spent for _, time_spent in rows], dtype=float)
        completed = len(scores)

        return {
            'exam_id': self.exam_id,
            'total_attempts': total_attempts,
            'completed_attempts': completed,
            'average_score': round(float(scores.mean()), 2),
            'median_score': round(float(np.median(scores)), 2),
            'std_deviation': round(float(scores.std()), 2),
            'average_time_spent': round(float(times.mean()), 2),
            'pass_rate': round(float((scores >= self.pass_threshold).sum()) / completed * 100, 2),
            'score_distribution': self._score_distribution(scores),
            'time_analytics': self._time_analytics(times),
            'question_analytics': self._question_analytics(),
        }

    def _session_fallback(self, total_attempts):
        sessions = ExamSession.objects.using(self.using).filter(
            exam_id=self.exam_id,
            status__in=ExamSession.FINISHED_STATUSES,
            completed_at__isnull=False
        )
        times = np.array([session.time_elapsed for session in sessions], dtype=float)

        return {
            'exam_id': self.exam_id,
            'total_attempts': total_attempts,
            'completed_attempts': len(times),
            'average_score': 0,
            'median_score': 0,
            'std_deviation': 0,
            'average_time_spent': round(float(times.mean()), 2) if len(times) else 0,
            'pass_rate': 0,
            'score_distribution': self._score_distribution(np.array([])),
            'time_analytics': self._time_analytics(times),
            'question_analytics': self._question_analytics(),
        }

    def _score_distribution(self, scores):
        counts = {label: 0 for label, _ in SCORE_BUCKETS}
        for score in scores:
            for label, upper in SCORE_BUCKETS:
                if score <= upper:
                    counts[label] += 1
                    break
            else:
                counts[SCORE_BUCKETS[-1][0]] += 1

        total = len(scores)
        return [
            {
                'range': label,
                'count': counts[label],
                'percentage': round(counts[label] / total * 100, 2) if total else 0
            }
            for label, _ in SCORE_BUCKETS
        ]

    def _time_analytics(self, times):
        if not len(times):
            return {
                'average_completion_time': 0,
                'median_completion_time': 0,
                'fastest_completion': 0,
                'slowest_completion': 0,
            }

        return {
            'average_completion_time': round(float(times.mean()), 2),
            'median_completion_time': round(float(np.median(times)), 2),
            'fastest_completion': int(times.min()),
            'slowest_completion': int(times.max()),
        }

    def _question_analytics(self):
        """Per question accuracy from stored responses of finished sessions."""
        rows = (
            QuestionResponse.objects.using(self.using)
            .filter(
                session__exam_id=self.exam_id,
                session__status__in=ExamSession.FINISHED_STATUSES
            )
            .values('question_id', 'question__title', 'question__question_type')
            .annotate(
                total=Count('id'),
                correct=Count('id', filter=Q(is_correct=True)),
                ungraded=Count('id', filter=Q(is_correct__isnull=True)),
                avg_time=Avg('time_spent')
            )
            .order_by('question_id')
        )

        analysis = []
        for row in rows:
            graded = row['total'] - row['ungraded']
            analysis.append({
                'question_id': row['question_id'],
                'title': row['question__title'],
                'question_type': row['question__question_type'],
                'total_responses': row['total'],
                'correct_count': row['correct'],
                'accuracy_rate': round(row['correct'] / graded * 100, 2) if graded else None,
                'average_time_spent': round(row['avg_time'], 2) if row['avg_time'] is not None else None,
            })
        return analysis
