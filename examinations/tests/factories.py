"""
Shared fixtures for the examinations test suite.
"""
import time
from datetime import timedelta

from django.contrib.auth.models import User
from django.utils import timezone

from examinations.models import Exam, ExamQuestion, Question, ExamSession, QuestionResponse, ExamResult


def epoch_ms(offset_seconds=0):
    return int((time.time() + offset_seconds) * 1000)


class ExamFixtureMixin:
    """Builds users, exams and sessions without going through the services."""

    def create_user(self, username='student', is_staff=False):
        return User.objects.create_user(username, f'{username}@test.com', 'pass12345', is_staff=is_staff)

    def create_exam(self, title='Geography', duration_minutes=60, status=Exam.Status.ACTIVE, passing_score=60):
        return Exam.objects.create(
            title=title,
            duration_minutes=duration_minutes,
            status=status,
            passing_score=passing_score
        )

    def add_question(self, exam, question_type, correct_answer=None, options=None, points=1, override=None):
        question = Question.objects.create(
            question_type=question_type,
            title=f'{question_type} question',
            correct_answer=correct_answer,
            options=options,
            points=points
        )
        ExamQuestion.objects.create(
            exam=exam,
            question=question,
            order_index=exam.exam_questions.count(),
            points=override
        )
        return question

    def build_standard_exam(self, with_essay=False, **kwargs):
        """
        Multiple choice (2 pts), true/false (1 pt) and fill-in (3 pts),
        optionally followed by an essay (5 pts).
        """
        exam = self.create_exam(**kwargs)
        self.q_choice = self.add_question(
            exam, Question.QuestionType.MULTIPLE_CHOICE,
            correct_answer=['b'],
            options=[
                {'id': 'a', 'text': 'London'},
                {'id': 'b', 'text': 'Paris'},
                {'id': 'c', 'text': 'Rome'},
            ],
            points=2
        )
        self.q_true_false = self.add_question(
            exam, Question.QuestionType.TRUE_FALSE, correct_answer=True, options=['true', 'false']
        )
        self.q_fill = self.add_question(exam, Question.QuestionType.FILL_BLANK, correct_answer='Seine', points=3)
        if with_essay:
            self.q_essay = self.add_question(exam, Question.QuestionType.ESSAY, points=5)
        return exam

    def create_session(self, user, exam, status=ExamSession.Status.ACTIVE, minutes_ago=10, completed=False):
        started_at = timezone.now() - timedelta(minutes=minutes_ago)
        return ExamSession.objects.create(
            user=user,
            exam=exam,
            status=status,
            started_at=started_at,
            completed_at=started_at + timedelta(minutes=minutes_ago) if completed else None,
            time_limit=exam.time_limit_seconds
        )

    def finished_session(self, user, exam, answers, minutes_ago=10):
        """A completed session holding ``answers`` ({question: response}) and no result."""
        session = self.create_session(
            user, exam, status=ExamSession.Status.COMPLETED, minutes_ago=minutes_ago, completed=True
        )
        for question, response in answers.items():
            QuestionResponse.objects.create(session=session, question=question, user=user, response=response)
        return session

    def create_result(self, user, exam, percentage, time_spent=300):
        session = self.create_session(user, exam, status=ExamSession.Status.COMPLETED, completed=True)
        return ExamResult.objects.create(
            session=session,
            user=user,
            exam=exam,
            total_score=percentage,
            max_possible_score=100,
            percentage=percentage,
            passed=percentage >= 60,
            total_questions=1,
            time_spent=time_spent,
            submitted_at=session.completed_at
        )
