"""
Management command to seed demo data for the Exam Session Engine.
Creates a student, an examiner and one active exam covering every question type.
"""
from django.core.management.base import BaseCommand
from django.contrib.auth.models import User
from django.db import transaction
from django.utils import timezone
from rest_framework.authtoken.models import Token

from examinations.models import Exam, ExamQuestion, Question

DEMO_QUESTIONS = [
    {
        'question_type': Question.QuestionType.MULTIPLE_CHOICE,
        'title': 'Python collections',
        'text': 'Which of these types are mutable?',
        'options': [
            {'id': 'a', 'text': 'list'},
            {'id': 'b', 'text': 'dict'},
            {'id': 'c', 'text': 'tuple'},
            {'id': 'd', 'text': 'str'},
        ],
        'correct_answer': ['a', 'b'],
        'points': 2,
    },
    {
        'question_type': Question.QuestionType.TRUE_FALSE,
        'title': 'Indentation',
        'text': 'Python uses indentation to delimit blocks.',
        'options': ['true', 'false'],
        'correct_answer': True,
        'points': 1,
    },
    {
        'question_type': Question.QuestionType.FILL_BLANK,
        'title': 'Keywords',
        'text': 'The keyword used to define a function is ____.',
        'correct_answer': 'def',
        'points': 1,
    },
    {
        'question_type': Question.QuestionType.ESSAY,
        'title': 'Decorators',
        'text': 'Explain what a decorator is and give one use case.',
        'points': 5,
    },
]


class Command(BaseCommand):
    help = 'Seed a demo examiner, student and active exam'

    def add_arguments(self, parser):
        parser.add_argument('--duration', type=int, default=30, help='Exam duration in minutes')

    @transaction.atomic
    def handle(self, *args, **options):
        self.stdout.write(self.style.NOTICE('\nSeeding Exam Session Engine demo data...\n'))

        student = self._user('student', 'student123', is_staff=False)
        examiner = self._user('examiner', 'examiner123', is_staff=True)
        student_token, _ = Token.objects.get_or_create(user=student)
        examiner_token, _ = Token.objects.get_or_create(user=examiner)

        exam, created = Exam.objects.get_or_create(
            title='Python Fundamentals',
            defaults={
                'description': 'Demo exam covering every question type',
                'duration_minutes': options['duration'],
                'passing_score': 60,
                'status': Exam.Status.ACTIVE,
                'created_by': examiner,
                'published_at': timezone.now(),
            }
        )
        if created:
            for index, data in enumerate(DEMO_QUESTIONS):
                question = Question.objects.create(created_by=examiner, **data)
                ExamQuestion.objects.create(exam=exam, question=question, order_index=index)
            self.stdout.write(self.style.SUCCESS(f'Exam: {exam.title} with {len(DEMO_QUESTIONS)} questions'))
        else:
            self.stdout.write(f'  Exam already exists: {exam.title}')

        self.stdout.write(self.style.SUCCESS('\nDemo data ready.'))
        self.stdout.write('\nDemo Accounts:')
        self.stdout.write('  student  / student123   (student)')
        self.stdout.write('  examiner / examiner123  (examiner)')
        self.stdout.write('\nAPI Tokens:')
        self.stdout.write(f'  Student:  {student_token.key}')
        self.stdout.write(f'  Examiner: {examiner_token.key}')
        self.stdout.write('\nStart an attempt:')
        self.stdout.write(
            f'  curl -X POST -H "Authorization: Token {student_token.key}" '
            f'-H "Content-Type: application/json" -d \'{{"exam_id": {exam.id}}}\' '
            f'http://localhost:8000/api/sessions/'
        )
        self.stdout.write('')

    def _user(self, username, password, is_staff):
        user, created = User.objects.get_or_create(
            username=username,
            defaults={
                'email': f'{username}@example.com',
                'is_staff': is_staff,
                'is_active': True
            }
        )
        if created:
            user.set_password(password)
            user.save()
            self.stdout.write(self.style.SUCCESS(f'Created {username}: {username} / {password}'))
        else:
            self.stdout.write(f'  {username} already exists')
        return user
