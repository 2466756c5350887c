"""
API tests for the exam session engine.
"""
from unittest import mock

from django.core.cache import cache
from django.db import DatabaseError
from django.test import RequestFactory, SimpleTestCase
from rest_framework import status
from rest_framework.authtoken.models import Token
from rest_framework.test import APITestCase

from examinations.models import AuditLog, ExamSession, ExamResult
from examinations.models.audit import client_address
from examinations.services import ResultCalculationService
from .factories import ExamFixtureMixin


class ExamAPITestCase(ExamFixtureMixin, APITestCase):
    def setUp(self):
        cache.clear()
        self.student = self.create_user('student')
        self.examiner = self.create_user('examiner', is_staff=True)
        self.student_token = Token.objects.create(user=self.student)
        self.examiner_token = Token.objects.create(user=self.examiner)
        self.exam = self.build_standard_exam()

    def as_student(self):
        self.client.credentials(HTTP_AUTHORIZATION=f'Token {self.student_token.key}')

    def as_examiner(self):
        self.client.credentials(HTTP_AUTHORIZATION=f'Token {self.examiner_token.key}')

    def start(self):
        self.as_student()
        response = self.client.post('/api/sessions/', {'exam_id': self.exam.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        return response.data


class SessionStartAPITests(ExamAPITestCase):
    def test_requires_authentication(self):
        response = self.client.post('/api/sessions/', {'exam_id': self.exam.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_start_returns_questions_without_answers(self):
        """Questions are delivered in order and never reveal correct answers."""
        data = self.start()

        self.assertEqual(data['session']['status'], 'active')
        self.assertEqual(data['session']['time_limit'], 3600)
        self.assertTrue(data['session_token'])
        self.assertEqual(
            [q['question_id'] for q in data['questions']],
            [self.q_choice.id, self.q_true_false.id, self.q_fill.id]
        )
        for question in data['questions']:
            self.assertNotIn('correct_answer', question)
            for option in question['options'] or []:
                if isinstance(option, dict):
                    self.assertNotIn('is_correct', option)

        entry = AuditLog.objects.get(user=self.student, event_type=AuditLog.EventType.SESSION_START)
        self.assertEqual(entry.session_id, data['session']['id'])
        self.assertEqual(entry.metadata, {'exam_id': self.exam.id})

    def test_duplicate_start_is_conflict(self):
        self.start()
        response = self.client.post('/api/sessions/', {'exam_id': self.exam.id}, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error_type'], 'conflict')

    def test_inactive_exam_is_not_found(self):
        draft = self.create_exam(title='Draft', status='draft')
        self.as_student()
        response = self.client.post('/api/sessions/', {'exam_id': draft.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_missing_exam_id_is_bad_request(self):
        self.as_student()
        response = self.client.post('/api/sessions/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class SessionAnswerAPITests(ExamAPITestCase):
    def setUp(self):
        super().setUp()
        started = self.start()
        self.session_id = started['session']['id']
        self.session_token = started['session_token']

    def url(self, suffix=''):
        return f'/api/sessions/{self.session_id}/{suffix}'

    def test_submit_hides_correctness_from_student(self):
        response = self.client.post(
            self.url('responses/'),
            {'question_id': self.q_choice.id, 'response': ['b'], 'time_spent': 20},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsNone(response.data['is_correct'])
        self.assertIsNone(response.data['points_earned'])
        self.assertEqual(response.data['time_spent'], 20)

    def test_examiner_sees_correctness(self):
        self.client.post(self.url('responses/'), {'question_id': self.q_choice.id, 'response': ['b']}, format='json')

        self.as_examiner()
        response = self.client.get(self.url())
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['responses'][0]['is_correct'])
        self.assertEqual(response.data['responses'][0]['points_earned'], 2)

    def test_unknown_question_is_not_found(self):
        response = self.client.post(self.url('responses/'), {'question_id': 999999, 'response': 'x'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_other_user_cannot_see_session(self):
        intruder = self.create_user('intruder')
        token = Token.objects.create(user=intruder)
        self.client.credentials(HTTP_AUTHORIZATION=f'Token {token.key}')

        self.assertEqual(self.client.get(self.url()).status_code, status.HTTP_404_NOT_FOUND)
        response = self.client.post(
            self.url('responses/'), {'question_id': self.q_choice.id, 'response': ['b']}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_batch_reports_per_item_failures(self):
        response = self.client.post(self.url('batch-responses/'), {
            'responses': [
                {'question_id': self.q_choice.id, 'response': ['b']},
                {'question_id': 999999, 'response': 'x'},
            ],
            'session_token': self.session_token,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['processed'], 1)
        self.assertEqual(response.data['failed'], 1)
        self.assertEqual(response.data['errors'][0]['question_id'], 999999)

    def test_batch_rejects_forged_session_token(self):
        response = self.client.post(self.url('batch-responses/'), {
            'responses': [{'question_id': self.q_choice.id, 'response': ['b']}],
            'session_token': 'forged',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        entry = AuditLog.objects.get(event_type=AuditLog.EventType.INTEGRITY_FAILURE)
        self.assertEqual(entry.session_id, self.session_id)
        self.assertEqual(entry.user, self.student)
        self.assertFalse(ExamSession.objects.get(id=self.session_id).responses.exists())

    def test_empty_batch_is_bad_request(self):
        response = self.client.post(self.url('batch-responses/'), {'responses': []}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_auto_save(self):
        response = self.client.post(self.url('auto-save/'), {
            'responses': [{'question_id': self.q_fill.id, 'response': 'Sei'}],
            'session_token': self.session_token,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['saved'], [self.q_fill.id])
        self.assertEqual(response.data['next_auto_save'], 30)

    def test_paused_session_rejects_answers(self):
        response = self.client.post(self.url('pause/'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'paused')

        response = self.client.post(self.url('responses/'), {'question_id': self.q_fill.id, 'response': 'x'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error_type'], 'invalid_state')

        response = self.client.post(self.url('pause/'))
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

        response = self.client.post(self.url('resume/'))
        self.assertEqual(response.data['status'], 'active')

    def test_only_examiners_terminate(self):
        response = self.client.post(self.url('terminate/'), {'reason': 'no'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.as_examiner()
        response = self.client.post(self.url('terminate/'), {'reason': 'Left the room'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'terminated')
        self.assertEqual(response.data['notes'], 'Left the room')

    def test_complete_is_idempotent(self):
        self.client.post(self.url('responses/'), {'question_id': self.q_choice.id, 'response': ['b']}, format='json')

        first = self.client.post(self.url('complete/'))
        second = self.client.post(self.url('complete/'))

        self.assertEqual(first.status_code, status.HTTP_200_OK)
        self.assertEqual(second.status_code, status.HTTP_200_OK)
        self.assertEqual(first.data['session']['status'], 'completed')
        self.assertEqual(first.data['result']['id'], second.data['result']['id'])
        self.assertEqual(
            AuditLog.objects.filter(event_type=AuditLog.EventType.SESSION_COMPLETE).count(), 1
        )

    def test_progress(self):
        self.client.post(self.url('responses/'), {'question_id': self.q_fill.id, 'response': 'Seine'}, format='json')
        response = self.client.get(self.url('progress/'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_questions'], 3)
        self.assertEqual(response.data['answered_questions'], 1)

    def test_database_failure_is_service_unavailable(self):
        broken = mock.Mock()
        broken.get_progress.side_effect = DatabaseError('connection lost')

        with mock.patch('examinations.api.views.get_session_service', return_value=broken):
            with self.assertLogs('examinations.api.exceptions', level='ERROR'):
                response = self.client.get(self.url('progress/'))

        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)


class SessionListAPITests(ExamAPITestCase):
    def setUp(self):
        super().setUp()
        self.other = self.create_user('other')
        self.mine = self.create_session(self.student, self.exam, status=ExamSession.Status.COMPLETED, completed=True)
        self.theirs = self.create_session(self.other, self.exam)

    def test_student_sees_own_sessions(self):
        self.as_student()
        response = self.client.get('/api/sessions/', {'user_id': self.other.id})
        self.assertEqual([s['id'] for s in response.data['results']], [self.mine.id])

    def test_examiner_filters_by_status(self):
        self.as_examiner()
        response = self.client.get('/api/sessions/', {'status': 'active'})
        self.assertEqual([s['id'] for s in response.data['results']], [self.theirs.id])

    def test_invalid_status_filter(self):
        self.as_examiner()
        response = self.client.get('/api/sessions/', {'status': 'sleeping'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class ResultAPITests(ExamAPITestCase):
    def setUp(self):
        super().setUp()
        self.other = self.create_user('other')
        self.own_result = self.create_result(self.student, self.exam, 80)
        self.other_result = self.create_result(self.other, self.exam, 40)

    def test_student_sees_only_own_results(self):
        self.as_student()
        response = self.client.get('/api/results/')
        self.assertEqual([r['id'] for r in response.data['results']], [self.own_result.id])

        response = self.client.get(f'/api/results/{self.other_result.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_examiner_filters_by_score(self):
        self.as_examiner()
        response = self.client.get('/api/results/', {'min_score': 50})
        self.assertEqual([r['id'] for r in response.data['results']], [self.own_result.id])

    def test_history(self):
        self.as_student()
        response = self.client.get('/api/results/history/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([r['id'] for r in response.data], [self.own_result.id])


class ManualGradeAPITests(ExamAPITestCase):
    def setUp(self):
        super().setUp()
        exam = self.build_standard_exam(with_essay=True, title='Essays')
        session = self.finished_session(self.student, exam, {self.q_essay: 'My essay'})
        self.result = ResultCalculationService().calculate(session.id).result
        self.url = f'/api/results/{self.result.id}/grade/'

    def test_student_cannot_grade(self):
        self.as_student()
        response = self.client.post(self.url, {'total_score': '5.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_examiner_grades_once(self):
        self.as_examiner()
        response = self.client.post(self.url, {'total_score': '4.00', 'grader_notes': 'Solid'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['percentage'], '80.00')
        self.assertTrue(response.data['passed'])
        self.assertTrue(response.data['is_graded'])
        entry = AuditLog.objects.get(event_type=AuditLog.EventType.MANUAL_GRADE)
        self.assertEqual(entry.session_id, self.result.session_id)
        self.assertEqual(entry.metadata, {'result_id': self.result.id})

        response = self.client.post(self.url, {'total_score': '5.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(ExamResult.objects.get(id=self.result.id).total_score, 4)

    def test_score_above_maximum(self):
        self.as_examiner()
        response = self.client.post(self.url, {'total_score': '6.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class AnalyticsAPITests(ExamAPITestCase):
    def setUp(self):
        super().setUp()
        self.create_result(self.student, self.exam, 90, time_spent=120)
        self.url = f'/api/exams/{self.exam.id}/analytics/'

    def test_students_are_forbidden(self):
        self.as_student()
        self.assertEqual(self.client.get(self.url).status_code, status.HTTP_403_FORBIDDEN)

    def test_examiner_gets_analytics(self):
        self.as_examiner()
        response = self.client.get(self.url, {'pass_threshold': 95})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['exam_id'], self.exam.id)
        self.assertEqual(response.data['completed_attempts'], 1)
        self.assertEqual(response.data['pass_rate'], 0.0)

    def test_bad_threshold(self):
        self.as_examiner()
        response = self.client.get(self.url, {'pass_threshold': 'high'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_non_finite_threshold(self):
        self.as_examiner()
        for value in ('nan', 'inf', '-inf'):
            response = self.client.get(self.url, {'pass_threshold': value})
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, value)


class ClientAddressTests(SimpleTestCase):
    def test_first_forwarded_hop_wins(self):
        request = RequestFactory().get('/', HTTP_X_FORWARDED_FOR='203.0.113.7, 10.0.0.1', REMOTE_ADDR='10.0.0.1')
        self.assertEqual(client_address(request), '203.0.113.7')

    def test_falls_back_to_peer_address(self):
        request = RequestFactory().get('/', REMOTE_ADDR='198.51.100.4')
        self.assertEqual(client_address(request), '198.51.100.4')
