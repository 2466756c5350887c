"""
API Views for the exam session engine.
Thin HTTP layer over the session, result and analytics services.
"""
import math

from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework.views import APIView
from drf_spectacular.utils import (
    extend_schema, extend_schema_view, OpenApiParameter,
    OpenApiExample, OpenApiResponse
)

from examinations.models import ExamSession, ExamResult, AuditLog
from examinations.permissions import IsOwnerOrExaminer, IsExaminer, is_examiner
from examinations.throttling import ResponseRateThrottle, AutoSaveRateThrottle
from examinations.services import ErrorType, ExamAnalytics, get_session_service, get_result_service
from examinations.services.integrity import generate_session_token, validate_session_token
from .serializers import (
    ExamSessionListSerializer, ExamSessionDetailSerializer, ExamQuestionSerializer,
    QuestionResponseSerializer, ExamResultSerializer,
    SessionStartSerializer, ResponseSubmitSerializer, BatchSubmitSerializer,
    AutoSaveSerializer, TerminateSerializer, ManualGradeSerializer,
    BatchResultSerializer, AutoSaveResultSerializer, ProgressSerializer,
    SessionFilterSerializer, ResultFilterSerializer
)

ERROR_STATUS = {
    ErrorType.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorType.INVALID_STATE: status.HTTP_409_CONFLICT,
    ErrorType.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorType.VALIDATION_FAILURE: status.HTTP_400_BAD_REQUEST,
}


def error_response(outcome):
    return Response(
        {'detail': outcome.error, 'error_type': outcome.error_type.value},
        status=ERROR_STATUS.get(outcome.error_type, status.HTTP_400_BAD_REQUEST)
    )


# =============================================================================
# SESSIONS
# =============================================================================

@extend_schema_view(
    list=extend_schema(
        summary="List exam sessions",
        description="""
List exam sessions.

**Students** see only their own sessions.
**Examiners** see all sessions and may filter by `user_id`.
""",
        parameters=[
            OpenApiParameter(name='exam_id', type=int, location='query', required=False),
            OpenApiParameter(name='user_id', type=int, location='query', required=False),
            OpenApiParameter(name='status', type=str, location='query', required=False),
            OpenApiParameter(name='started_after', type=str, location='query', required=False),
            OpenApiParameter(name='started_before', type=str, location='query', required=False),
        ]
    )
)
@extend_schema(tags=['Sessions'])
class ExamSessionViewSet(viewsets.ReadOnlyModelViewSet):
    """
    ViewSet for exam attempts.

    Covers the whole attempt: start, answer (single, batch, auto-save),
    pause/resume, complete, and examiner termination.
    """
    queryset = ExamSession.objects.none()
    permission_classes = [IsAuthenticated, IsOwnerOrExaminer]
    ordering_fields = ['started_at', 'completed_at', 'status']
    ordering = ['-started_at']

    @property
    def service(self):
        return get_session_service()

    def get_queryset(self):
        if getattr(self, 'swagger_fake_view', False):
            return ExamSession.objects.none()

        queryset = ExamSession.objects.select_related('exam', 'user')
        if not is_examiner(self.request.user):
            queryset = queryset.filter(user=self.request.user)

        if self.action == 'list':
            filters = SessionFilterSerializer(data=self.request.query_params)
            filters.is_valid(raise_exception=True)
            params = dict(filters.validated_data)
            if not is_examiner(self.request.user):
                params.pop('user_id', None)
            queryset = self.service.filter_sessions(params, queryset=queryset)
        return queryset

    def get_serializer_class(self):
        if self.action == 'list':
            return ExamSessionListSerializer
        return ExamSessionDetailSerializer

    def _session_payload(self, outcome, request):
        data = {
            'session': ExamSessionDetailSerializer(outcome.session, context={'request': request}).data,
        }
        if outcome.questions is not None:
            data['questions'] = ExamQuestionSerializer(outcome.questions, many=True).data
        if outcome.responses is not None:
            data['responses'] = QuestionResponseSerializer(
                outcome.responses, many=True, context={'request': request}
            ).data
        if outcome.result is not None:
            data['result'] = ExamResultSerializer(outcome.result).data
        return data

    def _check_session_token(self, request, session, token):
        if not token:
            return True
        if validate_session_token(token, session.id, session.user_id, session.exam_id):
            return True
        AuditLog.log(
            event_type=AuditLog.EventType.INTEGRITY_FAILURE,
            description=f"Invalid session token for session {session.id}",
            request=request,
            session=session
        )
        return False

    @extend_schema(
        summary="Start exam attempt",
        description="""
Start a new attempt on an active exam.

**Validations:**
- Exam must exist and be active
- No active or paused session for this exam

**Returns:** the session, its ordered questions (without answers) and a
signed `session_token` that batch and auto-save calls may echo back.
""",
        request=SessionStartSerializer,
        responses={201: dict, 404: dict, 409: dict},
        examples=[
            OpenApiExample('Request Example', value={"exam_id": 1}, request_only=True)
        ]
    )
    def create(self, request, *args, **kwargs):
        serializer = SessionStartSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        outcome = self.service.start_session(request.user, serializer.validated_data['exam_id'])
        if not outcome.success:
            return error_response(outcome)

        session = outcome.session
        AuditLog.log(
            event_type=AuditLog.EventType.SESSION_START,
            description=f"Started: {session.exam.title}",
            request=request,
            user=request.user,
            session=session,
            metadata={'exam_id': session.exam_id}
        )

        data = self._session_payload(outcome, request)
        data['session_token'] = generate_session_token(session.id, session.user_id, session.exam_id)
        return Response(data, status=status.HTTP_201_CREATED)

    @extend_schema(
        summary="Get session details",
        description="Session with its ordered questions, stored responses and result (once calculated).",
        responses={200: dict, 404: dict}
    )
    def retrieve(self, request, *args, **kwargs):
        session = self.get_object()
        outcome = self.service.get_session(session.id)
        if not outcome.success:
            return error_response(outcome)
        return Response(self._session_payload(outcome, request))

    @extend_schema(
        summary="Submit one answer",
        description="""
Evaluate and store one answer. Resubmitting the same question updates the
stored response in place.

**Requires:** session status `active`.
""",
        request=ResponseSubmitSerializer,
        responses={200: QuestionResponseSerializer, 404: dict, 409: dict},
        examples=[
            OpenApiExample(
                'Request Example',
                value={"question_id": 3, "response": ["b"], "time_spent": 42},
                request_only=True
            )
        ]
    )
    @action(detail=True, methods=['post'], throttle_classes=[ResponseRateThrottle])
    def responses(self, request, pk=None):
        session = self.get_object()
        serializer = ResponseSubmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        outcome = self.service.submit_response(
            session.id, data['question_id'], data['response'], data['time_spent']
        )
        if not outcome.success:
            return error_response(outcome)
        return Response(QuestionResponseSerializer(outcome.response, context={'request': request}).data)

    @extend_schema(
        summary="Submit many answers",
        description="""
Store a batch of answers with per-item results.

Items carry an optional `timestamp` (epoch milliseconds). An item not newer
than the stored response is counted as a duplicate. Unknown question ids are
reported per item and do not abort the batch. An optional `fingerprint`
(SHA-256 over the sorted, normalized answers) is verified before writing.
""",
        request=BatchSubmitSerializer,
        responses={200: BatchResultSerializer, 400: dict, 404: dict, 409: dict},
        examples=[
            OpenApiExample(
                'Request Example',
                value={
                    "responses": [
                        {"question_id": 1, "response": ["a", "c"], "timestamp": 1718000000000},
                        {"question_id": 2, "response": "true", "timestamp": 1718000000500}
                    ]
                },
                request_only=True
            )
        ]
    )
    @action(detail=True, methods=['post'], url_path='batch-responses', throttle_classes=[ResponseRateThrottle])
    def batch_responses(self, request, pk=None):
        session = self.get_object()
        serializer = BatchSubmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        if not self._check_session_token(request, session, data['session_token']):
            return Response({'detail': 'Invalid session token.'}, status=status.HTTP_400_BAD_REQUEST)

        outcome = self.service.submit_batch(session.id, data['responses'], fingerprint=data['fingerprint'] or None)
        if not outcome.success and not (outcome.processed or outcome.failed or outcome.duplicates):
            if outcome.error_type == ErrorType.VALIDATION_FAILURE:
                AuditLog.log(
                    event_type=AuditLog.EventType.INTEGRITY_FAILURE,
                    description=f"Batch rejected for session {session.id}: {outcome.error}",
                    request=request,
                    session=session
                )
            return error_response(outcome)
        return Response(BatchResultSerializer(outcome).data)

    @extend_schema(
        summary="Auto-save answers",
        description="""
Background save of in-progress answers.

Identical answers are skipped. When the server already holds a newer,
different answer the item is skipped and reported as a conflict.
`next_auto_save` tells the client how many seconds to wait before the next
call.
""",
        request=AutoSaveSerializer,
        responses={200: AutoSaveResultSerializer, 404: dict, 409: dict}
    )
    @action(detail=True, methods=['post'], url_path='auto-save', throttle_classes=[AutoSaveRateThrottle])
    def auto_save(self, request, pk=None):
        session = self.get_object()
        serializer = AutoSaveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        if not self._check_session_token(request, session, data['session_token']):
            return Response({'detail': 'Invalid session token.'}, status=status.HTTP_400_BAD_REQUEST)

        outcome = self.service.auto_save(session.id, data['responses'])
        if outcome.error_type in (ErrorType.NOT_FOUND, ErrorType.INVALID_STATE):
            return error_response(outcome)
        return Response(AutoSaveResultSerializer(outcome).data)

    @extend_schema(summary="Pause session", request=None, responses={200: ExamSessionDetailSerializer, 409: dict})
    @action(detail=True, methods=['post'])
    def pause(self, request, pk=None):
        session = self.get_object()
        outcome = self.service.pause_session(session.id)
        if not outcome.success:
            return error_response(outcome)

        AuditLog.log(
            event_type=AuditLog.EventType.SESSION_PAUSE,
            description=f"Paused: {session.exam.title}",
            request=request,
            session=session
        )
        return Response(ExamSessionDetailSerializer(outcome.session).data)

    @extend_schema(summary="Resume session", request=None, responses={200: ExamSessionDetailSerializer, 409: dict})
    @action(detail=True, methods=['post'])
    def resume(self, request, pk=None):
        session = self.get_object()
        outcome = self.service.resume_session(session.id)
        if not outcome.success:
            return error_response(outcome)

        AuditLog.log(
            event_type=AuditLog.EventType.SESSION_RESUME,
            description=f"Resumed: {session.exam.title}",
            request=request,
            session=session
        )
        return Response(ExamSessionDetailSerializer(outcome.session).data)

    @extend_schema(
        summary="Terminate session",
        description="Force-end an active or paused session. **Requires examiner.**",
        request=TerminateSerializer,
        responses={200: ExamSessionDetailSerializer, 409: dict}
    )
    @action(detail=True, methods=['post'], permission_classes=[IsAuthenticated, IsExaminer])
    def terminate(self, request, pk=None):
        session = self.get_object()
        serializer = TerminateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        outcome = self.service.terminate_session(session.id, serializer.validated_data['reason'] or None)
        if not outcome.success:
            return error_response(outcome)

        AuditLog.log(
            event_type=AuditLog.EventType.SESSION_TERMINATE,
            description=f"Terminated: {session.exam.title} ({session.user.username})",
            request=request,
            session=session,
            metadata={'reason': outcome.session.notes}
        )
        return Response(ExamSessionDetailSerializer(outcome.session).data)

    @extend_schema(
        summary="Complete session",
        description="""
Finish the attempt and calculate the result.

Completing an already completed session returns the same session and result.
""",
        request=None,
        responses={200: dict, 404: dict, 409: dict}
    )
    @action(detail=True, methods=['post'], throttle_classes=[ResponseRateThrottle])
    def complete(self, request, pk=None):
        session = self.get_object()
        already_finished = session.status in ExamSession.FINISHED_STATUSES

        outcome = self.service.complete_session(session.id)
        if not outcome.success:
            return error_response(outcome)

        if not already_finished:
            AuditLog.log(
                event_type=AuditLog.EventType.SESSION_COMPLETE,
                description=f"Completed: {session.exam.title}",
                request=request,
                session=session,
                metadata={'result_id': outcome.result.id if outcome.result else None}
            )

        return Response({
            'session': ExamSessionDetailSerializer(outcome.session).data,
            'result': ExamResultSerializer(outcome.result).data if outcome.result else None
        })

    @extend_schema(summary="Session progress", responses={200: ProgressSerializer, 404: dict})
    @action(detail=True, methods=['get'])
    def progress(self, request, pk=None):
        session = self.get_object()
        outcome = self.service.get_progress(session.id)
        if not outcome.success:
            return error_response(outcome)
        return Response(ProgressSerializer(outcome).data)


# =============================================================================
# RESULTS
# =============================================================================

@extend_schema_view(
    list=extend_schema(
        summary="List results",
        description="""
List exam results.

**Students** see only their own results.
**Examiners** see all results.
""",
        parameters=[
            OpenApiParameter(name='exam_id', type=int, location='query', required=False),
            OpenApiParameter(name='user_id', type=int, location='query', required=False),
            OpenApiParameter(name='session_id', type=int, location='query', required=False),
            OpenApiParameter(name='min_score', type=float, location='query', required=False),
            OpenApiParameter(name='max_score', type=float, location='query', required=False),
            OpenApiParameter(name='submitted_after', type=str, location='query', required=False),
            OpenApiParameter(name='submitted_before', type=str, location='query', required=False),
        ]
    ),
    retrieve=extend_schema(summary="Get result details")
)
@extend_schema(tags=['Results'])
class ExamResultViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = ExamResult.objects.none()
    serializer_class = ExamResultSerializer
    permission_classes = [IsAuthenticated, IsOwnerOrExaminer]
    ordering_fields = ['submitted_at', 'percentage', 'total_score', 'time_spent']
    ordering = ['-submitted_at']

    @property
    def service(self):
        return get_result_service()

    def get_queryset(self):
        if getattr(self, 'swagger_fake_view', False):
            return ExamResult.objects.none()

        queryset = ExamResult.objects.select_related('exam', 'user')
        if not is_examiner(self.request.user):
            queryset = queryset.filter(user=self.request.user)

        if self.action == 'list':
            filters = ResultFilterSerializer(data=self.request.query_params)
            filters.is_valid(raise_exception=True)
            queryset = self.service.filter_results(dict(filters.validated_data), queryset=queryset)
        return queryset

    @extend_schema(
        summary="My exam history",
        description="All results of the current user, newest first.",
        parameters=[
            OpenApiParameter(name='exam_id', type=int, location='query', required=False, description='Exam ID')
        ],
        responses={200: ExamResultSerializer(many=True)}
    )
    @action(detail=False, methods=['get'])
    def history(self, request):
        exam_id = request.query_params.get('exam_id')
        if exam_id and not exam_id.isdigit():
            return Response({"detail": "exam_id must be an integer."}, status=status.HTTP_400_BAD_REQUEST)

        results = self.service.get_user_history(request.user.id, exam_id=exam_id)
        return Response(ExamResultSerializer(results, many=True).data)

    @extend_schema(
        summary="Record manual grade",
        description="""
Record the score of a manual grading pass (essays, matching).

A result can be graded once; a second attempt returns 409.
**Requires examiner.**
""",
        request=ManualGradeSerializer,
        responses={200: ExamResultSerializer, 400: dict, 409: dict},
        examples=[
            OpenApiExample(
                'Request Example',
                value={"total_score": "7.50", "grader_notes": "Good argument, weak conclusion"},
                request_only=True
            )
        ]
    )
    @action(detail=True, methods=['post'], permission_classes=[IsAuthenticated, IsExaminer])
    def grade(self, request, pk=None):
        result = self.get_object()
        serializer = ManualGradeSerializer(data=request.data, context={'result': result})
        serializer.is_valid(raise_exception=True)

        outcome = self.service.record_manual_grade(
            result.id,
            serializer.validated_data['total_score'],
            graded_by=request.user,
            grader_notes=serializer.validated_data['grader_notes']
        )
        if not outcome.success:
            return error_response(outcome)

        AuditLog.log(
            event_type=AuditLog.EventType.MANUAL_GRADE,
            description=f"Graded result {result.id}: {outcome.result.total_score}/{outcome.result.max_possible_score}",
            request=request,
            session=result.session,
            metadata={'result_id': result.id}
        )
        return Response(ExamResultSerializer(outcome.result).data)


# =============================================================================
# ANALYTICS
# =============================================================================

@extend_schema(tags=['Analytics'])
class ExamAnalyticsView(APIView):
    """Score distribution, pass rate and timing for one exam."""
    permission_classes = [IsAuthenticated, IsExaminer]

    @extend_schema(
        summary="Exam analytics",
        description="""
Summary statistics across all results of an exam.

Before any result exists, attempt counts and timing come from finished
sessions and score metrics are zero. Never fails for missing data.
""",
        parameters=[
            OpenApiParameter(
                name='pass_threshold', type=float, location='query', required=False,
                description='Percentage counted as a pass (default 60)'
            )
        ],
        responses={200: OpenApiResponse(description='Analytics structure'), 400: dict}
    )
    def get(self, request, exam_id):
        threshold = request.query_params.get('pass_threshold')
        if threshold is not None:
            try:
                threshold = float(threshold)
            except ValueError:
                threshold = None
            if threshold is None or not math.isfinite(threshold):
                return Response({"detail": "pass_threshold must be a number."}, status=status.HTTP_400_BAD_REQUEST)

        return Response(ExamAnalytics(exam_id, pass_threshold=threshold).get_analytics())
