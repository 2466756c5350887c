from rest_framework import serializers
from django.contrib.auth.models import User
from drf_spectacular.utils import extend_schema_field

from examinations.models import Exam, ExamQuestion, ExamSession, QuestionResponse, ExamResult
from examinations.services.integrity import sanitize_options


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'username', 'first_name', 'last_name']
        read_only_fields = fields


class ExamSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Exam
        fields = ['id', 'title', 'duration_minutes', 'passing_score', 'requires_verification', 'status']
        read_only_fields = fields


class ExamQuestionSerializer(serializers.ModelSerializer):
    """A question as presented inside an exam; never carries the correct answer."""
    question_id = serializers.IntegerField(source='question.id', read_only=True)
    question_type = serializers.CharField(source='question.question_type', read_only=True)
    title = serializers.CharField(source='question.title', read_only=True)
    text = serializers.CharField(source='question.text', read_only=True)
    options = serializers.SerializerMethodField()
    points = serializers.IntegerField(source='resolved_points', read_only=True)

    class Meta:
        model = ExamQuestion
        fields = ['question_id', 'order_index', 'question_type', 'title', 'text', 'options', 'points', 'required']
        read_only_fields = fields

    @extend_schema_field(serializers.ListField(allow_null=True))
    def get_options(self, obj):
        options = obj.question.options
        if not options:
            return None
        return sanitize_options(options)


class QuestionResponseSerializer(serializers.ModelSerializer):
    class Meta:
        model = QuestionResponse
        fields = [
            'id', 'question', 'response', 'is_correct', 'points_earned',
            'time_spent', 'attempts', 'created_at', 'updated_at'
        ]
        read_only_fields = fields

    def to_representation(self, instance):
        data = super().to_representation(instance)
        request = self.context.get('request')
        is_examiner = bool(request and request.user.is_authenticated and request.user.is_staff)
        if not is_examiner and instance.session.status in ExamSession.OPEN_STATUSES:
            data['is_correct'] = None
            data['points_earned'] = None
        return data


class ExamSessionListSerializer(serializers.ModelSerializer):
    exam_title = serializers.CharField(source='exam.title', read_only=True)
    username = serializers.CharField(source='user.username', read_only=True)

    class Meta:
        model = ExamSession
        fields = [
            'id', 'exam', 'exam_title', 'user', 'username', 'status',
            'started_at', 'completed_at', 'time_limit', 'current_question_index'
        ]
        read_only_fields = fields


class ExamSessionDetailSerializer(serializers.ModelSerializer):
    exam = ExamSummarySerializer(read_only=True)
    user = UserSerializer(read_only=True)
    time_remaining = serializers.SerializerMethodField()

    class Meta:
        model = ExamSession
        fields = [
            'id', 'exam', 'user', 'status', 'started_at', 'completed_at',
            'time_limit', 'time_remaining', 'current_question_index', 'notes'
        ]
        read_only_fields = fields

    @extend_schema_field(serializers.IntegerField(allow_null=True))
    def get_time_remaining(self, obj) -> int | None:
        if not obj.is_open:
            return None
        return obj.time_remaining


class ExamResultSerializer(serializers.ModelSerializer):
    exam_title = serializers.CharField(source='exam.title', read_only=True)
    username = serializers.CharField(source='user.username', read_only=True)
    is_graded = serializers.BooleanField(read_only=True)

    class Meta:
        model = ExamResult
        fields = [
            'id', 'session', 'exam', 'exam_title', 'user', 'username',
            'total_score', 'max_possible_score', 'percentage', 'passed',
            'correct_answers', 'total_questions', 'time_spent',
            'requires_manual_grading', 'submitted_at',
            'is_graded', 'graded_at', 'graded_by', 'grader_notes'
        ]
        read_only_fields = fields


class SessionStartSerializer(serializers.Serializer):
    exam_id = serializers.IntegerField()


class ResponseSubmitSerializer(serializers.Serializer):
    question_id = serializers.IntegerField()
    response = serializers.JSONField(required=False, allow_null=True, default=None)
    time_spent = serializers.IntegerField(required=False, allow_null=True, min_value=0, default=None)


class ResponseItemSerializer(serializers.Serializer):
    question_id = serializers.JSONField(help_text="Question id; unknown ids are reported per item")
    response = serializers.JSONField(required=False, allow_null=True, default=None)
    timestamp = serializers.IntegerField(
        required=False, allow_null=True, min_value=0, default=None,
        help_text="Client clock in epoch milliseconds"
    )
    time_spent = serializers.IntegerField(required=False, allow_null=True, min_value=0, default=None)


class BatchSubmitSerializer(serializers.Serializer):
    responses = ResponseItemSerializer(many=True, allow_empty=False)
    fingerprint = serializers.CharField(required=False, allow_blank=True, default='')
    session_token = serializers.CharField(required=False, allow_blank=True, default='')


class AutoSaveSerializer(serializers.Serializer):
    responses = ResponseItemSerializer(many=True)
    session_token = serializers.CharField(required=False, allow_blank=True, default='')


class TerminateSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, max_length=1000, default='')


class ManualGradeSerializer(serializers.Serializer):
    total_score = serializers.DecimalField(max_digits=7, decimal_places=2, min_value=0)
    grader_notes = serializers.CharField(required=False, allow_blank=True, default='')

    def validate_total_score(self, value):
        result = self.context.get('result')
        if result and value > result.max_possible_score:
            raise serializers.ValidationError(f"Cannot exceed max points ({result.max_possible_score})")
        return value


class ItemErrorSerializer(serializers.Serializer):
    question_id = serializers.JSONField(allow_null=True)
    error = serializers.CharField()


class BatchResultSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    processed = serializers.IntegerField()
    failed = serializers.IntegerField()
    duplicates = serializers.IntegerField()
    errors = ItemErrorSerializer(many=True)


class AutoSaveResultSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    saved = serializers.ListField(child=serializers.IntegerField())
    skipped = serializers.ListField(child=serializers.IntegerField())
    errors = ItemErrorSerializer(many=True)
    next_auto_save = serializers.IntegerField()


class ProgressSerializer(serializers.Serializer):
    total_questions = serializers.IntegerField()
    answered_questions = serializers.IntegerField()
    time_elapsed = serializers.IntegerField()
    time_remaining = serializers.IntegerField(allow_null=True)
    completion_percentage = serializers.FloatField()


class SessionFilterSerializer(serializers.Serializer):
    exam_id = serializers.IntegerField(required=False)
    user_id = serializers.IntegerField(required=False)
    status = serializers.ChoiceField(choices=ExamSession.Status.choices, required=False)
    started_after = serializers.DateTimeField(required=False)
    started_before = serializers.DateTimeField(required=False)


class ResultFilterSerializer(serializers.Serializer):
    exam_id = serializers.IntegerField(required=False)
    user_id = serializers.IntegerField(required=False)
    session_id = serializers.IntegerField(required=False)
    min_score = serializers.DecimalField(max_digits=5, decimal_places=2, required=False)
    max_score = serializers.DecimalField(max_digits=5, decimal_places=2, required=False)
    submitted_after = serializers.DateTimeField(required=False)
    submitted_before = serializers.DateTimeField(required=False)
