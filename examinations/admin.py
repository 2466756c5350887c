from django.contrib import admin
from .models import Exam, ExamQuestion, Question, ExamSession, QuestionResponse, ExamResult, AuditLog


class ExamQuestionInline(admin.TabularInline):
    model = ExamQuestion
    extra = 1
    fields = ['order_index', 'question', 'points', 'required']
    autocomplete_fields = ['question']


class QuestionResponseInline(admin.TabularInline):
    model = QuestionResponse
    extra = 0
    readonly_fields = ['question', 'response', 'is_correct', 'points_earned', 'time_spent', 'attempts', 'updated_at']
    can_delete = False


@admin.register(Exam)
class ExamAdmin(admin.ModelAdmin):
    list_display = ['title', 'status', 'duration_minutes', 'passing_score', 'requires_verification', 'created_at']
    list_filter = ['status', 'requires_verification']
    search_fields = ['title', 'description']
    inlines = [ExamQuestionInline]
    readonly_fields = ['created_at', 'updated_at', 'published_at']
    fieldsets = (
        (None, {'fields': ('title', 'description', 'status')}),
        ('Settings', {'fields': ('duration_minutes', 'passing_score', 'requires_verification')}),
        ('Metadata', {'fields': ('created_by', 'created_at', 'updated_at', 'published_at'), 'classes': ('collapse',)}),
    )


@admin.register(Question)
class QuestionAdmin(admin.ModelAdmin):
    list_display = ['id', 'question_type', 'title', 'points']
    list_filter = ['question_type']
    search_fields = ['title', 'text']


@admin.register(ExamSession)
class ExamSessionAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'exam', 'status', 'started_at', 'completed_at', 'time_limit']
    list_filter = ['status', 'exam']
    search_fields = ['user__username', 'exam__title']
    inlines = [QuestionResponseInline]
    readonly_fields = ['user', 'exam', 'status', 'started_at', 'completed_at', 'time_limit', 'current_question_index']

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(ExamResult)
class ExamResultAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'exam', 'percentage', 'passed', 'requires_manual_grading', 'graded_at', 'submitted_at']
    list_filter = ['passed', 'requires_manual_grading', 'exam']
    search_fields = ['user__username', 'exam__title']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['event_type', 'user', 'session', 'ip_address', 'created_at']
    list_filter = ['event_type', 'created_at']
    search_fields = ['user__username', 'description']
    readonly_fields = ['user', 'session', 'event_type', 'description', 'ip_address', 'user_agent', 'metadata', 'created_at']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
