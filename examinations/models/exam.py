from django.db import models
from django.contrib.auth.models import User
from django.core.validators import MinValueValidator, MaxValueValidator


class Exam(models.Model):
    class Status(models.TextChoices):
        DRAFT = 'draft', 'Draft'
        ACTIVE = 'active', 'Active'
        ARCHIVED = 'archived', 'Archived'

    title = models.CharField(max_length=300)
    description = models.TextField(blank=True)
    duration_minutes = models.PositiveIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(1), MaxValueValidator(480)],
        help_text="Leave empty for an untimed exam"
    )
    passing_score = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=60.00,
        validators=[MinValueValidator(0), MaxValueValidator(100)]
    )
    requires_verification = models.BooleanField(default=False)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.DRAFT,
        db_index=True
    )

    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_exams'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    published_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'created_at']),
        ]

    def __str__(self):
        return self.title

    @property
    def time_limit_seconds(self):
        """Session time limit derived from the duration, None when untimed."""
        if not self.duration_minutes:
            return None
        return self.duration_minutes * 60

    def get_ordered_questions(self):
        return self.exam_questions.select_related('question').order_by('order_index', 'id')

    def get_total_points(self):
        return sum(eq.resolved_points for eq in self.get_ordered_questions())

    def get_question_count(self):
        return self.exam_questions.count()


class ExamQuestion(models.Model):
    exam = models.ForeignKey(
        'Exam',
        on_delete=models.CASCADE,
        related_name='exam_questions',
        db_index=True
    )
    question = models.ForeignKey(
        'Question',
        on_delete=models.CASCADE,
        related_name='exam_links'
    )
    order_index = models.PositiveIntegerField(default=0)
    points = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Overrides the question's own point value for this exam"
    )
    required = models.BooleanField(default=True)

    class Meta:
        ordering = ['order_index', 'id']
        indexes = [
            models.Index(fields=['exam', 'order_index']),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['exam', 'question'],
                name='unique_exam_question'
            )
        ]

    def __str__(self):
        return f"{self.exam} #{self.order_index}: {self.question}"

    @property
    def resolved_points(self) -> int:
        if self.points is not None:
            return self.points
        return self.question.point_value
