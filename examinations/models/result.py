from django.db import models
from django.contrib.auth.models import User


class ImmutableResultError(Exception):
    pass


class ExamResult(models.Model):
    session = models.OneToOneField(
        'ExamSession',
        on_delete=models.CASCADE,
        related_name='result'
    )
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='exam_results',
        db_index=True
    )
    exam = models.ForeignKey(
        'Exam',
        on_delete=models.CASCADE,
        related_name='results',
        db_index=True
    )

    total_score = models.DecimalField(max_digits=7, decimal_places=2, default=0)
    max_possible_score = models.DecimalField(max_digits=7, decimal_places=2, default=0)
    percentage = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    passed = models.BooleanField(default=False)
    correct_answers = models.PositiveIntegerField(default=0)
    total_questions = models.PositiveIntegerField(default=0)
    time_spent = models.PositiveIntegerField(default=0, help_text="Seconds")
    requires_manual_grading = models.BooleanField(default=False, db_index=True)
    submitted_at = models.DateTimeField()

    # Written once by the manual grading pass.
    graded_at = models.DateTimeField(null=True, blank=True)
    graded_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='graded_results'
    )
    grader_notes = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-submitted_at']
        indexes = [
            models.Index(fields=['exam', 'percentage']),
            models.Index(fields=['user', 'submitted_at']),
        ]

    def __str__(self):
        return f"{self.user.username} - {self.exam.title}: {self.percentage}%"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableResultError(
                "Exam results are immutable; use the manual grading pass to record a grade."
            )
        super().save(*args, **kwargs)

    @property
    def is_graded(self):
        return self.graded_at is not None
