from django.db import models
from django.db.models import Q
from django.contrib.auth.models import User
from django.utils import timezone


class ExamSession(models.Model):
    class Status(models.TextChoices):
        ACTIVE = 'active', 'Active'
        PAUSED = 'paused', 'Paused'
        GRADING = 'grading', 'Grading'
        COMPLETED = 'completed', 'Completed'
        TERMINATED = 'terminated', 'Terminated'

    OPEN_STATUSES = (Status.ACTIVE, Status.PAUSED)
    # GRADING is a sub-state of COMPLETED for transition purposes.
    FINISHED_STATUSES = (Status.COMPLETED, Status.GRADING)

    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='exam_sessions',
        db_index=True
    )
    exam = models.ForeignKey(
        'Exam',
        on_delete=models.CASCADE,
        related_name='sessions',
        db_index=True
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.ACTIVE,
        db_index=True
    )

    started_at = models.DateTimeField(default=timezone.now)
    completed_at = models.DateTimeField(null=True, blank=True)
    time_limit = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Seconds allowed for this attempt, empty when untimed"
    )
    current_question_index = models.PositiveIntegerField(default=0)
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['-started_at']
        indexes = [
            models.Index(fields=['user', 'exam']),
            models.Index(fields=['exam', 'status']),
            models.Index(fields=['started_at']),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'exam'],
                condition=Q(status__in=['active', 'paused']),
                name='unique_open_session_per_user_exam'
            )
        ]

    def __str__(self):
        return f"{self.user.username} - {self.exam.title} ({self.status})"

    @property
    def is_open(self):
        return self.status in self.OPEN_STATUSES

    @property
    def time_elapsed(self) -> int:
        end = self.completed_at or timezone.now()
        return max(0, int((end - self.started_at).total_seconds()))

    @property
    def time_remaining(self):
        if self.time_limit is None:
            return None
        return max(0, self.time_limit - self.time_elapsed)
