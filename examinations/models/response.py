from django.db import models
from django.contrib.auth.models import User
from django.utils import timezone


class QuestionResponse(models.Model):
    session = models.ForeignKey(
        'ExamSession',
        on_delete=models.CASCADE,
        related_name='responses',
        db_index=True
    )
    question = models.ForeignKey(
        'Question',
        on_delete=models.CASCADE,
        related_name='responses',
        db_index=True
    )
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='question_responses'
    )

    response = models.JSONField(null=True, blank=True)
    is_correct = models.BooleanField(null=True)
    points_earned = models.PositiveIntegerField(default=0)
    time_spent = models.PositiveIntegerField(null=True, blank=True)
    attempts = models.PositiveIntegerField(default=1)

    created_at = models.DateTimeField(auto_now_add=True)
    # Logical clock for conflict resolution; written explicitly on every upsert.
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['session', 'question']
        indexes = [
            models.Index(fields=['session', 'question']),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['session', 'question'],
                name='unique_session_question_response'
            )
        ]

    def __str__(self):
        return f"Response to {self.question_id} in session {self.session_id}"
