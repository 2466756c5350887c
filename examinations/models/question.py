from django.db import models
from django.contrib.auth.models import User


class Question(models.Model):
    class QuestionType(models.TextChoices):
        MULTIPLE_CHOICE = 'multiple_choice', 'Multiple Choice'
        TRUE_FALSE = 'true_false', 'True/False'
        ESSAY = 'essay', 'Essay'
        FILL_BLANK = 'fill_blank', 'Fill in the Blank'
        MATCHING = 'matching', 'Matching'

    # Types that can only be scored by a human grader.
    MANUAL_GRADING_TYPES = (QuestionType.ESSAY, QuestionType.MATCHING)

    question_type = models.CharField(
        max_length=20,
        choices=QuestionType.choices,
        db_index=True
    )
    title = models.CharField(max_length=300)
    text = models.TextField(blank=True)
    correct_answer = models.JSONField(
        null=True,
        blank=True,
        help_text="List of option ids for multiple choice, boolean or text otherwise"
    )
    options = models.JSONField(
        null=True,
        blank=True,
        help_text="List of strings or {id, text} objects for choice questions"
    )
    points = models.PositiveIntegerField(null=True, blank=True, default=1)

    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_questions'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['id']

    def __str__(self):
        return f"{self.get_question_type_display()}: {self.title[:50]}"

    @property
    def point_value(self) -> int:
        return self.points or 1

    @property
    def requires_manual_grading(self) -> bool:
        return self.question_type in self.MANUAL_GRADING_TYPES
