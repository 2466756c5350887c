from django.db import models
from django.contrib.auth.models import User


def client_address(request):
    """First hop of X-Forwarded-For, else the socket peer."""
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


class AuditLog(models.Model):
    """
    Append-only trail of attempt lifecycle and integrity events.

    Session events point at the attempt they concern; grading events also
    carry the result id in ``metadata``.
    """

    class EventType(models.TextChoices):
        SESSION_START = 'session_start', 'Session Started'
        SESSION_PAUSE = 'session_pause', 'Session Paused'
        SESSION_RESUME = 'session_resume', 'Session Resumed'
        SESSION_TERMINATE = 'session_terminate', 'Session Terminated'
        SESSION_COMPLETE = 'session_complete', 'Session Completed'
        MANUAL_GRADE = 'manual_grade', 'Manual Grade Recorded'
        INTEGRITY_FAILURE = 'integrity_failure', 'Answer Integrity Check Failed'

    user = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_logs'
    )
    session = models.ForeignKey(
        'ExamSession',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_logs'
    )
    event_type = models.CharField(max_length=30, choices=EventType.choices, db_index=True)
    description = models.TextField()
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['session', 'event_type']),
            models.Index(fields=['created_at', 'event_type']),
        ]

    def __str__(self):
        target = f"session {self.session_id}" if self.session_id else self.user
        return f"{self.event_type} - {target} - {self.created_at}"

    @classmethod
    def log(cls, event_type, description, session=None, request=None, user=None, metadata=None):
        """
        Record one event.

        The acting user defaults to the authenticated request user; without
        a request the event is attributed to ``user`` alone.
        """
        entry = cls(
            event_type=event_type,
            description=description,
            session=session,
            user=user,
            metadata=metadata or {}
        )
        if request is not None:
            entry.ip_address = client_address(request)
            entry.user_agent = request.META.get('HTTP_USER_AGENT', '')[:500]
            if entry.user is None and request.user.is_authenticated:
                entry.user = request.user
        entry.save()
        return entry
