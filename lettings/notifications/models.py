from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.utils import timezone

from .types import NotificationType


class Channel(models.TextChoices):
    EMAIL = "email", "Email"
    PUSH = "push", "Push"


class NotificationTemplate(models.Model):
    """Editable subject/body pair for one notification type, rendered with Django templates."""

    key = models.CharField(max_length=50, unique=True, choices=NotificationType.choices)
    channel = models.CharField(max_length=10, choices=Channel.choices, default=Channel.EMAIL)
    subject = models.CharField(max_length=200, blank=True, default="")
    body = models.TextField()
    is_active = models.BooleanField(default=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["key"]

    def __str__(self):
        return f"{self.get_key_display()} [{self.channel}]"


class NotificationPreference(models.Model):
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="notification_pref")
    email_enabled = models.BooleanField(default=True)
    # upcoming-rent reminders only; overdue and failure notices still go out
    reminders_enabled = models.BooleanField(default=True)

    def allows(self, notification_type) -> bool:
        if not self.email_enabled:
            return False
        if notification_type == NotificationType.PAYMENT_REMINDER:
            return self.reminders_enabled
        return True

    def __str__(self):
        return f"Notification settings for user {self.user_id}"


class OutboundNotification(models.Model):
    class Status(models.TextChoices):
        QUEUED = "queued", "Queued"
        SENT = "sent", "Sent"
        FAILED = "failed", "Failed"
        SKIPPED = "skipped", "Skipped"

    class Priority(models.TextChoices):
        HIGH = "high", "High"
        NORMAL = "normal", "Normal"
        LOW = "low", "Low"

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="outbound_notifications")
    template_key = models.CharField(max_length=50, choices=NotificationType.choices, db_index=True)
    channel = models.CharField(max_length=10, choices=Channel.choices, default=Channel.EMAIL)
    priority = models.CharField(max_length=10, choices=Priority.choices, default=Priority.NORMAL)
    context = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.QUEUED)
    scheduled_for = models.DateTimeField(default=timezone.now)
    sent_at = models.DateTimeField(null=True, blank=True)
    error = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=["status", "scheduled_for"], name="notif_status_sched_idx")]

    def __str__(self):
        return f"{self.template_key} to user {self.user_id} ({self.status})"

    def mark(self, status, *, error=""):
        """Persist a delivery outcome; sent and skipped rows get ``sent_at``."""
        self.status = status
        fields = ["status"]
        if status in (self.Status.SENT, self.Status.SKIPPED):
            self.sent_at = timezone.now()
            fields.append("sent_at")
        if error:
            self.error = error
            fields.append("error")
        self.save(update_fields=fields)


class DeliveryAttempt(models.Model):
    notification = models.ForeignKey(OutboundNotification, on_delete=models.CASCADE, related_name="attempts")
    provider = models.CharField(max_length=50, default=Channel.EMAIL)
    success = models.BooleanField(default=False)
    response = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
