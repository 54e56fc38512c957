from celery import shared_task
from django.db.models import Case, IntegerField, Value, When
from django.utils import timezone

from .models import OutboundNotification
from .services import NotificationService


def send_due_notifications(limit: int = 200) -> dict:
    """
    Deliver queued notifications scheduled up to now, high priority first.

    Returns a small summary dict for tests/monitoring.
    """
    priority_rank = Case(
        When(priority="high", then=Value(0)),
        When(priority="normal", then=Value(1)),
        default=Value(2),
        output_field=IntegerField(),
    )
    due = (
        OutboundNotification.objects.select_related("user")
        .filter(status=OutboundNotification.Status.QUEUED, scheduled_for__lte=timezone.now())
        .annotate(priority_rank=priority_rank)
        .order_by("priority_rank", "scheduled_for", "id")[:limit]
    )

    summary = {"sent": 0, "failed": 0, "skipped": 0}
    for notification in due:
        NotificationService.deliver(notification)
        notification.refresh_from_db(fields=["status"])
        if notification.status in summary:
            summary[notification.status] += 1
    return summary


@shared_task(name="notifications.send_due_notifications")
def task_send_due_notifications() -> dict:
    return send_due_notifications()
