from datetime import timedelta

from django.conf import settings
from django.db.models import F, Q
from django.utils import timezone

from leasing_app.models import Payment
from notifications.services import dispatch
from notifications.types import NotificationType


def queue_payment_reminders(today=None) -> dict:
    """
    Queue ``payment_reminder`` for pending payments due soon and
    ``payment_overdue`` for pending payments past their due date.

    ``reminder_sent_at`` is claimed with a conditional update before anything
    is queued, so each notice goes out once per payment even if runs overlap.
    """
    today = today or timezone.localdate()
    horizon = today + timedelta(days=settings.PAYMENT_REMINDER_DAYS_AHEAD)
    now = timezone.now()
    summary = {"reminders": 0, "overdue": 0}

    pending = Payment.objects.select_related("tenant", "property").filter(
        status=Payment.Status.PENDING, due_date__isnull=False
    )

    upcoming = Q(due_date__gte=today, due_date__lte=horizon, reminder_sent_at__isnull=True)
    for payment in pending.filter(upcoming):
        if Payment.objects.filter(upcoming, pk=payment.pk).update(reminder_sent_at=now) != 1:
            continue
        dispatch(NotificationType.PAYMENT_REMINDER, payment.tenant, _context(payment, today))
        summary["reminders"] += 1

    # an upcoming reminder was sent on or before the due date; an overdue notice never is
    overdue = Q(due_date__lt=today) & (
        Q(reminder_sent_at__isnull=True) | Q(reminder_sent_at__date__lte=F("due_date"))
    )
    for payment in pending.filter(overdue):
        if Payment.objects.filter(overdue, pk=payment.pk).update(reminder_sent_at=now) != 1:
            continue
        dispatch(NotificationType.PAYMENT_OVERDUE, payment.tenant, _context(payment, today))
        summary["overdue"] += 1

    return summary


def _context(payment, today) -> dict:
    return {
        "amount": payment.amount,
        "currency": payment.currency.upper(),
        "payment_type": payment.get_payment_type_display(),
        "property_title": payment.property.title if payment.property else "Property",
        "due_date": payment.due_date,
        "days_until_due": (payment.due_date - today).days,
    }
