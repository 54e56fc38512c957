from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from django.core import mail
from django.core.management import call_command
from django.utils import timezone

from notifications.models import DeliveryAttempt, NotificationPreference, NotificationTemplate, OutboundNotification
from notifications.services import NotificationService, dispatch
from notifications.tasks import send_due_notifications, task_send_due_notifications
from notifications.types import NotificationType

pytestmark = pytest.mark.django_db


def test_seed_notification_templates_command_idempotent():
    call_command("seed_notification_templates")
    count1 = NotificationTemplate.objects.count()
    call_command("seed_notification_templates")  # run again (should not duplicate)
    count2 = NotificationTemplate.objects.count()
    assert count2 == count1

    keys = set(NotificationTemplate.objects.values_list("key", flat=True))
    assert {t.value for t in NotificationType} <= keys


def test_every_seeded_type_is_one_the_code_dispatches():
    assert "contract_completed" not in NotificationType.values
    assert NotificationType.SUBSCRIPTION_UPDATED in NotificationType.values

    call_command("seed_notification_templates")
    keys = set(NotificationTemplate.objects.values_list("key", flat=True))
    assert keys == set(NotificationType.values)


def test_seed_overwrite_restores_edited_template():
    call_command("seed_notification_templates")
    NotificationTemplate.objects.filter(key="payment_failed").update(subject="edited")

    call_command("seed_notification_templates")
    assert NotificationTemplate.objects.get(key="payment_failed").subject == "edited"

    call_command("seed_notification_templates", "--overwrite")
    assert NotificationTemplate.objects.get(key="payment_failed").subject == "Payment failed for {{ property_title }}"


def test_dispatch_queues_with_recipient_and_priority(tenant):
    note = dispatch(
        NotificationType.PAYMENT_FAILED,
        tenant,
        {"amount": Decimal("12.50"), "due_date": date(2030, 1, 1)},
    )
    assert note is not None
    note.refresh_from_db()

    assert note.template_key == "payment_failed"
    assert note.priority == "high"
    assert note.status == OutboundNotification.Status.QUEUED
    assert note.context["recipient_name"] == "Tom Test"
    assert note.context["amount"] == "12.50"
    assert note.context["due_date"] == "2030-01-01"


def test_dispatch_normal_priority_and_explicit_override(tenant):
    assert dispatch(NotificationType.BOOKING_CONFIRMED, tenant, {}).priority == "normal"
    assert dispatch(NotificationType.BOOKING_CONFIRMED, tenant, {}, priority="low").priority == "low"


def test_dispatch_never_raises(tenant):
    # an unserialisable context is logged and dropped, not raised
    assert dispatch(NotificationType.BOOKING_CONFIRMED, tenant, {"bad": object()}) is None
    assert OutboundNotification.objects.count() == 0


def test_dispatch_without_user_is_noop():
    assert dispatch(NotificationType.BOOKING_CONFIRMED, None, {}) is None


def test_deliver_renders_template_and_sends_email(tenant):
    call_command("seed_notification_templates")
    note = dispatch(
        NotificationType.BOOKING_CONFIRMED,
        tenant,
        {"property_title": "Sunny flat", "landlord_name": "Lara Test", "requested_date": "2030-05-10"},
    )

    NotificationService.deliver(note)

    note.refresh_from_db()
    assert note.status == OutboundNotification.Status.SENT
    assert note.sent_at is not None
    assert DeliveryAttempt.objects.filter(notification=note, success=True).count() == 1

    assert len(mail.outbox) == 1
    sent = mail.outbox[0]
    assert sent.to == ["tom@example.com"]
    assert sent.subject == "Your viewing for Sunny flat is confirmed"
    assert "Lara Test confirmed your booking" in sent.body
    assert sent.alternatives and sent.alternatives[0][1] == "text/html"


def test_deliver_missing_template_marks_failed(tenant):
    note = dispatch(NotificationType.CONTRACT_READY, tenant, {})
    NotificationService.deliver(note)

    note.refresh_from_db()
    assert note.status == OutboundNotification.Status.FAILED
    assert note.error == "Template not found: contract_ready"


def test_deliver_respects_email_opt_out(tenant):
    call_command("seed_notification_templates")
    NotificationPreference.objects.create(user=tenant, email_enabled=False)
    note = dispatch(NotificationType.BOOKING_CONFIRMED, tenant, {"property_title": "Sunny flat"})

    NotificationService.deliver(note)

    note.refresh_from_db()
    assert note.status == OutboundNotification.Status.SKIPPED
    assert len(mail.outbox) == 0


def test_reminder_opt_out_keeps_overdue_notices(tenant):
    call_command("seed_notification_templates")
    NotificationPreference.objects.create(user=tenant, reminders_enabled=False)
    reminder = dispatch(NotificationType.PAYMENT_REMINDER, tenant, {"property_title": "Sunny flat"})
    overdue = dispatch(NotificationType.PAYMENT_OVERDUE, tenant, {"property_title": "Sunny flat"})

    NotificationService.deliver(reminder)
    NotificationService.deliver(overdue)

    reminder.refresh_from_db()
    overdue.refresh_from_db()
    assert reminder.status == OutboundNotification.Status.SKIPPED
    assert overdue.status == OutboundNotification.Status.SENT
    assert len(mail.outbox) == 1


def test_deliver_transport_error_is_recorded(tenant):
    call_command("seed_notification_templates")
    note = dispatch(NotificationType.BOOKING_CONFIRMED, tenant, {"property_title": "Sunny flat"})

    with patch("notifications.services.send_mail", side_effect=ConnectionError("smtp down")):
        NotificationService.deliver(note)

    note.refresh_from_db()
    assert note.status == OutboundNotification.Status.FAILED
    assert note.error == "smtp down"
    assert DeliveryAttempt.objects.get(notification=note).success is False


def test_send_due_notifications_skips_future_and_reports(tenant, user_factory):
    call_command("seed_notification_templates")
    no_email = user_factory(username="ghost", email="")

    dispatch(NotificationType.BOOKING_CONFIRMED, tenant, {"property_title": "A"})
    dispatch(NotificationType.BOOKING_CONFIRMED, no_email, {"property_title": "B"})
    later = dispatch(
        NotificationType.BOOKING_CONFIRMED,
        tenant,
        {"property_title": "C"},
        scheduled_for=timezone.now() + timedelta(hours=1),
    )

    with patch("notifications.services.send_mail", return_value=1):
        summary = send_due_notifications()

    assert summary == {"sent": 1, "failed": 0, "skipped": 1}
    later.refresh_from_db()
    assert later.status == OutboundNotification.Status.QUEUED


def test_send_due_notifications_task_runs_eagerly(tenant):
    call_command("seed_notification_templates")
    dispatch(NotificationType.BOOKING_CONFIRMED, tenant, {"property_title": "A"})

    with patch("notifications.services.send_mail", return_value=1):
        result = task_send_due_notifications.delay()

    assert result.get() == {"sent": 1, "failed": 0, "skipped": 0}


def test_render_keeps_plain_text_quotes():
    tpl = NotificationTemplate(key="x", subject="{{ title }}", body='Flat "{{ title }}" & more')
    subject, body = NotificationService.render(tpl, {"title": "Tom's place"})
    assert subject == "Tom's place"
    assert body == 'Flat "Tom\'s place" & more'
