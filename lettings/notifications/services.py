import logging

from django.conf import settings
from django.core.mail import send_mail
from django.db import DatabaseError, transaction
from django.template import Context, Template
from django.utils import timezone
from django.utils.html import escape

from .models import Channel, DeliveryAttempt, NotificationPreference, NotificationTemplate, OutboundNotification
from .types import HIGH_PRIORITY, NotificationType

logger = logging.getLogger(__name__)

# path per notification family; everything else lands on the dashboard
_LINKS = {
    "booking": "/dashboard/bookings",
    "application": "/dashboard/applications",
    "contract": "/dashboard/contracts",
    "payment": "/dashboard/payments",
    "subscription": "/dashboard/payments",
}


def dashboard_link(template_key: str = "") -> str:
    base = getattr(settings, "FRONTEND_BASE_URL", "http://localhost:3000").rstrip("/")
    return base + _LINKS.get(template_key.split("_", 1)[0], "/dashboard")


def html_email(subject: str, body_text: str, button_url: str) -> str:
    """Wrap a rendered plain-text body in the branded HTML shell."""
    paragraphs = "".join(
        f'<p style="margin:0 0 12px 0; font-size:14px; color:#374151; line-height:1.6;">'
        f'{escape(chunk).replace(chr(10), "<br>")}</p>'
        for chunk in (body_text or "").split("\n\n")
        if chunk.strip()
    )
    return (
        '<!doctype html><html><body style="margin:0; background:#f4f5f7; font-family: Arial, sans-serif;">'
        '<table role="presentation" width="100%" cellpadding="0" cellspacing="0"><tr><td align="center">'
        '<div style="max-width:600px; margin:24px auto; background:#ffffff; border-radius:12px; padding:24px;">'
        f'<h1 style="margin:0 0 16px 0; font-size:18px; color:#0f172a;">{escape(subject)}</h1>'
        f"{paragraphs}"
        f'<a href="{escape(button_url)}" style="display:inline-block; margin-top:8px; padding:10px 16px; '
        'border-radius:8px; background:#0f766e; color:#ffffff; text-decoration:none; font-size:14px;">'
        "View in your dashboard</a>"
        "</div></td></tr></table></body></html>"
    )


def send_email(notification: OutboundNotification, subject: str, body: str) -> int:
    return send_mail(
        subject,
        body,
        settings.DEFAULT_FROM_EMAIL,
        [notification.user.email],
        html_message=html_email(subject, body, dashboard_link(notification.template_key)),
    )


class NotificationService:
    @staticmethod
    def render(template_obj: NotificationTemplate, context_dict: dict):
        # plain-text bodies; html_email() escapes for the HTML part
        ctx = Context(context_dict or {}, autoescape=False)
        return (
            Template(template_obj.subject or "").render(ctx).strip(),
            Template(template_obj.body or "").render(ctx),
        )

    @staticmethod
    def queue(user, template_key: str, context: dict, scheduled_for=None, channel=Channel.EMAIL,
              priority=OutboundNotification.Priority.NORMAL):
        return OutboundNotification.objects.create(
            user=user,
            template_key=template_key,
            context=context,
            scheduled_for=scheduled_for or timezone.now(),
            channel=channel,
            priority=priority,
        )

    @staticmethod
    def _wanted(notification: OutboundNotification) -> bool:
        if notification.channel == Channel.EMAIL and not notification.user.email:
            return False
        prefs = NotificationPreference.objects.filter(user_id=notification.user_id).first()
        return prefs is None or prefs.allows(notification.template_key)

    @staticmethod
    @transaction.atomic
    def deliver(notification: OutboundNotification):
        """Render and send one queued notification, recording the outcome on the row."""
        Status = OutboundNotification.Status

        if not NotificationService._wanted(notification):
            notification.mark(Status.SKIPPED)
            return
        if notification.channel != Channel.EMAIL:
            notification.mark(Status.FAILED, error=f"No transport for channel {notification.channel}")
            return

        tpl = NotificationTemplate.objects.filter(
            key=notification.template_key, channel=notification.channel, is_active=True
        ).first()
        if tpl is None:
            notification.mark(Status.FAILED, error=f"Template not found: {notification.template_key}")
            return

        subject, body = NotificationService.render(tpl, notification.context)
        try:
            sent = send_email(notification, subject, body)
        except Exception as exc:
            logger.warning("Delivery of notification %s failed: %s", notification.pk, exc)
            sent, outcome = 0, str(exc)
        else:
            outcome = f"sent={sent}" if sent else "Provider reported failure"

        DeliveryAttempt.objects.create(
            notification=notification, provider=notification.channel, success=bool(sent), response=outcome
        )
        if sent:
            notification.mark(Status.SENT)
        else:
            notification.mark(Status.FAILED, error=outcome)


def _display_name(user) -> str:
    return user.get_full_name() or user.username


def dispatch(notification_type, user, context=None, *, priority=None, scheduled_for=None):
    """
    Queue one email of ``notification_type`` for ``user``.

    Fire-and-forget: any failure is logged and ``None`` is returned, so the
    calling workflow never fails (or rolls back) because of a notification.
    The insert runs in its own savepoint for the same reason.
    """
    if user is None:
        return None

    key = NotificationType(notification_type).value
    if priority is None:
        Priority = OutboundNotification.Priority
        priority = Priority.HIGH if key in HIGH_PRIORITY else Priority.NORMAL

    payload = {
        "recipient_name": _display_name(user),
        "recipient_email": user.email,
        **(context or {}),
    }

    try:
        with transaction.atomic():
            return NotificationService.queue(
                user,
                key,
                payload,
                scheduled_for=scheduled_for,
                priority=priority,
            )
    except (DatabaseError, TypeError, ValueError):
        logger.exception("Failed to queue %s notification for user %s", key, user.pk)
        return None
