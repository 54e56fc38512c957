import logging

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from leasing_app.api.exceptions import AccessDenied, InvalidStateTransition, NotFound
from leasing_app.models import Application, Booking
from leasing_app.services.bookings import display_name
from notifications.services import dispatch
from notifications.types import NotificationType

logger = logging.getLogger(__name__)

DEFAULT_NEXT_STEPS = (
    "We will send you the rental contract shortly. "
    "Please review and sign it to complete the rental process."
)

REVIEW_ACTIONS = {
    "approve": Application.Status.APPROVED,
    "reject": Application.Status.REJECTED,
    "review": Application.Status.UNDER_REVIEW,
}


def applications_for(user, *, user_type=None, status=None, property_id=None):
    qs = Application.objects.select_related("property", "tenant", "landlord", "booking")
    if user_type == "landlord":
        qs = qs.filter(landlord=user)
    else:
        qs = qs.filter(tenant=user)
    if status:
        qs = qs.filter(status=status)
    if property_id:
        qs = qs.filter(property_id=property_id)
    return qs.order_by("-created_at")


def get_application_for_party(user, application_id) -> Application:
    application = (
        Application.objects.select_related("property", "tenant", "landlord", "booking")
        .filter(pk=application_id)
        .first()
    )
    if application is None:
        raise NotFound("Application not found")
    if user.pk not in (application.tenant_id, application.landlord_id):
        raise AccessDenied("Access denied")
    return application


def review_application(*, user, application_id, action, rejection_reason="", next_steps=""):
    """
    Landlord decision on an application: approve, reject or mark under review.

    The status change is a conditional update, so a decision can only be taken
    from ``submitted``/``under_review`` even when two requests race.
    """
    application = (
        Application.objects.select_related("property", "tenant", "landlord")
        .filter(pk=application_id)
        .first()
    )
    if application is None:
        raise NotFound("Application not found")
    if user.pk != application.landlord_id:
        raise AccessDenied("Only the landlord can approve or reject applications")
    if application.status not in Application.REVIEWABLE_STATUSES:
        raise InvalidStateTransition("Application is not in a valid state for this action")
    if action == "reject" and not (rejection_reason or "").strip():
        raise ValidationError("Rejection reason is required")
    if action not in REVIEW_ACTIONS:
        raise ValidationError("Invalid action")

    now = timezone.now()
    changes = {"status": REVIEW_ACTIONS[action], "reviewed_at": now, "updated_at": now}
    if action == "approve":
        changes["approved_at"] = now
    elif action == "reject":
        changes["rejected_at"] = now
        changes["rejection_reason"] = rejection_reason.strip()

    with transaction.atomic():
        updated = (
            Application.objects.filter(pk=application.pk, status__in=Application.REVIEWABLE_STATUSES)
            .update(**changes)
        )
        if updated != 1:
            raise InvalidStateTransition("Application is not in a valid state for this action")
        _sync_tracking_booking(application, action, now, changes.get("rejection_reason", ""))

    application.refresh_from_db()
    logger.info("Application %s %s by landlord %s", application.pk, application.status, user.pk)
    _notify_decision(application, action, next_steps)
    return application


def _sync_tracking_booking(application, action, now, reason=""):
    if not application.booking_id:
        return
    open_booking = Booking.objects.filter(
        pk=application.booking_id,
        status__in=(Booking.Status.PENDING, Booking.Status.CONFIRMED),
    )
    if action == "approve":
        open_booking.filter(status=Booking.Status.PENDING).update(
            status=Booking.Status.CONFIRMED, confirmed_at=now, updated_at=now
        )
    elif action == "reject":
        open_booking.update(
            status=Booking.Status.CANCELLED,
            cancelled_at=now,
            cancellation_reason=reason or "Application rejected",
            updated_at=now,
        )


def _notify_decision(application, action, next_steps):
    context = {
        "property_title": application.property.title,
        "landlord_name": display_name(application.landlord),
    }
    if action == "approve":
        dispatch(
            NotificationType.APPLICATION_ACCEPTED,
            application.tenant,
            {
                **context,
                "next_steps": next_steps or DEFAULT_NEXT_STEPS,
                "move_in_date": application.move_in_date,
                "monthly_rent": application.property.monthly_rent,
            },
        )
    elif action == "reject":
        dispatch(
            NotificationType.APPLICATION_REJECTED,
            application.tenant,
            {**context, "rejection_reason": application.rejection_reason},
        )
