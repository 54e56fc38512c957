from django.core.management.base import BaseCommand

from notifications.models import Channel, NotificationTemplate
from notifications.types import NotificationType

TEMPLATES = [
    {
        "key": NotificationType.BOOKING_REQUEST,
        "subject": "New viewing request for {{ property_title }}",
        "body": (
            "Hi {{ recipient_name }},\n\n"
            "{{ tenant_name }} would like to view \"{{ property_title }}\" on {{ requested_date }}"
            "{% if viewing_time %} at {{ viewing_time }}{% endif %}.\n"
            "{% if tenant_message %}\nMessage: \"{{ tenant_message }}\"\n{% endif %}"
            "\nPlease confirm or decline the request from your dashboard.\n"
        ),
    },
    {
        "key": NotificationType.BOOKING_CONFIRMED,
        "subject": "Your viewing for {{ property_title }} is confirmed",
        "body": (
            "Hi {{ recipient_name }},\n\n"
            "{{ landlord_name }} confirmed your booking for \"{{ property_title }}\""
            "{% if requested_date %} on {{ requested_date }}{% endif %}.\n"
        ),
    },
    {
        "key": NotificationType.BOOKING_CANCELLED,
        "subject": "Booking for {{ property_title }} was cancelled",
        "body": (
            "Hi {{ recipient_name }},\n\n"
            "The booking for \"{{ property_title }}\" was cancelled by {{ cancelled_by }}.\n"
            "{% if reason %}Reason: {{ reason }}\n{% endif %}"
        ),
    },
    {
        "key": NotificationType.APPLICATION_RECEIVED,
        "subject": "New rental application for {{ property_title }}",
        "body": (
            "Hi {{ recipient_name }},\n\n"
            "{{ tenant_name }} applied to rent \"{{ property_title }}\" from {{ move_in_date }} "
            "for {{ lease_duration }} months.\n"
            "{% if monthly_income %}Declared monthly income: {{ monthly_income }}\n{% endif %}"
            "\nReview the application from your dashboard.\n"
        ),
    },
    {
        "key": NotificationType.APPLICATION_ACCEPTED,
        "subject": "Your application for {{ property_title }} was approved",
        "body": (
            "Hi {{ recipient_name }},\n\n"
            "Good news: {{ landlord_name }} approved your application for \"{{ property_title }}\".\n"
            "Move-in date: {{ move_in_date }}\nMonthly rent: {{ monthly_rent }}\n\n"
            "{{ next_steps }}\n"
        ),
    },
    {
        "key": NotificationType.APPLICATION_REJECTED,
        "subject": "Update on your application for {{ property_title }}",
        "body": (
            "Hi {{ recipient_name }},\n\n"
            "{{ landlord_name }} declined your application for \"{{ property_title }}\".\n"
            "Reason: {{ rejection_reason }}\n"
        ),
    },
    {
        "key": NotificationType.PAYMENT_RECEIVED,
        "subject": "Payment received: {{ amount }} {{ currency }}",
        "body": (
            "Hi {{ recipient_name }},\n\n"
            "A {{ payment_type }} payment of {{ amount }} {{ currency }} for \"{{ property_title }}\" "
            "was received.\n"
        ),
    },
    {
        "key": NotificationType.PAYMENT_FAILED,
        "subject": "Payment failed for {{ property_title }}",
        "body": (
            "Hi {{ recipient_name }},\n\n"
            "Your {{ payment_type }} payment of {{ amount }} {{ currency }} could not be processed.\n"
            "Reason: {{ failure_reason }}\n"
            "{% if due_date %}Due date: {{ due_date }}\n{% endif %}"
            "{% if attempt_count %}Attempts so far: {{ attempt_count }}\n{% endif %}"
            "{% if late_fee %}A late fee of {{ late_fee }} has been added.\n{% endif %}"
        ),
    },
    {
        "key": NotificationType.PAYMENT_REMINDER,
        "subject": "Rent due on {{ due_date }}",
        "body": (
            "Hi {{ recipient_name }},\n\n"
            "Your {{ payment_type }} payment of {{ amount }} {{ currency }} for \"{{ property_title }}\" "
            "is due on {{ due_date }}.\n"
        ),
    },
    {
        "key": NotificationType.PAYMENT_OVERDUE,
        "subject": "Payment overdue for {{ property_title }}",
        "body": (
            "Hi {{ recipient_name }},\n\n"
            "Your {{ payment_type }} payment of {{ amount }} {{ currency }} was due on {{ due_date }} "
            "and has not been received yet.\n"
        ),
    },
    {
        "key": NotificationType.CONTRACT_READY,
        "subject": "Rental contract {{ contract_number }} is ready to sign",
        "body": (
            "Hi {{ recipient_name }},\n\n"
            "{% if signer_name %}{{ signer_name }} has signed the rental contract for \"{{ property_title }}\". "
            "We are now waiting for the {{ waiting_for }} signature.\n"
            "{% else %}The rental contract for \"{{ property_title }}\" is ready for your review and signature.\n"
            "{% endif %}\nContract: {{ contract_number }}\n"
        ),
    },
    {
        "key": NotificationType.CONTRACT_SIGNED,
        "subject": "Rental contract {{ contract_number }} fully signed",
        "body": (
            "Hi {{ recipient_name }},\n\n"
            "Both parties have signed the rental contract for \"{{ property_title }}\".\n"
            "Lease: {{ lease_start_date }} to {{ lease_end_date }}\n"
        ),
    },
    {
        "key": NotificationType.SUBSCRIPTION_CREATED,
        "subject": "Automatic rent payments set up for {{ property_title }}",
        "body": (
            "Hi {{ recipient_name }},\n\n"
            "Monthly rent of {{ monthly_rent }} {{ currency }} will be collected on day {{ payment_day }} "
            "of each month.\nNext payment: {{ next_payment_date }}\n"
        ),
    },
    {
        "key": NotificationType.SUBSCRIPTION_UPDATED,
        "subject": "Rent payment schedule changed for {{ property_title }}",
        "body": (
            "Hi {{ recipient_name }},\n\n"
            "The automatic rent payments for \"{{ property_title }}\" were updated by {{ updated_by }}.\n"
            "Monthly rent: {{ monthly_rent }} {{ currency }}, collected on day {{ payment_day }} of each month.\n"
            "{% if next_payment_date %}Next payment: {{ next_payment_date }}\n{% endif %}"
            "{% if end_date %}Payments end on {{ end_date }}.\n{% endif %}"
        ),
    },
    {
        "key": NotificationType.SUBSCRIPTION_CANCELLED,
        "subject": "Automatic rent payments cancelled for {{ property_title }}",
        "body": (
            "Hi {{ recipient_name }},\n\n"
            "The rent subscription for \"{{ property_title }}\" was cancelled on {{ canceled_at }}.\n"
        ),
    },
]


class Command(BaseCommand):
    help = "Seed default notification templates"

    def add_arguments(self, parser):
        parser.add_argument(
            "--overwrite",
            action="store_true",
            help="Replace subject/body of templates that already exist.",
        )

    def handle(self, *args, **options):
        created = 0
        updated = 0
        for t in TEMPLATES:
            defaults = {"subject": t["subject"], "body": t["body"], "channel": Channel.EMAIL, "is_active": True}
            if options["overwrite"]:
                _, was_created = NotificationTemplate.objects.update_or_create(key=str(t["key"]), defaults=defaults)
                updated += 0 if was_created else 1
            else:
                _, was_created = NotificationTemplate.objects.get_or_create(key=str(t["key"]), defaults=defaults)
            if was_created:
                created += 1
        self.stdout.write(self.style.SUCCESS(f"Seeded templates. New created: {created}, updated: {updated}"))
