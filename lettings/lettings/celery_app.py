import os

from celery import Celery
from celery.schedules import crontab

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "lettings.settings")

# name -> task, crontab fields, optional queue. Also mirrored into
# django_celery_beat rows on migrate (leasing_app.apps.sync_periodic_tasks).
PERIODIC_TASKS = {
    "send-due-notifications": {
        "task": "notifications.send_due_notifications",
        "crontab": {"minute": "*"},
        "queue": "emails",
    },
    "queue-payment-reminders-daily": {
        "task": "leasing_app.queue_payment_reminders",
        "crontab": {"minute": "0", "hour": "8"},
    },
}

app = Celery("lettings")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()

app.conf.beat_schedule = {
    name: {
        "task": spec["task"],
        "schedule": crontab(**spec["crontab"]),
        **({"options": {"queue": spec["queue"]}} if "queue" in spec else {}),
    }
    for name, spec in PERIODIC_TASKS.items()
}
