import logging

from django.apps import AppConfig

logger = logging.getLogger(__name__)


class LeasingAppConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "leasing_app"

    def ready(self):
        from django.db.models.signals import post_migrate

        from . import signals  # noqa: F401

        post_migrate.connect(sync_periodic_tasks, sender=self)


def sync_periodic_tasks(**kwargs):
    """
    Write every entry of ``PERIODIC_TASKS`` into the beat database so the
    DatabaseScheduler picks up schedule changes on deploy.
    """
    from django.db import DatabaseError
    from django.utils import timezone
    from django_celery_beat.models import CrontabSchedule, PeriodicTask, PeriodicTasks

    from lettings.celery_app import PERIODIC_TASKS

    try:
        for name, spec in PERIODIC_TASKS.items():
            fields = {"minute": "*", "hour": "*", "day_of_week": "*", "day_of_month": "*", "month_of_year": "*"}
            fields.update(spec["crontab"])
            cron, _ = CrontabSchedule.objects.get_or_create(timezone="UTC", **fields)

            queue = spec.get("queue")
            PeriodicTask.objects.update_or_create(
                name=name,
                defaults={
                    "task": spec["task"],
                    "crontab": cron,
                    "enabled": True,
                    "queue": queue,
                    "routing_key": queue,
                },
            )
        PeriodicTasks.objects.update_or_create(ident=1, defaults={"last_update": timezone.now()})
    except DatabaseError:
        # beat tables may not exist yet on a partial migrate
        logger.warning("Could not sync periodic tasks", exc_info=True)
