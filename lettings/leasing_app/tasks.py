from celery import shared_task

from leasing_app.services.reminders import queue_payment_reminders


@shared_task(name="leasing_app.queue_payment_reminders")
def task_queue_payment_reminders() -> dict:
    return queue_payment_reminders()
