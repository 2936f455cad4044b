from celery import Celery
from settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND, SCHEDULER_TICK_SECONDS

celery_app = Celery(
    "column_rules",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
    include=["tasks.rule_tasks"]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)

celery_app.conf.beat_schedule = {
    "run-periodic-column-actions": {
        "task": "tasks.rule_tasks.run_periodic_actions",
        "schedule": float(SCHEDULER_TICK_SECONDS),
    },
    "deliver-scheduled-messages": {
        "task": "tasks.rule_tasks.deliver_scheduled_messages",
        "schedule": 60.0,
    },
}
