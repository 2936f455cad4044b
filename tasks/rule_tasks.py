from sqlmodel import Session
from settings import logger
from database import engine
from outbound.message_sender import MessageSender
from rules.scheduler import PeriodicActionScheduler

# Import configured Celery app from worker
from worker import celery_app


@celery_app.task
def run_periodic_actions():
    """Run one pass of the on_stay action scheduler."""

    logger.info("Starting run_periodic_actions")

    with Session(engine) as session:
        report = PeriodicActionScheduler(session).tick()

    return {
        "status": "done",
        "due": report.due,
        "executed": report.executed,
        "failed": report.failed,
        "skipped": report.skipped,
        "exhausted": report.exhausted
    }


@celery_app.task
def deliver_scheduled_messages():
    """Deliver scheduled emails whose send time has come."""

    with Session(engine) as session:
        outcome = MessageSender(session).deliver_due()

    if outcome["due"]:
        logger.info("Scheduled messages delivered", extra=outcome)
    return {"status": "done", **outcome}
