# govision/tasks/detection_tasks.py
import logging

from celery import shared_task
from celery.exceptions import Retry
from celery.utils.time import get_exponential_backoff_interval
from flask import current_app

from govision.tasks.pipeline import Outcome

logger = logging.getLogger(__name__)


def retry_countdown(retries: int, config) -> int:
    return get_exponential_backoff_interval(
        factor=config.get("RETRY_BACKOFF_BASE", 2),
        retries=retries,
        maximum=config.get("RETRY_BACKOFF_MAX", 60),
        full_jitter=True,
    )


@shared_task(
    bind=True,
    name="detection.process_job",
    acks_late=True,
    reject_on_worker_lost=True,
    max_retries=None,
)
def process_job(self, *args, **payload):
    """
    Consume one job message ``{"job_id": ..., "image_url": ...}``.

    The message is acknowledged when this returns. A RETRY outcome publishes
    the same task id again with exponential backoff before the ack; if that
    publish fails the job is dead-lettered instead. The retry budget itself is
    enforced by ``JobProcessor``.
    """
    if args and not payload:
        payload = args[0] if len(args) == 1 else list(args)

    processor = current_app.extensions["govision"]["processor"]
    outcome = processor.handle(payload, attempt=self.request.retries)

    if outcome is Outcome.RETRY:
        countdown = retry_countdown(self.request.retries, current_app.config)
        logger.info("Retrying job in %ss", countdown, extra={"job_id": payload.get("job_id")})
        try:
            raise self.retry(countdown=countdown, max_retries=None)
        except Retry:
            raise
        except Exception as exc:
            logger.exception("Could not requeue job", extra={"job_id": payload.get("job_id")})
            outcome = processor.give_up(payload, exc, self.request.retries)
    return outcome.value
