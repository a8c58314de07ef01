# govision/services/submission.py
import logging

from govision.errors import RepositoryError
from govision.ids import new_job_id
from govision.repository.base import ResultRepository

logger = logging.getLogger(__name__)

ENQUEUE_FAILED = "enqueue failed"


def submit_job(image_url: str, repository: ResultRepository, publisher, timeout=None) -> str:
    """
    Allocate a job id, persist it as pending and publish it to the job queue.

    Broker errors are re-raised unchanged after the pending row is marked
    failed, so a poll never shows a job that can no longer complete.
    """
    image_url = (image_url or "").strip()
    if not image_url:
        raise ValueError("image_url is required")

    job_id = new_job_id()
    repository.create_pending(job_id, image_url)

    try:
        publisher.publish(job_id, image_url, timeout=timeout)
    except Exception:
        logger.exception("Failed to enqueue job %s", job_id, extra={"job_id": job_id})
        try:
            repository.fail_pending(job_id, ENQUEUE_FAILED)
        except RepositoryError:
            logger.exception("Could not mark job %s as failed", job_id, extra={"job_id": job_id})
        raise

    logger.info("Job %s queued", job_id, extra={"job_id": job_id})
    return job_id
