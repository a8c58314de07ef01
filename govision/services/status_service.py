# govision/services/status_service.py
import logging

from govision.errors import JobNotFoundError
from govision.models.domain import JobView
from govision.repository.base import ResultRepository

logger = logging.getLogger(__name__)


def get_status(repository: ResultRepository, job_id: str) -> JobView:
    """
    Committed state of a job.

    Raises ``ValueError`` for a blank id and ``JobNotFoundError`` when the
    repository holds no row for it.
    """
    job_id = (job_id or "").strip()
    if not job_id:
        raise ValueError("job_id is required")

    record = repository.get_by_id(job_id)
    if record is None:
        raise JobNotFoundError(job_id)

    logger.info("Job %s found with status: %s", job_id, record.status.value)
    return JobView.from_record(record)
