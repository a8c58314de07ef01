# govision/repository/base.py
import abc
from typing import Optional

from govision.models.domain import JobRecord, JobResult


class ResultRepository(abc.ABC):
    """
    Sole writer of Job/Prediction state.

    Every method is atomic: readers see either the state before the call or
    the state after it. Storage failures surface as ``RepositoryError``.
    """

    @abc.abstractmethod
    def upsert(self, result: JobResult) -> None:
        """
        Insert or update the job row and replace its prediction set.

        On conflict only status, processed_at and failure_reason change;
        job_id and image_url keep their first-written values.
        """

    @abc.abstractmethod
    def get_by_id(self, job_id: str) -> Optional[JobRecord]:
        """Job row with its predictions, or None when nothing is stored."""

    @abc.abstractmethod
    def create_pending(self, job_id: str, image_url: str) -> None:
        """Write a pending row. Does nothing if the job already exists."""

    @abc.abstractmethod
    def fail_pending(self, job_id: str, reason: str) -> bool:
        """Mark a still-pending job as failed. Returns False if no pending row matched."""
