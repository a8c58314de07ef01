# govision/repository/memory.py
import threading
from dataclasses import replace
from typing import Dict, Optional

from govision.models.domain import (
    JobRecord,
    JobResult,
    JobStatus,
    PredictionRecord,
    utcnow,
)
from govision.repository.base import ResultRepository


class InMemoryResultRepository(ResultRepository):
    """Process-local repository. Records are immutable and swapped whole under a lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self._jobs: Dict[str, JobRecord] = {}

    def upsert(self, result: JobResult) -> None:
        now = utcnow()
        predictions = [PredictionRecord(prediction=p, created_at=now) for p in result.predictions]
        with self._lock:
            current = self._jobs.get(result.job_id)
            if current is None:
                record = JobRecord(
                    job_id=result.job_id,
                    image_url=result.image_url,
                    status=result.status,
                    created_at=now,
                    processed_at=result.processed_at,
                    failure_reason=result.failure_reason,
                    predictions=predictions,
                )
            else:
                record = replace(
                    current,
                    status=result.status,
                    processed_at=result.processed_at,
                    failure_reason=result.failure_reason,
                    predictions=predictions,
                )
            self._jobs[result.job_id] = record

    def get_by_id(self, job_id: str) -> Optional[JobRecord]:
        with self._lock:
            return self._jobs.get(job_id)

    def create_pending(self, job_id: str, image_url: str) -> None:
        with self._lock:
            if job_id in self._jobs:
                return
            self._jobs[job_id] = JobRecord(
                job_id=job_id,
                image_url=image_url,
                status=JobStatus.PENDING,
                created_at=utcnow(),
            )

    def fail_pending(self, job_id: str, reason: str) -> bool:
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None or current.status is not JobStatus.PENDING:
                return False
            self._jobs[job_id] = replace(
                current,
                status=JobStatus.FAILED,
                failure_reason=reason,
                processed_at=utcnow(),
            )
            return True
