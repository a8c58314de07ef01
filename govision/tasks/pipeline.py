# govision/tasks/pipeline.py
"""
Per-delivery orchestration for detection jobs.

``JobProcessor.handle`` runs once per delivery attempt and returns an
``Outcome``; the Celery task turns that outcome into ack, retry or
dead-letter. Lower layers only classify errors (``GovisionError.retryable``),
the retry decision is made here. Errors outside that taxonomy, a soft time
limit included, are treated as retryable so every job reaches a terminal state.

The detection call can run more than once for the same job, so the
repository upsert is the idempotency boundary.
"""
import enum
import logging
from typing import Any, List, Optional

from govision.errors import GovisionError, MalformedMessageError, RepositoryError
from govision.models.domain import JobMessage, JobResult, JobStatus, Prediction, utcnow

logger = logging.getLogger(__name__)


class Outcome(str, enum.Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    DROPPED = "dropped"
    RETRY = "retry"
    DEAD_LETTERED = "dead_lettered"


class JobProcessor:
    def __init__(
        self,
        detector,
        repository,
        dead_letter,
        max_attempts: int = 5,
        detection_timeout: Optional[float] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.detector = detector
        self.repository = repository
        self.dead_letter = dead_letter
        self.max_attempts = max_attempts
        self.detection_timeout = detection_timeout

    def handle(self, payload: Any, attempt: int = 0) -> Outcome:
        """``attempt`` is zero-based: 0 on the first delivery."""
        try:
            message = JobMessage.from_payload(payload)
        except MalformedMessageError as exc:
            logger.error("Dropping malformed job message %r: %s", payload, exc)
            return Outcome.DROPPED

        log_ctx = {"job_id": message.job_id, "attempt": attempt + 1}
        logger.info("Processing job %s", message.job_id, extra=log_ctx)

        try:
            return self._process(message, attempt)
        except Exception as exc:
            # unclassified errors count against the retry budget
            logger.exception("Unexpected error on job %s", message.job_id, extra=log_ctx)
            return self._retry_or_dead_letter(message, exc, attempt)

    def _process(self, message: JobMessage, attempt: int) -> Outcome:
        try:
            predictions = self.detector.detect(message.image_url, timeout=self.detection_timeout)
        except GovisionError as exc:
            if exc.retryable:
                return self._retry_or_dead_letter(message, exc, attempt)
            logger.warning(
                "Detection rejected job %s: %s",
                message.job_id,
                exc,
                extra={"job_id": message.job_id, "attempt": attempt + 1},
            )
            return self._save(message, JobStatus.FAILED, [], str(exc), attempt)

        return self._save(message, JobStatus.COMPLETED, predictions, None, attempt)

    def _save(
        self,
        message: JobMessage,
        status: JobStatus,
        predictions: List[Prediction],
        reason: Optional[str],
        attempt: int,
    ) -> Outcome:
        result = JobResult(
            job_id=message.job_id,
            image_url=message.image_url,
            status=status,
            processed_at=utcnow(),
            predictions=predictions,
            failure_reason=reason,
        )
        try:
            self.repository.upsert(result)
        except RepositoryError as exc:
            return self._retry_or_dead_letter(message, exc, attempt)
        return Outcome.COMPLETED if status is JobStatus.COMPLETED else Outcome.FAILED

    def _retry_or_dead_letter(self, message: JobMessage, exc: Exception, attempt: int) -> Outcome:
        attempts = attempt + 1

        if attempts < self.max_attempts:
            logger.warning(
                "Transient failure on job %s (attempt %d/%d): %s",
                message.job_id,
                attempts,
                self.max_attempts,
                exc,
                extra={"job_id": message.job_id, "attempt": attempts},
            )
            return Outcome.RETRY

        self._dead_letter(message, f"retries exhausted: {exc}", attempts)
        return Outcome.DEAD_LETTERED

    def give_up(self, payload: Any, exc: Exception, attempt: int) -> Outcome:
        """Dead-letter a job whose redelivery could not be scheduled."""
        message = JobMessage.from_payload(payload)
        self._dead_letter(message, f"requeue failed: {exc}", attempt + 1)
        return Outcome.DEAD_LETTERED

    def _dead_letter(self, message: JobMessage, reason: str, attempts: int) -> None:
        """
        Terminal path for a job that will not be redelivered.

        Never raises: the message is acknowledged afterwards either way, so the
        row is marked failed first and each side effect only logs its own error.
        """
        log_ctx = {"job_id": message.job_id, "attempt": attempts}
        logger.error(
            "Job %s gave up after %d attempt(s), routing to dead letter: %s",
            message.job_id,
            attempts,
            reason,
            extra=log_ctx,
        )

        try:
            self.repository.fail_pending(message.job_id, reason)
        except Exception:
            logger.exception("Could not mark job %s as failed", message.job_id, extra=log_ctx)

        try:
            self.dead_letter.publish(message, reason=reason, attempts=attempts)
        except Exception:
            logger.exception("Could not publish job %s to the dead letter queue", message.job_id, extra=log_ctx)
