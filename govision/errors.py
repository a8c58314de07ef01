# govision/errors.py
from typing import Optional


class GovisionError(Exception):
    """Base class. ``retryable`` tells the worker whether a redelivery may succeed."""

    retryable = False


class MalformedMessageError(GovisionError):
    """Queue payload that can never be processed."""


class DetectionError(GovisionError):
    pass


class RetryableDetectionError(DetectionError):
    retryable = True

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class TerminalDetectionError(DetectionError):
    pass


class DetectionRejectedError(TerminalDetectionError):
    """The detection service refused the request (4xx)."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"detection service returned status {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class MalformedResponseError(TerminalDetectionError):
    pass


class RepositoryError(GovisionError):
    retryable = True


class JobNotFoundError(GovisionError):
    def __init__(self, job_id: str):
        super().__init__(f"job not found: {job_id}")
        self.job_id = job_id
