"""
Errors raised by job handlers to signal how a failure should be treated.
"""


class JobError(Exception):
    """Base class for handler-reported failures."""

    retryable: bool = True

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        self.code = code
        super().__init__(message)


class RetryableJobError(JobError):
    """Transient failure (timeout, rate limit, 5xx). The job is re-queued with backoff."""

    retryable = True


class FatalJobError(JobError):
    """Unprocessable job (malformed payload, permanent rejection). Retrying cannot help."""

    retryable = False
