"""Error taxonomy for the generation pipeline, render orchestration and jobs.

Fatal errors (UpstreamFetchError, PersistenceError) end a pipeline run and are
persisted on the record in truncated form. SummarizationError is recoverable and
replaced by deterministic fallback output. Render errors are fatal to the render
attempt or job but never to the owning record.
"""

DEFAULT_ERROR_LIMIT = 500


def truncate_error(message: str | BaseException | None, limit: int = DEFAULT_ERROR_LIMIT) -> str:
    """Bound an error message for persistence."""
    text = str(message) if message is not None else ""
    text = text.strip() or "Unknown error"
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


class RepatchError(Exception):
    """Base class for all application errors."""


class InvalidRequestError(RepatchError):
    """Caller supplied a malformed repository reference, window or payload."""


class UpstreamFetchError(RepatchError):
    """Repository statistics could not be fetched."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SummarizationError(RepatchError):
    """The text-generation provider is unavailable or returned nothing usable."""


class RenderTriggerError(RepatchError):
    """The render backend refused or failed to start a render."""


class RenderTimeoutError(RepatchError):
    """A render did not reach a terminal state within the polling bound."""


class RenderInProgressError(RepatchError):
    """A render is already running for this record."""


class PersistenceError(RepatchError):
    """Reading or writing a record or job failed, or stored data is malformed."""


class RecordNotFoundError(RepatchError):
    """No generation record with the given id."""


class JobNotFoundError(RepatchError):
    """No async job with the given id."""


class JobStateError(RepatchError):
    """The requested job transition is not legal from its current status."""


class JobCancelledError(RepatchError):
    """Raised inside a job handler once its job has been cancelled."""
