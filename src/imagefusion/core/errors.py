"""Exception types raised by the merge pipeline.

Every failure inside the pipeline is expressed as a :class:`PipelineError`
subclass so the HTTP layer can map it to a response without knowing which
stage produced it:

- :class:`ValidationError` — the caller sent an incomplete request (HTTP 400).
- :class:`BackendError` — a vision, text or image-generation backend failed,
  or returned nothing usable (HTTP 500).
- :class:`PersistenceError` — session artifacts or the activity log could not
  be written (HTTP 500).

Library exceptions are always chained (``raise ... from exc``) so the original
traceback survives in the server log.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for all merge pipeline failures.

    Attributes:
        stage: Name of the pipeline stage that was running when the error
            was raised, filled in by the orchestrator.  ``None`` when the
            error is raised outside a pipeline run.
    """

    status_code: int = 500

    def __init__(self, message: str, *, stage: str | None = None) -> None:
        super().__init__(message)
        self.stage = stage


class ValidationError(PipelineError):
    """Caller-fixable input error (missing image, empty payload)."""

    status_code = 400


class BackendError(PipelineError):
    """An AI backend call failed or produced an empty result."""


class PersistenceError(PipelineError):
    """Session artifacts or log entries could not be written to disk."""
