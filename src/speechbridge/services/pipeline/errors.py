"""Exception types raised inside the speech pipeline."""

from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """Base class for recoverable pipeline failures."""


class SynthesisError(PipelineError):
    """The primary synthesis provider could not produce audio."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        # Informational only: the scheduler never retries the primary path.
        self.retryable = retryable


class FallbackError(PipelineError):
    """The lower-fidelity fallback channel failed as well."""


class TranscriptSourceError(PipelineError):
    """The transcript store could not be read."""


__all__ = [
    "FallbackError",
    "PipelineError",
    "SynthesisError",
    "TranscriptSourceError",
]
