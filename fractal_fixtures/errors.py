"""
Exception hierarchy for fixture generation and distribution.

Job-level failures (``JobFailure`` subclasses and ``TransportError``) are
recorded per job and never abort sibling jobs. ``ConfigurationError`` is
fatal and stops the run before any work begins.
"""

from typing import Optional


class FixtureError(Exception):
    """Base class for all fractal-fixtures errors."""


class ConfigurationError(FixtureError):
    """Missing credentials, invalid ranges or an unusable codec."""


class JobFailure(FixtureError):
    """A single generation job failed; the run continues."""

    kind = "job_failure"


class SynthesisExhausted(JobFailure):
    """No viewport passed the complexity test within the attempt budget."""

    kind = "synthesis_exhausted"

    def __init__(self, attempts: int, best_score: Optional[float] = None):
        self.attempts = attempts
        self.best_score = best_score
        message = f"no accepted viewport after {attempts} attempts"
        if best_score is not None:
            message += f" (best score {best_score:.4f})"
        super().__init__(message)


class SizeUnreachable(JobFailure):
    """The encoded image is already larger than the inflation target."""

    kind = "size_unreachable"

    def __init__(self, current_size: int, target_max: int):
        self.current_size = current_size
        self.target_max = target_max
        super().__init__(
            f"encoded image is {current_size} bytes, above target maximum {target_max}"
        )


class EncodingFailure(JobFailure):
    """The image encoder rejected a raster or produced unusable output."""

    kind = "encoding_failure"


class TransportError(FixtureError):
    """Transient network or storage error that survived all retries."""

    kind = "transport_error"

    def __init__(self, message: str, attempts: int = 1):
        self.attempts = attempts
        super().__init__(message)
