"""
Error taxonomy for media resolution.

Every resolver tier converts its own failures into one of these kinds and
moves on to the next tier. Only exhaustion of all tiers reaches the caller,
and it does so as a not-found result rather than an exception.
"""

from __future__ import annotations

from typing import Optional


class MediaError(RuntimeError):
    """Base class for media resolution errors."""


class NotFound(MediaError):
    """The blob does not exist in the probed location. Expected and common."""


class Unavailable(MediaError):
    """A dependent external service or binary is not configured."""


class CodecUnavailable(Unavailable):
    """No external decode facility is configured for the proprietary image codec."""


class Failed(MediaError):
    """A specific decode, fetch or transcode attempt errored."""


class DecodeFailed(Failed):
    """The external image codec rejected or could not decode the input."""


class FetchFailed(Failed):
    """An HTTP download did not produce a usable body."""


class TranscodeFailed(Failed):
    """An external audio tool exited with an error."""


class IntegrityMismatch(MediaError):
    """Content digest verification failed."""

    def __init__(self, expected: str, actual: str, content: Optional[bytes] = None):
        super().__init__(f"digest mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual
        self.content = content


class UnsupportedFormat(MediaError):
    """The container header matched none of the known markers."""
