"""
Failure taxonomy for detection requests.

Inside one process the pipeline raises the exceptions below for caller errors and returns
None for "no document". Across the host boundary everything travels as a FailureReason.
"""

from __future__ import annotations
from enum import Enum


class FailureReason(str, Enum):
    RUNTIME_UNAVAILABLE = "runtime_unavailable"  # host failed to initialize, permanent for the session
    NO_DOCUMENT_FOUND = "no_document_found"
    FRAME_TOO_SMALL = "frame_too_small"
    TIMEOUT = "timeout"
    INVALID_FRAME = "invalid_frame"
    NOT_READY = "not_ready"      # host still loading or not started
    BUSY = "busy"                # live request dropped, another one is in flight
    CANCELLED = "cancelled"      # session ended while the request was pending


_RECOVERABLE = {
    FailureReason.NO_DOCUMENT_FOUND,
    FailureReason.FRAME_TOO_SMALL,
    FailureReason.TIMEOUT,
    FailureReason.BUSY,
}


def is_recoverable(reason: FailureReason) -> bool:
    """Whether the caller can fall back to manual crop and keep using the same session."""
    return reason in _RECOVERABLE


def treat_as_not_found(reason: FailureReason) -> bool:
    return reason in (FailureReason.NO_DOCUMENT_FOUND, FailureReason.TIMEOUT)


class DocscanError(Exception):
    reason: FailureReason = FailureReason.NO_DOCUMENT_FOUND


class InvalidFrameError(DocscanError, ValueError):
    reason = FailureReason.INVALID_FRAME


class FrameTooSmallError(DocscanError, ValueError):
    reason = FailureReason.FRAME_TOO_SMALL


class RuntimeUnavailableError(DocscanError, RuntimeError):
    reason = FailureReason.RUNTIME_UNAVAILABLE
