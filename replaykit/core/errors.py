# replaykit/core/errors.py
from __future__ import annotations

"""Failure taxonomy
-------------------
Classified reasons carried by failed StepResults, and the exceptions hosts and
the finder raise internally. The executor converts every one of these into a
StepResult, so callers only ever see the reason.
"""

from enum import Enum


class FailureReason(str, Enum):
    not_found = "not_found"
    timeout = "timeout"
    action_rejected = "action_rejected"
    invalid_bundle = "invalid_bundle"
    verification_failed = "verification_failed"
    cancelled = "cancelled"

    @property
    def retryable(self) -> bool:
        return self in (FailureReason.not_found, FailureReason.timeout)


class ReplayError(RuntimeError):
    reason: FailureReason = FailureReason.not_found

    @property
    def retryable(self) -> bool:
        return self.reason.retryable


class ElementNotFound(ReplayError):
    reason = FailureReason.not_found


class StepTimeout(ReplayError):
    reason = FailureReason.timeout


class ActionRejected(ReplayError):
    """Raised by a host when a control refuses the interaction (e.g. disabled)."""
    reason = FailureReason.action_rejected


class InvalidBundle(ReplayError):
    reason = FailureReason.invalid_bundle


class VerificationFailed(ReplayError):
    reason = FailureReason.verification_failed


class ReplayCancelled(ReplayError):
    reason = FailureReason.cancelled


__all__ = [
    "FailureReason",
    "ReplayError",
    "ElementNotFound",
    "StepTimeout",
    "ActionRejected",
    "InvalidBundle",
    "VerificationFailed",
    "ReplayCancelled",
]
