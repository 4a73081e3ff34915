"""Errors specific to the merge pipeline."""

from __future__ import annotations


class MergeError(Exception):
    """Base class for merge errors."""


class MergePlanValidationError(MergeError, ValueError):
    """Raised when a merge plan is malformed; no remote call has been made.

    Attributes
    ----------
    issues
        Every problem found in the plan, in a stable order.

    """

    issues: tuple[str, ...]

    def __init__(self, issues: list[str]) -> None:
        """Initialise with the list of validation issues."""
        self.issues = tuple(issues)
        super().__init__("Invalid merge plan: " + "; ".join(self.issues))


class MergeCancelledError(MergeError):
    """Raised at a safe checkpoint after cancellation was requested."""

    def __init__(self, reason: str = "") -> None:
        """Initialise with the optional cancellation reason."""
        self.reason = reason
        super().__init__(f"Merge cancelled{': ' + reason if reason else ''}")
