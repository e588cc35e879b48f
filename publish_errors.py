"""
Publish Errors - exception taxonomy for the Shorts publishing flow.

Every failure in the flow is surfaced as one of these so callers can tell
an outright failure apart from an upload that was submitted but never
confirmed (UploadTimeoutError).
"""
from typing import Optional


class PublishError(Exception):
    """Base class for all publishing errors."""
    pass


# =============================================================================
# Input validation
# =============================================================================

class PublishValidationError(PublishError, ValueError):
    """Raised for bad inputs (missing video, empty caption, too few poll options).

    Raised before any server, session or UI side effect is attempted.
    """
    pass


# =============================================================================
# Infrastructure
# =============================================================================

class AppiumServerError(PublishError):
    """Raised when Appium server fails to start or exits before it is ready."""
    pass


class SessionError(PublishError):
    """Raised when the Appium session can't be created or a driver call fails."""
    pass


# =============================================================================
# UI flow
# =============================================================================

class ElementNotFoundError(PublishError):
    """Raised when a targeted UI control is absent within the probe window."""

    def __init__(self, strategy: str, value: str, step_id: Optional[str] = None):
        self.strategy = strategy
        self.value = value
        self.step_id = step_id
        where = f" (step '{step_id}')" if step_id else ""
        super().__init__(f"Element not found: {strategy}={value!r}{where}")


class UploadTimeoutError(PublishError):
    """Raised when no completion marker shows up within the upload timeout.

    The upload was submitted, so it has probably gone through but could not
    be confirmed from the UI.
    """

    def __init__(self, timeout_s: float):
        self.timeout_s = timeout_s
        super().__init__(f"Upload not confirmed within {timeout_s:.0f}s")
