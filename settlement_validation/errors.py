"""Error taxonomy for the settlement validation harness.

Everything raised inside a step is caught by the step runner and turned into a
failed ``StepResult``; only ``FatalSetupError`` (and anything raised outside a
step) ends a flow early.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict


class ValidationError(Exception):
    """Base class for all harness errors."""


@dataclass
class ToolError(ValidationError):
    """Raised when a browser operation fails."""

    name: str
    payload: Dict[str, Any]
    message: str

    def __str__(self) -> str:  # pragma: no cover - human readable helper
        return f"{self.name} failed ({self.message}) with payload={self.payload}"


class AuthError(ValidationError):
    """Login did not leave the login route in time."""


class LogoutError(ValidationError):
    """Logout did not land on the login route, or landed on an error page."""


class SectionNotVisibleError(ValidationError):
    """A dashboard section is still hidden after navigating to it."""

    def __init__(self, section_id: str) -> None:
        super().__init__(f"Section '{section_id}' did not become visible.")
        self.section_id = section_id


class RowNotFoundError(ValidationError):
    """An expected record never appeared in its table."""


class ConvergenceTimeoutError(ValidationError):
    """A bounded wait ran out before the projected state converged."""

    def __init__(self, message: str, last_seen: Any = None) -> None:
        super().__init__(message)
        self.last_seen = last_seen


class InvariantViolationError(ValidationError):
    """Mutual exclusion, idempotency, ordering or authorization was broken."""


class ArtifactCaptureError(ValidationError):
    """Screenshot capture failed. Never overrides an earlier failure reason."""


class FatalSetupError(ValidationError):
    """The session could not be established at all."""
