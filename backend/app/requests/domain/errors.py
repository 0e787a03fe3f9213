from typing import Any, Dict, List, Optional


class DomainError(Exception):
    """Base domain error with a user-facing message."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class PermissionDenied(DomainError):
    """Raised when the user has insufficient permissions."""


class NotFound(DomainError):
    """Raised when a required entity is missing."""


class InvalidRequest(DomainError):
    """Raised when the request is not in a valid state."""


class InvalidTransition(InvalidRequest):
    """Raised when a status change is not allowed by the lifecycle."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Cannot move request from '{current}' to '{target}'")


class FinalizeValidationError(InvalidRequest):
    """Raised when one or more finalize lines fail validation.

    ``errors`` holds one entry per failing line so callers can point at the
    exact item. Nothing has been written when this is raised.
    """

    def __init__(self, errors: List[Dict[str, Any]], message: Optional[str] = None) -> None:
        self.errors = errors
        if message is None:
            message = "; ".join(error["message"] for error in errors) or "Finalize validation failed"
        super().__init__(message)


class DuplicateRequestNumber(DomainError):
    """Raised when a concurrent create took the same request number first."""
