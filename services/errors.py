# Domain errors raised by the funding services
# The HTTP layer maps each class to its status code (see server.py)

import logging

logger = logging.getLogger(__name__)


class FundingError(Exception):
    """Base class for every error the funding services raise on purpose."""
    http_status = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message, "error": type(self).__name__}


class ValidationError(FundingError):
    """Malformed or missing input."""
    http_status = 400


class NotFoundError(FundingError):
    http_status = 404


class AuthorizationError(FundingError):
    """Actor does not own the resource or lacks the required role."""
    http_status = 403


class StateConflictError(FundingError):
    """A precondition on current state was not met."""
    http_status = 409


class ExternalServiceError(FundingError):
    """A transfer or third-party lookup failed.

    ``retryable`` tells the caller whether the same call may succeed later
    (timeouts, 5xx) or never will (rejected account, bad request).
    """
    http_status = 502

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["retryable"] = self.retryable
        return data


class InvariantViolation(FundingError):
    """Persisted state is internally inconsistent. Never corrected silently."""
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        logger.error(f"Invariant violation: {message}")
