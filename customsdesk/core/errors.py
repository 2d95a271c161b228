"""Domain error taxonomy.

Services raise these; the API layer renders them through a single exception
handler so every route reports the same failure the same way.
"""

from fastapi import status


class DomainError(Exception):
    """Base class for every typed failure raised by the service layer."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "domain_error"

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict:
        return {"detail": self.detail, "code": self.code}


class Unauthorized(DomainError):
    """The access decision engine denied the operation."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "unauthorized"


class NotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class Conflict(DomainError):
    """Uniqueness violation: duplicate agreement, file number, email, name."""

    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class LimitExceeded(DomainError):
    """A quota check failed. Carries what is left so callers can say so."""

    status_code = status.HTTP_409_CONFLICT
    code = "limit_exceeded"

    def __init__(self, detail: str, remaining: int) -> None:
        super().__init__(detail)
        self.remaining = remaining

    def to_dict(self) -> dict:
        return {**super().to_dict(), "remaining": self.remaining}


class SubscriptionMissingOrExpired(DomainError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    code = "subscription_missing_or_expired"


class InvalidStateTransition(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_state_transition"


class AgreementRequired(DomainError):
    """No ACTIVE agency agreement exists between the broker and the client."""

    status_code = status.HTTP_409_CONFLICT
    code = "agreement_required"


class ValidationError(DomainError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "validation_error"
