"""
Error taxonomy for the registration subsystem.

Every business failure is a RegistrationError carrying its HTTP status and a
stable machine-readable code. The API layer renders them through a single
exception handler (see eventreg.main), so services never build HTTP responses.
"""

from typing import Optional

from fastapi import status


class RegistrationError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "registration_error"
    default_detail: str = "Registration request failed"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class AuthenticationRequired(RegistrationError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "authentication_required"
    default_detail = "Unauthorized access"


class NotFound(RegistrationError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_detail = "Resource not found"


class EventNotFound(NotFound):
    code = "event_not_found"
    default_detail = "Event does not exist or is not published"


class EventNotEligible(NotFound):
    code = "event_not_eligible"
    default_detail = "Event does not exist, is not published, or does not require registration"


class ValidationError(RegistrationError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"
    default_detail = "Invalid registration request"


class RegistrationNotRequired(ValidationError):
    code = "registration_not_required"
    default_detail = "This event does not require registration"


class DeadlinePassed(ValidationError):
    code = "deadline_passed"
    default_detail = "Registration deadline has passed"


class AlreadyRegistered(ValidationError):
    code = "already_registered"
    default_detail = "You have already registered for this event"


class NotRegistered(ValidationError):
    code = "not_registered"
    default_detail = "You have not registered for this event"


class InternalError(RegistrationError):
    code = "internal_error"
    default_detail = "Registration could not be completed. Please try again."


class InvalidTransition(InternalError):
    code = "invalid_transition"

    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"Illegal registration transition {current} -> {target}")


class TransientConflict(Exception):
    """Ledger contention. Retried by the transaction runner, never rendered to clients."""
