from eventreg.schemas.registration import (
    ParticipantInfo,
    RegistrationCreatedResponse,
    RegistrationDetail,
    EventRegistrationSummary,
    RegistrationStatusResponse,
    CancellationResponse,
    ErrorResponse,
)

__all__ = [
    "ParticipantInfo", "RegistrationCreatedResponse", "RegistrationDetail",
    "EventRegistrationSummary", "RegistrationStatusResponse",
    "CancellationResponse", "ErrorResponse",
]
