"""
Pydantic schemas for registration request/response validation.
Wire format is camelCase; Python attributes stay snake_case.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from eventreg.models.registration import RegistrationStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ParticipantInfo(CamelModel):
    """Free-form participant details; defaults come from the caller's identity."""

    participant_name: Optional[str] = Field(None, max_length=255)
    participant_email: Optional[str] = Field(None, max_length=255)
    participant_phone: Optional[str] = Field(None, max_length=50)
    grade: Optional[str] = Field(None, max_length=50)
    special_requests: Optional[str] = Field(None, max_length=2000)


class RegistrationCreatedResponse(CamelModel):
    id: int
    status: RegistrationStatus
    registered_at: datetime
    participant_name: Optional[str]
    grade: Optional[str]
    message: str


class RegistrationDetail(CamelModel):
    id: int
    status: RegistrationStatus
    participant_name: Optional[str]
    participant_email: Optional[str]
    participant_phone: Optional[str]
    grade: Optional[str]
    special_requests: Optional[str]
    registered_at: datetime
    checked_in: bool
    checked_in_at: Optional[datetime]
    waitlist_position: Optional[int] = None


class EventRegistrationSummary(CamelModel):
    id: int
    title: str
    registration_required: bool
    registration_deadline: Optional[datetime]
    max_participants: Optional[int]
    registration_count: int
    spots_available: Optional[int]
    is_registration_open: bool


class RegistrationStatusResponse(CamelModel):
    event: EventRegistrationSummary
    registration: Optional[RegistrationDetail]
    can_register: bool
    can_cancel_registration: bool


class CancellationResponse(CamelModel):
    message: str


class ErrorResponse(BaseModel):
    detail: str
    code: str
