"""
Tests for the registration status state machine.
"""

import pytest

from eventreg.core.exceptions import InvalidTransition
from eventreg.models.registration import Registration, RegistrationStatus, can_transition

CONFIRMED = RegistrationStatus.CONFIRMED
WAITLISTED = RegistrationStatus.WAITLISTED
CANCELLED = RegistrationStatus.CANCELLED


@pytest.mark.parametrize(
    "current,target",
    [
        (None, CONFIRMED),
        (None, WAITLISTED),
        (CONFIRMED, CANCELLED),
        (WAITLISTED, CONFIRMED),
        (WAITLISTED, CANCELLED),
        (CANCELLED, CONFIRMED),
        (CANCELLED, WAITLISTED),
    ],
)
def test_allowed_transitions(current, target):
    assert can_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        (None, CANCELLED),
        (CONFIRMED, CONFIRMED),
        (CONFIRMED, WAITLISTED),
        (WAITLISTED, WAITLISTED),
        (CANCELLED, CANCELLED),
    ],
)
def test_rejected_transitions(current, target):
    assert not can_transition(current, target)


def test_open_rejects_cancelled_initial_state():
    with pytest.raises(InvalidTransition):
        Registration.open(CANCELLED, event_id=1, user_id=1)


def test_transition_to_updates_status():
    registration = Registration.open(WAITLISTED, event_id=1, user_id=1)
    registration.transition_to(CONFIRMED)
    assert registration.status == CONFIRMED
    assert registration.is_active


def test_confirmed_cannot_be_waitlisted_again():
    """A held seat is only ever given up through cancellation."""
    registration = Registration.open(CONFIRMED, event_id=1, user_id=1)
    with pytest.raises(InvalidTransition) as exc_info:
        registration.transition_to(WAITLISTED)
    assert exc_info.value.status_code == 500
    assert registration.status == CONFIRMED


def test_wire_values():
    assert CONFIRMED.value == "confirmed"
    assert WAITLISTED.value == "waiting_list"
    assert CANCELLED.value == "cancelled"
    assert not CANCELLED.is_active
