import itertools

import pytest

from opa.exceptions import InvalidTransition
from opa.models.enums import ActorRole, BookingStatus
from opa.utils.booking_state import (
    ALLOWED_TRANSITIONS,
    allowed_targets,
    validate_ride_start,
    validate_transition,
)


def test_provider_can_accept_reject_or_cancel_pending():
    assert allowed_targets(BookingStatus.PENDING, ActorRole.PROVIDER) == {
        BookingStatus.ACTIVE,
        BookingStatus.REJECTED,
        BookingStatus.CANCELLED,
    }


def test_renter_can_only_cancel():
    for status in (BookingStatus.PENDING, BookingStatus.ACTIVE):
        assert allowed_targets(status, ActorRole.RENTER) == {BookingStatus.CANCELLED}


def test_terminal_states_have_no_exits():
    for status, role in itertools.product(BookingStatus, ActorRole):
        if status.is_terminal:
            assert allowed_targets(status, role) == set()


def test_validate_transition_is_total():
    """Every (status, role, target) either passes or raises InvalidTransition."""
    for current, role, target in itertools.product(BookingStatus, ActorRole, BookingStatus):
        allowed = target in ALLOWED_TRANSITIONS.get((role, current), set()) and not current.is_terminal
        if allowed:
            validate_transition(current, target, role, reason="unavailable")
        else:
            with pytest.raises(InvalidTransition):
                validate_transition(current, target, role, reason="unavailable")


def test_reject_requires_reason():
    with pytest.raises(InvalidTransition):
        validate_transition(BookingStatus.PENDING, BookingStatus.REJECTED, ActorRole.PROVIDER)
    with pytest.raises(InvalidTransition):
        validate_transition(BookingStatus.PENDING, BookingStatus.REJECTED, ActorRole.PROVIDER, reason="   ")
    validate_transition(BookingStatus.PENDING, BookingStatus.REJECTED, ActorRole.PROVIDER, reason="unavailable")


def test_accepting_a_rejected_booking_fails():
    with pytest.raises(InvalidTransition, match="rejected"):
        validate_transition(BookingStatus.REJECTED, BookingStatus.ACTIVE, ActorRole.PROVIDER)


def test_ride_start_rules():
    validate_ride_start(BookingStatus.ACTIVE, ActorRole.PROVIDER, already_started=False)
    with pytest.raises(InvalidTransition):
        validate_ride_start(BookingStatus.ACTIVE, ActorRole.PROVIDER, already_started=True)
    with pytest.raises(InvalidTransition):
        validate_ride_start(BookingStatus.ACTIVE, ActorRole.RENTER, already_started=False)
    with pytest.raises(InvalidTransition):
        validate_ride_start(BookingStatus.PENDING, ActorRole.PROVIDER, already_started=False)
