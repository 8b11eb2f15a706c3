from opa.exceptions import InvalidTransition
from opa.models.enums import ActorRole, BookingStatus

# Valid status transitions for a booking, per acting role.
ALLOWED_TRANSITIONS: dict[tuple[ActorRole, BookingStatus], set[BookingStatus]] = {
    (ActorRole.PROVIDER, BookingStatus.PENDING): {
        BookingStatus.ACTIVE,
        BookingStatus.REJECTED,
        BookingStatus.CANCELLED,
    },
    (ActorRole.PROVIDER, BookingStatus.ACTIVE): {
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
    },
    (ActorRole.RENTER, BookingStatus.PENDING): {
        BookingStatus.CANCELLED,
    },
    (ActorRole.RENTER, BookingStatus.ACTIVE): {
        BookingStatus.CANCELLED,
    },
    # Scheduler sweeps: unaccepted requests expire, overdue rentals close.
    (ActorRole.SYSTEM, BookingStatus.PENDING): {
        BookingStatus.CANCELLED,
    },
    (ActorRole.SYSTEM, BookingStatus.ACTIVE): {
        BookingStatus.COMPLETED,
    },
}


def allowed_targets(current: BookingStatus, role: ActorRole) -> set[BookingStatus]:
    if current.is_terminal:
        return set()
    return ALLOWED_TRANSITIONS.get((role, current), set())


def validate_transition(
    current: BookingStatus,
    new: BookingStatus,
    role: ActorRole,
    reason: str | None = None,
) -> None:
    """Validate a booking status transition. Raises InvalidTransition if invalid."""
    if current.is_terminal:
        raise InvalidTransition(f"Booking is already '{current.value}' and can no longer change")
    if new not in allowed_targets(current, role):
        raise InvalidTransition(
            f"A {role.value} cannot move a booking from '{current.value}' to '{new.value}'"
        )
    if new == BookingStatus.REJECTED and not (reason and reason.strip()):
        raise InvalidTransition("A rejection reason is required")


def validate_ride_start(current: BookingStatus, role: ActorRole, already_started: bool) -> None:
    """A ride starts once, by the provider, while the booking is active."""
    if role != ActorRole.PROVIDER:
        raise InvalidTransition(f"A {role.value} cannot start a ride")
    if current != BookingStatus.ACTIVE:
        raise InvalidTransition(f"Cannot start a ride for a '{current.value}' booking")
    if already_started:
        raise InvalidTransition("Ride has already started")
