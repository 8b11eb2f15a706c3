from opa.exceptions import InvalidTransition
from opa.models.enums import WithdrawalStatus

ALLOWED_WITHDRAWAL_TRANSITIONS: dict[WithdrawalStatus, set[WithdrawalStatus]] = {
    WithdrawalStatus.SUBMITTED: {WithdrawalStatus.PROCESSING},
    WithdrawalStatus.PROCESSING: {WithdrawalStatus.COMPLETED, WithdrawalStatus.FAILED},
    WithdrawalStatus.COMPLETED: set(),
    WithdrawalStatus.FAILED: set(),
}


def validate_withdrawal_transition(current: WithdrawalStatus, new: WithdrawalStatus) -> None:
    """Validate a withdrawal status transition. Raises InvalidTransition if invalid."""
    allowed = ALLOWED_WITHDRAWAL_TRANSITIONS.get(current, set())
    if new not in allowed:
        raise InvalidTransition(
            f"Cannot move a withdrawal from '{current.value}' to '{new.value}'"
        )
