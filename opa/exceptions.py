"""Typed settlement errors.

Services raise these instead of ``HTTPException`` so that non-HTTP callers
(scheduler jobs, payout callbacks) get clean exceptions; ``opa.main`` maps
each one to its HTTP status and a stable machine-readable ``code``.
"""
from fastapi import status


class SettlementError(Exception):
    code = "settlement_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message()
        super().__init__(self.message)

    @classmethod
    def default_message(cls) -> str:
        return cls.__name__


class InvalidSchedule(SettlementError):
    code = "invalid_schedule"
    status_code = 422


class InvalidAmount(SettlementError):
    code = "invalid_amount"
    status_code = 422


class InvalidTransition(SettlementError):
    code = "invalid_transition"
    status_code = status.HTTP_409_CONFLICT


class ConflictingTransition(SettlementError):
    code = "conflicting_transition"
    status_code = status.HTTP_409_CONFLICT

    @classmethod
    def default_message(cls) -> str:
        return "The resource was modified by a concurrent request. Please retry."


class BelowMinimum(SettlementError):
    code = "below_minimum"
    status_code = 422


class InsufficientBalance(SettlementError):
    code = "insufficient_balance"
    status_code = 422


class InvalidMethodDetails(SettlementError):
    code = "invalid_method_details"
    status_code = 422


class NotFound(SettlementError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class NotBookingParty(SettlementError):
    code = "not_booking_party"
    status_code = status.HTTP_403_FORBIDDEN

    @classmethod
    def default_message(cls) -> str:
        return "Not your booking"


class PayoutProcessorError(SettlementError):
    code = "payout_processor_unavailable"
    status_code = status.HTTP_502_BAD_GATEWAY

    @classmethod
    def default_message(cls) -> str:
        return "Payout processor is temporarily unavailable. Please try again later."
