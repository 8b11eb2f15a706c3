import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from opa.models.enums import WithdrawalMethod, WithdrawalStatus
from opa.models.withdrawal import WithdrawalRequest


class WithdrawalCreateRequest(BaseModel):
    amount: Decimal = Field(max_digits=12, decimal_places=2)
    # Either a saved payout method or raw details: phone number for mobile
    # money, card number for bank_card.
    payout_method_id: uuid.UUID | None = None
    method: WithdrawalMethod | None = None
    method_details: str | None = Field(None, min_length=1, max_length=40)
    account_name: str | None = Field(None, max_length=100)

    @model_validator(mode="after")
    def check_destination_source(self) -> "WithdrawalCreateRequest":
        if self.payout_method_id is not None and (self.method or self.method_details):
            raise ValueError("Provide either payout_method_id or method details, not both")
        return self


class WithdrawalResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    amount: Decimal
    currency: str
    method: WithdrawalMethod
    method_details: str
    account_name: str | None
    payout_method_id: uuid.UUID | None = None
    status: WithdrawalStatus
    reference: str
    failure_reason: str | None
    created_at: datetime
    processing_at: datetime | None
    completed_at: datetime | None
    failed_at: datetime | None

    @classmethod
    def from_withdrawal(cls, withdrawal: WithdrawalRequest) -> "WithdrawalResponse":
        return cls(
            id=withdrawal.id,
            amount=withdrawal.amount.to_major(),
            currency=withdrawal.currency,
            method=withdrawal.method,
            method_details=withdrawal.method_details,
            account_name=withdrawal.account_name,
            payout_method_id=withdrawal.payout_method_id,
            status=withdrawal.status,
            reference=withdrawal.reference,
            failure_reason=withdrawal.failure_reason,
            created_at=withdrawal.created_at,
            processing_at=withdrawal.processing_at,
            completed_at=withdrawal.completed_at,
            failed_at=withdrawal.failed_at,
        )


class WithdrawalListResponse(BaseModel):
    withdrawals: list[WithdrawalResponse]
