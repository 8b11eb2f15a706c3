import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from opa.models.enums import WithdrawalMethod


class PayoutMethodCreateRequest(BaseModel):
    method: WithdrawalMethod
    # Phone number for mobile money, card number for bank_card.
    method_details: str = Field(min_length=1, max_length=40)
    account_name: str | None = Field(None, max_length=100)
    label: str | None = Field(None, max_length=50)


class PayoutMethodResponse(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: uuid.UUID
    method: WithdrawalMethod
    label: str | None
    method_details: str
    account_name: str | None
    created_at: datetime


class PayoutMethodListResponse(BaseModel):
    payout_methods: list[PayoutMethodResponse]
