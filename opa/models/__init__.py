from opa.models.booking import Booking, BookingStatusEvent
from opa.models.earnings_account import EarningsAccount
from opa.models.notification import Notification
from opa.models.payout_method import PayoutMethod
from opa.models.webhook_event import ProcessedWebhookEvent
from opa.models.withdrawal import WithdrawalRequest

__all__ = [
    "Booking",
    "BookingStatusEvent",
    "EarningsAccount",
    "Notification",
    "PayoutMethod",
    "ProcessedWebhookEvent",
    "WithdrawalRequest",
]
