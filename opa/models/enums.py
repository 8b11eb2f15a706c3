import enum

# These enums are stored as VARCHAR columns rather than native PG ENUM types
# so new values do not need ALTER TYPE migrations.


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_BOOKING_STATUSES


TERMINAL_BOOKING_STATUSES = frozenset(
    {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.REJECTED}
)


class ProviderType(str, enum.Enum):
    OWNER = "owner"    # Host renting out their own car
    DRIVER = "driver"  # Chauffeur-driven ride


class ActorRole(str, enum.Enum):
    RENTER = "renter"
    PROVIDER = "provider"
    SYSTEM = "system"


class RefundTier(str, enum.Enum):
    FULL = "full"
    PARTIAL = "partial"
    NONE = "none"


class WithdrawalMethod(str, enum.Enum):
    MPESA = "mpesa"
    AIRTEL_MONEY = "airtel_money"
    BANK_CARD = "bank_card"


class WithdrawalStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class LedgerEntryType(str, enum.Enum):
    EARNED = "earned"
    WITHDRAWAL = "withdrawal"


class EarningsPeriod(str, enum.Enum):
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class NotificationType(str, enum.Enum):
    BOOKING_CREATED = "booking_created"
    BOOKING_ACCEPTED = "booking_accepted"
    BOOKING_REJECTED = "booking_rejected"
    RIDE_STARTED = "ride_started"
    BOOKING_COMPLETED = "booking_completed"
    BOOKING_CANCELLED = "booking_cancelled"
    WITHDRAWAL_COMPLETED = "withdrawal_completed"
    WITHDRAWAL_FAILED = "withdrawal_failed"
