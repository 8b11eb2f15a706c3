"""Prometheus business counters for bookings, withdrawals and scheduler jobs."""

from prometheus_client import Counter, Histogram

BOOKINGS_CREATED = Counter(
    "opa_bookings_created_total",
    "Total bookings created",
    ["provider_type"],
)
BOOKING_TRANSITIONS = Counter(
    "opa_booking_transitions_total",
    "Booking status transitions applied",
    ["to_status", "actor_role"],
)
BOOKING_CONFLICTS = Counter(
    "opa_booking_conflicts_total",
    "Booking writes rejected by the optimistic version check",
)

WITHDRAWALS_REQUESTED = Counter(
    "opa_withdrawals_requested_total",
    "Total withdrawal requests accepted",
    ["method"],
)
WITHDRAWALS_REJECTED = Counter(
    "opa_withdrawals_rejected_total",
    "Withdrawal requests refused by validation",
    ["code"],
)
WITHDRAWAL_VERSION_RETRIES = Counter(
    "opa_withdrawal_version_retries_total",
    "Withdrawal attempts retried after losing the owner version race",
)
WITHDRAWALS_SETTLED = Counter(
    "opa_withdrawals_settled_total",
    "Withdrawals that reached a final state",
    ["status"],
)

PAYOUT_CALL_DURATION = Histogram(
    "opa_payout_call_duration_seconds",
    "Duration of payout processor API calls",
    ["operation"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0),
)

SCHEDULER_JOB_RUNS = Counter(
    "opa_scheduler_job_runs_total",
    "Total scheduler job executions",
    ["job_name", "status"],
)
