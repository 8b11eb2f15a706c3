"""Client for the mobile-money / card payout processor.

Without ``PAYOUT_API_KEY`` every call runs in mock mode and returns
deterministic ``*_mock_*`` identifiers so the full withdrawal flow can be
exercised locally.
"""
import hashlib
import hmac
import json
import time as _time
import uuid

import httpx
import structlog

from opa.config import settings
from opa.exceptions import PayoutProcessorError
from opa.metrics import PAYOUT_CALL_DURATION
from opa.utils.money import Money
from opa.utils.payout_methods import PayoutDestination

logger = structlog.get_logger()

SIGNATURE_TOLERANCE_SECONDS = 300

_payout_client: httpx.AsyncClient | None = None


class PayoutSignatureError(Exception):
    """Raised when a processor callback fails signature verification."""


def _get_payout_client() -> httpx.AsyncClient:
    global _payout_client
    if _payout_client is None or _payout_client.is_closed:
        _payout_client = httpx.AsyncClient(
            base_url=settings.PAYOUT_API_URL,
            timeout=httpx.Timeout(connect=5.0, read=15.0, write=5.0, pool=5.0),
            headers={"Authorization": f"Bearer {settings.PAYOUT_API_KEY}"},
        )
    return _payout_client


def _is_mock_mode() -> bool:
    return not settings.PAYOUT_API_KEY or not settings.PAYOUT_API_URL


async def _post(operation: str, path: str, payload: dict, idempotency_key: str) -> dict:
    start = _time.monotonic()
    try:
        response = await _get_payout_client().post(
            path, json=payload, headers={"Idempotency-Key": idempotency_key}
        )
        response.raise_for_status()
        return response.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.error("payout_call_failed", operation=operation, error=str(exc))
        raise PayoutProcessorError() from exc
    finally:
        PAYOUT_CALL_DURATION.labels(operation=operation).observe(_time.monotonic() - start)


async def tokenize_destination(owner_id: uuid.UUID, destination: PayoutDestination) -> str:
    """Hand the clear account number to the processor and get back an opaque token."""
    if _is_mock_mode():
        digest = hashlib.sha256(f"{destination.method.value}:{destination.account}".encode()).hexdigest()
        logger.info("payout_mock_tokenize", method=destination.method.value, account=destination.masked)
        return f"dest_mock_{digest[:24]}"

    data = await _post(
        "tokenize_destination",
        "/destinations",
        {
            "owner_id": str(owner_id),
            "method": destination.method.value,
            "account": destination.account,
            "account_name": destination.account_name,
        },
        idempotency_key=f"dest_{owner_id}_{hashlib.sha256(destination.account.encode()).hexdigest()[:16]}",
    )
    logger.info("payout_destination_tokenized", method=destination.method.value, account=destination.masked)
    return data["token"]


async def create_payout(
    reference: str,
    amount: Money,
    method: str,
    destination_token: str,
) -> dict:
    """Ask the processor to send ``amount``. Returns ``{"id": ..., "status": ...}``.

    The withdrawal reference doubles as the idempotency key so a retried
    dispatch never pays out twice.
    """
    if _is_mock_mode():
        logger.info("payout_mock_create", reference=reference, amount_minor=amount.amount_minor)
        return {"id": f"po_mock_{reference}", "status": "processing"}

    data = await _post(
        "create_payout",
        "/payouts",
        {
            "reference": reference,
            "amount": amount.amount_minor,
            "currency": amount.currency,
            "method": method,
            "destination": destination_token,
        },
        idempotency_key=f"payout_{reference}",
    )
    logger.info("payout_created", reference=reference, payout_id=data.get("id"))
    return {"id": data["id"], "status": data.get("status", "processing")}


def sign_payload(payload: bytes, timestamp: int, secret: str) -> str:
    signed = f"{timestamp}.".encode() + payload
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def verify_webhook_signature(payload: bytes, sig_header: str, now: float | None = None) -> dict:
    """Verify a ``t=<unix>,v1=<hex hmac-sha256>`` signature and return the parsed event."""
    secret = settings.PAYOUT_WEBHOOK_SECRET
    if not secret:
        logger.error("payout_webhook_rejected_no_secret")
        raise PayoutSignatureError("Webhook signature verification not configured")

    parts = dict(
        item.split("=", 1) for item in (sig_header or "").split(",") if "=" in item
    )
    try:
        timestamp = int(parts["t"])
        received = parts["v1"]
    except (KeyError, ValueError) as exc:
        raise PayoutSignatureError("Malformed signature header") from exc

    now = _time.time() if now is None else now
    if abs(now - timestamp) > SIGNATURE_TOLERANCE_SECONDS:
        raise PayoutSignatureError("Signature timestamp outside tolerance")

    expected = sign_payload(payload, timestamp, secret).split("v1=", 1)[1]
    if not hmac.compare_digest(expected, received):
        raise PayoutSignatureError("Signature mismatch")

    try:
        event = json.loads(payload)
    except ValueError as exc:
        raise PayoutSignatureError("Payload is not valid JSON") from exc
    if not isinstance(event, dict) or "id" not in event or "type" not in event:
        raise PayoutSignatureError("Payload is missing id or type")
    return event
