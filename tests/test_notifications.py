import uuid
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from httpx import AsyncClient

from opa.config import settings
from opa.services.notifications import send_push
from tests.conftest import actor_token, auth_header, utcnow


async def _create_booking(client: AsyncClient, renter_id, owner_id) -> dict:
    pickup_at = utcnow() + timedelta(days=4)
    response = await client.post(
        "/bookings",
        json={
            "provider_id": str(owner_id),
            "provider_type": "driver",
            "vehicle_id": str(uuid.uuid4()),
            "pickup_at": pickup_at.isoformat(),
            "dropoff_at": (pickup_at + timedelta(hours=6)).isoformat(),
            "gross_amount": "3000.00",
        },
        headers=auth_header(actor_token(renter_id)),
    )
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_provider_is_notified_of_new_booking(client: AsyncClient, renter_id, owner_id):
    booking = await _create_booking(client, renter_id, owner_id)

    response = await client.get("/notifications", headers=auth_header(actor_token(owner_id)))

    assert response.status_code == 200
    data = response.json()
    assert data["unread_count"] == 1
    assert data["notifications"][0]["type"] == "booking_created"
    assert data["notifications"][0]["data"]["booking_id"] == booking["id"]

    response = await client.get("/notifications", headers=auth_header(actor_token(renter_id)))
    assert response.json()["unread_count"] == 0


@pytest.mark.asyncio
async def test_mark_notification_read(client: AsyncClient, renter_id, owner_id):
    await _create_booking(client, renter_id, owner_id)
    owner = auth_header(actor_token(owner_id))
    notification_id = (await client.get("/notifications", headers=owner)).json()["notifications"][0]["id"]

    response = await client.patch(
        f"/notifications/{notification_id}/read", headers=auth_header(actor_token(renter_id))
    )
    assert response.status_code == 404

    response = await client.patch(f"/notifications/{notification_id}/read", headers=owner)
    assert response.status_code == 200
    assert response.json()["is_read"] is True
    assert (await client.get("/notifications", headers=owner)).json()["unread_count"] == 0


@pytest.mark.asyncio
async def test_renter_hears_about_acceptance(client: AsyncClient, renter_id, owner_id):
    booking = await _create_booking(client, renter_id, owner_id)
    await client.patch(f"/bookings/{booking['id']}/accept", headers=auth_header(actor_token(owner_id)))

    data = (await client.get("/notifications", headers=auth_header(actor_token(renter_id)))).json()
    assert [n["type"] for n in data["notifications"]] == ["booking_accepted"]


@pytest.mark.asyncio
async def test_send_push_dev_mode():
    assert await send_push(str(uuid.uuid4()), "Title", "Body") is True


@pytest.mark.asyncio
async def test_send_push_through_gateway():
    response = MagicMock(is_success=True, status_code=202)
    client = MagicMock()
    client.post = AsyncMock(return_value=response)

    with (
        patch.object(settings, "NOTIFICATION_API_URL", "https://notify.example.com/"),
        patch("opa.services.notifications._get_gateway_client", return_value=client),
    ):
        assert await send_push("user-1", "T" * 80, "Body", data={"booking_id": "b1"}) is True

    args, kwargs = client.post.call_args
    assert args[0] == "https://notify.example.com/notifications"
    assert len(kwargs["json"]["title"]) == 50
    assert kwargs["json"]["data"] == {"booking_id": "b1"}


@pytest.mark.asyncio
async def test_send_push_gateway_failure_returns_false():
    client = MagicMock()
    client.post = AsyncMock(side_effect=httpx.ConnectTimeout("timeout"))

    with (
        patch.object(settings, "NOTIFICATION_API_URL", "https://notify.example.com"),
        patch("opa.services.notifications._get_gateway_client", return_value=client),
    ):
        assert await send_push("user-1", "Title", "Body") is False


@pytest.mark.asyncio
async def test_filter_notifications_by_type(client: AsyncClient, renter_id, owner_id):
    booking = await _create_booking(client, renter_id, owner_id)
    await client.patch(f"/bookings/{booking['id']}/accept", headers=auth_header(actor_token(owner_id)))
    await client.patch(
        f"/bookings/{booking['id']}/cancel", json={"reason": "Flight moved"}, headers=auth_header(actor_token(renter_id))
    )
    owner = auth_header(actor_token(owner_id))

    data = (await client.get("/notifications", params={"type": "booking_cancelled"}, headers=owner)).json()
    assert [n["type"] for n in data["notifications"]] == ["booking_cancelled"]
    # The unread count still covers every type.
    assert data["unread_count"] == 2

    response = await client.get("/notifications", params={"type": "not_a_type"}, headers=owner)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_mark_all_notifications_read(client: AsyncClient, renter_id, owner_id):
    await _create_booking(client, renter_id, owner_id)
    await _create_booking(client, renter_id, owner_id)
    owner = auth_header(actor_token(owner_id))

    response = await client.patch("/notifications/read-all", headers=owner)
    assert response.status_code == 200
    assert response.json() == {"updated": 2}

    data = (await client.get("/notifications", headers=owner)).json()
    assert data["unread_count"] == 0
    assert all(n["is_read"] for n in data["notifications"])

    response = await client.patch("/notifications/read-all", headers=owner)
    assert response.json() == {"updated": 0}
