from unittest.mock import AsyncMock, patch

import httpx

from booking_service.models import Booking, Customer, Vendor
from booking_service.partners import PartnerForwarder, new_booking_payload


def booking():
    return Booking(
        id=11,
        customer_id=1,
        service="Plumbing",
        job_description="Leaking tap",
        date="2026-10-21",
        time="10:30",
        latitude=12.97,
        longitude=77.59,
        address="12 MG Road",
        status="pending",
        distance_km=1.55,
    )


def customer():
    return Customer(id=1, phone="+919876543210", name=None)


def test_payload_shape():
    payload = new_booking_payload(booking(), customer())
    assert payload["orderId"] == payload["bookingId"] == 11
    assert payload["customerName"] == "Customer"
    assert payload["location"] == {"latitude": 12.97, "longitude": 77.59, "address": "12 MG Road"}


async def test_no_webhooks_configured():
    assert await PartnerForwarder([]).forward_new_booking(booking(), customer()) == 0
    assert await PartnerForwarder([]).forward_match(booking(), customer(), Vendor(id=3)) is False


async def test_forward_counts_accepted_deliveries():
    forwarder = PartnerForwarder(["http://a/hook", "http://b/hook"], secret="s3cret")
    post = AsyncMock(side_effect=[httpx.Response(201), httpx.ConnectError("refused")])

    with patch.object(httpx.AsyncClient, "post", post):
        assert await forwarder.forward_new_booking(booking(), customer()) == 1

    headers = post.await_args_list[0].kwargs["headers"]
    assert headers == {"X-Source": "customer-backend", "X-Customer-Secret": "s3cret"}


async def test_forward_match_to_vendor_backend():
    forwarder = PartnerForwarder([], vendor_backend_url="http://vendors/")
    post = AsyncMock(return_value=httpx.Response(500, text="down"))

    with patch.object(httpx.AsyncClient, "post", post):
        assert await forwarder.forward_match(booking(), customer(), Vendor(id=3)) is False

    assert post.await_args.args[0] == "http://vendors/vendor/api/new-booking"
    assert post.await_args.kwargs["json"]["vendorId"] == 3
