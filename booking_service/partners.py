import asyncio
import logging
from datetime import datetime, timezone

import httpx

from .models import Booking, Customer, Vendor

logger = logging.getLogger(__name__)

HTTP_TIMEOUT = 15.0


def new_booking_payload(booking: Booking, customer: Customer) -> dict:
    location = {
        "latitude": booking.latitude,
        "longitude": booking.longitude,
        "address": booking.address,
    }
    return {
        "orderId": booking.id,
        "bookingId": booking.id,
        "customerId": customer.id,
        "customerName": customer.name or "Customer",
        "customerPhone": str(customer.phone),
        "service": booking.service,
        "description": booking.job_description,
        "date": booking.date,
        "time": booking.time,
        "location": location,
        "status": booking.status,
        "createdAt": datetime.now(timezone.utc).isoformat(),
    }


class PartnerForwarder:
    """
    Pushes new bookings to partner backends. Every call is best-effort:
    transport errors and non-2xx answers are logged and swallowed.
    """

    def __init__(
        self,
        webhook_urls: list[str],
        secret: str | None = None,
        vendor_backend_url: str | None = None,
        timeout: float = HTTP_TIMEOUT,
    ):
        self.webhook_urls = list(webhook_urls)
        self.secret = secret
        self.vendor_backend_url = vendor_backend_url.rstrip("/") if vendor_backend_url else None
        self.timeout = timeout

    def _headers(self) -> dict:
        headers = {"X-Source": "customer-backend"}
        if self.secret:
            headers["X-Customer-Secret"] = self.secret
        return headers

    async def _post(self, client: httpx.AsyncClient, url: str, payload: dict) -> bool:
        try:
            resp = await client.post(url, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            logger.warning("partner forward to %s failed: %s", url, e)
            return False
        if resp.status_code >= 300:
            logger.warning("partner %s answered %s: %s", url, resp.status_code, resp.text[:200])
            return False
        return True

    async def forward_new_booking(self, booking: Booking, customer: Customer) -> int:
        """Send to every configured webhook concurrently; return how many accepted it."""
        if not self.webhook_urls:
            return 0
        payload = new_booking_payload(booking, customer)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            results = await asyncio.gather(
                *[self._post(client, url, payload) for url in self.webhook_urls],
                return_exceptions=True,
            )
        delivered = sum(1 for r in results if r is True)
        for url, r in zip(self.webhook_urls, results):
            if isinstance(r, BaseException):
                logger.warning("partner forward to %s raised: %s", url, r)
        return delivered

    async def forward_match(self, booking: Booking, customer: Customer, vendor: Vendor) -> bool:
        if not self.vendor_backend_url:
            return False
        payload = new_booking_payload(booking, customer)
        payload.update({"vendorId": vendor.id, "distance": booking.distance_km})
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await self._post(client, f"{self.vendor_backend_url}/vendor/api/new-booking", payload)
