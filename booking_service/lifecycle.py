"""
Booking lifecycle: creation and matching, vendor status updates, customer
cancellation, partner callbacks, explicit re-matching and the deferred
"still no vendor" check.

Primary state changes (validation, the booking row itself) fail the whole
operation. Everything that accompanies them (push notifications, partner
webhooks, domain events, offer locks, vendor counters) is best-effort and only
ever logs.
"""
import logging
import math
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .cache import OfferLocks
from .directory import find_customer_by_id, find_vendor_by_id, increment_vendor_stats
from .errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from .matcher import DEFAULT_MAX_DISTANCE_KM, Match, rank_vendors
from .models import Booking, Customer
from .notifications import Notifier, safe_notify, safe_notify_many
from .partners import PartnerForwarder
from .rabbitmq import RabbitPublisher
from .scheduler import DeferredTasks
from .schemas import CreateBookingRequest, ExternalVendorUpdate
from .status import (
    TERMINAL,
    VENDOR_REPORTABLE,
    BookingStatus,
    Cancelled,
    StatusChange,
    can_transition,
    change_for,
    parse_status,
)

logger = logging.getLogger(__name__)

UNMATCHED_CHECK_DELAY_SECONDS = 60
VENDOR_OFFER_TTL_SECONDS = 120
CUSTOMER_HISTORY_LIMIT = 50


def generate_otp() -> int:
    return random.randint(1000, 9999)


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def missing_booking_fields(data: CreateBookingRequest) -> list[str]:
    missing = [
        name
        for name, value in (
            ("userId", data.user_id),
            ("selectedService", data.selected_service),
            ("jobDescription", data.job_description),
            ("date", data.date),
            ("time", data.time),
        )
        if _blank(value)
    ]
    location = data.location
    if location is None:
        missing.append("location")
    else:
        for name in ("latitude", "longitude", "address"):
            if _blank(getattr(location, name)):
                missing.append(f"location.{name}")
    return missing


def invalid_coordinates(data: CreateBookingRequest) -> list[str]:
    invalid = []
    for name in ("latitude", "longitude"):
        try:
            value = float(getattr(data.location, name))
        except (TypeError, ValueError):
            invalid.append(f"location.{name}")
            continue
        if not math.isfinite(value):
            invalid.append(f"location.{name}")
    return invalid


@dataclass
class MatchOutcome:
    booking: Booking
    match: Match | None

    @property
    def vendor_found(self) -> bool:
        return self.match is not None


class BookingLifecycle:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: Notifier,
        scheduler: DeferredTasks,
        offers: OfferLocks | None = None,
        forwarder: PartnerForwarder | None = None,
        publisher: RabbitPublisher | None = None,
        max_distance_km: float = DEFAULT_MAX_DISTANCE_KM,
        unmatched_check_delay: float = UNMATCHED_CHECK_DELAY_SECONDS,
        offer_ttl: float = VENDOR_OFFER_TTL_SECONDS,
        otp_generator: Callable[[], int] = generate_otp,
    ):
        self._sessions = session_factory
        self.notifier = notifier
        self.scheduler = scheduler
        self.offers = offers
        self.forwarder = forwarder
        self.publisher = publisher
        self.max_distance_km = max_distance_km
        self.unmatched_check_delay = unmatched_check_delay
        self.offer_ttl = offer_ttl
        self._otp = otp_generator

    # ---- creation / matching ----

    async def create_booking(self, data: CreateBookingRequest) -> MatchOutcome:
        missing = missing_booking_fields(data)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", fields=missing)
        invalid = invalid_coordinates(data)
        if invalid:
            raise ValidationError(f"Invalid coordinates: {', '.join(invalid)}", fields=invalid)

        async with self._sessions() as db:
            customer = await find_customer_by_id(db, data.user_id)
            if not customer:
                raise NotFoundError("Customer not found")

            booking = Booking(
                customer_id=customer.id,
                service=data.selected_service.strip(),
                job_description=data.job_description,
                date=data.date,
                time=data.time,
                latitude=float(data.location.latitude),
                longitude=float(data.location.longitude),
                address=data.location.address,
                status=BookingStatus.PENDING.value,
            )
            db.add(booking)
            await db.commit()
            logger.info("booking %s created for customer %s (%s)", booking.id, customer.id, booking.service)

            await self._publish("booking.created", booking)
            if self.forwarder:
                await self._best_effort("partner forward", self.forwarder.forward_new_booking(booking, customer))

            match = await self._match(db, booking)
            if match:
                booking.vendor_id = match.vendor.id
                booking.distance_km = match.distance_km
                await db.commit()

        if match:
            await self._announce_match(booking, customer, match)
        else:
            logger.info("booking %s: no vendor available", booking.id)
            await safe_notify(
                self.notifier,
                customer.push_token,
                "No Vendor Available",
                f"Sorry, no vendor is available for {booking.service} right now. "
                "We'll notify you when one becomes available.",
                {"type": "BOOKING_STATUS", "bookingId": booking.id, "status": booking.status},
            )

        self._schedule_unmatched_check(booking.id)
        return MatchOutcome(booking=booking, match=match)

    async def rematch(self, booking_id: int) -> MatchOutcome:
        """
        Offer a rejected (or never matched) booking to another vendor. Nothing
        changes when no other vendor is available.
        """
        async with self._sessions() as db:
            booking = await self._get(db, booking_id)
            status = BookingStatus(booking.status)
            unmatched = status is BookingStatus.PENDING and booking.vendor_id is None
            if status is not BookingStatus.REJECTED and not unmatched:
                raise ConflictError(f"Cannot re-match booking with status: {status.value}")

            customer = await find_customer_by_id(db, booking.customer_id)
            previous_vendor = booking.vendor_id
            exclude = {previous_vendor} if previous_vendor else set()

            match = await self._match(db, booking, exclude)
            if match is None:
                logger.info("booking %s: re-match found no vendor", booking.id)
                return MatchOutcome(booking=booking, match=None)

            booking.vendor_id = match.vendor.id
            booking.distance_km = match.distance_km
            booking.status = BookingStatus.PENDING.value
            booking.otp = None
            booking.rejection_reason = None
            await db.commit()

        if previous_vendor:
            await self._release_offer(previous_vendor, booking.id)
        await self._publish("booking.status_changed", booking)
        await self._announce_match(booking, customer, match)
        self._schedule_unmatched_check(booking.id)
        return MatchOutcome(booking=booking, match=match)

    async def _match(self, db: AsyncSession, booking: Booking, exclude: set[int] | None = None) -> Match | None:
        ranked = await rank_vendors(
            db,
            booking.service,
            booking.latitude,
            booking.longitude,
            self.max_distance_km,
            exclude=frozenset(exclude or ()),
        )
        for candidate in ranked:
            if await self._claim_offer(candidate.vendor.id, booking.id):
                return candidate
            logger.info("vendor %s is holding another offer, trying next", candidate.vendor.id)
        return None

    async def _announce_match(self, booking: Booking, customer: Customer, match: Match) -> None:
        vendor = match.vendor
        logger.info("booking %s matched to vendor %s at %skm", booking.id, vendor.id, match.distance_km)
        await self._publish("booking.matched", booking)

        if self.forwarder:
            await self._best_effort("vendor backend forward", self.forwarder.forward_match(booking, customer, vendor))

        await safe_notify_many(
            self.notifier,
            vendor.push_tokens,
            "New Service Request",
            f"{customer.name or 'A customer'} needs {booking.service} at {booking.time} on {booking.date}. "
            f"Distance: {match.distance_km}km",
            {
                "type": "NEW_BOOKING",
                "bookingId": booking.id,
                "vendorId": vendor.id,
                "customerId": customer.id,
                "customerName": customer.name or "Customer",
                "customerPhone": customer.phone,
                "service": booking.service,
                "jobDescription": booking.job_description,
                "date": booking.date,
                "time": booking.time,
                "address": booking.address,
                "latitude": booking.latitude,
                "longitude": booking.longitude,
                "distance": match.distance_km,
            },
        )
        await safe_notify(
            self.notifier,
            customer.push_token,
            "Booking Confirmed",
            f"Your {booking.service} request for {booking.date} at {booking.time} has been sent to a vendor. "
            "Waiting for acceptance.",
            {
                "type": "BOOKING_CONFIRMATION",
                "bookingId": booking.id,
                "service": booking.service,
                "vendorName": vendor.name or "",
            },
        )

    # ---- vendor and customer actions ----

    async def update_status(
        self, booking_id: int, vendor_id: int, status: str, reason: str | None = None
    ) -> Booking:
        target = parse_status(status)
        if target not in VENDOR_REPORTABLE:
            allowed = ", ".join(s.value for s in VENDOR_REPORTABLE)
            raise ValidationError(f"Invalid status. Must be one of: {allowed}", fields=["status"])

        async with self._sessions() as db:
            booking = await self._get(db, booking_id)
            if booking.vendor_id is None:
                raise ConflictError("Booking has no assigned vendor")
            if booking.vendor_id != vendor_id:
                raise AuthorizationError("Vendor is not assigned to this booking")

            current = BookingStatus(booking.status)
            if current is BookingStatus.ACCEPTED and target is BookingStatus.ACCEPTED:
                # repeated accept keeps the issued OTP and sends nothing new
                logger.info("booking %s already accepted by vendor %s", booking.id, vendor_id)
                return booking
            if not can_transition(current, target):
                raise ConflictError(f"Cannot change booking from {current.value} to {target.value}")

            if target is BookingStatus.ACCEPTED:
                booking.otp = self._otp()
            if target is BookingStatus.REJECTED:
                booking.rejection_reason = reason
            booking.status = target.value
            await db.commit()
            logger.info("booking %s: %s -> %s by vendor %s", booking.id, current.value, target.value, vendor_id)

            customer = await find_customer_by_id(db, booking.customer_id)
            vendor = await find_vendor_by_id(db, vendor_id)

        change = change_for(target, otp=booking.otp, reason=reason)
        await self._settle(booking, change)
        await self._notify_customer(booking, customer, change)

        if target is BookingStatus.ACCEPTED and vendor:
            await safe_notify_many(
                self.notifier,
                vendor.push_tokens,
                "Booking Confirmed",
                f"You accepted booking #{booking.id} for {booking.service}. "
                "Ask the customer for the OTP to start the job.",
                {"type": "BOOKING_ACCEPTED", "bookingId": booking.id, "status": booking.status},
            )
        if target is BookingStatus.COMPLETED:
            await self._bump_vendor_stats(vendor_id)
        return booking

    async def cancel_booking(self, booking_id: int, customer_id: int | None) -> Booking:
        if customer_id is None:
            raise ValidationError("Missing required fields: userId", fields=["userId"])

        async with self._sessions() as db:
            booking = await self._get(db, booking_id)
            if booking.customer_id != customer_id:
                raise AuthorizationError("Unauthorized to cancel this booking")

            current = BookingStatus(booking.status)
            if current in TERMINAL:
                raise ConflictError(f"Cannot cancel booking with status: {current.value}")

            booking.status = BookingStatus.CANCELLED.value
            await db.commit()
            logger.info("booking %s cancelled by customer %s (was %s)", booking.id, customer_id, current.value)

            vendor = await find_vendor_by_id(db, booking.vendor_id) if booking.vendor_id else None

        await self._settle(booking, Cancelled(by_customer=True))
        if vendor:
            await safe_notify_many(
                self.notifier,
                vendor.push_tokens,
                "Booking Cancelled",
                f"Booking #{booking.id} for {booking.service} was cancelled by the customer.",
                {"type": "BOOKING_CANCELLED", "bookingId": booking.id, "status": booking.status},
            )
        return booking

    async def apply_external_update(self, update: ExternalVendorUpdate) -> Booking:
        """
        A partner vendor system reports progress on a booking it took over.
        The status is set directly; only terminal bookings refuse to move.
        """
        missing = [
            name
            for name, value in (
                ("vendorId", update.vendor_id),
                ("vendorName", update.vendor_name),
                ("vendorPhone", update.vendor_phone),
                ("vendorAddress", update.vendor_address),
                ("serviceType", update.service_type),
                ("assignedOrderId", update.assigned_order_id),
                ("status", update.status),
            )
            if _blank(value)
        ]
        if missing:
            raise ValidationError(f"Required fields missing: {', '.join(missing)}", fields=missing)

        target = parse_status(update.status)
        if target not in VENDOR_REPORTABLE:
            allowed = ", ".join(s.value for s in VENDOR_REPORTABLE)
            raise ValidationError(f"Status must be one of: {allowed}", fields=["status"])

        try:
            order_id = int(str(update.assigned_order_id).strip())
        except ValueError:
            raise ValidationError("assignedOrderId must be a booking id", fields=["assignedOrderId"])

        async with self._sessions() as db:
            booking = await db.get(Booking, order_id)
            if not booking:
                raise NotFoundError(f"No booking found with ID: {order_id}")

            current = BookingStatus(booking.status)
            if current in TERMINAL:
                if target is current:
                    return booking
                raise ConflictError(f"Cannot change booking with status: {current.value}")

            now = datetime.now(timezone.utc).isoformat()
            previous = booking.external_vendor or {}
            booking.external_vendor = {
                "vendorId": str(update.vendor_id),
                "vendorName": str(update.vendor_name),
                "vendorPhone": str(update.vendor_phone),
                "vendorAddress": str(update.vendor_address),
                "serviceType": str(update.service_type),
                "assignedAt": previous.get("assignedAt") or now,
                "lastUpdated": now,
            }
            if target is BookingStatus.ACCEPTED and booking.otp is None:
                booking.otp = self._otp()
            booking.status = target.value
            await db.commit()
            logger.info(
                "booking %s: partner vendor %s reported %s (was %s)",
                booking.id,
                update.vendor_id,
                target.value,
                current.value,
            )

            customer = await find_customer_by_id(db, booking.customer_id)

        change = change_for(target, otp=booking.otp)
        await self._settle(booking, change)
        await self._notify_customer(booking, customer, change, vendor_name=str(update.vendor_name))
        return booking

    # ---- queries ----

    async def get_booking(self, booking_id: int) -> Booking:
        async with self._sessions() as db:
            return await self._get(db, booking_id)

    async def list_customer_bookings(
        self,
        customer_id: int,
        status: str | None = None,
        limit: int | None = CUSTOMER_HISTORY_LIMIT,
    ) -> list[Booking]:
        """Newest first; `status` narrows the history to one status."""
        query = select(Booking).where(Booking.customer_id == customer_id)
        if status:
            wanted = parse_status(status)
            if wanted is None:
                allowed = ", ".join(s.value for s in BookingStatus)
                raise ValidationError(f"Invalid status. Must be one of: {allowed}", fields=["status"])
            query = query.where(Booking.status == wanted.value)
        return await self._newest_first(query, limit)

    async def list_vendor_bookings(self, vendor_id: int) -> list[Booking]:
        bookings = await self._newest_first(select(Booking).where(Booking.vendor_id == vendor_id), None)
        if not bookings:
            raise NotFoundError("No bookings found for this vendor")
        return bookings

    async def _newest_first(self, query, limit: int | None) -> list[Booking]:
        query = query.order_by(Booking.created_at.desc(), Booking.id.desc())
        if limit is not None:
            query = query.limit(limit)
        async with self._sessions() as db:
            result = await db.execute(query)
            return list(result.scalars().all())

    # ---- deferred check ----

    @staticmethod
    def unmatched_check_key(booking_id: int) -> str:
        return f"unmatched-check:{booking_id}"

    def _schedule_unmatched_check(self, booking_id: int) -> None:
        self.scheduler.schedule(
            self.unmatched_check_key(booking_id),
            self.unmatched_check_delay,
            lambda: self.check_unmatched(booking_id),
        )

    async def check_unmatched(self, booking_id: int) -> bool:
        """Tell the customer we are still searching if nobody accepted yet."""
        async with self._sessions() as db:
            booking = await db.get(Booking, booking_id)
            if not booking or booking.status != BookingStatus.PENDING.value:
                return False
            customer = await find_customer_by_id(db, booking.customer_id)

        await safe_notify(
            self.notifier,
            customer.push_token if customer else None,
            "Vendor Not Found",
            f"Sorry, no vendor has accepted your {booking.service} request yet. We're still searching...",
            {
                "type": "VENDOR_NOT_FOUND",
                "bookingId": booking.id,
                "status": booking.status,
                "service": booking.service,
            },
        )
        return True

    # ---- helpers ----

    async def _get(self, db: AsyncSession, booking_id: int) -> Booking:
        booking = await db.get(Booking, booking_id)
        if not booking:
            raise NotFoundError("Booking not found")
        return booking

    async def _settle(self, booking: Booking, change: StatusChange) -> None:
        """Side effects shared by every transition away from pending."""
        self.scheduler.cancel(self.unmatched_check_key(booking.id))
        if booking.vendor_id:
            await self._release_offer(booking.vendor_id, booking.id)
        await self._publish("booking.status_changed", booking)

    async def _notify_customer(
        self,
        booking: Booking,
        customer: Customer | None,
        change: StatusChange,
        vendor_name: str | None = None,
    ) -> None:
        notice = change.customer_notice(booking.id, booking.service, vendor_name)
        await safe_notify(
            self.notifier,
            customer.push_token if customer else None,
            notice.title,
            notice.body,
            notice.data,
        )

    async def _claim_offer(self, vendor_id: int, booking_id: int) -> bool:
        if self.offers is None:
            return True
        try:
            return await self.offers.acquire(vendor_id, booking_id, self.offer_ttl)
        except Exception as e:
            logger.warning("offer lock for vendor %s unavailable, matching without it: %s", vendor_id, e)
            return True

    async def _release_offer(self, vendor_id: int, booking_id: int) -> None:
        if self.offers is None:
            return
        await self._best_effort(f"offer release for vendor {vendor_id}", self.offers.release(vendor_id, booking_id))

    async def _bump_vendor_stats(self, vendor_id: int) -> None:
        async with self._sessions() as db:
            await self._best_effort(f"stats increment for vendor {vendor_id}", increment_vendor_stats(db, vendor_id))

    async def _publish(self, event_type: str, booking: Booking) -> None:
        if self.publisher is None:
            return
        await self._best_effort(event_type, self.publisher.publish_booking(event_type, booking))

    async def _best_effort(self, what: str, awaitable):
        try:
            return await awaitable
        except Exception as e:
            logger.warning("%s failed: %s", what, e)
            return None