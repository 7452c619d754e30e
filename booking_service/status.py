"""
Booking statuses, the transition table and the status-change variants.

Each StatusChange subclass carries the data that belongs to it (the OTP for an
acceptance, the reason for a rejection) and knows the customer notification it
produces, so adding a status means adding a class rather than another branch
in a string switch.
"""
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar


class BookingStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    ENROUTE = "enroute"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})

# statuses a vendor (internal or partner) may report
VENDOR_REPORTABLE = (
    BookingStatus.ACCEPTED,
    BookingStatus.REJECTED,
    BookingStatus.ENROUTE,
    BookingStatus.COMPLETED,
    BookingStatus.CANCELLED,
)

TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset(
        {BookingStatus.ACCEPTED, BookingStatus.REJECTED, BookingStatus.CANCELLED}
    ),
    BookingStatus.ACCEPTED: frozenset(
        {BookingStatus.ENROUTE, BookingStatus.COMPLETED, BookingStatus.CANCELLED}
    ),
    BookingStatus.ENROUTE: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    # back to pending only through an explicit re-match
    BookingStatus.REJECTED: frozenset({BookingStatus.CANCELLED, BookingStatus.PENDING}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}


def parse_status(value: str | None) -> BookingStatus | None:
    try:
        return BookingStatus((value or "").strip().lower())
    except ValueError:
        return None


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in TRANSITIONS[current]


@dataclass(frozen=True)
class Notice:
    title: str
    body: str
    data: dict


@dataclass(frozen=True)
class StatusChange:
    status: ClassVar[BookingStatus]

    def customer_notice(self, booking_id: int, service: str, vendor_name: str | None = None) -> Notice:
        """
        vendor_name is only passed for partner-reported updates; the texts then
        name the partner vendor.
        """
        title, body = self._texts(service, vendor_name)
        data = {
            "type": "VENDOR_UPDATE" if vendor_name else "BOOKING_STATUS_UPDATE",
            "bookingId": booking_id,
            "status": self.status.value,
        }
        data.update(self._extra_data())
        return Notice(title=title, body=body, data=data)

    def _texts(self, service: str, vendor_name: str | None) -> tuple[str, str]:
        raise NotImplementedError

    def _extra_data(self) -> dict:
        return {}


@dataclass(frozen=True)
class Accepted(StatusChange):
    status: ClassVar[BookingStatus] = BookingStatus.ACCEPTED
    otp: int

    def _texts(self, service, vendor_name):
        if vendor_name:
            return "Vendor Assigned!", f"{vendor_name} has accepted your {service} request. OTP: {self.otp}"
        return "Booking Accepted!", f"Your {service} booking has been accepted. OTP: {self.otp}"

    def _extra_data(self):
        return {"otp": self.otp}


@dataclass(frozen=True)
class Rejected(StatusChange):
    status: ClassVar[BookingStatus] = BookingStatus.REJECTED
    reason: str | None = None

    def _texts(self, service, vendor_name):
        if vendor_name:
            return "Vendor Declined", "Unfortunately, the vendor couldn't accept your request."
        return "Booking Rejected", self.reason or f"Sorry, your {service} booking was rejected."

    def _extra_data(self):
        return {"reason": self.reason or ""}


@dataclass(frozen=True)
class EnRoute(StatusChange):
    status: ClassVar[BookingStatus] = BookingStatus.ENROUTE

    def _texts(self, service, vendor_name):
        return "Vendor On The Way", f"{vendor_name or 'Your vendor'} is heading to your location."


@dataclass(frozen=True)
class Completed(StatusChange):
    status: ClassVar[BookingStatus] = BookingStatus.COMPLETED

    def _texts(self, service, vendor_name):
        if vendor_name:
            return "Service Completed", f"Your {service} service has been completed by {vendor_name}."
        return "Service Completed", f"Your {service} service has been completed. Thank you!"


@dataclass(frozen=True)
class Cancelled(StatusChange):
    status: ClassVar[BookingStatus] = BookingStatus.CANCELLED
    by_customer: bool = False

    def _texts(self, service, vendor_name):
        return "Booking Cancelled", f"Your {service} booking has been cancelled."

    def _extra_data(self):
        return {"cancelledBy": "customer" if self.by_customer else "vendor"}


def change_for(status: BookingStatus, *, otp: int | None = None, reason: str | None = None) -> StatusChange:
    if status is BookingStatus.ACCEPTED:
        if otp is None:
            raise ValueError("an acceptance needs an otp")
        return Accepted(otp=otp)
    if status is BookingStatus.REJECTED:
        return Rejected(reason=reason)
    if status is BookingStatus.ENROUTE:
        return EnRoute()
    if status is BookingStatus.COMPLETED:
        return Completed()
    if status is BookingStatus.CANCELLED:
        return Cancelled()
    raise ValueError(f"no status change for {status.value}")
