import pytest

from booking_service.status import (
    Accepted,
    BookingStatus,
    Cancelled,
    Rejected,
    can_transition,
    change_for,
    parse_status,
)


def test_parse_status():
    assert parse_status(" Accepted ") is BookingStatus.ACCEPTED
    assert parse_status("arrived") is None
    assert parse_status(None) is None


@pytest.mark.parametrize(
    "current,target,allowed",
    [
        ("pending", "accepted", True),
        ("pending", "enroute", False),
        ("accepted", "enroute", True),
        ("enroute", "completed", True),
        ("rejected", "pending", True),
        ("rejected", "accepted", False),
        ("completed", "cancelled", False),
        ("cancelled", "pending", False),
    ],
)
def test_transitions(current, target, allowed):
    assert can_transition(BookingStatus(current), BookingStatus(target)) is allowed


def test_accepted_notice_carries_otp():
    notice = Accepted(otp=4321).customer_notice(9, "Plumbing")
    assert notice.title == "Booking Accepted!"
    assert notice.data == {"type": "BOOKING_STATUS_UPDATE", "bookingId": 9, "status": "accepted", "otp": 4321}


def test_partner_notice_names_vendor():
    notice = Accepted(otp=1000).customer_notice(9, "Plumbing", vendor_name="QuickFix")
    assert notice.title == "Vendor Assigned!"
    assert notice.body.startswith("QuickFix has accepted")
    assert notice.data["type"] == "VENDOR_UPDATE"


def test_rejection_falls_back_to_generic_text():
    assert Rejected().customer_notice(1, "Cleaning").body == "Sorry, your Cleaning booking was rejected."
    assert Cancelled(by_customer=True).customer_notice(1, "Cleaning").data["cancelledBy"] == "customer"


def test_change_for():
    assert change_for(BookingStatus.ACCEPTED, otp=1234) == Accepted(otp=1234)
    with pytest.raises(ValueError):
        change_for(BookingStatus.ACCEPTED)
    with pytest.raises(ValueError):
        change_for(BookingStatus.PENDING)
