from fastapi import APIRouter, Depends, Query, Response, status

from .deps import get_lifecycle
from .lifecycle import BookingLifecycle, MatchOutcome
from .schemas import (
    BookingEnvelope,
    BookingListEnvelope,
    BookingOut,
    CancelBookingRequest,
    CreateBookingRequest,
    CreateBookingResponse,
    CreatedBooking,
    RematchResponse,
    VendorStatusUpdate,
    VendorSummary,
)

router = APIRouter(prefix="/api/booking", tags=["Bookings"])


def _created(outcome: MatchOutcome) -> CreatedBooking:
    booking = outcome.booking
    vendor = None
    if outcome.match:
        vendor = VendorSummary(
            id=outcome.match.vendor.id,
            name=outcome.match.vendor.name,
            distance=outcome.match.distance_km,
        )
    return CreatedBooking(
        booking_id=booking.id,
        status=booking.status,
        service=booking.service,
        date=booking.date,
        time=booking.time,
        location=booking.address,
        vendor=vendor,
    )


@router.post("/create", response_model=CreateBookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    data: CreateBookingRequest,
    response: Response,
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
):
    outcome = await lifecycle.create_booking(data)
    if not outcome.vendor_found:
        response.status_code = status.HTTP_200_OK
        message = "Booking created but no vendor available at the moment"
    else:
        message = "Booking created and vendor notified"

    return CreateBookingResponse(message=message, vendor_found=outcome.vendor_found, data=_created(outcome))


@router.patch("/update-status", response_model=BookingEnvelope)
async def update_booking_status(
    data: VendorStatusUpdate,
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
):
    booking = await lifecycle.update_status(
        data.booking_id, data.vendor_id, data.status, data.rejection_reason
    )
    return BookingEnvelope(
        message="Booking status updated successfully",
        data=BookingOut.model_validate(booking),
    )


@router.get("/user/{customer_id}", response_model=BookingListEnvelope)
async def list_customer_bookings(customer_id: int, lifecycle: BookingLifecycle = Depends(get_lifecycle)):
    bookings = await lifecycle.list_customer_bookings(customer_id)
    return BookingListEnvelope(
        count=len(bookings),
        data=[BookingOut.model_validate(b) for b in bookings],
    )


@router.get("/history/{customer_id}", response_model=BookingListEnvelope)
async def customer_booking_history(
    customer_id: int,
    status_filter: str | None = Query(default=None, alias="status"),
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
):
    bookings = await lifecycle.list_customer_bookings(customer_id, status=status_filter, limit=None)
    return BookingListEnvelope(
        count=len(bookings),
        data=[BookingOut.model_validate(b) for b in bookings],
    )


@router.get("/vendor/{vendor_id}", response_model=BookingListEnvelope)
async def list_vendor_bookings(vendor_id: int, lifecycle: BookingLifecycle = Depends(get_lifecycle)):
    bookings = await lifecycle.list_vendor_bookings(vendor_id)
    return BookingListEnvelope(
        count=len(bookings),
        data=[BookingOut.model_validate(b) for b in bookings],
    )


@router.get("/{booking_id}", response_model=BookingEnvelope)
async def get_booking(booking_id: int, lifecycle: BookingLifecycle = Depends(get_lifecycle)):
    booking = await lifecycle.get_booking(booking_id)
    return BookingEnvelope(data=BookingOut.model_validate(booking))


@router.post("/{booking_id}/cancel", response_model=BookingEnvelope)
async def cancel_booking(
    booking_id: int,
    data: CancelBookingRequest,
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
):
    booking = await lifecycle.cancel_booking(booking_id, data.user_id)
    return BookingEnvelope(
        message="Booking cancelled successfully",
        data=BookingOut.model_validate(booking),
    )


@router.post("/{booking_id}/rematch", response_model=RematchResponse)
async def rematch_booking(booking_id: int, lifecycle: BookingLifecycle = Depends(get_lifecycle)):
    outcome = await lifecycle.rematch(booking_id)
    message = "Booking offered to another vendor" if outcome.vendor_found else "No other vendor available"
    return RematchResponse(
        message=message,
        vendor_found=outcome.vendor_found,
        data=BookingOut.model_validate(outcome.booking),
    )
