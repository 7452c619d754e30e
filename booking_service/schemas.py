from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, FiniteFloat
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    # wire format is camelCase, python attributes stay snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---- Booking requests ----
# Fields are optional here on purpose: the lifecycle reports every missing
# field at once with the booking error envelope.

class LocationIn(CamelModel):
    latitude: FiniteFloat | None = None
    longitude: FiniteFloat | None = None
    address: str | None = None


class CreateBookingRequest(CamelModel):
    user_id: int | None = None
    selected_service: str | None = None
    job_description: str | None = None
    date: str | None = None
    time: str | None = None
    location: LocationIn | None = None


class CancelBookingRequest(CamelModel):
    user_id: int | None = None


class VendorStatusUpdate(CamelModel):
    booking_id: int
    vendor_id: int
    status: str
    rejection_reason: str | None = None


class ExternalVendorUpdate(CamelModel):
    vendor_id: Any = None
    vendor_name: str | None = None
    vendor_phone: Any = None
    vendor_address: str | None = None
    service_type: str | None = None
    assigned_order_id: Any = None
    status: str | None = None


# ---- Booking responses ----

class VendorSummary(CamelModel):
    id: int
    name: str | None = None
    distance: float


class CreatedBooking(CamelModel):
    booking_id: int
    status: str
    service: str
    date: str
    time: str
    location: str
    vendor: VendorSummary | None = None


class CreateBookingResponse(CamelModel):
    success: bool = True
    message: str
    vendor_found: bool
    data: CreatedBooking


class ExternalVendorOut(CamelModel):
    vendor_id: str
    vendor_name: str
    vendor_phone: str
    vendor_address: str
    service_type: str
    assigned_at: str
    last_updated: str


class BookingOut(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    booking_id: int = Field(validation_alias=AliasChoices("bookingId", "id"), serialization_alias="bookingId")
    customer_id: int
    vendor_id: int | None = None
    service: str
    job_description: str
    date: str
    time: str
    latitude: float
    longitude: float
    address: str
    status: str
    otp: int | None = None
    distance_km: float | None = None
    rejection_reason: str | None = None
    external_vendor: ExternalVendorOut | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class BookingEnvelope(CamelModel):
    success: bool = True
    message: str = "OK"
    data: BookingOut


class BookingListEnvelope(CamelModel):
    success: bool = True
    count: int
    data: list[BookingOut]


class RematchResponse(CamelModel):
    success: bool = True
    message: str
    vendor_found: bool
    data: BookingOut


# ---- Auth ----

class OtpRequest(CamelModel):
    phone: str = Field(min_length=1)
    name: str | None = None


class OtpVerify(CamelModel):
    phone: str = Field(min_length=1)
    otp: str = Field(min_length=1)


class TokenResponse(CamelModel):
    success: bool = True
    access_token: str
    user_id: int


class PushTokenUpdate(CamelModel):
    user_id: int
    fcm_token: str = Field(min_length=1)
