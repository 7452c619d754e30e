from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)

from .db import Base


def _utcnow():
    return datetime.now(timezone.utc)


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True)
    phone = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=True)
    push_token = Column(String, nullable=True)


class Vendor(Base):
    __tablename__ = "vendors"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=True)
    phone = Column(String, unique=True, nullable=False)
    services = Column(JSON, nullable=False, default=list)
    push_tokens = Column(JSON, nullable=False, default=list)
    rating = Column(Float, nullable=False, default=0)
    total_bookings = Column(Integer, nullable=False, default=0)
    completed_bookings = Column(Integer, nullable=False, default=0)


class VendorPresence(Base):
    __tablename__ = "vendor_presences"

    id = Column(Integer, primary_key=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), unique=True, nullable=False)
    online = Column(Boolean, nullable=False, default=False, index=True)
    last_seen = Column(DateTime(timezone=True), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    address = Column(String, nullable=False, default="")


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)

    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=True, index=True)

    service = Column(String, nullable=False)
    job_description = Column(Text, nullable=False)
    date = Column(String, nullable=False)
    time = Column(String, nullable=False)

    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    address = Column(String, nullable=False)

    status = Column(String, nullable=False, index=True)  # see status.BookingStatus
    otp = Column(Integer, nullable=True)
    distance_km = Column(Float, nullable=True)
    rejection_reason = Column(String, nullable=True)
    external_vendor = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
