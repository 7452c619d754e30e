"""
Domain events published on the `domain_events` topic exchange. Routing keys:
booking.created, booking.matched, booking.status_changed.
"""
import json
import uuid
from datetime import datetime, timezone

SOURCE = "booking-service"


def build_event(event_type: str, data: dict) -> dict:
    return {
        "event_id": str(uuid.uuid4()),
        "event_type": event_type,
        "source": SOURCE,
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "data": data,
    }


def booking_event(booking) -> dict:
    return {
        "booking_id": booking.id,
        "customer_id": booking.customer_id,
        "vendor_id": booking.vendor_id,
        "service": booking.service,
        "status": booking.status,
        "distance_km": booking.distance_km,
    }


def to_json(event: dict) -> str:
    # datetimes and other non-JSON values go out as their str()
    return json.dumps(event, separators=(",", ":"), ensure_ascii=False, default=str)
