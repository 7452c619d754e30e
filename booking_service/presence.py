"""
Vendor presence: online flag and last known position per vendor.

The booking core only reads presence. upsert_presence is used by the heartbeat
consumer, which stands in for the vendor app writing its own presence.
"""
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import VendorPresence


@dataclass(frozen=True)
class PresencePoint:
    vendor_id: int
    latitude: float
    longitude: float
    address: str


async def list_online_presences(db: AsyncSession) -> list[VendorPresence]:
    result = await db.execute(
        select(VendorPresence).where(VendorPresence.online.is_(True)).order_by(VendorPresence.id)
    )
    return list(result.scalars().all())


def locate(presences: list[VendorPresence]) -> dict[int, PresencePoint]:
    """
    Map vendor id -> position for vendors with exactly one presence row that
    carries coordinates. Duplicates and rows without coordinates count as
    "no location".
    """
    seen: dict[int, int] = {}
    for p in presences:
        seen[p.vendor_id] = seen.get(p.vendor_id, 0) + 1

    points = {}
    for p in presences:
        if seen[p.vendor_id] != 1:
            continue
        if p.latitude is None or p.longitude is None:
            continue
        points[p.vendor_id] = PresencePoint(
            vendor_id=p.vendor_id,
            latitude=p.latitude,
            longitude=p.longitude,
            address=p.address or "",
        )
    return points


async def upsert_presence(
    db: AsyncSession,
    vendor_id: int,
    online: bool,
    latitude: float | None = None,
    longitude: float | None = None,
    address: str | None = None,
    last_seen: datetime | None = None,
) -> VendorPresence:
    result = await db.execute(select(VendorPresence).where(VendorPresence.vendor_id == vendor_id))
    presence = result.scalar_one_or_none()
    if not presence:
        presence = VendorPresence(vendor_id=vendor_id, address="")
        db.add(presence)

    presence.online = online
    presence.last_seen = last_seen or datetime.now(timezone.utc)
    if latitude is not None and longitude is not None:
        presence.latitude = latitude
        presence.longitude = longitude
    if address is not None:
        presence.address = address

    await db.commit()
    return presence
