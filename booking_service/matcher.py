import logging
from dataclasses import dataclass
from functools import cmp_to_key

from sqlalchemy.ext.asyncio import AsyncSession

from shared.geo import distance_km

from .directory import find_vendors_by_ids
from .models import Vendor
from .presence import PresencePoint, list_online_presences, locate

logger = logging.getLogger(__name__)

DEFAULT_MAX_DISTANCE_KM = 50

# gaps at or below these are ties for that tier
DISTANCE_BAND_KM = 2
RATING_BAND = 0.5


@dataclass(frozen=True)
class Match:
    vendor: Vendor
    distance_km: float
    position: PresencePoint

    @property
    def rating(self) -> float:
        return self.vendor.rating or 0

    @property
    def completed_bookings(self) -> int:
        return self.vendor.completed_bookings or 0


def norm(s: str) -> str:
    return (s or "").strip().lower()


def compare(a: Match, b: Match) -> int:
    """Negative when a ranks before b."""
    distance_diff = a.distance_km - b.distance_km
    if abs(distance_diff) > DISTANCE_BAND_KM:
        return -1 if distance_diff < 0 else 1

    rating_diff = b.rating - a.rating
    if abs(rating_diff) > RATING_BAND:
        return -1 if rating_diff < 0 else 1

    return b.completed_bookings - a.completed_bookings


def rank(candidates: list[Match]) -> list[Match]:
    # sorted() is stable, so full ties keep input order
    return sorted(candidates, key=cmp_to_key(compare))


async def rank_vendors(
    db: AsyncSession,
    service: str,
    latitude: float,
    longitude: float,
    max_distance_km: float = DEFAULT_MAX_DISTANCE_KM,
    exclude: set[int] | frozenset[int] = frozenset(),
) -> list[Match]:
    requested = norm(service)

    presences = await list_online_presences(db)
    if not presences:
        logger.info("match service=%s: no online vendors", requested)
        return []

    positions = locate(presences)
    online_ids = {p.vendor_id for p in presences} - set(exclude)
    vendors = await find_vendors_by_ids(db, sorted(online_ids))

    candidates = []
    for vendor in vendors:
        offered = [norm(s) for s in (vendor.services or [])]
        if requested not in offered:
            continue

        position = positions.get(vendor.id)
        if position is None:
            logger.debug("vendor %s has no usable location, skipping", vendor.id)
            continue

        distance = distance_km(latitude, longitude, position.latitude, position.longitude)
        # NaN distances fail this comparison too
        if not distance <= max_distance_km:
            continue

        candidates.append(Match(vendor=vendor, distance_km=distance, position=position))

    ranked = rank(candidates)
    logger.info(
        "match service=%s at (%s, %s): %d online, %d within %skm",
        requested,
        latitude,
        longitude,
        len(presences),
        len(ranked),
        max_distance_km,
    )
    return ranked


async def find_best_vendor(
    db: AsyncSession,
    service: str,
    latitude: float,
    longitude: float,
    max_distance_km: float = DEFAULT_MAX_DISTANCE_KM,
) -> Match | None:
    ranked = await rank_vendors(db, service, latitude, longitude, max_distance_km)
    if not ranked:
        return None

    best = ranked[0]
    logger.info(
        "best match vendor=%s distance=%skm rating=%s completed=%s",
        best.vendor.id,
        best.distance_km,
        best.rating,
        best.completed_bookings,
    )
    return best
