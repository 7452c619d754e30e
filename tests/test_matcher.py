from booking_service.matcher import Match, compare, find_best_vendor, rank, rank_vendors
from booking_service.models import Vendor
from booking_service.presence import PresencePoint

from conftest import CUSTOMER_LAT, CUSTOMER_LON, add_vendor


def candidate(vendor_id, distance, rating, completed=0):
    vendor = Vendor(id=vendor_id, name=f"V{vendor_id}", rating=rating, completed_bookings=completed)
    return Match(vendor=vendor, distance_km=distance, position=PresencePoint(vendor_id, 0.0, 0.0, ""))


def test_higher_rating_wins_within_distance_band():
    v1 = candidate(1, 5, 4.0)
    v2 = candidate(2, 6, 4.8)
    assert rank([v1, v2])[0] is v2


def test_closer_vendor_wins_outside_distance_band():
    v1 = candidate(1, 2, 3.0)
    v2 = candidate(2, 10, 5.0)
    assert rank([v2, v1])[0] is v1


def test_completed_bookings_break_ties():
    v1 = candidate(1, 3, 4.2, completed=3)
    v2 = candidate(2, 4, 4.5, completed=12)
    assert rank([v1, v2])[0] is v2


def test_full_tie_keeps_input_order():
    v1 = candidate(1, 3, 4.0, completed=5)
    v2 = candidate(2, 3, 4.0, completed=5)
    assert compare(v1, v2) == 0
    assert rank([v1, v2]) == [v1, v2]
    assert rank([v2, v1]) == [v2, v1]


async def test_no_online_vendors(sessions):
    async with sessions() as db:
        assert await find_best_vendor(db, "Plumbing", CUSTOMER_LAT, CUSTOMER_LON) is None


async def test_offline_vendor_is_ignored(sessions):
    await add_vendor(sessions, 1, 12.98, 77.60, online=False)
    async with sessions() as db:
        assert await find_best_vendor(db, "Plumbing", CUSTOMER_LAT, CUSTOMER_LON) is None


async def test_service_match_is_case_insensitive(sessions):
    await add_vendor(sessions, 1, 12.98, 77.60, services=(" plumbing ",))
    async with sessions() as db:
        best = await find_best_vendor(db, "PLUMBING", CUSTOMER_LAT, CUSTOMER_LON)
    assert best is not None
    assert best.vendor.id == 1


async def test_vendor_without_service_is_skipped(sessions):
    await add_vendor(sessions, 1, 12.98, 77.60, services=("Electrical",))
    async with sessions() as db:
        assert await find_best_vendor(db, "Plumbing", CUSTOMER_LAT, CUSTOMER_LON) is None


async def test_vendor_beyond_radius_is_skipped(sessions):
    # Chennai is ~290 km from Bengaluru
    await add_vendor(sessions, 1, 13.08, 80.27)
    async with sessions() as db:
        assert await find_best_vendor(db, "Plumbing", CUSTOMER_LAT, CUSTOMER_LON) is None
        assert await find_best_vendor(db, "Plumbing", CUSTOMER_LAT, CUSTOMER_LON, max_distance_km=500)


async def test_vendor_without_coordinates_is_skipped(sessions):
    await add_vendor(sessions, 1, None, None)
    await add_vendor(sessions, 2, 12.99, 77.61)
    async with sessions() as db:
        ranked = await rank_vendors(db, "Plumbing", CUSTOMER_LAT, CUSTOMER_LON)
    assert [m.vendor.id for m in ranked] == [2]


async def test_ranked_by_distance_then_rating(sessions):
    await add_vendor(sessions, 1, 13.05, 77.59, rating=5.0)  # ~9 km
    await add_vendor(sessions, 2, 12.98, 77.60, rating=3.0)  # ~1.5 km
    await add_vendor(sessions, 3, 12.985, 77.60, rating=4.9)  # ~2 km
    async with sessions() as db:
        ranked = await rank_vendors(db, "Plumbing", CUSTOMER_LAT, CUSTOMER_LON)
    assert [m.vendor.id for m in ranked] == [3, 2, 1]


async def test_excluded_vendors_are_not_ranked(sessions):
    await add_vendor(sessions, 1, 12.98, 77.60)
    await add_vendor(sessions, 2, 12.99, 77.61)
    async with sessions() as db:
        ranked = await rank_vendors(db, "Plumbing", CUSTOMER_LAT, CUSTOMER_LON, exclude={1})
    assert [m.vendor.id for m in ranked] == [2]


async def test_non_finite_origin_matches_nobody(sessions):
    await add_vendor(sessions, 1, 13.08, 80.27)
    async with sessions() as db:
        assert await rank_vendors(db, "Plumbing", float("nan"), CUSTOMER_LON) == []
        assert await rank_vendors(db, "Plumbing", CUSTOMER_LAT, float("inf")) == []
