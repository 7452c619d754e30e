import os

os.environ.setdefault("BOOKING_DB", "sqlite+aiosqlite://")
os.environ.pop("REDIS_URL", None)
os.environ.pop("RABBIT_URL", None)

import itertools

import httpx
import pytest

from booking_service.cache import InMemoryCache, InMemoryOfferLocks
from booking_service.lifecycle import BookingLifecycle
from booking_service.auth import OtpLogin
from booking_service.models import Customer, Vendor, VendorPresence
from booking_service.notifications import NotificationError, Notifier
from shared.database import create_tables, get_engine, get_session

CUSTOMER_LAT, CUSTOMER_LON = 12.97, 77.59


class RecordingNotifier(Notifier):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    async def notify(self, target, title, body, data=None):
        if self.fail:
            raise NotificationError("push backend down")
        self.sent.append({"target": target, "title": title, "body": body, "data": dict(data or {})})
        return f"msg-{len(self.sent)}"

    def titles(self, target=None):
        return [m["title"] for m in self.sent if target is None or m["target"] == target]


class ManualScheduler:
    """Holds deferred callbacks until a test fires them."""

    def __init__(self):
        self.tasks = {}
        self.delays = {}

    def schedule(self, key, delay_seconds, callback):
        self.tasks[key] = callback
        self.delays[key] = delay_seconds

    def cancel(self, key):
        self.delays.pop(key, None)
        return self.tasks.pop(key, None) is not None

    def pending(self):
        return sorted(self.tasks)

    async def fire(self, key):
        callback = self.tasks.pop(key)
        self.delays.pop(key, None)
        return await callback()

    async def shutdown(self):
        self.tasks.clear()


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def engine():
    engine = get_engine("sqlite+aiosqlite://")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessions(engine):
    return get_session(engine)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def offer_locks(clock):
    return InMemoryOfferLocks(clock)


@pytest.fixture
def lifecycle(sessions, notifier, scheduler, offer_locks):
    return BookingLifecycle(
        sessions,
        notifier,
        scheduler,
        offers=offer_locks,
        otp_generator=itertools.count(4321).__next__,
    )


@pytest.fixture
def login_codes(clock):
    return InMemoryCache(clock)


@pytest.fixture
def otp_login(sessions, login_codes, notifier):
    return OtpLogin(sessions, login_codes, notifier, ttl_seconds=300, code_generator=lambda: 2468)


async def add_vendor(sessions, vendor_id, lat, lon, services=("Plumbing",), rating=4.0, completed=0, online=True):
    async with sessions() as db:
        db.add(
            Vendor(
                id=vendor_id,
                name=f"Vendor {vendor_id}",
                phone=f"+9190000000{vendor_id:02d}",
                services=list(services),
                push_tokens=[f"vendor-{vendor_id}-token"],
                rating=rating,
                total_bookings=completed,
                completed_bookings=completed,
            )
        )
        await db.commit()
        db.add(
            VendorPresence(
                vendor_id=vendor_id,
                online=online,
                latitude=lat,
                longitude=lon,
                address=f"Depot {vendor_id}",
            )
        )
        await db.commit()


@pytest.fixture
async def customers(sessions):
    async with sessions() as db:
        db.add_all(
            [
                Customer(id=1, phone="+919876543210", name="Asha", push_token="customer-1-token"),
                Customer(id=2, phone="+919876543211", name="Ravi", push_token="customer-2-token"),
            ]
        )
        await db.commit()


@pytest.fixture
async def plumber(sessions):
    await add_vendor(sessions, 1, 12.98, 77.60)


@pytest.fixture
async def client(lifecycle, otp_login):
    from booking_service.deps import get_lifecycle, get_otp_login
    from booking_service.main import app

    app.dependency_overrides[get_lifecycle] = lambda: lifecycle
    app.dependency_overrides[get_otp_login] = lambda: otp_login
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


def booking_request(**overrides):
    payload = {
        "userId": 1,
        "selectedService": "Plumbing",
        "jobDescription": "Kitchen sink is leaking",
        "date": "2026-10-21",
        "time": "10:30",
        "location": {"latitude": CUSTOMER_LAT, "longitude": CUSTOMER_LON, "address": "12 MG Road"},
    }
    payload.update(overrides)
    return payload
