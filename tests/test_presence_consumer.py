import json
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select

from booking_service.cache import InMemoryCache
from booking_service.matcher import find_best_vendor
from booking_service.models import Vendor, VendorPresence
from booking_service.presence_consumer import PresenceConsumer

from conftest import CUSTOMER_LAT, CUSTOMER_LON


@pytest.fixture
async def vendor(sessions):
    async with sessions() as db:
        db.add(Vendor(id=5, name="Kiran", phone="+919000000005", services=["Plumbing"], push_tokens=[]))
        await db.commit()


@pytest.fixture
def consumer(sessions, clock):
    return PresenceConsumer(None, sessions, InMemoryCache(clock))


def heartbeat(event_id="evt-1", **data):
    body = {
        "vendor_id": 5,
        "online": True,
        "latitude": "12.98",
        "longitude": "77.60",
        "address": "HSR Layout",
        "last_seen": "2026-10-19T08:30:00+00:00",
    }
    body.update(data)
    return {"event_id": event_id, "event_type": "vendor.presence_updated", "data": body}


async def presence_of(sessions, vendor_id):
    async with sessions() as db:
        result = await db.execute(select(VendorPresence).where(VendorPresence.vendor_id == vendor_id))
        return result.scalar_one_or_none()


async def test_heartbeat_makes_vendor_matchable(consumer, sessions, vendor):
    assert await consumer.handle_payload(heartbeat()) is True

    presence = await presence_of(sessions, 5)
    assert presence.online is True
    assert (presence.latitude, presence.longitude) == (12.98, 77.60)
    assert presence.last_seen.hour == 8

    async with sessions() as db:
        best = await find_best_vendor(db, "plumbing", CUSTOMER_LAT, CUSTOMER_LON)
    assert best.vendor.id == 5


async def test_duplicate_event_is_ignored(consumer, sessions, vendor):
    assert await consumer.handle_payload(heartbeat()) is True
    assert await consumer.handle_payload(heartbeat(online=False)) is False
    assert (await presence_of(sessions, 5)).online is True


async def test_offline_heartbeat_keeps_last_position(consumer, sessions, vendor):
    await consumer.handle_payload(heartbeat())
    await consumer.handle_payload(heartbeat("evt-2", online=False, latitude=None, longitude=None, address=None))

    presence = await presence_of(sessions, 5)
    assert presence.online is False
    assert presence.latitude == 12.98
    assert presence.address == "HSR Layout"


@pytest.mark.parametrize(
    "payload",
    [
        {"event_type": "vendor.presence_updated", "data": {"vendor_id": 5}},
        {"event_id": "x", "event_type": "booking.created", "data": {"vendor_id": 5}},
        {"event_id": "x", "event_type": "vendor.presence_updated", "data": {}},
        heartbeat(latitude="north"),
        heartbeat(last_seen="yesterday-ish"),
        heartbeat(online="maybe"),
        heartbeat(longitude="inf"),
    ],
)
async def test_malformed_heartbeats_are_dropped(consumer, sessions, vendor, payload):
    assert await consumer.handle_payload(payload) is False
    assert await presence_of(sessions, 5) is None


async def test_handle_message_acks_and_applies(consumer, sessions, vendor):
    message = MagicMock()
    message.body = json.dumps(heartbeat()).encode("utf-8")
    message.process.return_value.__aenter__.return_value = None
    message.process.return_value.__aexit__.return_value = False

    await consumer.handle_message(message)

    message.process.assert_called_once_with(requeue=False)
    assert (await presence_of(sessions, 5)).online is True


async def test_no_broker_configured(consumer):
    assert await consumer.start_with_retry(stop_event=None) is None


@pytest.mark.parametrize("flag,expected", [("false", False), ("0", False), ("True", True), (1, True), (None, False)])
async def test_online_flag_is_parsed(consumer, sessions, vendor, flag, expected):
    assert await consumer.handle_payload(heartbeat(online=flag)) is True
    assert (await presence_of(sessions, 5)).online is expected
