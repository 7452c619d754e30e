"""
Consumes vendor heartbeats from the domain_events exchange and keeps the
presence table current. Vendor apps publish `vendor.presence_updated` with
{vendor_id, online, latitude, longitude, address, last_seen}.
"""
import asyncio
import json
import logging
import math

import aio_pika
from aio_pika import ExchangeType
from dateutil import parser
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .cache import ExpiringCache
from .presence import upsert_presence
from .rabbitmq import EXCHANGE_NAME

logger = logging.getLogger(__name__)

QUEUE_NAME = "booking_service_presence_events"
ROUTING_KEYS = ["vendor.presence_updated"]

IDEMPOTENCY_TTL_SECONDS = 60 * 60  # 1 hour
RETRY_SECONDS = 5


_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off", ""}


def _as_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return bool(value)
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _as_float(value) -> float | None:
    if value is None or value == "":
        return None
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"not a coordinate: {value!r}")
    return number


class PresenceConsumer:
    def __init__(
        self,
        rabbit_url: str | None,
        session_factory: async_sessionmaker[AsyncSession],
        processed: ExpiringCache,
    ):
        self.rabbit_url = rabbit_url
        self._sessions = session_factory
        self._processed = processed
        self._connection = None

    async def _already_processed(self, event_id: str) -> bool:
        return not await self._processed.add_if_absent(event_id, "1", IDEMPOTENCY_TTL_SECONDS)

    async def handle_payload(self, payload: dict) -> bool:
        """Apply one heartbeat; False when it was dropped."""
        event_id = payload.get("event_id")
        event_type = payload.get("event_type")
        data = payload.get("data") or {}

        if not event_id or event_type not in ROUTING_KEYS:
            return False

        vendor_id = data.get("vendor_id")
        if vendor_id is None:
            return False

        try:
            vendor_id = int(vendor_id)
            latitude = _as_float(data.get("latitude"))
            longitude = _as_float(data.get("longitude"))
            online = _as_bool(data.get("online"))
            last_seen = parser.isoparse(data["last_seen"]) if data.get("last_seen") else None
        except (TypeError, ValueError):
            logger.warning("dropping malformed heartbeat %s", event_id)
            return False

        if await self._already_processed(event_id):
            return False

        async with self._sessions() as db:
            await upsert_presence(
                db,
                vendor_id,
                online=online,
                latitude=latitude,
                longitude=longitude,
                address=data.get("address"),
                last_seen=last_seen,
            )
        return True

    async def handle_message(self, message: aio_pika.abc.AbstractIncomingMessage):
        async with message.process(requeue=False):
            try:
                payload = json.loads(message.body.decode("utf-8"))
            except ValueError:
                return
            await self.handle_payload(payload)

    async def _connect_and_consume(self):
        connection = await aio_pika.connect_robust(self.rabbit_url)
        channel = await connection.channel()
        await channel.set_qos(prefetch_count=50)

        exchange = await channel.declare_exchange(EXCHANGE_NAME, ExchangeType.TOPIC, durable=True)
        queue = await channel.declare_queue(QUEUE_NAME, durable=True)
        for rk in ROUTING_KEYS:
            await queue.bind(exchange, routing_key=rk)

        await queue.consume(self.handle_message)
        logger.info("presence consumer started")
        return connection

    async def start_with_retry(self, stop_event: asyncio.Event):
        if not self.rabbit_url:
            return None

        while not stop_event.is_set():
            try:
                self._connection = await self._connect_and_consume()
                return self._connection
            except Exception as e:
                logger.warning("presence consumer connect failed, retrying in %ss: %s", RETRY_SECONDS, e)
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=RETRY_SECONDS)
                except asyncio.TimeoutError:
                    continue
        return None

    async def close(self):
        if self._connection and not self._connection.is_closed:
            await self._connection.close()
        self._connection = None
