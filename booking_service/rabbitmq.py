"""
Booking event publisher on the `domain_events` topic exchange.

Publishing never fails a booking operation: without RABBIT_URL every call is a
no-op, and broker errors are logged and dropped. The connection is opened at
startup and lazily re-opened on the next publish after a failure.
"""
import logging

import aio_pika

from .config import RABBIT_URL
from .events import booking_event, build_event, to_json

logger = logging.getLogger(__name__)

EXCHANGE_NAME = "domain_events"


class RabbitPublisher:
    def __init__(self, url: str | None = RABBIT_URL):
        self.url = url
        self._connection: aio_pika.abc.AbstractRobustConnection | None = None
        self._exchange: aio_pika.abc.AbstractExchange | None = None

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    @property
    def connected(self) -> bool:
        return self._exchange is not None and self._connection is not None and not self._connection.is_closed

    async def connect(self):
        if not self.enabled or self.connected:
            return

        try:
            self._connection = await aio_pika.connect_robust(self.url)
            channel = await self._connection.channel()
            self._exchange = await channel.declare_exchange(EXCHANGE_NAME, aio_pika.ExchangeType.TOPIC, durable=True)
        except Exception as e:
            logger.warning("RabbitMQ connect to %s failed: %s", EXCHANGE_NAME, e)
            self._reset()
            raise

    async def publish_booking(self, event_type: str, booking) -> None:
        """Routing key is the event type, e.g. booking.status_changed."""
        await self.publish(event_type, to_json(build_event(event_type, booking_event(booking))))

    async def publish(self, routing_key: str, body: str) -> None:
        if not self.enabled:
            return

        try:
            await self.connect()
            await self._exchange.publish(
                aio_pika.Message(
                    body=body.encode("utf-8"),
                    content_type="application/json",
                    delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
                ),
                routing_key=routing_key,
            )
        except Exception as e:
            logger.warning("dropping %s event: %s", routing_key, e)

    async def close(self):
        try:
            if self._connection and not self._connection.is_closed:
                await self._connection.close()
        finally:
            self._reset()

    def _reset(self):
        self._connection = None
        self._exchange = None


publisher = RabbitPublisher()
