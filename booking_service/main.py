import asyncio
import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from .auth_routes import router as auth_router
from .config import LOG_LEVEL
from .deps import presence_consumer, scheduler
from .errors import BookingError, booking_error_handler, request_validation_handler
from .external_routes import router as external_router
from .middleware import RequestLoggingMiddleware
from .rabbitmq import publisher
from .routes import router as booking_router

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Booking Service")
app.add_middleware(RequestLoggingMiddleware)
app.add_exception_handler(BookingError, booking_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)

app.include_router(booking_router)
app.include_router(external_router)
app.include_router(auth_router)

_stop_event = asyncio.Event()
_consumer_task: asyncio.Task | None = None


@app.get("/health")
async def health():
    return {"status": "ok", "service": "booking-service"}


@app.on_event("startup")
async def startup():
    global _consumer_task
    _stop_event.clear()
    try:
        await publisher.connect()
    except Exception:
        logger.warning("starting without event publishing; will retry on first publish")
    _consumer_task = asyncio.create_task(presence_consumer.start_with_retry(_stop_event))


@app.on_event("shutdown")
async def shutdown():
    _stop_event.set()
    if _consumer_task:
        await asyncio.gather(_consumer_task, return_exceptions=True)
    await scheduler.shutdown()
    await presence_consumer.close()
    await publisher.close()
