from .auth import OtpLogin
from .cache import InMemoryCache, InMemoryOfferLocks, RedisCache, RedisOfferLocks
from .config import (
    FCM_PROJECT_ID,
    FCM_SERVICE_ACCOUNT_FILE,
    LOGIN_OTP_TTL_SECONDS,
    MATCH_MAX_DISTANCE_KM,
    PARTNER_WEBHOOK_SECRET,
    PARTNER_WEBHOOK_URLS,
    RABBIT_URL,
    UNMATCHED_CHECK_DELAY_SECONDS,
    VENDOR_BACKEND_URL,
    VENDOR_OFFER_TTL_SECONDS,
)
from .db import SessionLocal
from .lifecycle import BookingLifecycle
from .notifications import FcmNotifier
from .partners import PartnerForwarder
from .presence_consumer import PresenceConsumer
from .rabbitmq import publisher
from .redis_client import redis_client
from .scheduler import DeferredTasks

notifier = FcmNotifier(FCM_PROJECT_ID, FCM_SERVICE_ACCOUNT_FILE)
scheduler = DeferredTasks()

if redis_client is not None:
    login_codes = RedisCache(redis_client, "login_otp")
    processed_events = RedisCache(redis_client, "processed_event")
    offer_locks = RedisOfferLocks(redis_client)
else:
    login_codes = InMemoryCache()
    processed_events = InMemoryCache()
    offer_locks = InMemoryOfferLocks()

lifecycle = BookingLifecycle(
    SessionLocal,
    notifier,
    scheduler,
    offers=offer_locks,
    forwarder=PartnerForwarder(PARTNER_WEBHOOK_URLS, PARTNER_WEBHOOK_SECRET, VENDOR_BACKEND_URL),
    publisher=publisher,
    max_distance_km=MATCH_MAX_DISTANCE_KM,
    unmatched_check_delay=UNMATCHED_CHECK_DELAY_SECONDS,
    offer_ttl=VENDOR_OFFER_TTL_SECONDS,
)

otp_login = OtpLogin(SessionLocal, login_codes, notifier, ttl_seconds=LOGIN_OTP_TTL_SECONDS)

presence_consumer = PresenceConsumer(RABBIT_URL, SessionLocal, processed_events)


def get_lifecycle() -> BookingLifecycle:
    return lifecycle


def get_otp_login() -> OtpLogin:
    return otp_login
