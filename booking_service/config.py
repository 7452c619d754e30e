import os

DATABASE_URL = os.getenv("BOOKING_DB")
if not DATABASE_URL:
    raise RuntimeError("BOOKING_DB environment variable is not set")

REDIS_URL = os.getenv("REDIS_URL")  # optional; in-memory caches are used without it
RABBIT_URL = os.getenv("RABBIT_URL")  # optional in dev, required if you want events

VENDOR_SECRET = os.getenv("VENDOR_SECRET") or "vendor-secret-key-2024"

JWT_SECRET = os.getenv("JWT_SECRET") or "dev-secret"
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM") or "HS256"
ACCESS_TOKEN_TTL_SECONDS = int(os.getenv("ACCESS_TOKEN_TTL_SECONDS") or "86400")

MATCH_MAX_DISTANCE_KM = float(os.getenv("MATCH_MAX_DISTANCE_KM") or "50")
UNMATCHED_CHECK_DELAY_SECONDS = float(os.getenv("UNMATCHED_CHECK_DELAY_SECONDS") or "60")
VENDOR_OFFER_TTL_SECONDS = int(os.getenv("VENDOR_OFFER_TTL_SECONDS") or "120")
LOGIN_OTP_TTL_SECONDS = int(os.getenv("LOGIN_OTP_TTL_SECONDS") or "300")

PARTNER_WEBHOOK_URLS = [
    u.strip() for u in (os.getenv("PARTNER_WEBHOOK_URLS") or "").split(",") if u.strip()
]
PARTNER_WEBHOOK_SECRET = os.getenv("PARTNER_WEBHOOK_SECRET")
VENDOR_BACKEND_URL = os.getenv("VENDOR_BACKEND_URL")

FCM_PROJECT_ID = os.getenv("FCM_PROJECT_ID")
FCM_SERVICE_ACCOUNT_FILE = os.getenv("FCM_SERVICE_ACCOUNT_FILE")

LOG_LEVEL = (os.getenv("LOG_LEVEL") or "INFO").upper()
