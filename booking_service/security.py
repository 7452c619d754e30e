import hmac
import time

from fastapi import Header
from jose import jwt

from .config import ACCESS_TOKEN_TTL_SECONDS, JWT_ALGORITHM, JWT_SECRET, VENDOR_SECRET
from .errors import UnauthorizedError


def issue_access_token(customer_id: int, now: float | None = None) -> str:
    issued_at = int(now if now is not None else time.time())
    return jwt.encode(
        {"sub": str(customer_id), "iat": issued_at, "exp": issued_at + ACCESS_TOKEN_TTL_SECONDS},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


def require_vendor_secret(x_vendor_secret: str | None = Header(default=None)) -> None:
    # compare bytes: compare_digest refuses non-ASCII str
    supplied = (x_vendor_secret or "").encode("utf-8")
    if not supplied or not hmac.compare_digest(supplied, VENDOR_SECRET.encode("utf-8")):
        raise UnauthorizedError("Invalid or missing x-vendor-secret header")
