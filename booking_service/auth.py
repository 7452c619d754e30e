"""
Phone/OTP login. Codes live only in the expiring cache; delivery is the log
line plus a best-effort push to the customer's device.
"""
import logging
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .cache import ExpiringCache
from .directory import find_customer_by_id, find_customer_by_phone
from .errors import NotFoundError, ValidationError
from .lifecycle import generate_otp
from .models import Customer
from .notifications import Notifier, safe_notify
from .security import issue_access_token

logger = logging.getLogger(__name__)

LOGIN_OTP_TTL_SECONDS = 300


def norm_phone(phone: str) -> str:
    return "".join(ch for ch in (phone or "") if ch.isdigit() or ch == "+")


class OtpLogin:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache: ExpiringCache,
        notifier: Notifier,
        ttl_seconds: float = LOGIN_OTP_TTL_SECONDS,
        code_generator: Callable[[], int] = generate_otp,
    ):
        self._sessions = session_factory
        self.cache = cache
        self.notifier = notifier
        self.ttl_seconds = ttl_seconds
        self._code = code_generator

    async def request_code(self, phone: str, name: str | None = None) -> Customer:
        phone = norm_phone(phone)
        if not phone:
            raise ValidationError("A phone number is required", fields=["phone"])

        async with self._sessions() as db:
            customer = await find_customer_by_phone(db, phone)
            if not customer:
                customer = Customer(phone=phone, name=name)
                db.add(customer)
                await db.commit()
                logger.info("registered customer %s", customer.id)

        code = self._code()
        await self.cache.put(phone, str(code), self.ttl_seconds)
        logger.info("login OTP for %s: %s (valid %ss)", phone, code, int(self.ttl_seconds))

        await safe_notify(
            self.notifier,
            customer.push_token,
            "Your OTP Code",
            f"Your verification code is: {code}. Valid for {int(self.ttl_seconds // 60)} minutes.",
            {"type": "otp", "otp": code},
        )
        return customer

    async def verify_code(self, phone: str, code: str) -> tuple[Customer, str]:
        phone = norm_phone(phone)
        stored = await self.cache.take_if_valid(phone)
        if stored is None:
            raise ValidationError("OTP expired or not requested", fields=["otp"])
        if stored != str(code).strip():
            # a wrong guess burns the code; the customer asks for a new one
            raise ValidationError("Invalid OTP", fields=["otp"])

        async with self._sessions() as db:
            customer = await find_customer_by_phone(db, phone)
        if not customer:
            raise NotFoundError("Customer not found")
        return customer, issue_access_token(customer.id)

    async def register_push_token(self, customer_id: int, token: str) -> Customer:
        async with self._sessions() as db:
            customer = await find_customer_by_id(db, customer_id)
            if not customer:
                raise NotFoundError("Customer not found")
            customer.push_token = token.strip()
            await db.commit()
        return customer
