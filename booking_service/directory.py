"""
Customer and vendor records, read through one place with one identity field.
"""
import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Customer, Vendor

logger = logging.getLogger(__name__)


async def find_customer_by_id(db: AsyncSession, customer_id: int) -> Customer | None:
    return await db.get(Customer, customer_id)


async def find_customer_by_phone(db: AsyncSession, phone: str) -> Customer | None:
    result = await db.execute(select(Customer).where(Customer.phone == phone))
    return result.scalar_one_or_none()


async def find_vendor_by_id(db: AsyncSession, vendor_id: int) -> Vendor | None:
    return await db.get(Vendor, vendor_id)


async def find_vendors_by_ids(db: AsyncSession, vendor_ids) -> list[Vendor]:
    ids = list(vendor_ids)
    if not ids:
        return []
    result = await db.execute(select(Vendor).where(Vendor.id.in_(ids)).order_by(Vendor.id))
    return list(result.scalars().all())


async def increment_vendor_stats(db: AsyncSession, vendor_id: int) -> None:
    """Bump total/completed booking counters by one. Commits on its own."""
    await db.execute(
        update(Vendor)
        .where(Vendor.id == vendor_id)
        .values(
            total_bookings=Vendor.total_bookings + 1,
            completed_bookings=Vendor.completed_bookings + 1,
        )
    )
    await db.commit()
