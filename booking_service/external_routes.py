from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from .deps import get_lifecycle
from .lifecycle import BookingLifecycle
from .schemas import ExternalVendorUpdate
from .security import require_vendor_secret

router = APIRouter(prefix="/api/external", tags=["External"])


@router.post("/vendor-update", dependencies=[Depends(require_vendor_secret)])
async def receive_vendor_update(
    data: ExternalVendorUpdate,
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
):
    booking = await lifecycle.apply_external_update(data)
    return {
        "success": True,
        "message": "Vendor update received",
        "data": {
            "bookingId": booking.id,
            "status": booking.status,
            "vendorName": data.vendor_name,
            "updatedAt": datetime.now(timezone.utc).isoformat(),
        },
    }
