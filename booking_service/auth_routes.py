from fastapi import APIRouter, Depends

from .auth import OtpLogin
from .deps import get_otp_login
from .schemas import OtpRequest, OtpVerify, PushTokenUpdate, TokenResponse

router = APIRouter(prefix="/api", tags=["Auth"])


@router.post("/auth/otp/request")
async def request_otp(data: OtpRequest, login: OtpLogin = Depends(get_otp_login)):
    customer = await login.request_code(data.phone, data.name)
    return {"success": True, "message": "OTP sent successfully", "userId": customer.id}


@router.post("/auth/otp/verify", response_model=TokenResponse)
async def verify_otp(data: OtpVerify, login: OtpLogin = Depends(get_otp_login)):
    customer, token = await login.verify_code(data.phone, data.otp)
    return TokenResponse(access_token=token, user_id=customer.id)


@router.post("/user/update-fcm-token")
async def update_fcm_token(data: PushTokenUpdate, login: OtpLogin = Depends(get_otp_login)):
    customer = await login.register_push_token(data.user_id, data.fcm_token)
    return {"success": True, "message": "FCM token updated", "userId": customer.id}
