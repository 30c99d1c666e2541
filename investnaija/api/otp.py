"""
Phone and email verification code endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends

from .auth import InvestNaijaSystem, get_system, http_error
from .schemas import OTPSendRequest, OTPVerifyRequest


router = APIRouter()


@router.post("/send")
async def send_otp(
    request: OTPSendRequest,
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        result = system.otp_service.send(phone=request.phone, email=request.email,
                                         purpose=request.purpose)
    except ValueError as e:
        raise http_error(e)
    return {"success": True, **result}


@router.post("/verify")
async def verify_otp(
    request: OTPVerifyRequest,
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        result = system.otp_service.verify(request.code, phone=request.phone, email=request.email)
    except ValueError as e:
        raise http_error(e)
    return {"success": True, **result}


@router.get("/status")
async def otp_status(
    phone: Optional[str] = None,
    email: Optional[str] = None,
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        return {"success": True, **system.otp_service.status(phone=phone, email=email)}
    except ValueError as e:
        raise http_error(e)
