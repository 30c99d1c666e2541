"""
Registration, login and session endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, status
from fastapi.security import HTTPAuthorizationCredentials

from .auth import InvestNaijaSystem, get_current_user, get_system, http_error, security
from .schemas import ChangePasswordRequest, LoginRequest, RegisterRequest
from ..users import User


router = APIRouter()


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    system: InvestNaijaSystem = Depends(get_system)
):
    """Create an account and its wallet, and sign the user in"""
    try:
        with system.storage.atomic():
            user = system.user_manager.register(
                email=request.email,
                password=request.password,
                first_name=request.first_name,
                last_name=request.last_name,
                phone=request.phone
            )
            wallet = system.wallet_manager.create_wallet(user.id)
        token = system.user_manager.issue_jwt(user)
        session_token = system.user_manager.create_session(user.id)
    except ValueError as e:
        raise http_error(e)

    return {
        "success": True,
        "user": user.to_public(),
        "wallet": wallet.to_api(),
        "token": token,
        "session_token": session_token,
        "message": "Account created successfully",
    }


@router.post("/login")
async def login(
    request: LoginRequest,
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        user, token, session_token = system.user_manager.login(request.email, request.password)
    except ValueError as e:
        raise http_error(e)

    wallet = system.wallet_manager.create_wallet(user.id)
    return {
        "success": True,
        "user": user.to_public(),
        "wallet": wallet.to_api(),
        "token": token,
        "session_token": session_token,
    }


@router.post("/logout")
async def logout(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    """Revoke the session token used for this request; JWTs simply expire"""
    if credentials and "." not in credentials.credentials:
        system.user_manager.revoke_session(credentials.credentials)
    return {"success": True, "message": "Logged out successfully"}


@router.get("/me")
async def me(
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    wallet = system.wallet_manager.find_wallet(user.id)
    return {
        "success": True,
        "user": user.to_public(),
        "wallet": wallet.to_api() if wallet else None,
    }


@router.post("/change-password")
async def change_password(
    request: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    """Change the password and revoke every session token"""
    try:
        system.user_manager.change_password(user.id, request.current_password, request.new_password)
    except ValueError as e:
        raise http_error(e)
    system.notifications.notify_security_alert(
        user.id, "Password changed", "Your password was changed and other sessions were signed out"
    )
    return {"success": True, "message": "Password changed successfully"}
