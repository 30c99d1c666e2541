"""
Home screen and portfolio endpoints
"""

from fastapi import APIRouter, Depends

from .auth import InvestNaijaSystem, get_current_user, get_system, http_error
from ..users import User


router = APIRouter()


@router.get("/dashboard")
async def get_dashboard(
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    system.wallet_manager.create_wallet(user.id)
    try:
        return {"success": True, **system.dashboard_service.dashboard(user.id)}
    except ValueError as e:
        raise http_error(e)


@router.get("/portfolio")
async def get_portfolio(
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    system.wallet_manager.create_wallet(user.id)
    try:
        return {"success": True, **system.dashboard_service.portfolio(user.id)}
    except ValueError as e:
        raise http_error(e)
