"""
Round-up savings endpoints
"""

from fastapi import APIRouter, Depends

from .auth import InvestNaijaSystem, get_current_user, get_system, http_error
from .schemas import RoundupInvestRequest, RoundupProcessRequest, RoundupSettingsRequest
from ..users import User


router = APIRouter()


@router.get("/settings")
async def get_settings(
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    return {"success": True, "settings": system.roundup_service.get_settings(user.id).to_api()}


@router.put("/settings")
async def update_settings(
    request: RoundupSettingsRequest,
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        settings = system.roundup_service.update_settings(
            user.id,
            enabled=request.enabled,
            roundup_method=request.roundup_method,
            auto_invest_threshold=request.auto_invest_threshold,
            target_investment_type=request.target_investment_type,
            max_daily_roundup=request.max_daily_roundup
        )
    except ValueError as e:
        raise http_error(e)
    return {"success": True, "settings": settings.to_api(), "message": "Round-up settings updated"}


@router.post("/process")
async def process_roundup(
    request: RoundupProcessRequest,
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    """Round up a purchase amount into the round-up pot"""
    try:
        result = system.roundup_service.process(user.id, request.amount, request.description)
    except ValueError as e:
        raise http_error(e)
    return {"success": True, **result}


@router.post("/invest")
async def invest_roundups(
    request: RoundupInvestRequest,
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        result = system.roundup_service.invest_pot(user.id, request.investment_type)
    except ValueError as e:
        raise http_error(e)
    return {"success": True, **result}


@router.get("/stats")
async def roundup_stats(
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    return {"success": True, "stats": system.roundup_service.stats(user.id)}
