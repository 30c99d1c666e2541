"""
Crypto market and trading endpoints
"""

from fastapi import APIRouter, Depends

from .auth import InvestNaijaSystem, get_current_user, get_system, http_error, require_kyc
from .schemas import CryptoBuyRequest, CryptoSellRequest
from ..crypto import market_status
from ..users import User


router = APIRouter()


@router.get("/market")
async def get_market(system: InvestNaijaSystem = Depends(get_system)):
    snapshot = system.market_client.get_market()
    return {
        "success": True,
        "data": [coin.to_api() for coin in snapshot.coins],
        "fallback": snapshot.fallback,
        "fetched_at": snapshot.fetched_at.isoformat(),
    }


@router.get("/status")
async def get_market_status():
    return {"success": True, **market_status()}


@router.get("/holdings")
async def get_holdings(
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    return {"success": True, **system.crypto_desk.holdings(user.id)}


@router.post("/buy")
async def buy(
    request: CryptoBuyRequest,
    user: User = Depends(require_kyc),
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        result = system.crypto_desk.buy(user.id, request.coin, request.to_money())
    except ValueError as e:
        raise http_error(e)
    return {"success": True, **result, "wallet": system.wallet_manager.get_wallet(user.id).to_api()}


@router.post("/sell")
async def sell(
    request: CryptoSellRequest,
    user: User = Depends(require_kyc),
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        result = system.crypto_desk.sell(user.id, request.coin, request.quantity)
    except ValueError as e:
        raise http_error(e)
    return {"success": True, **result, "wallet": system.wallet_manager.get_wallet(user.id).to_api()}
