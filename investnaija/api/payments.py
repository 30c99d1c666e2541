"""
Payment gateway endpoints: banks, account resolution and Paystack checkout
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from .auth import InvestNaijaSystem, get_current_user, get_system, http_error
from .schemas import FundWalletRequest, ResolveAccountRequest
from ..users import User


router = APIRouter()


@router.get("/banks")
async def list_banks(system: InvestNaijaSystem = Depends(get_system)):
    return {"success": True, "banks": system.payment_service.list_banks()}


@router.post("/resolve-account")
async def resolve_account(
    request: ResolveAccountRequest,
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        account = system.payment_service.resolve_account(request.account_number, request.bank_code)
    except ValueError as e:
        raise http_error(e)
    return {"success": True, "account": account}


@router.post("/paystack/initialize")
async def initialize_payment(
    request: FundWalletRequest,
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        checkout = system.payment_service.initialize_funding(
            user.id, request.to_money(), callback_url=request.callback_url
        )
    except ValueError as e:
        raise http_error(e)
    return {"success": True, **checkout}


@router.get("/paystack/verify/{reference}")
async def verify_payment(
    reference: str,
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        txn = system.payment_service.verify_funding(reference, user_id=user.id)
    except ValueError as e:
        raise http_error(e)
    return {"success": True, "transaction": txn.to_api()}


@router.post("/paystack/webhook")
async def paystack_webhook(
    request: Request,
    x_paystack_signature: Optional[str] = Header(None),
    system: InvestNaijaSystem = Depends(get_system)
):
    """Paystack event callback; the signature covers the raw body"""
    body = await request.body()
    try:
        result = system.payment_service.handle_webhook(body, x_paystack_signature)
    except ValueError as e:
        raise http_error(e)
    return {"success": True, **result}
