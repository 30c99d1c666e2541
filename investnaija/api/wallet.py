"""
Wallet endpoints: balance, funding, transfers and withdrawals
"""

from fastapi import APIRouter, Depends, HTTPException, status

from .auth import InvestNaijaSystem, get_current_user, get_system, http_error
from .schemas import (
    AmountModel, BankWithdrawalRequest, FundWalletRequest, TransferRequest,
    WalletInvestRequest
)
from ..users import User


router = APIRouter()


@router.get("")
async def get_wallet(
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    wallet = system.wallet_manager.create_wallet(user.id)
    return {"success": True, "wallet": wallet.to_api()}


@router.post("/deposit")
async def deposit(user: User = Depends(get_current_user)):
    """Wallets are only funded through the payment gateway"""
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail="Manual deposits are not allowed. Please use the fund wallet option."
    )


@router.post("/withdraw")
async def withdraw(
    request: AmountModel,
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        txn = system.wallet_manager.withdraw(user.id, request.to_money())
    except ValueError as e:
        raise http_error(e)
    return {
        "success": True,
        "transaction": txn.to_api(),
        "wallet": system.wallet_manager.get_wallet(user.id).to_api(),
        "message": f"Successfully withdrew {txn.amount.to_string()}",
    }


@router.post("/invest")
async def invest_from_wallet(
    request: WalletInvestRequest,
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    """Quick invest into one of the headline products"""
    try:
        investment = system.investment_manager.invest_by_type(
            user.id, request.investment_type, request.to_money()
        )
    except ValueError as e:
        raise http_error(e)
    return {
        "success": True,
        "investment": investment.to_api(),
        "wallet": system.wallet_manager.get_wallet(user.id).to_api(),
        "message": f"Successfully invested {investment.principal.to_string()} in {investment.product_name}",
    }


@router.post("/transfer")
async def transfer(
    request: TransferRequest,
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        result = system.wallet_manager.transfer(
            user.id, request.recipient, request.to_money(), request.description
        )
    except ValueError as e:
        raise http_error(e)

    recipient = result["recipient"]
    return {
        "success": True,
        "transaction": result["debit"].to_api(),
        "recipient": {
            "id": recipient.id,
            "name": system.user_manager.display_name(recipient),
        },
        "wallet": system.wallet_manager.get_wallet(user.id).to_api(),
        "message": f"Successfully sent {result['debit'].amount.to_string()} "
                   f"to {system.user_manager.display_name(recipient)}",
    }


@router.post("/withdraw-to-bank")
async def withdraw_to_bank(
    request: BankWithdrawalRequest,
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    """Debit the wallet and start the Paystack payout; transfer webhooks settle it"""
    try:
        txn = system.wallet_manager.withdraw_to_bank(
            user.id, request.to_money(), request.account_number,
            request.bank_code, request.account_name
        )
        txn = system.payment_service.payout(txn.id)
    except ValueError as e:
        raise http_error(e)
    return {
        "success": True,
        "transaction": txn.to_api(),
        "wallet": system.wallet_manager.get_wallet(user.id).to_api(),
        "message": "Withdrawal is being processed",
    }


@router.post("/fund")
async def fund_wallet(
    request: FundWalletRequest,
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    """Start a Paystack checkout for wallet funding"""
    try:
        checkout = system.payment_service.initialize_funding(
            user.id, request.to_money(), callback_url=request.callback_url
        )
    except ValueError as e:
        raise http_error(e)
    return {"success": True, **checkout}


@router.get("/verify/{reference}")
async def verify_funding(
    reference: str,
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        txn = system.payment_service.verify_funding(reference, user_id=user.id)
    except ValueError as e:
        raise http_error(e)
    return {
        "success": True,
        "transaction": txn.to_api(),
        "wallet": system.wallet_manager.get_wallet(user.id).to_api(),
    }
