"""
Wallet transaction history endpoints
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from .auth import InvestNaijaSystem, get_current_user, get_system, http_error
from ..transactions import TransactionStatus, TransactionType
from ..users import User


router = APIRouter()


@router.get("")
async def list_transactions(
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    """Most recent transactions first"""
    transactions = system.transaction_log.recent(user.id, limit)
    return {"success": True, "transactions": [t.to_api() for t in transactions]}


@router.get("/history")
async def transaction_history(
    page: int = 1,
    limit: int = 20,
    type: Optional[str] = None,
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        transaction_type = TransactionType(type) if type else None
        transaction_status = TransactionStatus(status) if status else None
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid transaction type or status filter")

    try:
        result = system.transaction_log.history(
            user.id, page=page, limit=limit,
            transaction_type=transaction_type, status=transaction_status,
            start_date=start_date, end_date=end_date
        )
    except ValueError as e:
        raise http_error(e)
    return {"success": True, **result.to_api()}
