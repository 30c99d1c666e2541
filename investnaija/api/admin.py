"""
Admin portal endpoints (staff only)
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from .auth import InvestNaijaSystem, get_system, http_error, require_permission, require_staff
from .schemas import StatusUpdateRequest
from ..admin import Permission, permissions_for
from ..users import User


router = APIRouter()


@router.get("/me")
async def admin_profile(user: User = Depends(require_staff)):
    return {
        "success": True,
        "user": user.to_public(),
        "permissions": sorted(p.value for p in permissions_for(user)),
    }


@router.get("/stats")
async def platform_stats(
    user: User = Depends(require_permission(Permission.VIEW_ANALYTICS)),
    system: InvestNaijaSystem = Depends(get_system)
):
    return {"success": True, "stats": system.admin_service.stats()}


@router.get("/users")
async def list_users(
    search: Optional[str] = None,
    status: Optional[str] = None,
    kyc_status: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
    user: User = Depends(require_permission(Permission.VIEW_USERS)),
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        result = system.admin_service.list_users(search=search, status=status, kyc_status=kyc_status,
                                                 page=page, limit=limit)
    except ValueError as e:
        raise http_error(e)
    return {"success": True, **result}


@router.get("/users/{user_id}")
async def user_details(
    user_id: str,
    user: User = Depends(require_permission(Permission.VIEW_USERS)),
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        return {"success": True, **system.admin_service.user_details(user_id)}
    except ValueError as e:
        raise http_error(e)


@router.put("/users/{user_id}/kyc")
async def update_kyc(
    user_id: str,
    request: StatusUpdateRequest,
    user: User = Depends(require_staff),
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        updated = system.admin_service.update_kyc(user, user_id, request.status)
    except ValueError as e:
        raise http_error(e)
    return {"success": True, "user": updated, "message": f"KYC status updated to {request.status}"}


@router.put("/users/{user_id}/status")
async def update_status(
    user_id: str,
    request: StatusUpdateRequest,
    user: User = Depends(require_staff),
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        updated = system.admin_service.update_status(user, user_id, request.status)
    except ValueError as e:
        raise http_error(e)
    return {"success": True, "user": updated, "message": f"User status updated to {request.status}"}


@router.get("/transactions")
async def all_transactions(
    limit: int = Query(50, ge=1, le=500),
    user: User = Depends(require_permission(Permission.VIEW_TRANSACTIONS)),
    system: InvestNaijaSystem = Depends(get_system)
):
    transactions = sorted(system.transaction_log.all(), key=lambda t: t.created_at, reverse=True)
    return {"success": True, "transactions": [t.to_api() for t in transactions[:limit]]}


@router.post("/reconcile")
async def reconcile(
    user: User = Depends(require_permission(Permission.VIEW_ANALYTICS)),
    system: InvestNaijaSystem = Depends(get_system)
):
    """Compare wallet balances against the ledger"""
    return {"success": True, **system.admin_service.reconcile(actor=user)}


@router.get("/audit")
async def audit_integrity(
    user: User = Depends(require_permission(Permission.VIEW_ANALYTICS)),
    system: InvestNaijaSystem = Depends(get_system)
):
    return {"success": True, **system.admin_service.audit_integrity(actor=user)}


@router.post("/investments/accrue")
async def accrue_returns(
    user: User = Depends(require_permission(Permission.SYSTEM_SETTINGS)),
    system: InvestNaijaSystem = Depends(get_system)
):
    """Run the daily returns accrual now"""
    return {"success": True, **system.investment_manager.accrue_returns()}
