"""
Investment product and subscription endpoints
"""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from .auth import InvestNaijaSystem, get_current_user, get_system, http_error
from .schemas import CalculateReturnsRequest, InvestmentWithdrawRequest, InvestRequest
from ..investments import InvestmentStatus, RiskTolerance, calculate_returns, get_product
from ..users import User


router = APIRouter()


@router.get("/products")
async def list_products(
    available_only: bool = False,
    system: InvestNaijaSystem = Depends(get_system)
):
    products = system.investment_manager.list_products(include_unavailable=not available_only)
    return {"success": True, "products": [p.to_api() for p in products]}


@router.get("/products/{product_id}")
async def get_investment_product(product_id: str):
    product = get_product(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Investment product not found")
    return {"success": True, "product": product.to_api()}


@router.get("/recommendations")
async def recommendations(
    risk_tolerance: str = "moderate",
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        tolerance = RiskTolerance(risk_tolerance)
    except ValueError:
        raise HTTPException(status_code=400, detail="Risk tolerance must be conservative, moderate or aggressive")
    products = system.investment_manager.recommendations(user.id, tolerance)
    return {
        "success": True,
        "risk_tolerance": tolerance.value,
        "kyc_verified": user.is_verified,
        "recommendations": [p.to_api() for p in products],
    }


@router.post("/calculate")
async def calculate(request: CalculateReturnsRequest):
    """Projected simple-interest returns for a product or an explicit rate"""
    rate = request.annual_rate
    if request.product_id:
        product = get_product(request.product_id)
        if not product:
            raise HTTPException(status_code=404, detail="Investment product not found")
        rate = product.expected_return
    if rate is None:
        raise HTTPException(status_code=400, detail="Either product_id or annual_rate is required")
    if request.amount <= 0 or request.days <= 0:
        raise HTTPException(status_code=400, detail="Amount and days must be positive")

    returns = calculate_returns(request.amount, rate, request.days)
    return {
        "success": True,
        "amount": str(request.amount),
        "annual_rate": str(rate),
        "days": request.days,
        "returns": str(returns),
        "maturity_value": str(Decimal(request.amount) + returns),
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def invest(
    request: InvestRequest,
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        investment = system.investment_manager.invest(user.id, request.product_id, request.to_money())
    except ValueError as e:
        raise http_error(e)
    return {
        "success": True,
        "investment": investment.to_api(),
        "wallet": system.wallet_manager.get_wallet(user.id).to_api(),
        "message": f"Successfully invested {investment.principal.to_string()} in {investment.product_name}",
    }


@router.post("/withdraw")
async def withdraw_investment(
    request: InvestmentWithdrawRequest,
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        result = system.investment_manager.withdraw_investment(
            user.id, request.investment_id, request.to_money()
        )
    except ValueError as e:
        raise http_error(e)
    return {
        "success": True,
        "investment": result["investment"].to_api(),
        "transaction": result["transaction"].to_api(),
        "wallet": result["wallet"].to_api(),
        "message": f"Successfully withdrew {result['transaction'].amount.to_string()}",
    }


@router.get("/performance")
async def performance(
    months: int = Query(6, ge=1, le=24),
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    return {
        "success": True,
        "performance": system.investment_manager.performance(user.id, months),
        "summary": system.investment_manager.portfolio_summary(user.id),
    }


@router.get("/mine")
async def my_investments(
    status: Optional[str] = None,
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        investment_status = InvestmentStatus(status) if status else None
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid investment status")
    investments = system.investment_manager.for_user(user.id, investment_status)
    return {"success": True, "investments": [i.to_api() for i in investments]}


@router.get("/{investment_id}")
async def get_investment(
    investment_id: str,
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    investment = system.investment_manager.get_investment(investment_id)
    if not investment or investment.user_id != user.id:
        raise HTTPException(status_code=404, detail="Investment not found")
    return {"success": True, "investment": investment.to_api()}
