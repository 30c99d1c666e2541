"""
Bill payment endpoints: airtime, data, electricity and cable TV
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from .auth import InvestNaijaSystem, get_current_user, get_system, http_error
from .schemas import (
    AirtimeRequest, CableTVRequest, DataRequest, ElectricityRequest,
    ValidateCustomerRequest
)
from ..bills import BILLER_CATEGORIES, ELECTRICITY_COMPANIES, list_cable_providers, list_networks
from ..users import User


router = APIRouter()


def _payment_response(result: Dict[str, Any], message: str) -> Dict[str, Any]:
    return {
        "success": True,
        "transaction": result["transaction"].to_api(),
        "wallet": result["wallet"].to_api(),
        "receipt": result["receipt"],
        "message": message,
    }


@router.get("/billers")
async def get_billers(system: InvestNaijaSystem = Depends(get_system)):
    return {
        "success": True,
        "categories": BILLER_CATEGORIES,
        "billers": system.bill_service.get_billers(),
    }


@router.get("/networks")
async def get_networks():
    return {"success": True, "networks": list_networks()}


@router.get("/electricity/companies")
async def get_electricity_companies():
    return {"success": True, "companies": ELECTRICITY_COMPANIES}


@router.get("/cable/providers")
async def get_cable_providers():
    return {"success": True, "providers": list_cable_providers()}


@router.post("/validate-customer")
async def validate_customer(
    request: ValidateCustomerRequest,
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        customer = system.bill_service.validate_customer(request.biller_code, request.customer)
    except ValueError as e:
        raise http_error(e)
    return {"success": True, "customer": customer}


@router.post("/airtime")
async def buy_airtime(
    request: AirtimeRequest,
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        result = system.bill_service.buy_airtime(user.id, request.network, request.phone,
                                                 request.to_money())
    except ValueError as e:
        raise http_error(e)
    return _payment_response(result, f"Airtime purchase of {result['transaction'].amount.to_string()} successful")


@router.post("/data")
async def buy_data(
    request: DataRequest,
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        result = system.bill_service.buy_data(user.id, request.plan_id, request.phone)
    except ValueError as e:
        raise http_error(e)
    return _payment_response(result, "Data bundle purchase successful")


@router.post("/electricity")
async def pay_electricity(
    request: ElectricityRequest,
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        result = system.bill_service.pay_electricity(
            user.id, request.company, request.meter_number, request.to_money(),
            meter_type=request.meter_type, customer_name=request.customer_name
        )
    except ValueError as e:
        raise http_error(e)
    return _payment_response(result, "Electricity bill payment successful")


@router.post("/cable-tv")
async def pay_cable_tv(
    request: CableTVRequest,
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        result = system.bill_service.pay_cable_tv(
            user.id, request.provider, request.smart_card_number, request.package_id
        )
    except ValueError as e:
        raise http_error(e)
    return _payment_response(result, "Cable TV subscription successful")
