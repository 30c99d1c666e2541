"""
Pydantic schemas for API requests
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from ..currency import Money, naira


class AmountModel(BaseModel):
    amount: Decimal = Field(..., description="Naira amount, e.g. 2500.00")

    def to_money(self) -> Money:
        return naira(self.amount)


# Authentication
class RegisterRequest(BaseModel):
    email: str
    password: str
    first_name: str
    last_name: str
    phone: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


# OTP
class OTPSendRequest(BaseModel):
    phone: Optional[str] = None
    email: Optional[str] = None
    purpose: str = "registration"


class OTPVerifyRequest(BaseModel):
    code: str
    phone: Optional[str] = None
    email: Optional[str] = None


# KYC
class KYCSubmitRequest(BaseModel):
    bvn: Optional[str] = None
    nin: Optional[str] = None


class KYCDocumentRequest(BaseModel):
    document_type: str
    filename: str


# Wallet
class WalletInvestRequest(AmountModel):
    investment_type: str = Field(..., description="money_market, treasury_bills or fixed_deposit")


class TransferRequest(AmountModel):
    recipient: str = Field(..., description="Recipient email address or phone number")
    description: Optional[str] = None


class BankWithdrawalRequest(AmountModel):
    account_number: str
    bank_code: str
    account_name: str


class FundWalletRequest(AmountModel):
    callback_url: Optional[str] = None


# Investments
class InvestRequest(AmountModel):
    product_id: str


class InvestmentWithdrawRequest(AmountModel):
    investment_id: str


class CalculateReturnsRequest(BaseModel):
    amount: Decimal
    product_id: Optional[str] = None
    annual_rate: Optional[Decimal] = None
    days: int = 365


# Crypto
class CryptoBuyRequest(AmountModel):
    coin: str = Field(..., description="CoinGecko id or ticker symbol")


class CryptoSellRequest(BaseModel):
    coin: str
    quantity: Decimal


# Bills
class ValidateCustomerRequest(BaseModel):
    biller_code: str
    customer: str


class AirtimeRequest(AmountModel):
    network: str
    phone: str


class DataRequest(BaseModel):
    plan_id: str
    phone: str


class ElectricityRequest(AmountModel):
    company: str
    meter_number: str
    meter_type: str = "prepaid"
    customer_name: Optional[str] = None


class CableTVRequest(BaseModel):
    provider: str
    smart_card_number: str
    package_id: str


# Payments
class ResolveAccountRequest(BaseModel):
    account_number: str
    bank_code: str


# Round-up
class RoundupSettingsRequest(BaseModel):
    enabled: Optional[bool] = None
    roundup_method: Optional[str] = None
    auto_invest_threshold: Optional[Decimal] = None
    target_investment_type: Optional[str] = None
    max_daily_roundup: Optional[Decimal] = None


class RoundupProcessRequest(AmountModel):
    description: str = "Purchase"


class RoundupInvestRequest(BaseModel):
    investment_type: str = "money_market"


# Admin
class StatusUpdateRequest(BaseModel):
    status: str
