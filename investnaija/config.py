"""
Configuration Management Module

Centralized settings loaded from the environment (prefix INVESTNAIJA_)
and an optional .env file using pydantic-settings.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class InvestNaijaConfig(BaseSettings):
    """InvestNaija service configuration"""

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    cors_origins: str = "*"  # Comma separated list of allowed origins
    frontend_url: str = "http://localhost:5173"

    # Storage configuration
    database_path: str = "investnaija.db"

    # Security configuration
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expiry_days: int = 7
    session_expiry_days: int = 30
    password_min_length: int = 8

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None

    # Feature flags
    enable_signup: bool = True
    enable_kyc: bool = True
    enable_investments: bool = True
    enable_bill_payments: bool = True
    enable_rate_limiting: bool = True
    rate_limit_per_minute: int = 120

    # Business limits (NGN, decimal strings)
    max_unverified_wallet_balance: str = "50000"
    unverified_receive_limit: str = "50000"
    kyc_investment_threshold: str = "50000"
    max_investment_amount: str = "10000000"
    min_funding_amount: str = "100"
    max_funding_amount: str = "1000000"
    min_transfer_amount: str = "10"
    max_transfer_amount: str = "500000"
    min_withdrawal_amount: str = "1000"
    max_withdrawal_amount: str = "500000"
    max_daily_transactions: int = 50
    monthly_investment_goal: str = "10000"

    # Paystack
    paystack_secret_key: str = ""
    paystack_base_url: str = "https://api.paystack.co"

    # Flutterwave bills
    flutterwave_secret_key: str = ""
    flutterwave_base_url: str = "https://api.flutterwave.com/v3"

    # CoinGecko market data
    coingecko_api_key: str = ""
    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    crypto_cache_ttl_seconds: int = 60

    # Termii SMS
    termii_api_key: str = ""
    termii_sender_id: str = "InvestNaija"
    termii_base_url: str = "https://api.ng.termii.com/api"

    http_timeout: float = 10.0

    # OTP
    otp_expiry_minutes: int = 10
    otp_max_requests_per_hour: int = 3
    otp_max_attempts: int = 3

    class Config:
        env_prefix = "INVESTNAIJA_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = InvestNaijaConfig()


def get_config() -> InvestNaijaConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> InvestNaijaConfig:
    """Reload configuration from environment"""
    global config
    config = InvestNaijaConfig()
    return config
