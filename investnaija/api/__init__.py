"""
InvestNaija API Application Factory
"""

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config import get_config
from ..logging_config import setup_logging
from .middleware import RateLimiter, request_logger
from .auth_routes import router as auth_router
from .otp import router as otp_router
from .kyc import router as kyc_router
from .wallet import router as wallet_router
from .transactions import router as transactions_router
from .dashboard import router as dashboard_router
from .investments import router as investments_router
from .crypto import router as crypto_router
from .bills import router as bills_router
from .payments import router as payments_router
from .notifications import router as notifications_router
from .roundup import router as roundup_router
from .admin import router as admin_router


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)

    app = FastAPI(
        title="InvestNaija API",
        description="Digital wallet, micro-investments, crypto and bill payments for Nigerian users",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    origins = [origin.strip() for origin in config.cors_origins.split(",") if origin.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # The middleware registered last is the outermost
    if config.enable_rate_limiting:
        app.middleware("http")(RateLimiter(config.rate_limit_per_minute))
    app.middleware("http")(request_logger)

    app.include_router(auth_router, prefix="/auth", tags=["Auth"])
    app.include_router(otp_router, prefix="/otp", tags=["OTP"])
    app.include_router(kyc_router, prefix="/kyc", tags=["KYC"])
    app.include_router(wallet_router, prefix="/wallet", tags=["Wallet"])
    app.include_router(transactions_router, prefix="/transactions", tags=["Transactions"])
    app.include_router(dashboard_router, tags=["Dashboard"])
    app.include_router(investments_router, prefix="/investments", tags=["Investments"])
    app.include_router(crypto_router, prefix="/crypto", tags=["Crypto"])
    app.include_router(bills_router, prefix="/bills", tags=["Bills"])
    app.include_router(payments_router, prefix="/payments", tags=["Payments"])
    app.include_router(notifications_router, prefix="/notifications", tags=["Notifications"])
    app.include_router(roundup_router, prefix="/roundup", tags=["Round-up"])
    app.include_router(admin_router, prefix="/admin", tags=["Admin"])

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "service": "investnaija_api",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "InvestNaija API",
            "version": __version__,
            "description": "Wallet, investments, crypto and bill payments",
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "auth": "/auth",
                "otp": "/otp",
                "kyc": "/kyc",
                "wallet": "/wallet",
                "transactions": "/transactions",
                "dashboard": "/dashboard",
                "portfolio": "/portfolio",
                "investments": "/investments",
                "crypto": "/crypto",
                "bills": "/bills",
                "payments": "/payments",
                "notifications": "/notifications",
                "roundup": "/roundup",
                "admin": "/admin"
            }
        }

    return app


app = create_app()


def run_server(host: str = "0.0.0.0", port: int = 8080, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "investnaija.api:app",
        host=host,
        port=port,
        reload=debug,
        log_level=get_config().log_level.lower()
    )
