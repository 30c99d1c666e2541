"""
Service error types.

Every error is a ValueError so callers that only care about "bad request"
can keep catching ValueError; the status_code tells the API layer which
HTTP status to answer with.
"""


class InvestNaijaError(ValueError):
    """Base class for business rule violations"""
    status_code = 400


class ValidationError(InvestNaijaError):
    status_code = 400


class InsufficientFundsError(InvestNaijaError):
    status_code = 400


class NotFoundError(InvestNaijaError):
    status_code = 404


class ConflictError(InvestNaijaError):
    status_code = 409


class AuthenticationError(InvestNaijaError):
    status_code = 401


class PermissionDeniedError(InvestNaijaError):
    status_code = 403


class KYCRequiredError(PermissionDeniedError):
    def __init__(self, message: str = "KYC verification required for this operation"):
        super().__init__(message)


class FeatureDisabledError(PermissionDeniedError):
    pass


class RateLimitError(InvestNaijaError):
    status_code = 429


class ProviderError(InvestNaijaError):
    """An upstream provider (Paystack, Flutterwave, ...) rejected or failed a call"""
    status_code = 502
