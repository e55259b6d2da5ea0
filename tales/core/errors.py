"""Exception hierarchy shared by the store, payment services and the draft sync client."""

from typing import Optional


class TalesError(Exception):
    """Base exception for all tale errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


class ConfigurationError(TalesError):
    """A required secret or endpoint is not configured."""


# ---- Entitlement store ----

class NotFoundError(TalesError):
    """Unknown project, slug or reference."""


class PremiumRequiredError(TalesError):
    """Operation only allowed on premium projects / tales."""


# ---- Checkout & reconciliation ----

class InvalidDiscountCodeError(TalesError):
    """Discount code is not recognized."""

    def __init__(self, message: str = "Invalid discount code.", code: str = ""):
        super().__init__(message, {"code": code} if code else None)
        self.code = code


class QuotaExceededError(TalesError):
    """Discount code has been used up to its configured limit."""

    def __init__(self, message: str = "Discount code has reached its usage limit.", code: str = ""):
        super().__init__(message, {"code": code} if code else None)
        self.code = code


class PaymentRejectedError(TalesError):
    """Integrity failure: unsuccessful charge, missing metadata or insufficient amount."""


class PaymentProviderError(TalesError):
    """Paystack request failed (network or non-2xx)."""


# ---- Draft sync (client) ----

class DraftSaveError(TalesError):
    """A single draft write failed; retried by the sync engine."""


class DraftSyncTimeout(TalesError):
    """Flush-and-wait did not converge in time; navigation must be aborted."""

    def __init__(self, message: str = "Unable to sync draft right now. Please retry in a moment."):
        super().__init__(message)


# ---- HTTP mapping (routers) ----

HTTP_STATUS = (
    (NotFoundError, 404),
    (PremiumRequiredError, 403),
    (InvalidDiscountCodeError, 400),
    (QuotaExceededError, 400),
    (PaymentRejectedError, 400),
    (PaymentProviderError, 502),
    (ConfigurationError, 503),
)


def http_status_for(exc: TalesError) -> int:
    for exc_type, status in HTTP_STATUS:
        if isinstance(exc, exc_type):
            return status
    return 500
