"""
Exceptions for gateway adapters mapped to unified BusinessException variants.
"""
from __future__ import annotations

from typing import Optional
from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class PaymentUpstreamError(BusinessException):
    """Transport or protocol failure talking to the provider."""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        full_details = {"provider": provider, "provider_code": provider_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.PROVIDER_ERROR,
            message=message,
            error_type="PaymentUpstreamError",
            details=full_details,
        )


class GatewayUnavailableError(BusinessException):
    def __init__(self, *, provider: str):
        super().__init__(
            code=PaymentCode.GATEWAY_UNAVAILABLE,
            message="Payment gateway is unavailable",
            error_type="GatewayUnavailable",
            details={"provider": provider},
        )
