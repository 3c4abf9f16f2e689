"""
Payment specific codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    TIMEOUT = 60003

    # Gateway resolution / configuration (600xx)
    CONFIGURATION_ERROR = 60010
    UNKNOWN_METHOD = 60011
    METHOD_DISABLED = 60012
    CONFIG_NOT_FOUND = 60013
    GATEWAY_UNAVAILABLE = 60014


# Callback success sentinels per plugin code. Anything else is a failed transaction.
PROVIDER_SUCCESS_FLAG = {
    "TangchaoPay": "1",
}
