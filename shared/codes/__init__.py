"""
Shared business codes used across layers (Domain/Core/API).

This package exposes BusinessCode at `shared.codes` and keeps
payment-specific codes under `shared.codes.payment_codes`.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    """Unified business status codes (single source of truth)."""

    # Success
    SUCCESS = 0

    # Parameter errors (1xxxx)
    PARAM_ERROR = 10000
    PARAM_MISSING = 10001
    PARAM_TYPE_ERROR = 10002
    PARAM_VALIDATION_ERROR = 10003

    # Device token errors (101xx)
    INVALID_DEVICE_TOKEN = 10101
    DEVICE_TOKEN_REQUIRED = 10102

    # Business errors (2xxxx)
    BUSINESS_ERROR = 20000
    NOT_FOUND = 20006  # Generic resource not found

    # Order lifecycle (202xx)
    ORDER_NOT_FOUND = 20201
    INVALID_TRANSITION = 20202
    SETTLEMENT_FAILED = 20203
    PENDING_ORDER_EXISTS = 20204
    PLAN_NOT_FOUND = 20205
    INVALID_PERIOD = 20206
    TRIAL_ALREADY_USED = 20207

    # Authorization errors (3xxxx)
    PERMISSION_ERROR = 30000
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002

    # System errors (4xxxx)
    SYSTEM_ERROR = 40000
    DATABASE_ERROR = 40001
    NETWORK_ERROR = 40002
    SERVICE_UNAVAILABLE = 40003


__all__ = ["BusinessCode"]
