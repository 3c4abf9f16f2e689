"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


# ---- 订单生命周期 ----

class OrderNotFoundError(BusinessException):
    def __init__(self, trade_no: Optional[str] = None):
        details = {"trade_no": trade_no} if trade_no else None
        super().__init__(
            code=BusinessCode.ORDER_NOT_FOUND,
            message="Order not found",
            error_type="OrderNotFound",
            details=details,
        )


class InvalidTransitionError(BusinessException):
    def __init__(self, trade_no: str, current: int, target: int):
        super().__init__(
            code=BusinessCode.INVALID_TRANSITION,
            message="Order status does not allow this operation",
            error_type="InvalidTransition",
            details={"trade_no": trade_no, "from": int(current), "to": int(target)},
        )


class SettlementError(BusinessException):
    """履约失败导致结算回滚；调用方可以重试。"""

    retryable = True

    def __init__(self, trade_no: str, reason: str):
        super().__init__(
            code=BusinessCode.SETTLEMENT_FAILED,
            message="Order settlement failed",
            error_type="SettlementError",
            details={"trade_no": trade_no, "reason": reason},
        )


class PendingOrderExistsError(BusinessException):
    def __init__(self, user_id: int):
        super().__init__(
            code=BusinessCode.PENDING_ORDER_EXISTS,
            message="You have an unpaid or pending order, please try again later or cancel it",
            error_type="PendingOrderExists",
            details={"user_id": user_id},
        )


class PlanNotFoundError(BusinessException):
    def __init__(self, plan_id: int):
        super().__init__(
            code=BusinessCode.PLAN_NOT_FOUND,
            message="Subscription plan does not exist",
            error_type="PlanNotFound",
            details={"plan_id": plan_id},
            field="plan_id",
        )


class InvalidPeriodError(BusinessException):
    def __init__(self, plan_id: int, period: str):
        super().__init__(
            code=BusinessCode.INVALID_PERIOD,
            message="This payment period cannot be purchased, please choose another period",
            error_type="InvalidPeriod",
            details={"plan_id": plan_id, "period": period},
            field="period",
        )


class TrialAlreadyUsedError(BusinessException):
    def __init__(self, plan_id: int):
        super().__init__(
            code=BusinessCode.TRIAL_ALREADY_USED,
            message="This device has already used the trial plan",
            error_type="TrialAlreadyUsed",
            details={"plan_id": plan_id},
        )


# ---- 设备令牌 ----

class InvalidTokenError(BusinessException):
    def __init__(self, reason: str = "invalid"):
        # reason 仅为分类标签，不包含令牌内容
        super().__init__(
            code=BusinessCode.INVALID_DEVICE_TOKEN,
            message="Invalid device token",
            error_type="InvalidToken",
            details={"reason": reason},
            field="nonce",
        )


class DeviceTokenRequiredError(BusinessException):
    def __init__(self):
        super().__init__(
            code=BusinessCode.DEVICE_TOKEN_REQUIRED,
            message="Device token is required for trial plans",
            error_type="DeviceTokenRequired",
            field="nonce",
        )


# ---- 支付网关解析与配置 ----

class PaymentConfigurationError(BusinessException):
    def __init__(self, message: str, *, method: Optional[str] = None, field: Optional[str] = None):
        # details 只记录字段名，绝不携带密钥内容
        details = {k: v for k, v in {"method": method, "field": field}.items() if v}
        super().__init__(
            code=PaymentCode.CONFIGURATION_ERROR,
            message=message,
            error_type="PaymentConfigurationError",
            details=details or None,
            field=field,
        )


class UnknownMethodError(BusinessException):
    def __init__(self, method: str):
        super().__init__(
            code=PaymentCode.UNKNOWN_METHOD,
            message="Payment method is not available",
            error_type="UnknownMethod",
            details={"method": method},
        )


class MethodDisabledError(BusinessException):
    def __init__(self, method: str, config_id: Optional[int] = None):
        details = {"method": method}
        if config_id is not None:
            details["config_id"] = config_id
        super().__init__(
            code=PaymentCode.METHOD_DISABLED,
            message="Payment method is not available",
            error_type="MethodDisabled",
            details=details,
        )


class PaymentConfigNotFoundError(BusinessException):
    def __init__(self, config_id: Optional[int] = None, *, public_id: Optional[str] = None):
        details = {}
        if config_id is not None:
            details["config_id"] = config_id
        if public_id is not None:
            details["public_id"] = public_id
        super().__init__(
            code=PaymentCode.CONFIG_NOT_FOUND,
            message="Payment configuration not found",
            error_type="PaymentConfigNotFound",
            details=details or None,
        )
