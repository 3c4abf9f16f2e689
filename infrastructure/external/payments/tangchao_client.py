"""
TangchaoPay gateway adapter.

Form-encoded POST to the provider gateway, signed with the merchant RSA key;
callbacks are authenticated by re-signing their fields and comparing.
"""
from __future__ import annotations

import asyncio
import time
from decimal import Decimal
from typing import Any, Mapping, Optional

import httpx
from pydantic import BaseModel, ConfigDict, field_validator

from core.settings import payment_settings
from application.dtos.payments import (
    CallbackVerificationResult,
    PaymentRequest,
    PaymentResult,
    RejectedCallback,
    VerifiedCallback,
    RESULT_REDIRECT,
)
from domain.common.exceptions import PaymentConfigurationError
from infrastructure.external.payments.base import BaseGatewayClient, ip_allowed
from infrastructure.external.payments.exceptions import GatewayUnavailableError, PaymentUpstreamError
from infrastructure.external.payments.signing import (
    PayloadTooLongError,
    canonical_string,
    load_private_key,
    sign,
    signatures_match,
)
from shared.codes.payment_codes import PROVIDER_SUCCESS_FLAG


# Canonical field orders; outbound and callback strings differ
PAY_SIGN_FIELDS = ("amount", "app_id", "currency", "merchant_id", "order_no", "pay_type", "timestamp")
CALLBACK_SIGN_FIELDS = ("amount", "invoice_no", "order_no", "pay_type", "success")


class TangchaoConfig(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    app_id: str = ""
    merchant_id: str = ""
    private_key: str = ""
    public_key: str = ""
    pay_type: str = "1"
    currency: str = "rmb"
    ip_allowed: str = ""
    display_name: str = "唐朝支付"

    @field_validator("pay_type", "currency", mode="before")
    @classmethod
    def _blank_to_default(cls, v, info):
        if v is None or (isinstance(v, str) and not v.strip()):
            return cls.model_fields[info.field_name].default
        return v

    @field_validator("app_id", "merchant_id", "private_key", "public_key", "ip_allowed", mode="before")
    @classmethod
    def _none_to_blank(cls, v):
        return "" if v is None else v

    def allowed_networks(self) -> list[str]:
        return [item.strip() for item in self.ip_allowed.split(",") if item.strip()]


class TangchaoPayClient(BaseGatewayClient):
    code = "TangchaoPay"
    fixed_notify_path = "/payment/tangchao/notify"
    default_display_name = "唐朝支付"
    default_icon = "🏛️"
    config_model = TangchaoConfig

    form_fields = {
        "app_id": {
            "label": "App ID",
            "type": "string",
            "required": True,
            "description": "唐朝平台项目 app_id",
        },
        "merchant_id": {
            "label": "商户号",
            "type": "string",
            "required": True,
            "description": "唐朝支付商户 ID",
        },
        "private_key": {
            "label": "RSA 私钥",
            "type": "text",
            "required": True,
            "description": "唐朝后台下载的应用私钥（PKCS1 / PKCS8）",
        },
        "public_key": {
            "label": "RSA 公钥",
            "type": "text",
            "required": True,
            "description": "唐朝后台下载的公钥",
        },
        "pay_type": {
            "label": "支付渠道",
            "type": "string",
            "default": "1",
            "description": "唐朝支付支持的支付类型，可选值: 1=支付宝, 2=微信, 3=银行卡, 4=数字货币",
        },
        "currency": {
            "label": "币种",
            "type": "string",
            "default": "rmb",
            "description": "默认 rmb，可根据唐朝后台配置调整",
        },
        "ip_allowed": {
            "label": "回调白名单 IP",
            "type": "string",
            "description": "逗号分隔的白名单 IP 或网段，留空则不校验",
        },
        "display_name": {
            "label": "前台名称",
            "type": "string",
            "default": "唐朝支付",
            "description": "用户在前台看到的名称",
        },
    }

    def __init__(self, *args, gateway_url: Optional[str] = None, clock=time.time, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        tc = payment_settings.tangchao
        self.gateway_url = gateway_url or (tc.mock_gateway if tc.use_mock else tc.gateway)
        self.verify_tls = tc.verify_tls
        self._clock = clock

    async def pay(self, request: PaymentRequest) -> PaymentResult:
        if not self.enabled:
            raise GatewayUnavailableError(provider=self.code)

        cfg: TangchaoConfig = self.settings()  # type: ignore[assignment]
        missing = [name for name in ("app_id", "merchant_id", "private_key") if not getattr(cfg, name).strip()]
        if missing:
            raise PaymentConfigurationError(
                f"TangchaoPay configuration incomplete: missing {', '.join(missing)}",
                method=self.code,
                field=missing[0],
            )
        key = load_private_key(cfg.private_key, method=self.code)

        payload = {
            "amount": f"{Decimal(request.total_amount) / 100:.2f}",
            "app_id": cfg.app_id,
            "merchant_id": cfg.merchant_id,
            "order_no": request.trade_no,
            "pay_type": cfg.pay_type,
            "currency": cfg.currency,
            "timestamp": str(int(self._clock())),
        }
        try:
            payload["encode_sign"] = sign(canonical_string(payload, PAY_SIGN_FIELDS), key)
        except PayloadTooLongError:
            raise PaymentConfigurationError("Private key too small for the signing payload", method=self.code, field="private_key")

        self._log("payment_create_request", trade_no=request.trade_no, amount=payload["amount"], url=self.gateway_url)
        response = await self._request_gateway(payload)

        url = (response.get("data") or {}).get("url") if isinstance(response.get("data"), dict) else None
        if not url:
            raise PaymentUpstreamError(
                str(response.get("msg") or "Payment URL missing from gateway response"),
                provider=self.code,
                details={"trade_no": request.trade_no},
            )
        self._log("payment_create_response", trade_no=request.trade_no)
        return PaymentResult(type=RESULT_REDIRECT, data=str(url))

    async def _request_gateway(self, body: dict[str, str]) -> dict[str, Any]:
        trade_no = body.get("order_no")
        started = time.monotonic()
        try:
            async with self.client(verify=self.verify_tls) as client:
                resp = await asyncio.wait_for(client.post(self.gateway_url, data=body), timeout=self.deadline)
        except (httpx.HTTPError, asyncio.TimeoutError) as exc:
            self._log("payment_gateway_transport_error", trade_no=trade_no, error=type(exc).__name__)
            raise PaymentUpstreamError(
                "Payment gateway request failed",
                provider=self.code,
                details={"trade_no": trade_no, "error": type(exc).__name__},
            ) from exc

        self._log(
            "payment_gateway_response",
            trade_no=trade_no,
            http_status=resp.status_code,
            duration_ms=round((time.monotonic() - started) * 1000, 2),
        )
        try:
            result = resp.json()
        except ValueError as exc:
            raise PaymentUpstreamError(
                "Payment gateway returned invalid JSON",
                provider=self.code,
                details={"trade_no": trade_no, "http_status": resp.status_code},
            ) from exc
        if not isinstance(result, dict):
            raise PaymentUpstreamError("Payment gateway returned invalid JSON", provider=self.code, details={"trade_no": trade_no})

        code = result.get("code")
        if code is not None and str(code) != "0":
            raise PaymentUpstreamError(
                str(result.get("msg") or "Unknown gateway error"),
                provider=self.code,
                provider_code=str(code),
                details={"trade_no": trade_no},
            )
        return result

    async def notify(self, params: Mapping[str, Any], *, remote_ip: Optional[str] = None) -> CallbackVerificationResult:
        if not self.enabled:
            return RejectedCallback(reason="gateway_disabled")

        cfg: TangchaoConfig = self.settings()  # type: ignore[assignment]
        if not ip_allowed(remote_ip, cfg.allowed_networks()):
            self._log("payment_notify_ip_blocked", remote_ip=remote_ip)
            return RejectedCallback(reason="ip_not_allowed")

        received = str(params.get("encode_sign") or "")
        if not received:
            return RejectedCallback(reason="missing_signature")

        key = load_private_key(cfg.private_key, method=self.code)
        fields = {name: params.get(name) for name in CALLBACK_SIGN_FIELDS}
        trade_no = str(params.get("order_no") or "")
        try:
            expected = sign(canonical_string(fields, CALLBACK_SIGN_FIELDS), key)
            matched = signatures_match(expected, received)
        except (PayloadTooLongError, UnicodeError):
            return RejectedCallback(reason="malformed")

        if not matched:
            self._log("payment_notify_sign_mismatch", trade_no=trade_no, remote_ip=remote_ip)
            return RejectedCallback(reason="signature_mismatch")

        if str(params.get("success") or "") != PROVIDER_SUCCESS_FLAG[self.code]:
            return RejectedCallback(reason="not_successful")
        if not trade_no:
            return RejectedCallback(reason="missing_trade_no")

        return VerifiedCallback(
            trade_no=trade_no,
            callback_no=str(params.get("invoice_no") or ""),
            custom_result="OK",
        )
