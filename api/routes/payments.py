"""
Payment callback routes.

Providers post notifications here; the body is answered in plain text the
way providers expect. Keep this thin: verification and settlement live in
PaymentService.
"""
from __future__ import annotations

import json
from typing import Any, Optional
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from api.dependencies import get_payment_service
from api.middleware import resolve_client_ip
from application.services.payment_service import PaymentService
from core.logging_config import get_logger
from core.settings import payment_settings
from infrastructure.external.payments import ip_allowed


router = APIRouter(prefix="/payment", tags=["Payment Callbacks"])
logger = get_logger(__name__)

TANGCHAO_METHOD = "TangchaoPay"

_STATUS_BY_OUTCOME = {
    "verified": 200,
    "rejected": 422,
    "handle_error": 400,
}


async def _callback_params(request: Request) -> dict[str, Any]:
    """Query string merged with a form or JSON body; body fields win."""
    params: dict[str, Any] = dict(request.query_params)
    body = await request.body()
    if not body:
        return params

    content_type = (request.headers.get("content-type") or "").lower()
    if "application/json" in content_type:
        try:
            payload = json.loads(body)
        except ValueError:
            payload = None
        if isinstance(payload, dict):
            params.update(payload)
    else:
        params.update(parse_qsl(body.decode("utf-8", errors="replace"), keep_blank_values=True))
    return params


async def _handle_callback(
    request: Request,
    service: PaymentService,
    method: str,
    public_id: Optional[str],
) -> PlainTextResponse:
    remote_ip = getattr(request.state, "client_ip", None) or resolve_client_ip(request)
    if not ip_allowed(remote_ip, payment_settings.webhook.ip_allowlist):
        logger.warning("payment_notify_ip_denied", method=method, remote_ip=remote_ip)
        return PlainTextResponse("verify error", status_code=422)

    try:
        params = await _callback_params(request)
        outcome = await service.notify(method, params, public_id=public_id, remote_ip=remote_ip)
    except Exception as exc:
        # 上游错误信息不回传给支付平台
        logger.error(
            "payment_notify_failed",
            method=method,
            public_id=public_id,
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=True,
        )
        return PlainTextResponse("fail", status_code=500)

    return PlainTextResponse(outcome.response_body(), status_code=_STATUS_BY_OUTCOME[outcome.status])


@router.api_route("/notify/{method}/{public_id}", methods=["GET", "POST"], response_class=PlainTextResponse)
async def payment_notify(
    method: str,
    public_id: str,
    request: Request,
    service: PaymentService = Depends(get_payment_service),
):
    return await _handle_callback(request, service, method, public_id)


@router.post("/tangchao/notify", response_class=PlainTextResponse)
async def tangchao_notify(request: Request, service: PaymentService = Depends(get_payment_service)):
    return await _handle_callback(request, service, TANGCHAO_METHOD, None)
