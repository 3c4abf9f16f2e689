import base64
from urllib.parse import parse_qs

import httpx
import pytest
from cryptography.hazmat.primitives.asymmetric import padding

from application.dtos.payments import (
    GatewayConfiguration,
    PaymentRequest,
    RESULT_REDIRECT,
    RejectedCallback,
    VerifiedCallback,
)
from core.settings import PluginSettings
from domain.common.exceptions import PaymentConfigurationError
from infrastructure.external.payments.exceptions import GatewayUnavailableError, PaymentUpstreamError
from infrastructure.external.payments.signing import canonical_string
from infrastructure.external.payments.tangchao_client import PAY_SIGN_FIELDS, TangchaoConfig, TangchaoPayClient


FIXED_NOW = 1700000000


def make_client(values, *, transport=None, enabled=True):
    return TangchaoPayClient(
        GatewayConfiguration(values=values, enable=True, id=1, public_id="uuid-1"),
        plugin=PluginSettings(enabled=enabled),
        transport=transport,
        gateway_url="https://gateway.test/pay",
        clock=lambda: FIXED_NOW,
    )


def request_for(trade_no="T20240101", total=1000):
    return PaymentRequest(trade_no=trade_no, total_amount=total, user_id=7)


@pytest.mark.asyncio
async def test_pay_posts_signed_form_and_returns_redirect(tangchao_values, gateway, rsa_key):
    client = make_client(tangchao_values, transport=gateway.transport())

    result = await client.pay(request_for())

    assert result.type == RESULT_REDIRECT
    assert result.data == "https://cashier.example.com/pay/abc"

    assert len(gateway.requests) == 1
    sent = gateway.requests[0]
    assert str(sent.url) == "https://gateway.test/pay"
    form = {k: v[0] for k, v in parse_qs(sent.content.decode()).items()}
    assert form["amount"] == "10.00"
    assert form["order_no"] == "T20240101"
    assert form["timestamp"] == str(FIXED_NOW)
    assert form["currency"] == "rmb"

    signature = base64.b64decode(form["encode_sign"])
    recovered = rsa_key.public_key().recover_data_from_signature(signature, padding.PKCS1v15(), None)
    assert recovered.decode() == canonical_string(form, PAY_SIGN_FIELDS)


@pytest.mark.asyncio
async def test_pay_relays_provider_error_message(tangchao_values):
    def handler(request):
        return httpx.Response(200, json={"code": 1001, "msg": "merchant frozen"})

    client = make_client(tangchao_values, transport=httpx.MockTransport(handler))
    with pytest.raises(PaymentUpstreamError) as exc_info:
        await client.pay(request_for())
    assert exc_info.value.message == "merchant frozen"


@pytest.mark.asyncio
async def test_pay_missing_url_is_upstream_error(tangchao_values):
    def handler(request):
        return httpx.Response(200, json={"code": 0, "data": {}})

    client = make_client(tangchao_values, transport=httpx.MockTransport(handler))
    with pytest.raises(PaymentUpstreamError):
        await client.pay(request_for())


@pytest.mark.asyncio
async def test_pay_invalid_json_is_upstream_error(tangchao_values):
    def handler(request):
        return httpx.Response(502, text="<html>bad gateway</html>")

    client = make_client(tangchao_values, transport=httpx.MockTransport(handler))
    with pytest.raises(PaymentUpstreamError):
        await client.pay(request_for())


@pytest.mark.asyncio
async def test_pay_transport_error_is_upstream_error(tangchao_values):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(tangchao_values, transport=httpx.MockTransport(handler))
    with pytest.raises(PaymentUpstreamError):
        await client.pay(request_for())


@pytest.mark.asyncio
async def test_pay_incomplete_configuration_never_calls_gateway(tangchao_values, gateway):
    values = dict(tangchao_values, private_key="")
    client = make_client(values, transport=gateway.transport())

    with pytest.raises(PaymentConfigurationError) as exc_info:
        await client.pay(request_for())
    assert exc_info.value.field == "private_key"
    assert gateway.requests == []


@pytest.mark.asyncio
async def test_disabled_plugin(tangchao_values, gateway, sign_callback):
    client = make_client(tangchao_values, transport=gateway.transport(), enabled=False)

    with pytest.raises(GatewayUnavailableError):
        await client.pay(request_for())
    result = await client.notify(sign_callback("T1"))
    assert isinstance(result, RejectedCallback)
    assert result.reason == "gateway_disabled"
    assert gateway.requests == []


@pytest.mark.asyncio
async def test_notify_accepts_valid_callback(tangchao_values, sign_callback):
    client = make_client(tangchao_values)

    result = await client.notify(sign_callback("T1", invoice_no="INV-9"))

    assert isinstance(result, VerifiedCallback)
    assert result.trade_no == "T1"
    assert result.callback_no == "INV-9"
    assert result.custom_result == "OK"


@pytest.mark.asyncio
async def test_notify_rejects_tampered_amount(tangchao_values, sign_callback):
    client = make_client(tangchao_values)
    params = sign_callback("T1")
    params["amount"] = "0.01"

    result = await client.notify(params)
    assert isinstance(result, RejectedCallback)
    assert result.reason == "signature_mismatch"


@pytest.mark.asyncio
async def test_notify_fails_closed_on_unsuccessful_flag(tangchao_values, sign_callback):
    client = make_client(tangchao_values)

    result = await client.notify(sign_callback("T1", success="0"))
    assert isinstance(result, RejectedCallback)
    assert result.reason == "not_successful"


@pytest.mark.asyncio
async def test_notify_requires_signature(tangchao_values, sign_callback):
    client = make_client(tangchao_values)
    params = sign_callback("T1")
    params.pop("encode_sign")

    result = await client.notify(params)
    assert result.reason == "missing_signature"


@pytest.mark.asyncio
async def test_notify_ip_allowlist(tangchao_values, sign_callback):
    client = make_client(dict(tangchao_values, ip_allowed="10.0.0.0/8, 192.168.1.5"))
    params = sign_callback("T1")

    denied = await client.notify(params, remote_ip="1.2.3.4")
    assert denied.reason == "ip_not_allowed"
    assert isinstance(await client.notify(params, remote_ip="10.20.30.40"), VerifiedCallback)
    assert isinstance(await client.notify(params, remote_ip="192.168.1.5"), VerifiedCallback)
    assert (await client.notify(params, remote_ip=None)).reason == "ip_not_allowed"


@pytest.mark.asyncio
@pytest.mark.parametrize("field", ["encode_sign", "order_no", "amount"])
async def test_notify_rejects_unencodable_values(tangchao_values, sign_callback, field):
    client = make_client(tangchao_values)
    params = sign_callback("T1")
    params[field] = "\ud800"

    result = await client.notify(params)
    assert isinstance(result, RejectedCallback)
    assert result.reason == "malformed"


def test_config_blank_values_fall_back_to_defaults():
    cfg = TangchaoConfig.model_validate({"app_id": 123, "pay_type": "", "currency": None, "private_key": None})
    assert cfg.app_id == "123"
    assert cfg.pay_type == "1"
    assert cfg.currency == "rmb"
    assert cfg.private_key == ""


def test_form_is_a_copy():
    client = make_client({})
    form = client.form()
    form["app_id"]["label"] = "changed"
    assert client.form()["app_id"]["label"] == "App ID"
