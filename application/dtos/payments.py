"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from typing import Any, Optional, Literal, Union
from pydantic import BaseModel, Field, ConfigDict


# PaymentResult.type values
RESULT_REDIRECT = 1
RESULT_SETTLED_WITHOUT_GATEWAY = -1


class PaymentMethodDescriptor(BaseModel):
    """One entry of the ``available_payment_methods`` filter output."""

    name: str
    display_name: str
    icon: Optional[str] = None
    plugin_code: str
    enabled: bool = True
    type: Literal["plugin"] = "plugin"


class GatewayConfiguration(BaseModel):
    """Stored configuration as seen by an adapter.

    ``values`` is the opaque field -> value mapping; the reserved keys sit
    beside it. A fresh copy is built for every orchestration.
    """

    values: dict[str, Any] = Field(default_factory=dict)
    enable: bool = False
    id: Optional[int] = None
    public_id: Optional[str] = None
    notify_domain: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def as_mapping(self) -> dict[str, Any]:
        merged = dict(self.values)
        merged.update(
            enable=self.enable,
            id=self.id,
            public_id=self.public_id,
            notify_domain=self.notify_domain,
        )
        return merged


class PaymentRequest(BaseModel):
    trade_no: str
    total_amount: int = Field(ge=0, description="minor currency units")
    user_id: int
    notify_url: Optional[str] = None
    return_url: Optional[str] = None
    extra: dict[str, Any] = Field(default_factory=dict)


class PaymentResult(BaseModel):
    type: int
    data: Union[str, bool]


class VerifiedCallback(BaseModel):
    verified: Literal[True] = True
    trade_no: str
    callback_no: str
    custom_result: Optional[str] = None


class RejectedCallback(BaseModel):
    verified: Literal[False] = False
    reason: str


CallbackVerificationResult = Union[VerifiedCallback, RejectedCallback]


class FormField(BaseModel):
    """Normalized admin form field."""

    type: str = "string"
    label: str = ""
    placeholder: str = ""
    description: str = ""
    value: Any = ""
    options: list[dict[str, Any]] = Field(default_factory=list)


class NotifyOutcome(BaseModel):
    """Result of one callback round-trip through the orchestrator."""

    status: Literal["verified", "rejected", "handle_error"]
    method: str
    trade_no: Optional[str] = None
    callback_no: Optional[str] = None
    custom_result: Optional[str] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "verified"

    def response_body(self) -> str:
        if self.status == "verified":
            return self.custom_result or "success"
        if self.status == "rejected":
            return "verify error"
        return "handle error"
