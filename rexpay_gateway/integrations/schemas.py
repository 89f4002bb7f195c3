"""
Pydantic models of Rexpay response payloads.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class GatewayModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class GatewayEnvelope(GatewayModel):
    """Top-level reply: a status flag, a message and a ``data`` payload."""

    status: Any = None
    message: Optional[str] = None

    @field_validator("data", mode="before", check_fields=False)
    @classmethod
    def null_data_as_empty(cls, v: Any) -> Any:
        return {} if v is None else v


class SubaccountMetricsData(GatewayModel):
    success_rate: Optional[float] = Field(default=None, alias="successRate")
    volume_24h: Optional[float] = Field(default=None, alias="volume24h")
    avg_response_time: Optional[float] = Field(default=None, alias="avgResponseTime")


class SubaccountLimits(GatewayModel):
    min: Optional[float] = None
    max: Optional[float] = None
    daily: Optional[float] = None
    monthly: Optional[float] = None


class SubaccountData(GatewayModel):
    uuid: str
    name: str = ""
    active: bool = True
    currencies: List[str] = Field(default_factory=list)
    limits: Optional[SubaccountLimits] = None
    metrics: Optional[SubaccountMetricsData] = None

    def supports(self, currency: str) -> bool:
        """True if the subaccount accepts ``currency`` (empty list means any)."""
        if not self.currencies:
            return True
        return currency.upper() in {c.upper() for c in self.currencies}


class GetSubaccountsResponse(GatewayModel):
    status: bool = True
    message: Optional[str] = None
    data: List[SubaccountData]


class InitializeData(GatewayModel):
    transaction_id: str
    status: Optional[str] = None
    session_id: Optional[str] = None


class InitializeResponse(GatewayEnvelope):
    data: InitializeData


class AcsChallenge(GatewayModel):
    acs_url: Optional[str] = Field(default=None, alias="acsUrl")
    creq: Optional[str] = Field(default=None, alias="cReq")


class CustomizedHtml(GatewayModel):
    three_ds2: Optional[AcsChallenge] = Field(default=None, alias="3ds2")


class RedirectAuthData(GatewayModel):
    html: Optional[str] = None
    customized_html: Optional[CustomizedHtml] = Field(default=None, alias="customizedHtml")


class ChargeData(GatewayModel):
    reference: Optional[str] = None
    status: Optional[str] = None
    redirect_url: Optional[str] = None
    redirect_auth_data: Optional[RedirectAuthData] = None


class ChargeResponse(GatewayEnvelope):
    data: ChargeData = Field(default_factory=ChargeData)


class PaymentData(GatewayModel):
    status: Optional[str] = None
    gateway_response: Optional[str] = None


class GetPaymentResponse(GatewayEnvelope):
    data: PaymentData = Field(default_factory=PaymentData)


class GatewayResponseDetail(GatewayModel):
    transaction_id: Optional[str] = Field(default=None, alias="transactionId")
    status: Optional[str] = None
    message: Optional[str] = None
    gateway_recommendation: Optional[str] = Field(default=None, alias="gatewayRecommendation")
    gateway_code: Optional[str] = Field(default=None, alias="gatewayCode")
    acquirer_message: Optional[str] = Field(default=None, alias="acquirerMessage")


class GatewayResponseBlob(GatewayModel):
    """The JSON document embedded as a string in ``gateway_response``."""

    response: GatewayResponseDetail = Field(default_factory=GatewayResponseDetail)
    metadata: Optional[Dict[str, Any]] = None


class FinalizeResponse(GatewayModel):
    status: Any = None
    message: Any = None
    data: Any = None


class RefundData(GatewayModel):
    reference: Optional[str] = None


class RefundResponse(GatewayEnvelope):
    status: Optional[bool] = None
    data: RefundData = Field(default_factory=RefundData)
