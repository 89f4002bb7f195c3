"""
Domain models exchanged with the calling application.
"""
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class PaymentStatus(str, Enum):
    """Internal payment status."""

    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class AuthType(str, Enum):
    """Cardholder authentication flavour requested on initialize."""

    THREE_DS_TWO = "THREEDSTWO"
    THREE_DS_ONE = "3DS1"
    NO_AUTH = "NO_AUTH"


class CardExpiry(BaseModel):
    month: str
    year: str


class Card(BaseModel):
    """
    Card details.

    Raw fields are present before initialize; afterwards the card only
    needs ``encrypted``, the envelope produced on initialize.
    """

    number: Optional[str] = None
    security_code: Optional[str] = None
    expiry: Optional[CardExpiry] = None
    name: Optional[str] = None
    brand: Optional[str] = None
    encrypted: Optional[str] = None

    def has_raw_details(self) -> bool:
        return bool(self.number and self.security_code and self.expiry)


class CardPaymentInstrument(BaseModel):
    type: str = "card"
    card: Optional[Card] = None


class Customer(BaseModel):
    email: str
    first_name: str = ""
    last_name: str = ""
    phone_number: Optional[str] = None


class BillingAddress(BaseModel):
    address1: str = ""
    city: str = ""
    country: str = ""
    zip_code: Optional[str] = None
    state: Optional[str] = None


class BrowserDetails(BaseModel):
    language: Optional[str] = None
    color_depth: Optional[int] = None
    screen_height: Optional[int] = None
    screen_width: Optional[int] = None
    java_enabled: Optional[bool] = None


class DeviceInformation(BaseModel):
    """Device fingerprint sent to the gateway for 3-D-Secure risk checks."""

    http_browser_language: str = "en-US"
    http_browser_java_enabled: bool = False
    http_browser_javascript_enabled: bool = True
    http_browser_color_depth: str = "24"
    http_browser_screen_height: str = "1080"
    http_browser_screen_width: str = "1920"
    http_browser_time_difference: str = "0"
    http_browser_timezone: str = "UTC"
    http_browser_user_agent: str = ""
    user_agent_browser_value: str = ""
    device_channel: str = "Browser"
    ip_address: str = ""
    http_browser_plugins: str = ""
    http_browser_cookies_enabled: bool = True
    http_browser_do_not_track: str = "false"


class RequestDetails(BaseModel):
    """
    Request context captured by the caller.

    ``device_information`` may be supplied ready-made by a fingerprinting
    collaborator; otherwise it is derived from ``browser_details``.
    """

    browser_details: BrowserDetails = Field(default_factory=BrowserDetails)
    browser: Optional[str] = None
    ip_address: Optional[str] = None
    device_information: Optional[DeviceInformation] = None


class Payment(BaseModel):
    """A payment request. Amounts are integer minor units."""

    reference: str
    amount: int = Field(..., ge=0, description="Amount in minor units (cents)")
    currency: str = Field(..., min_length=3, max_length=3)
    description: Optional[str] = None
    customer: Customer
    billing: BillingAddress = Field(default_factory=BillingAddress)
    payment_instrument: CardPaymentInstrument = Field(default_factory=CardPaymentInstrument)
    request_details: RequestDetails = Field(default_factory=RequestDetails)
    provider_reference: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    refund_amount: Optional[int] = Field(default=None, ge=0)
    refund_reason: Optional[str] = None

    @property
    def card(self) -> Optional[Card]:
        return self.payment_instrument.card


class ThreeDSChallenge(BaseModel):
    """3-D-Secure challenge descriptor to be rendered by the UI."""

    acs_url: Optional[str] = None
    creq: Optional[str] = None
    redirect_url: Optional[str] = None
    html: Optional[str] = None


class CardPaymentOutput(BaseModel):
    """Result of one orchestrator operation."""

    transaction_id: str
    status: PaymentStatus
    message: str
    provider_reference: Optional[str] = None
    type: Optional[AuthType] = None
    gateway_recommendation: Optional[str] = None
    gateway_code: Optional[str] = None
    acquirer_message: Optional[str] = None
    challenge: Optional[ThreeDSChallenge] = None
    card: Optional[Card] = None
    provider_data: Dict[str, Any] = Field(default_factory=dict)
