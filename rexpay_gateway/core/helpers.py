"""
Request-building helpers: status mapping, amount and country
normalisation, billing and device payloads, PAN masking.
"""
import re
from typing import Any, Dict, Optional

from rexpay_gateway.core.models import DeviceInformation, Payment, PaymentStatus

DEFAULT_COUNTRY = "USA"

TWO_CHAR_TO_THREE: Dict[str, str] = {
    "US": "USA", "GB": "GBR", "CA": "CAN", "NG": "NGA", "GH": "GHA",
    "KE": "KEN", "ZA": "ZAF", "EG": "EGY", "MA": "MAR", "CI": "CIV",
    "SN": "SEN", "CM": "CMR", "RW": "RWA", "UG": "UGA", "TZ": "TZA",
    "DE": "DEU", "FR": "FRA", "ES": "ESP", "IT": "ITA", "NL": "NLD",
    "BE": "BEL", "IE": "IRL", "PT": "PRT", "CH": "CHE", "SE": "SWE",
    "NO": "NOR", "DK": "DNK", "FI": "FIN", "PL": "POL", "AT": "AUT",
    "AU": "AUS", "NZ": "NZL", "IN": "IND", "CN": "CHN", "JP": "JPN",
    "SG": "SGP", "AE": "ARE", "SA": "SAU", "BR": "BRA", "MX": "MEX",
}

NAME_TO_THREE: Dict[str, str] = {
    "UNITED STATES": "USA",
    "UNITED STATES OF AMERICA": "USA",
    "GREAT BRITAIN": "GBR",
    "UNITED KINGDOM": "GBR",
    "CANADA": "CAN",
    "NIGERIA": "NGA",
    "GHANA": "GHA",
    "KENYA": "KEN",
    "SOUTH AFRICA": "ZAF",
    "GERMANY": "DEU",
    "FRANCE": "FRA",
    "SPAIN": "ESP",
    "ITALY": "ITA",
    "NETHERLANDS": "NLD",
    "IRELAND": "IRL",
    "AUSTRALIA": "AUS",
    "INDIA": "IND",
    "UNITED ARAB EMIRATES": "ARE",
}

_STATUS_MAP: Dict[str, PaymentStatus] = {
    "success": PaymentStatus.SUCCESS,
    "completed": PaymentStatus.SUCCESS,
    "failed": PaymentStatus.FAILED,
    "error": PaymentStatus.FAILED,
}


def map_gateway_status(status: Optional[str]) -> PaymentStatus:
    """
    Map a gateway status string to the internal status.

    ``success``/``completed`` map to SUCCESS, ``failed``/``error`` to
    FAILED, anything else (including missing) to PENDING.
    """
    if not status:
        return PaymentStatus.PENDING
    return _STATUS_MAP.get(status.strip().lower(), PaymentStatus.PENDING)


def format_amount(amount_minor: int) -> float:
    """Convert minor units to major units rounded to two decimals."""
    return round(amount_minor / 100, 2)


def normalize_country_code(country: Optional[str]) -> str:
    """Normalise a country code or name to ISO-3166 alpha-3."""
    if not country or not country.strip():
        return DEFAULT_COUNTRY

    upper = country.strip().upper()
    if len(upper) == 2:
        return TWO_CHAR_TO_THREE.get(upper, DEFAULT_COUNTRY)
    return NAME_TO_THREE.get(upper, upper[:3])


def build_billing_information(payment: Payment) -> Dict[str, Any]:
    """Billing block of the initialize request, truncated to gateway limits."""
    billing = payment.billing
    return {
        "postcodezip": billing.zip_code or "",
        "street": (billing.address1 or "")[:100],
        "city": (billing.city or "")[:50],
        "country": normalize_country_code(billing.country),
        "stateProvince": (billing.state or billing.city or "")[:20],
        "address2": "",
        "phone": payment.customer.phone_number or "",
    }


def build_device_information(payment: Payment) -> DeviceInformation:
    """
    Device fingerprint for the initialize request.

    A DeviceInformation supplied by the caller wins; otherwise one is
    derived from the captured browser details with gateway defaults.
    """
    details = payment.request_details
    if details.device_information is not None:
        return details.device_information

    browser = details.browser_details
    user_agent = details.browser or ""
    defaults = DeviceInformation()
    return DeviceInformation(
        http_browser_language=browser.language or defaults.http_browser_language,
        http_browser_java_enabled=bool(browser.java_enabled),
        http_browser_color_depth=str(browser.color_depth or defaults.http_browser_color_depth),
        http_browser_screen_height=str(
            browser.screen_height or defaults.http_browser_screen_height
        ),
        http_browser_screen_width=str(browser.screen_width or defaults.http_browser_screen_width),
        http_browser_user_agent=user_agent,
        user_agent_browser_value=user_agent,
        ip_address=details.ip_address or "",
    )


def clean_card_number(number: str) -> str:
    return re.sub(r"\s", "", number)


def mask_card_number(number: Optional[str]) -> Optional[str]:
    """Keep the BIN and last four digits, mask the rest."""
    if not number:
        return number
    digits = clean_card_number(number)
    if len(digits) <= 10:
        return "*" * len(digits)
    return f"{digits[:6]}{'*' * (len(digits) - 10)}{digits[-4:]}"
