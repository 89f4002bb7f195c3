"""
Async HTTP/JSON client for the Rexpay card gateway.

A thin transport adapter: one method per gateway call, bearer-token
and merchant-id headers on every request, and ``raise_for_status`` so
that failures reach the retry layer as httpx exceptions.
"""
from types import TracebackType
from typing import Any, Dict, List, Optional, Type

import httpx
import structlog

from rexpay_gateway.config import Settings
from rexpay_gateway.integrations.schemas import (
    ChargeResponse,
    FinalizeResponse,
    GetPaymentResponse,
    GetSubaccountsResponse,
    InitializeResponse,
    RefundResponse,
    SubaccountData,
)

logger = structlog.get_logger(__name__)


class RexpayClient:
    """
    Wrapper for the Rexpay REST API.

    Subaccount listing and refunds authenticate with the platform secret
    key; the payment calls authenticate with the merchant API key.
    """

    def __init__(
        self,
        settings: Settings,
        merchant_id: Optional[str] = None,
        api_key: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize Rexpay client.

        Args:
            settings: Gateway settings
            merchant_id: Merchant id (defaults to settings)
            api_key: Merchant API key (defaults to settings)
            http_client: Optional pre-built httpx client
        """
        self.base_url = settings.rexpay_url
        self.secret_key = settings.rexpay_secret_key
        self.merchant_id = merchant_id if merchant_id is not None else settings.rexpay_merchant_id
        self.api_key = api_key if api_key is not None else settings.rexpay_api_key
        self.timeout = httpx.Timeout(settings.request_timeout_seconds)
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=self.timeout)

    def _headers(self, token: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "X-Merchant-ID": self.merchant_id,
        }

    async def _request(
        self,
        method: str,
        path: str,
        token: str,
        payload: Optional[Dict[str, Any]] = None,
        lenient_body: bool = False,
    ) -> Dict[str, Any]:
        response = await self._client.request(
            method,
            f"{self.base_url}{path}",
            headers=self._headers(token),
            json=payload,
            timeout=self.timeout,
        )
        logger.debug(
            "gateway_response_received",
            method=method,
            path=path,
            status_code=response.status_code,
        )
        response.raise_for_status()
        if not response.content:
            return {}
        if not lenient_body:
            return response.json()

        # Callers that only care about the HTTP outcome accept any 2xx body
        try:
            body = response.json()
        except ValueError:
            logger.warning("gateway_body_not_json", method=method, path=path)
            return {}
        return body if isinstance(body, dict) else {}

    async def list_subaccounts(self) -> List[SubaccountData]:
        """GET /get-subaccount"""
        body = await self._request("GET", "/get-subaccount", self.secret_key)
        return GetSubaccountsResponse.model_validate(body).data

    async def initialize(self, payload: Dict[str, Any]) -> InitializeResponse:
        """POST /v3/initialize"""
        body = await self._request("POST", "/v3/initialize", self.api_key, payload)
        return InitializeResponse.model_validate(body)

    async def charge(self, payload: Dict[str, Any]) -> ChargeResponse:
        """POST /v2/charge"""
        body = await self._request("POST", "/v2/charge", self.api_key, payload)
        return ChargeResponse.model_validate(body)

    async def retrieve(self, payment_id: str) -> GetPaymentResponse:
        """GET /v3/payments/{id}"""
        body = await self._request("GET", f"/v3/payments/{payment_id}", self.api_key)
        return GetPaymentResponse.model_validate(body)

    async def finalize(self, payment_id: str) -> FinalizeResponse:
        """POST /v2/payments/{id}/finalize"""
        body = await self._request(
            "POST", f"/v2/payments/{payment_id}/finalize", self.api_key, {}, lenient_body=True
        )
        return FinalizeResponse.model_validate(body)

    async def refund(self, payload: Dict[str, Any]) -> RefundResponse:
        """POST /v2/refund/initiate"""
        body = await self._request("POST", "/v2/refund/initiate", self.secret_key, payload)
        return RefundResponse.model_validate(body)

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "RexpayClient":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.aclose()
