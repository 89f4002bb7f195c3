"""
Pytest configuration and fixtures.
"""
import json
from typing import Any, Callable, Dict, List, Tuple, Union

import httpx
import pytest
import pytest_asyncio

from rexpay_gateway.config import Settings
from rexpay_gateway.core.models import Payment
from rexpay_gateway.core.orchestrator import PaymentOrchestrator
from rexpay_gateway.core.retry import RetryExecutor
from rexpay_gateway.integrations.rexpay_client import RexpayClient
from rexpay_gateway.monitoring.metrics import PaymentMetrics

GATEWAY_URL = "https://gateway.test"


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "unit: fast tests with no external services")


Reply = Union[Tuple[int, Dict[str, Any]], Callable[[httpx.Request], httpx.Response]]


class FakeGateway:
    """
    Scripted Rexpay gateway for httpx.MockTransport.

    Replies queued for a route are consumed in order; the last one is
    repeated for any further calls.
    """

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], List[Reply]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, path: str, *replies: Reply) -> None:
        self.routes.setdefault((method, path), []).extend(replies)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"status": False, "message": "No route"})

        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(reply):
            return reply(request)
        status_code, body = reply
        return httpx.Response(status_code, json=body)

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [
            r for r in self.requests if r.method == method and r.url.path == path
        ]

    @staticmethod
    def body(request: httpx.Request) -> Dict[str, Any]:
        return json.loads(request.content)

    @staticmethod
    def subaccounts(*subaccounts: Dict[str, Any]) -> Tuple[int, Dict[str, Any]]:
        """Successful /get-subaccount reply."""
        return 200, {"status": True, "message": "ok", "data": list(subaccounts)}

    @staticmethod
    def initialized(
        status: str = "success", transaction_id: str = "txn_123"
    ) -> Tuple[int, Dict[str, Any]]:
        """Successful /v3/initialize reply."""
        return 200, {
            "status": True,
            "message": "Payment initialized",
            "data": {"transaction_id": transaction_id, "status": status, "session_id": "sess_1"},
        }


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        _env_file=None,
        rexpay_url=GATEWAY_URL,
        rexpay_secret_key="sk_test_secret",
        rexpay_api_key="api_test_key",
        rexpay_merchant_id="MID123",
        rexpay_encryption_key="test-encryption-key",
        rexpay_encryption_iv="test-iv",
        system_url="https://merchant.test",
        app_name="rexpay-gateway-test",
        app_env="test",
        log_level="DEBUG",
    )


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def sleeps() -> List[float]:
    """Delays requested by the retry executor."""
    return []


@pytest.fixture
def fake_sleep(sleeps: List[float]) -> Callable[[float], Any]:
    async def _sleep(delay: float) -> None:
        sleeps.append(delay)

    return _sleep


@pytest.fixture
def metrics() -> PaymentMetrics:
    return PaymentMetrics()


@pytest_asyncio.fixture
async def orchestrator(
    test_settings: Settings,
    gateway: FakeGateway,
    fake_sleep: Callable[[float], Any],
    metrics: PaymentMetrics,
) -> Any:
    """Orchestrator wired to the fake gateway with instant retries."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(gateway.handler))
    client = RexpayClient(test_settings, http_client=http_client)
    retry_executor = RetryExecutor(
        test_settings.retry_policy(), metrics=metrics, sleep=fake_sleep
    )
    orchestrator = PaymentOrchestrator(
        test_settings,
        client=client,
        retry_executor=retry_executor,
        metrics=metrics,
    )
    yield orchestrator
    await http_client.aclose()


@pytest.fixture
def sample_payment_data() -> Dict[str, Any]:
    """Sample payment request data."""
    return {
        "reference": "order_123",
        "amount": 1000,
        "currency": "USD",
        "customer": {
            "email": "test@example.com",
            "first_name": "Test",
            "last_name": "User",
            "phone_number": "+15555550100",
        },
        "billing": {
            "address1": "123 Test St",
            "city": "Test City",
            "country": "US",
            "state": "CA",
            "zip_code": "12345",
        },
        "payment_instrument": {
            "type": "card",
            "card": {
                "number": "4111 1111 1111 1111",
                "security_code": "123",
                "expiry": {"month": "12", "year": "30"},
                "name": "Test User",
            },
        },
        "request_details": {
            "browser_details": {
                "language": "en-GB",
                "color_depth": 24,
                "screen_height": 900,
                "screen_width": 1440,
                "java_enabled": True,
            },
            "browser": "Mozilla/5.0",
            "ip_address": "192.168.1.1",
        },
    }


@pytest.fixture
def sample_payment(sample_payment_data: Dict[str, Any]) -> Payment:
    return Payment.model_validate(sample_payment_data)
