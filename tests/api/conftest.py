"""
API Test Layer Configuration

HTTP contract tests: the FastAPI app runs in-process behind
httpx.ASGITransport, with the service dependencies overridden to use real
flat-file stores in a temporary directory and mocked providers.

Usage:
    pytest tests/api -v                    # Run all API tests
    pytest tests/api -v -k "webhook"       # Run webhook API tests
    pytest tests/api -v --tb=short         # Short traceback
"""

from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio

from microservices.order_service import main
from microservices.order_service.activity_repository import ActivityRepository
from microservices.order_service.order_repository import OrderRepository
from microservices.order_service.order_service import OrderService
from microservices.order_service.tracking_service import TrackingService
from tests.component.order_service.mocks import (
    MockNotifier, MockPaymentGateway, MockShippingCarrier,
)


# =============================================================================
# Configuration
# =============================================================================


class APITestConfig:
    """API test configuration"""

    BASE_URL = "http://orders.test"
    HTTP_TIMEOUT = 30.0


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def mock_gateway():
    return MockPaymentGateway()


@pytest.fixture
def mock_carrier():
    return MockShippingCarrier()


@pytest.fixture
def services(data_dir, mock_gateway, mock_carrier):
    """(OrderService, TrackingService) sharing one set of stores"""
    repository = OrderRepository(data_dir=data_dir)
    activity = ActivityRepository(data_dir=data_dir)
    order_service = OrderService(
        repository=repository,
        activity=activity,
        payment_gateway=mock_gateway,
        carrier=mock_carrier,
        notifier=MockNotifier(),
    )
    return order_service, TrackingService(repository=repository, activity=activity)


# =============================================================================
# HTTP Client Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def http_client(services) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Async HTTP client bound to the app with overridden dependencies"""
    order_service, tracking_service = services
    main.app.dependency_overrides[main.get_order_service] = lambda: order_service
    main.app.dependency_overrides[main.get_tracking_service] = lambda: tracking_service

    transport = httpx.ASGITransport(app=main.app)
    async with httpx.AsyncClient(
        transport=transport,
        base_url=APITestConfig.BASE_URL,
        timeout=APITestConfig.HTTP_TIMEOUT,
    ) as client:
        yield client

    main.app.dependency_overrides.clear()


class APIClient:
    """Base API client for service testing"""

    def __init__(self, http_client: httpx.AsyncClient, api_path: str):
        self.client = http_client
        self.api_path = api_path

    async def get(self, path: str = "", **kwargs) -> httpx.Response:
        return await self.client.get(f"{self.api_path}{path}", **kwargs)

    async def post(self, path: str = "", **kwargs) -> httpx.Response:
        return await self.client.post(f"{self.api_path}{path}", **kwargs)

    async def get_raw(self, path: str = "", **kwargs) -> httpx.Response:
        """GET request to raw path (bypasses api_path)"""
        return await self.client.get(path, **kwargs)


@pytest_asyncio.fixture
async def orders_api(http_client: httpx.AsyncClient) -> APIClient:
    return APIClient(http_client, "/api/orders")


@pytest_asyncio.fixture
async def webhooks_api(http_client: httpx.AsyncClient) -> APIClient:
    return APIClient(http_client, "/api/webhooks")


@pytest_asyncio.fixture
async def shipments_api(http_client: httpx.AsyncClient) -> APIClient:
    return APIClient(http_client, "/api/shipments")


@pytest_asyncio.fixture
async def tracking_api(http_client: httpx.AsyncClient) -> APIClient:
    return APIClient(http_client, "/api/tracking")


# =============================================================================
# Assertions
# =============================================================================


class APIAssertions:
    """Common API assertions"""

    @staticmethod
    def assert_success(response: httpx.Response, expected_status: int = 200):
        assert response.status_code == expected_status, (
            f"Expected {expected_status}, got {response.status_code}: {response.text}"
        )

    @staticmethod
    def assert_error(response: httpx.Response, expected_status: int, error: str = None):
        assert response.status_code == expected_status, (
            f"Expected {expected_status}, got {response.status_code}: {response.text}"
        )
        body = response.json()
        assert "error" in body
        if error is not None:
            assert body["error"] == error
