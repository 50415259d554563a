"""
Order Service component fixtures

Real flat-file stores on a temporary directory, mocked provider clients.
"""
import pytest

from microservices.order_service.activity_repository import ActivityRepository
from microservices.order_service.models import OrderCreateRequest
from microservices.order_service.order_repository import OrderRepository
from microservices.order_service.order_service import OrderService
from microservices.order_service.tracking_service import TrackingService
from tests.fixtures import make_order_create_request

from .mocks import MockNotifier, MockPaymentGateway, MockShippingCarrier


@pytest.fixture
def order_repository(data_dir):
    return OrderRepository(data_dir=data_dir)


@pytest.fixture
def activity_repository(data_dir):
    return ActivityRepository(data_dir=data_dir, max_entries=5000)


@pytest.fixture
def mock_gateway():
    return MockPaymentGateway()


@pytest.fixture
def mock_carrier():
    return MockShippingCarrier()


@pytest.fixture
def mock_notifier():
    return MockNotifier()


@pytest.fixture
def service(order_repository, activity_repository, mock_gateway, mock_carrier, mock_notifier):
    """OrderService wired to the real stores and mocked providers"""
    return OrderService(
        repository=order_repository,
        activity=activity_repository,
        payment_gateway=mock_gateway,
        carrier=mock_carrier,
        notifier=mock_notifier,
        default_pickup_pincode="590001",
    )


@pytest.fixture
def tracking(order_repository, activity_repository):
    return TrackingService(repository=order_repository, activity=activity_repository)


@pytest.fixture
def pdf_request():
    return OrderCreateRequest(**make_order_create_request("pdf", amount=499))


@pytest.fixture
def print_request():
    return OrderCreateRequest(**make_order_create_request("print", amount=999))
