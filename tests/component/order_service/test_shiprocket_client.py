"""
Shiprocket Client Component Tests

Session caching, re-authentication and retry behaviour against an
in-process httpx.MockTransport.
"""
import asyncio
import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import httpx
import pytest

from core.config import ShiprocketConfig
from microservices.order_service.clients import ShiprocketClient
from microservices.order_service.models import (
    CarrierShipmentRequest, PackageType, ShippingAddress,
)
from microservices.order_service.protocols import (
    CarrierAuthError, CarrierRejectedError, CarrierUnavailableError,
)

pytestmark = [pytest.mark.component, pytest.mark.asyncio]

BASE_URL = "https://carrier.test/v1/external"


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 3, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeShiprocket:
    """Scriptable Shiprocket API; responses per path are consumed in order"""

    def __init__(self):
        self.requests = []
        self.logins = 0
        self.login_delay = 0.0
        self.login_response = None
        self.scripted = {}

    def script(self, path: str, *responses: httpx.Response):
        self.scripted.setdefault(path, []).extend(responses)

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.replace("/v1/external", "", 1)
        self.requests.append((request.method, path, request))

        if path == "/auth/login":
            self.logins += 1
            if self.login_delay:
                await asyncio.sleep(self.login_delay)
            if self.login_response is not None:
                return self.login_response
            return httpx.Response(200, json={"token": f"token-{self.logins}"})

        queue = self.scripted.get(path)
        if queue:
            return queue.pop(0)
        if path.startswith("/courier/track/awb/"):
            return httpx.Response(200, json={"tracking_data": {"track_status": 1}})
        if path == "/courier/serviceability/":
            return httpx.Response(200, json={"data": {"available_courier_companies": [{"courier_name": "Delhivery"}]}})
        if path == "/orders/create/adhoc":
            return httpx.Response(200, json={
                "order_id": 123456, "shipment_id": 654321, "awb_code": "", "courier_name": "",
            })
        return httpx.Response(404, json={"message": "Not found"})

    def calls(self, path: str):
        return [r for m, p, r in self.requests if p == path]


@pytest.fixture
def fake_api():
    return FakeShiprocket()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def client(fake_api, clock):
    config = ShiprocketConfig(api_url=BASE_URL, email="ops@example.com", password="secret")
    return ShiprocketClient(
        config,
        transport=httpx.MockTransport(fake_api),
        clock=clock,
        read_attempts=3,
        retry_backoff=0,
    )


def make_carrier_request() -> CarrierShipmentRequest:
    return CarrierShipmentRequest(
        order_id="order_abc",
        order_date="2024-03-01",
        customer_name="Asha Rao",
        customer_email="asha@example.com",
        customer_phone="9876543210",
        address=ShippingAddress(line1="12 MG Road", city="Belagavi", state="Karnataka", pincode="590006"),
        package_type=PackageType.PRINT,
        amount=Decimal("999.00"),
    )


class TestSession:

    async def test_token_reused_within_ttl(self, client, fake_api, clock):
        await client.track_shipment("AWB1")
        clock.advance(hours=23)
        await client.track_shipment("AWB2")

        assert fake_api.logins == 1
        for request in fake_api.calls("/courier/track/awb/AWB2"):
            assert request.headers["Authorization"] == "Bearer token-1"

    async def test_expired_token_refreshed(self, client, fake_api, clock):
        await client.track_shipment("AWB1")
        clock.advance(hours=24, seconds=1)
        await client.track_shipment("AWB2")

        assert fake_api.logins == 2
        assert fake_api.calls("/courier/track/awb/AWB2")[0].headers["Authorization"] == "Bearer token-2"

    async def test_login_sends_credentials(self, client, fake_api):
        await client.ensure_authenticated()

        body = json.loads(fake_api.calls("/auth/login")[0].content)
        assert body == {"email": "ops@example.com", "password": "secret"}

    async def test_concurrent_callers_share_one_login(self, client, fake_api):
        fake_api.login_delay = 0.01

        await asyncio.gather(*(client.track_shipment(f"AWB{i}") for i in range(5)))

        assert fake_api.logins == 1

    async def test_401_reauthenticates_once(self, client, fake_api):
        fake_api.script("/courier/track/awb/AWB1", httpx.Response(401, json={"message": "Token expired"}))

        data = await client.track_shipment("AWB1")

        assert data["tracking_data"]["track_status"] == 1
        assert fake_api.logins == 2
        headers = [r.headers["Authorization"] for r in fake_api.calls("/courier/track/awb/AWB1")]
        assert headers == ["Bearer token-1", "Bearer token-2"]

    async def test_repeated_401_is_rejected(self, client, fake_api):
        fake_api.script(
            "/orders/create/adhoc",
            httpx.Response(401, json={"message": "Unauthorized"}),
            httpx.Response(401, json={"message": "Unauthorized"}),
        )

        with pytest.raises(CarrierRejectedError):
            await client.create_shipment(make_carrier_request())

        assert fake_api.logins == 2
        assert len(fake_api.calls("/orders/create/adhoc")) == 2

    async def test_bad_credentials(self, client, fake_api):
        fake_api.login_response = httpx.Response(403, json={"message": "Invalid email and password combination"})

        with pytest.raises(CarrierAuthError):
            await client.ensure_authenticated()

    async def test_login_without_token(self, client, fake_api):
        fake_api.login_response = httpx.Response(200, json={"id": 1})

        with pytest.raises(CarrierAuthError):
            await client.ensure_authenticated()

    async def test_login_server_error(self, client, fake_api):
        fake_api.login_response = httpx.Response(502, text="Bad gateway")

        with pytest.raises(CarrierUnavailableError):
            await client.ensure_authenticated()


class TestRetries:

    async def test_reads_retry_on_server_error(self, client, fake_api):
        fake_api.script(
            "/courier/track/awb/AWB1",
            httpx.Response(503, text="unavailable"),
            httpx.Response(503, text="unavailable"),
        )

        data = await client.track_shipment("AWB1")

        assert data["tracking_data"]["track_status"] == 1
        assert len(fake_api.calls("/courier/track/awb/AWB1")) == 3

    async def test_reads_give_up_after_attempts(self, client, fake_api):
        fake_api.script("/courier/serviceability/", *(httpx.Response(500, text="boom") for _ in range(3)))

        with pytest.raises(CarrierUnavailableError):
            await client.check_serviceability("590001", "560001")

        assert len(fake_api.calls("/courier/serviceability/")) == 3

    async def test_reads_do_not_retry_rejections(self, client, fake_api):
        fake_api.script("/courier/track/awb/BAD", httpx.Response(422, json={"message": "Invalid AWB"}))

        with pytest.raises(CarrierRejectedError):
            await client.track_shipment("BAD")

        assert len(fake_api.calls("/courier/track/awb/BAD")) == 1

    async def test_create_is_not_retried(self, client, fake_api):
        fake_api.script("/orders/create/adhoc", httpx.Response(503, text="unavailable"))

        with pytest.raises(CarrierUnavailableError):
            await client.create_shipment(make_carrier_request())

        assert len(fake_api.calls("/orders/create/adhoc")) == 1


class TestOperations:

    async def test_create_shipment_payload(self, client, fake_api):
        shipment = await client.create_shipment(make_carrier_request())

        assert shipment.order_id == "123456"
        assert shipment.shipment_id == "654321"
        assert shipment.awb_code is None

        payload = json.loads(fake_api.calls("/orders/create/adhoc")[0].content)
        assert payload["order_id"] == "order_abc"
        assert payload["pickup_location"] == "work"
        assert payload["billing_pincode"] == "590006"
        assert payload["payment_method"] == "Prepaid"
        assert payload["sub_total"] == 999.0
        assert payload["weight"] == 0.5
        assert payload["order_items"][0]["sku"] == "JM_BOOK_001"

    async def test_serviceability(self, client, fake_api):
        couriers = await client.check_serviceability("590001", "560001", weight=1.0)

        assert couriers == [{"courier_name": "Delhivery"}]
        params = fake_api.calls("/courier/serviceability/")[0].url.params
        assert params["pickup_postcode"] == "590001"
        assert params["delivery_postcode"] == "560001"
        assert params["cod"] == "0"

    async def test_network_error(self, clock):
        async def handler(request):
            if request.url.path.endswith("/auth/login"):
                return httpx.Response(200, json={"token": "t"})
            raise httpx.ConnectError("connection refused", request=request)

        client = ShiprocketClient(
            ShiprocketConfig(api_url=BASE_URL),
            transport=httpx.MockTransport(handler),
            clock=clock,
            read_attempts=1,
        )
        with pytest.raises(CarrierUnavailableError):
            await client.track_shipment("AWB1")
        await client.close()
