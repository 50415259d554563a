"""
Webhook Signature and Decoding - Unit Tests
"""

import pytest

from microservices.order_service.clients.razorpay_client import (
    parse_webhook_event, verify_webhook_signature,
)
from microservices.order_service.models import WebhookEventType
from microservices.order_service.protocols import OrderValidationError
from tests.fixtures import (
    WEBHOOK_SECRET, make_order_paid_webhook, make_payment_webhook, sign_body,
)

pytestmark = [pytest.mark.unit]


class TestVerifyWebhookSignature:

    def test_accepts_exact_match(self):
        body = make_payment_webhook("payment.captured", "order_abc")
        assert verify_webhook_signature(body, sign_body(body), WEBHOOK_SECRET)

    def test_rejects_flipped_body_bit(self):
        body = make_payment_webhook("payment.captured", "order_abc")
        signature = sign_body(body)
        tampered = bytearray(body)
        tampered[10] ^= 0x01
        assert not verify_webhook_signature(bytes(tampered), signature, WEBHOOK_SECRET)

    def test_rejects_flipped_signature_bit(self):
        body = make_payment_webhook("payment.captured", "order_abc")
        signature = bytearray(sign_body(body).encode("ascii"))
        signature[0] ^= 0x01
        assert not verify_webhook_signature(body, signature.decode("latin-1"), WEBHOOK_SECRET)

    def test_rejects_wrong_secret(self):
        body = make_payment_webhook("payment.captured", "order_abc")
        assert not verify_webhook_signature(body, sign_body(body, "other"), WEBHOOK_SECRET)

    def test_rejects_reserialized_body(self):
        body = make_payment_webhook("payment.captured", "order_abc")
        reformatted = body.replace(b'": ', b'":')
        assert reformatted != body
        assert not verify_webhook_signature(reformatted, sign_body(body), WEBHOOK_SECRET)

    @pytest.mark.parametrize("signature", [None, "", "abc"])
    def test_rejects_missing_or_short_signature(self, signature):
        body = make_payment_webhook("payment.captured", "order_abc")
        assert not verify_webhook_signature(body, signature, WEBHOOK_SECRET)

    def test_rejects_without_secret(self):
        body = make_payment_webhook("payment.captured", "order_abc")
        assert not verify_webhook_signature(body, sign_body(body), None)


class TestParseWebhookEvent:

    def test_payment_captured(self):
        body = make_payment_webhook("payment.captured", "order_abc", payment_id="pay_1", amount=49900)
        event = parse_webhook_event(body)
        assert event.kind == WebhookEventType.PAYMENT_CAPTURED
        assert event.payment.id == "pay_1"
        assert event.payment.amount == 49900
        assert event.gateway_order_id == "order_abc"

    def test_payment_failed_carries_error(self):
        body = make_payment_webhook(
            "payment.failed", "order_abc",
            error_code="BAD_REQUEST_ERROR", error_description="Card declined",
        )
        event = parse_webhook_event(body)
        assert event.kind == WebhookEventType.PAYMENT_FAILED
        assert event.payment.error_description == "Card declined"

    def test_order_paid_prefers_order_entity(self):
        event = parse_webhook_event(make_order_paid_webhook("order_xyz"))
        assert event.kind == WebhookEventType.ORDER_PAID
        assert event.order.id == "order_xyz"
        assert event.gateway_order_id == "order_xyz"

    def test_unknown_event_is_accepted(self):
        event = parse_webhook_event(b'{"event": "refund.processed", "payload": {}}')
        assert event.kind is None
        assert event.event == "refund.processed"

    @pytest.mark.parametrize("body", [b"not json", b"[]", b'{"payload": {}}'])
    def test_malformed_body(self, body):
        with pytest.raises(OrderValidationError):
            parse_webhook_event(body)
