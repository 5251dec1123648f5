"""Tests for the Razorpay client, with the HTTP layer mocked out."""

from __future__ import annotations

import httpx
import pytest

from qrpay.core.errors import ProcessorError
from qrpay.services.payments.processor import RazorpayProcessor, Transfer


def _client(handler) -> httpx.Client:
    return httpx.Client(
        base_url="https://api.razorpay.test/v1",
        transport=httpx.MockTransport(handler),
    )


def test_create_order_posts_amount_and_transfers(config):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = request.read()
        return httpx.Response(
            200,
            json={"id": "order_ABC", "amount": 50760, "currency": "INR", "status": "created"},
        )

    processor = RazorpayProcessor(config, client=_client(handler))
    order = processor.create_order(
        amount=50760,
        currency="INR",
        receipt="bill_1",
        notes={"bill_id": "1"},
        transfers=[Transfer(account="acc_1", amount=50220)],
    )

    assert order.reference == "order_ABC"
    assert order.amount == 50760
    assert seen["path"] == "/v1/orders"
    assert b'"account": "acc_1"' in seen["body"] or b'"account":"acc_1"' in seen["body"]


def test_http_error_becomes_processor_error(config):
    processor = RazorpayProcessor(
        config, client=_client(lambda request: httpx.Response(500, json={"error": {}}))
    )
    with pytest.raises(ProcessorError):
        processor.create_order(amount=100, currency="INR", receipt="r", notes={})


def test_network_error_becomes_processor_error(config):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    processor = RazorpayProcessor(config, client=_client(handler))
    with pytest.raises(ProcessorError):
        processor.create_order(amount=100, currency="INR", receipt="r", notes={})


def test_response_without_order_id(config):
    processor = RazorpayProcessor(
        config, client=_client(lambda request: httpx.Response(200, json={"status": "created"}))
    )
    with pytest.raises(ProcessorError):
        processor.create_order(amount=100, currency="INR", receipt="r", notes={})


def test_checkout_params_carry_public_key_only(config):
    processor = RazorpayProcessor(config, client=_client(lambda r: httpx.Response(200)))
    params = processor.checkout_params("order_ABC", 50760, "INR")
    assert params["key"] == config.processor_key_id
    assert params["order_id"] == "order_ABC"
    assert config.processor_key_secret not in params.values()
