"""
Tests for the three provider adapters.

PayPal and Netopia run against httpx.MockTransport; the card provider gets
a MagicMock in place of the StripeClient. No real network calls.

Run with: python -m pytest tests/test_payment_providers.py -v
"""

import asyncio
import base64
import decimal
import json
import types
from unittest.mock import MagicMock

import httpx
import pytest
import stripe

from services import signature_service
from services.card_payment_provider import CardPaymentProvider, convert_amount_to_minor_units
from services.netopia_payment_provider import NetopiaPaymentProvider
from services.payment_errors import InvalidRequest, ProviderError
from services.paypal_payment_provider import PayPalPaymentProvider

PAYPAL_BASE_URL = "https://api-m.sandbox.paypal.test"
NETOPIA_BASE_URL = "https://sandbox.netopia.test"


class RecordingTransport:
  """Route table for httpx.MockTransport that keeps every request it saw."""

  def __init__(self, routes):
    self.routes = routes
    self.requests = []

  def __call__(self, request):
    self.requests.append(request)
    handler = self.routes.get(request.url.path)
    if handler is None:
      return httpx.Response(404, json={"name": "RESOURCE_NOT_FOUND"})
    return handler(request)


def _token_ok(request):
  return httpx.Response(200, json={"access_token": "A21-token", "token_type": "Bearer"})


def _paypal_order_created(request):
  return httpx.Response(201, json={
    "id": "O-1",
    "status": "CREATED",
    "links": [
      {"rel": "self", "href": f"{PAYPAL_BASE_URL}/v2/checkout/orders/O-1"},
      {"rel": "approve", "href": "https://www.sandbox.paypal.test/checkoutnow?token=O-1"},
    ],
  })


def _paypal_provider(routes):
  transport = RecordingTransport(routes)
  provider = PayPalPaymentProvider(
    client_id="client-id",
    client_secret="client-secret",
    api_base_url=PAYPAL_BASE_URL,
    http_client=httpx.AsyncClient(transport=httpx.MockTransport(transport)),
  )
  return provider, transport


def _create_paypal_order(provider, amount=decimal.Decimal("19.99")):
  return asyncio.run(provider.create_order(amount, "USD", "Donation", {"campaignId": "c-1"}))


# ===========================================================================
# PayPal
# ===========================================================================

class TestPayPalCreateOrder:

  def test_token_exchange_then_order_creation(self):
    provider, transport = _paypal_provider({
      "/v1/oauth2/token": _token_ok,
      "/v2/checkout/orders": _paypal_order_created,
    })

    result = _create_paypal_order(provider)

    assert result["provider_order_id"] == "O-1"
    assert result["status"] == "CREATED"
    assert result["approval_url"].endswith("token=O-1")

    token_request, order_request = transport.requests
    expected_basic = base64.b64encode(b"client-id:client-secret").decode("ascii")
    assert token_request.headers["authorization"] == f"Basic {expected_basic}"
    assert b"grant_type=client_credentials" in token_request.content
    assert order_request.headers["authorization"] == "Bearer A21-token"

  def test_order_body(self):
    provider, transport = _paypal_provider({
      "/v1/oauth2/token": _token_ok,
      "/v2/checkout/orders": _paypal_order_created,
    })

    _create_paypal_order(provider)

    body = json.loads(transport.requests[1].content)
    assert body["intent"] == "CAPTURE"
    unit = body["purchase_units"][0]
    assert unit["amount"] == {"currency_code": "USD", "value": "19.99"}
    assert unit["custom_id"] == "c-1"

  def test_zero_decimal_currency_value_has_no_fraction(self):
    provider, transport = _paypal_provider({
      "/v1/oauth2/token": _token_ok,
      "/v2/checkout/orders": _paypal_order_created,
    })

    asyncio.run(provider.create_order(decimal.Decimal("500.00"), "JPY", "Donation", {}))

    unit = json.loads(transport.requests[1].content)["purchase_units"][0]
    assert unit["amount"] == {"currency_code": "JPY", "value": "500"}

  def test_each_call_fetches_a_fresh_token(self):
    provider, transport = _paypal_provider({
      "/v1/oauth2/token": _token_ok,
      "/v2/checkout/orders": _paypal_order_created,
    })

    _create_paypal_order(provider)
    _create_paypal_order(provider)

    token_calls = [r for r in transport.requests if r.url.path == "/v1/oauth2/token"]
    assert len(token_calls) == 2

  def test_rejected_token_exchange_is_provider_error(self):
    provider, transport = _paypal_provider({
      "/v1/oauth2/token": lambda request: httpx.Response(401, json={"error": "invalid_client"}),
      "/v2/checkout/orders": _paypal_order_created,
    })

    with pytest.raises(ProviderError):
      _create_paypal_order(provider)
    assert len(transport.requests) == 1

  def test_token_response_without_access_token_is_provider_error(self):
    provider, _ = _paypal_provider({
      "/v1/oauth2/token": lambda request: httpx.Response(200, json={"token_type": "Bearer"}),
    })
    with pytest.raises(ProviderError):
      _create_paypal_order(provider)

  def test_network_error_is_provider_error(self):
    def connection_refused(request):
      raise httpx.ConnectError("connection refused", request=request)

    provider, _ = _paypal_provider({"/v1/oauth2/token": connection_refused})
    with pytest.raises(ProviderError):
      _create_paypal_order(provider)

  def test_rejected_order_creation_is_provider_error(self):
    provider, _ = _paypal_provider({
      "/v1/oauth2/token": _token_ok,
      "/v2/checkout/orders": lambda request: httpx.Response(
        422, json={"name": "UNPROCESSABLE_ENTITY", "details": [{"issue": "CURRENCY_NOT_SUPPORTED"}]},
      ),
    })
    with pytest.raises(ProviderError) as excinfo:
      _create_paypal_order(provider)
    assert "422" in excinfo.value.message
    assert "CURRENCY_NOT_SUPPORTED" not in excinfo.value.message

  def test_order_response_without_id_is_provider_error(self):
    provider, _ = _paypal_provider({
      "/v1/oauth2/token": _token_ok,
      "/v2/checkout/orders": lambda request: httpx.Response(201, json={"status": "CREATED"}),
    })
    with pytest.raises(ProviderError):
      _create_paypal_order(provider)


class TestPayPalCaptureOrder:

  def _capture_response(self, status):
    def handler(request):
      return httpx.Response(201, json={
        "id": "O-1",
        "status": status,
        "payer": {"email_address": "donor@example.org"},
        "purchase_units": [{
          "payments": {"captures": [{"id": "CAP-9", "amount": {"value": "19.99", "currency_code": "USD"}}]},
        }],
      })
    return handler

  def test_completed_capture(self):
    provider, transport = _paypal_provider({
      "/v1/oauth2/token": _token_ok,
      "/v2/checkout/orders/O-1/capture": self._capture_response("COMPLETED"),
    })

    result = asyncio.run(provider.capture_order("O-1"))

    assert result["succeeded"] is True
    assert result["status"] == "COMPLETED"
    assert result["capture_id"] == "CAP-9"
    assert result["captured_amount"] == "19.99"
    assert result["payer_email"] == "donor@example.org"
    assert transport.requests[1].headers["prefer"] == "return=representation"

  def test_non_completed_capture_is_reported_not_raised(self):
    provider, _ = _paypal_provider({
      "/v1/oauth2/token": _token_ok,
      "/v2/checkout/orders/O-1/capture": self._capture_response("DECLINED"),
    })
    result = asyncio.run(provider.capture_order("O-1"))
    assert result["succeeded"] is False
    assert result["status"] == "DECLINED"

  def test_rejected_capture_is_provider_error(self):
    provider, _ = _paypal_provider({
      "/v1/oauth2/token": _token_ok,
      "/v2/checkout/orders/O-1/capture": lambda request: httpx.Response(
        422, json={"name": "UNPROCESSABLE_ENTITY"},
      ),
    })
    with pytest.raises(ProviderError):
      asyncio.run(provider.capture_order("O-1"))


# ===========================================================================
# Netopia
# ===========================================================================

def _netopia_provider(handler):
  transport = RecordingTransport({"/api/payment/init": handler})
  provider = NetopiaPaymentProvider(
    public_key="netopia-public",
    private_key="netopia-private",
    api_base_url=NETOPIA_BASE_URL,
    return_url="https://hopehand.test/payment/success",
    confirm_url="https://hopehand.test/api/netopia/confirm",
    http_client=httpx.AsyncClient(transport=httpx.MockTransport(transport)),
  )
  return provider, transport


class TestNetopiaProvider:

  def test_init_request_is_signed_over_sent_body(self):
    provider, transport = _netopia_provider(
      lambda request: httpx.Response(200, json={"paymentId": 777, "paymentURL": "https://pay.test/777"}),
    )

    result = asyncio.run(provider.create_order(
      decimal.Decimal("100.00"), "RON", "Donatie", {}, order_reference="D-100",
    ))

    assert result["provider_order_id"] == "777"
    assert result["payment_url"] == "https://pay.test/777"

    sent = transport.requests[0]
    assert sent.headers["x-api-key"] == "netopia-public"
    assert sent.headers["x-signature"] == signature_service.sign_payload(sent.content, "netopia-private")

    body = json.loads(sent.content)
    assert body["order"] == {"id": "D-100", "amount": 100.0, "currency": "RON", "details": "Donatie"}
    assert body["url"] == {
      "return": "https://hopehand.test/payment/success",
      "confirm": "https://hopehand.test/api/netopia/confirm",
    }

  def test_missing_order_reference_is_invalid_request(self):
    provider, transport = _netopia_provider(lambda request: httpx.Response(200, json={}))
    with pytest.raises(InvalidRequest):
      asyncio.run(provider.create_order(decimal.Decimal("1.00"), "RON", "", {}))
    assert transport.requests == []

  def test_response_without_payment_id_is_provider_error(self):
    provider, _ = _netopia_provider(lambda request: httpx.Response(200, json={"status": "error"}))
    with pytest.raises(ProviderError):
      asyncio.run(provider.create_order(decimal.Decimal("1.00"), "RON", "", {}, order_reference="D-1"))

  def test_rejected_init_is_provider_error(self):
    provider, _ = _netopia_provider(lambda request: httpx.Response(500, text="internal error"))
    with pytest.raises(ProviderError):
      asyncio.run(provider.create_order(decimal.Decimal("1.00"), "RON", "", {}, order_reference="D-1"))

  def test_capture_is_not_supported(self):
    provider, _ = _netopia_provider(lambda request: httpx.Response(200, json={}))
    assert provider.supports_capture is False
    with pytest.raises(InvalidRequest):
      asyncio.run(provider.capture_order("777"))

  def test_verify_callback(self):
    provider, _ = _netopia_provider(lambda request: httpx.Response(200, json={}))
    raw_body = b'{"paymentId":"777","status":"confirmed","amount":100}'
    signature = signature_service.sign_payload(raw_body, "netopia-private")

    assert provider.verify_callback(raw_body, signature) is True
    assert provider.verify_callback(raw_body + b" ", signature) is False
    assert provider.verify_callback(raw_body, None) is False


# ===========================================================================
# Card (Stripe)
# ===========================================================================

class TestConvertAmountToMinorUnits:

  @pytest.mark.parametrize("amount,currency,expected", [
    (decimal.Decimal("19.99"), "USD", 1999),
    (decimal.Decimal("0.01"), "EUR", 1),
    (decimal.Decimal("100"), "RON", 10000),
    (decimal.Decimal("500"), "JPY", 500),
    (decimal.Decimal("1.5"), "KWD", 1500),
  ])
  def test_conversion(self, amount, currency, expected):
    assert convert_amount_to_minor_units(amount, currency) == expected

  @pytest.mark.parametrize("amount,currency", [
    (decimal.Decimal("19.99"), "JPY"),
    (decimal.Decimal("10.005"), "USD"),
  ])
  def test_fractional_minor_units_are_refused_not_rounded(self, amount, currency):
    with pytest.raises(InvalidRequest):
      convert_amount_to_minor_units(amount, currency)


def _card_provider():
  stripe_client = MagicMock()
  stripe_client.payment_intents.create.return_value = types.SimpleNamespace(
    id="pi_1", status="requires_payment_method", client_secret="pi_1_secret_x",
  )
  stripe_client.payment_intents.capture.return_value = types.SimpleNamespace(
    id="pi_1", status="succeeded", latest_charge="ch_1",
  )
  return CardPaymentProvider(stripe_client), stripe_client


class TestCardProvider:

  def test_create_payment_intent(self):
    provider, stripe_client = _card_provider()

    result = asyncio.run(provider.create_order(
      decimal.Decimal("19.99"), "USD", "Donation", {"campaignId": "c-1"},
    ))

    assert result == {
      "provider_order_id": "pi_1",
      "status": "requires_payment_method",
      "client_secret": "pi_1_secret_x",
    }
    params = stripe_client.payment_intents.create.call_args.kwargs["params"]
    assert params["amount"] == 1999
    assert params["currency"] == "usd"
    assert params["capture_method"] == "manual"
    assert params["metadata"] == {"campaignId": "c-1"}
    assert params["description"] == "Donation"

  def test_empty_description_is_not_sent(self):
    provider, stripe_client = _card_provider()
    asyncio.run(provider.create_order(decimal.Decimal("5.00"), "EUR", "", {}))
    params = stripe_client.payment_intents.create.call_args.kwargs["params"]
    assert "description" not in params

  def test_capture_payment_intent(self):
    provider, stripe_client = _card_provider()

    result = asyncio.run(provider.capture_order("pi_1"))

    stripe_client.payment_intents.capture.assert_called_once_with("pi_1")
    assert result == {"status": "succeeded", "succeeded": True, "capture_id": "ch_1"}

  @pytest.mark.parametrize("stripe_error", [
    stripe.APIConnectionError("Network error"),
    stripe.CardError("Your card was declined.", None, "card_declined"),
    stripe.AuthenticationError("Invalid API key"),
  ])
  def test_stripe_errors_become_provider_errors(self, stripe_error):
    provider, stripe_client = _card_provider()
    stripe_client.payment_intents.create.side_effect = stripe_error
    stripe_client.payment_intents.capture.side_effect = stripe_error

    with pytest.raises(ProviderError):
      asyncio.run(provider.create_order(decimal.Decimal("5.00"), "USD", "", {}))
    with pytest.raises(ProviderError):
      asyncio.run(provider.capture_order("pi_1"))
