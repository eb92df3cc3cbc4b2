"""
HopeHand -- Netopia (redirect) Payment Provider

The donor is redirected to Netopia to pay. Netopia later POSTs a signed
confirmation to our confirm URL (see routers/webhooks.py).

Outbound:
  POST /api/payment/init
    headers: X-API-KEY (public key id), X-SIGNATURE (HMAC-SHA256, hex)
    body:    {"order": {...}, "url": {"return": ..., "confirm": ...}}

Inbound:
  X-SIGNATURE = HMAC-SHA256(raw request body, private key)
"""

import logging

import httpx

from services import signature_service
from services.payment_errors import InvalidRequest, ProviderError
from services.payment_provider_interface import (
  PaymentProviderInterface,
  PaymentProviderKind,
)

logger = logging.getLogger("hopehand.netopia")


class NetopiaPaymentProvider(PaymentProviderInterface):
  """Netopia redirect processor with HMAC-signed requests and callbacks."""

  provider_kind = PaymentProviderKind.REDIRECT
  supports_capture = False
  supports_callback = True

  def __init__(
    self,
    public_key,
    private_key,
    api_base_url,
    return_url,
    confirm_url,
    http_client,
  ):
    self.public_key = public_key
    self.private_key = private_key
    self.api_base_url = api_base_url.rstrip("/")
    self.return_url = return_url
    self.confirm_url = confirm_url
    self.http_client = http_client

  def build_payment_request(self, order_reference, amount, currency, description):
    """The payment-init payload, in the field order Netopia signs."""
    return {
      "order": {
        "id": order_reference,
        "amount": float(amount),
        "currency": currency,
        "details": description,
      },
      "url": {
        "return": self.return_url,
        "confirm": self.confirm_url,
      },
    }

  async def create_order(
    self,
    amount,
    currency,
    description,
    metadata,
    order_reference=None,
  ):
    """
    Initialize a Netopia payment. Returns the provider's paymentId as
    provider_order_id, its status, and the URL to redirect the donor to.
    """
    if not order_reference:
      raise InvalidRequest("'orderId' is required for Netopia payments")

    payment_request = self.build_payment_request(
      order_reference, amount, currency, description,
    )
    serialized_request = signature_service.serialize_payload_for_signing(payment_request)
    signature = signature_service.sign_payload(serialized_request, self.private_key)

    try:
      response = await self.http_client.post(
        f"{self.api_base_url}/api/payment/init",
        content=serialized_request,
        headers={
          "Content-Type": "application/json",
          "X-API-KEY": self.public_key,
          "X-SIGNATURE": signature,
        },
      )
    except httpx.HTTPError as network_error:
      logger.error(
        "Netopia payment init failed: order_reference=%s, error=%s",
        order_reference, network_error,
      )
      raise ProviderError("Netopia payment initialization failed") from network_error

    if not response.is_success:
      logger.error(
        "Netopia payment init rejected: order_reference=%s, http_status=%d, body=%s",
        order_reference, response.status_code, response.text[:500],
      )
      raise ProviderError(
        f"Netopia payment initialization failed (HTTP {response.status_code})"
      )

    try:
      init_result = response.json()
    except ValueError as decode_error:
      logger.error("Netopia payment init returned a non-JSON body: order_reference=%s", order_reference)
      raise ProviderError("Netopia payment initialization returned an unreadable response") from decode_error

    payment_id = init_result.get("paymentId") if isinstance(init_result, dict) else None
    if not payment_id:
      logger.error("Netopia payment init returned no paymentId: order_reference=%s", order_reference)
      raise ProviderError("Netopia payment initialization returned no paymentId")

    logger.info(
      "Netopia payment initialized: payment_id=%s, order_reference=%s, amount=%s %s",
      payment_id, order_reference, amount, currency,
    )

    return {
      "provider_order_id": str(payment_id),
      "status": init_result.get("status", "initialized"),
      "payment_url": init_result.get("paymentURL") or init_result.get("paymentUrl"),
    }

  async def capture_order(self, provider_order_id):
    # Netopia settles on its side and tells us through the confirm callback.
    raise InvalidRequest("Netopia payments are confirmed by callback, not captured")

  def verify_callback(self, raw_body, supplied_signature):
    """Check an inbound confirmation's X-SIGNATURE against its raw body."""
    return signature_service.verify_payload_signature(
      raw_body, self.private_key, supplied_signature,
    )
