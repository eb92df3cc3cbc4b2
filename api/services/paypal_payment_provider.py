"""
HopeHand -- PayPal (wallet) Payment Provider

PayPal REST API v2 integration using direct HTTP calls via httpx.

Endpoints used:
  POST /v1/oauth2/token                  -- get bearer token
  POST /v2/checkout/orders               -- create order
  POST /v2/checkout/orders/{id}/capture  -- capture payment

Every create/capture call fetches its own bearer token first; tokens are
not cached between calls. The httpx client is injected and owned by the
payment runtime, which configures its timeouts.
"""

import logging

import httpx

from services.payment_errors import ProviderError
from services.payment_provider_interface import (
  PaymentProviderInterface,
  PaymentProviderKind,
)
from services.payment_validation import format_amount_for_currency

logger = logging.getLogger("hopehand.paypal")

# PayPal rejects descriptions longer than this.
_PAYPAL_DESCRIPTION_MAX_LENGTH = 127
_PAYPAL_CAPTURE_SUCCESS_STATUSES = frozenset({"COMPLETED"})


class PayPalPaymentProvider(PaymentProviderInterface):
  """PayPal REST API v2 payment provider."""

  provider_kind = PaymentProviderKind.WALLET

  def __init__(self, client_id, client_secret, api_base_url, http_client):
    self.client_id = client_id
    self.client_secret = client_secret
    self.api_base_url = api_base_url.rstrip("/")
    self.http_client = http_client

  # -----------------------------------------------------------------------
  # OAuth2 bearer token
  # -----------------------------------------------------------------------

  async def _get_access_token(self):
    """
    Exchange client credentials for a short-lived PayPal bearer token.
    Uses client_credentials grant with HTTP Basic auth.
    """
    try:
      response = await self.http_client.post(
        f"{self.api_base_url}/v1/oauth2/token",
        auth=(self.client_id, self.client_secret),
        data={"grant_type": "client_credentials"},
        headers={"Accept": "application/json"},
      )
    except httpx.HTTPError as network_error:
      logger.error("PayPal token request failed: %s", network_error)
      raise ProviderError("PayPal token exchange failed") from network_error

    if not response.is_success:
      logger.error(
        "PayPal token request rejected: http_status=%d", response.status_code,
      )
      raise ProviderError(f"PayPal token exchange failed (HTTP {response.status_code})")

    token_data = _parse_json_object(response)
    access_token = token_data.get("access_token") if token_data else None
    if not access_token:
      logger.error("PayPal token response has no access_token")
      raise ProviderError("PayPal token exchange returned no access token")

    return access_token

  async def _auth_headers(self):
    """Get Authorization headers for PayPal API calls."""
    token = await self._get_access_token()
    return {
      "Authorization": f"Bearer {token}",
      "Content-Type": "application/json",
    }

  async def _post_with_token(self, path, json_body, operation, extra_headers=None):
    headers = await self._auth_headers()
    if extra_headers:
      headers.update(extra_headers)

    try:
      response = await self.http_client.post(
        f"{self.api_base_url}{path}",
        json=json_body,
        headers=headers,
      )
    except httpx.HTTPError as network_error:
      logger.error("PayPal %s request failed: %s", operation, network_error)
      raise ProviderError(f"PayPal {operation} failed") from network_error

    if not response.is_success:
      # Body is logged truncated for diagnosis; it never leaves this module.
      logger.error(
        "PayPal %s rejected: http_status=%d, body=%s",
        operation, response.status_code, response.text[:500],
      )
      raise ProviderError(f"PayPal {operation} failed (HTTP {response.status_code})")

    response_data = _parse_json_object(response)
    if response_data is None:
      logger.error("PayPal %s returned a non-JSON body", operation)
      raise ProviderError(f"PayPal {operation} returned an unreadable response")
    return response_data

  # -----------------------------------------------------------------------
  # Create order
  # -----------------------------------------------------------------------

  async def create_order(
    self,
    amount,
    currency,
    description,
    metadata,
    order_reference=None,
  ):
    """
    Create a PayPal order with intent CAPTURE.

    The donor approves it in the PayPal checkout, then the caller asks us
    to capture it.
    """
    purchase_unit = {
      "amount": {
        "currency_code": currency,
        "value": format_amount_for_currency(amount, currency),
      },
      "description": (description or "")[:_PAYPAL_DESCRIPTION_MAX_LENGTH],
    }
    campaign_id = (metadata or {}).get("campaignId")
    if campaign_id:
      purchase_unit["custom_id"] = campaign_id
    if order_reference:
      purchase_unit["reference_id"] = order_reference

    order_data = await self._post_with_token(
      "/v2/checkout/orders",
      {"intent": "CAPTURE", "purchase_units": [purchase_unit]},
      "order creation",
    )

    provider_order_id = order_data.get("id")
    if not provider_order_id:
      logger.error("PayPal order creation returned no order id")
      raise ProviderError("PayPal order creation returned no order id")

    # Find the approval URL from HATEOAS links
    approval_url = None
    for link in order_data.get("links", []):
      if link.get("rel") in ("payer-action", "approve"):
        approval_url = link.get("href")
        break

    logger.info(
      "PayPal order created: order_id=%s, amount=%s %s, status=%s",
      provider_order_id, purchase_unit["amount"]["value"], currency,
      order_data.get("status"),
    )

    return {
      "provider_order_id": provider_order_id,
      "status": order_data.get("status", "CREATED"),
      "approval_url": approval_url,
    }

  # -----------------------------------------------------------------------
  # Capture order
  # -----------------------------------------------------------------------

  async def capture_order(self, provider_order_id):
    """Capture (finalize) a previously approved PayPal order."""
    capture_data = await self._post_with_token(
      f"/v2/checkout/orders/{provider_order_id}/capture",
      {},  # empty body for simple capture
      "capture",
      extra_headers={"Prefer": "return=representation"},
    )

    # Extract capture details from purchase units
    capture_id = None
    captured_amount = None
    for purchase_unit in capture_data.get("purchase_units", []):
      payments = purchase_unit.get("payments", {})
      for capture in payments.get("captures", []):
        capture_id = capture.get("id")
        captured_amount = capture.get("amount", {}).get("value")

    status = capture_data.get("status", "UNKNOWN")

    logger.info(
      "PayPal payment captured: order_id=%s, capture_id=%s, status=%s",
      provider_order_id, capture_id, status,
    )

    return {
      "status": status,
      "succeeded": status in _PAYPAL_CAPTURE_SUCCESS_STATUSES,
      "capture_id": capture_id,
      "captured_amount": captured_amount,
      "payer_email": capture_data.get("payer", {}).get("email_address"),
    }


def _parse_json_object(response):
  """Return the response body as a dict, or None if it isn't a JSON object."""
  try:
    body = response.json()
  except ValueError:
    return None
  return body if isinstance(body, dict) else None
