"""
HopeHand -- Payments Router

Caller-invoked payment operations. All require a Bearer token.

  POST /api/v1/payments/paypal/orders                      -- createPayPalOrder
  POST /api/v1/payments/paypal/orders/{order_id}/capture   -- capturePayPalPayment
  POST /api/v1/payments/card/orders                        -- create card PaymentIntent
  POST /api/v1/payments/card/orders/{order_id}/capture     -- capture card PaymentIntent
  POST /api/v1/payments/netopia/payments                   -- createNetopiaPayment
  GET  /api/v1/payments/{provider}/orders/{order_id}       -- caller's own order

Request body for order creation (JSON):
  {
    "amount": 19.99,
    "currency": "USD",
    "description": "Donation to ...",
    "metadata": {"campaignId": "..."}
  }
Netopia additionally takes "orderId" (our order reference).
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from routers.response_envelope import (
  error_response,
  outcome_response,
  payment_error_response,
)
from services import auth_dependency, caller_authorization_service
from services.payment_errors import PaymentError
from services.payment_provider_interface import PaymentProviderKind

logger = logging.getLogger("hopehand.payments")

router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


def _get_orchestrator(request):
  return request.app.state.payment_orchestrator


async def _authenticate_payment_caller(request):
  """Returns the caller uid, or a JSONResponse to send back as-is."""
  identity_or_error = await auth_dependency.require_valid_bearer_token(request)
  if isinstance(identity_or_error, JSONResponse):
    return identity_or_error
  try:
    return caller_authorization_service.authorize_caller(
      identity_or_error, caller_authorization_service.CAPABILITY_MAKE_PAYMENT,
    )
  except PaymentError as authorization_error:
    return payment_error_response(authorization_error)


async def _read_json_object_body(request):
  """Returns the body dict, or a JSONResponse to send back as-is."""
  try:
    body = await request.json()
  except ValueError:
    return error_response(400, "INVALID_JSON", "Request body must be valid JSON")
  if not isinstance(body, dict):
    return error_response(400, "INVALID_JSON", "Request body must be a JSON object")
  return body


async def _create_order_for_provider(request, provider_kind):
  caller_uid_or_error = await _authenticate_payment_caller(request)
  if isinstance(caller_uid_or_error, JSONResponse):
    return caller_uid_or_error

  body = await _read_json_object_body(request)
  if isinstance(body, JSONResponse):
    return body

  outcome = await _get_orchestrator(request).create_order(
    provider_kind,
    amount=body.get("amount"),
    currency=body.get("currency"),
    description=body.get("description"),
    metadata=body.get("metadata"),
    created_by=caller_uid_or_error,
  )
  return outcome_response(outcome, success_status_code=201)


async def _capture_order_for_provider(request, provider_kind, order_id):
  caller_uid_or_error = await _authenticate_payment_caller(request)
  if isinstance(caller_uid_or_error, JSONResponse):
    return caller_uid_or_error

  outcome = await _get_orchestrator(request).capture_order(provider_kind, order_id)
  return outcome_response(outcome)


# =========================================================================
# PayPal (wallet)
# =========================================================================

@router.post("/paypal/orders")
async def create_paypal_order(request: Request):
  """createPayPalOrder -- returns the PayPal order id and approval URL."""
  return await _create_order_for_provider(request, PaymentProviderKind.WALLET)


@router.post("/paypal/orders/{order_id}/capture")
async def capture_paypal_payment(order_id: str, request: Request):
  """capturePayPalPayment -- captures an approved PayPal order."""
  return await _capture_order_for_provider(request, PaymentProviderKind.WALLET, order_id)


# =========================================================================
# Stripe (card)
# =========================================================================

@router.post("/card/orders")
async def create_card_payment(request: Request):
  """Creates a manual-capture PaymentIntent; returns its client_secret."""
  return await _create_order_for_provider(request, PaymentProviderKind.CARD)


@router.post("/card/orders/{order_id}/capture")
async def capture_card_payment(order_id: str, request: Request):
  return await _capture_order_for_provider(request, PaymentProviderKind.CARD, order_id)


# =========================================================================
# Netopia (redirect)
# =========================================================================

@router.post("/netopia/payments")
async def create_netopia_payment(request: Request):
  """
  createNetopiaPayment -- signs and submits the payment-init request.
  Final status arrives later on /api/netopia/confirm.
  """
  caller_uid_or_error = await _authenticate_payment_caller(request)
  if isinstance(caller_uid_or_error, JSONResponse):
    return caller_uid_or_error

  body = await _read_json_object_body(request)
  if isinstance(body, JSONResponse):
    return body

  outcome = await _get_orchestrator(request).create_redirect_payment(
    order_reference=body.get("orderId"),
    amount=body.get("amount"),
    currency=body.get("currency"),
    description=body.get("description"),
    metadata=body.get("metadata"),
    created_by=caller_uid_or_error,
  )
  return outcome_response(outcome, success_status_code=201)


# =========================================================================
# Lookup
# =========================================================================

@router.get("/{provider_name}/orders/{order_id}")
async def get_payment_order(provider_name: str, order_id: str, request: Request):
  """The caller's own order as recorded in the ledger."""
  caller_uid_or_error = await _authenticate_payment_caller(request)
  if isinstance(caller_uid_or_error, JSONResponse):
    return caller_uid_or_error

  provider_kind = PaymentProviderKind.from_route_name(provider_name)
  if provider_kind is None:
    return error_response(404, "UNKNOWN_PROVIDER", f"Unknown payment provider '{provider_name}'")

  outcome = _get_orchestrator(request).get_order(provider_kind, order_id, caller_uid_or_error)
  return outcome_response(outcome)
