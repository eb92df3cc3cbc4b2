"""
HopeHand -- Payment Order Orchestrator

Drives a payment order through its lifecycle across the three providers
and keeps the ledger in step:

  create_order            validate -> provider create -> ledger insert (Created)
  capture_order           ledger lookup -> capture lease -> provider capture
                          -> guarded Created -> Captured (or Failed)
  create_redirect_payment create_order for Netopia with our order reference
  handle_confirmation     verify signature -> ledger update from callback

Rules:
  - validation happens before any network call
  - a ledger write only happens after the provider call has concluded
  - provider calls are never retried here; callers may resubmit
  - every public method returns a PaymentOutcome and does not raise for
    expected failures

Known gap, kept on purpose: if the provider accepts an order or capture
and the ledger write that follows fails, the money has moved but the
ledger does not show it. That case is logged at ERROR with everything
needed to reconcile by hand and is reported to the caller as
ProviderError.
"""

import decimal
import json
import logging

from services import payment_ledger_service
from services.payment_errors import (
  InvalidRequest,
  InvalidSignature,
  LedgerUnavailable,
  OrderConflict,
  OrderNotFound,
  PaymentError,
  PaymentOutcome,
  ProviderError,
)
from services.payment_provider_interface import PaymentProviderKind
from services.payment_validation import validate_payment_request

logger = logging.getLogger("hopehand.orchestrator")

_ORDER_REFERENCE_MAX_LENGTH = 128


class PaymentOrderOrchestrator:
  """Provider-agnostic payment order state machine."""

  def __init__(self, providers, ledger):
    """
    Args:
      providers: dict of PaymentProviderKind -> PaymentProviderInterface.
        Kinds that are not configured are simply absent.
      ledger: a PaymentLedger.
    """
    self.providers = dict(providers)
    self.ledger = ledger

  def _get_provider(self, provider_kind):
    provider = self.providers.get(provider_kind)
    if provider is None:
      raise InvalidRequest(f"Payment provider '{provider_kind.value}' is not available")
    return provider

  # -----------------------------------------------------------------------
  # Create
  # -----------------------------------------------------------------------

  async def create_order(
    self,
    provider_kind,
    amount,
    currency,
    description,
    metadata,
    created_by,
    order_reference=None,
  ):
    """
    Create an order with the provider and record it as Created.
    On provider failure nothing is written to the ledger.
    """
    try:
      provider = self._get_provider(provider_kind)
      amount, currency, description, metadata = validate_payment_request(
        amount, currency, description, metadata,
      )
      logger.info(
        "Payment order %s: provider=%s, amount=%s %s, order_reference=%s, created_by=%s",
        payment_ledger_service.ORDER_STATUS_INITIALIZED, provider_kind.value,
        amount, currency, order_reference, created_by,
      )
      provider_result = await provider.create_order(
        amount, currency, description, metadata, order_reference=order_reference,
      )
    except PaymentError as create_error:
      logger.warning(
        "Order creation failed before any ledger write: provider=%s, error=%s: %s",
        provider_kind.value, create_error.code, create_error.message,
      )
      return PaymentOutcome.failure(create_error)

    provider_order_id = provider_result["provider_order_id"]

    try:
      internal_id = self.ledger.generate_unique_internal_id()
      recorded_order = self.ledger.record_order(
        internal_id=internal_id,
        provider=provider_kind.value,
        provider_order_id=provider_order_id,
        amount=amount,
        currency=currency,
        description=description,
        metadata=metadata,
        provider_status=provider_result.get("status"),
        created_by=created_by,
        order_reference=order_reference,
      )
    except Exception as ledger_error:
      logger.error(
        "Provider accepted order but ledger write failed: provider=%s, provider_order_id=%s, "
        "amount=%s %s, created_by=%s, error=%s. MANUAL RECONCILIATION REQUIRED.",
        provider_kind.value, provider_order_id, amount, currency, created_by, ledger_error,
      )
      return PaymentOutcome.failure(
        ProviderError("Payment order was created but could not be recorded")
      )

    order_data = {
      "internal_id": recorded_order["internal_id"],
      "provider": recorded_order["provider"],
      "provider_order_id": provider_order_id,
      "status": recorded_order["status"],
      "provider_status": provider_result.get("status"),
      "amount": amount,
      "currency": currency,
    }
    # Provider-specific hand-off data for the client (approval/redirect URL, client secret)
    for extra_key in ("approval_url", "payment_url", "client_secret"):
      if provider_result.get(extra_key):
        order_data[extra_key] = provider_result[extra_key]
    if order_reference:
      order_data["order_reference"] = order_reference

    return PaymentOutcome.success(order_data)

  async def create_redirect_payment(
    self,
    order_reference,
    amount,
    currency,
    description,
    metadata,
    created_by,
  ):
    """Netopia payment: our order reference goes out, their paymentId comes back."""
    if not isinstance(order_reference, str) or not order_reference.strip():
      return PaymentOutcome.failure(InvalidRequest("'orderId' is required"))
    if len(order_reference) > _ORDER_REFERENCE_MAX_LENGTH:
      return PaymentOutcome.failure(
        InvalidRequest(f"'orderId' cannot exceed {_ORDER_REFERENCE_MAX_LENGTH} characters")
      )

    outcome = await self.create_order(
      PaymentProviderKind.REDIRECT,
      amount,
      currency,
      description,
      metadata,
      created_by,
      order_reference=order_reference.strip(),
    )
    if outcome.ok:
      outcome.data["payment_id"] = outcome.data["provider_order_id"]
    return outcome

  # -----------------------------------------------------------------------
  # Capture
  # -----------------------------------------------------------------------

  async def capture_order(self, provider_kind, provider_order_id):
    """
    Capture a Created card/wallet order.

    A capture lease in the ledger makes sure only one request calls the
    provider per order; the Created -> Captured write is guarded on status.
    """
    try:
      provider = self._get_provider(provider_kind)
      if not provider.supports_capture:
        raise InvalidRequest(
          f"Orders with provider '{provider_kind.value}' cannot be captured"
        )
      if not isinstance(provider_order_id, str) or not provider_order_id.strip():
        raise InvalidRequest("'orderId' is required")
      self._claim_order_for_capture(provider_kind, provider_order_id)
    except PaymentError as precondition_error:
      logger.warning(
        "Capture refused: provider=%s, provider_order_id=%s, error=%s: %s",
        provider_kind.value, provider_order_id, precondition_error.code,
        precondition_error.message,
      )
      return PaymentOutcome.failure(precondition_error)

    try:
      capture_result = await provider.capture_order(provider_order_id)
    except PaymentError as capture_error:
      self._release_capture_lease(provider_kind, provider_order_id)
      logger.error(
        "Capture failed, order left at Created: provider=%s, provider_order_id=%s, error=%s",
        provider_kind.value, provider_order_id, capture_error.message,
      )
      return PaymentOutcome.failure(capture_error)

    provider_status = capture_result.get("status")
    capture_succeeded = bool(capture_result.get("succeeded"))
    if capture_succeeded:
      target_status = payment_ledger_service.ORDER_STATUS_CAPTURED
      transition_kwargs = {
        "timestamp_field": "captured_at",
        "provider_capture_id": capture_result.get("capture_id"),
      }
    else:
      target_status = payment_ledger_service.ORDER_STATUS_FAILED
      transition_kwargs = {
        "last_error": f"Capture not completed (provider status: {provider_status})",
      }

    try:
      transitioned = self.ledger.transition_order_status(
        provider_kind.value,
        provider_order_id,
        payment_ledger_service.ORDER_STATUS_CREATED,
        target_status,
        provider_status=provider_status,
        **transition_kwargs,
      )
    except Exception as ledger_error:
      transitioned = False
      logger.error(
        "Ledger write failed after capture: error=%s", ledger_error,
      )

    if not transitioned:
      logger.error(
        "Capture concluded at provider (status=%s) but ledger was not updated to %s: "
        "provider=%s, provider_order_id=%s. MANUAL RECONCILIATION REQUIRED.",
        provider_status, target_status, provider_kind.value, provider_order_id,
      )
      return PaymentOutcome.failure(
        ProviderError("Capture concluded but could not be recorded")
      )

    if not capture_succeeded:
      return PaymentOutcome.failure(
        ProviderError(f"Capture was not completed by the provider (status: {provider_status})")
      )

    return PaymentOutcome.success({
      "provider": provider_kind.value,
      "provider_order_id": provider_order_id,
      "status": target_status,
      "provider_status": provider_status,
      "capture_id": capture_result.get("capture_id"),
    })

  def _claim_order_for_capture(self, provider_kind, provider_order_id):
    try:
      order = self.ledger.get_order_by_provider_order_id(provider_kind.value, provider_order_id)
    except Exception as ledger_error:
      logger.error("Ledger lookup failed before capture: %s", ledger_error)
      raise LedgerUnavailable("Payment ledger is unavailable") from ledger_error

    if order is None:
      raise OrderNotFound(f"No {provider_kind.value} order with id '{provider_order_id}'")

    if order.get("status") != payment_ledger_service.ORDER_STATUS_CREATED:
      raise OrderConflict(
        f"Order '{provider_order_id}' cannot be captured in status '{order.get('status')}'"
      )

    try:
      lease_acquired = self.ledger.acquire_capture_lease(provider_kind.value, provider_order_id)
    except Exception as ledger_error:
      logger.error("Ledger lease failed before capture: %s", ledger_error)
      raise LedgerUnavailable("Payment ledger is unavailable") from ledger_error

    if not lease_acquired:
      raise OrderConflict(f"Order '{provider_order_id}' is already being captured")

  def _release_capture_lease(self, provider_kind, provider_order_id):
    try:
      self.ledger.release_capture_lease(provider_kind.value, provider_order_id)
    except Exception as ledger_error:
      # The lease expires on its own after CAPTURE_LEASE_SECONDS.
      logger.error(
        "Could not release capture lease: provider=%s, provider_order_id=%s, error=%s",
        provider_kind.value, provider_order_id, ledger_error,
      )

  # -----------------------------------------------------------------------
  # Confirmation callback
  # -----------------------------------------------------------------------

  async def handle_confirmation(self, raw_body, supplied_signature):
    """
    Apply a Netopia confirmation callback.

    A bad signature rejects the request with no ledger change. A valid
    callback for an unknown paymentId is accepted as a no-op and reported
    as ledger_result="not_found".
    """
    try:
      provider = self._get_provider(PaymentProviderKind.REDIRECT)
      if not provider.supports_callback:
        raise InvalidRequest("Payment provider does not send signed callbacks")
      if not provider.verify_callback(raw_body, supplied_signature):
        raise InvalidSignature("Invalid signature")
      confirmation = _parse_confirmation_body(raw_body)
    except PaymentError as rejection:
      logger.warning(
        "Netopia confirmation rejected: %s: %s", rejection.code, rejection.message,
      )
      return PaymentOutcome.failure(rejection)

    payment_id = confirmation["payment_id"]
    fields = {
      "status": confirmation["status"],
      "provider_status": confirmation["status"],
      "confirmed_amount": confirmation["amount"],
    }

    try:
      ledger_result = self.ledger.update_order_status(
        PaymentProviderKind.REDIRECT.value, payment_id, fields, timestamp_field="confirmed_at",
      )
    except Exception as ledger_error:
      logger.error(
        "Ledger write failed for Netopia confirmation: payment_id=%s, status=%s, error=%s",
        payment_id, confirmation["status"], ledger_error,
      )
      return PaymentOutcome.failure(
        LedgerUnavailable("Confirmation could not be recorded")
      )

    if ledger_result != payment_ledger_service.LEDGER_UPDATE_APPLIED:
      logger.warning(
        "Netopia confirmation accepted without ledger change: payment_id=%s, ledger_result=%s",
        payment_id, ledger_result,
      )
    else:
      logger.info(
        "Netopia confirmation applied: payment_id=%s, status=%s, amount=%s",
        payment_id, confirmation["status"], confirmation["amount"],
      )

    return PaymentOutcome.success({
      "payment_id": payment_id,
      "status": confirmation["status"],
      "confirmed_amount": confirmation["amount"],
      "ledger_result": ledger_result,
    })

  # -----------------------------------------------------------------------
  # Lookup
  # -----------------------------------------------------------------------

  def get_order(self, provider_kind, provider_order_id, caller_uid):
    """Return a caller's own order from the ledger."""
    try:
      order = self.ledger.get_order_by_provider_order_id(provider_kind.value, provider_order_id)
    except Exception as ledger_error:
      logger.error("Ledger lookup failed: %s", ledger_error)
      return PaymentOutcome.failure(LedgerUnavailable("Payment ledger is unavailable"))

    # Someone else's order looks exactly like a missing one.
    if order is None or order.get("created_by") != caller_uid:
      return PaymentOutcome.failure(
        OrderNotFound(f"No {provider_kind.value} order with id '{provider_order_id}'")
      )

    order.pop("capture_lease_expires_at", None)
    return PaymentOutcome.success(order)


def _parse_confirmation_body(raw_body):
  """Decode {paymentId, status, amount} from a verified callback body."""
  try:
    body = json.loads(raw_body)
  except (ValueError, TypeError) as decode_error:
    raise InvalidRequest("Confirmation body is not valid JSON") from decode_error

  if not isinstance(body, dict):
    raise InvalidRequest("Confirmation body must be a JSON object")

  payment_id = body.get("paymentId")
  if payment_id is None or isinstance(payment_id, (bool, dict, list)) or str(payment_id) == "":
    raise InvalidRequest("Confirmation is missing 'paymentId'")

  status = body.get("status")
  if not isinstance(status, str) or not status:
    raise InvalidRequest("Confirmation is missing 'status'")

  return {
    "payment_id": str(payment_id),
    "status": status,
    "amount": _parse_confirmed_amount(body.get("amount")),
  }


def _parse_confirmed_amount(raw_amount):
  """Numbers and numeric strings become Decimal; anything else is None."""
  if raw_amount is None or isinstance(raw_amount, bool):
    return None
  if not isinstance(raw_amount, (int, float, str)):
    return None
  try:
    amount = decimal.Decimal(str(raw_amount))
  except decimal.InvalidOperation:
    logger.warning("Ignoring non-numeric confirmed amount: %r", raw_amount)
    return None
  return amount if amount.is_finite() else None
