"""
HopeHand -- Card Payment Provider (Stripe)

Card payments go through Stripe PaymentIntents with manual capture:
  create_order  -> PaymentIntent (capture_method=manual)
  capture_order -> PaymentIntent capture

Card details never touch this service; the donor's browser confirms the
PaymentIntent with Stripe.js using the returned client_secret. The
StripeClient is built once by the payment runtime with the secret key,
a bounded timeout and no library-level retries.

The stripe library is synchronous, so calls run in a worker thread.
"""

import asyncio
import decimal
import logging

import stripe

from services.payment_errors import InvalidRequest, ProviderError
from services.payment_provider_interface import (
  PaymentProviderInterface,
  PaymentProviderKind,
)
from services.payment_validation import currency_minor_unit_exponent

logger = logging.getLogger("hopehand.card")

_STRIPE_CAPTURE_SUCCESS_STATUSES = frozenset({"succeeded"})


def convert_amount_to_minor_units(amount, currency):
  """
  Stripe amounts are integers in the currency's smallest unit:
  Decimal("19.99"), "USD" -> 1999; Decimal("500"), "JPY" -> 500.
  An amount that is not a whole number of minor units is refused, never rounded.
  """
  scaled = decimal.Decimal(str(amount)).scaleb(currency_minor_unit_exponent(currency))
  if scaled != scaled.to_integral_value():
    raise InvalidRequest(f"Amount {amount} is not a whole number of {currency} minor units")
  return int(scaled)


class CardPaymentProvider(PaymentProviderInterface):
  """Stripe PaymentIntents card provider."""

  provider_kind = PaymentProviderKind.CARD

  def __init__(self, stripe_client):
    self.stripe_client = stripe_client

  async def create_order(
    self,
    amount,
    currency,
    description,
    metadata,
    order_reference=None,
  ):
    intent_params = {
      "amount": convert_amount_to_minor_units(amount, currency),
      "currency": currency.lower(),
      "capture_method": "manual",
      "metadata": dict(metadata or {}),
    }
    if description:
      intent_params["description"] = description
    if order_reference:
      intent_params["metadata"].setdefault("orderReference", order_reference)

    try:
      payment_intent = await asyncio.to_thread(
        self.stripe_client.payment_intents.create, params=intent_params,
      )
    except stripe.StripeError as stripe_error:
      logger.error(
        "Stripe PaymentIntent creation failed: amount=%s %s, error=%s (%s)",
        amount, currency, type(stripe_error).__name__, stripe_error.user_message,
      )
      raise ProviderError("Card payment creation failed") from stripe_error

    logger.info(
      "Stripe PaymentIntent created: intent_id=%s, amount=%s %s, status=%s",
      payment_intent.id, amount, currency, payment_intent.status,
    )

    return {
      "provider_order_id": payment_intent.id,
      "status": payment_intent.status,
      "client_secret": payment_intent.client_secret,
    }

  async def capture_order(self, provider_order_id):
    try:
      payment_intent = await asyncio.to_thread(
        self.stripe_client.payment_intents.capture, provider_order_id,
      )
    except stripe.StripeError as stripe_error:
      logger.error(
        "Stripe PaymentIntent capture failed: intent_id=%s, error=%s (%s)",
        provider_order_id, type(stripe_error).__name__, stripe_error.user_message,
      )
      raise ProviderError("Card payment capture failed") from stripe_error

    logger.info(
      "Stripe PaymentIntent captured: intent_id=%s, status=%s",
      provider_order_id, payment_intent.status,
    )

    return {
      "status": payment_intent.status,
      "succeeded": payment_intent.status in _STRIPE_CAPTURE_SUCCESS_STATUSES,
      "capture_id": getattr(payment_intent, "latest_charge", None),
    }
