"""
HopeHand -- Payment Runtime

Builds the process-wide payment objects once at startup and tears them
down at shutdown (wired to the FastAPI lifespan in app.py):

  httpx.AsyncClient    shared by PayPal and Netopia, bounded timeouts
  stripe.StripeClient  card processor client, bounded timeout, no retries
  provider adapters    one per configured provider
  PaymentLedger
  PaymentOrderOrchestrator

A provider whose secrets are not configured is left out; requests for it
are answered with InvalidRequest instead of failing at import time.
"""

import logging

import httpx
import stripe

import config
from services.card_payment_provider import CardPaymentProvider
from services.netopia_payment_provider import NetopiaPaymentProvider
from services.payment_ledger_service import PaymentLedger
from services.payment_order_orchestrator import PaymentOrderOrchestrator
from services.payment_provider_interface import PaymentProviderKind
from services.paypal_payment_provider import PayPalPaymentProvider

logger = logging.getLogger("hopehand.payment_runtime")


class PaymentRuntime:
  """Holds the objects that live for the whole process."""

  def __init__(self, http_client, orchestrator):
    self.http_client = http_client
    self.orchestrator = orchestrator


def build_payment_providers(http_client, stripe_client=None):
  """Create an adapter for every provider whose credentials are configured."""
  providers = {}

  if stripe_client is not None:
    providers[PaymentProviderKind.CARD] = CardPaymentProvider(stripe_client)
  else:
    logger.warning("Stripe secret key not configured; card payments disabled")

  if config.PAYPAL_CLIENT_ID and config.PAYPAL_CLIENT_SECRET:
    providers[PaymentProviderKind.WALLET] = PayPalPaymentProvider(
      client_id=config.PAYPAL_CLIENT_ID,
      client_secret=config.PAYPAL_CLIENT_SECRET,
      api_base_url=config.PAYPAL_API_BASE_URL,
      http_client=http_client,
    )
  else:
    logger.warning("PayPal credentials not configured; wallet payments disabled")

  if config.NETOPIA_PUBLIC_KEY and config.NETOPIA_PRIVATE_KEY:
    providers[PaymentProviderKind.REDIRECT] = NetopiaPaymentProvider(
      public_key=config.NETOPIA_PUBLIC_KEY,
      private_key=config.NETOPIA_PRIVATE_KEY,
      api_base_url=config.NETOPIA_API_BASE_URL,
      return_url=config.NETOPIA_RETURN_URL,
      confirm_url=config.NETOPIA_CONFIRM_URL,
      http_client=http_client,
    )
  else:
    logger.warning("Netopia key pair not configured; redirect payments disabled")

  return providers


def build_stripe_client():
  if not config.STRIPE_SECRET_KEY:
    return None
  return stripe.StripeClient(
    config.STRIPE_SECRET_KEY,
    max_network_retries=0,
    http_client=stripe.RequestsClient(timeout=config.PROVIDER_HTTP_TIMEOUT_SECONDS),
  )


def initialize_payment_runtime():
  """Create the shared clients, adapters, ledger and orchestrator."""
  http_client = httpx.AsyncClient(
    timeout=httpx.Timeout(config.PROVIDER_HTTP_TIMEOUT_SECONDS),
  )
  providers = build_payment_providers(http_client, build_stripe_client())
  orchestrator = PaymentOrderOrchestrator(providers, PaymentLedger())

  logger.info(
    "Payment runtime initialized: environment=%s, providers=%s",
    config.ENVIRONMENT, sorted(kind.value for kind in providers),
  )
  return PaymentRuntime(http_client, orchestrator)


async def shutdown_payment_runtime(runtime):
  """Close the shared HTTP client. MySQL pool connections close with the process."""
  await runtime.http_client.aclose()
  logger.info("Payment runtime shut down")
