"""
HopeHand -- Payment Provider Interface

Abstract base class for payment providers (Stripe card, PayPal wallet,
Netopia redirect). Each provider implements this interface. The order
orchestrator is provider-agnostic -- it only talks to this interface and
picks a provider by PaymentProviderKind.
"""

import enum
from abc import ABC, abstractmethod

from services.payment_errors import InvalidRequest


class PaymentProviderKind(str, enum.Enum):
  """Provider namespace. The value is what the ledger stores."""

  CARD = "card"
  WALLET = "wallet"
  REDIRECT = "redirect"

  @classmethod
  def from_route_name(cls, route_name):
    """Map a URL segment ('card', 'paypal', 'netopia', ...) to a kind, or None."""
    return _ROUTE_NAME_TO_PROVIDER_KIND.get((route_name or "").lower())


_ROUTE_NAME_TO_PROVIDER_KIND = {
  "card": PaymentProviderKind.CARD,
  "stripe": PaymentProviderKind.CARD,
  "wallet": PaymentProviderKind.WALLET,
  "paypal": PaymentProviderKind.WALLET,
  "redirect": PaymentProviderKind.REDIRECT,
  "netopia": PaymentProviderKind.REDIRECT,
}


class PaymentProviderInterface(ABC):
  """Abstract base for payment providers."""

  provider_kind = None
  # Card and wallet orders are authorized first and captured later.
  supports_capture = True
  # Only the redirect processor reports back through a signed callback.
  supports_callback = False

  @abstractmethod
  async def create_order(
    self,
    amount,
    currency,
    description,
    metadata,
    order_reference=None,
  ):
    """
    Create a payment order with the provider.

    Args:
      amount: Decimal amount in major units (e.g. Decimal("19.99")).
      currency: Upper-case ISO 4217 code.
      description: Human-readable description of the donation/purchase.
      metadata: dict of str -> str, passed through unmodified.
      order_reference: Our own order id, for providers that want one.

    Returns: dict with at minimum:
      {
        "provider_order_id": "...",   # provider's order ID
        "status": "CREATED",          # provider-reported status
      }

    Raises: ProviderError on any network failure or non-2xx answer.
    """
    ...

  @abstractmethod
  async def capture_order(self, provider_order_id):
    """
    Capture (finalize) a previously created order.

    Returns: dict with at minimum:
      {
        "status": "COMPLETED",        # provider-reported status
        "succeeded": True,            # whether funds were actually captured
      }

    Raises: ProviderError on any network failure or non-2xx answer.
    """
    ...

  def verify_callback(self, raw_body, supplied_signature):
    """
    Verify that an inbound callback was genuinely sent by this provider.
    Only providers with supports_callback implement this.
    """
    raise InvalidRequest(
      f"Provider '{self.provider_kind.value}' does not send signed callbacks"
    )
