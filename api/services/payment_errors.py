"""
HopeHand -- Payment Error Taxonomy and Outcome Type

Every failure the payment service can report maps to one PaymentError
subclass. Each carries a stable error code (used in the JSON error
envelope) and the HTTP status the routers answer with.

Adapters raise these. The order orchestrator catches them at its boundary
and hands back a PaymentOutcome instead, so every caller has to look at
`outcome.ok` before touching `outcome.data`.
"""


class PaymentError(Exception):
  """Base class for all normalized payment errors."""

  code = "PAYMENT_ERROR"
  http_status = 500

  def __init__(self, message):
    super().__init__(message)
    self.message = message


class Unauthenticated(PaymentError):
  """No caller identity was supplied."""
  code = "UNAUTHENTICATED"
  http_status = 401


class PermissionDenied(PaymentError):
  """Caller identity is present but lacks the required capability."""
  code = "PERMISSION_DENIED"
  http_status = 403


class InvalidRequest(PaymentError):
  """Malformed amount, currency, metadata or body."""
  code = "INVALID_REQUEST"
  http_status = 400


class OrderNotFound(PaymentError):
  code = "ORDER_NOT_FOUND"
  http_status = 404


class OrderConflict(PaymentError):
  """The order is not in a state that allows the operation (or is busy)."""
  code = "ORDER_CONFLICT"
  http_status = 409


class ProviderError(PaymentError):
  """Network failure, timeout or non-2xx answer from an external provider."""
  code = "PROVIDER_ERROR"
  http_status = 502


class InvalidSignature(PaymentError):
  """Inbound callback signature did not match."""
  code = "INVALID_SIGNATURE"
  # The provider only distinguishes 200 from everything else; 500 makes it resubmit.
  http_status = 500


class LedgerUnavailable(PaymentError):
  """The ledger could not be read before any provider call was made."""
  code = "LEDGER_UNAVAILABLE"
  http_status = 503


class EmailDeliveryError(PaymentError):
  code = "EMAIL_DELIVERY_FAILED"
  http_status = 502


class PaymentOutcome:
  """
  Result of an orchestrator operation: either ok with `data`, or failed
  with a PaymentError in `error`.
  """

  __slots__ = ("ok", "data", "error")

  def __init__(self, ok, data=None, error=None):
    self.ok = ok
    self.data = data
    self.error = error

  @classmethod
  def success(cls, data):
    return cls(True, data=data)

  @classmethod
  def failure(cls, error):
    return cls(False, error=error)

  def __repr__(self):
    if self.ok:
      return f"PaymentOutcome(ok=True, data={self.data!r})"
    return f"PaymentOutcome(ok=False, error={self.error.code}: {self.error.message})"
