"""
Shared test doubles for the payment tests.

InMemoryPaymentLedger mirrors PaymentLedger's contract (same method names,
same return values, same guarded-update rules) over a list of dicts, so
orchestrator and route tests can assert on ledger rows without MySQL.
"""

import datetime
import itertools
import os
import sys

import pytest

# Add the api directory to the path so we can import services
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from services import payment_ledger_service
from services.payment_errors import ProviderError
from services.payment_provider_interface import (
  PaymentProviderInterface,
  PaymentProviderKind,
)


class InMemoryPaymentLedger:
  """PaymentLedger stand-in that keeps rows in memory."""

  def __init__(self):
    self.rows = []
    self.write_count = 0
    self.fail_writes = False
    self._id_counter = itertools.count(1)

  def _now(self):
    return datetime.datetime.now(datetime.timezone.utc)

  def _matching_rows(self, provider, provider_order_id):
    return [
      row for row in self.rows
      if row["provider"] == provider and row["provider_order_id"] == provider_order_id
    ]

  def _check_writable(self):
    if self.fail_writes:
      raise RuntimeError("ledger write failed")
    self.write_count += 1

  def generate_unique_internal_id(self):
    return f"pay-TEST{next(self._id_counter):08d}"

  def record_order(
    self,
    internal_id,
    provider,
    provider_order_id,
    amount,
    currency,
    description,
    metadata,
    provider_status,
    created_by,
    order_reference=None,
  ):
    self._check_writable()
    now = self._now()
    row = {
      "internal_id": internal_id,
      "provider": provider,
      "provider_order_id": provider_order_id,
      "order_reference": order_reference,
      "amount": amount,
      "currency": currency,
      "description": description,
      "metadata": dict(metadata or {}),
      "status": payment_ledger_service.ORDER_STATUS_CREATED,
      "provider_status": provider_status,
      "provider_capture_id": None,
      "confirmed_amount": None,
      "last_error": None,
      "capture_lease_expires_at": None,
      "created_by": created_by,
      "created_at": now,
      "updated_at": now,
      "captured_at": None,
      "confirmed_at": None,
    }
    self.rows.append(row)
    return dict(row)

  def get_order_by_provider_order_id(self, provider, provider_order_id):
    matches = self._matching_rows(provider, provider_order_id)
    return dict(matches[0]) if matches else None

  def update_order_status(self, provider, provider_order_id, fields, timestamp_field=None):
    matches = self._matching_rows(provider, provider_order_id)
    if not matches:
      return payment_ledger_service.LEDGER_UPDATE_NOT_FOUND
    if len(matches) > 1:
      return payment_ledger_service.LEDGER_UPDATE_AMBIGUOUS
    self._check_writable()
    row = matches[0]
    row.update(fields)
    if timestamp_field:
      row[timestamp_field] = self._now()
    row["updated_at"] = self._now()
    return payment_ledger_service.LEDGER_UPDATE_APPLIED

  def acquire_capture_lease(self, provider, provider_order_id):
    matches = self._matching_rows(provider, provider_order_id)
    if len(matches) != 1:
      return False
    row = matches[0]
    if row["status"] != payment_ledger_service.ORDER_STATUS_CREATED:
      return False
    if row["capture_lease_expires_at"] is not None and row["capture_lease_expires_at"] > self._now():
      return False
    row["capture_lease_expires_at"] = self._now() + datetime.timedelta(seconds=60)
    return True

  def release_capture_lease(self, provider, provider_order_id):
    for row in self._matching_rows(provider, provider_order_id):
      row["capture_lease_expires_at"] = None

  def transition_order_status(
    self,
    provider,
    provider_order_id,
    from_status,
    to_status,
    timestamp_field=None,
    provider_status=None,
    provider_capture_id=None,
    last_error=None,
  ):
    matches = [
      row for row in self._matching_rows(provider, provider_order_id)
      if row["status"] == from_status
    ]
    if len(matches) != 1:
      return False
    self._check_writable()
    row = matches[0]
    row["status"] = to_status
    row["capture_lease_expires_at"] = None
    row["updated_at"] = self._now()
    if timestamp_field:
      row[timestamp_field] = self._now()
    if provider_status is not None:
      row["provider_status"] = provider_status
    if provider_capture_id is not None:
      row["provider_capture_id"] = provider_capture_id
    if last_error is not None:
      row["last_error"] = last_error
    return True


class FakeCaptureProvider(PaymentProviderInterface):
  """Scriptable card/wallet provider that records its calls."""

  def __init__(self, provider_kind, order_ids=None, capture_status="COMPLETED", capture_succeeds=True):
    self.provider_kind = provider_kind
    self.order_ids = list(order_ids or ["O-1"])
    self.capture_status = capture_status
    self.capture_succeeds = capture_succeeds
    self.fail_create = False
    self.fail_capture = False
    self.create_calls = []
    self.capture_calls = []

  async def create_order(self, amount, currency, description, metadata, order_reference=None):
    self.create_calls.append((amount, currency, description, metadata, order_reference))
    if self.fail_create:
      raise ProviderError("provider unavailable")
    return {"provider_order_id": self.order_ids.pop(0), "status": "CREATED"}

  async def capture_order(self, provider_order_id):
    self.capture_calls.append(provider_order_id)
    if self.fail_capture:
      raise ProviderError("provider unavailable")
    return {
      "status": self.capture_status,
      "succeeded": self.capture_succeeds,
      "capture_id": f"CAP-{provider_order_id}",
    }


@pytest.fixture
def ledger():
  return InMemoryPaymentLedger()


@pytest.fixture
def wallet_provider():
  return FakeCaptureProvider(PaymentProviderKind.WALLET)


@pytest.fixture
def card_provider():
  return FakeCaptureProvider(
    PaymentProviderKind.CARD, order_ids=["pi_1"], capture_status="succeeded",
  )
