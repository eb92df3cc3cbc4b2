"""
HopeHand -- Payment Ledger

The authoritative record of payment orders, stored in the
`payment_orders` table (one row per order, never deleted).

Rules the ledger enforces:
  - amount/currency are written once by record_order() and no UPDATE here
    ever touches them
  - timestamps (created_at, captured_at, confirmed_at, updated_at) are set
    by MySQL NOW(), never by the caller
  - (provider, provider_order_id) is unique; every lookup is scoped to one
    provider's namespace
  - a single-row UPDATE is atomic; there are no multi-row transactions, so
    status changes that must not race are written as status-guarded
    conditional UPDATEs

Status lifecycle:
  Initialized (memory only) -> Created -> Captured        (card / wallet)
                               Created -> <provider status> (redirect callback)
  Failed is reachable from any non-terminal state.
"""

import json
import logging
import secrets
import string

import config

logger = logging.getLogger("hopehand.ledger")

ORDER_STATUS_INITIALIZED = "Initialized"
ORDER_STATUS_CREATED = "Created"
ORDER_STATUS_CAPTURED = "Captured"
ORDER_STATUS_FAILED = "Failed"

# update_order_status() results
LEDGER_UPDATE_APPLIED = "updated"
LEDGER_UPDATE_NOT_FOUND = "not_found"
LEDGER_UPDATE_AMBIGUOUS = "ambiguous"

# Only these columns may be merged by update_order_status(). Column names
# are interpolated into SQL, so nothing outside this set gets through.
_UPDATABLE_ORDER_FIELDS = frozenset({
  "status",
  "provider_status",
  "provider_capture_id",
  "confirmed_amount",
  "last_error",
})
_TIMESTAMP_FIELDS = frozenset({"captured_at", "confirmed_at"})

_STATUS_MAX_LENGTH = 32
_LAST_ERROR_MAX_LENGTH = 255

# Base36 charset for internal ID generation (digits + uppercase letters)
_BASE36_ALPHABET = string.digits + string.ascii_uppercase


def _get_database():
  """Lazy import to allow unit testing without live DB."""
  import database
  return database


class PaymentLedger:
  """Append/update operations on the payment_orders table."""

  def __init__(self, database=None):
    self._database = database

  @property
  def database(self):
    if self._database is None:
      self._database = _get_database()
    return self._database

  # -----------------------------------------------------------------------
  # Identifiers
  # -----------------------------------------------------------------------

  def generate_unique_internal_id(self):
    """
    Generate a unique ledger ID in the format: pay-XXXXXXXXXXXX
    where X is base36 alphanumeric. Checks the ledger for collisions.
    """
    max_collision_retries = 10
    for _attempt in range(max_collision_retries):
      random_part = "".join(
        secrets.choice(_BASE36_ALPHABET)
        for _ in range(config.INTERNAL_ID_LENGTH)
      )
      candidate_id = f"{config.INTERNAL_ID_PREFIX}{random_part}"

      existing = self.database.execute_query_returning_one_row(
        "SELECT internal_id FROM payment_orders WHERE internal_id = %s",
        (candidate_id,),
      )
      if existing is None:
        return candidate_id

    raise RuntimeError(
      "Failed to generate unique payment order ID after "
      f"{max_collision_retries} attempts -- this should never happen"
    )

  # -----------------------------------------------------------------------
  # Writes
  # -----------------------------------------------------------------------

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
    """
    Insert a new payment order with status=Created.

    Called only after the provider has accepted the order.
    Returns the stored fields as a dict.
    """
    self.database.execute_insert_or_update(
      """
      INSERT INTO payment_orders
        (internal_id, provider, provider_order_id, order_reference,
         amount, currency, description, metadata,
         status, provider_status, created_by,
         created_at, updated_at)
      VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, NOW(), NOW())
      """,
      (
        internal_id,
        provider,
        provider_order_id,
        order_reference,
        amount,
        currency,
        description,
        json.dumps(metadata or {}, ensure_ascii=False),
        ORDER_STATUS_CREATED,
        _truncate(provider_status, _STATUS_MAX_LENGTH),
        created_by,
      ),
    )

    logger.info(
      "Payment order recorded: internal_id=%s, provider=%s, provider_order_id=%s, amount=%s %s",
      internal_id, provider, provider_order_id, amount, currency,
    )

    return {
      "internal_id": internal_id,
      "provider": provider,
      "provider_order_id": provider_order_id,
      "order_reference": order_reference,
      "amount": amount,
      "currency": currency,
      "description": description,
      "metadata": dict(metadata or {}),
      "status": ORDER_STATUS_CREATED,
      "provider_status": provider_status,
      "created_by": created_by,
    }

  def update_order_status(self, provider, provider_order_id, fields, timestamp_field=None):
    """
    Merge `fields` into the single row matching provider_order_id within
    the provider's namespace and stamp `timestamp_field` with NOW().

    Returns LEDGER_UPDATE_APPLIED, LEDGER_UPDATE_NOT_FOUND or
    LEDGER_UPDATE_AMBIGUOUS. The last two skip the write.
    """
    unknown_fields = set(fields) - _UPDATABLE_ORDER_FIELDS
    if unknown_fields:
      raise ValueError(f"Fields not updatable in the ledger: {sorted(unknown_fields)}")
    if timestamp_field is not None and timestamp_field not in _TIMESTAMP_FIELDS:
      raise ValueError(f"Unknown ledger timestamp field: {timestamp_field}")

    matching_rows = self.database.execute_query_returning_all_rows(
      """
      SELECT internal_id FROM payment_orders
      WHERE provider = %s AND provider_order_id = %s
      """,
      (provider, provider_order_id),
    )

    if not matching_rows:
      logger.warning(
        "Ledger update skipped, no order matches: provider=%s, provider_order_id=%s, fields=%s",
        provider, provider_order_id, sorted(fields),
      )
      return LEDGER_UPDATE_NOT_FOUND

    if len(matching_rows) > 1:
      logger.error(
        "Ledger update skipped, %d orders match: provider=%s, provider_order_id=%s",
        len(matching_rows), provider, provider_order_id,
      )
      return LEDGER_UPDATE_AMBIGUOUS

    assignments = []
    params = []
    for field_name in sorted(fields):
      value = fields[field_name]
      if field_name == "status":
        value = _truncate(value, _STATUS_MAX_LENGTH)
      elif field_name == "last_error":
        value = _truncate(value, _LAST_ERROR_MAX_LENGTH)
      assignments.append(f"{field_name} = %s")
      params.append(value)
    if timestamp_field:
      assignments.append(f"{timestamp_field} = NOW()")
    assignments.append("updated_at = NOW()")
    params.append(matching_rows[0]["internal_id"])

    self.database.execute_insert_or_update(
      f"UPDATE payment_orders SET {', '.join(assignments)} WHERE internal_id = %s",
      tuple(params),
    )

    logger.info(
      "Payment order updated: internal_id=%s, provider=%s, provider_order_id=%s, fields=%s",
      matching_rows[0]["internal_id"], provider, provider_order_id, sorted(fields),
    )
    return LEDGER_UPDATE_APPLIED

  def acquire_capture_lease(self, provider, provider_order_id):
    """
    Claim the right to capture an order. Succeeds only while the order is
    Created and no other unexpired lease is held.
    Returns True if this caller holds the lease.
    """
    affected_rows = self.database.execute_update_returning_affected_row_count(
      """
      UPDATE payment_orders
      SET capture_lease_expires_at = NOW() + INTERVAL %s SECOND
      WHERE provider = %s
        AND provider_order_id = %s
        AND status = %s
        AND (capture_lease_expires_at IS NULL OR capture_lease_expires_at < NOW())
      """,
      (config.CAPTURE_LEASE_SECONDS, provider, provider_order_id, ORDER_STATUS_CREATED),
    )
    return affected_rows == 1

  def release_capture_lease(self, provider, provider_order_id):
    self.database.execute_insert_or_update(
      """
      UPDATE payment_orders
      SET capture_lease_expires_at = NULL
      WHERE provider = %s AND provider_order_id = %s
      """,
      (provider, provider_order_id),
    )

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
    """
    Status-guarded transition: only changes the row if it is still in
    `from_status`. Also clears any capture lease.
    Returns True if exactly one row changed.
    """
    if timestamp_field is not None and timestamp_field not in _TIMESTAMP_FIELDS:
      raise ValueError(f"Unknown ledger timestamp field: {timestamp_field}")

    assignments = ["status = %s", "capture_lease_expires_at = NULL", "updated_at = NOW()"]
    params = [to_status]
    if timestamp_field:
      assignments.append(f"{timestamp_field} = NOW()")
    if provider_status is not None:
      assignments.append("provider_status = %s")
      params.append(_truncate(provider_status, _STATUS_MAX_LENGTH))
    if provider_capture_id is not None:
      assignments.append("provider_capture_id = %s")
      params.append(provider_capture_id)
    if last_error is not None:
      assignments.append("last_error = %s")
      params.append(_truncate(last_error, _LAST_ERROR_MAX_LENGTH))
    params.extend([provider, provider_order_id, from_status])

    affected_rows = self.database.execute_update_returning_affected_row_count(
      f"""
      UPDATE payment_orders
      SET {', '.join(assignments)}
      WHERE provider = %s AND provider_order_id = %s AND status = %s
      """,
      tuple(params),
    )

    if affected_rows == 1:
      logger.info(
        "Payment order %s -> %s: provider=%s, provider_order_id=%s",
        from_status, to_status, provider, provider_order_id,
      )
      return True

    logger.warning(
      "Payment order transition %s -> %s not applied (affected_rows=%d): provider=%s, provider_order_id=%s",
      from_status, to_status, affected_rows, provider, provider_order_id,
    )
    return False

  # -----------------------------------------------------------------------
  # Reads
  # -----------------------------------------------------------------------

  def get_order_by_provider_order_id(self, provider, provider_order_id):
    """
    Look up an order within one provider's namespace.
    Returns the row as a dict (metadata decoded), or None.
    """
    row = self.database.execute_query_returning_one_row(
      """
      SELECT * FROM payment_orders
      WHERE provider = %s AND provider_order_id = %s
      """,
      (provider, provider_order_id),
    )
    if row is None:
      return None
    row = dict(row)
    if isinstance(row.get("metadata"), (str, bytes)):
      row["metadata"] = json.loads(row["metadata"] or "{}")
    return row


def _truncate(value, max_length):
  if value is None:
    return None
  value = str(value)
  return value if len(value) <= max_length else value[:max_length]
