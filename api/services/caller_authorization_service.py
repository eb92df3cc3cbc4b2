"""
HopeHand -- Caller Authorization Gate

Decides whether an authenticated caller may use a capability. Runs before
any provider or SMTP call and has no side effects beyond one profile lookup.

Capabilities:
  make_payment -- any authenticated caller
  send_email   -- profile role "admin", or the reserved system principal
"""

import logging

import config
from services.payment_errors import PermissionDenied, Unauthenticated

logger = logging.getLogger("hopehand.authorization")

CAPABILITY_MAKE_PAYMENT = "make_payment"
CAPABILITY_SEND_EMAIL = "send_email"

_ADMIN_ROLE = "admin"


def _get_database():
  """Lazy import to allow unit testing without live DB."""
  import database
  return database


def lookup_caller_role(caller_uid):
  """Read the caller's role from the profile store. Returns None if no profile."""
  db = _get_database()
  row = db.execute_query_returning_one_row(
    "SELECT role FROM user_profiles WHERE user_id = %s",
    (caller_uid,),
  )
  if row is None:
    return None
  return row.get("role")


def authorize_caller(caller_identity, capability):
  """
  Return the caller uid if allowed.

  Raises Unauthenticated when there is no identity, PermissionDenied when
  the identity lacks the capability.
  """
  if not caller_identity or not caller_identity.get("caller_uid"):
    raise Unauthenticated("Authentication is required for this operation")

  caller_uid = caller_identity["caller_uid"]

  if capability == CAPABILITY_MAKE_PAYMENT:
    return caller_uid

  if capability == CAPABILITY_SEND_EMAIL:
    if caller_uid == config.SYSTEM_PRINCIPAL_UID:
      return caller_uid
    caller_role = lookup_caller_role(caller_uid)
    if caller_role == _ADMIN_ROLE:
      return caller_uid
    logger.warning(
      "Email send refused: caller=%s, role=%s", caller_uid, caller_role,
    )
    raise PermissionDenied("Only administrators can send emails")

  raise ValueError(f"Unknown capability: {capability}")
