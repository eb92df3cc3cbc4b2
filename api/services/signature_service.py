"""
HopeHand -- Signature / Verification Utility

HMAC-SHA256 signing shared by the Netopia redirect processor:
  - outbound payment-init requests are signed with the private key
  - inbound confirmation callbacks are verified with the same key

The scheme is symmetric. The Netopia public key only tells the provider
which key pair we use; it never takes part in the computation.
"""

import hashlib
import hmac
import json


def _as_bytes(value):
  if isinstance(value, bytes):
    return value
  if isinstance(value, bytearray):
    return bytes(value)
  return str(value).encode("utf-8")


def serialize_payload_for_signing(payload):
  """Compact JSON, key order preserved -- exactly the bytes that get sent."""
  return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def sign_payload(payload, key):
  """Return the hex-encoded HMAC-SHA256 of `payload` under `key`."""
  return hmac.new(_as_bytes(key), _as_bytes(payload), hashlib.sha256).hexdigest()


def verify_payload_signature(payload, key, supplied_signature):
  """
  Check `supplied_signature` against the HMAC of `payload`.

  Comparison is constant-time. A missing, empty or non-string signature
  never verifies.
  """
  if not supplied_signature or not isinstance(supplied_signature, (str, bytes)):
    return False
  if isinstance(supplied_signature, bytes):
    try:
      supplied_signature = supplied_signature.decode("ascii")
    except UnicodeDecodeError:
      return False
  expected_signature = sign_payload(payload, key)
  return hmac.compare_digest(
    expected_signature.encode("ascii"),
    supplied_signature.encode("utf-8"),
  )
