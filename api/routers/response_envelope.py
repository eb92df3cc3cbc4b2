"""
HopeHand -- Standard JSON response envelope

  {"ok": true,  "data": {...}, "error": null}
  {"ok": false, "data": null,  "error": {"code": "...", "message": "..."}}
"""

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def error_response(http_status_code, error_code, error_message):
  """Build a standard error envelope."""
  return JSONResponse(
    status_code=http_status_code,
    content={
      "ok": False,
      "data": None,
      "error": {"code": error_code, "message": error_message},
    },
  )


def success_response(data, http_status_code=200):
  """Build a standard success envelope. Decimals and datetimes are encoded."""
  return JSONResponse(
    status_code=http_status_code,
    content={"ok": True, "data": jsonable_encoder(data), "error": None},
  )


def payment_error_response(payment_error):
  """Envelope for a PaymentError, using its own code and HTTP status."""
  return error_response(payment_error.http_status, payment_error.code, payment_error.message)


def outcome_response(outcome, success_status_code=200):
  """Envelope for a PaymentOutcome."""
  if outcome.ok:
    return success_response(outcome.data, success_status_code)
  return payment_error_response(outcome.error)
