"""
HopeHand -- Webhook Router

Receives asynchronous confirmations from payment providers.

Netopia confirmation: POST /api/netopia/confirm
  Unauthenticated endpoint; authenticity comes from the X-SIGNATURE header,
  an HMAC-SHA256 of the raw request body under our private key.

Responses (Netopia only distinguishes 200 from everything else):
  200 "OK"  -- accepted, including a valid confirmation for an unknown paymentId
  500       -- bad signature, unreadable body, or internal error; Netopia
               will resubmit
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

logger = logging.getLogger("hopehand.webhooks")

router = APIRouter(prefix="/api/netopia", tags=["webhooks"])

_ERROR_BODY = "Error processing confirmation"


@router.post("/confirm")
async def handle_netopia_confirmation(request: Request):
  """
  Receive a Netopia payment confirmation.

  The signature is checked against the raw bytes exactly as received,
  before the body is parsed.
  """
  raw_body = await request.body()
  supplied_signature = request.headers.get("x-signature")

  try:
    outcome = await request.app.state.payment_orchestrator.handle_confirmation(
      raw_body, supplied_signature,
    )
  except Exception as processing_error:
    logger.error("Netopia confirmation processing error: %s", processing_error)
    return PlainTextResponse(_ERROR_BODY, status_code=500)

  if not outcome.ok:
    logger.warning(
      "Netopia confirmation failed: %s: %s", outcome.error.code, outcome.error.message,
    )
    return PlainTextResponse(_ERROR_BODY, status_code=500)

  return PlainTextResponse("OK", status_code=200)
