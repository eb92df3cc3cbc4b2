"""
HopeHand -- Email Router

  POST /api/v1/email/send  -- sendEmail (admin or system principal only)

Request body (JSON):
  {"to": "...", "subject": "...", "text": "...", "html": "..." (optional)}
"""

import asyncio
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from routers.response_envelope import (
  error_response,
  payment_error_response,
  success_response,
)
from services import auth_dependency, email_service
from services.payment_errors import PaymentError

logger = logging.getLogger("hopehand.email_router")

router = APIRouter(prefix="/api/v1/email", tags=["email"])


@router.post("/send")
async def send_email(request: Request):
  """Send one email. Every attempt by an identified caller is logged."""
  identity_or_error = await auth_dependency.require_valid_bearer_token(request)
  if isinstance(identity_or_error, JSONResponse):
    return identity_or_error
  identity = identity_or_error

  try:
    body = await request.json()
  except ValueError:
    return error_response(400, "INVALID_JSON", "Request body must be valid JSON")
  if not isinstance(body, dict):
    return error_response(400, "INVALID_JSON", "Request body must be a JSON object")

  try:
    # smtplib and the log write block; keep them off the event loop
    result = await asyncio.to_thread(
      email_service.send_email_for_caller,
      identity,
      body.get("to"),
      body.get("subject"),
      body.get("text"),
      body.get("html"),
    )
  except PaymentError as send_error:
    return payment_error_response(send_error)

  return success_response(result)
