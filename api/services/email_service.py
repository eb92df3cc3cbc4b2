"""
HopeHand -- Email Service

Sends platform emails (donation receipts, campaign notices, admin
messages) over SMTP on behalf of administrators or the system principal.

Every send attempt made by an identified caller is written to the
email_logs table -- sent, refused, or failed.

SMTP is configured via environment variables (see config.py). When an
SMTP user is configured the connection is upgraded with STARTTLS and
authenticated.
"""

import email.message
import logging
import smtplib

import config
from services import caller_authorization_service, email_log_service
from services.payment_errors import (
  EmailDeliveryError,
  InvalidRequest,
  PaymentError,
  Unauthenticated,
)

logger = logging.getLogger("hopehand.email")

_SUBJECT_MAX_LENGTH = 250


def _build_email_message(to_address, subject, body_plain_text, body_html=None):
  """Build an email message; multipart/alternative when HTML is supplied."""
  msg = email.message.EmailMessage()
  msg["From"] = config.SMTP_FROM_ADDRESS
  msg["To"] = to_address
  msg["Subject"] = subject
  msg.set_content(body_plain_text)
  if body_html:
    msg.add_alternative(body_html, subtype="html")
  return msg


def _send_email(msg):
  """Send an email via SMTP. Raises EmailDeliveryError on failure."""
  try:
    with smtplib.SMTP(
      config.SMTP_HOST, config.SMTP_PORT, timeout=config.PROVIDER_HTTP_TIMEOUT_SECONDS,
    ) as smtp_connection:
      if config.SMTP_USER:
        smtp_connection.starttls()
        smtp_connection.login(config.SMTP_USER, config.SMTP_PASSWORD)
      smtp_connection.send_message(msg)
  except (smtplib.SMTPException, OSError) as smtp_error:
    logger.error("Failed to send email to %s: %s", msg["To"], smtp_error)
    raise EmailDeliveryError(f"Failed to send email: {smtp_error}") from smtp_error
  logger.info("Email sent to %s: %s", msg["To"], msg["Subject"])


def validate_email_request(to_address, subject, body_plain_text, body_html=None):
  """Returns (is_valid, error_message)."""
  if not isinstance(to_address, str) or "@" not in to_address:
    return False, "'to' must be an email address"
  if not isinstance(subject, str) or not subject.strip():
    return False, "'subject' is required"
  # CR/LF in headers would let a caller inject extra headers or recipients
  if any(char in to_address + subject for char in "\r\n"):
    return False, "'to' and 'subject' cannot contain line breaks"
  if len(subject) > _SUBJECT_MAX_LENGTH:
    return False, f"'subject' cannot exceed {_SUBJECT_MAX_LENGTH} characters"
  if not isinstance(body_plain_text, str) or not body_plain_text:
    return False, "'text' is required"
  if body_html is not None and not isinstance(body_html, str):
    return False, "'html' must be a string"
  return True, ""


def send_email_for_caller(caller_identity, to_address, subject, body_plain_text, body_html=None):
  """
  Authorize the caller, send the email, and log the attempt.

  Returns {"success": True}. Raises Unauthenticated (not logged -- there is
  nobody to attribute it to), PermissionDenied, InvalidRequest or
  EmailDeliveryError (all logged with success=false).
  """
  if not caller_identity or not caller_identity.get("caller_uid"):
    raise Unauthenticated("The function must be called while authenticated.")

  sent_by = caller_identity["caller_uid"]
  log_to_address = to_address if isinstance(to_address, str) else repr(to_address)
  log_subject = subject if isinstance(subject, str) else repr(subject)

  try:
    caller_authorization_service.authorize_caller(
      caller_identity, caller_authorization_service.CAPABILITY_SEND_EMAIL,
    )

    is_valid, validation_error = validate_email_request(
      to_address, subject, body_plain_text, body_html,
    )
    if not is_valid:
      raise InvalidRequest(validation_error)

    msg = _build_email_message(to_address, subject, body_plain_text, body_html)
    _send_email(msg)

  except PaymentError as send_error:
    email_log_service.record_email_attempt(
      log_to_address, log_subject, sent_by, success=False, error=send_error.message,
    )
    raise

  email_log_service.record_email_attempt(log_to_address, log_subject, sent_by, success=True)
  return {"success": True}
