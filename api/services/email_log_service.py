"""
HopeHand -- Email Log

Append-only audit of outbound email attempts (`email_logs` table).
One row per attempt, whether it was sent, refused or failed.

A failed log write never changes the outcome reported for the email
itself; it is logged at ERROR with the attempt's details instead.
"""

import logging

import mysql.connector

logger = logging.getLogger("hopehand.email_log")

# Column widths in schema.sql
_TO_ADDRESS_MAX_LENGTH = 320
_SUBJECT_MAX_LENGTH = 255
_ERROR_MAX_LENGTH = 500


def _get_database():
  """Lazy import to allow unit testing without live DB."""
  import database
  return database


def record_email_attempt(to_address, subject, sent_by, success, error=None):
  """
  Insert one email_logs row. sent_at is set by the database.
  Returns True if the row was written.
  """
  log_to_address = (to_address or "")[:_TO_ADDRESS_MAX_LENGTH]
  log_subject = (subject or "")[:_SUBJECT_MAX_LENGTH]
  log_error = error[:_ERROR_MAX_LENGTH] if error else None

  try:
    db = _get_database()
    db.execute_insert_or_update(
      """
      INSERT INTO email_logs
        (to_address, subject, sent_by, success, error, sent_at)
      VALUES (%s, %s, %s, %s, %s, NOW())
      """,
      (log_to_address, log_subject, sent_by, bool(success), log_error),
    )
  except mysql.connector.Error as db_error:
    logger.error(
      "Email attempt could not be logged: to=%s, sent_by=%s, success=%s, error=%s, db_error=%s",
      log_to_address, sent_by, bool(success), log_error, db_error,
    )
    return False

  logger.info(
    "Email attempt logged: to=%s, sent_by=%s, success=%s", log_to_address, sent_by, bool(success),
  )
  return True
