"""
HopeHand -- Payment Request Validation

Checks amount, currency and metadata before any provider is contacted.
The single-field validators return (is_valid, error_message) tuples; the
combined validate_payment_request() raises InvalidRequest.
"""

import decimal
import math

from services.payment_errors import InvalidRequest

# Ledger column is DECIMAL(12,2).
_MAX_AMOUNT = decimal.Decimal("9999999999.99")
_AMOUNT_QUANTUM = decimal.Decimal("0.01")
_LEDGER_DECIMAL_PLACES = 2

# ISO 4217 minor-unit exponents that differ from the usual 2.
ZERO_DECIMAL_CURRENCIES = frozenset({
  "BIF", "CLP", "DJF", "GNF", "JPY", "KMF", "KRW", "MGA",
  "PYG", "RWF", "UGX", "VND", "VUV", "XAF", "XOF", "XPF",
})
THREE_DECIMAL_CURRENCIES = frozenset({"BHD", "JOD", "KWD", "OMR", "TND"})

_MAX_DESCRIPTION_LENGTH = 500
_MAX_METADATA_ENTRIES = 50
_MAX_METADATA_KEY_LENGTH = 40
_MAX_METADATA_VALUE_LENGTH = 500

# Active ISO 4217 alphabetic codes.
RECOGNIZED_CURRENCY_CODES = frozenset({
  "AED", "AFN", "ALL", "AMD", "ANG", "AOA", "ARS", "AUD", "AWG", "AZN",
  "BAM", "BBD", "BDT", "BGN", "BHD", "BIF", "BMD", "BND", "BOB", "BRL",
  "BSD", "BTN", "BWP", "BYN", "BZD", "CAD", "CDF", "CHF", "CLP", "CNY",
  "COP", "CRC", "CUP", "CVE", "CZK", "DJF", "DKK", "DOP", "DZD", "EGP",
  "ERN", "ETB", "EUR", "FJD", "FKP", "GBP", "GEL", "GHS", "GIP", "GMD",
  "GNF", "GTQ", "GYD", "HKD", "HNL", "HTG", "HUF", "IDR", "ILS", "INR",
  "IQD", "IRR", "ISK", "JMD", "JOD", "JPY", "KES", "KGS", "KHR", "KMF",
  "KPW", "KRW", "KWD", "KYD", "KZT", "LAK", "LBP", "LKR", "LRD", "LSL",
  "LYD", "MAD", "MDL", "MGA", "MKD", "MMK", "MNT", "MOP", "MRU", "MUR",
  "MVR", "MWK", "MXN", "MYR", "MZN", "NAD", "NGN", "NIO", "NOK", "NPR",
  "NZD", "OMR", "PAB", "PEN", "PGK", "PHP", "PKR", "PLN", "PYG", "QAR",
  "RON", "RSD", "RUB", "RWF", "SAR", "SBD", "SCR", "SDG", "SEK", "SGD",
  "SHP", "SLE", "SOS", "SRD", "SSP", "STN", "SVC", "SYP", "SZL", "THB",
  "TJS", "TMT", "TND", "TOP", "TRY", "TTD", "TWD", "TZS", "UAH", "UGX",
  "USD", "UYU", "UZS", "VES", "VND", "VUV", "WST", "XAF", "XCD", "XOF",
  "XPF", "YER", "ZAR", "ZMW", "ZWL",
})


def currency_minor_unit_exponent(currency_code):
  """JPY -> 0, KWD -> 3, everything else -> 2."""
  if currency_code in ZERO_DECIMAL_CURRENCIES:
    return 0
  if currency_code in THREE_DECIMAL_CURRENCIES:
    return 3
  return 2


def format_amount_for_currency(amount, currency_code):
  """Decimal("500.00"), "JPY" -> "500"; Decimal("19.9"), "USD" -> "19.90"."""
  exponent = currency_minor_unit_exponent(currency_code)
  quantum = decimal.Decimal(1).scaleb(-exponent)
  return str(decimal.Decimal(str(amount)).quantize(quantum))


def validate_payment_amount(amount, currency_code=None):
  """
  Amount must be a positive, finite number with no more decimals than the
  currency has (and never more than the ledger's two).
  Returns (is_valid, error_message).
  """
  # bool is an int subclass; True is not "1 USD"
  if isinstance(amount, bool) or not isinstance(amount, (int, float, decimal.Decimal)):
    return False, "'amount' must be a number"

  if isinstance(amount, float) and (math.isnan(amount) or math.isinf(amount)):
    return False, "'amount' must be a finite number"

  amount_decimal = decimal.Decimal(str(amount))
  if not amount_decimal.is_finite():
    return False, "'amount' must be a finite number"

  if amount_decimal <= 0:
    return False, "'amount' must be greater than zero"

  if amount_decimal > _MAX_AMOUNT:
    return False, f"'amount' cannot exceed {_MAX_AMOUNT}"

  allowed_places = _LEDGER_DECIMAL_PLACES
  if currency_code:
    allowed_places = min(allowed_places, currency_minor_unit_exponent(currency_code))
  if amount_decimal != amount_decimal.quantize(decimal.Decimal(1).scaleb(-allowed_places)):
    if currency_code:
      return False, f"'amount' cannot have more than {allowed_places} decimal places for {currency_code}"
    return False, f"'amount' cannot have more than {allowed_places} decimal places"

  return True, ""


def normalize_currency_code(raw_currency):
  """Returns the upper-case currency code, or "" if it isn't a string."""
  if not isinstance(raw_currency, str):
    return ""
  return raw_currency.strip().upper()


def validate_currency_code(currency_code):
  """Currency must be a recognized ISO 4217 3-letter code (already normalized)."""
  if not currency_code:
    return False, "'currency' is required"
  if len(currency_code) != 3 or not currency_code.isalpha():
    return False, "'currency' must be a 3-letter ISO 4217 code"
  if currency_code not in RECOGNIZED_CURRENCY_CODES:
    return False, f"Currency '{currency_code}' is not supported"
  return True, ""


def validate_payment_metadata(metadata):
  """
  Metadata is an opaque mapping of string keys to string values.
  It is passed through to the provider and stored verbatim.
  """
  if metadata is None:
    return True, ""
  if not isinstance(metadata, dict):
    return False, "'metadata' must be an object of string keys to string values"
  if len(metadata) > _MAX_METADATA_ENTRIES:
    return False, f"'metadata' cannot have more than {_MAX_METADATA_ENTRIES} entries"
  for key, value in metadata.items():
    if not isinstance(key, str) or not key:
      return False, "'metadata' keys must be non-empty strings"
    if not isinstance(value, str):
      return False, f"'metadata.{key}' must be a string"
    if len(key) > _MAX_METADATA_KEY_LENGTH:
      return False, f"'metadata' key '{key[:20]}...' is too long"
    if len(value) > _MAX_METADATA_VALUE_LENGTH:
      return False, f"'metadata.{key}' is too long"
  return True, ""


def validate_payment_description(description):
  if description is None:
    return True, ""
  if not isinstance(description, str):
    return False, "'description' must be a string"
  if len(description) > _MAX_DESCRIPTION_LENGTH:
    return False, f"'description' cannot exceed {_MAX_DESCRIPTION_LENGTH} characters"
  return True, ""


def validate_payment_request(amount, currency, description, metadata):
  """
  Validate all payment inputs at once.

  Returns (amount_decimal, currency_code, description, metadata) normalized.
  Raises InvalidRequest on the first problem found.
  """
  currency_code = normalize_currency_code(currency)
  is_valid, error_message = validate_currency_code(currency_code)
  if not is_valid:
    raise InvalidRequest(error_message)

  is_valid, error_message = validate_payment_amount(amount, currency_code)
  if not is_valid:
    raise InvalidRequest(error_message)

  is_valid, error_message = validate_payment_description(description)
  if not is_valid:
    raise InvalidRequest(error_message)

  is_valid, error_message = validate_payment_metadata(metadata)
  if not is_valid:
    raise InvalidRequest(error_message)

  return (
    decimal.Decimal(str(amount)).quantize(_AMOUNT_QUANTUM),
    currency_code,
    description or "",
    dict(metadata or {}),
  )
