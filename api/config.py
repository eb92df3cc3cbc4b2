"""
HopeHand Payments API -- Configuration

All configuration values with sensible defaults.
Override via environment variables or the deployment's .env file.
"""

import os

# --- Environment ---
# "production" selects live provider endpoints; anything else is sandbox.
ENVIRONMENT = os.environ.get("HOPEHAND_ENVIRONMENT", "sandbox").strip().lower()
IS_PRODUCTION = ENVIRONMENT == "production"

# --- MySQL Database (ledger + profile store) ---
MYSQL_HOST = os.environ.get("HOPEHAND_DB_HOST", "127.0.0.1")
MYSQL_PORT = int(os.environ.get("HOPEHAND_DB_PORT", "3306"))
MYSQL_USER = os.environ.get("HOPEHAND_DB_USER", "hopehand")
# SECURITY: No hardcoded default -- must be set via environment variable or systemd unit
MYSQL_PASSWORD = os.environ.get("HOPEHAND_DB_PASSWORD", "")
MYSQL_DATABASE = os.environ.get("HOPEHAND_DB_NAME", "hopehand")

# --- API Settings ---
API_VERSION = "1.0.0"
API_HOST = os.environ.get("HOPEHAND_API_HOST", "127.0.0.1")
API_PORT = int(os.environ.get("HOPEHAND_API_PORT", "8190"))

# --- Public URL (redirect processor return/confirm URLs) ---
APP_BASE_URL = os.environ.get("HOPEHAND_APP_URL", "http://localhost:5173").rstrip("/")

# --- Identity provider (bearer JWT verification) ---
AUTH_JWKS_URL = os.environ.get("HOPEHAND_AUTH_JWKS_URL", "")
AUTH_JWKS_CACHE_TTL_SECONDS = 3600
# Reserved principal allowed to send email without an admin profile.
SYSTEM_PRINCIPAL_UID = "system"

# --- Outbound calls ---
PROVIDER_HTTP_TIMEOUT_SECONDS = float(os.environ.get("HOPEHAND_PROVIDER_HTTP_TIMEOUT_SECONDS", "15"))
CAPTURE_LEASE_SECONDS = int(os.environ.get("HOPEHAND_CAPTURE_LEASE_SECONDS", "60"))

# --- Card processor (Stripe) ---
# SECURITY: No hardcoded defaults -- must be set via environment variable or systemd unit
STRIPE_SECRET_KEY = os.environ.get("HOPEHAND_STRIPE_SECRET_KEY", "")

# --- Wallet processor (PayPal REST API) ---
PAYPAL_CLIENT_ID = os.environ.get("HOPEHAND_PAYPAL_CLIENT_ID", "")
PAYPAL_CLIENT_SECRET = os.environ.get("HOPEHAND_PAYPAL_CLIENT_SECRET", "")
PAYPAL_API_BASE_URL = (
  "https://api-m.paypal.com" if IS_PRODUCTION else "https://api-m.sandbox.paypal.com"
)

# --- Redirect processor (Netopia) ---
NETOPIA_PUBLIC_KEY = os.environ.get("HOPEHAND_NETOPIA_PUBLIC_KEY", "")
NETOPIA_PRIVATE_KEY = os.environ.get("HOPEHAND_NETOPIA_PRIVATE_KEY", "")
NETOPIA_API_BASE_URL = (
  "https://secure.mobilpay.ro" if IS_PRODUCTION else "https://sandboxsecure.mobilpay.ro"
)
NETOPIA_RETURN_URL = f"{APP_BASE_URL}/payment/success"
NETOPIA_CONFIRM_URL = f"{APP_BASE_URL}/api/netopia/confirm"

# --- Email (SMTP) ---
SMTP_HOST = os.environ.get("HOPEHAND_SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.environ.get("HOPEHAND_SMTP_PORT", "587"))
SMTP_USER = os.environ.get("HOPEHAND_SMTP_USER", "")
SMTP_PASSWORD = os.environ.get("HOPEHAND_SMTP_PASSWORD", "")
SMTP_FROM_ADDRESS = os.environ.get("HOPEHAND_SMTP_FROM", "noreply@hopehand.org")

# --- Ledger identifiers ---
INTERNAL_ID_PREFIX = "pay-"
INTERNAL_ID_LENGTH = 12  # chars after prefix, base36 alphanumeric
