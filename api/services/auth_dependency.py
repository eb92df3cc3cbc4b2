"""
HopeHand -- Authentication Dependency for FastAPI

Validates Bearer tokens (JWTs issued by the platform's identity provider)
and extracts the caller identity.

Two entry points:
  1. extract_identity_from_bearer_token -- returns None if no/bad token
  2. require_valid_bearer_token         -- returns a 401 JSONResponse instead

JWT tokens are validated against the identity provider's JWKS endpoint
(signature and expiry). Role checks are not done here -- see
caller_authorization_service.
"""

import logging
import time

import httpx
import jwt
from fastapi.responses import JSONResponse

import config

logger = logging.getLogger("hopehand.auth_dependency")

# ---------------------------------------------------------------------------
# JWKS cache (public keys from the identity provider for verifying JWTs)
# ---------------------------------------------------------------------------
_cached_jwks_keys = None
_cached_jwks_fetched_at = 0

_ACCEPTED_JWT_ALGORITHMS = ["RS256"]


async def _fetch_identity_provider_jwks():
  """Fetch the JWKS (public keys) from the identity provider."""
  global _cached_jwks_keys, _cached_jwks_fetched_at

  now = time.time()
  if _cached_jwks_keys and (now - _cached_jwks_fetched_at) < config.AUTH_JWKS_CACHE_TTL_SECONDS:
    return _cached_jwks_keys

  if not config.AUTH_JWKS_URL:
    logger.error("HOPEHAND_AUTH_JWKS_URL is not configured; cannot verify bearer tokens")
    return []

  try:
    async with httpx.AsyncClient(timeout=config.PROVIDER_HTTP_TIMEOUT_SECONDS) as http_client:
      response = await http_client.get(config.AUTH_JWKS_URL)
      response.raise_for_status()
      jwks_data = response.json()
      _cached_jwks_keys = jwks_data.get("keys", [])
      _cached_jwks_fetched_at = now
      logger.info("Refreshed identity provider JWKS (%d keys)", len(_cached_jwks_keys))
      return _cached_jwks_keys
  except (httpx.HTTPError, ValueError) as jwks_error:
    logger.error("Failed to fetch identity provider JWKS: %s", jwks_error)
    # Return cached keys if we have them (even if stale), otherwise empty
    return _cached_jwks_keys or []


def _decode_and_verify_jwt_token(token_string, jwks_keys):
  """
  Decode and verify a JWT token using the JWKS public keys.

  Returns: decoded payload dict, or None if invalid.
  """
  try:
    keyset = jwt.PyJWKSet.from_dict({"keys": jwks_keys})
  except jwt.PyJWTError as keyset_error:
    logger.error("Identity provider JWKS is unusable: %s", keyset_error)
    return None

  # Try each key until one works
  for jwk_key in keyset.keys:
    try:
      return jwt.decode(
        token_string,
        jwk_key.key,
        algorithms=_ACCEPTED_JWT_ALGORITHMS,
        options={"verify_aud": False, "require": ["exp", "sub"]},
      )
    except jwt.InvalidTokenError as decode_error:
      logger.debug("JWT rejected by key %s: %s", jwk_key.key_id, decode_error)
      continue

  return None


async def extract_identity_from_bearer_token(request):
  """
  Extract the caller identity from a Bearer token in the Authorization header.

  Returns: dict with identity info, or None if no valid token.
    {
      "caller_uid": "...",
      "email": "..." | None,
      "raw_claims": {...}
    }
  """
  auth_header = request.headers.get("authorization", "")
  if not auth_header.lower().startswith("bearer "):
    return None

  token_string = auth_header[7:].strip()
  if not token_string:
    return None

  jwks_keys = await _fetch_identity_provider_jwks()
  if not jwks_keys:
    logger.warning("No JWKS keys available for token verification")
    return None

  decoded_claims = _decode_and_verify_jwt_token(token_string, jwks_keys)
  if decoded_claims is None:
    return None

  caller_uid = decoded_claims.get("sub") or decoded_claims.get("user_id")
  if not caller_uid:
    return None

  return {
    "caller_uid": caller_uid,
    "email": decoded_claims.get("email"),
    "raw_claims": decoded_claims,
  }


async def require_valid_bearer_token(request):
  """
  Require a valid Bearer token.

  Returns the identity info dict on success.
  Returns a 401 JSONResponse if the token is missing or invalid.

  Usage in a router:
    identity_or_error = await require_valid_bearer_token(request)
    if isinstance(identity_or_error, JSONResponse):
      return identity_or_error
    identity = identity_or_error
  """
  identity = await extract_identity_from_bearer_token(request)
  if identity is None:
    return JSONResponse(
      status_code=401,
      content={
        "ok": False,
        "data": None,
        "error": {
          "code": "UNAUTHENTICATED",
          "message": "Valid Bearer token is required.",
        },
      },
    )
  return identity
