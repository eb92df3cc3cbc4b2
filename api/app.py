"""
HopeHand Payments API

Payment order orchestration for the HopeHand donation platform:
Stripe (card), PayPal (wallet) and Netopia (redirect) behind one ledger.

Endpoints:
  /api/health                                         -- health check
  /api/v1/status                                      -- API status and capabilities
  /api/v1/payments/paypal/orders                      -- create PayPal order
  /api/v1/payments/paypal/orders/{order_id}/capture   -- capture PayPal order
  /api/v1/payments/card/orders                        -- create card PaymentIntent
  /api/v1/payments/card/orders/{order_id}/capture     -- capture card PaymentIntent
  /api/v1/payments/netopia/payments                   -- create Netopia payment
  /api/v1/payments/{provider}/orders/{order_id}       -- order lookup
  /api/netopia/confirm                                -- Netopia confirmation callback
  /api/v1/email/send                                  -- admin email
  /api/docs                                           -- Swagger UI documentation

Run with:
    uvicorn app:app --host 127.0.0.1 --port 8190
"""

import contextlib
import datetime
import logging

import mysql.connector
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

import config
from routers import emails, payments, webhooks
from services import payment_runtime

# --- Logging ---
logging.basicConfig(
  level=logging.INFO,
  format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger("hopehand.api")


@contextlib.asynccontextmanager
async def lifespan(application):
  """Build the payment runtime on startup; close its clients on shutdown."""
  runtime = payment_runtime.initialize_payment_runtime()
  application.state.payment_runtime = runtime
  application.state.payment_orchestrator = runtime.orchestrator
  try:
    yield
  finally:
    await payment_runtime.shutdown_payment_runtime(runtime)


# --- FastAPI app ---
app = FastAPI(
  title="HopeHand Payments API",
  description="Payment order orchestration for the HopeHand donation platform: "
              "card, wallet and redirect providers behind one auditable ledger.",
  version=config.API_VERSION,
  docs_url="/api/docs",
  redoc_url="/api/redoc",
  openapi_url="/api/openapi.json",
  lifespan=lifespan,
)

# --- Register routers ---
app.include_router(payments.router)
app.include_router(webhooks.router)
app.include_router(emails.router)


# --- Health and status ---

class HealthResponse(BaseModel):
  status: str
  service: str
  version: str
  environment: str
  timestamp: str
  database: str


@app.get("/api/health", response_model=HealthResponse)
async def health_check():
  """Health check endpoint for monitoring and load balancers."""
  db_status = "unknown"
  try:
    import database
    row = database.execute_query_returning_one_row("SELECT 1 AS alive")
    if row and row.get("alive") == 1:
      db_status = "connected"
    else:
      db_status = "error"
  except mysql.connector.Error as db_error:
    db_status = f"error: {db_error}"

  return HealthResponse(
    status="healthy",
    service="hopehand-payments-api",
    version=config.API_VERSION,
    environment=config.ENVIRONMENT,
    timestamp=datetime.datetime.now(datetime.timezone.utc).isoformat(),
    database=db_status,
  )


@app.get("/api/v1/status")
async def api_status():
  """API status and capabilities."""
  orchestrator = getattr(app.state, "payment_orchestrator", None)
  enabled_providers = sorted(kind.value for kind in orchestrator.providers) if orchestrator else []
  return JSONResponse(
    content={
      "ok": True,
      "data": {
        "status": "operational",
        "version": config.API_VERSION,
        "environment": config.ENVIRONMENT,
        "providers": enabled_providers,
        "capabilities": [
          "health-check",
          "paypal-order-create",
          "paypal-order-capture",
          "card-payment-create",
          "card-payment-capture",
          "netopia-payment-create",
          "netopia-confirmation",
          "order-lookup",
          "email-send",
        ],
        "endpoints": {
          "health": "/api/health",
          "paypal_orders": "/api/v1/payments/paypal/orders",
          "card_orders": "/api/v1/payments/card/orders",
          "netopia_payments": "/api/v1/payments/netopia/payments",
          "order_lookup": "/api/v1/payments/{provider}/orders/{order_id}",
          "netopia_confirm": "/api/netopia/confirm",
          "email_send": "/api/v1/email/send",
          "docs": "/api/docs",
        },
      },
      "error": None,
    }
  )


if __name__ == "__main__":
  import uvicorn
  logger.info("Starting HopeHand Payments API on %s:%d", config.API_HOST, config.API_PORT)
  uvicorn.run(app, host=config.API_HOST, port=config.API_PORT)
