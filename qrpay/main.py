"""QR Pay core - Main Application."""

import logging.config

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from qrpay.api.routes import bills, merchants, orders, payments, settlements
from qrpay.core.config import settings
from qrpay.core.database import Base, engine
from qrpay.core.errors import QRPayError
from qrpay.core.logging import setup_logging
from qrpay.core.logging_config import LOGGING_CONFIG

# Configure logging before anything else
logging.config.dictConfig(LOGGING_CONFIG)
logger = setup_logging(settings.log_level)

# Create all tables on startup
logger.info("Creating database tables...")
Base.metadata.create_all(bind=engine)
logger.info("Database tables ready")

# -- OpenAPI tag metadata for Swagger grouping --
tags_metadata = [
    {
        "name": "Health",
        "description": "Service health and readiness checks.",
    },
    {
        "name": "Merchants",
        "description": (
            "Register merchants, record compliance review, and control how "
            "and whether they receive direct payouts."
        ),
    },
    {
        "name": "Bills",
        "description": (
            "Issue single-use discounted bills as scannable tokens, redeem "
            "(scan) them, cancel them, and sweep expired ones."
        ),
    },
    {
        "name": "Payments",
        "description": (
            "Open a processor order for a redeemed bill and receive the "
            "processor's confirmation (checkout callback or webhook)."
        ),
    },
    {
        "name": "Orders",
        "description": "Query the order ledger and payer savings.",
    },
    {
        "name": "Settlements",
        "description": (
            "Compute merchant payouts for a period, record payout references, "
            "and run settlement for all merchants as a background job."
        ),
    },
]


app = FastAPI(
    title="QR Pay Core",
    description=(
        "## Discounted QR Bill Payments API\n\n"
        "A merchant issues a bill; the payer scans its token, sees the "
        "discounted total, and pays through the processor.  Every paid bill "
        "becomes exactly one ledger order, and orders are settled to the "
        "merchant per period.\n\n"
        "### Bill lifecycle\n"
        "- `ACTIVE` - issued, waiting to be scanned (5 minute window)\n"
        "- `LOCKED` - scanned and reserved for one payer\n"
        "- `PAID` - payment confirmed, order written\n"
        "- `EXPIRED` / `CANCELLED` - terminal, never payable\n\n"
        "### Caller identity\n"
        "Every request carries `X-Principal-Id` and `X-Principal-Role` "
        "(`payer`, `merchant` or `admin`).\n"
    ),
    version="1.0.0",
    openapi_tags=tags_metadata,
    docs_url="/docs",
    redoc_url="/redoc",
)


@app.exception_handler(QRPayError)
async def qrpay_error_handler(request: Request, exc: QRPayError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


app.include_router(merchants.router, prefix="/api/v1/merchants", tags=["Merchants"])
app.include_router(bills.router, prefix="/api/v1/bills", tags=["Bills"])
app.include_router(payments.router, prefix="/api/v1/payments", tags=["Payments"])
app.include_router(orders.router, prefix="/api/v1/orders", tags=["Orders"])
app.include_router(
    settlements.router, prefix="/api/v1/settlements", tags=["Settlements"]
)

logger.info("QR Pay API ready - routes registered")


@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint.

    Returns a simple JSON object confirming the service is running.
    Useful for load balancers and monitoring systems.
    """
    return {"status": "healthy", "service": "qrpay"}
