"""
SMS Ledger - FastAPI Backend

Maker/checker managed regex patterns that turn bank SMS into ledger
transactions.

Run Instructions:
-----------------
1. Install dependencies:
   pip install -e .

2. Run the app locally with uvicorn:
   uvicorn main:app --host 0.0.0.0 --port 8000 --reload

3. Test /health endpoint:
   curl http://localhost:8000/health
"""
import time
from datetime import datetime, timezone

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from smsledger import __version__
from smsledger.api import (
    admin_router,
    auth_router,
    extraction_router,
    merchant_categories_router,
    patterns_router,
    transactions_router,
)
from smsledger.core.auth import Actor, bootstrap_admin, require_roles
from smsledger.core.database import get_db
from smsledger.models.users import Role
from smsledger.services.errors import SmsLedgerError
from smsledger.services.logging import log_error, log_request, logger
from smsledger.services.metrics import get_metrics, record_error, record_request
from smsledger.services.rate_limit import RateLimitMiddleware

app = FastAPI(
    title="SMS Ledger API",
    description="""
    SMS Ledger API - bank SMS to structured transactions

    ## Patterns
    - Makers author regex patterns with named capture groups
    - Checkers approve or reject them; nobody reviews their own work
    - Rejected and failed patterns can be edited and resubmitted

    ## Extraction
    - Users extract fields from single SMS or bulk lists
    - Bulk items fail independently and come back in input order

    ## Authentication
    Bearer JWT from `/auth/login`. Roles: USER, MAKER, CHECKER, ADMIN.

    ## Rate Limiting
    Default: 100 requests per 60 seconds per client (token or IP).
    Configure via `SMSLEDGER_RATE_LIMIT_REQUESTS` and `SMSLEDGER_RATE_LIMIT_WINDOW`.
    """,
    version=__version__,
)

app.include_router(auth_router)
app.include_router(admin_router)
app.include_router(patterns_router)
app.include_router(extraction_router)
app.include_router(transactions_router)
app.include_router(merchant_categories_router)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log requests and record metrics."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        client_id = request.client.host if request.client else "unknown"

        try:
            response = await call_next(request)
            duration_ms = (time.time() - start_time) * 1000

            log_request(
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=duration_ms,
                client_id=client_id
            )

            record_request(request.method, request.url.path, response.status_code, duration_ms)

            if response.status_code >= 400:
                record_error(f"http_{response.status_code}", request.url.path)

            return response
        except Exception as e:
            record_error("exception", request.url.path)
            log_error("request_exception", str(e), {"path": request.url.path, "method": request.method})
            raise


# Add middleware in order (last added is first executed)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(RateLimitMiddleware)


@app.exception_handler(SmsLedgerError)
async def smsledger_exception_handler(request: Request, exc: SmsLedgerError):
    """Handle all SmsLedgerErrors with structured responses."""
    status_code = exc.status_code
    if status_code >= 500:
        log_error(exc.code.value, exc.message, {"path": request.url.path, **exc.context})
    else:
        logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.code.value, exc.message)
    record_error(exc.code.value, request.url.path)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Handle unhandled exceptions with a structured response."""
    log_error(
        "unhandled_exception",
        str(exc),
        {"path": str(request.url.path), "method": request.method},
        exception=exc,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred. Please try again or contact support.",
        }
    )


# Enable CORS for all origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    """Initialize database and bootstrap admin on startup."""
    get_db().initialize()
    bootstrap_admin()


@app.get("/health")
def health():
    """Liveness check."""
    return {
        "status": "ok",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/metrics")
def metrics(actor: Actor = Depends(require_roles(Role.ADMIN))):
    """In-memory request, error, extraction and transition counters."""
    return get_metrics()
