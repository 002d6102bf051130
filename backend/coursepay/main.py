"""
CoursePay Checkout — FastAPI Application Entry Point

Aggregates all routers, configures middleware and error rendering,
and initializes the database on startup.
"""
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from coursepay.config import get_settings
from coursepay.database import SessionLocal, init_db
from coursepay.errors import CoursePayError
from coursepay.routes import (
    auth_router, courses_router, discount_router, payment_router, admin_router, mock_gateway_router,
)
from coursepay.services.gateways import get_gateway
from coursepay.utils.logger import get_logger

settings = get_settings()
logger = get_logger("coursepay.main")

# ─── Application Instance ───────────────────────────────────────────
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "Course checkout API: discount validation, GST pricing, Stripe payment "
        "initiation (embedded or hosted checkout), callbacks and webhooks, "
        "transaction status, PDF receipts, refunds and reconciliation."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
)

# ─── Startup ─────────────────────────────────────────────────────────
BOOT_TIME = time.time()


@app.on_event("startup")
def on_startup():
    """Initialize database tables and log boot info."""
    init_db()

    logger.info(
        "\n%s\n  %s v%s\n  ENVIRONMENT: %s\n  GATEWAY: %s%s\n  DATABASE: %s\n  DEBUG: %s\n%s",
        "=" * 60,
        settings.APP_NAME,
        settings.APP_VERSION,
        settings.ENVIRONMENT,
        settings.PAYMENT_GATEWAY,
        " [MAINTENANCE]" if settings.PAYMENT_MAINTENANCE_MODE else "",
        settings.DATABASE_URL,
        settings.DEBUG,
        "=" * 60,
    )


# ─── Errors ──────────────────────────────────────────────────────────
@app.exception_handler(CoursePayError)
async def coursepay_error_handler(request: Request, exc: CoursePayError):
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.error_category)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ─── Middleware ──────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every API request with timing."""
    start = time.time()
    response = await call_next(request)
    duration = round((time.time() - start) * 1000, 1)

    if request.url.path.startswith("/api"):
        logger.info("%s %s -> %s (%sms)", request.method, request.url.path, response.status_code, duration)

    return response


# ─── API Routers ─────────────────────────────────────────────────────
app.include_router(auth_router)
app.include_router(courses_router)
app.include_router(discount_router)
app.include_router(payment_router)
app.include_router(admin_router)
app.include_router(mock_gateway_router)


@app.get("/health", tags=["Health"])
def deep_health():
    """Detailed health check including dependency statuses."""
    db_ok = False
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        db_ok = True
    except Exception:
        logger.exception("health check: database unreachable")
    finally:
        db.close()

    try:
        gateway = get_gateway().health()
    except CoursePayError as e:
        gateway = {"available": False, "status": e.message}

    healthy = db_ok and gateway.get("available", False) and not settings.PAYMENT_MAINTENANCE_MODE
    return {
        "status": "healthy" if healthy else "degraded",
        "database": "connected" if db_ok else "disconnected",
        "gateway": settings.PAYMENT_GATEWAY,
        "gatewayStatus": gateway,
        "maintenanceMode": settings.PAYMENT_MAINTENANCE_MODE,
        "uptime_seconds": round(time.time() - BOOT_TIME, 1),
        "version": settings.APP_VERSION,
    }
