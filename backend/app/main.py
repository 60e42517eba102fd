"""
Credit Journey — FastAPI Application Entry Point

Aggregates all routers, configures middleware and error handlers,
and initializes the database on startup.
"""
import time

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from app.config import get_settings
from app.database import init_db
from app.errors import JourneyError
from app.routes import (
    lead_router, journey_router, otp_router, device_router,
    income_router, credit_router, admin_router,
)
from app.utils.logger import get_logger
from app.utils.rate_limiter import limiter

settings = get_settings()
logger = get_logger("main")

# ─── Application Instance ───────────────────────────────────────────
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "Backend for the mobile credit journey: CPF lookup and registration, "
        "OTP phone verification, device eligibility, income verification, "
        "offer, device-guard registration and contract signature, with "
        "resumable journeys and funnel analytics."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
)
app.state.limiter = limiter

# ─── Startup ─────────────────────────────────────────────────────────
BOOT_TIME = time.time()


@app.on_event("startup")
def on_startup():
    """Initialize database tables and log boot info."""
    init_db()

    logger.info("=" * 60)
    logger.info("  %s v%s (%s)", settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT)
    logger.info("  DATABASE: %s", settings.DATABASE_URL)
    logger.info("  OTP CHANNEL: %s", settings.OTP_CHANNEL)
    logger.info("  FINGERPRINT API: %s", "[OK] Loaded" if settings.FIFTY_ONE_DEGREES_KEY else "[!] Missing")
    logger.info("  ADMIN KEY: %s", "[OK] Set" if settings.ADMIN_API_KEY else "[!] Open")
    logger.info("  DEBUG: %s", settings.DEBUG)
    logger.info("=" * 60)


# ─── Error Handlers ──────────────────────────────────────────────────
def _error_body(kind: str, message: str, reason=None, details=None) -> dict:
    return {"error": kind, "message": message, "reason": reason, "details": details or {}}


@app.exception_handler(JourneyError)
async def journey_error_handler(request: Request, exc: JourneyError):
    headers = {}
    retry_after = getattr(exc, "retry_after", None)
    if retry_after is not None:
        headers["Retry-After"] = str(retry_after)
    if exc.status_code >= 500:
        logger.error("%s %s -> %s: %s", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = jsonable_encoder(exc.errors())
    first = errors[0] if errors else {}
    message = first.get("msg", "Invalid input")
    return JSONResponse(
        status_code=400,
        content=_error_body("validation_error", message, details={"errors": errors}),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    logger.warning("Rate limit hit: %s %s from %s", request.method, request.url.path,
                   request.client.host if request.client else "-")
    return JSONResponse(
        status_code=429,
        content=_error_body("rate_limited", "Too many requests, slow down", reason="client_rate_limit",
                            details={"limit": str(exc.detail), "retry_after": 60}),
        headers={"Retry-After": "60"},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=_error_body("internal_error", "Internal error"))


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
app.include_router(lead_router)
app.include_router(journey_router)
app.include_router(otp_router)
app.include_router(device_router)
app.include_router(income_router)
app.include_router(credit_router)
app.include_router(admin_router)


@app.get("/health", tags=["Health"])
def deep_health():
    """Health check including database connectivity."""
    from app.database import SessionLocal
    from sqlalchemy import text
    db_ok = False
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        db_ok = True
    except Exception as e:
        logger.error("Health check database failure: %s", e)
    finally:
        db.close()

    return {
        "status": "healthy" if db_ok else "degraded",
        "database": "connected" if db_ok else "disconnected",
        "uptime_seconds": round(time.time() - BOOT_TIME, 1),
        "version": settings.APP_VERSION,
    }
