from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from contextlib import asynccontextmanager
from slowapi.errors import RateLimitExceeded
import logging
import time
import uuid

from .config import settings
from .database import create_tables, SessionLocal
from .errors import PortalError, GatewayError
from .models.staff import Staff, StaffRole
from .utils.security import hash_password
from .utils.rate_limiter import limiter
from .utils.logging_config import setup_logging, get_logger, set_request_context, clear_request_context

from .routers import auth, stripe_payments, client, shows, staff, health

setup_logging(level=settings.log_level, json_format=settings.log_json)
logger = get_logger("app")


def bootstrap_admin():
    """Create the first admin from BOOTSTRAP_ADMIN_EMAIL / _PASSWORD if no admin exists."""
    if not (settings.bootstrap_admin_email and settings.bootstrap_admin_password):
        return

    db = SessionLocal()
    try:
        if db.query(Staff).filter(Staff.role == StaffRole.ADMIN.value).first():
            return
        admin = Staff(
            email=settings.bootstrap_admin_email.strip().lower(),
            name="Administrator",
            role=StaffRole.ADMIN.value,
            hashed_password=hash_password(settings.bootstrap_admin_password),
        )
        db.add(admin)
        db.commit()
        logger.info(f"Created bootstrap admin {admin.email}")
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info(f"Starting portal backend ({settings.environment})")
    logger.info(f"CORS origins: {settings.cors_origins}")

    create_tables()
    bootstrap_admin()

    if not settings.stripe_secret_key:
        logger.warning("STRIPE_SECRET_KEY is not set; payment endpoints will fail")
    if settings.stripe_booking_fee_cents < settings.stripe_min_charge_cents:
        logger.warning("STRIPE_BOOKING_FEE_CENTS is unset or below the minimum; bookings will be rejected")

    yield

    logger.info("Shutting down portal backend")


app = FastAPI(
    title="Staffing Portal API",
    description="Trade-show staffing bookings, deposits and final fees",
    version=health.VERSION,
    lifespan=lifespan
)

# Rate limiter state
app.state.limiter = limiter


# ================================
# CORS MIDDLEWARE - MUST BE FIRST!
# ================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


# Security Headers Middleware
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


# Request ID Middleware
class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        request.state.request_id = request_id
        set_request_context(request_id)

        start = time.time()
        try:
            response = await call_next(request)
            duration_ms = round((time.time() - start) * 1000, 2)
            logger.api_request(request.method, request.url.path, response.status_code, duration_ms)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_request_context()


# Add other middleware AFTER CORS
app.add_middleware(RequestIdMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


# Rate limit handler
@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"detail": "Too many requests, try again later", "code": "rate_limited"}
    )


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    if isinstance(exc, GatewayError):
        logger.log_with_context(
            logging.ERROR,
            f"Payment gateway error on {request.url.path}: {exc.message}",
            provider_code=exc.provider_code,
            decline_code=exc.decline_code,
            **exc.context
        )
    elif exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.code} on {request.url.path}: {exc.message}")

    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include routers
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(stripe_payments.router)
app.include_router(client.router)
app.include_router(shows.router)
app.include_router(staff.router)


@app.get("/")
async def root():
    return {
        "message": "Staffing Portal API",
        "version": health.VERSION,
        "docs": "/docs",
        "status": "running"
    }
