"""Main application entry point."""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
import redis
import httpx
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from config import (
    API_VERSION,
    CLIENT_URL,
    ENVIRONMENT,
    FACEBOOK_GRAPH_URL,
    GEOCODING_URL,
    GOOGLE_CLIENT_ID,
    GOOGLE_MAPS_API_KEY,
    RATE_LIMIT_ENABLED,
    RATE_LIMIT_REQUESTS_IP,
    RATE_LIMIT_REQUESTS_USER,
    RATE_LIMIT_WINDOW_SECONDS,
    REDIS_URL,
    SMTP_FROM,
    SMTP_HOST,
    SMTP_PASS,
    SMTP_PORT,
    SMTP_USER,
)
from database import init_db, engine
from monitoring import init_profiling
from logging_config import setup_logging
from routers import products, orders, guest, location, auth as auth_router
from redis_rate_limiter import RedisRateLimiter
from services.email_service import EmailService, SmtpSettings
from services.geocoding_service import GeocodingClient
from services.location_service import LocationService
from services.order_service import OrderService
from services.product_service import ProductService
from services.social_auth_service import FacebookVerifier, GoogleVerifier, SocialAuthService
from services.user_service import UserService

# Setup structured logging
setup_logging()
logger = logging.getLogger(__name__)

# Sync client for the rate limiting middleware
redis_client = redis.from_url(REDIS_URL, decode_responses=True)


def build_email_service() -> EmailService:
    if not (SMTP_USER and SMTP_PASS):
        logger.info("SMTP credentials not configured, emails will be logged only")
        return EmailService()
    return EmailService(SmtpSettings(
        host=SMTP_HOST,
        port=SMTP_PORT,
        user=SMTP_USER,
        password=SMTP_PASS,
        sender=SMTP_FROM
    ))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # Startup
    logger.info("Starting application...")

    init_db()

    if RATE_LIMIT_ENABLED:
        RedisInstrumentor().instrument(redis_client=redis_client)
    app.state.redis_client = redis_client

    # HTTP client for the geocoding provider and the Facebook Graph API
    http_client = httpx.AsyncClient(timeout=30.0)
    HTTPXClientInstrumentor().instrument_client(http_client)
    app.state.http_client = http_client
    logger.info("HTTP client initialized")

    # Services are built once and shared by every request
    product_service = ProductService()
    user_service = UserService()
    email_service = build_email_service()
    app.state.product_service = product_service
    app.state.user_service = user_service
    app.state.order_service = OrderService(product_service, email_service)
    app.state.location_service = LocationService(
        GeocodingClient(http_client, GOOGLE_MAPS_API_KEY, GEOCODING_URL)
    )
    app.state.social_auth_service = SocialAuthService(
        GoogleVerifier(GOOGLE_CLIENT_ID),
        FacebookVerifier(http_client, FACEBOOK_GRAPH_URL)
    )
    if not GOOGLE_MAPS_API_KEY:
        logger.info("Geocoding API key not configured, using development coordinates")

    init_profiling()

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down application...")
    await http_client.aclose()
    logger.info("Application shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="TechStore Store Service",
    version=API_VERSION,
    lifespan=lifespan
)

# Redis-backed dual-tier rate limiting
if RATE_LIMIT_ENABLED:
    app.add_middleware(
        RedisRateLimiter,
        redis_client=redis_client,
        requests_per_window_ip=RATE_LIMIT_REQUESTS_IP,
        requests_per_window_user=RATE_LIMIT_REQUESTS_USER,
        window_seconds=RATE_LIMIT_WINDOW_SECONDS
    )

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[CLIENT_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Instrument FastAPI and SQLAlchemy
FastAPIInstrumentor.instrument_app(app)
SQLAlchemyInstrumentor().instrument(engine=engine)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Unhandled database error", extra={
        "path": request.url.path,
        "method": request.method,
        "error": str(exc)
    })
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.get("/")
async def root():
    """Service banner."""
    return {"message": "TechStore API is running", "version": API_VERSION}


# Health check endpoint
@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "environment": ENVIRONMENT}


# Include routers
app.include_router(auth_router.router)
app.include_router(products.router)
app.include_router(orders.router)
app.include_router(guest.router)
app.include_router(location.router)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
