"""
FastAPI Backend for wot.id DID Authentication

Challenge/response sign-in with Decentralized Identifiers and session
issuance.

Run with:
    uvicorn --factory backend.api.main:create_app
    python -m backend.api.main
"""
from contextlib import asynccontextmanager
from typing import Optional
import logging
import os
import re
import uuid

from fastapi import FastAPI, Request as FastAPIRequest
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from backend.api.rate_limiting import AuthRateLimiter, AuthRateLimitMiddleware
from backend.api.routes import auth, identity
from backend.core.config import Settings, get_settings
from backend.core.identity.service import AuthService, build_auth_service

logger = logging.getLogger(__name__)
error_logger = logging.getLogger("api.errors")

API_VERSION = "1.0.0"


# Security Headers Middleware
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses"""
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        return response


def _sanitize_error_message(message: str) -> str:
    """
    Scrub potential secrets from exception messages before logging.

    Prevents signing keys, session tokens and signatures from ending up in
    error logs.
    """
    sanitized = message

    sensitive_patterns = [
        (r'(SESSION_SIGNING_KEY|SESSION_PREVIOUS_KEYS)[=:\s]+[^\s,;]+', r'\1=[REDACTED]'),
        (r'(password|passwd|secret|token|key|signature)["\']?\s*[=:]\s*["\']?[^"\'\s,;]+', r'\1=[REDACTED]'),
    ]
    for pattern, replacement in sensitive_patterns:
        sanitized = re.sub(pattern, replacement, sanitized, flags=re.IGNORECASE)

    # Anything that looks like a JWT/JWS (3 base64url segments separated by dots)
    sanitized = re.sub(r'eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]*\.[A-Za-z0-9_-]+', '[REDACTED_JWT]', sanitized)

    return sanitized


async def global_exception_handler(request: FastAPIRequest, exc: Exception):
    """
    Log unhandled errors internally with an error id and return a
    generic message to the client.
    """
    error_id = str(uuid.uuid4())
    sanitized_message = _sanitize_error_message(str(exc))

    error_logger.error(
        f"Error {error_id}: {type(exc).__name__}: {sanitized_message}",
        exc_info=True,
        extra={
            "error_id": error_id,
            "path": request.url.path,
            "method": request.method,
            "client": request.client.host if request.client else None
        }
    )

    return JSONResponse(
        status_code=500,
        content={
            "detail": "An internal error occurred",
            "error_id": error_id,
        }
    )


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=settings.log_format,
    )
    # Reduce noise from httpx
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def create_app(
    settings: Optional[Settings] = None,
    auth_service: Optional[AuthService] = None,
) -> FastAPI:
    """
    Create the API application.

    The authentication service is built before the app is returned, so a
    ConfigurationError stops the process before it accepts any request.

    Args:
        settings: Settings to use (default: from environment)
        auth_service: Prebuilt authentication service (tests)
    """
    settings = settings or (auth_service.settings if auth_service else get_settings())
    configure_logging(settings)

    auth_service = auth_service or build_auth_service(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        auth_service.start()
        logger.info("✅ Authentication service started")
        try:
            yield
        finally:
            auth_service.stop()
            logger.info("✅ Authentication service stopped")

    app = FastAPI(
        title="wot.id Auth API",
        description="DID challenge/response authentication",
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.auth_service = auth_service
    app.state.rate_limiter = AuthRateLimiter(
        rate_per_minute=settings.auth_rate_limit_per_minute,
        burst_size=settings.auth_burst_size,
        max_failed_attempts=settings.max_failed_auth_per_hour,
        trusted_ips=settings.trusted_ips_list,
    )

    app.add_exception_handler(Exception, global_exception_handler)

    # Security headers middleware (added first - innermost of the custom ones)
    app.add_middleware(SecurityHeadersMiddleware)

    # Rate limiting on challenge and sign-in endpoints
    app.add_middleware(AuthRateLimitMiddleware)

    # CORS (credentials needed for the session cookie)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Authorization", "Content-Type"],
    )

    app.include_router(identity.router)
    app.include_router(auth.router)

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "name": "wot.id Auth API",
            "version": API_VERSION,
            "status": "running",
            "providers": auth_service.strategies.names(),
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint (no auth required)"""
        identity_status = None
        check = getattr(auth_service.verifier, "health", None)
        if check is not None:
            identity_status = await check()

        return {
            "status": "ok" if identity_status else "degraded",
            "version": API_VERSION,
            "components": {
                "backend": "ok",
                "identity_service": identity_status,
            },
            "pending_challenges": auth_service.store.count(),
        }

    return app


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", get_settings().api_port))
    uvicorn.run(create_app(), host="0.0.0.0", port=port)
