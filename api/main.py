"""
FastAPI API Service Entry Point
"""

import logging
import sys

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from agenda.errors import AuthError
from api.routes import reservations
from shared.circuit_breaker import get_breaker_status
from shared.config import get_settings
from shared.logging_config import configure_logging
from shared.startup_validator import StartupValidationError, validate_startup_config

# Configure structured JSON logging on startup
configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Agenda Webhook API",
    version="1.0.0",
)

# Reservation webhooks called by the bot
app.include_router(reservations.router, tags=["reservations"])


# =========================================================================
# STARTUP VALIDATION
# =========================================================================
@app.on_event("startup")
async def startup_config_validation():
    """
    Validate critical configuration at startup.

    Raises:
        StartupValidationError: If critical configuration is invalid
    """
    logger.info("Running API startup configuration validation...")
    try:
        validate_startup_config(get_settings())
        logger.info("API startup configuration validation passed")
    except StartupValidationError as e:
        logger.critical(f"API startup blocked due to configuration errors: {e}")
        raise  # FastAPI will fail to start


@app.on_event("shutdown")
async def close_connections():
    settings = get_settings()
    if settings.SLOT_LOCK_BACKEND == "redis":
        from shared.redis_client import close_redis_client

        await close_redis_client(settings.REDIS_URL)


# =========================================================================
# EXCEPTION HANDLERS
# =========================================================================
@app.exception_handler(AuthError)
async def auth_exception_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Return 403 for a missing or wrong webhook token."""
    return JSONResponse(status_code=403, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return 400 with validation error details."""
    logger.warning(
        f"Invalid request body on {request.url.path}: {exc.errors()}",
        extra={"request_path": request.url.path},
    )
    return JSONResponse(
        status_code=400,
        content={
            "status": "error",
            "error_code": "VALIDATION_ERROR",
            "error": "Corpo da requisição inválido",
            "details": jsonable_encoder(exc.errors()),
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    """Unknown routes answer 200 with an empty body, as the bot expects."""
    if exc.status_code == 404:
        logger.debug(f"Unknown route: {request.method} {request.url.path}")
        return Response(status_code=200)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


# =========================================================================
# LIVENESS / HEALTH
# =========================================================================
@app.get("/ping")
async def ping() -> dict[str, str]:
    """Liveness check."""
    return {"status": "alive"}


@app.get("/health")
async def health_check() -> JSONResponse:
    """
    Health check endpoint for Docker health checks and monitoring.

    Checks:
    - Calendar circuit breaker state (open = degraded)
    - Redis connectivity (PING) when the redis slot lock backend is used

    Returns:
        200 OK if all systems healthy
        503 Service Unavailable if degraded
    """
    settings = get_settings()
    breakers = get_breaker_status()

    health_status = {
        "status": "healthy",
        "calendar_backend": settings.CALENDAR_BACKEND,
        "circuit_breakers": breakers,
    }
    status_code = 200

    if any(b["state"] == "open" for b in breakers.values()):
        health_status["status"] = "degraded"
        status_code = 503

    if settings.SLOT_LOCK_BACKEND == "redis":
        from shared.redis_client import get_redis_client

        try:
            await get_redis_client(settings.REDIS_URL).ping()
            health_status["redis"] = "connected"
        except Exception:
            health_status["redis"] = "disconnected"
            health_status["status"] = "degraded"
            status_code = 503

    return JSONResponse(status_code=status_code, content=health_status)


def main() -> None:
    """Run the API with uvicorn; exit with status 1 on invalid configuration."""
    settings = get_settings()
    try:
        validate_startup_config(settings)
    except StartupValidationError as e:
        logger.critical(f"Startup blocked: {e}")
        sys.exit(1)

    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_config=None)


if __name__ == "__main__":
    main()
