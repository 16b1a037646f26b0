"""
SkinBet Main Application Entry Point
FastAPI service exposing the bet settlement engine.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware
import uvicorn

from skinbet.config import settings
from skinbet.core.logger import init_logging, get_logger
from skinbet.core.crash_rounds import CrashRoundService
from skinbet.core.exceptions import SkinBetError
from skinbet.core.settlement import BetSettlementService
from skinbet.routers import api

# Initialize logging first
init_logging(
    level=settings.logging.level,
    log_to_file=settings.logging.log_to_file,
    formatter=settings.logging.formatter,
    log_file_path=settings.logging.get_log_path(),
)
logger = get_logger("main")


# ==================== Security Headers Middleware ====================


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


# ==================== Storage Wiring ====================


def build_settlement_service() -> BetSettlementService:
    """Build the settlement service over the configured storage backend."""
    backend = settings.storage.backend.lower()

    if backend == "memory":
        from skinbet.core.memory import InMemoryGameRecordStore, InMemoryUserRepository

        users, records = InMemoryUserRepository(), InMemoryGameRecordStore()
    elif backend == "sqlite":
        from skinbet.core.database import Database, SQLiteGameRecordStore, SQLiteUserRepository

        database = Database(settings.storage.get_db_path())
        users, records = SQLiteUserRepository(database), SQLiteGameRecordStore(database)
    else:
        raise ValueError(f"Unknown storage backend: {settings.storage.backend}")

    logger.info(f"Using {backend} storage backend")
    return BetSettlementService(users, records)


# ==================== Error Handlers ====================


async def skinbet_error_handler(request: Request, exc: SkinBetError):
    if exc.status_code >= 500:
        logger.error(f"{exc.error} on {request.url.path}: {exc.detail}")
    else:
        logger.warning(f"{exc.error} on {request.url.path}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}"
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "InvalidInput", "detail": "; ".join(errors)},
    )


async def global_exception_handler(request: Request, exc: Exception):
    """Handle unhandled exceptions gracefully."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "detail": str(exc) if settings.server.debug else None,
        },
    )


# ==================== Application Setup ====================


def create_app(settlement: BetSettlementService = None, crash_rounds: CrashRoundService = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.server.name,
        docs_url="/docs" if settings.server.debug else None,
        redoc_url=None,
    )

    app.state.settlement = settlement or build_settlement_service()
    app.state.crash_rounds = crash_rounds or CrashRoundService(app.state.settlement)

    app.state.limiter = api.limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(SkinBetError, skinbet_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    app.add_middleware(SecurityHeadersMiddleware)

    # CORS middleware (for development)
    if settings.server.debug:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(api.router, prefix="/api")

    logger.info(f"Application '{settings.server.name}' initialized")
    return app


# ==================== Main Entry Point ====================

if __name__ == "__main__":
    logger.info(f"Starting server on {settings.server.host}:{settings.server.port}")
    uvicorn.run(
        "skinbet.main:create_app",
        factory=True,
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.server.debug,
    )
