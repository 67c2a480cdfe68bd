"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chainsweep import __version__
from chainsweep.config import get_settings
from chainsweep.errors import (
    ChainAbstractionError,
    InsufficientBalanceError,
    InvalidAddressError,
    RpcError,
    UnsupportedChainError,
)
from chainsweep.ledger.database import close_db, init_db

logger = logging.getLogger(__name__)


def error_status(exc: ChainAbstractionError) -> int:
    """HTTP status for a chain error: only caller-correctable kinds are 4xx."""
    if isinstance(exc, InsufficientBalanceError):
        return 422
    if isinstance(exc, (InvalidAddressError, UnsupportedChainError)):
        return 400
    if isinstance(exc, RpcError):
        return 502
    return 500


async def chain_error_handler(request: Request, exc: ChainAbstractionError) -> JSONResponse:
    status_code = error_status(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.code, "message": str(exc)},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    await init_db()
    yield
    # Shutdown
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Chainsweep API",
        description="Unsigned sweep transaction builder for EVM, BTC, TRX, ADA and XRP",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ChainAbstractionError, chain_error_handler)

    # Register routes
    from chainsweep.api.routes import health, transactions

    app.include_router(health.router, tags=["Health"])
    app.include_router(transactions.router, prefix="/api/v1", tags=["Transactions"])

    return app
