"""Health check endpoints."""

from fastapi import APIRouter

from chainsweep import __version__
from chainsweep.builders import ChainBuilderFactory
from chainsweep.config import get_settings

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "chainsweep"}


@router.get("/health/detailed")
async def detailed_health():
    """Health check with implemented chains and redacted configuration."""
    settings = get_settings()
    return {
        "status": "healthy",
        "service": "chainsweep",
        "version": __version__,
        "chains": [chain.value for chain in ChainBuilderFactory.get_implemented_chains()],
        "config": settings.get_safe_dict(),
    }
