"""Health check endpoints."""

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Liveness check with the running environment."""
    settings = request.app.state.settings
    return {"status": "healthy", "app": settings.app_name, "environment": settings.environment}


@router.get("/")
async def root(request: Request):
    return {
        "name": request.app.state.settings.app_name,
        "version": request.app.version,
        "description": "Authentication service for AcoomH individuals and companies",
    }
