"""Health check and settings endpoints."""

from fastapi import APIRouter, Depends

from storyloom.engine import Engine

from .deps import get_engine

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings(engine: Engine = Depends(get_engine)):
    """Settings the engine was built with."""
    return engine.settings.model_dump(mode="json")
