"""FastAPI API endpoints under /api.

Endpoint groups: health/settings, game (load, current frame, choose,
restart, media) and saves (slots, single-file export/import, bundles,
backups). All of them act on the single Engine held in app.state.engine.
"""

from fastapi import APIRouter

from .game import router as game_router
from .saves import router as saves_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(game_router)
router.include_router(saves_router)
