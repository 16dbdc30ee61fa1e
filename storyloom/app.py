from fastapi import FastAPI

from storyloom.config import Settings, load_settings
from storyloom.engine import Engine
from storyloom.presentation import RecordingPresenter
from storyloom.routes import router


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the API around a single engine session.

    The engine renders into a RecordingPresenter; endpoints read the current
    frame back out of it.
    """
    resolved = settings or load_settings()
    presenter = RecordingPresenter()

    app = FastAPI(title="Storyloom")
    app.state.settings = resolved
    app.state.presenter = presenter
    app.state.engine = Engine(presenter, resolved)
    app.include_router(router, prefix="/api")
    return app
